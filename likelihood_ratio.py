"""
Likelihood-ratio confidence bounds and contours.

Bounds are the points where twice the log-likelihood deficit relative to
the MLE reaches a chi-square critical value. Nuisance parameters are
profiled out numerically; every boundary is bracketed first and then
solved with Brent's method, so a surface too flat to bracket raises
instead of returning a wrong bound.
"""

import logging

import numpy as np
from scipy.optimize import bracket, brentq, minimize_scalar
from scipy.stats import chi2, norm

from constants import (
    BRACKET_MAX_EXPANSIONS, CONTOUR_POINTS, DEFAULT_CONFIDENCE_LEVEL,
    DEFAULT_DISTRIBUTION, LR_CURVE_POINTS, ROOT_XTOL,
)
from data_model import BoundMethod, BoundQuery, ConfidenceBoundSet, ContourData, Curve
from distributions import check_times, get_model
from errors import DomainError, IncompatibleInputError, NonConvergentFitError
from fisher_bounds import (
    line_jacobian, fisher_information, mle_fit_for, region_summary,
    time_grid, transformed_variance, validate_confidence,
)
from mle import unconstrained_log_likelihood

logger = logging.getLogger(__name__)

_PENALTY = 1e12


def lr_critical(confidence_level, dof=1, sides="two-sided"):
    c = validate_confidence(confidence_level) / 100.0
    if sides == "two-sided":
        return float(chi2.ppf(c, dof))
    if sides == "one-sided":
        if dof != 1 or c <= 0.5:
            raise DomainError("One-sided likelihood-ratio bounds need one degree of freedom and a level above 50%")
        return float(norm.ppf(c) ** 2)
    raise DomainError(f"Unknown bound sides {sides!r}")


def bracket_root(func, center, step, direction, max_expansions=BRACKET_MAX_EXPANSIONS):
    """Walk away from ``center`` (where func < 0) until func changes sign."""
    if not step > 0 or not np.isfinite(step):
        step = 0.1 * (1.0 + abs(center))
    inner = center
    for _ in range(max_expansions):
        outer = center + direction * step
        if func(outer) > 0:
            return inner, outer
        inner = outer
        step *= 2.0
    raise NonConvergentFitError("Likelihood surface is too flat to bracket the confidence boundary")


def solve_boundary(func, center, step, direction):
    inner, outer = bracket_root(func, center, step, direction)
    lo, hi = min(inner, outer), max(inner, outer)
    try:
        return brentq(func, lo, hi, xtol=ROOT_XTOL)
    except ValueError as e:
        raise NonConvergentFitError(f"Confidence boundary search failed: {e}") from e


def _maximize(func, seed, step):
    """Maximise a one-dimensional profile, searching outward from ``seed``.

    The bracket is grown downhill from a finite starting value, so a
    region where the likelihood is undefined can only stop the walk and
    never hide the peak. The seed itself is returned if nothing beats it.
    """
    if not step > 0 or not np.isfinite(step):
        step = 0.1 * (1.0 + abs(seed))
    start, start_value = _finite_start(func, seed, step)

    def negative(v):
        value = func(v)
        return -value if np.isfinite(value) else _PENALTY

    try:
        xa, xb, xc = bracket(negative, start, start + step)[:3]
        res = minimize_scalar(negative, bracket=(xa, xb, xc), method="brent")
    except (RuntimeError, ValueError) as e:
        raise NonConvergentFitError(f"Profile likelihood has no interior maximum: {e}") from e
    found = func(float(res.x))
    if np.isfinite(found) and found >= start_value:
        return float(res.x), found
    return start, start_value


def _finite_start(func, seed, step, max_expansions=BRACKET_MAX_EXPANSIONS):
    value = func(seed)
    if np.isfinite(value):
        return seed, value
    for k in range(max_expansions):
        for candidate in (seed - step * 2.0 ** k, seed + step * 2.0 ** k):
            value = func(candidate)
            if np.isfinite(value):
                return candidate, value
    raise NonConvergentFitError("Likelihood is undefined around the profile starting point")


class LikelihoodRatioEngine:
    """Profile-likelihood searches around the MLE of one dataset."""

    def __init__(self, dataset, distribution=DEFAULT_DISTRIBUTION, fit=None):
        self.model = get_model(distribution)
        self.dataset = dataset
        self.fit = mle_fit_for(dataset, self.model, fit)
        self.params = self.fit.parameters
        self.info = fisher_information(dataset, self.params)
        self.theta_hat = self.info.theta
        self.theta_se = self.info.standard_errors
        self._theta_ll = unconstrained_log_likelihood(self.model, dataset)
        self.ll_hat = self._theta_ll(self.theta_hat)

    # -- helpers --------------------------------------------------------
    def _line_ll(self, slope, intercept):
        try:
            params = self.model.from_line(slope, intercept)
        except (DomainError, OverflowError, ZeroDivisionError):
            return -np.inf
        return self._theta_ll(self.model.to_unconstrained(params))

    def statistic(self, ll):
        """Twice the log-likelihood deficit, finite for plotting and root finding."""
        value = 2.0 * (self.ll_hat - ll)
        return value if np.isfinite(value) else _PENALTY

    def _profile_theta(self, index, value):
        """Maximise over the other coordinate with theta[index] fixed."""
        other = 1 - index

        def ll(w):
            theta = np.empty(2)
            theta[index] = value
            theta[other] = w
            return self._theta_ll(theta)

        center = self.theta_hat[other]
        return _maximize(ll, center, self.theta_se[other])

    # -- bounds on the transformed probability at fixed times -----------
    def y_bounds(self, t, critical):
        """(lower, upper) of y(t) = transformed unreliability at time t."""
        x0 = float(self.model.transform_x(np.array([t]))[0])
        y_hat = float(self.model.y_at(np.array([t]), self.params)[0])
        y_se = float(np.sqrt(transformed_variance(self.info, np.array([t]))[0]))

        if self.model.n_params == 1:
            # y = lam * x with x > 0; solve in log(y)
            def f(v):
                return self.statistic(self._line_ll(np.exp(v) / x0, 0.0)) - critical

            v_hat = np.log(y_hat)
            step = y_se / y_hat
            lo = solve_boundary(f, v_hat, step, -1.0)
            hi = solve_boundary(f, v_hat, step, +1.0)
            return float(np.exp(lo)), float(np.exp(hi))

        slope_hat, _ = self.model.line(self.params)
        jac = line_jacobian(self.model, self.theta_hat)
        grad_u = jac[0] / slope_hat
        u_se = float(np.sqrt(grad_u @ self.info.covariance @ grad_u))
        u_hat = np.log(slope_hat)

        def f(y0):
            def ll(u):
                b = np.exp(u)
                return self._line_ll(b, y0 - b * x0)
            _, best = _maximize(ll, u_hat, u_se)
            return self.statistic(best) - critical

        lo = solve_boundary(f, y_hat, y_se, -1.0)
        hi = solve_boundary(f, y_hat, y_se, +1.0)
        return lo, hi

    # -- per-parameter bounds -------------------------------------------
    def parameter_bounds(self, critical):
        bounds = {}
        for i, name in enumerate(self.model.param_names):
            if self.model.n_params == 1:
                def f(v):
                    return self.statistic(self._theta_ll(np.array([v]))) - critical
            else:
                def f(v, i=i):
                    _, best = self._profile_theta(i, v)
                    return self.statistic(best) - critical
            lo = solve_boundary(f, self.theta_hat[i], self.theta_se[i], -1.0)
            hi = solve_boundary(f, self.theta_hat[i], self.theta_se[i], +1.0)
            if self.model.log_parameters[i]:
                lo, hi = np.exp(lo), np.exp(hi)
            bounds[name] = (float(lo), float(hi))
        return bounds

    # -- joint contour ----------------------------------------------------
    def contour_thetas(self, critical, points=CONTOUR_POINTS):
        """Closed polygon of unconstrained points on the critical level set.

        Sweeps the first coordinate between its profile extremes and, at
        each sweep value, bisects along the second coordinate on both sides
        of the conditional maximum.
        """
        if self.model.n_params != 2:
            raise IncompatibleInputError("A likelihood contour needs a two-parameter distribution")

        def profile_stat(v):
            _, best = self._profile_theta(0, v)
            return self.statistic(best) - critical

        t0, se0 = self.theta_hat[0], self.theta_se[0]
        left = solve_boundary(profile_stat, t0, se0, -1.0)
        right = solve_boundary(profile_stat, t0, se0, +1.0)

        mid, half = 0.5 * (left + right), 0.5 * (right - left)
        sweep = mid - half * np.cos(np.linspace(0.0, np.pi, points + 2))[1:-1]

        upper, lower = [], []
        se1 = self.theta_se[1]
        for v in sweep:
            w_star, best = self._profile_theta(0, v)
            if self.statistic(best) >= critical:
                continue

            def f(w, v=v):
                return self.statistic(self._theta_ll(np.array([v, w]))) - critical

            lower.append((v, solve_boundary(f, w_star, se1, -1.0)))
            upper.append((v, solve_boundary(f, w_star, se1, +1.0)))

        if not upper:
            raise NonConvergentFitError("No interior points found while tracing the contour")

        left_pt = (left, self._profile_theta(0, left)[0])
        right_pt = (right, self._profile_theta(0, right)[0])
        polygon = [left_pt] + upper + [right_pt] + lower[::-1] + [left_pt]
        logger.debug("Contour traced with %d vertices", len(polygon))
        return np.array(polygon)


def likelihood_ratio_bounds(dataset, distribution=DEFAULT_DISTRIBUTION,
                            confidence_level=DEFAULT_CONFIDENCE_LEVEL, sides="two-sided",
                            fit=None, times=None, query_time=None):
    critical = lr_critical(confidence_level, 1, sides)
    engine = LikelihoodRatioEngine(dataset, distribution, fit)
    model = engine.model

    times = time_grid(dataset, LR_CURVE_POINTS) if times is None else check_times(times)
    x = model.transform_x(times)
    y_hat = model.y_at(times, engine.params)
    lows, highs = [], []
    for t in times:
        lo, hi = engine.y_bounds(float(t), critical)
        lows.append(lo)
        highs.append(hi)

    point = None
    if query_time is not None:
        t = float(query_time)
        lo, hi = engine.y_bounds(t, critical)
        est = float(model.y_at(np.array([t]), engine.params)[0])
        lo_p, est_p, hi_p = model.inverse_y(np.array([lo, est, hi]))
        point = BoundQuery(t, float(lo_p), float(est_p), float(hi_p))

    return ConfidenceBoundSet(
        confidence_level=float(confidence_level),
        method=BoundMethod.LIKELIHOOD_RATIO,
        sides=sides,
        distribution=model.name,
        times=times,
        estimate=Curve(x, y_hat),
        lower=Curve(x, lows),
        upper=Curve(x, highs),
        point_query=point,
        parameter_bounds=engine.parameter_bounds(critical),
    )


def likelihood_ratio_parameter_bounds(dataset, distribution=DEFAULT_DISTRIBUTION,
                                      confidence_level=DEFAULT_CONFIDENCE_LEVEL, fit=None):
    engine = LikelihoodRatioEngine(dataset, distribution, fit)
    return engine.parameter_bounds(lr_critical(confidence_level, 1))


def likelihood_ratio_contour(dataset, distribution=DEFAULT_DISTRIBUTION,
                             confidence_level=DEFAULT_CONFIDENCE_LEVEL, dof=2, fit=None,
                             points=CONTOUR_POINTS):
    """Joint confidence region traced on the chi-square(dof) level set."""
    c = validate_confidence(confidence_level)
    engine = LikelihoodRatioEngine(dataset, distribution, fit)
    thetas = engine.contour_thetas(lr_critical(c, dof), points)
    natural = np.array([engine.model.from_unconstrained(th).values for th in thetas])
    bounds, limits = region_summary(engine.model, natural)
    return ContourData(
        center=engine.params,
        param_names=engine.model.param_names,
        ellipse=natural,
        per_parameter_bounds=bounds,
        axis_limits=limits,
        confidence_level=c,
        method=BoundMethod.LIKELIHOOD_RATIO,
    )
