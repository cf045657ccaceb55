"""
Fisher matrix confidence bounds.

The observed information (negative Hessian of the log-likelihood at the
MLE) is inverted to a covariance matrix and propagated to the
probability-paper axis with the delta method. Bounds are symmetric on the
transformed axis and asymmetric once mapped back to probabilities.
"""

import logging
from dataclasses import dataclass

import numpy as np
from scipy.stats import chi2, norm
from statsmodels.tools.numdiff import approx_fprime

from constants import (
    AXIS_PADDING, BOUND_SIDES, CURVE_POINTS, DEFAULT_CONFIDENCE_LEVEL,
    DEFAULT_DISTRIBUTION, FISHER_ELLIPSE_POINTS,
)
from data_model import BoundMethod, BoundQuery, ConfidenceBoundSet, ContourData, Curve
from distributions import check_times, get_model
from errors import DomainError, NonConvergentFitError
from mle import fit_mle, numerical_hessian, unconstrained_log_likelihood

logger = logging.getLogger(__name__)


def validate_confidence(confidence_level):
    c = float(confidence_level)
    if not np.isfinite(c) or c <= 0 or c >= 100:
        raise DomainError(f"Confidence level must lie strictly between 0 and 100, got {confidence_level!r}")
    return c


def z_value(confidence_level, sides="two-sided"):
    c = validate_confidence(confidence_level) / 100.0
    if sides == "two-sided":
        return float(norm.ppf(0.5 + c / 2.0))
    if sides == "one-sided":
        return float(norm.ppf(c))
    raise DomainError(f"Unknown bound sides {sides!r}; expected one of {BOUND_SIDES}")


def time_grid(dataset, points=CURVE_POINTS):
    times = dataset.times
    return np.geomspace(times.min() * 0.5, times.max() * 1.5, points)


def mle_fit_for(dataset, distribution, fit=None):
    if fit is not None and fit.method == "MLE":
        return fit
    return fit_mle(dataset, distribution)


@dataclass(frozen=True, eq=False)
class FisherInformation:
    parameters: object
    theta: np.ndarray
    covariance: np.ndarray            # unconstrained coordinates
    natural_covariance: np.ndarray

    @property
    def standard_errors(self):
        return np.sqrt(np.diag(self.covariance))


def fisher_information(dataset, params):
    model = get_model(params)
    theta = model.to_unconstrained(params)
    hess = numerical_hessian(unconstrained_log_likelihood(model, dataset), theta)
    info = -hess
    if not np.all(np.isfinite(info)) or np.linalg.eigvalsh(info).min() <= 0:
        raise NonConvergentFitError("Observed information matrix is not positive definite")
    cov = np.linalg.inv(info)
    jac = model.unconstrained_jacobian(params)
    return FisherInformation(params, theta, cov, jac @ cov @ jac.T)


def line_jacobian(model, theta):
    """d(slope, intercept)/d(theta), shape (2, k)."""
    def line(th):
        return np.array(model.line(model.from_unconstrained(th)), dtype=float)

    jac = approx_fprime(np.asarray(theta, dtype=float), line, centered=True)
    return np.reshape(jac, (2, -1))


def transformed_variance(info, times):
    """Delta-method variance of y(t) = intercept + slope * x(t)."""
    model = get_model(info.parameters)
    x = model.transform_x(times)
    jac = line_jacobian(model, info.theta)
    grads = jac[1][None, :] + x[:, None] * jac[0][None, :]
    return np.einsum("ij,jk,ik->i", grads, info.covariance, grads)


def fisher_parameter_bounds(info, z):
    """Per-parameter bounds, computed in unconstrained space and mapped back."""
    model = get_model(info.parameters)
    se = info.standard_errors
    bounds = {}
    for i, name in enumerate(model.param_names):
        lo = info.theta[i] - z * se[i]
        hi = info.theta[i] + z * se[i]
        if model.log_parameters[i]:
            lo, hi = np.exp(lo), np.exp(hi)
        bounds[name] = (float(lo), float(hi))
    return bounds


def fisher_bounds(dataset, distribution=DEFAULT_DISTRIBUTION,
                  confidence_level=DEFAULT_CONFIDENCE_LEVEL, sides="two-sided",
                  fit=None, times=None, query_time=None):
    z = z_value(confidence_level, sides)
    model = get_model(distribution)
    fit = mle_fit_for(dataset, model, fit)
    info = fisher_information(dataset, fit.parameters)

    times = time_grid(dataset) if times is None else check_times(times)
    x = model.transform_x(times)
    y_hat = model.y_at(times, fit.parameters)
    se = np.sqrt(transformed_variance(info, times))

    point = None
    if query_time is not None:
        t = np.array([float(query_time)])
        y0 = model.y_at(t, fit.parameters)
        s0 = np.sqrt(transformed_variance(info, t))
        lo, est, hi = model.inverse_y(np.concatenate([y0 - z * s0, y0, y0 + z * s0]))
        point = BoundQuery(float(query_time), float(lo), float(est), float(hi))

    logger.debug("Fisher bounds at %.1f%% (%s), z=%.4f", confidence_level, sides, z)
    return ConfidenceBoundSet(
        confidence_level=float(confidence_level),
        method=BoundMethod.FISHER,
        sides=sides,
        distribution=model.name,
        times=times,
        estimate=Curve(x, y_hat),
        lower=Curve(x, y_hat - z * se),
        upper=Curve(x, y_hat + z * se),
        point_query=point,
        parameter_bounds=fisher_parameter_bounds(info, z),
    )


def region_summary(model, natural_points):
    """Per-parameter extents and padded axis limits of a confidence region."""
    bounds = {}
    limits = {}
    for i, name in enumerate(model.param_names):
        lo = float(natural_points[:, i].min())
        hi = float(natural_points[:, i].max())
        pad = AXIS_PADDING * (hi - lo if hi > lo else abs(hi) + 1.0)
        bounds[name] = (lo, hi)
        limits[name] = (lo - pad, hi + pad)
    return bounds, limits


def fisher_ellipse(dataset, distribution=DEFAULT_DISTRIBUTION,
                   confidence_level=DEFAULT_CONFIDENCE_LEVEL, dof=2, fit=None,
                   points=FISHER_ELLIPSE_POINTS):
    """Quadratic approximation of the joint confidence region."""
    c = validate_confidence(confidence_level)
    model = get_model(distribution)
    fit = mle_fit_for(dataset, model, fit)
    info = fisher_information(dataset, fit.parameters)
    radius = np.sqrt(chi2.ppf(c / 100.0, dof))

    if model.n_params == 1:
        se = info.standard_errors[0]
        thetas = np.array([[info.theta[0] - radius * se], [info.theta[0] + radius * se]])
    else:
        chol = np.linalg.cholesky(info.covariance)
        angles = np.linspace(0.0, 2.0 * np.pi, points, endpoint=False)
        circle = np.vstack([np.cos(angles), np.sin(angles)])
        thetas = (info.theta[:, None] + radius * chol @ circle).T

    natural = np.array([model.from_unconstrained(th).values for th in thetas])
    natural = np.vstack([natural, natural[:1]])
    bounds, limits = region_summary(model, natural)
    return ContourData(
        center=fit.parameters,
        param_names=model.param_names,
        ellipse=natural,
        per_parameter_bounds=bounds,
        axis_limits=limits,
        confidence_level=c,
        method=BoundMethod.FISHER,
    )
