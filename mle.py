"""
Maximum likelihood estimation for right-censored life data.
"""

import logging
import warnings

import numpy as np
from scipy.optimize import minimize
from statsmodels.tools.numdiff import approx_fprime, approx_hess3

from constants import (
    DEFAULT_DISTRIBUTION, DISTRIBUTION_NAMES, MAX_LOG_PARAMETER, MLE_MAX_ITERATIONS,
    MLE_STALL_GRADIENT, MLE_TOLERANCE,
)
from data_model import FitResult
from distributions import get_model
from errors import DomainError, InsufficientDataError, NonConvergentFitError, ReliabilityError
from plotting_positions import goodness_of_fit, line_curve, plot_points, rank_regression

logger = logging.getLogger(__name__)


def log_likelihood(params, dataset):
    """Sum of log f over failures plus log R over suspensions."""
    model = get_model(params)
    with np.errstate(over="ignore", under="ignore", divide="ignore", invalid="ignore"):
        total = float(np.sum(model.log_density(dataset.failures, params)))
        suspensions = dataset.suspensions
        if suspensions.size:
            total += float(np.sum(model.log_survival(suspensions, params)))
    return total if np.isfinite(total) else -np.inf


def unconstrained_log_likelihood(model, dataset):
    """Log-likelihood as a function of the optimiser's coordinates."""
    failures = dataset.failures
    suspensions = dataset.suspensions
    # location coordinates are in time units and stay uncapped
    log_coords = np.array(model.log_parameters, dtype=bool)

    def func(theta):
        theta = np.asarray(theta, dtype=float)
        if np.any(np.abs(theta[log_coords]) > MAX_LOG_PARAMETER):
            return -np.inf
        try:
            params = model.from_unconstrained(theta)
        except (DomainError, OverflowError):
            return -np.inf
        with np.errstate(over="ignore", under="ignore", divide="ignore", invalid="ignore"):
            total = np.sum(model._log_density(failures, params))
            if suspensions.size:
                total += np.sum(model._log_survival(suspensions, params))
        return float(total) if np.isfinite(total) else -np.inf

    return func


def numerical_gradient(func, theta):
    return np.ravel(approx_fprime(np.asarray(theta, dtype=float), func, centered=True))


def numerical_hessian(func, theta):
    return np.atleast_2d(approx_hess3(np.asarray(theta, dtype=float), func))


def _check_dataset(dataset):
    if dataset.n_failures < 2:
        raise InsufficientDataError(
            f"At least 2 failures are required, got {dataset.n_failures}"
        )
    if np.ptp(dataset.times) == 0:
        raise NonConvergentFitError("Likelihood is unbounded when every time is identical")


def maximize_log_likelihood(func, theta0, tolerance=MLE_TOLERANCE, max_iterations=MLE_MAX_ITERATIONS):
    """Trust-region Newton ascent on ``func``.

    Returns (theta, value, iterations, hessian). Raises
    ``NonConvergentFitError`` when the iteration cap is hit, the surface is
    flat or divergent, or the final Hessian is not negative definite.
    """
    theta0 = np.array(theta0, dtype=float)
    if not np.isfinite(func(theta0)):
        raise NonConvergentFitError("Log-likelihood is not finite at the starting point")

    radius = max(1.0, 0.1 * float(np.linalg.norm(theta0)))

    def objective(theta):
        return -func(theta)

    def gradient(theta):
        grad = -numerical_gradient(func, theta)
        if not np.all(np.isfinite(grad)):
            raise NonConvergentFitError("Non-finite derivatives during likelihood ascent")
        return grad

    def hessian(theta):
        hess = -numerical_hessian(func, theta)
        if not np.all(np.isfinite(hess)):
            raise NonConvergentFitError("Non-finite derivatives during likelihood ascent")
        return hess

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", RuntimeWarning)
        res = minimize(objective, theta0, method="trust-exact", jac=gradient, hess=hessian,
                       options={"gtol": tolerance, "maxiter": max_iterations,
                                "initial_trust_radius": radius, "max_trust_radius": 1e3 * radius})

    theta = np.asarray(res.x, dtype=float)
    value = func(theta)
    if not res.success:
        # a stalled trust region at a stationary point is still a maximum
        stalled = res.status == 2 and np.linalg.norm(res.jac) <= MLE_STALL_GRADIENT
        if res.status == 1:
            raise NonConvergentFitError(
                f"Likelihood ascent did not converge within {max_iterations} iterations"
            )
        if not stalled:
            raise NonConvergentFitError(f"Likelihood ascent failed: {res.message}")
    if not np.isfinite(value):
        raise NonConvergentFitError("Parameter estimates diverged")

    hess = numerical_hessian(func, theta)
    if not np.all(np.isfinite(hess)) or np.linalg.eigvalsh(hess).max() >= 0:
        raise NonConvergentFitError("Likelihood surface is flat at the estimate")
    logger.debug("Trust-region ascent converged in %d iterations (logL=%.6f)", res.nit, value)
    return theta, value, res.nit, hess


def fit_mle(dataset, distribution=DEFAULT_DISTRIBUTION, rank_method="benard",
            tolerance=MLE_TOLERANCE, max_iterations=MLE_MAX_ITERATIONS, start=None):
    """Maximum likelihood fit, started from the rank-regression estimate."""
    model = get_model(distribution)
    _check_dataset(dataset)
    if start is None:
        start = rank_regression(dataset, model, rank_method).parameters

    func = unconstrained_log_likelihood(model, dataset)
    theta, value, iterations, _ = maximize_log_likelihood(
        func, model.to_unconstrained(start), tolerance, max_iterations
    )
    params = model.from_unconstrained(theta)
    points = plot_points(dataset, model, rank_method)
    logger.debug("%s MLE: %s (logL=%.4f)", model.name, params, value)

    return FitResult(
        parameters=params,
        plot_points=points,
        fitted_line=line_curve(model, params, points),
        r_squared=goodness_of_fit(model, params, points),
        method="MLE",
        log_likelihood=value,
        iterations=iterations,
    )


def fit_distribution(dataset, distribution=DEFAULT_DISTRIBUTION, method="MLE", rank_method="benard"):
    key = str(method).strip().upper()
    if key == "MLE":
        return fit_mle(dataset, distribution, rank_method)
    if key in ("RRY", "RR", "RANK"):
        return rank_regression(dataset, distribution, rank_method)
    raise DomainError(f"Unknown fitting method {method!r}")


def rank_distributions(dataset, families=DISTRIBUTION_NAMES, rank_method="benard"):
    """Fit every family by MLE and order them by log-likelihood, best first."""
    fits = []
    for name in families:
        try:
            fit = fit_mle(dataset, name, rank_method)
        except InsufficientDataError:
            raise
        except ReliabilityError as e:
            logger.debug("%s fit skipped: %s", name, e)
            continue
        fits.append((get_model(name).name, fit))
    if not fits:
        raise NonConvergentFitError("No distribution family could be fitted")
    fits.sort(key=lambda item: item[1].log_likelihood, reverse=True)
    return fits
