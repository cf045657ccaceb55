"""
Spares budget forecasting for an aging population.
"""

import logging
import math

import numpy as np

from constants import DEFAULT_CONFIDENCE_LEVEL, DEFAULT_DISTRIBUTION
from data_model import BoundMethod, BudgetForecast, FailureTriple, ItemForecast, PopulationItem
from distributions import get_model
from errors import DomainError, IncompatibleInputError
from fisher_bounds import fisher_ellipse, validate_confidence
from likelihood_ratio import likelihood_ratio_contour, likelihood_ratio_parameter_bounds
from mle import fit_mle

logger = logging.getLogger(__name__)


def conditional_failure_probability(params, age, horizon):
    """P(fail before age + horizon | survived to age)."""
    model = get_model(params)
    if age == 0:
        return float(model.cdf(np.array([horizon]), params)[0])
    with np.errstate(invalid="ignore"):
        log_s = model.log_survival(np.array([age, age + horizon]), params)
        delta = log_s[1] - log_s[0]
    if not np.isfinite(delta):
        # survival to the current age has underflowed
        return 1.0
    return float(-np.expm1(delta))


def expected_failures(params, population, horizon):
    return np.array([
        item.quantity * conditional_failure_probability(params, item.age, horizon)
        for item in population
    ])


def _population(items):
    population = tuple(
        item if isinstance(item, PopulationItem) else PopulationItem(*item) for item in items
    )
    if not population:
        raise IncompatibleInputError("Population must contain at least one group")
    return population


def candidate_parameters(dataset, model, fit, confidence_level, method):
    """Parameter sets on the boundary of the scalar confidence region."""
    if method is BoundMethod.FISHER:
        region = fisher_ellipse(dataset, model, confidence_level, dof=1, fit=fit)
    elif model.n_params == 1:
        # a one-parameter region is an interval
        bounds = likelihood_ratio_parameter_bounds(dataset, model, confidence_level, fit)
        return [model.make_params(v) for v in bounds[model.param_names[0]]]
    else:
        region = likelihood_ratio_contour(dataset, model, confidence_level, dof=1, fit=fit)
    return [model.make_params(*row) for row in region.ellipse]


def forecast_spares(dataset, population, horizon, unit_cost=0.0,
                    confidence_level=DEFAULT_CONFIDENCE_LEVEL, bound_method="fisher",
                    distribution=DEFAULT_DISTRIBUTION, fit=None):
    """Expected failures over ``horizon`` with lower/median/upper triples.

    The median uses the MLE. The lower and upper triples use the boundary
    parameter sets that minimise and maximise the total, so per-item values
    always add up to the totals. The upper total, rounded up, is the
    recommended stock.
    """
    horizon = float(horizon)
    if not math.isfinite(horizon) or horizon <= 0:
        raise DomainError(f"Forecast horizon must be positive, got {horizon!r}")
    unit_cost = float(unit_cost)
    if not math.isfinite(unit_cost) or unit_cost < 0:
        raise DomainError(f"Unit cost must be non-negative, got {unit_cost!r}")
    validate_confidence(confidence_level)
    population = _population(population)
    method = BoundMethod.parse(bound_method)
    model = get_model(distribution)

    if fit is None or fit.method != "MLE":
        fit = fit_mle(dataset, model)
    median = expected_failures(fit.parameters, population, horizon)

    candidates = candidate_parameters(dataset, model, fit, confidence_level, method)
    per_candidate = [expected_failures(p, population, horizon) for p in candidates]
    totals = np.array([v.sum() for v in per_candidate])
    lo_idx, hi_idx = int(np.argmin(totals)), int(np.argmax(totals))
    lower, lower_params = per_candidate[lo_idx], candidates[lo_idx]
    upper, upper_params = per_candidate[hi_idx], candidates[hi_idx]
    # the MLE lies inside the region, so the median must stay bracketed
    if lower.sum() > median.sum():
        lower, lower_params = median, fit.parameters
    if upper.sum() < median.sum():
        upper, upper_params = median, fit.parameters

    per_item = tuple(
        ItemForecast(item.age, item.quantity, FailureTriple(float(lo), float(med), float(hi)))
        for item, lo, med, hi in zip(population, lower, median, upper)
    )
    total = FailureTriple(float(lower.sum()), float(median.sum()), float(upper.sum()))
    logger.debug("Spares forecast over %.1f: %s", horizon, total)

    return BudgetForecast(
        per_item=per_item,
        totals=total,
        applied_unit_cost=unit_cost,
        cost=total.scaled(unit_cost),
        recommended_stock=int(math.ceil(total.upper - 1e-9)),
        horizon=horizon,
        confidence_level=float(confidence_level),
        method=method,
        parameters={"lower": lower_params, "median": fit.parameters, "upper": upper_params},
    )
