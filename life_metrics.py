"""
Life metrics derived from a fitted distribution: reliability curves,
B-lives, MTTF, life phase and age-replacement optimisation.
"""

import logging

import numpy as np
import pandas as pd
from scipy.integrate import cumulative_trapezoid

from constants import (
    CURVE_TIME_MARGIN, INFANT_MORTALITY_LIMIT, RELIABILITY_CURVE_POINTS,
    REPLACEMENT_GRID_STEPS, REPLACEMENT_HORIZON_QUANTILE, WEAR_OUT_LIMIT,
)
from data_model import MaintenancePlan
from distributions import get_model
from errors import DomainError

logger = logging.getLogger(__name__)


def b_life(params, percent):
    """Time by which ``percent`` % of the population has failed (B10, B50...)."""
    if not 0 < percent < 100:
        raise DomainError(f"B-life percentage must lie in (0, 100), got {percent!r}")
    return float(get_model(params).quantile(np.array([percent / 100.0]), params)[0])


def mttf(params):
    return float(get_model(params).mean(params))


def life_phase(beta):
    """Bathtub-curve phase suggested by a Weibull shape parameter."""
    if beta <= 0:
        raise DomainError("Shape parameter must be positive")
    if beta < INFANT_MORTALITY_LIMIT:
        return "infant mortality"
    if beta <= WEAR_OUT_LIMIT:
        return "useful life"
    return "wear-out"


def reliability_curves(params_by_name, times=None, points=RELIABILITY_CURVE_POINTS):
    """R(t), F(t), f(t) and h(t) of several fitted models on one time grid.

    Returns a long-form DataFrame with columns
    ``name, time, reliability, unreliability, pdf, hazard``.
    """
    if not params_by_name:
        raise DomainError("At least one parameter set is required")
    if times is None:
        t_max = max(b_life(p, 99.0) for p in params_by_name.values())
        times = np.linspace(0.0, t_max * CURVE_TIME_MARGIN, points)
    times = np.asarray(times, dtype=float)
    # time zero is outside the support of the log-time families
    eval_times = np.maximum(times, 1e-9)

    frames = []
    for name, params in params_by_name.items():
        model = get_model(params)
        with np.errstate(over="ignore", under="ignore"):
            reliability = model.survival(eval_times, params)
            frames.append(pd.DataFrame({
                "name": name,
                "time": times,
                "reliability": reliability,
                "unreliability": 1.0 - reliability,
                "pdf": model.pdf(eval_times, params),
                "hazard": model.hazard(eval_times, params),
            }))
    return pd.concat(frames, ignore_index=True)


def optimal_replacement_interval(params, preventive_cost, corrective_cost,
                                 target_reliability=0.9, steps=REPLACEMENT_GRID_STEPS):
    """Age-replacement policy minimising the long-run cost per unit time.

    C(t) = (Cp R(t) + Cu F(t)) / integral_0^t R(u) du
    """
    if preventive_cost <= 0 or corrective_cost <= 0:
        raise DomainError("Maintenance costs must be positive")
    if not 0 < target_reliability < 1:
        raise DomainError("Target reliability must lie in (0, 1)")
    model = get_model(params)

    horizon = b_life(params, REPLACEMENT_HORIZON_QUANTILE * 100.0)
    grid = np.linspace(0.0, horizon, steps + 1)
    reliability = np.ones_like(grid)
    reliability[1:] = model.survival(grid[1:], params)
    area = cumulative_trapezoid(reliability, grid, initial=0.0)

    intervals = grid[1:]
    rel = reliability[1:]
    rates = (preventive_cost * rel + corrective_cost * (1.0 - rel)) / area[1:]
    best = int(np.argmin(rates))
    # run-to-failure costs Cu per mean life
    run_to_failure = corrective_cost / mttf(params)
    recommended = best < len(intervals) - 1 and rates[best] < run_to_failure

    b10 = b_life(params, 10.0)
    target_time = b_life(params, (1.0 - target_reliability) * 100.0)
    logger.debug("Optimal replacement at %.2f (cost rate %.4g)", intervals[best], rates[best])

    return MaintenancePlan(
        parameters=params,
        preventive_cost=float(preventive_cost),
        corrective_cost=float(corrective_cost),
        intervals=intervals,
        cost_rates=rates,
        optimal_interval=float(intervals[best]),
        optimal_cost_rate=float(rates[best]),
        optimal_reliability=float(rel[best]),
        replacement_recommended=bool(recommended),
        strategies={
            "conservative": 0.7 * b10,
            "balanced": float(intervals[best]),
            "aggressive": target_time,
        },
    )
