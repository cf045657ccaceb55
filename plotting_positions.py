"""
Plotting positions and rank regression.

Turns an ordered failure/suspension dataset into median-rank probability
estimates (adjusted for suspensions) and fits a straight line to them on
the family's probability paper.
"""

import logging
from dataclasses import dataclass

import numpy as np
import statsmodels.api as sm
from scipy.stats import beta as beta_dist

from constants import (
    BENARD_DENOMINATOR_OFFSET, BENARD_NUMERATOR_OFFSET, DEFAULT_DISTRIBUTION,
    FITTED_LINE_POINTS, RANK_METHODS, RANK_TABLE_PERCENTILES,
)
from data_model import Curve, FitResult, PlotPoint
from distributions import get_model
from errors import DomainError, IncompatibleInputError, InsufficientDataError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class RankTable:
    """Plotting-position table: rows of [order, lower, median, upper]."""
    sample_size: int
    percentiles: tuple
    data: np.ndarray

    def median_at(self, order):
        return float(np.interp(order, self.data[:, 0], self.data[:, 2]))


def rank_table(sample_size, percentiles=RANK_TABLE_PERCENTILES):
    """Build a rank table from the Beta(i, n - i + 1) order-statistic law."""
    n = int(sample_size)
    if n < 1:
        raise DomainError("Rank table sample size must be at least 1")
    order = np.arange(1, n + 1, dtype=float)
    rows = [order]
    for pct in percentiles:
        rows.append(beta_dist.ppf(pct / 100.0, order, n - order + 1))
    data = np.column_stack(rows)
    data.setflags(write=False)
    return RankTable(n, tuple(percentiles), data)


def median_rank(order, sample_size, method="benard"):
    if method == "benard":
        return (order - BENARD_NUMERATOR_OFFSET) / (sample_size + BENARD_DENOMINATOR_OFFSET)
    if method == "exact":
        return beta_dist.ppf(0.5, order, sample_size - order + 1)
    raise DomainError(f"Unknown rank method {method!r}; expected one of {RANK_METHODS}")


def adjusted_ranks(dataset):
    """Mean order numbers of the failures (Johnson's adjustment).

    Returns a list of (observation, order number). Suspensions receive no
    rank of their own; they enlarge the increment of later failures.
    """
    n = dataset.n
    previous = 0.0
    ranks = []
    for i, obs in enumerate(dataset.observations, start=1):
        if not obs.is_failure:
            continue
        reverse_rank = n - i + 1
        previous = previous + (n + 1 - previous) / (1 + reverse_rank)
        ranks.append((obs, previous))
    return ranks


def plot_points(dataset, distribution=DEFAULT_DISTRIBUTION, method="benard", table=None):
    model = get_model(distribution)
    if table is not None and table.sample_size != dataset.n:
        raise IncompatibleInputError(
            f"Rank table is for n={table.sample_size} but the dataset has {dataset.n} observations"
        )
    points = []
    for obs, order in adjusted_ranks(dataset):
        if table is not None:
            prob = table.median_at(order)
        else:
            prob = float(median_rank(order, dataset.n, method))
        x = float(model.transform_x(obs.time))
        y = float(model.transform_y(prob))
        points.append(PlotPoint(obs.time, prob, x, y))
    return tuple(points)


def line_curve(model, params, points):
    xs = np.array([p.x for p in points])
    slope, intercept = model.line(params)
    grid = np.linspace(xs.min(), xs.max(), FITTED_LINE_POINTS)
    return Curve(grid, intercept + slope * grid)


def goodness_of_fit(model, params, points):
    """R^2 of the plotted points about the line of ``params``, clipped to [0, 1]."""
    xs = np.array([p.x for p in points])
    ys = np.array([p.y for p in points])
    slope, intercept = model.line(params)
    ss_res = float(np.sum((ys - (intercept + slope * xs)) ** 2))
    ss_tot = float(np.sum((ys - ys.mean()) ** 2))
    if ss_tot == 0:
        return 1.0 if ss_res == 0 else 0.0
    return float(np.clip(1.0 - ss_res / ss_tot, 0.0, 1.0))


def rank_regression(dataset, distribution=DEFAULT_DISTRIBUTION, method="benard", table=None):
    """Least-squares fit of y on x over the median-rank plot points."""
    model = get_model(distribution)
    if dataset.n_failures < 2:
        raise InsufficientDataError(
            f"At least 2 failures are required, got {dataset.n_failures}"
        )
    points = plot_points(dataset, model, method, table)
    xs = np.array([p.x for p in points])
    ys = np.array([p.y for p in points])
    if np.ptp(xs) == 0:
        raise InsufficientDataError("Failure times must not all be identical")

    if model.n_params == 1:
        # exponential paper: line through the origin
        res = sm.OLS(ys, xs).fit()
        slope, intercept = float(res.params[0]), 0.0
    else:
        res = sm.OLS(ys, sm.add_constant(xs, has_constant="add")).fit()
        intercept, slope = float(res.params[0]), float(res.params[1])
    params = model.from_line(slope, intercept)

    residual_variance = float(res.ssr / res.df_resid) if res.df_resid > 0 else 0.0
    r_squared = float(np.clip(res.rsquared, 0.0, 1.0)) if np.isfinite(res.rsquared) else 1.0
    logger.debug("%s rank regression: %s (R^2=%.4f)", model.name, params, r_squared)

    return FitResult(
        parameters=params,
        plot_points=points,
        fitted_line=line_curve(model, params, points),
        r_squared=r_squared,
        method="RRY",
        residual_variance=residual_variance,
    )
