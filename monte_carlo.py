"""
Monte Carlo and bootstrap uncertainty studies.

Every routine takes an explicit seed and builds its own
``numpy.random.Generator``; nothing touches global random state, so
independent runs can be executed in parallel and reproduced exactly.
"""

import logging

import numpy as np

from constants import (
    DEFAULT_BOOTSTRAP_ITERATIONS, DEFAULT_CONFIDENCE_LEVEL, DEFAULT_DISTRIBUTION,
    DEFAULT_SIMULATIONS, CURVE_POINTS, HISTOGRAM_BINS, LIFETIME_PERCENTILES,
    MC_MAX_REDRAWS, MC_MIN_SURVIVING_FRACTION, MC_PERCENTILES, MC_SAMPLE_SIZE_RANGE,
    MC_TRIALS_RANGE,
)
from data_model import (
    BootstrapResult, Curve, FailureTriple, LifeDataSet, LifetimeSimulation,
    MonteCarloResult,
)
from distributions import DistributionParameters, get_model
from errors import DomainError, NonConvergentFitError, ReliabilityError
from fisher_bounds import validate_confidence
from mle import fit_distribution
from plotting_positions import rank_regression

logger = logging.getLogger(__name__)


def _check_range(name, value, bounds):
    lo, hi = bounds
    if int(value) != value or not lo <= value <= hi:
        raise DomainError(f"{name} must be an integer in [{lo}, {hi}], got {value!r}")
    return int(value)


def draw_positive(model, params, size, rng):
    """Inverse-transform draws restricted to positive times."""
    kept = np.empty(0)
    for _ in range(MC_MAX_REDRAWS):
        draws = model.sample(params, size, rng)
        kept = np.concatenate([kept, draws[draws > 0]])
        if kept.size >= size:
            return kept[:size]
    raise DomainError(f"{model.name} reference puts too little probability on positive times")


def reference_grid(model, params, points=CURVE_POINTS):
    lo, hi = model.quantile(np.array([0.01, 0.99]), params)
    if lo <= 0:
        lo = hi * 1e-3
    return np.geomspace(lo, hi, points)


def monte_carlo_bands(reference, sample_size, trials, seed=None,
                      distribution=DEFAULT_DISTRIBUTION, percentiles=MC_PERCENTILES,
                      times=None, rank_method="benard"):
    """Percentile bands of refitted curves around a reference distribution.

    ``reference`` is either a parameter object or a ``LifeDataSet``, which is
    fitted by rank regression first.
    """
    n = _check_range("Sample size", sample_size, MC_SAMPLE_SIZE_RANGE)
    k = _check_range("Trial count", trials, MC_TRIALS_RANGE)
    p_lo, p_hi = percentiles
    if not 0 <= p_lo < p_hi <= 100:
        raise DomainError(f"Invalid percentile pair {percentiles!r}")

    if isinstance(reference, LifeDataSet):
        reference = rank_regression(reference, distribution, rank_method).parameters
    if not isinstance(reference, DistributionParameters):
        raise DomainError("Reference must be distribution parameters or a LifeDataSet")
    model = get_model(reference)

    rng = np.random.default_rng(seed)
    times = reference_grid(model, reference) if times is None else np.asarray(times, dtype=float)
    x = model.transform_x(times)

    curves = []
    samples = {name: [] for name in model.param_names}
    dropped = 0
    for _ in range(k):
        draws = draw_positive(model, reference, n, rng)
        try:
            fit = rank_regression(LifeDataSet.from_times(draws), model, rank_method)
        except ReliabilityError as e:
            dropped += 1
            logger.debug("Monte Carlo trial dropped: %s", e)
            continue
        slope, intercept = model.line(fit.parameters)
        curves.append(intercept + slope * x)
        for name, value in fit.parameters.as_dict().items():
            samples[name].append(value)

    if len(curves) < MC_MIN_SURVIVING_FRACTION * k:
        raise NonConvergentFitError(f"Only {len(curves)} of {k} Monte Carlo refits succeeded")

    curves = np.array(curves)
    lower_y = np.percentile(curves, p_lo, axis=0)
    upper_y = np.percentile(curves, p_hi, axis=0)
    eps = np.finfo(float).eps
    mean_p = np.clip(model.inverse_y(curves).mean(axis=0), eps, 1.0 - eps)
    logger.debug("Monte Carlo: %d trials of n=%d, %d dropped", k, n, dropped)

    return MonteCarloResult(
        reference=reference,
        sample_size=n,
        trials=k,
        seed=seed,
        times=times,
        percentiles=(float(p_lo), float(p_hi)),
        reference_curve=Curve(x, model.y_at(times, reference)),
        lower=Curve(x, lower_y),
        upper=Curve(x, upper_y),
        mean=Curve(x, model.transform_y(mean_p)),
        lower_probability=model.inverse_y(lower_y),
        upper_probability=model.inverse_y(upper_y),
        mean_probability=mean_p,
        parameter_samples={name: np.array(v) for name, v in samples.items()},
        dropped_trials=dropped,
    )


def bootstrap_parameters(dataset, distribution=DEFAULT_DISTRIBUTION,
                         n_bootstrap=DEFAULT_BOOTSTRAP_ITERATIONS,
                         confidence_level=DEFAULT_CONFIDENCE_LEVEL, seed=None,
                         times=(), method="MLE"):
    """Nonparametric bootstrap: resample observations with replacement and refit."""
    c = validate_confidence(confidence_level)
    if int(n_bootstrap) != n_bootstrap or n_bootstrap < 2:
        raise DomainError("n_bootstrap must be an integer of at least 2")
    model = get_model(distribution)
    rng = np.random.default_rng(seed)
    observations = dataset.observations
    times = np.atleast_1d(np.asarray(times, dtype=float))

    samples = {name: [] for name in model.param_names}
    reliabilities = []
    dropped = 0
    for _ in range(int(n_bootstrap)):
        idx = rng.integers(0, len(observations), size=len(observations))
        resample = LifeDataSet(tuple(observations[i] for i in idx))
        try:
            fit = fit_distribution(resample, model, method)
        except ReliabilityError:
            dropped += 1
            continue
        for name, value in fit.parameters.as_dict().items():
            samples[name].append(value)
        if times.size:
            reliabilities.append(model.survival(times, fit.parameters))

    kept = len(samples[model.param_names[0]])
    if kept < MC_MIN_SURVIVING_FRACTION * n_bootstrap:
        raise NonConvergentFitError(f"Only {kept} of {n_bootstrap} bootstrap refits succeeded")

    tail = (100.0 - c) / 2.0
    arrays = {name: np.array(v) for name, v in samples.items()}
    intervals = {name: tuple(float(q) for q in np.percentile(v, [tail, 100.0 - tail]))
                 for name, v in arrays.items()}
    means = {name: float(np.mean(v)) for name, v in arrays.items()}

    reliability_at = {}
    if times.size:
        rel = np.array(reliabilities)
        for j, t in enumerate(times):
            lo, med, hi = np.percentile(rel[:, j], [tail, 50.0, 100.0 - tail])
            reliability_at[float(t)] = FailureTriple(float(lo), float(med), float(hi))

    return BootstrapResult(
        distribution=model.name,
        method=str(method).upper(),
        n_bootstrap=int(n_bootstrap),
        confidence_level=c,
        parameter_samples=arrays,
        parameter_means=means,
        parameter_intervals=intervals,
        reliability_at=reliability_at,
        dropped=dropped,
    )


def simulate_lifetimes(params, n_simulations=DEFAULT_SIMULATIONS, seed=None, unit_cost=0.0):
    """Draw failure times and summarise B-lives, MTTF and corrective cost."""
    if int(n_simulations) != n_simulations or n_simulations < 1:
        raise DomainError("n_simulations must be a positive integer")
    if unit_cost < 0:
        raise DomainError("Unit cost must be non-negative")
    model = get_model(params)
    rng = np.random.default_rng(seed)
    simulated = draw_positive(model, params, int(n_simulations), rng)

    values = np.percentile(simulated, LIFETIME_PERCENTILES)
    counts, edges = np.histogram(simulated, bins=HISTOGRAM_BINS)
    return LifetimeSimulation(
        parameters=params,
        samples=simulated,
        b_lives={int(p): float(v) for p, v in zip(LIFETIME_PERCENTILES, values)},
        mttf=float(np.mean(simulated)),
        histogram_counts=counts,
        histogram_edges=edges,
        total_cost=float(n_simulations) * float(unit_cost),
    )
