"""
Competing failure mode analysis.

Each mode is fitted on its own failures with every other mode's failures
treated as suspensions; the system survives only if every mode does, so
system reliability is the product of the per-mode survival functions.
"""

import logging
from collections.abc import Mapping

import numpy as np

from constants import CURVE_POINTS, DEFAULT_DISTRIBUTION
from data_model import (
    CompetingMode, CompetingModesResult, Event, LifeDataSet, ModeFit, ModeRanking,
    Observation, SystemReliabilityCurve,
)
from distributions import get_model
from errors import DomainError, IncompatibleInputError, InsufficientDataError
from mle import fit_distribution

logger = logging.getLogger(__name__)


def build_competing_modes(mode_times, suspensions=()):
    """One dataset per mode, other modes' failures recorded as suspensions."""
    if not isinstance(mode_times, Mapping):
        raise IncompatibleInputError("Failure modes must map each mode name to its failure times")
    if len(mode_times) < 2:
        raise IncompatibleInputError("Competing mode analysis needs at least two modes")
    for name, times in mode_times.items():
        if len(times) == 0:
            raise InsufficientDataError(f"Failure mode {name!r} has no failure times")

    shared = [Observation(t, Event.SUSPENSION) for t in suspensions]
    modes = []
    for name, times in mode_times.items():
        obs = [Observation(t, Event.FAILURE) for t in times]
        for other, other_times in mode_times.items():
            if other != name:
                obs += [Observation(t, Event.SUSPENSION) for t in other_times]
        modes.append(CompetingMode(str(name), LifeDataSet(tuple(obs + shared))))
    return tuple(modes)


def system_reliability(mode_params, times):
    """Product of per-mode survivals, accumulated in log space."""
    times = np.asarray(times, dtype=float)
    survivals = {}
    log_total = np.zeros_like(times)
    for name, params in mode_params.items():
        log_s = get_model(params).log_survival(times, params)
        survivals[name] = np.exp(log_s)
        log_total = log_total + log_s
    return SystemReliabilityCurve(times, np.exp(log_total), survivals)


def rank_modes(mode_params, query_time):
    probs = sorted(
        ((name, float(get_model(p).cdf(np.array([query_time]), p)[0])) for name, p in mode_params.items()),
        key=lambda item: item[1],
        reverse=True,
    )
    return tuple(ModeRanking(name, prob, critical=(i == 0)) for i, (name, prob) in enumerate(probs))


def analyze_competing_modes(mode_times, horizon, distribution=DEFAULT_DISTRIBUTION,
                            method="MLE", query_time=None, suspensions=(),
                            points=CURVE_POINTS):
    horizon = float(horizon)
    if not np.isfinite(horizon) or horizon <= 0:
        raise DomainError(f"Analysis horizon must be positive, got {horizon!r}")
    query_time = horizon if query_time is None else float(query_time)
    if query_time <= 0:
        raise DomainError("Query time must be positive")

    modes = build_competing_modes(mode_times, suspensions)
    fits = []
    for mode in modes:
        try:
            fit = fit_distribution(mode.dataset, distribution, method)
        except InsufficientDataError as e:
            raise InsufficientDataError(f"Failure mode {mode.name!r}: {e}") from e
        logger.debug("Mode %s fitted: %s", mode.name, fit.parameters)
        fits.append(ModeFit(mode, fit))

    mode_params = {mf.mode.name: mf.fit.parameters for mf in fits}
    times = np.linspace(horizon / points, horizon, points)
    system = system_reliability(mode_params, times)
    ranking = rank_modes(mode_params, query_time)
    at_query = system_reliability(mode_params, [query_time]).reliability[0]

    return CompetingModesResult(
        modes=tuple(fits),
        system=system,
        ranking=ranking,
        query_time=query_time,
        system_failure_probability=float(1.0 - at_query),
    )
