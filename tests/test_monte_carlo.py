import math

import numpy as np
import pytest

from conftest import weibull_times
from data_model import LifeDataSet
from distributions import ExponentialParameters, WeibullParameters, get_model
from errors import DomainError
from monte_carlo import bootstrap_parameters, monte_carlo_bands, simulate_lifetimes
from plotting_positions import rank_regression


def test_same_seed_gives_identical_bands(true_weibull):
    a = monte_carlo_bands(true_weibull, 10, 50, seed=42)
    b = monte_carlo_bands(true_weibull, 10, 50, seed=42)
    assert np.array_equal(a.lower.y, b.lower.y)
    assert np.array_equal(a.upper.y, b.upper.y)
    c = monte_carlo_bands(true_weibull, 10, 50, seed=43)
    assert not np.array_equal(a.lower.y, c.lower.y)


def test_band_surrounds_the_reference_curve(true_weibull):
    result = monte_carlo_bands(true_weibull, 20, 200, seed=1)
    assert np.all(result.lower.y <= result.upper.y)
    inside = (result.lower.y <= result.reference_curve.y) & (result.reference_curve.y <= result.upper.y)
    assert inside.mean() > 0.9
    assert np.all(np.diff(result.lower_probability) >= 0)
    assert result.percentiles == (5.0, 95.0)
    assert len(result.parameter_samples["beta"]) == result.trials - result.dropped_trials


@pytest.mark.parametrize("sample_size, trials", [(1, 100), (101, 100), (10, 5), (10, 2001), (10.5, 100)])
def test_out_of_range_inputs_raise(true_weibull, sample_size, trials):
    with pytest.raises(DomainError):
        monte_carlo_bands(true_weibull, sample_size, trials, seed=0)


def test_dataset_reference_is_fitted_first(weibull_dataset):
    result = monte_carlo_bands(weibull_dataset, 10, 20, seed=5)
    assert isinstance(result.reference, WeibullParameters)
    expected = rank_regression(weibull_dataset, "Weibull").parameters
    assert result.reference.beta == pytest.approx(expected.beta)


def test_exponential_reference():
    result = monte_carlo_bands(ExponentialParameters(0.001), 10, 50, seed=9)
    assert np.all(result.lower.y <= result.upper.y)


def test_band_covers_true_curve_about_ninety_percent():
    true = WeibullParameters(2.0, 1000.0)
    model = get_model(true)
    t = np.array([800.0])
    y_true = model.y_at(t, true)[0]
    rng = np.random.default_rng(2024)
    reps = 30
    hits = 0
    for rep in range(reps):
        data = LifeDataSet.from_times(1000.0 * rng.weibull(2.0, 20))
        fitted = rank_regression(data, "Weibull").parameters
        band = monte_carlo_bands(fitted, 20, 100, seed=rep, times=t)
        hits += band.lower.y[0] <= y_true <= band.upper.y[0]
    assert 0.7 <= hits / reps <= 1.0


def test_bootstrap_intervals(weibull_dataset):
    result = bootstrap_parameters(weibull_dataset, n_bootstrap=60, confidence_level=90,
                                  seed=3, times=[500.0, 1000.0])
    for name in ("beta", "eta"):
        lo, hi = result.parameter_intervals[name]
        assert lo < result.parameter_means[name] < hi
        assert len(result.parameter_samples[name]) == 60 - result.dropped
    for triple in result.reliability_at.values():
        assert triple.lower <= triple.median <= triple.upper
    assert result.reliability_at[500.0].median > result.reliability_at[1000.0].median


def test_bootstrap_is_reproducible(weibull_dataset):
    a = bootstrap_parameters(weibull_dataset, n_bootstrap=20, seed=8, method="RRY")
    b = bootstrap_parameters(weibull_dataset, n_bootstrap=20, seed=8, method="RRY")
    assert np.array_equal(a.parameter_samples["beta"], b.parameter_samples["beta"])


def test_bootstrap_rejects_bad_inputs(weibull_dataset):
    with pytest.raises(DomainError):
        bootstrap_parameters(weibull_dataset, n_bootstrap=1)
    with pytest.raises(DomainError):
        bootstrap_parameters(weibull_dataset, confidence_level=100)


def test_simulate_lifetimes(true_weibull):
    result = simulate_lifetimes(true_weibull, n_simulations=20000, seed=4, unit_cost=25.0)
    b = result.b_lives
    assert list(b) == [10, 50, 90, 95, 99]
    assert b[10] < b[50] < b[90] < b[95] < b[99]
    assert b[10] == pytest.approx(1000.0 * (-math.log(0.9)) ** 0.5, rel=0.05)
    assert result.mttf == pytest.approx(1000.0 * math.gamma(1.5), rel=0.03)
    assert result.histogram_counts.sum() == 20000
    assert len(result.histogram_edges) == 21
    assert result.total_cost == 500000.0


def test_simulate_lifetimes_rejects_bad_inputs(true_weibull):
    with pytest.raises(DomainError):
        simulate_lifetimes(true_weibull, n_simulations=0)
    with pytest.raises(DomainError):
        simulate_lifetimes(true_weibull, unit_cost=-1.0)


def test_weibull_sample_helper_is_seeded():
    assert np.array_equal(weibull_times(5, seed=1), weibull_times(5, seed=1))
