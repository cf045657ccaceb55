import numpy as np
import pytest
from scipy.stats import chi2

from conftest import weibull_quantile_times
from data_model import BoundMethod, LifeDataSet
from distributions import ExponentialParameters
from errors import DomainError, IncompatibleInputError
from fisher_bounds import fisher_bounds
from likelihood_ratio import (
    LikelihoodRatioEngine, likelihood_ratio_bounds, likelihood_ratio_contour,
    likelihood_ratio_parameter_bounds, lr_critical,
)
from mle import fit_mle, log_likelihood

QUERY_TIMES = np.array([300.0, 700.0, 1200.0])


def test_critical_values():
    assert lr_critical(90) == pytest.approx(chi2.ppf(0.9, 1))
    assert lr_critical(90, dof=2) == pytest.approx(chi2.ppf(0.9, 2))
    with pytest.raises(DomainError):
        lr_critical(40, sides="one-sided")
    with pytest.raises(DomainError):
        lr_critical(100)


@pytest.mark.parametrize("level", [0, 100])
def test_degenerate_confidence_raises(five_point_dataset, level):
    with pytest.raises(DomainError):
        likelihood_ratio_bounds(five_point_dataset, "Weibull", confidence_level=level)


def test_exponential_parameter_bounds_sit_on_the_critical_level(weibull_dataset):
    fit = fit_mle(weibull_dataset, "Exponential")
    lo, hi = likelihood_ratio_parameter_bounds(weibull_dataset, "Exponential", 90, fit)["lam"]
    assert lo < fit.parameters.lam < hi
    critical = chi2.ppf(0.9, 1)
    for lam in (lo, hi):
        stat = 2.0 * (fit.log_likelihood - log_likelihood(ExponentialParameters(lam), weibull_dataset))
        assert stat == pytest.approx(critical, rel=1e-5)


def test_bounds_bracket_the_estimate(weibull_dataset):
    bounds = likelihood_ratio_bounds(weibull_dataset, "Weibull", 90, times=QUERY_TIMES)
    assert bounds.method is BoundMethod.LIKELIHOOD_RATIO
    assert np.all(bounds.lower.y < bounds.estimate.y)
    assert np.all(bounds.estimate.y < bounds.upper.y)


def test_ninety_five_percent_bounds_contain_eighty_percent(weibull_dataset):
    fit = fit_mle(weibull_dataset, "Weibull")
    b80 = likelihood_ratio_bounds(weibull_dataset, "Weibull", 80, fit=fit, times=QUERY_TIMES)
    b95 = likelihood_ratio_bounds(weibull_dataset, "Weibull", 95, fit=fit, times=QUERY_TIMES)
    assert np.all(b95.lower.y < b80.lower.y)
    assert np.all(b95.upper.y > b80.upper.y)


def test_y_bound_is_on_the_profile_boundary(weibull_dataset):
    engine = LikelihoodRatioEngine(weibull_dataset, "Weibull")
    critical = lr_critical(90)
    lo, hi = engine.y_bounds(700.0, critical)
    # a line through (x0, lo) with the MLE slope cannot beat the profile maximum
    x0 = np.log(700.0)
    slope, _ = engine.model.line(engine.params)
    assert engine.statistic(engine._line_ll(slope, lo - slope * x0)) >= critical - 1e-6
    assert lo < engine.model.y_at(np.array([700.0]), engine.params)[0] < hi


def test_fisher_and_likelihood_ratio_converge_with_sample_size():
    def gap(n):
        dataset = LifeDataSet.from_times(weibull_quantile_times(n))
        fit = fit_mle(dataset, "Weibull")
        t = np.array([600.0])
        fm = fisher_bounds(dataset, "Weibull", 90, fit=fit, times=t)
        lr = likelihood_ratio_bounds(dataset, "Weibull", 90, fit=fit, times=t)
        return abs(fm.lower.y[0] - lr.lower.y[0]) + abs(fm.upper.y[0] - lr.upper.y[0])

    assert gap(400) < gap(15)


def test_point_query(weibull_dataset):
    bounds = likelihood_ratio_bounds(weibull_dataset, "Weibull", 90, times=QUERY_TIMES,
                                     query_time=900.0)
    q = bounds.point_query
    assert q.lower < q.estimate < q.upper


def test_contour_points_lie_on_the_critical_level(weibull_dataset):
    engine = LikelihoodRatioEngine(weibull_dataset, "Weibull")
    critical = lr_critical(90, dof=2)
    polygon = engine.contour_thetas(critical, points=12)
    assert np.array_equal(polygon[0], polygon[-1])
    stats = [engine.statistic(engine._theta_ll(theta)) for theta in polygon]
    assert stats == pytest.approx([critical] * len(stats), abs=1e-3)


def test_contour_extent_matches_profile_bounds(weibull_dataset):
    fit = fit_mle(weibull_dataset, "Weibull")
    contour = likelihood_ratio_contour(weibull_dataset, "Weibull", 90, dof=1, fit=fit, points=12)
    profile = likelihood_ratio_parameter_bounds(weibull_dataset, "Weibull", 90, fit)
    assert contour.per_parameter_bounds["beta"] == pytest.approx(profile["beta"], rel=1e-6)
    assert np.array_equal(contour.ellipse[0], contour.ellipse[-1])


def test_contour_is_wider_than_dof_one_region(weibull_dataset):
    fit = fit_mle(weibull_dataset, "Weibull")
    joint = likelihood_ratio_contour(weibull_dataset, "Weibull", 90, dof=2, fit=fit, points=12)
    single = likelihood_ratio_contour(weibull_dataset, "Weibull", 90, dof=1, fit=fit, points=12)
    assert joint.per_parameter_bounds["beta"][0] < single.per_parameter_bounds["beta"][0]
    assert joint.per_parameter_bounds["beta"][1] > single.per_parameter_bounds["beta"][1]


def test_contour_needs_two_parameters(weibull_dataset):
    with pytest.raises(IncompatibleInputError):
        likelihood_ratio_contour(weibull_dataset, "Exponential", 90)


FAMILIES = ["Weibull", "Lognormal", "Normal", "Exponential", "Loglogistic", "Gumbel"]
TWO_PARAMETER_FAMILIES = [f for f in FAMILIES if f != "Exponential"]
EARLY_TIMES = np.array([150.0, 300.0, 700.0])


def test_small_censored_sample_bounds(sparse_dataset):
    engine = LikelihoodRatioEngine(sparse_dataset, "Weibull")
    critical = chi2.ppf(0.9, 1)
    for t in (150.0, 300.0):
        lo, hi = engine.y_bounds(t, critical)
        y_hat = engine.model.y_at(np.array([t]), engine.params)[0]
        assert lo < y_hat < hi


def test_profile_at_the_estimate_recovers_the_maximum(sparse_dataset):
    engine = LikelihoodRatioEngine(sparse_dataset, "Weibull")
    for index in (0, 1):
        _, best = engine._profile_theta(index, engine.theta_hat[index])
        assert engine.statistic(best) == pytest.approx(0.0, abs=1e-8)


@pytest.mark.parametrize("family", FAMILIES)
@pytest.mark.parametrize("data", ["censored_dataset", "sparse_dataset"])
def test_bounds_for_every_family_on_censored_data(family, data, request):
    dataset = request.getfixturevalue(data)
    bounds = likelihood_ratio_bounds(dataset, family, 90, times=EARLY_TIMES)
    assert np.all(bounds.lower.y < bounds.estimate.y)
    assert np.all(bounds.estimate.y < bounds.upper.y)
    fit = fit_mle(dataset, family)
    for name, value in fit.parameters.as_dict().items():
        lo, hi = bounds.parameter_bounds[name]
        assert lo < value < hi


@pytest.mark.parametrize("family", TWO_PARAMETER_FAMILIES)
@pytest.mark.parametrize("data", ["censored_dataset", "sparse_dataset"])
def test_contour_for_every_family_on_censored_data(family, data, request):
    dataset = request.getfixturevalue(data)
    engine = LikelihoodRatioEngine(dataset, family)
    critical = lr_critical(90, dof=2)
    polygon = engine.contour_thetas(critical, points=12)
    assert np.array_equal(polygon[0], polygon[-1])
    stats = [engine.statistic(engine._theta_ll(theta)) for theta in polygon]
    assert stats == pytest.approx([critical] * len(stats), abs=1e-3)
