import math

import numpy as np
import pytest

from distributions import ExponentialParameters, LognormalParameters, WeibullParameters
from errors import DomainError
from life_metrics import b_life, life_phase, mttf, optimal_replacement_interval, reliability_curves


def test_b10_life_closed_form():
    params = WeibullParameters(2.0, 1000.0)
    assert b_life(params, 10) == pytest.approx(1000.0 * (-math.log(0.9)) ** 0.5)


def test_b_life_rejects_bad_percentage():
    with pytest.raises(DomainError):
        b_life(WeibullParameters(2.0, 1000.0), 0)


def test_mttf():
    assert mttf(WeibullParameters(2.0, 1000.0)) == pytest.approx(1000.0 * math.gamma(1.5))
    assert mttf(ExponentialParameters(0.004)) == pytest.approx(250.0)


@pytest.mark.parametrize("beta, phase", [
    (0.5, "infant mortality"),
    (0.95, "useful life"),
    (1.0, "useful life"),
    (1.05, "useful life"),
    (1.06, "wear-out"),
    (3.0, "wear-out"),
])
def test_life_phase(beta, phase):
    assert life_phase(beta) == phase


def test_reliability_curves_frame():
    params = {"weibull": WeibullParameters(2.0, 1000.0), "lognormal": LognormalParameters(6.7, 0.5)}
    frame = reliability_curves(params)
    assert list(frame.columns) == ["name", "time", "reliability", "unreliability", "pdf", "hazard"]
    assert len(frame) == 2 * 101
    assert np.allclose(frame["reliability"] + frame["unreliability"], 1.0)
    for _, group in frame.groupby("name"):
        assert group["time"].iloc[0] == 0.0
        assert group["reliability"].iloc[0] == pytest.approx(1.0)
        assert np.all(np.diff(group["reliability"].to_numpy()) <= 0)


def test_reliability_curves_on_given_times():
    params = WeibullParameters(1.0, 500.0)
    frame = reliability_curves({"w": params}, times=[100.0, 200.0])
    assert frame["reliability"].tolist() == pytest.approx([math.exp(-0.2), math.exp(-0.4)])
    assert frame["hazard"].tolist() == pytest.approx([1 / 500.0, 1 / 500.0])


def test_reliability_curves_need_a_model():
    with pytest.raises(DomainError):
        reliability_curves({})


def test_wear_out_replacement_pays_off():
    plan = optimal_replacement_interval(WeibullParameters(3.0, 1000.0), 100.0, 1000.0)
    assert plan.replacement_recommended
    assert 0.0 < plan.optimal_interval < 1000.0
    assert plan.optimal_cost_rate == pytest.approx(plan.cost_rates.min())
    assert plan.optimal_cost_rate < 1000.0 / mttf(WeibullParameters(3.0, 1000.0))
    assert 0.0 < plan.optimal_reliability < 1.0
    assert set(plan.strategies) == {"conservative", "balanced", "aggressive"}
    assert plan.strategies["balanced"] == plan.optimal_interval
    assert plan.strategies["conservative"] == pytest.approx(0.7 * b_life(WeibullParameters(3.0, 1000.0), 10))


def test_constant_hazard_replacement_does_not_pay_off():
    plan = optimal_replacement_interval(ExponentialParameters(0.001), 100.0, 1000.0)
    assert not plan.replacement_recommended
    assert plan.optimal_interval == plan.intervals[-1]


def test_replacement_rejects_bad_costs():
    with pytest.raises(DomainError):
        optimal_replacement_interval(WeibullParameters(3.0, 1000.0), 0.0, 1000.0)
    with pytest.raises(DomainError):
        optimal_replacement_interval(WeibullParameters(3.0, 1000.0), 100.0, 1000.0, target_reliability=1.0)
