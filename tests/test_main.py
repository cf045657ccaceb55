import logging
import os

import numpy as np
import pytest

from conftest import weibull_times
from data_model import LifeDataSet
from distributions import WeibullParameters
from errors import DomainError, IncompatibleInputError, InsufficientDataError, NonConvergentFitError
from main import ReliabilityAnalysisController, main

FIVE_POINTS = [(500, "Failure"), (900, "Failure"), (1200, "Failure"), (1600, "Failure"), (1800, "Failure")]


@pytest.fixture
def data_file(tmp_path):
    path = tmp_path / "cycles.csv"
    path.write_text("\n".join(f"{t:.3f}" for t in weibull_times(25, seed=21)))
    return str(path)


def test_five_point_rank_regression_through_controller():
    result = ReliabilityAnalysisController().fit(FIVE_POINTS, method="RRY")
    assert result.ok
    fit = result.unwrap()
    assert fit.parameters.beta > 0 and fit.parameters.eta > 0
    assert 0.0 <= fit.r_squared <= 1.0


@pytest.mark.parametrize("level", [0, 100])
@pytest.mark.parametrize("method", ["fisher", "lr"])
def test_degenerate_confidence_is_returned_as_domain_error(level, method, caplog):
    controller = ReliabilityAnalysisController()
    with caplog.at_level(logging.WARNING, logger="main"):
        result = controller.confidence_bounds(FIVE_POINTS, confidence_level=level, method=method)
    assert not result.ok
    assert isinstance(result.error, DomainError)
    assert result.value is None
    assert "DomainError" in caplog.text
    with pytest.raises(DomainError):
        result.unwrap()


def test_missing_dataset_is_insufficient_data():
    result = ReliabilityAnalysisController().fit()
    assert isinstance(result.error, InsufficientDataError)


def test_typed_errors_pass_through():
    controller = ReliabilityAnalysisController()
    result = controller.spares_forecast([], 500.0, data=FIVE_POINTS)
    assert isinstance(result.error, IncompatibleInputError)
    result = controller.competing_modes({"a": [100, 200]}, 500.0)
    assert isinstance(result.error, IncompatibleInputError)


def test_foreign_exceptions_are_mapped():
    controller = ReliabilityAnalysisController()

    def singular():
        raise np.linalg.LinAlgError("Singular matrix")

    def bad_value():
        raise ValueError("bad")

    assert isinstance(controller._run("singular", singular).error, NonConvergentFitError)
    assert isinstance(controller._run("bad_value", bad_value).error, DomainError)


def test_unreadable_file_is_returned(tmp_path):
    result = ReliabilityAnalysisController().load_dataset(str(tmp_path / "missing.csv"))
    assert isinstance(result.error, IncompatibleInputError)


def test_bare_times_are_failures():
    result = ReliabilityAnalysisController().fit([500, 900, 1200, 1600, 1800], method="RRY")
    assert result.ok
    assert result.value.plot_points[-1].time == 1800.0


def test_malformed_inputs_are_returned():
    controller = ReliabilityAnalysisController()
    assert isinstance(controller.fit(["abc", "def"]).error, DomainError)
    assert isinstance(controller.fit(42).error, DomainError)
    assert isinstance(controller.fit([(500, "F", 3)]).error, DomainError)
    modes = controller.competing_modes([[100, 200], [300, 400]], 500.0)
    assert isinstance(modes.error, IncompatibleInputError)


def test_life_metrics_through_controller():
    controller = ReliabilityAnalysisController()
    metrics = controller.life_metrics(WeibullParameters(2.0, 1000.0)).unwrap()
    assert metrics["life_phase"] == "wear-out"
    assert metrics["b_life"] < metrics["mttf"]
    bad = controller.life_metrics(WeibullParameters(2.0, 1000.0), percent=150)
    assert isinstance(bad.error, DomainError)


def test_loaded_dataset_is_used_by_later_operations(data_file):
    controller = ReliabilityAnalysisController()
    loaded = controller.load_dataset(data_file)
    assert loaded.ok and loaded.value.n == 25
    fit = controller.fit().unwrap()
    assert isinstance(fit.parameters, WeibullParameters)
    plan = controller.maintenance_plan(100.0, 1000.0).unwrap()
    assert plan.parameters == fit.parameters
    assert controller.compare_distributions().ok
    assert controller.contour(method="fisher").ok
    assert controller.simulate(n_simulations=500, seed=1).ok
    assert controller.bootstrap(n_bootstrap=20, seed=1).ok


def test_monte_carlo_through_controller():
    controller = ReliabilityAnalysisController(LifeDataSet.from_records(FIVE_POINTS))
    result = controller.monte_carlo(sample_size=5, trials=20, seed=3)
    assert result.ok
    assert result.value.trials == 20
    bad = controller.monte_carlo(sample_size=5, trials=1, seed=3)
    assert isinstance(bad.error, DomainError)


def test_load_failure_is_returned(tmp_path):
    result = ReliabilityAnalysisController().load_dataset(str(tmp_path / "life.json"))
    assert isinstance(result.error, IncompatibleInputError)


def test_cli_prints_sections(data_file, capsys):
    code = main([data_file, "--query-time", "800", "--horizon", "500",
                 "--population", "0:10", "300:5", "--unit-cost", "40",
                 "--preventive-cost", "100", "--corrective-cost", "1000", "--seed", "1"])
    out = capsys.readouterr().out
    assert code == 0
    assert "=== [1] Distribution Comparison" in out
    assert "=== [2] Weibull Maximum Likelihood Fit" in out
    assert "R(800)" in out
    assert "Recommended stock" in out
    assert "Maintenance Strategy Recommendations" in out


def test_cli_writes_figures(data_file, tmp_path, capsys):
    plots = tmp_path / "plots"
    code = main([data_file, "--plots", str(plots), "--seed", "2", "--mc-trials", "20"])
    assert code == 0
    written = os.listdir(plots)
    assert "probability_paper.png" in written
    assert "contour.png" in written
    assert "lifetimes.png" in written


def test_cli_reports_unreadable_file(tmp_path, capsys):
    code = main([str(tmp_path / "missing.json")])
    assert code == 1
    assert "IncompatibleInputError" in capsys.readouterr().out


def test_cli_caps_monte_carlo_sample_size(tmp_path, capsys):
    path = tmp_path / "fleet.csv"
    path.write_text("\n".join(f"{t:.3f}" for t in weibull_times(150, seed=4)))
    code = main([str(path), "--mc-trials", "10", "--seed", "3"])
    out = capsys.readouterr().out
    assert code == 0
    assert "10 trials of n=100" in out
