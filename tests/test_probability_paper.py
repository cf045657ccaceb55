import matplotlib.pyplot as plt
import pytest

from competing_modes import analyze_competing_modes
from distributions import WeibullParameters
from fisher_bounds import fisher_bounds, fisher_ellipse
from life_metrics import optimal_replacement_interval, reliability_curves
from mle import fit_mle
from monte_carlo import bootstrap_parameters, monte_carlo_bands, simulate_lifetimes
from plotting_positions import rank_regression
from probability_paper import (
    figure_to_png_bytes, plot_bootstrap_histograms, plot_contour, plot_cost_rate,
    plot_lifetime_histogram, plot_probability_paper, plot_reliability_curves,
    plot_system_reliability,
)

PNG_SIGNATURE = b"\x89PNG"


@pytest.fixture(autouse=True)
def close_figures():
    yield
    plt.close("all")


def test_probability_paper_with_bounds_and_band(weibull_dataset):
    fit = fit_mle(weibull_dataset, "Weibull")
    bounds = fisher_bounds(weibull_dataset, "Weibull", 90, fit=fit)
    band = monte_carlo_bands(fit.parameters, 20, 50, seed=1)
    fig = plot_probability_paper(fit, bounds, band)
    ax = fig.axes[0]
    assert "Weibull" in ax.get_title()
    assert len(ax.get_legend().get_texts()) == 4
    assert figure_to_png_bytes(fig).getvalue().startswith(PNG_SIGNATURE)


def test_probability_paper_on_linear_time_axis(weibull_dataset):
    fig = plot_probability_paper(rank_regression(weibull_dataset, "Normal"))
    assert fig.axes[0].get_xlabel() == "Lifetime"


def test_contour_plot(weibull_dataset):
    fig = plot_contour(fisher_ellipse(weibull_dataset, "Weibull", 90))
    assert fig.axes[0].get_xlabel() == "beta"


def test_one_parameter_contour_plot(weibull_dataset):
    fig = plot_contour(fisher_ellipse(weibull_dataset, "Exponential", 90))
    assert fig.axes[0].get_xlabel() == "lam"


def test_system_reliability_plot():
    result = analyze_competing_modes(
        {"a": [300, 500, 700, 900, 1100], "b": [400, 650, 800, 1200, 1500]},
        horizon=1500.0, method="RRY",
    )
    fig = plot_system_reliability(result)
    assert len(fig.axes[0].lines) == 4


def test_reliability_curve_plot():
    frame = reliability_curves({"w": WeibullParameters(2.0, 1000.0)})
    fig = plot_reliability_curves(frame, "hazard")
    assert fig.axes[0].get_ylabel() == "Hazard"


def test_cost_rate_plot():
    plan = optimal_replacement_interval(WeibullParameters(3.0, 1000.0), 100.0, 1000.0)
    assert figure_to_png_bytes(plot_cost_rate(plan)).getvalue().startswith(PNG_SIGNATURE)


def test_lifetime_histogram():
    sim = simulate_lifetimes(WeibullParameters(2.0, 1000.0), n_simulations=2000, seed=2)
    fig = plot_lifetime_histogram(sim)
    assert len(fig.axes[0].texts) == len(sim.b_lives)


def test_bootstrap_histograms(weibull_dataset):
    boot = bootstrap_parameters(weibull_dataset, n_bootstrap=20, seed=5, method="RRY")
    assert len(plot_bootstrap_histograms(boot)) == 2
