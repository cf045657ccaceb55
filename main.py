"""
main.py - Main Controller
Coordinates the analysis modules and converts their failures into
``AnalysisResult`` values. Also provides the ``lifedata`` command line.
"""

import argparse
import logging
import os
import sys

import numpy as np

from competing_modes import analyze_competing_modes
from constants import (
    APP_NAME, APP_VERSION, DEFAULT_BOOTSTRAP_ITERATIONS, DEFAULT_CONFIDENCE_LEVEL,
    DEFAULT_DISTRIBUTION, DEFAULT_SIMULATIONS, DISTRIBUTION_NAMES, MC_PERCENTILES,
    MC_SAMPLE_SIZE_RANGE,
)
from data_loader import load_life_data
from data_model import BoundMethod, LifeDataSet
from distributions import DistributionParameters, WeibullParameters
from errors import (
    AnalysisResult, DomainError, IncompatibleInputError, InsufficientDataError,
    NonConvergentFitError, ReliabilityError,
)
from fisher_bounds import fisher_bounds, fisher_ellipse
from life_metrics import b_life, life_phase, mttf, optimal_replacement_interval, reliability_curves
from likelihood_ratio import likelihood_ratio_bounds, likelihood_ratio_contour
from mle import fit_distribution, rank_distributions
from monte_carlo import bootstrap_parameters, monte_carlo_bands, simulate_lifetimes
from probability_paper import (
    figure_to_png_bytes, plot_bootstrap_histograms, plot_contour, plot_cost_rate,
    plot_lifetime_histogram, plot_probability_paper, plot_reliability_curves,
)
from spares_forecast import forecast_spares

logger = logging.getLogger(__name__)


class ReliabilityAnalysisController:
    """Main Controller - one method per analysis, each returning an AnalysisResult"""

    def __init__(self, dataset=None):
        self.dataset = dataset
        self.last_fit = None

    def _run(self, operation, func):
        try:
            return AnalysisResult(value=func())
        except ReliabilityError as e:
            error = e
        except np.linalg.LinAlgError as e:
            error = NonConvergentFitError(f"Singular matrix: {e}")
        except OSError as e:
            error = IncompatibleInputError(f"Could not read input: {e}")
        except (ValueError, ArithmeticError) as e:
            error = DomainError(str(e))
        except (TypeError, KeyError, AttributeError, IndexError) as e:
            error = DomainError(f"Malformed input: {e}")
        logger.warning("%s failed: %s: %s", operation, error.kind, error)
        return AnalysisResult(error=error)

    def _dataset(self, data):
        if data is None:
            if self.dataset is None:
                raise InsufficientDataError("No life data loaded")
            return self.dataset
        if isinstance(data, LifeDataSet):
            return data
        records = list(data)
        # bare times are all failures, as in a single-column data file
        if records and all(np.isscalar(r) for r in records):
            return LifeDataSet.from_times(records)
        return LifeDataSet.from_records(records)

    def _parameters(self, params, distribution):
        if isinstance(params, DistributionParameters):
            return params
        if (self.last_fit is not None and params is None
                and self.last_fit.distribution.lower() == str(distribution).lower()):
            return self.last_fit.parameters
        return fit_distribution(self._dataset(params), distribution, "MLE").parameters

    # -- operations -------------------------------------------------------
    def load_dataset(self, file_path):
        def run():
            self.dataset = load_life_data(file_path)
            self.last_fit = None
            return self.dataset
        return self._run("load_dataset", run)

    def fit(self, data=None, distribution=DEFAULT_DISTRIBUTION, method="MLE", rank_method="benard"):
        def run():
            self.last_fit = fit_distribution(self._dataset(data), distribution, method, rank_method)
            return self.last_fit
        return self._run("fit", run)

    def compare_distributions(self, data=None, families=DISTRIBUTION_NAMES, rank_method="benard"):
        return self._run("compare_distributions",
                         lambda: rank_distributions(self._dataset(data), families, rank_method))

    def confidence_bounds(self, data=None, distribution=DEFAULT_DISTRIBUTION,
                          confidence_level=DEFAULT_CONFIDENCE_LEVEL, method="fisher",
                          sides="two-sided", query_time=None, times=None):
        def run():
            dataset = self._dataset(data)
            if BoundMethod.parse(method) is BoundMethod.FISHER:
                return fisher_bounds(dataset, distribution, confidence_level, sides,
                                     times=times, query_time=query_time)
            return likelihood_ratio_bounds(dataset, distribution, confidence_level, sides,
                                           times=times, query_time=query_time)
        return self._run("confidence_bounds", run)

    def contour(self, data=None, distribution=DEFAULT_DISTRIBUTION,
                confidence_level=DEFAULT_CONFIDENCE_LEVEL, method="likelihoodratio"):
        def run():
            dataset = self._dataset(data)
            if BoundMethod.parse(method) is BoundMethod.FISHER:
                return fisher_ellipse(dataset, distribution, confidence_level)
            return likelihood_ratio_contour(dataset, distribution, confidence_level)
        return self._run("contour", run)

    def monte_carlo(self, reference=None, sample_size=10, trials=1000, seed=None,
                    distribution=DEFAULT_DISTRIBUTION, percentiles=MC_PERCENTILES):
        def run():
            ref = reference
            if not isinstance(ref, DistributionParameters):
                ref = self._dataset(ref)
            return monte_carlo_bands(ref, sample_size, trials, seed, distribution, percentiles)
        return self._run("monte_carlo", run)

    def bootstrap(self, data=None, distribution=DEFAULT_DISTRIBUTION,
                  n_bootstrap=DEFAULT_BOOTSTRAP_ITERATIONS,
                  confidence_level=DEFAULT_CONFIDENCE_LEVEL, seed=None, times=()):
        return self._run("bootstrap", lambda: bootstrap_parameters(
            self._dataset(data), distribution, n_bootstrap, confidence_level, seed, times))

    def simulate(self, params=None, distribution=DEFAULT_DISTRIBUTION,
                 n_simulations=DEFAULT_SIMULATIONS, seed=None, unit_cost=0.0):
        return self._run("simulate", lambda: simulate_lifetimes(
            self._parameters(params, distribution), n_simulations, seed, unit_cost))

    def competing_modes(self, mode_times, horizon, distribution=DEFAULT_DISTRIBUTION,
                        method="MLE", query_time=None, suspensions=()):
        return self._run("competing_modes", lambda: analyze_competing_modes(
            mode_times, horizon, distribution, method, query_time, suspensions))

    def spares_forecast(self, population, horizon, unit_cost=0.0, data=None,
                        confidence_level=DEFAULT_CONFIDENCE_LEVEL, bound_method="fisher",
                        distribution=DEFAULT_DISTRIBUTION):
        return self._run("spares_forecast", lambda: forecast_spares(
            self._dataset(data), population, horizon, unit_cost, confidence_level,
            bound_method, distribution))

    def maintenance_plan(self, preventive_cost, corrective_cost, params=None,
                         distribution=DEFAULT_DISTRIBUTION, target_reliability=0.9):
        return self._run("maintenance_plan", lambda: optimal_replacement_interval(
            self._parameters(params, distribution), preventive_cost, corrective_cost,
            target_reliability))

    def life_metrics(self, params=None, distribution=DEFAULT_DISTRIBUTION, percent=10.0):
        """B-life, MTTF and, for a Weibull fit, the life phase."""
        def run():
            p = self._parameters(params, distribution)
            metrics = {"b_life": b_life(p, percent), "mttf": mttf(p)}
            if isinstance(p, WeibullParameters):
                metrics["life_phase"] = life_phase(p.beta)
            return metrics
        return self._run("life_metrics", run)

    def reliability_curves(self, params_by_name, times=None):
        return self._run("reliability_curves", lambda: reliability_curves(params_by_name, times))


# =====================================================================
# Command line
# =====================================================================

def _population_item(value):
    """AGE:QTY, quantity defaulting to 1."""
    age, _, quantity = value.partition(":")
    try:
        return float(age), float(quantity or 1)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected AGE:QTY, got {value!r}")


def build_parser():
    parser = argparse.ArgumentParser(prog="lifedata", description=f"{APP_NAME} {APP_VERSION}")
    parser.add_argument("file", help="life data (.csv, .txt or .xlsx)")
    parser.add_argument("-d", "--distribution", default=DEFAULT_DISTRIBUTION, choices=DISTRIBUTION_NAMES)
    parser.add_argument("-c", "--confidence", type=float, default=DEFAULT_CONFIDENCE_LEVEL,
                        help="confidence level in percent")
    parser.add_argument("--bounds", default="fisher", choices=("fisher", "lr"))
    parser.add_argument("--query-time", type=float, help="report bounds at this time")
    parser.add_argument("--bootstrap", type=int, default=0, metavar="N",
                        help="bootstrap iterations (0 to skip)")
    parser.add_argument("--mc-trials", type=int, default=0, metavar="K",
                        help="Monte Carlo trials (0 to skip)")
    parser.add_argument("--seed", type=int)
    parser.add_argument("--horizon", type=float, help="spares forecast horizon")
    parser.add_argument("--population", nargs="+", default=[], type=_population_item, metavar="AGE:QTY")
    parser.add_argument("--unit-cost", type=float, default=0.0)
    parser.add_argument("--preventive-cost", type=float)
    parser.add_argument("--corrective-cost", type=float)
    parser.add_argument("--plots", metavar="DIR", help="write PNG figures to this directory")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def _report(result, lines):
    if not result.ok:
        lines.append(f"Error ({result.error.kind}): {result.error}")
    return result.ok


def run_cli(args, controller=None):
    """Run the analyses requested on the command line; returns (lines, figures)."""
    controller = controller or ReliabilityAnalysisController()
    plots = bool(args.plots)
    lines, figures = [], {}

    loaded = controller.load_dataset(args.file)
    if not _report(loaded, lines):
        return lines, figures
    dataset = loaded.value
    lines.append(f"Loaded {dataset.n} observations ({dataset.n_failures} failures, "
                 f"{dataset.n - dataset.n_failures} suspensions)")

    lines.append("\n=== [1] Distribution Comparison (log-likelihood) ===")
    ranking = controller.compare_distributions()
    if _report(ranking, lines):
        for i, (name, fit) in enumerate(ranking.value):
            marker = " (best fit)" if i == 0 else ""
            lines.append(f"  - {name}: logL={fit.log_likelihood:.3f}, R²={fit.r_squared:.4f}{marker}")

    lines.append(f"\n=== [2] {args.distribution} Maximum Likelihood Fit ===")
    fitted = controller.fit(distribution=args.distribution)
    if not _report(fitted, lines):
        return lines, figures
    fit = fitted.value
    params = fit.parameters
    for name, value in params.as_dict().items():
        lines.append(f"  - {name}: {value:.4f}")
    metrics = controller.life_metrics(params)
    if _report(metrics, lines):
        lines.append(f"  - B10 life: {metrics.value['b_life']:.2f}")
        lines.append(f"  - MTTF: {metrics.value['mttf']:.2f}")
        if "life_phase" in metrics.value:
            lines.append(f"  - Life phase: {metrics.value['life_phase']}")

    lines.append(f"\n=== [3] {args.confidence:g}% Confidence Bounds ({args.bounds}) ===")
    bounds = controller.confidence_bounds(distribution=args.distribution,
                                          confidence_level=args.confidence,
                                          method=args.bounds, query_time=args.query_time)
    if _report(bounds, lines):
        for name, (lo, hi) in bounds.value.parameter_bounds.items():
            lines.append(f"  - {name}: [{lo:.4f}, {hi:.4f}]")
        query = bounds.value.point_query
        if query is not None:
            lines.append(f"  - R({query.time:g}) = {query.reliability:.4f} "
                         f"[{query.reliability_lower:.4f}, {query.reliability_upper:.4f}]")
    mc = None
    if args.mc_trials:
        lines.append("\n=== [4] Monte Carlo Bands ===")
        low, high = MC_SAMPLE_SIZE_RANGE
        mc_result = controller.monte_carlo(params, sample_size=min(max(dataset.n_failures, low), high),
                                           trials=args.mc_trials, seed=args.seed)
        if _report(mc_result, lines):
            mc = mc_result.value
            lines.append(f"  - {mc.trials} trials of n={mc.sample_size}, "
                         f"{mc.dropped_trials} dropped")
    if plots:
        figures["probability_paper"] = plot_probability_paper(
            fit, bounds.value if bounds.ok else None, mc)
        curves = controller.reliability_curves({args.distribution: params})
        if curves.ok:
            figures["reliability"] = plot_reliability_curves(curves.value)

    if args.bootstrap:
        lines.append("\n=== [5] Bootstrap Parameter Estimates ===")
        boot = controller.bootstrap(distribution=args.distribution, n_bootstrap=args.bootstrap,
                                    confidence_level=args.confidence, seed=args.seed)
        if _report(boot, lines):
            for name, (lo, hi) in boot.value.parameter_intervals.items():
                lines.append(f"  - {name}: mean={boot.value.parameter_means[name]:.4f}, "
                             f"{args.confidence:g}% CI=[{lo:.4f}, {hi:.4f}]")
            if plots:
                for i, fig in enumerate(plot_bootstrap_histograms(boot.value)):
                    figures[f"bootstrap_{i}"] = fig

    if plots and args.distribution != "Exponential":
        region = controller.contour(distribution=args.distribution, confidence_level=args.confidence,
                                    method=args.bounds)
        if region.ok:
            figures["contour"] = plot_contour(region.value)

    lines.append("\n=== [6] Monte Carlo Lifetime Simulation ===")
    sim = controller.simulate(params, n_simulations=DEFAULT_SIMULATIONS, seed=args.seed,
                              unit_cost=args.unit_cost)
    if _report(sim, lines):
        for p, value in sim.value.b_lives.items():
            lines.append(f"  - B{p}: {value:.1f}")
        lines.append(f"  - Simulated MTTF: {sim.value.mttf:.1f}")
        if plots:
            figures["lifetimes"] = plot_lifetime_histogram(sim.value)

    if args.horizon is not None and args.population:
        lines.append("\n=== [7] Spares Forecast ===")
        forecast = controller.spares_forecast(args.population, args.horizon,
                                              args.unit_cost, confidence_level=args.confidence,
                                              bound_method=args.bounds,
                                              distribution=args.distribution)
        if _report(forecast, lines):
            totals = forecast.value.totals
            lines.append(f"  - Expected failures: {totals.median:.2f} "
                         f"[{totals.lower:.2f}, {totals.upper:.2f}]")
            lines.append(f"  - Recommended stock: {forecast.value.recommended_stock}")
            if args.unit_cost:
                lines.append(f"  - Budget: {forecast.value.cost.median:.2f} "
                             f"[{forecast.value.cost.lower:.2f}, {forecast.value.cost.upper:.2f}]")

    if args.preventive_cost is not None and args.corrective_cost is not None:
        lines.append("\n=== [8] Maintenance Strategy Recommendations ===")
        plan = controller.maintenance_plan(args.preventive_cost, args.corrective_cost, params)
        if _report(plan, lines):
            p = plan.value
            lines.append(f"  - Conservative (70% of B10): {p.strategies['conservative']:.1f}")
            lines.append(f"  - Balanced (cost-optimal): {p.strategies['balanced']:.1f}")
            lines.append(f"  - Aggressive (90% reliability): {p.strategies['aggressive']:.1f}")
            lines.append(f"  - Reliability at optimum: {p.optimal_reliability:.3f}")
            if not p.replacement_recommended:
                lines.append("  - Preventive replacement does not pay off; run to failure")
            if plots:
                figures["cost_rate"] = plot_cost_rate(p)

    return lines, figures


def main(argv=None):
    """Main program entry point"""
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    lines, figures = run_cli(args)
    print("\n".join(lines))

    if args.plots:
        os.makedirs(args.plots, exist_ok=True)
        for name, fig in figures.items():
            path = os.path.join(args.plots, f"{name}.png")
            with open(path, "wb") as fh:
                fh.write(figure_to_png_bytes(fig).getvalue())
            logger.info("Wrote %s", path)
    return 0 if lines and not lines[0].startswith("Error") else 1


if __name__ == "__main__":
    sys.exit(main())
