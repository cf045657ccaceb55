"""
Matplotlib renderings of the analysis results.

Every function returns a ``Figure``; nothing is shown interactively.
"""

import logging
from io import BytesIO

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
import numpy as np

from distributions import get_model

logger = logging.getLogger(__name__)

PROBABILITY_TICKS = (0.01, 0.02, 0.05, 0.1, 0.2, 0.3, 0.5, 0.632, 0.8, 0.9, 0.95, 0.99, 0.999)


def _probability_axis(ax, model, y_values):
    lo, hi = np.nanmin(y_values), np.nanmax(y_values)
    ticks = [p for p in PROBABILITY_TICKS if lo <= model.transform_y(np.array([p]))[0] <= hi]
    if not ticks:
        return
    ax2 = ax.twinx()
    ax2.set_ylim(ax.get_ylim())
    ax2.set_yticks([model.transform_y(np.array([p]))[0] for p in ticks])
    ax2.set_yticklabels([f'{100 * p:g}%' for p in ticks])
    ax2.set_ylabel('Unreliability F(t)', fontsize=12)


def _lifetime_axis(ax, model, times):
    """Secondary tick labels in time units for ln(t) paper."""
    if not model.log_time:
        return
    t_min, t_max = np.min(times), np.max(times)
    decades = range(int(np.floor(np.log10(t_min))), int(np.ceil(np.log10(t_max))) + 1)
    lifetime_ticks = [m * 10.0 ** k for k in decades for m in (1, 2, 5) if t_min <= m * 10.0 ** k <= t_max]
    if lifetime_ticks:
        ax2 = ax.twiny()
        ax2.set_xlim(ax.get_xlim())
        ax2.set_xticks(np.log(lifetime_ticks))
        ax2.set_xticklabels([f'{t:g}' for t in lifetime_ticks])
        ax2.set_xlabel('Lifetime', fontsize=12)


def plot_probability_paper(fit, bounds=None, monte_carlo=None):
    """Plotting positions and fitted line, optionally with bounds or a Monte Carlo band."""
    model = get_model(fit.distribution)
    xs = np.array([p.x for p in fit.plot_points])
    ys = np.array([p.y for p in fit.plot_points])

    fig, ax = plt.subplots(figsize=(10, 8))
    if monte_carlo is not None:
        ax.fill_between(monte_carlo.lower.x, monte_carlo.lower.y, monte_carlo.upper.y,
                        color='orange', alpha=0.25,
                        label=f'Monte Carlo {monte_carlo.percentiles[0]:g}-{monte_carlo.percentiles[1]:g}%')
    if bounds is not None:
        label = f'{bounds.method.value} {bounds.confidence_level:g}% bounds'
        ax.plot(bounds.lower.x, bounds.lower.y, 'g--', linewidth=1.5, label=label)
        ax.plot(bounds.upper.x, bounds.upper.y, 'g--', linewidth=1.5)

    ax.scatter(xs, ys, alpha=0.6, s=50, color='blue', label='Observed Data',
               edgecolors='black', linewidth=0.5)
    fitted = ', '.join(f'{k}={v:.3g}' for k, v in fit.parameters.as_dict().items())
    ax.plot(fit.fitted_line.x, fit.fitted_line.y, 'r-', linewidth=2,
            label=f'{model.name} {fit.method}: {fitted}')

    ax.set_xlabel('ln(Lifetime)' if model.log_time else 'Lifetime', fontsize=12)
    ax.set_ylabel('Transformed unreliability', fontsize=12)
    ax.set_title(f'{model.name} Probability Paper', fontsize=14, fontweight='bold')
    ax.legend(fontsize=10, loc='lower right')
    ax.grid(True, alpha=0.3)

    _probability_axis(ax, model, np.concatenate([ys, fit.fitted_line.y]))
    _lifetime_axis(ax, model, [p.time for p in fit.plot_points])
    fig.tight_layout()
    return fig


def plot_contour(contour):
    names = contour.param_names
    fig, ax = plt.subplots(figsize=(8, 6))
    if contour.ellipse.shape[1] == 2:
        ax.plot(contour.ellipse[:, 0], contour.ellipse[:, 1], 'b-', linewidth=2,
                label=f'{contour.method.value} {contour.confidence_level:g}%')
        center = contour.center.values
        ax.plot(center[0], center[1], 'r+', markersize=12, label='MLE')
        ax.set_xlim(contour.axis_limits[names[0]])
        ax.set_ylim(contour.axis_limits[names[1]])
        ax.set_xlabel(names[0], fontsize=12)
        ax.set_ylabel(names[1], fontsize=12)
    else:
        lo, hi = contour.per_parameter_bounds[names[0]]
        ax.axvspan(lo, hi, color='blue', alpha=0.2, label=f'{contour.confidence_level:g}% interval')
        ax.axvline(contour.center.values[0], color='red', label='MLE')
        ax.set_xlabel(names[0], fontsize=12)
    ax.set_title('Parameter Confidence Region', fontsize=14, fontweight='bold')
    ax.legend(fontsize=10)
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    return fig


def plot_system_reliability(result):
    """System and per-mode reliability of a competing modes analysis."""
    system = result.system
    fig, ax = plt.subplots(figsize=(10, 6))
    for name, survival in system.mode_survival.items():
        ax.plot(system.times, survival, linestyle='--', linewidth=1.5, label=name)
    ax.plot(system.times, system.reliability, 'k-', linewidth=2.5, label='System')
    ax.axvline(result.query_time, color='gray', linestyle=':', alpha=0.7)
    ax.set_xlabel('Lifetime', fontsize=12)
    ax.set_ylabel('Reliability R(t)', fontsize=12)
    ax.set_ylim(0, 1.05)
    ax.set_title('Competing Failure Modes', fontsize=14, fontweight='bold')
    ax.legend(title=f'Critical mode: {result.critical_mode}', fontsize=10, loc='upper right')
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    return fig


def plot_reliability_curves(curves, column="reliability"):
    """One line per model from a ``reliability_curves`` frame."""
    fig, ax = plt.subplots(figsize=(10, 6))
    for name, group in curves.groupby('name', sort=False):
        ax.plot(group['time'], group[column], linewidth=2, label=name)
    ax.set_xlabel('Lifetime', fontsize=12)
    ax.set_ylabel(column.capitalize(), fontsize=12)
    ax.legend(fontsize=10)
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    return fig


def plot_cost_rate(plan):
    fig, ax = plt.subplots(figsize=(10, 6))
    ax.plot(plan.intervals, plan.cost_rates, 'b-', linewidth=2, label='Cost per unit time')
    ax.axvline(plan.optimal_interval, color='red', linestyle='--',
               label=f'Optimum: {plan.optimal_interval:.1f}')
    ax.set_xlabel('Replacement interval', fontsize=12)
    ax.set_ylabel('Cost rate', fontsize=12)
    ax.set_title('Age Replacement Cost', fontsize=14, fontweight='bold')
    ax.legend(fontsize=10)
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    return fig


def plot_lifetime_histogram(simulation):
    simulated_data = simulation.samples
    fig, ax = plt.subplots(figsize=(10, 6))
    ax.hist(simulated_data, bins=simulation.histogram_edges, density=True, alpha=0.6,
            color='skyblue', edgecolor='black')

    for i, (p, value) in enumerate(simulation.b_lives.items()):
        ax.axvline(value, color='red', linestyle='--', alpha=0.7, linewidth=1.5)
        y_text = ax.get_ylim()[1] * (0.85 - i * 0.03)
        x_text = value + (ax.get_xlim()[1] - ax.get_xlim()[0]) * 0.01
        ax.text(x_text, y_text, f'B{p}: {value:.1f}', rotation=90,
                verticalalignment='center', color='red', fontsize=9, fontweight='bold')

    ax.set_title('Monte Carlo Lifetime Predictions', fontsize=14, fontweight='bold')
    ax.set_xlabel('Lifetime', fontsize=12)
    ax.set_ylabel('Probability Density', fontsize=12)
    ax.grid(True, linestyle='--', alpha=0.3)
    fig.tight_layout()
    return fig


def plot_bootstrap_histograms(bootstrap):
    """One histogram per parameter."""
    figures = []
    for name, samples in bootstrap.parameter_samples.items():
        lo, hi = bootstrap.parameter_intervals[name]
        fig, ax = plt.subplots(figsize=(8, 6))
        ax.hist(samples, bins=30, alpha=0.7, color='skyblue', edgecolor='black')
        ax.axvline(bootstrap.parameter_means[name], color='red', linestyle='-',
                   label=f'Mean: {bootstrap.parameter_means[name]:.3g}')
        ax.axvline(lo, color='green', linestyle='--', label=f'{bootstrap.confidence_level:g}% CI')
        ax.axvline(hi, color='green', linestyle='--')
        ax.set_title(f'Bootstrap Distribution of {name}', fontsize=14, fontweight='bold')
        ax.set_xlabel(name, fontsize=12)
        ax.set_ylabel('Frequency', fontsize=12)
        ax.legend(fontsize=10)
        ax.grid(True, alpha=0.3)
        fig.tight_layout()
        figures.append(fig)
    return figures


def figure_to_png_bytes(fig, dpi=200):
    """Render a figure to an in-memory PNG and release it."""
    buf = BytesIO()
    try:
        fig.savefig(buf, format='png', dpi=dpi, bbox_inches='tight')
    finally:
        plt.close(fig)
    buf.seek(0)
    return buf
