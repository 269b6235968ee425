"""Diagnostic plots comparing posterior draws across shrinkage priors."""
from __future__ import annotations

import math
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence, Tuple

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402

from bshrink.diagnostics.convergence import autocorrelation  # noqa: E402
from bshrink.diagnostics.report import DiagnosticsReport  # noqa: E402
from bshrink.models.priors import prior_label  # noqa: E402
from bshrink.models.results import PriorFitResult  # noqa: E402
from bshrink.utils.io import ensure_dir  # noqa: E402

_PALETTE = ["#4c72b0", "#dd8452", "#55a868", "#c44e52", "#8172b3", "#937860"]


def _grid(n_panels: int, max_cols: int = 5) -> Tuple[int, int]:
    cols = max(1, min(n_panels, max_cols))
    rows = int(math.ceil(n_panels / cols))
    return rows, cols


def _hide_unused(axes: np.ndarray, used: int) -> None:
    for ax in axes.flat[used:]:
        ax.axis("off")


def trace_plot(
    results: Mapping[str, PriorFitResult],
    indices: Sequence[int],
    features: Sequence[str],
    *,
    figsize: Optional[Tuple[float, float]] = None,
) -> plt.Figure:
    """One panel per coefficient, one line per prior."""
    rows, cols = _grid(len(indices))
    fig, axes = plt.subplots(rows, cols, figsize=figsize or (3.2 * cols, 2.4 * rows), squeeze=False, sharex=True)
    for ax, j, name in zip(axes.flat, indices, features):
        for color, (prior, result) in zip(_PALETTE, results.items()):
            ax.plot(result.coef_samples[:, j], linewidth=0.6, alpha=0.8, color=color, label=prior_label(prior))
        ax.set_title(name, fontsize=9)
    _hide_unused(axes, len(indices))
    axes.flat[0].legend(loc="upper right", fontsize=7)
    fig.supxlabel("Iteration (post burn-in)")
    fig.tight_layout()
    return fig


def autocorrelation_plot(
    results: Mapping[str, PriorFitResult],
    indices: Sequence[int],
    features: Sequence[str],
    *,
    max_lag: int = 40,
) -> plt.Figure:
    """ACF stems per coefficient, priors offset along the lag axis."""
    rows, cols = _grid(len(indices))
    fig, axes = plt.subplots(rows, cols, figsize=(3.2 * cols, 2.4 * rows), squeeze=False, sharey=True)
    n_priors = max(1, len(results))
    width = 0.8 / n_priors
    lags = np.arange(max_lag + 1)
    for ax, j, name in zip(axes.flat, indices, features):
        for pos, (color, (prior, result)) in enumerate(zip(_PALETTE, results.items())):
            acf = autocorrelation(result.coef_samples[:, j], max_lag)
            ax.vlines(lags + pos * width, 0.0, acf, color=color, linewidth=1.0, label=prior_label(prior))
        ax.axhline(0.0, color="black", linewidth=0.8)
        ax.set_title(name, fontsize=9)
    _hide_unused(axes, len(indices))
    axes.flat[0].legend(loc="upper right", fontsize=7)
    fig.supxlabel("Lag")
    fig.tight_layout()
    return fig


def posterior_histograms(
    results: Mapping[str, PriorFitResult],
    indices: Sequence[int],
    features: Sequence[str],
    *,
    bins: int = 40,
) -> plt.Figure:
    """Overlaid marginal posterior histograms per coefficient."""
    rows, cols = _grid(len(indices))
    fig, axes = plt.subplots(rows, cols, figsize=(3.2 * cols, 2.4 * rows), squeeze=False)
    for ax, j, name in zip(axes.flat, indices, features):
        for color, (prior, result) in zip(_PALETTE, results.items()):
            ax.hist(result.coef_samples[:, j], bins=bins, density=True, alpha=0.45, color=color,
                    label=prior_label(prior))
        ax.axvline(0.0, color="grey", linestyle=":", linewidth=1.0)
        ax.set_title(name, fontsize=9)
    _hide_unused(axes, len(indices))
    axes.flat[0].legend(loc="upper right", fontsize=7)
    fig.tight_layout()
    return fig


def credible_interval_plot(intervals: pd.DataFrame, *, figsize: Optional[Tuple[float, float]] = None) -> plt.Figure:
    """Forest plot of median and credible interval per coefficient, dodged by prior."""
    features = list(dict.fromkeys(intervals["feature"]))
    priors = list(dict.fromkeys(intervals["prior"]))
    fig, ax = plt.subplots(figsize=figsize or (7.0, 0.5 * len(features) + 1.5))
    offset = np.linspace(-0.3, 0.3, len(priors)) if len(priors) > 1 else np.zeros(1)
    base = {name: i for i, name in enumerate(features)}
    for color, dy, prior in zip(_PALETTE, offset, priors):
        sub = intervals[intervals["prior"] == prior]
        y = np.array([base[f] for f in sub["feature"]], dtype=float) + dy
        ax.hlines(y, sub["lower"], sub["upper"], color=color, linewidth=1.6)
        ax.plot(sub["median"], y, "o", color=color, markersize=4, label=prior_label(prior))
    ax.axvline(0.0, color="black", linewidth=0.8, linestyle="--")
    ax.set_yticks(np.arange(len(features)))
    ax.set_yticklabels(features)
    ax.invert_yaxis()
    ax.set_xlabel("Coefficient")
    ax.legend(loc="lower right", fontsize=8)
    fig.tight_layout()
    return fig


def save_report_figures(
    report: DiagnosticsReport,
    results: Mapping[str, PriorFitResult],
    out_dir: Path,
    *,
    max_lag: int = 40,
    dpi: int = 120,
) -> Dict[str, Path]:
    """Render every diagnostic figure to PNG and record the paths on the report."""
    out = ensure_dir(Path(out_dir))
    figures = {
        "trace": trace_plot(results, report.indices, report.features),
        "acf": autocorrelation_plot(results, report.indices, report.features, max_lag=max_lag),
        "histogram": posterior_histograms(results, report.indices, report.features),
        "credible_intervals": credible_interval_plot(report.intervals),
    }
    paths: Dict[str, Path] = {}
    for name, fig in figures.items():
        path = out / f"{name}.png"
        fig.savefig(path, dpi=dpi)
        plt.close(fig)
        paths[name] = path
    report.figures.update(paths)
    return paths
