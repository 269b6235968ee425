"""Top-coefficient diagnostics across prior variants.

All functions are read-only consumers of :class:`PriorFitResult`.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from bshrink.diagnostics.convergence import autocorrelation, effective_sample_size, split_rhat
from bshrink.models.priors import prior_label
from bshrink.models.results import PriorFitResult
from bshrink.utils.io import ensure_dir
from bshrink.utils.logging_utils import get_logger

logger = get_logger(__name__)


def select_top_k(result: PriorFitResult, k: int = 10) -> List[int]:
    """Indices of the ``k`` largest |posterior median| coefficients.

    Ties keep column order: the sort is stable on the negated magnitudes.
    """
    if k <= 0:
        raise ValueError("k must be positive.")
    magnitude = np.abs(result.coef_median)
    order = np.argsort(-magnitude, kind="stable")
    return [int(i) for i in order[:k]]


def _names(result: PriorFitResult, indices: Sequence[int], feature_names: Optional[Sequence[str]]) -> List[str]:
    names = list(feature_names) if feature_names else list(result.feature_names)
    if len(names) != result.n_features:
        names = [f"beta[{j}]" for j in range(result.n_features)]
    return [names[j] for j in indices]


def credible_intervals(
    result: PriorFitResult,
    indices: Sequence[int],
    *,
    level: float = 0.95,
    feature_names: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Equal-tailed credible interval and median for the selected coefficients."""
    alpha = (1.0 - level) / 2.0
    idx = list(indices)
    draws = result.coef_samples[:, idx]
    lower, median, upper = np.quantile(draws, [alpha, 0.5, 1.0 - alpha], axis=0)
    return pd.DataFrame(
        {
            "prior": result.prior,
            "feature": _names(result, idx, feature_names),
            "index": idx,
            "lower": lower,
            "median": median,
            "upper": upper,
            "excludes_zero": (lower > 0) | (upper < 0),
        }
    )


def autocorrelation_summary(
    result: PriorFitResult,
    indices: Sequence[int],
    *,
    max_lag: int = 40,
    feature_names: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """ACF per selected coefficient; rows are coefficients, columns are lags 0..max_lag."""
    idx = list(indices)
    rows = [autocorrelation(result.coef_samples[:, j], max_lag) for j in idx]
    frame = pd.DataFrame(rows, columns=[f"lag_{lag}" for lag in range(max_lag + 1)])
    frame.insert(0, "feature", _names(result, idx, feature_names))
    frame.insert(0, "prior", result.prior)
    return frame


def trace_summary(
    result: PriorFitResult,
    indices: Sequence[int],
    *,
    feature_names: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Posterior mean, sd, ESS and split R-hat for the selected coefficients."""
    idx = list(indices)
    draws = result.coef_samples[:, idx]
    if draws.shape[0] >= 4:
        rhat = split_rhat(draws)
    else:
        rhat = np.full(len(idx), np.nan)
    return pd.DataFrame(
        {
            "prior": result.prior,
            "feature": _names(result, idx, feature_names),
            "mean": draws.mean(axis=0),
            "sd": draws.std(axis=0, ddof=1) if draws.shape[0] > 1 else np.zeros(len(idx)),
            "ess": effective_sample_size(draws),
            "rhat": rhat,
        }
    )


@dataclass
class DiagnosticsReport:
    """Side-by-side diagnostics of the same coefficients under every fitted prior."""

    reference_prior: str
    indices: List[int]
    features: List[str]
    intervals: pd.DataFrame
    autocorrelations: pd.DataFrame
    traces: pd.DataFrame
    figures: Dict[str, Path] = field(default_factory=dict)

    def save(self, out_dir: Path) -> Dict[str, Path]:
        out = ensure_dir(Path(out_dir))
        paths = {
            "intervals": out / "credible_intervals.csv",
            "autocorrelations": out / "autocorrelation.csv",
            "traces": out / "trace_summary.csv",
        }
        self.intervals.to_csv(paths["intervals"], index=False)
        self.autocorrelations.to_csv(paths["autocorrelations"], index=False)
        self.traces.to_csv(paths["traces"], index=False)
        return paths


def build_report(
    results: Mapping[str, PriorFitResult],
    *,
    k: int = 10,
    max_lag: int = 40,
    level: float = 0.95,
    reference: Optional[str] = None,
    feature_names: Optional[Sequence[str]] = None,
) -> DiagnosticsReport:
    """Select top-k coefficients on a reference prior and summarise them for every prior.

    The reference defaults to the first entry of ``results`` (insertion order follows the
    configured prior order, so diverged fits are skipped naturally).
    """
    if not results:
        raise ValueError("No fitted priors to report on.")
    ref_key = reference if reference is not None else next(iter(results))
    if ref_key not in results:
        raise KeyError(f"Reference prior '{ref_key}' has no fit result.")
    ref = results[ref_key]
    indices = select_top_k(ref, k)
    features = _names(ref, indices, feature_names)
    logger.debug("Top-%d coefficients by |median| under %s: %s", k, ref_key, features)

    intervals, acfs, traces = [], [], []
    for prior, result in results.items():
        intervals.append(credible_intervals(result, indices, level=level, feature_names=feature_names))
        acfs.append(autocorrelation_summary(result, indices, max_lag=max_lag, feature_names=feature_names))
        traces.append(trace_summary(result, indices, feature_names=feature_names))

    intervals_df = pd.concat(intervals, ignore_index=True)
    intervals_df.insert(1, "label", [prior_label(p) for p in intervals_df["prior"]])
    return DiagnosticsReport(
        reference_prior=ref_key,
        indices=indices,
        features=features,
        intervals=intervals_df,
        autocorrelations=pd.concat(acfs, ignore_index=True),
        traces=pd.concat(traces, ignore_index=True),
    )
