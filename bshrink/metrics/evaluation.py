"""Outcome-specific performance metrics and the per-prior performance summary.

Continuous and count outcomes are scored with the RMSE of fitted values, binary
outcomes with the ROC AUC, and survival outcomes with Uno's IPCW concordance
index truncated at a fixed horizon (scikit-survival).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
from sksurv.metrics import concordance_index_ipcw
from sksurv.util import Surv

from data.preprocess import StandardizedDataset
from bshrink.errors import MetricUndefined
from bshrink.metrics.regression import auroc, rmse
from bshrink.models.priors import prior_label
from bshrink.models.results import PriorFitResult
from bshrink.utils.config import EvaluationConfig

METRIC_NAMES = {
    "continuous": "RMSE",
    "binary": "AUC",
    "count": "RMSE",
    "survival": "C-index",
}

STATUS_OK = "OK"
STATUS_FIT_DIVERGED = "FIT_DIVERGED"
STATUS_METRIC_UNDEFINED = "METRIC_UNDEFINED"


def uno_cindex(
    time: np.ndarray,
    event: np.ndarray,
    risk: np.ndarray,
    *,
    tau: float,
) -> float:
    """Uno's C-statistic of a risk score (higher = earlier event) truncated at ``tau``.

    The censoring distribution is estimated from the same samples that are scored.

    Raises:
        MetricUndefined: if every time is censored or the IPCW weights are undefined.
    """
    t = np.asarray(time, dtype=float).reshape(-1)
    e = np.asarray(event, dtype=bool).reshape(-1)
    r = np.asarray(risk, dtype=float).reshape(-1)
    if not (t.shape == e.shape == r.shape):
        raise ValueError("time, event and risk must have the same length.")
    if not e.any():
        raise MetricUndefined("all survival times are censored")
    if not np.any(e & (t < tau)):
        raise MetricUndefined(f"no events observed before the truncation time {tau:g}")

    survival = Surv.from_arrays(event=e, time=t)
    try:
        cindex = concordance_index_ipcw(survival, survival, r, tau=float(tau))[0]
    except ValueError as exc:
        raise MetricUndefined(f"concordance index undefined: {exc}") from exc
    if not np.isfinite(cindex):
        raise MetricUndefined("concordance index is not finite")
    return float(cindex)


def binary_auc(
    y_true: np.ndarray,
    prob_positive: np.ndarray,
    *,
    score: str = "label",
    threshold: float = 0.5,
) -> float:
    """ROC AUC of predicted labels (default) or probabilities against observed labels.

    Raises:
        MetricUndefined: if the observed labels contain fewer than two classes.
    """
    y = np.asarray(y_true).reshape(-1)
    if np.unique(y).size < 2:
        raise MetricUndefined("binary outcome has fewer than two distinct classes")
    prob = np.asarray(prob_positive, dtype=float).reshape(-1)
    if score == "label":
        return auroc(y, (prob >= threshold).astype(int))
    if score == "probability":
        return auroc(y, prob)
    raise ValueError(f"Unknown AUC score '{score}'. Use 'label' or 'probability'.")


def evaluate_fit(
    dataset: StandardizedDataset,
    result: PriorFitResult,
    config: EvaluationConfig | None = None,
) -> float:
    """Score a fitted prior with the metric appropriate for the dataset's outcome."""
    cfg = config or EvaluationConfig()
    outcome = dataset.outcome
    if outcome in ("continuous", "count"):
        return rmse(dataset.y, result.predict(dataset.X))
    if outcome == "binary":
        return binary_auc(
            dataset.y,
            result.predict(dataset.X),
            score=cfg.auc_score,
            threshold=cfg.classification_threshold,
        )
    if outcome == "survival":
        if dataset.time is None or dataset.event is None:
            raise ValueError("Survival dataset is missing time/event arrays.")
        return uno_cindex(dataset.time, dataset.event, dataset.X @ result.coef_, tau=cfg.cindex_tau)
    raise ValueError(f"Unknown outcome '{outcome}'.")


@dataclass
class PerformanceRow:
    prior: str
    value: Optional[float] = None
    status: str = STATUS_OK
    message: Optional[str] = None

    @property
    def label(self) -> str:
        return prior_label(self.prior)


@dataclass
class PerformanceSummary:
    """One row per prior variant with the outcome's metric (NA where unavailable)."""

    outcome: str
    metric: str
    rows: List[PerformanceRow] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.rows)

    def add(self, row: PerformanceRow) -> None:
        if any(r.prior == row.prior for r in self.rows):
            raise ValueError(f"Prior '{row.prior}' already has a row in the summary.")
        self.rows.append(row)

    def values(self) -> Dict[str, Optional[float]]:
        return {row.prior: row.value for row in self.rows}

    def to_frame(self) -> pd.DataFrame:
        frame = pd.DataFrame(
            {
                "prior": [row.label for row in self.rows],
                self.metric: [np.nan if row.value is None else float(row.value) for row in self.rows],
                "status": [row.status for row in self.rows],
                "message": [row.message or "" for row in self.rows],
            }
        )
        return frame.set_index("prior")

    def to_dict(self) -> Dict[str, object]:
        return {
            "outcome": self.outcome,
            "metric": self.metric,
            "rows": [
                {"prior": r.prior, "label": r.label, "value": r.value, "status": r.status, "message": r.message}
                for r in self.rows
            ],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, object]) -> "PerformanceSummary":
        summary = cls(outcome=str(payload["outcome"]), metric=str(payload["metric"]))
        for entry in payload.get("rows", []):  # type: ignore[union-attr]
            value = entry.get("value")
            summary.add(
                PerformanceRow(
                    prior=str(entry["prior"]),
                    value=None if value is None else float(value),
                    status=str(entry.get("status", STATUS_OK)),
                    message=entry.get("message"),
                )
            )
        return summary


def evaluate_priors(
    dataset: StandardizedDataset,
    results: Mapping[str, Optional[PriorFitResult]],
    priors: Sequence[str],
    config: EvaluationConfig | None = None,
    *,
    failures: Mapping[str, str] | None = None,
) -> PerformanceSummary:
    """Aggregate every prior variant into a PerformanceSummary.

    ``results`` maps prior -> fit (``None`` or absent when the fit diverged); ``failures``
    carries the divergence messages. Undefined metrics become NA rows instead of errors.
    """
    summary = PerformanceSummary(outcome=dataset.outcome, metric=METRIC_NAMES[dataset.outcome])
    failures = failures or {}
    for prior in priors:
        result = results.get(prior)
        if result is None:
            summary.add(
                PerformanceRow(prior, None, STATUS_FIT_DIVERGED, failures.get(prior, "fit unavailable"))
            )
            continue
        try:
            value = evaluate_fit(dataset, result, config)
        except MetricUndefined as exc:
            summary.add(PerformanceRow(prior, None, STATUS_METRIC_UNDEFINED, str(exc)))
            continue
        summary.add(PerformanceRow(prior, value))
    return summary
