"""Response selection, outcome transforms and feature standardization."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from bshrink.errors import EmptyDatasetError

__all__ = [
    "OUTCOME_FAMILIES",
    "StandardizationConfig",
    "StandardizedDataset",
    "standardize_X",
    "center_y",
    "select_response_column",
    "binarize_at_median",
    "exp_round_counts",
    "prepare_dataset",
]

_EPS = 1e-8
_MAX_COUNT = float(np.finfo(np.float32).max)

OUTCOME_FAMILIES = {
    "continuous": "gaussian",
    "binary": "logistic",
    "count": "poisson",
    "survival": "gaussian",
}


@dataclass(frozen=True)
class StandardizationConfig:
    """Configuration for feature/target standardization."""

    X: str = "unit_variance"
    y_center: bool = True

    def __post_init__(self) -> None:
        if str(self.X).lower() != "unit_variance":
            raise ValueError(
                f"Unsupported feature standardization '{self.X}'; only 'unit_variance' is available."
            )


def _frozen(arr: np.ndarray) -> np.ndarray:
    out = np.array(arr, copy=True)
    out.flags.writeable = False
    return out


@dataclass(frozen=True)
class StandardizedDataset:
    """Model-ready arrays for one outcome type; arrays are read-only."""

    X: np.ndarray
    y: np.ndarray
    sample_ids: Tuple[str, ...]
    feature_names: Tuple[str, ...]
    outcome: str
    family: str
    response_column: str
    x_mean: Optional[np.ndarray] = None
    x_scale: Optional[np.ndarray] = None
    y_mean: Optional[float] = None
    time: Optional[np.ndarray] = None
    event: Optional[np.ndarray] = None
    config: StandardizationConfig = field(default_factory=StandardizationConfig)

    def __post_init__(self) -> None:
        n = len(self.sample_ids)
        if self.X.shape[0] != n or self.y.shape[0] != n:
            raise ValueError("X, y and sample_ids must have the same number of rows.")
        if self.X.shape[1] != len(self.feature_names):
            raise ValueError("feature_names must match the columns of X.")
        for name in ("X", "y", "x_mean", "x_scale", "time", "event"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, _frozen(value))

    @property
    def n_samples(self) -> int:
        return int(self.X.shape[0])

    @property
    def n_features(self) -> int:
        return int(self.X.shape[1])


def standardize_X(X: np.ndarray, eps: float = _EPS) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Center each column and divide by its population sd (floored at ``eps`` for constant columns).

    Returns the standardized matrix together with the column means and scales used.
    """
    arr = np.asarray(X, dtype=float)
    if arr.ndim != 2:
        raise ValueError(f"X must be 2D; got shape {arr.shape}.")
    if arr.shape[0] == 0:
        width = arr.shape[1]
        return arr.copy(), np.zeros(width), np.ones(width)
    means = arr.mean(axis=0)
    scales = np.maximum(arr.std(axis=0), eps)
    return (arr - means) / scales, means, scales


def center_y(y: np.ndarray) -> Tuple[np.ndarray, float]:
    """Subtract the sample mean; an empty response is returned unchanged with mean 0."""
    vec = np.asarray(y, dtype=float).ravel()
    offset = float(np.mean(vec)) if vec.size else 0.0
    return vec - offset, offset


def select_response_column(Y: pd.DataFrame, candidates: Optional[Sequence[str]] = None) -> str:
    """Pick the candidate column with the fewest missing entries (first wins on ties).

    Entries that are not numeric count as missing, matching how the response is read later.
    """
    columns = list(candidates) if candidates else list(Y.columns)
    if not columns:
        raise ValueError("Response table has no candidate columns.")
    unknown = [c for c in columns if c not in Y.columns]
    if unknown:
        raise KeyError(f"Response columns not found: {unknown}")
    counts = [int(pd.to_numeric(Y[c], errors="coerce").isna().sum()) for c in columns]
    return columns[int(np.argmin(counts))]


def binarize_at_median(y: np.ndarray) -> np.ndarray:
    """Map values at or above the median to 1 and the rest to 0."""
    arr = np.asarray(y, dtype=float).reshape(-1)
    if arr.size == 0:
        return arr.astype(int)
    return (arr >= np.median(arr)).astype(int)


def exp_round_counts(y: np.ndarray) -> np.ndarray:
    """Exponentiate and round to nonnegative integer counts.

    Counts that overflow, or exceed what the float32 sampler inputs can hold, become NaN.
    """
    arr = np.asarray(y, dtype=float).reshape(-1)
    with np.errstate(over="ignore", invalid="ignore"):
        counts = np.round(np.exp(arr))
    counts[~np.isfinite(counts) | (counts > _MAX_COUNT)] = np.nan
    return counts


def _require_rows(mask: np.ndarray, stage: str) -> None:
    if not np.any(mask):
        raise EmptyDatasetError(f"No samples left after {stage}.")


def prepare_dataset(
    X: pd.DataFrame,
    Y: pd.DataFrame,
    outcome: str,
    *,
    response_columns: Optional[Sequence[str]] = None,
    time_column: Optional[str] = None,
    event_column: Optional[str] = None,
    standardization: StandardizationConfig | None = None,
) -> StandardizedDataset:
    """Select the response, apply the outcome transform and standardize features.

    Row filtering is applied jointly to X and the response so sample identifiers stay
    aligned. Features are standardized last, on the rows that survive every filter.
    """
    outcome_l = str(outcome).lower()
    if outcome_l not in OUTCOME_FAMILIES:
        raise ValueError(f"Unknown outcome '{outcome}'. Expected one of {sorted(OUTCOME_FAMILIES)}.")
    cfg = standardization or StandardizationConfig()
    if not X.index.equals(Y.index):
        raise ValueError("X and Y must share the same sample index; run data.loaders.align_tables first.")

    survival_cols = [c for c in (time_column, event_column) if c]
    if outcome_l == "survival":
        if len(survival_cols) != 2:
            raise ValueError("Survival outcomes require time_column and event_column.")
        missing = [c for c in survival_cols if c not in Y.columns]
        if missing:
            raise KeyError(f"Survival columns not found: {missing}")

    candidates = response_columns
    if not candidates:
        candidates = [c for c in Y.columns if c not in set(survival_cols)]
    column = select_response_column(Y, candidates)

    y_raw = pd.to_numeric(Y[column], errors="coerce").to_numpy(dtype=float)
    keep = np.isfinite(y_raw)
    if outcome_l == "survival":
        for col in survival_cols:
            keep &= np.isfinite(pd.to_numeric(Y[col], errors="coerce").to_numpy(dtype=float))
    _require_rows(keep, f"dropping missing '{column}'")

    y_kept = y_raw[keep]
    y_mean: Optional[float] = None
    if outcome_l == "binary":
        y_out = binarize_at_median(y_kept).astype(float)
    elif outcome_l == "count":
        counts = exp_round_counts(y_kept)
        finite = np.isfinite(counts)
        _require_rows(finite, "the count transform")
        idx = np.flatnonzero(keep)
        keep = np.zeros_like(keep)
        keep[idx[finite]] = True
        y_out = counts[finite]
    elif cfg.y_center:
        y_out, y_mean = center_y(y_kept)
    else:
        y_out = y_kept

    X_kept = X.loc[keep]
    X_std, x_mean, x_scale = standardize_X(X_kept.to_numpy(dtype=float))

    time = event = None
    if outcome_l == "survival":
        time = pd.to_numeric(Y[time_column], errors="coerce").to_numpy(dtype=float)[keep]
        event = pd.to_numeric(Y[event_column], errors="coerce").to_numpy(dtype=float)[keep].astype(bool)

    return StandardizedDataset(
        X=X_std,
        y=np.asarray(y_out, dtype=float),
        sample_ids=tuple(str(i) for i in X_kept.index),
        feature_names=tuple(str(c) for c in X_kept.columns),
        outcome=outcome_l,
        family=OUTCOME_FAMILIES[outcome_l],
        response_column=str(column),
        x_mean=x_mean,
        x_scale=x_scale,
        y_mean=y_mean,
        time=time,
        event=event,
        config=cfg,
    )
