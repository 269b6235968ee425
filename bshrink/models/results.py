"""Posterior fit container shared by the evaluator and the diagnostics reporter."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import json
import numpy as np

from bshrink.models.oracle import inverse_link
from bshrink.utils.io import ensure_dir, to_serializable


@dataclass(frozen=True)
class PriorFitResult:
    """Posterior draws for one prior on one dataset.

    ``coef_samples`` has shape (draws, features). Point estimates are derived
    from the draws: ``coef_`` is the posterior mean, ``coef_median`` the median.
    """

    prior: str
    family: str
    coef_samples: np.ndarray
    intercept_samples: Optional[np.ndarray] = None
    sigma_samples: Optional[np.ndarray] = None
    extra_samples: Dict[str, np.ndarray] = field(default_factory=dict)
    rmse: Optional[float] = None
    seed: Optional[int] = None
    burn_in: Optional[int] = None
    num_samples: Optional[int] = None
    feature_names: Tuple[str, ...] = ()
    diagnostics: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        coef = np.array(self.coef_samples, dtype=np.float64, copy=True)
        if coef.ndim != 2:
            raise ValueError(f"coef_samples must be 2D (draws, features); got shape {coef.shape}.")
        coef.flags.writeable = False
        object.__setattr__(self, "coef_samples", coef)
        for name in ("intercept_samples", "sigma_samples"):
            value = getattr(self, name)
            if value is not None:
                arr = np.array(value, dtype=np.float64, copy=True).reshape(-1)
                arr.flags.writeable = False
                object.__setattr__(self, name, arr)

    @property
    def n_draws(self) -> int:
        return int(self.coef_samples.shape[0])

    @property
    def n_features(self) -> int:
        return int(self.coef_samples.shape[1])

    @property
    def coef_(self) -> np.ndarray:
        return self.coef_samples.mean(axis=0)

    @property
    def coef_median(self) -> np.ndarray:
        return np.median(self.coef_samples, axis=0)

    @property
    def intercept_(self) -> float:
        if self.intercept_samples is None:
            return 0.0
        return float(self.intercept_samples.mean())

    def linear_predictor(self, X: np.ndarray) -> np.ndarray:
        X_arr = np.asarray(X, dtype=np.float64)
        if X_arr.ndim != 2 or X_arr.shape[1] != self.n_features:
            raise ValueError(f"X must have shape (n, {self.n_features}); got {X_arr.shape}.")
        return X_arr @ self.coef_ + self.intercept_

    def predict(self, X: np.ndarray) -> np.ndarray:
        """Fitted values on the response scale (mean, probability or expected count)."""
        return inverse_link(self.linear_predictor(X), self.family)


def save_fit(result: PriorFitResult, path: Path) -> Path:
    """Persist draws to ``<path>.npz`` and metadata to ``<path>.json``."""
    path = Path(path)
    ensure_dir(path.parent)
    arrays: Dict[str, np.ndarray] = {"coef_samples": result.coef_samples}
    if result.intercept_samples is not None:
        arrays["intercept_samples"] = result.intercept_samples
    if result.sigma_samples is not None:
        arrays["sigma_samples"] = result.sigma_samples
    for name, arr in result.extra_samples.items():
        arrays[f"extra__{name}"] = np.asarray(arr)
    npz_path = path.with_suffix(".npz")
    np.savez_compressed(npz_path, **arrays)

    meta = {
        "prior": result.prior,
        "family": result.family,
        "rmse": result.rmse,
        "seed": result.seed,
        "burn_in": result.burn_in,
        "num_samples": result.num_samples,
        "feature_names": list(result.feature_names),
        "diagnostics": result.diagnostics,
    }
    path.with_suffix(".json").write_text(json.dumps(to_serializable(meta), indent=2), encoding="utf-8")
    return npz_path


def load_fit(path: Path) -> PriorFitResult:
    path = Path(path)
    npz_path = path.with_suffix(".npz")
    meta_path = path.with_suffix(".json")
    if not npz_path.exists() or not meta_path.exists():
        raise FileNotFoundError(f"Fit artifacts not found for {path}")
    meta = json.loads(meta_path.read_text(encoding="utf-8"))
    with np.load(npz_path) as arrays:
        extra = {k[len("extra__"):]: arrays[k] for k in arrays.files if k.startswith("extra__")}
        return PriorFitResult(
            prior=meta["prior"],
            family=meta["family"],
            coef_samples=arrays["coef_samples"],
            intercept_samples=arrays["intercept_samples"] if "intercept_samples" in arrays.files else None,
            sigma_samples=arrays["sigma_samples"] if "sigma_samples" in arrays.files else None,
            extra_samples=extra,
            rmse=meta.get("rmse"),
            seed=meta.get("seed"),
            burn_in=meta.get("burn_in"),
            num_samples=meta.get("num_samples"),
            feature_names=tuple(meta.get("feature_names") or ()),
            diagnostics=dict(meta.get("diagnostics") or {}),
        )
