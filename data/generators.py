"""Synthetic tabular datasets for shrinkage-regression experiments."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import numpy as np
import pandas as pd

__all__ = [
    "GeneratorError",
    "SyntheticConfig",
    "SyntheticTables",
    "generate_synthetic",
    "synthetic_config_from_dict",
]


class GeneratorError(ValueError):
    """Raised when an invalid synthetic configuration is provided."""


@dataclass
class SyntheticConfig:
    """Parameters for a synthetic feature/response table pair."""

    n: int = 20
    p: int = 5
    n_active: Optional[int] = None
    beta_scale: float = 1.0
    noise_sigma: float = 0.5
    correlation: float = 0.0
    missing_rate: float = 0.0
    time_scale: float = 1000.0
    censor_max: float = 4000.0
    seed: Optional[int] = None


@dataclass
class SyntheticTables:
    """Generated tables together with the coefficients used to build them."""

    X: pd.DataFrame
    Y: pd.DataFrame
    beta: np.ndarray
    info: Dict[str, Any] = field(default_factory=dict)


def synthetic_config_from_dict(cfg: Mapping[str, Any]) -> SyntheticConfig:
    known = set(SyntheticConfig.__dataclass_fields__)
    kwargs = {k: v for k, v in cfg.items() if k in known}
    try:
        config = SyntheticConfig(**kwargs)
    except TypeError as exc:  # pragma: no cover - unexpected argument types
        raise GeneratorError(str(exc)) from exc
    if config.n <= 0 or config.p <= 0:
        raise GeneratorError("Synthetic data requires positive n and p.")
    if not 0.0 <= config.missing_rate < 1.0:
        raise GeneratorError("missing_rate must lie in [0, 1).")
    if not 0.0 <= config.correlation < 1.0:
        raise GeneratorError("correlation must lie in [0, 1).")
    return config


def _design(rng: np.random.Generator, n: int, p: int, rho: float) -> np.ndarray:
    if rho <= 0.0:
        return rng.normal(size=(n, p))
    # AR(1) correlation between neighbouring features
    idx = np.arange(p)
    cov = rho ** np.abs(idx[:, None] - idx[None, :])
    chol = np.linalg.cholesky(cov)
    return rng.normal(size=(n, p)) @ chol.T


def generate_synthetic(config: SyntheticConfig) -> SyntheticTables:
    """Build a feature table and a response table with every outcome type.

    Response columns:
        ``response``: continuous linear signal plus Gaussian noise.
        ``response_noisy``: a second candidate with ``missing_rate`` of entries removed.
        ``lsa``: continuous pseudo-response standing in for an LSA-transformed survival outcome.
        ``time`` / ``status``: right-censored survival times driven by the same linear risk.
    """
    rng = np.random.default_rng(config.seed)
    n, p = int(config.n), int(config.p)
    n_active = int(config.n_active) if config.n_active is not None else max(1, min(p, 3))
    if not 0 < n_active <= p:
        raise GeneratorError("n_active must lie in [1, p].")

    X = _design(rng, n, p, float(config.correlation))
    beta = np.zeros(p)
    signs = rng.choice([-1.0, 1.0], size=n_active)
    beta[:n_active] = signs * config.beta_scale * rng.uniform(0.5, 1.5, size=n_active)
    signal = X @ beta

    y = signal + rng.normal(scale=config.noise_sigma, size=n)
    y_noisy = y + rng.normal(scale=config.noise_sigma, size=n)
    if config.missing_rate > 0:
        drop = rng.random(n) < config.missing_rate
        y_noisy[drop] = np.nan

    risk = signal / max(np.std(signal), 1e-8) if n > 1 else signal
    event_time = config.time_scale * rng.exponential(scale=np.exp(-risk))
    censor_time = rng.uniform(0.0, config.censor_max, size=n)
    time = np.minimum(event_time, censor_time)
    status = (event_time <= censor_time).astype(int)
    lsa = risk + rng.normal(scale=config.noise_sigma, size=n)

    ids = [f"S{i + 1:03d}" for i in range(n)]
    X_df = pd.DataFrame(X, index=ids, columns=[f"x{j + 1}" for j in range(p)])
    Y_df = pd.DataFrame(
        {
            "response": y,
            "response_noisy": y_noisy,
            "lsa": lsa,
            "time": time,
            "status": status,
        },
        index=ids,
    )
    info = {
        "n": n,
        "p": p,
        "n_active": n_active,
        "noise_sigma": float(config.noise_sigma),
        "seed": config.seed,
        "event_rate": float(status.mean()) if n else 0.0,
    }
    return SyntheticTables(X=X_df, Y=Y_df, beta=beta, info=info)
