"""Single-chain MCMC diagnostics: autocorrelation, ESS and split R-hat."""
from __future__ import annotations

import numpy as np

Array = np.ndarray


def _as_draws(samples: Array) -> Array:
    arr = np.asarray(samples, dtype=float)
    if arr.ndim == 1:
        arr = arr[:, None]
    if arr.ndim != 2:
        raise ValueError(f"expected (draws,) or (draws, params); got shape {arr.shape}")
    return arr


def autocorrelation(series: Array, max_lag: int) -> Array:
    """Autocorrelation of a 1D series for lags 0..max_lag (zeros past the series length)."""

    x = np.asarray(series, dtype=float).reshape(-1)
    out = np.zeros(max_lag + 1, dtype=float)
    if x.size == 0:
        return out
    x = x - np.mean(x)
    corr = np.correlate(x, x, mode="full")
    mid = corr.size // 2
    denominator = corr[mid]
    if denominator <= 1e-300:
        out[0] = 1.0
        return out
    acf = corr[mid : mid + max_lag + 1] / denominator
    out[: acf.size] = acf
    return out


def effective_sample_size(samples: Array) -> Array:
    """ESS per parameter using Geyer's initial positive sequence on paired lags."""
    draws = _as_draws(samples)
    n, k = draws.shape
    ess = np.empty(k, dtype=float)
    for j in range(k):
        rho = autocorrelation(draws[:, j], max(n - 1, 0))
        total = 0.0
        for lag in range(1, n - 1, 2):
            pair = rho[lag] + rho[lag + 1]
            if pair < 0:
                break
            total += pair
        ess[j] = min(float(n), n / max(1.0, 1.0 + 2.0 * total))
    return ess


def split_rhat(samples: Array) -> Array:
    """Split-chain potential scale reduction factor per parameter."""
    draws = _as_draws(samples)
    n = draws.shape[0]
    if n < 4:
        raise ValueError("need at least 4 draws for split R-hat")
    half = n // 2
    chains = np.stack([draws[:half], draws[half : 2 * half]], axis=0)
    W = chains.var(axis=1, ddof=1).mean(axis=0)
    B = half * chains.mean(axis=1).var(axis=0, ddof=1)
    var_hat = ((half - 1) / half) * W + B / half
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.sqrt(np.where(W > 0, var_hat / W, 1.0))
