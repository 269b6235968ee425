"""Bayesian fitting oracles: the narrow boundary between the pipeline and a sampler."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

import numpy as np
import jax.numpy as jnp
from numpyro.infer import MCMC, NUTS

from bshrink.errors import FitDivergence
from bshrink.models.priors import FAMILIES, resolve_prior, shrinkage_model
from bshrink.utils.seed import prng_key

ArrayLike = Any


def _ensure_2d(array: ArrayLike, name: str) -> np.ndarray:
    """Coerce input to (n, p) float32 array."""
    arr = np.asarray(array, dtype=np.float32)
    if arr.ndim != 2:
        raise ValueError(f"{name} must be a 2D array; got shape {arr.shape}.")
    return arr


def _ensure_1d(array: ArrayLike, name: str) -> np.ndarray:
    """Coerce input to (n,) float32 array."""
    arr = np.asarray(array, dtype=np.float32)
    if arr.ndim != 1:
        raise ValueError(f"{name} must be a 1D array; got shape {arr.shape}.")
    return arr


def _thin(arr: Optional[np.ndarray], step: int) -> Optional[np.ndarray]:
    if arr is None or step <= 1:
        return arr
    return arr[::step]


def inverse_link(eta: np.ndarray, family: str) -> np.ndarray:
    """Map a linear predictor to the response scale."""
    if family == "gaussian":
        return eta
    if family == "logistic":
        return 1.0 / (1.0 + np.exp(-eta))
    if family == "poisson":
        return np.exp(np.clip(eta, -30.0, 30.0))
    raise ValueError(f"Unknown family '{family}'. Expected one of {FAMILIES}.")


@dataclass
class OracleFit:
    """Raw oracle output: per-draw coefficient samples plus fit diagnostics."""

    coef_samples: np.ndarray
    intercept_samples: Optional[np.ndarray] = None
    sigma_samples: Optional[np.ndarray] = None
    extra_samples: Dict[str, np.ndarray] = field(default_factory=dict)
    rmse: Optional[float] = None
    diagnostics: Dict[str, Any] = field(default_factory=dict)


class FittingOracle(Protocol):
    """Anything that turns (X, y, family, prior, seed, burn-in) into posterior draws."""

    def fit(
        self,
        X: ArrayLike,
        y: ArrayLike,
        *,
        family: str,
        prior: str,
        seed: int,
        burn_in: int,
        num_samples: int,
    ) -> OracleFit:
        ...


def fitted_rmse(X: np.ndarray, y: np.ndarray, coef: np.ndarray, intercept: float, family: str) -> float:
    """Root mean squared error of posterior-mean fitted values on the response scale."""
    eta = np.asarray(X, dtype=np.float64) @ np.asarray(coef, dtype=np.float64) + float(intercept)
    resid = np.asarray(y, dtype=np.float64) - inverse_link(eta, family)
    return float(np.sqrt(np.mean(resid ** 2)))


@dataclass
class NumPyroOracle:
    """NUTS-based oracle running the registered shrinkage models in NumPyro."""

    num_chains: int = 1
    thinning: int = 1
    target_accept_prob: float = 0.8
    scale_intercept: float = 10.0
    progress_bar: bool = False

    def __post_init__(self) -> None:
        if self.num_chains <= 0:
            raise ValueError("num_chains must be a positive integer.")
        if self.thinning <= 0:
            raise ValueError("thinning must be a positive integer.")
        if not 0.0 < self.target_accept_prob < 1.0:
            raise ValueError("target_accept_prob must lie in (0, 1).")
        if self.scale_intercept <= 0:
            raise ValueError("scale_intercept must be positive.")

    def fit(
        self,
        X: ArrayLike,
        y: ArrayLike,
        *,
        family: str,
        prior: str,
        seed: int,
        burn_in: int,
        num_samples: int,
    ) -> OracleFit:
        X_arr = _ensure_2d(X, "X")
        y_arr = _ensure_1d(y, "y")
        if X_arr.shape[0] != y_arr.shape[0]:
            raise ValueError("X and y must have matching number of rows.")
        if family not in FAMILIES:
            raise ValueError(f"Unknown family '{family}'. Expected one of {FAMILIES}.")
        prior_key = resolve_prior(prior)
        if burn_in <= 0 or num_samples <= 0:
            raise ValueError("burn_in and num_samples must be positive integers.")
        if not (np.all(np.isfinite(X_arr)) and np.all(np.isfinite(y_arr))):
            raise FitDivergence(prior_key, "inputs are not finite at float32 precision")

        kernel = NUTS(shrinkage_model, target_accept_prob=self.target_accept_prob)
        mcmc = MCMC(
            kernel,
            num_warmup=int(burn_in),
            num_samples=int(num_samples),
            num_chains=int(self.num_chains),
            progress_bar=self.progress_bar,
            chain_method="sequential",
        )
        try:
            mcmc.run(
                prng_key(seed),
                jnp.asarray(X_arr),
                jnp.asarray(y_arr),
                prior=prior_key,
                family=family,
                scale_intercept=self.scale_intercept,
                extra_fields=("diverging",),
            )
        except RuntimeError as exc:
            # raised by NumPyro when no initial point has a finite log density
            raise FitDivergence(prior_key, f"sampler failed to start: {exc}") from exc
        samples = mcmc.get_samples(group_by_chain=False)
        diverging = np.asarray(mcmc.get_extra_fields()["diverging"])
        return self._to_fit(samples, X_arr, y_arr, family, n_divergent=int(diverging.sum()))

    def _to_fit(
        self,
        samples: Dict[str, Any],
        X: np.ndarray,
        y: np.ndarray,
        family: str,
        *,
        n_divergent: int,
    ) -> OracleFit:
        def _convert(name: str) -> Optional[np.ndarray]:
            if name not in samples:
                return None
            arr = np.asarray(samples[name], dtype=np.float64)
            return _thin(arr, self.thinning)

        coef = _convert("beta")
        if coef is None:
            raise RuntimeError("NumPyro model did not produce beta samples.")
        intercept = _convert("beta0")
        sigma = _convert("sigma")
        extra: Dict[str, np.ndarray] = {}
        for name in ("tau", "lambda", "lambda_sq", "eta"):
            arr = _convert(name)
            if arr is not None:
                extra[name] = arr

        rmse = fitted_rmse(
            X,
            y,
            coef.mean(axis=0),
            0.0 if intercept is None else float(intercept.mean()),
            family,
        )
        return OracleFit(
            coef_samples=coef,
            intercept_samples=intercept,
            sigma_samples=sigma,
            extra_samples=extra,
            rmse=rmse,
            diagnostics={"n_divergent": n_divergent, "num_chains": self.num_chains, "thinning": self.thinning},
        )
