"""Fit a shrinkage prior to a standardized dataset through a fitting oracle."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from data.preprocess import StandardizedDataset
from bshrink.errors import FitDivergence
from bshrink.models.oracle import FittingOracle, NumPyroOracle, OracleFit
from bshrink.models.priors import resolve_prior
from bshrink.models.results import PriorFitResult
from bshrink.utils.config import SamplerConfig
from bshrink.utils.logging_utils import get_logger, log_duration
from bshrink.utils.seed import DEFAULT_SEED

logger = get_logger(__name__)


def oracle_from_config(sampler: SamplerConfig) -> NumPyroOracle:
    return NumPyroOracle(
        num_chains=sampler.num_chains,
        thinning=sampler.thinning,
        target_accept_prob=sampler.target_accept_prob,
        progress_bar=sampler.progress_bar,
    )


def _check_finite(prior: str, fit: OracleFit) -> None:
    coef = np.asarray(fit.coef_samples, dtype=float)
    if coef.size == 0:
        raise FitDivergence(prior, "oracle returned no coefficient draws")
    if not np.all(np.isfinite(coef)):
        raise FitDivergence(prior, "non-finite coefficient draws")
    if fit.intercept_samples is not None and not np.all(np.isfinite(fit.intercept_samples)):
        raise FitDivergence(prior, "non-finite intercept draws")
    if fit.rmse is not None and not np.isfinite(fit.rmse):
        raise FitDivergence(prior, "non-finite RMSE summary")


@dataclass
class ShrinkagePriorFitter:
    """Runs every prior with the same sampler settings and the same seed."""

    sampler: SamplerConfig = field(default_factory=SamplerConfig)
    seed: int = DEFAULT_SEED
    oracle: Optional[FittingOracle] = None

    def __post_init__(self) -> None:
        if self.oracle is None:
            self.oracle = oracle_from_config(self.sampler)

    def fit(self, dataset: StandardizedDataset, prior: str) -> PriorFitResult:
        """Fit ``prior`` to ``dataset``.

        Raises:
            FitDivergence: when the oracle returns non-finite estimates.
        """
        key = resolve_prior(prior)
        with log_duration(logger, f"fit {dataset.outcome}/{key}"):
            raw = self.oracle.fit(
                dataset.X,
                dataset.y,
                family=dataset.family,
                prior=key,
                seed=int(self.seed),
                burn_in=int(self.sampler.burn_in),
                num_samples=int(self.sampler.num_samples),
            )
        coef = np.asarray(raw.coef_samples, dtype=float)
        if coef.ndim != 2 or coef.shape[1] != dataset.n_features:
            raise ValueError(
                f"Oracle returned coefficient draws of shape {coef.shape}; expected (draws, {dataset.n_features})."
            )
        _check_finite(key, raw)
        if raw.diagnostics.get("n_divergent"):
            logger.warning("%s/%s: %d divergent transitions.", dataset.outcome, key, raw.diagnostics["n_divergent"])

        return PriorFitResult(
            prior=key,
            family=dataset.family,
            coef_samples=coef,
            intercept_samples=raw.intercept_samples,
            sigma_samples=raw.sigma_samples,
            extra_samples=dict(raw.extra_samples),
            rmse=None if raw.rmse is None else float(raw.rmse),
            seed=int(self.seed),
            burn_in=int(self.sampler.burn_in),
            num_samples=int(self.sampler.num_samples),
            feature_names=dataset.feature_names,
            diagnostics=dict(raw.diagnostics),
        )
