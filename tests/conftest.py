from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Set, Tuple

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from bshrink.models.oracle import OracleFit, fitted_rmse  # noqa: E402


@dataclass
class StubOracle:
    """Cheap deterministic oracle: Gaussian draws around a ridge solution.

    Priors listed in ``diverge_on`` return NaN draws.
    """

    diverge_on: Set[str] = field(default_factory=set)
    calls: List[Tuple[str, str, int, int, int]] = field(default_factory=list)

    def fit(self, X: Any, y: Any, *, family: str, prior: str, seed: int, burn_in: int, num_samples: int) -> OracleFit:
        self.calls.append((family, prior, seed, burn_in, num_samples))
        X = np.asarray(X, dtype=float)
        y = np.asarray(y, dtype=float)
        rng = np.random.default_rng(seed)
        p = X.shape[1]
        target = y if family == "gaussian" else (y - y.mean())
        if family == "poisson":
            target = np.log1p(y) - np.log1p(y).mean()
        coef = np.linalg.solve(X.T @ X + np.eye(p), X.T @ target)
        draws = coef + 0.05 * rng.standard_normal((num_samples, p))
        intercept = np.full(num_samples, float(np.log1p(y).mean()) if family == "poisson" else 0.0)
        if prior in self.diverge_on:
            draws[:] = np.nan
        rmse = fitted_rmse(X, y, draws.mean(axis=0), intercept.mean(), family)
        return OracleFit(coef_samples=draws, intercept_samples=intercept, rmse=rmse)


@pytest.fixture
def stub_oracle() -> StubOracle:
    return StubOracle()


@pytest.fixture
def small_tables():
    from data.generators import SyntheticConfig, generate_synthetic

    return generate_synthetic(SyntheticConfig(n=20, p=5, seed=7))
