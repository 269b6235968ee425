from __future__ import annotations

import numpy as np
import numpy.testing as npt
import pytest

from data.generators import (
    GeneratorError,
    SyntheticConfig,
    generate_synthetic,
    synthetic_config_from_dict,
)


def test_generate_synthetic_shapes_and_identifiers():
    tables = generate_synthetic(SyntheticConfig(n=20, p=5, seed=123))

    assert tables.X.shape == (20, 5)
    assert list(tables.X.index) == list(tables.Y.index)
    assert tables.X.index[0] == "S001"
    assert list(tables.X.columns) == ["x1", "x2", "x3", "x4", "x5"]
    assert list(tables.Y.columns) == ["response", "response_noisy", "lsa", "time", "status"]
    assert np.count_nonzero(tables.beta) == 3
    assert set(np.unique(tables.Y["status"])) <= {0, 1}
    assert np.all(tables.Y["time"] > 0)


def test_generate_synthetic_is_reproducible():
    a = generate_synthetic(SyntheticConfig(n=15, p=4, correlation=0.5, seed=9))
    b = generate_synthetic(SyntheticConfig(n=15, p=4, correlation=0.5, seed=9))
    npt.assert_array_equal(a.X.to_numpy(), b.X.to_numpy())
    npt.assert_array_equal(a.Y.to_numpy(), b.Y.to_numpy())
    npt.assert_array_equal(a.beta, b.beta)


def test_missing_rate_only_touches_noisy_candidate():
    tables = generate_synthetic(SyntheticConfig(n=200, p=3, missing_rate=0.3, seed=1))
    assert tables.Y["response_noisy"].isna().sum() > 0
    assert tables.Y["response"].notna().all()


def test_config_from_dict_ignores_unknown_keys_and_validates():
    cfg = synthetic_config_from_dict({"type": "synthetic", "n": 10, "p": 3, "seed": 4})
    assert (cfg.n, cfg.p, cfg.seed) == (10, 3, 4)

    with pytest.raises(GeneratorError):
        synthetic_config_from_dict({"n": 0, "p": 3})
    with pytest.raises(GeneratorError):
        synthetic_config_from_dict({"n": 10, "p": 3, "missing_rate": 1.0})
    with pytest.raises(GeneratorError):
        generate_synthetic(SyntheticConfig(n=10, p=3, n_active=5))
