from __future__ import annotations

import numpy as np
import numpy.testing as npt
import pandas as pd
import pytest

from bshrink.errors import EmptyDatasetError
from data.preprocess import (
    StandardizationConfig,
    binarize_at_median,
    exp_round_counts,
    prepare_dataset,
    select_response_column,
    standardize_X,
)


def _tables(n: int = 12, p: int = 4, seed: int = 0):
    rng = np.random.default_rng(seed)
    ids = [f"id{i}" for i in range(n)]
    X = pd.DataFrame(rng.normal(loc=3.0, scale=2.0, size=(n, p)), index=ids, columns=[f"g{j}" for j in range(p)])
    Y = pd.DataFrame(
        {
            "a": rng.normal(size=n),
            "b": rng.normal(size=n),
            "time": rng.uniform(10, 3000, size=n),
            "status": rng.integers(0, 2, size=n),
        },
        index=ids,
    )
    return X, Y


def test_select_response_column_prefers_fewest_missing():
    Y = pd.DataFrame({"a": [1.0, np.nan, np.nan], "b": [np.nan, 2.0, 3.0], "c": [1.0, np.nan, 2.0]})
    assert select_response_column(Y) == "b"
    # ties resolve to the first candidate in order
    assert select_response_column(Y, ["c", "b"]) == "c"
    with pytest.raises(KeyError):
        select_response_column(Y, ["missing"])


def test_binarize_at_median_maps_upper_half_to_one():
    y = np.array([3.0, -1.0, 0.5, 7.0, 2.0, -4.0])
    labels = binarize_at_median(y)
    median = np.median(y)
    npt.assert_array_equal(labels, (y >= median).astype(int))
    assert labels.sum() >= (labels == 0).sum()
    npt.assert_array_equal(binarize_at_median(y), labels)

    odd = np.array([1.0, 2.0, 3.0])
    npt.assert_array_equal(binarize_at_median(odd), [0, 1, 1])


def test_exp_round_counts_matches_known_values():
    counts = exp_round_counts(np.array([0.0, np.log(2.0), np.log(5.0)]))
    npt.assert_array_equal(counts, [1.0, 2.0, 5.0])

    overflow = exp_round_counts(np.array([1.0, 1e4]))
    assert overflow[0] == 3.0
    assert np.isnan(overflow[1])


def test_standardize_X_zero_mean_unit_variance():
    X, _ = _tables()
    Z, mean, scale = standardize_X(X.to_numpy())
    npt.assert_allclose(Z.mean(axis=0), 0.0, atol=1e-10)
    npt.assert_allclose(Z.var(axis=0), 1.0, rtol=1e-10)
    assert mean.shape == (X.shape[1],)
    assert scale.shape == (X.shape[1],)


def test_prepare_continuous_drops_missing_rows_jointly():
    X, Y = _tables()
    Y.loc[["id1", "id5"], "a"] = np.nan
    Y.loc[["id1", "id2", "id3"], "b"] = np.nan

    ds = prepare_dataset(X, Y, "continuous", response_columns=["a", "b"])

    assert ds.response_column == "a"
    assert ds.family == "gaussian"
    expected_ids = tuple(i for i in X.index if i not in {"id1", "id5"})
    assert ds.sample_ids == expected_ids
    assert ds.X.shape == (len(expected_ids), X.shape[1])
    assert ds.y.shape == (len(expected_ids),)
    npt.assert_allclose(ds.X.mean(axis=0), 0.0, atol=1e-10)
    npt.assert_allclose(ds.X.var(axis=0), 1.0, rtol=1e-10)
    npt.assert_allclose(ds.y.mean(), 0.0, atol=1e-12)
    assert ds.y_mean == pytest.approx(Y.loc[list(expected_ids), "a"].mean())


def test_prepare_dataset_arrays_are_read_only():
    X, Y = _tables()
    ds = prepare_dataset(X, Y, "continuous", response_columns=["a"])
    with pytest.raises(ValueError):
        ds.X[0, 0] = 1.0
    with pytest.raises(ValueError):
        ds.y[0] = 1.0


def test_prepare_binary_thresholds_at_median():
    X, Y = _tables(n=11)
    ds = prepare_dataset(X, Y, "binary", response_columns=["a"])
    raw = Y["a"].to_numpy()
    npt.assert_array_equal(ds.y, (raw >= np.median(raw)).astype(float))
    assert ds.family == "logistic"
    assert set(np.unique(ds.y)) == {0.0, 1.0}


def test_prepare_count_refilters_overflowing_rows():
    X, Y = _tables()
    Y["a"] = np.log(np.arange(1, len(Y) + 1, dtype=float))
    Y.loc["id4", "a"] = 5000.0
    ds = prepare_dataset(X, Y, "count", response_columns=["a"])

    assert "id4" not in ds.sample_ids
    assert ds.X.shape[0] == len(ds.sample_ids) == len(X) - 1
    assert ds.family == "poisson"
    assert np.all(ds.y >= 0)
    npt.assert_array_equal(ds.y, np.round(ds.y))
    npt.assert_array_equal(ds.y[:3], [1.0, 2.0, 3.0])


def test_prepare_survival_keeps_time_and_event_aligned():
    X, Y = _tables()
    Y.loc["id0", "time"] = np.nan
    ds = prepare_dataset(X, Y, "survival", response_columns=["b"], time_column="time", event_column="status")

    assert "id0" not in ds.sample_ids
    assert ds.time.shape == ds.event.shape == ds.y.shape
    assert ds.event.dtype == bool
    npt.assert_allclose(ds.y.mean(), 0.0, atol=1e-12)
    npt.assert_allclose(ds.time, Y.loc[list(ds.sample_ids), "time"].to_numpy())


def test_prepare_survival_requires_time_and_event():
    X, Y = _tables()
    with pytest.raises(ValueError):
        prepare_dataset(X, Y, "survival", response_columns=["b"])


def test_prepare_raises_when_every_row_is_filtered():
    X, Y = _tables()
    Y["a"] = np.nan
    with pytest.raises(EmptyDatasetError):
        prepare_dataset(X, Y, "continuous", response_columns=["a"])


def test_prepare_respects_y_center_flag():
    X, Y = _tables()
    ds = prepare_dataset(
        X, Y, "continuous", response_columns=["a"], standardization=StandardizationConfig(y_center=False)
    )
    npt.assert_allclose(ds.y, Y["a"].to_numpy())
    assert ds.y_mean is None


def test_prepare_rejects_unknown_outcome():
    X, Y = _tables()
    with pytest.raises(ValueError):
        prepare_dataset(X, Y, "ordinal")


def test_only_unit_variance_standardization_is_accepted():
    for method in ("none", "unit_l2", "robust"):
        with pytest.raises(ValueError):
            StandardizationConfig(X=method)
    assert StandardizationConfig(X="unit_variance").X == "unit_variance"


def test_constant_feature_is_centered_without_blowing_up():
    X = np.column_stack([np.full(5, 3.0), np.arange(5.0)])
    Z, mean, scale = standardize_X(X)
    npt.assert_allclose(Z[:, 0], 0.0)
    npt.assert_allclose(mean, [3.0, 2.0])
    assert scale[0] == pytest.approx(1e-8)


def test_select_response_column_treats_text_as_missing():
    Y = pd.DataFrame({"label": ["hi", "lo", "hi", "lo"], "score": [1.0, np.nan, 2.0, 3.0]})
    assert select_response_column(Y) == "score"

    X = pd.DataFrame(np.arange(8.0).reshape(4, 2), index=Y.index, columns=["f1", "f2"])
    ds = prepare_dataset(X, Y, "continuous")
    assert ds.response_column == "score"
    assert ds.n_samples == 3


def test_exp_round_counts_drops_values_beyond_float32_range():
    counts = exp_round_counts(np.array([np.log(3.0), 100.0, 80.0]))
    assert counts[0] == 3.0
    assert np.isnan(counts[1])
    assert np.isfinite(counts[2])


def test_prepare_count_refilters_counts_beyond_float32_range():
    X, Y = _tables()
    Y["a"] = np.log(np.arange(1, len(Y) + 1, dtype=float))
    Y.loc["id0", "a"] = 100.0
    ds = prepare_dataset(X, Y, "count", response_columns=["a"])
    assert "id0" not in ds.sample_ids
    assert np.all(ds.y <= np.finfo(np.float32).max)
