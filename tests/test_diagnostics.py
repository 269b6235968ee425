from __future__ import annotations

import numpy as np
import numpy.testing as npt
import pytest

from bshrink.diagnostics.convergence import autocorrelation, effective_sample_size, split_rhat
from bshrink.diagnostics.report import (
    autocorrelation_summary,
    build_report,
    credible_intervals,
    select_top_k,
    trace_summary,
)
from bshrink.models.results import PriorFitResult


def _result(prior="horseshoe", seed=0, n_draws=400, medians=None):
    rng = np.random.default_rng(seed)
    medians = np.asarray(medians if medians is not None else [0.1, -2.0, 0.5, 3.0, -0.05, 1.0], dtype=float)
    draws = medians + 0.1 * rng.standard_normal((n_draws, medians.size))
    return PriorFitResult(
        prior=prior,
        family="gaussian",
        coef_samples=draws,
        feature_names=tuple(f"gene{j}" for j in range(medians.size)),
    )


def test_select_top_k_orders_by_absolute_median():
    res = _result()
    assert select_top_k(res, 3) == [3, 1, 5]
    assert select_top_k(res, 100) == [3, 1, 5, 2, 0, 4]


def test_select_top_k_is_idempotent():
    res = _result(seed=5)
    first = select_top_k(res, 4)
    assert select_top_k(res, 4) == first
    assert select_top_k(res, 4) == first


def test_select_top_k_ties_keep_column_order():
    draws = np.tile(np.array([1.0, -2.0, 2.0, 0.5, -1.0]), (10, 1))
    res = PriorFitResult(prior="ridge", family="gaussian", coef_samples=draws)
    assert select_top_k(res, 4) == [1, 2, 0, 4]


def test_credible_intervals_match_percentiles():
    res = _result()
    table = credible_intervals(res, [3, 1], level=0.95)
    expected = np.percentile(res.coef_samples[:, [3, 1]], [2.5, 50, 97.5], axis=0)
    npt.assert_allclose(table["lower"], expected[0])
    npt.assert_allclose(table["median"], expected[1])
    npt.assert_allclose(table["upper"], expected[2])
    assert list(table["feature"]) == ["gene3", "gene1"]
    assert table["excludes_zero"].all()


def test_autocorrelation_of_white_noise_is_small():
    rng = np.random.default_rng(1)
    acf = autocorrelation(rng.normal(size=2000), 5)
    assert acf[0] == pytest.approx(1.0)
    assert np.all(np.abs(acf[1:]) < 0.1)
    assert autocorrelation(np.ones(10), 3).tolist() == [1.0, 0.0, 0.0, 0.0]


def test_ess_and_rhat_for_independent_draws():
    rng = np.random.default_rng(2)
    draws = rng.normal(size=(400, 3))
    ess = effective_sample_size(draws)
    rhat = split_rhat(draws)
    assert ess.shape == (3,) and np.all(ess > 150)
    assert rhat.shape == (3,) and np.all(rhat < 1.1)


def test_ess_drops_for_autocorrelated_chain():
    rng = np.random.default_rng(3)
    x = np.zeros(1000)
    for t in range(1, x.size):
        x[t] = 0.95 * x[t - 1] + rng.normal()
    assert effective_sample_size(x)[0] < 200


def test_summaries_have_one_row_per_selected_coefficient():
    res = _result()
    acf = autocorrelation_summary(res, [0, 3], max_lag=10)
    trace = trace_summary(res, [0, 3])
    assert acf.shape == (2, 2 + 11)
    assert list(trace.columns) == ["prior", "feature", "mean", "sd", "ess", "rhat"]
    assert len(trace) == 2


def test_build_report_uses_reference_indices_for_every_prior():
    results = {
        "horseshoe": _result("horseshoe", seed=0),
        "ridge": _result("ridge", seed=1, medians=[2.0, 0.0, 0.0, 0.0, 0.0, 0.0]),
    }
    report = build_report(results, k=2, max_lag=5)

    assert report.reference_prior == "horseshoe"
    assert report.indices == [3, 1]
    assert report.features == ["gene3", "gene1"]
    assert len(report.intervals) == 4
    assert set(report.intervals["prior"]) == {"horseshoe", "ridge"}
    assert list(report.intervals["label"].unique()) == ["Horseshoe", "Ridge"]
    # coefficients are unchanged by reporting
    npt.assert_array_equal(results["ridge"].coef_samples, _result("ridge", seed=1, medians=[2.0, 0, 0, 0, 0, 0]).coef_samples)


def test_build_report_writes_tables_and_plots(tmp_path):
    from bshrink.viz.diagnostics import save_report_figures

    results = {"horseshoe": _result("horseshoe"), "lasso": _result("lasso", seed=4)}
    report = build_report(results, k=3, max_lag=5)
    tables = report.save(tmp_path / "diag")
    figures = save_report_figures(report, results, tmp_path / "plots", max_lag=5)

    assert all(path.exists() for path in tables.values())
    assert set(figures) == {"trace", "acf", "histogram", "credible_intervals"}
    assert all(path.exists() for path in figures.values())


def test_build_report_rejects_unknown_reference():
    with pytest.raises(KeyError):
        build_report({"horseshoe": _result()}, reference="lasso")
