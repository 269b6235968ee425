from __future__ import annotations

import numpy as np
import pytest

from bshrink.errors import FitDivergence
from bshrink.models.oracle import NumPyroOracle, inverse_link
from bshrink.models.priors import PRIORS, prior_label, resolve_prior


def _synthetic_regression(seed: int = 0) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    rng = np.random.default_rng(seed)
    n, p = 40, 6
    X = rng.normal(size=(n, p)).astype(np.float32)
    beta = np.array([2.0, 0.0, 0.0, -1.5, 0.0, 0.75], dtype=np.float32)
    noise = rng.normal(scale=0.1, size=n).astype(np.float32)
    y = (X @ beta + noise).astype(np.float32)
    return X, y, beta


def test_registry_names_and_aliases():
    assert set(PRIORS) == {"horseshoe", "horseshoe_plus", "ridge", "lasso"}
    assert resolve_prior("HS+") == "horseshoe_plus"
    assert resolve_prior("blasso") == "lasso"
    assert prior_label("hs") == "Horseshoe"
    with pytest.raises(ValueError):
        resolve_prior("spike_and_slab")


@pytest.mark.parametrize("prior", ["horseshoe", "horseshoe_plus", "ridge", "lasso"])
def test_gaussian_fit_prefers_signal_features(prior):
    X, y, _ = _synthetic_regression(seed=123)
    oracle = NumPyroOracle(target_accept_prob=0.9)
    fit = oracle.fit(X, y, family="gaussian", prior=prior, seed=2024, burn_in=150, num_samples=150)

    assert fit.coef_samples.shape == (150, X.shape[1])
    assert fit.intercept_samples.shape == (150,)
    assert fit.sigma_samples is not None
    assert "tau" in fit.extra_samples
    assert np.isfinite(fit.rmse) and fit.rmse >= 0

    coef = fit.coef_samples.mean(axis=0)
    active_mean = float(np.mean(np.abs(coef[[0, 3, 5]])))
    inactive_mean = float(np.mean(np.abs(coef[[1, 2, 4]])))
    assert active_mean > inactive_mean


def test_same_seed_gives_identical_draws():
    X, y, _ = _synthetic_regression(seed=5)
    oracle = NumPyroOracle()
    a = oracle.fit(X, y, family="gaussian", prior="horseshoe", seed=11, burn_in=50, num_samples=40)
    b = oracle.fit(X, y, family="gaussian", prior="horseshoe", seed=11, burn_in=50, num_samples=40)
    np.testing.assert_array_equal(a.coef_samples, b.coef_samples)
    assert a.rmse == b.rmse


def test_logistic_and_poisson_families_run():
    X, y, _ = _synthetic_regression(seed=9)
    labels = (y >= np.median(y)).astype(np.float32)
    counts = np.round(np.exp(0.3 * X[:, 0])).astype(np.float32)
    oracle = NumPyroOracle()

    logit = oracle.fit(X, labels, family="logistic", prior="ridge", seed=1, burn_in=60, num_samples=50)
    pois = oracle.fit(X, counts, family="poisson", prior="lasso", seed=1, burn_in=60, num_samples=50)

    for fit in (logit, pois):
        assert fit.coef_samples.shape == (50, X.shape[1])
        assert fit.sigma_samples is None
        assert np.all(np.isfinite(fit.coef_samples))
    assert "lambda_sq" in pois.extra_samples


def test_thinning_reduces_draws():
    X, y, _ = _synthetic_regression(seed=2)
    fit = NumPyroOracle(thinning=5).fit(X, y, family="gaussian", prior="ridge", seed=0, burn_in=40, num_samples=50)
    assert fit.coef_samples.shape == (10, X.shape[1])
    assert fit.diagnostics["thinning"] == 5


def test_invalid_inputs_are_rejected():
    X, y, _ = _synthetic_regression()
    oracle = NumPyroOracle()
    with pytest.raises(ValueError):
        oracle.fit(X, y[:-1], family="gaussian", prior="ridge", seed=0, burn_in=10, num_samples=10)
    with pytest.raises(ValueError):
        oracle.fit(X, y, family="gamma", prior="ridge", seed=0, burn_in=10, num_samples=10)
    with pytest.raises(ValueError):
        oracle.fit(X, y, family="gaussian", prior="ridge", seed=0, burn_in=0, num_samples=10)
    with pytest.raises(ValueError):
        NumPyroOracle(thinning=0)


def test_inverse_link():
    eta = np.array([-1.0, 0.0, 2.0])
    np.testing.assert_allclose(inverse_link(eta, "gaussian"), eta)
    np.testing.assert_allclose(inverse_link(eta, "logistic"), 1.0 / (1.0 + np.exp(-eta)))
    np.testing.assert_allclose(inverse_link(eta, "poisson"), np.exp(eta))


def test_inputs_overflowing_float32_raise_fit_divergence():
    X, _, _ = _synthetic_regression(seed=4)
    counts = np.ones(X.shape[0])
    counts[0] = np.round(np.exp(100.0))
    with pytest.raises(FitDivergence):
        NumPyroOracle().fit(X, counts, family="poisson", prior="horseshoe", seed=0, burn_in=20, num_samples=10)


def test_sampler_start_failure_becomes_fit_divergence(monkeypatch):
    from numpyro.infer import MCMC

    def _no_valid_start(self, *args, **kwargs):
        raise RuntimeError("Cannot find valid initial parameters. Please check your model again.")

    monkeypatch.setattr(MCMC, "run", _no_valid_start)
    X, y, _ = _synthetic_regression(seed=6)
    with pytest.raises(FitDivergence) as info:
        NumPyroOracle().fit(X, y, family="gaussian", prior="lasso", seed=0, burn_in=10, num_samples=10)
    assert info.value.prior == "lasso"
