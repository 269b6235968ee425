"""Regression and classification metrics leveraging sklearn implementations."""
from __future__ import annotations

import numpy as np
from sklearn.metrics import mean_squared_error, roc_auc_score


def _to_vector(arr: np.ndarray) -> np.ndarray:
    """Ensure flat numpy vector input for sklearn metrics."""
    return np.asarray(arr).reshape(-1)


def mse(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """Mean squared error."""
    return float(mean_squared_error(_to_vector(y_true), _to_vector(y_pred)))


def rmse(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """Root mean squared error."""
    return float(np.sqrt(mse(y_true, y_pred)))


def auroc(y_true: np.ndarray, score: np.ndarray) -> float:
    """Area under the ROC curve."""
    return float(roc_auc_score(_to_vector(y_true), _to_vector(score)))
