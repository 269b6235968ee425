"""Exception types raised by the shrinkage-regression pipeline."""
from __future__ import annotations

__all__ = [
    "BShrinkError",
    "DataUnavailable",
    "AlignmentError",
    "EmptyDatasetError",
    "FitDivergence",
    "MetricUndefined",
]


class BShrinkError(RuntimeError):
    """Base class for pipeline failures."""


class DataUnavailable(BShrinkError):
    """Raised when a dataset resource cannot be fetched or parsed."""


class AlignmentError(BShrinkError):
    """Raised when feature and response tables disagree on sample identifiers."""


class EmptyDatasetError(BShrinkError):
    """Raised when filtering leaves no samples to model."""


class FitDivergence(BShrinkError):
    """Raised when the fitting oracle returns non-finite estimates."""

    def __init__(self, prior: str, message: str) -> None:
        super().__init__(f"{prior}: {message}")
        self.prior = prior


class MetricUndefined(BShrinkError):
    """Raised when a performance metric cannot be computed for the data at hand."""
