"""Bayesian shrinkage regression experiments (Horseshoe, Horseshoe+, Ridge, LASSO)."""

__version__ = "0.1.0"
