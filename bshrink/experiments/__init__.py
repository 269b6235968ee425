"""Fitting and orchestration of shrinkage-prior experiments."""
