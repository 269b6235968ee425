"""Shrinkage priors, fitting oracles and fit results."""
