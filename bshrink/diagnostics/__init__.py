"""Posterior diagnostics for fitted shrinkage priors."""
