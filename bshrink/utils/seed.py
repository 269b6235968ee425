# bshrink/utils/seed.py
from __future__ import annotations

from typing import Optional

from jax import random as jrandom

DEFAULT_SEED = 2024


def resolve_seed(seed: Optional[int]) -> int:
    """Normalise an optional seed into a non-negative int."""
    if seed is None:
        return DEFAULT_SEED
    value = int(seed)
    if value < 0:
        raise ValueError(f"seed must be non-negative; got {seed!r}.")
    return value


def prng_key(seed: Optional[int]):
    """Fresh JAX PRNGKey; every fit receives its own key built from the same seed."""
    return jrandom.PRNGKey(resolve_seed(seed))
