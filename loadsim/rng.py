"""Seeded RNG factory for reproducible simulations.

Uses NumPy's SeedSequence → PCG64 hierarchy to guarantee:
  - Statistical independence between named streams
  - Bit-exact replay with the same master seed
  - Subsampling in analytics never perturbs reproduction or mutation draws

References:
  - NumPy docs: numpy.random.SeedSequence
"""

from __future__ import annotations

from typing import Dict

import numpy as np

# Order matters: a stream's position in this tuple fixes its child seed.
STREAM_NAMES = (
    'architecture',   # gamma draws, lethal placement
    'mutation',       # crossing breakpoints, new mutation injection
    'reproduction',   # parent draws
    'survival',       # density-dependent survival of newborns
    'analytics',      # individual subsampling for reports
)


def create_rng_hierarchy(master_seed: int) -> Dict[str, np.random.Generator]:
    """Create one independent RNG stream per simulation concern.

    Args:
        master_seed: Master RNG seed (non-negative integer).

    Returns:
        Dictionary mapping stream names (see ``STREAM_NAMES``) to numpy
        Generator instances.

    Example:
        >>> rngs = create_rng_hierarchy(42)
        >>> rngs['reproduction'].integers(0, 100)
    """
    if master_seed < 0:
        raise ValueError(f"master_seed must be non-negative, got {master_seed}")
    ss = np.random.SeedSequence(master_seed)
    child_seeds = ss.spawn(len(STREAM_NAMES))
    return {
        name: np.random.Generator(np.random.PCG64(child))
        for name, child in zip(STREAM_NAMES, child_seeds)
    }
