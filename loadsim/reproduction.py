"""Random mating and non-overlapping generations.

Each generation:
  1. Exactly round(soft capacity) matings; both parents of every mating are
     drawn independently and uniformly with replacement from the living
     population (panmictic hermaphrodites, self-pairs allowed)
  2. One recombinant offspring per mating via the engine's crossing operator
  3. After reproduction, every individual older than zero gets survival
     scaling 0, so only newborns can enter the next generation

Uniform reproduction of a fixed count followed by removal of all parents
turns the engine's overlapping-generation cycle into discrete generations,
and makes the soft capacity act as the Ne control.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from loadsim.engine import Engine, ExtinctionError


def n_matings(soft_capacity: float) -> int:
    """Number of matings for a given soft capacity (at least one)."""
    return max(int(round(soft_capacity)), 1)


def draw_parents(
    rng: np.random.Generator,
    n_alive: int,
    n_offspring: int,
) -> Tuple[np.ndarray, np.ndarray]:
    """Independent uniform parent indices, with replacement.

    Returns:
        (first_parents, second_parents), each (n_offspring,) int64.
    """
    if n_alive < 1:
        raise ValueError("cannot draw parents from an empty population")
    first = rng.integers(0, n_alive, size=n_offspring)
    second = rng.integers(0, n_alive, size=n_offspring)
    return first, second


def reproduce(
    engine: Engine,
    rng: np.random.Generator,
    soft_capacity: float,
) -> np.ndarray:
    """Produce round(soft_capacity) offspring by random mating.

    Parents are drawn from the population as it stood before any offspring
    of this generation were added.

    Returns:
        Indices of the newborns in ``engine.agents``.

    Raises:
        ExtinctionError: If there are no living parents.
    """
    n_parents = engine.n_alive
    if n_parents == 0:
        raise ExtinctionError(engine.generation)
    first, second = draw_parents(rng, n_parents, n_matings(soft_capacity))
    offspring = [engine.cross(int(p1), int(p2)) for p1, p2 in zip(first, second)]
    return engine.add_offspring(offspring)


def enforce_non_overlapping(agents: np.ndarray) -> int:
    """Zero the survival scaling of every non-newborn. Modifies in place.

    Returns:
        Number of individuals condemned.
    """
    old = agents['age'] > 0
    agents['survival'][old] = 0.0
    return int(np.count_nonzero(old))
