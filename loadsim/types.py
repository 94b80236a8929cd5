"""Core data types for LoadSim.

This module is the SINGLE SOURCE OF TRUTH for:
  - AGENT_DTYPE: NumPy structured array dtype for living individuals
  - MutationType / Mutation records and the Zygosity enumeration
  - GenomicMap: gene layout, mutation-rate and recombination-rate maps
  - Report row records produced by analytics and consumed by output

All modules import these types from here. No other module defines agent fields.
"""

from dataclasses import dataclass
from enum import IntEnum
from functools import cached_property
from typing import FrozenSet, Optional

import numpy as np


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS & CONSTANTS
# ═══════════════════════════════════════════════════════════════════════

class Zygosity(IntEnum):
    """Genotype of one individual at one mutation."""
    HOM_REF = 0   # carried by neither genome
    HET     = 1   # carried by exactly one genome
    HOM_ALT = 2   # carried by both genomes


NEUTRAL_TYPE_ID = 0       # the single s = 0 mutation type
NEUTRAL_DOMINANCE = 0.5

Genome = FrozenSet[int]   # set of mutation ids carried by one haplotype


# ═══════════════════════════════════════════════════════════════════════
# MUTATIONS
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class MutationType:
    """A (dominance, selection) class registered once at initialization."""
    id: int
    h: float      # dominance coefficient ∈ [0, 0.5]
    s: float      # selection coefficient; 0 for neutral, < 0 otherwise

    @property
    def is_neutral(self) -> bool:
        return self.s == 0.0


@dataclass(frozen=True)
class Mutation:
    """A mutation instance injected by the engine at one genomic site."""
    id: int
    type_id: int
    position: int
    origin_generation: int


# ═══════════════════════════════════════════════════════════════════════
# AGENT_DTYPE: structured array for living individuals
# ═══════════════════════════════════════════════════════════════════════

AGENT_DTYPE = np.dtype([
    ('id',       np.int64),     # unique individual id (pedigree id)
    ('age',      np.int32),     # generations lived; newborns are 0
    ('fitness',  np.float64),   # cached multiplicative fitness, set at birth
    ('survival', np.float64),   # survival probability for the current cycle
])


def allocate_agents(n: int) -> np.ndarray:
    """Allocate a zeroed agent array of length ``n``."""
    return np.zeros(n, dtype=AGENT_DTYPE)


# ═══════════════════════════════════════════════════════════════════════
# GENOMIC MAP
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class GenomicMap:
    """Segmented genome: genes separated by single inert breakpoint sites.

    Rate maps follow the (ends, rates) convention: ``rates[i]`` applies to
    every position in ``(ends[i-1], ends[i]]``. For recombination the rate at
    position x is the probability of a crossover between x and x + 1.

    The engine reads only these two tables. Breakpoints are the intervals
    with a non-zero recombination rate, each of which is a single site, and
    new mutations land in an interval with probability proportional to
    rate × interval length.

    Invariant: recombination is zero inside genes; the only breakpoints are
    the gap sites, with rate 0.5 between chromosome groups.
    """
    gene_length: int
    n_genes: int
    n_chromosomes: int
    gene_starts: np.ndarray          # (n_genes,) int64
    gene_ends: np.ndarray            # (n_genes,) int64, inclusive
    gene_chromosome: np.ndarray      # (n_genes,) int64
    mutation_ends: np.ndarray
    mutation_rates: np.ndarray
    recombination_ends: np.ndarray
    recombination_rates: np.ndarray

    @property
    def length(self) -> int:
        """Number of sites from position 0 to the last gene's end."""
        return int(self.gene_ends[-1]) + 1

    @property
    def n_coding_sites(self) -> int:
        return self.n_genes * self.gene_length

    # ── Recombination ─────────────────────────────────────────────────

    @cached_property
    def breakpoints(self) -> np.ndarray:
        """Positions x with a crossover chance between x and x + 1."""
        return self.recombination_ends[self.recombination_rates > 0.0]

    @cached_property
    def breakpoint_rates(self) -> np.ndarray:
        return self.recombination_rates[self.recombination_rates > 0.0]

    def segment_of(self, positions: np.ndarray) -> np.ndarray:
        """Index of the inter-breakpoint segment each position falls in."""
        return np.searchsorted(self.breakpoints, positions, side='left')

    # ── Mutation ──────────────────────────────────────────────────────

    @cached_property
    def mutation_starts(self) -> np.ndarray:
        return np.concatenate(([0], self.mutation_ends[:-1] + 1)).astype(np.int64)

    @cached_property
    def _mutation_weights(self) -> np.ndarray:
        lengths = self.mutation_ends - self.mutation_starts + 1
        return self.mutation_rates * lengths

    @property
    def expected_mutations(self) -> float:
        """Mean number of new mutations per gamete, Σ rate × interval length."""
        return float(self._mutation_weights.sum())

    def draw_mutation_positions(self, rng: np.random.Generator, n: int) -> np.ndarray:
        """``n`` positions drawn from the mutation-rate map."""
        weights = self._mutation_weights
        interval = rng.choice(len(weights), size=n, p=weights / weights.sum())
        lengths = self.mutation_ends[interval] - self.mutation_starts[interval] + 1
        return self.mutation_starts[interval] + rng.integers(0, lengths)


# ═══════════════════════════════════════════════════════════════════════
# REPORT ROWS: produced by analytics, serialized by output
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class PopulationLoadRow:
    """Population-level load decomposition at one generation."""
    generation: int
    n_alive: int
    target_ne: int
    soft_capacity: float
    mean_fitness: float
    sd_fitness: float
    n_segregating: int
    total_load: float
    realized_load: float
    masked_load: float


@dataclass
class IndividualLoadRow:
    """Per-individual load decomposition for a random subsample."""
    generation: int
    n_sampled: int
    mean_total_load: float
    mean_realized_load: float
    mean_masked_load: float
    n_mutations: np.ndarray          # Lmut per sampled individual
    f_hom: np.ndarray                # f11
    f_het: np.ndarray                # f01
    total_load: np.ndarray
    realized_load: np.ndarray
    masked_load: np.ndarray


@dataclass
class MutationSummaryRow:
    """Per-mutation attributes for the population or a subsample."""
    generation: int
    scope: str                       # 'population' or 'sample'
    n_sampled: int                   # individuals sampled (0 for population)
    type_ids: np.ndarray
    ids: np.ndarray
    abs_s: np.ndarray
    h: np.ndarray
    origin_generation: np.ndarray
    frequency: np.ndarray
    hom_ref: Optional[np.ndarray] = None
    hom_alt: Optional[np.ndarray] = None
    het: Optional[np.ndarray] = None

    @property
    def n_mutations(self) -> int:
        return len(self.ids)


@dataclass
class DiversityRow:
    """Windowed heterozygosity (π) from neutral mutations."""
    generation: int
    n_sampled: int
    window_width: int
    window_starts: np.ndarray
    pi: np.ndarray
