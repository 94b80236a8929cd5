"""Genetic architecture: deleterious mutation catalog and genome map.

Builds, once per run and before generation 1:
  - A catalog of ``n_deleterious`` mutation types with selection
    coefficients drawn from a gamma DFE (mean |s| = 0.05, shape 0.5),
    of which a fixed fraction is overwritten with a lethal s = −1
  - Dominance from the monotone mapping h = 0.5 × 10^(−13·|s|): nearly
    lethal mutations are nearly fully recessive, weak ones nearly additive
  - One neutral type (h = 0.5, s = 0)
  - Relative mutation-type weights: neutral : deleterious = 1 : 2.31,
    the deleterious share split evenly across the catalog
  - A segmented genome of genes separated by single inert breakpoint
    sites, grouped into freely assorting chromosome groups

Nothing produced here is modified after initialization.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

import numpy as np

from loadsim.config import ArchitectureSection
from loadsim.types import (
    NEUTRAL_DOMINANCE,
    NEUTRAL_TYPE_ID,
    GenomicMap,
    MutationType,
)


# ═══════════════════════════════════════════════════════════════════════
# CONSTANTS
# ═══════════════════════════════════════════════════════════════════════

LETHAL_S: float = -1.0
FREE_RECOMBINATION: float = 0.5       # independent assortment between groups
DOMINANCE_SCALE: float = 13.0


# ═══════════════════════════════════════════════════════════════════════
# SELECTION & DOMINANCE COEFFICIENTS
# ═══════════════════════════════════════════════════════════════════════


def draw_selection_coefficients(
    rng: np.random.Generator,
    n_deleterious: int,
    mean: float = 0.05,
    shape: float = 0.5,
    lethal_fraction: float = 0.05,
    lethal_s: float = LETHAL_S,
) -> np.ndarray:
    """Draw the deleterious catalog's selection coefficients.

    s = −Gamma(shape, scale = mean / shape), sorted; then
    round(lethal_fraction × n) entries chosen uniformly at random are set
    to ``lethal_s`` and the vector is sorted again (most deleterious first).

    Args:
        rng: NumPy random Generator (for reproducibility).
        n_deleterious: Catalog size.
        mean: Mean |s| of the gamma distribution.
        shape: Gamma shape parameter.
        lethal_fraction: Fraction of entries forced to ``lethal_s``.
        lethal_s: Lethal selection coefficient.

    Returns:
        (n_deleterious,) float64, ascending, all strictly negative.
    """
    if n_deleterious < 1:
        raise ValueError(f"n_deleterious must be >= 1, got {n_deleterious}")
    if mean <= 0 or shape <= 0:
        raise ValueError(f"gamma mean and shape must be positive, got {mean}, {shape}")
    if not 0.0 <= lethal_fraction <= 1.0:
        raise ValueError(f"lethal_fraction must be in [0, 1], got {lethal_fraction}")

    s = -rng.gamma(shape, scale=mean / shape, size=n_deleterious)
    # A gamma draw can underflow to exactly 0; keep every catalog entry deleterious.
    s = np.minimum(s, -np.finfo(np.float64).tiny)
    s.sort()

    n_lethal = int(round(lethal_fraction * n_deleterious))
    if n_lethal > 0:
        lethal_idx = rng.choice(n_deleterious, size=n_lethal, replace=False)
        s[lethal_idx] = lethal_s
        s.sort()
    return s


def dominance_from_selection(
    s: np.ndarray,
    scale: float = DOMINANCE_SCALE,
) -> np.ndarray:
    """h = 0.5 × 10^(−scale·|s|); monotone non-increasing in |s|.

    Accepts scalars or arrays; returns the same shape.
    """
    return NEUTRAL_DOMINANCE * np.power(10.0, -scale * np.abs(s))


# ═══════════════════════════════════════════════════════════════════════
# MUTATION-TYPE CATALOG
# ═══════════════════════════════════════════════════════════════════════


def build_mutation_types(
    s: np.ndarray,
    dominance_scale: float = DOMINANCE_SCALE,
) -> Dict[int, MutationType]:
    """Register the neutral type (id 0) plus one type per coefficient.

    Returns:
        {type_id: MutationType} with ``len(s) + 1`` entries; deleterious
        ids run 1..len(s) in the order of ``s``.
    """
    h = dominance_from_selection(s, dominance_scale)
    types = {NEUTRAL_TYPE_ID: MutationType(NEUTRAL_TYPE_ID, NEUTRAL_DOMINANCE, 0.0)}
    for i, (h_i, s_i) in enumerate(zip(h, s), start=1):
        types[i] = MutationType(i, float(h_i), float(s_i))
    return types


def mutation_type_weights(
    n_deleterious: int,
    neutral_weight: float = 1.0,
    deleterious_weight: float = 2.31,
) -> np.ndarray:
    """Probability that a new coding mutation is of each type.

    Index 0 is the neutral type; indices 1..n share ``deleterious_weight``
    evenly. Normalized to sum to 1.
    """
    raw = np.empty(n_deleterious + 1, dtype=np.float64)
    raw[0] = neutral_weight
    raw[1:] = deleterious_weight / n_deleterious
    return raw / raw.sum()


# ═══════════════════════════════════════════════════════════════════════
# GENOMIC MAP
# ═══════════════════════════════════════════════════════════════════════


def build_genomic_map(
    gene_length: int,
    n_genes: int,
    n_chromosomes: int,
    recombination_rate: float,
    mutation_rate: float,
) -> GenomicMap:
    """Lay out ``n_genes`` genes with a 1-site inert gap after each gene.

    Gene i occupies [i·(L+1), i·(L+1) + L − 1]; its gap is i·(L+1) + L.
    Mutation rate is ``mutation_rate`` inside genes and 0 at gaps.
    Recombination is 0 inside genes, ``recombination_rate`` at a gap within a
    chromosome group and 0.5 at the gap joining two groups.

    Raises:
        ValueError: If a length, count or rate is non-positive, or if the gene
            count is not a multiple of the chromosome-group count.
    """
    if gene_length < 1 or n_genes < 1 or n_chromosomes < 1:
        raise ValueError(
            f"gene_length, n_genes and n_chromosomes must be >= 1, got "
            f"{gene_length}, {n_genes}, {n_chromosomes}"
        )
    if recombination_rate <= 0 or mutation_rate <= 0:
        raise ValueError(
            f"recombination_rate and mutation_rate must be positive, got "
            f"{recombination_rate}, {mutation_rate}"
        )
    if n_genes % n_chromosomes != 0:
        raise ValueError(
            f"n_genes ({n_genes}) must be divisible by n_chromosomes ({n_chromosomes})"
        )

    stride = gene_length + 1
    gene_starts = np.arange(n_genes, dtype=np.int64) * stride
    gene_ends = gene_starts + gene_length - 1
    genes_per_chr = n_genes // n_chromosomes
    gene_chromosome = np.arange(n_genes, dtype=np.int64) // genes_per_chr

    # Gaps between consecutive genes; the last gene has no trailing gap.
    gaps = gene_ends[:-1] + 1
    joins_groups = gene_chromosome[1:] != gene_chromosome[:-1]
    gap_rates = np.where(joins_groups, FREE_RECOMBINATION, recombination_rate)

    # (ends, rates) maps: one interval per gene, one per gap.
    n_intervals = 2 * n_genes - 1
    ends = np.empty(n_intervals, dtype=np.int64)
    ends[0::2] = gene_ends
    ends[1::2] = gaps

    mutation_rates = np.zeros(n_intervals, dtype=np.float64)
    mutation_rates[0::2] = mutation_rate

    recombination_rates = np.zeros(n_intervals, dtype=np.float64)
    recombination_rates[1::2] = gap_rates

    return GenomicMap(
        gene_length=gene_length,
        n_genes=n_genes,
        n_chromosomes=n_chromosomes,
        gene_starts=gene_starts,
        gene_ends=gene_ends,
        gene_chromosome=gene_chromosome,
        mutation_ends=ends,
        mutation_rates=mutation_rates,
        recombination_ends=ends.copy(),
        recombination_rates=recombination_rates,
    )


# ═══════════════════════════════════════════════════════════════════════
# FULL ARCHITECTURE
# ═══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, eq=False)
class GeneticArchitecture:
    """Immutable output of initialization: types, weights and genome map."""
    mutation_types: Dict[int, MutationType]
    type_weights: np.ndarray         # (n_types,) probabilities, index = type id
    genomic_map: GenomicMap

    @property
    def n_types(self) -> int:
        return len(self.mutation_types)

    def selection_arrays(self) -> Tuple[np.ndarray, np.ndarray]:
        """(s, h) arrays indexed by type id."""
        ids = sorted(self.mutation_types)
        s = np.array([self.mutation_types[i].s for i in ids], dtype=np.float64)
        h = np.array([self.mutation_types[i].h for i in ids], dtype=np.float64)
        return s, h


def initialize_architecture(
    section: ArchitectureSection,
    rng: np.random.Generator,
) -> GeneticArchitecture:
    """Build the mutation-type catalog and genomic map from configuration."""
    s = draw_selection_coefficients(
        rng,
        section.n_deleterious,
        mean=section.gamma_mean,
        shape=section.gamma_shape,
        lethal_fraction=section.lethal_fraction,
        lethal_s=section.lethal_s,
    )
    types = build_mutation_types(s, section.dominance_scale)
    weights = mutation_type_weights(
        section.n_deleterious,
        section.neutral_weight,
        section.deleterious_weight,
    )
    genomic_map = build_genomic_map(
        section.gene_length,
        section.n_genes,
        section.n_chromosomes,
        section.recombination_rate,
        section.mutation_rate,
    )
    return GeneticArchitecture(
        mutation_types=types,
        type_weights=weights,
        genomic_map=genomic_map,
    )
