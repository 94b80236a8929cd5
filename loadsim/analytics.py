"""Genetic load and diversity analytics.

Read-only reports computed from the living population after survival:

  Population load (over every non-neutral mutation, frequency f):
      total    = Σ f·|s|
      realized = Σ f²·|s| + 2·Σ f(1−f)·|s|·h
      masked   = total − realized

  Individual load (over one individual's Lmut unique non-neutral mutations,
  f11 / f01 = homozygous / heterozygous fractions):
      realized = Lmut·(f11·sHom + f01·shHet)
      masked   = Lmut·f01·(0.5·sHet − shHet)
      total    = Lmut·(f11·sHom + 0.5·f01·sHet)
  where sHom, sHet are mean |s| and shHet the mean |s|·h within each class
  (0 for an empty class).

  The two decompositions are separate computations: the individual one is
  not the population one evaluated on a single individual.

  Mutation summaries: per-mutation attributes and frequency, optionally
  with genotype proportions across all individuals.

  Windowed π: per fixed-width window, the number of distinct neutral sites
  at which an individual's two genomes differ, divided by the window width,
  averaged over a random sample of individuals.

Calling any report twice in the same generation gives the same numbers,
apart from the randomness of subsampling.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from loadsim.engine import Engine
from loadsim.types import (
    NEUTRAL_TYPE_ID,
    DiversityRow,
    Genome,
    IndividualLoadRow,
    MutationSummaryRow,
    PopulationLoadRow,
    Zygosity,
)


# ═══════════════════════════════════════════════════════════════════════
# POPULATION LOAD
# ═══════════════════════════════════════════════════════════════════════


def population_load(
    f: np.ndarray,
    s: np.ndarray,
    h: np.ndarray,
) -> Tuple[float, float, float]:
    """Population-level (total, realized, masked) load.

    Args:
        f: Mutation frequencies in [0, 1].
        s: Selection coefficients (sign ignored).
        h: Dominance coefficients.

    Returns:
        (total, realized, masked).
    """
    f = np.asarray(f, dtype=np.float64)
    abs_s = np.abs(np.asarray(s, dtype=np.float64))
    h = np.asarray(h, dtype=np.float64)

    total = float(np.sum(f * abs_s))
    realized = float(np.sum(f * f * abs_s) + 2.0 * np.sum(f * (1.0 - f) * abs_s * h))
    masked = total - realized
    return total, realized, masked


def _fitness_moments(fitness: np.ndarray) -> Tuple[float, float]:
    n = len(fitness)
    if n == 0:
        return 0.0, 0.0
    sd = float(np.std(fitness, ddof=1)) if n > 1 else 0.0
    return float(np.mean(fitness)), sd


def summarize_population(
    engine: Engine,
    generation: int,
    target_ne: int,
    soft_capacity: float,
) -> PopulationLoadRow:
    """Load decomposition and fitness moments for the whole population."""
    freqs = engine.mutation_frequencies()
    ids = sorted(m for m in freqs if not engine.is_neutral(m))
    attrs = engine.mutation_arrays(ids)
    f = np.array([freqs[m] for m in ids], dtype=np.float64)
    total, realized, masked = population_load(f, attrs['s'], attrs['h'])
    mean_w, sd_w = _fitness_moments(engine.agents['fitness'])

    return PopulationLoadRow(
        generation=generation,
        n_alive=engine.n_alive,
        target_ne=int(target_ne),
        soft_capacity=float(soft_capacity),
        mean_fitness=mean_w,
        sd_fitness=sd_w,
        n_segregating=int(np.count_nonzero((f > 0.0) & (f < 1.0))),
        total_load=total,
        realized_load=realized,
        masked_load=masked,
    )


# ═══════════════════════════════════════════════════════════════════════
# ZYGOSITY
# ═══════════════════════════════════════════════════════════════════════


def classify_zygosity(genome1: Genome, genome2: Genome, mutation_id: int) -> Zygosity:
    """Genotype of one individual at one mutation."""
    copies = (mutation_id in genome1) + (mutation_id in genome2)
    return Zygosity(copies)


def classify_mutations(
    genome1: Genome,
    genome2: Genome,
    mutation_ids: Sequence[int],
) -> np.ndarray:
    """Vectorized :func:`classify_zygosity`; returns int8 Zygosity codes."""
    return np.fromiter(
        (classify_zygosity(genome1, genome2, m) for m in mutation_ids),
        dtype=np.int8,
        count=len(mutation_ids),
    )


# ═══════════════════════════════════════════════════════════════════════
# INDIVIDUAL LOAD
# ═══════════════════════════════════════════════════════════════════════


def individual_load(
    lmut: float,
    f11: float,
    f01: float,
    s_hom: float,
    s_het: float,
    sh_het: float,
) -> Tuple[float, float, float]:
    """Individual-level (total, realized, masked) load.

    Args:
        lmut: Number of unique non-neutral mutations carried.
        f11: Fraction of them carried homozygously.
        f01: Fraction carried heterozygously.
        s_hom: Mean |s| over homozygous mutations.
        s_het: Mean |s| over heterozygous mutations.
        sh_het: Mean |s|·h over heterozygous mutations.
    """
    realized = lmut * (f11 * s_hom + f01 * sh_het)
    masked = lmut * f01 * (0.5 * s_het - sh_het)
    total = lmut * (f11 * s_hom + 0.5 * f01 * s_het)
    return total, realized, masked


@dataclass
class IndividualLoadComponents:
    """Inputs of :func:`individual_load` for one individual."""
    lmut: int = 0
    f11: float = 0.0
    f01: float = 0.0
    s_hom: float = 0.0
    s_het: float = 0.0
    sh_het: float = 0.0

    def loads(self) -> Tuple[float, float, float]:
        return individual_load(self.lmut, self.f11, self.f01,
                               self.s_hom, self.s_het, self.sh_het)


def _mean_or_zero(values: np.ndarray) -> float:
    return float(np.mean(values)) if len(values) else 0.0


def individual_load_components(
    genome1: Genome,
    genome2: Genome,
    selection: Mapping[int, Tuple[float, float]],
) -> IndividualLoadComponents:
    """Classify one individual's non-neutral mutations and average |s|, |s|·h.

    Args:
        genome1, genome2: The individual's two genomes.
        selection: {mutation_id: (s, h)} for non-neutral mutations; ids not
            present (neutral mutations) are ignored.
    """
    ids = [m for m in genome1 | genome2 if m in selection]
    lmut = len(ids)
    if lmut == 0:
        return IndividualLoadComponents()

    zyg = classify_mutations(genome1, genome2, ids)
    sh = np.array([selection[m] for m in ids], dtype=np.float64)
    abs_s = np.abs(sh[:, 0])
    h = sh[:, 1]
    hom = zyg == Zygosity.HOM_ALT
    het = zyg == Zygosity.HET

    return IndividualLoadComponents(
        lmut=lmut,
        f11=float(np.count_nonzero(hom)) / lmut,
        f01=float(np.count_nonzero(het)) / lmut,
        s_hom=_mean_or_zero(abs_s[hom]),
        s_het=_mean_or_zero(abs_s[het]),
        sh_het=_mean_or_zero(abs_s[het] * h[het]),
    )


def selection_lookup(engine: Engine) -> Dict[int, Tuple[float, float]]:
    """{mutation_id: (s, h)} for every non-neutral mutation in the registry."""
    lookup = {}
    for m in engine.mutations.values():
        if m.type_id != NEUTRAL_TYPE_ID:
            mt = engine.mutation_type(m.type_id)
            lookup[m.id] = (mt.s, mt.h)
    return lookup


def summarize_individuals(
    engine: Engine,
    rng: np.random.Generator,
    generation: int,
    sample_size: int = 20,
) -> IndividualLoadRow:
    """Individual load decomposition for a random subsample."""
    idx = engine.sample(rng, sample_size)
    selection = selection_lookup(engine)
    comps = [individual_load_components(*engine.genomes[i], selection) for i in idx]
    loads = np.array([c.loads() for c in comps], dtype=np.float64).reshape(-1, 3)

    return IndividualLoadRow(
        generation=generation,
        n_sampled=len(comps),
        mean_total_load=_mean_or_zero(loads[:, 0]),
        mean_realized_load=_mean_or_zero(loads[:, 1]),
        mean_masked_load=_mean_or_zero(loads[:, 2]),
        n_mutations=np.array([c.lmut for c in comps], dtype=np.int64),
        f_hom=np.array([c.f11 for c in comps], dtype=np.float64),
        f_het=np.array([c.f01 for c in comps], dtype=np.float64),
        total_load=loads[:, 0].copy(),
        realized_load=loads[:, 1].copy(),
        masked_load=loads[:, 2].copy(),
    )


# ═══════════════════════════════════════════════════════════════════════
# MUTATION SUMMARIES
# ═══════════════════════════════════════════════════════════════════════


def genotype_proportions(
    genomes: Sequence[Tuple[Genome, Genome]],
    mutation_ids: Sequence[int],
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Fraction of individuals hom-ref / hom-alt / het at each mutation.

    Returns:
        (hom_ref, hom_alt, het), each (len(mutation_ids),) float64.
    """
    n = len(genomes)
    k = len(mutation_ids)
    if n == 0:
        return np.zeros(k), np.zeros(k), np.zeros(k)
    hom_alt: Counter = Counter()
    het: Counter = Counter()
    for g1, g2 in genomes:
        hom_alt.update(g1 & g2)
        het.update(g1 ^ g2)
    alt = np.array([hom_alt[m] for m in mutation_ids], dtype=np.float64) / n
    het_frac = np.array([het[m] for m in mutation_ids], dtype=np.float64) / n
    return 1.0 - alt - het_frac, alt, het_frac


def subsample_mutation_ids(
    engine: Engine,
    rng: np.random.Generator,
    sample_size: int = 20,
) -> Tuple[List[int], int]:
    """Unique mutations carried by a random subsample of individuals.

    Returns:
        (sorted mutation ids, number of individuals sampled)
    """
    idx = engine.sample(rng, sample_size)
    carried = set()
    for i in idx:
        g1, g2 = engine.genomes[i]
        carried.update(g1)
        carried.update(g2)
    return sorted(carried), len(idx)


def summarize_mutations(
    engine: Engine,
    generation: int,
    mutation_ids: Optional[Sequence[int]] = None,
    report_genotypes: bool = False,
    scope: str = 'population',
    n_sampled: int = 0,
) -> MutationSummaryRow:
    """Per-mutation type id, id, |s|, h, origin and population frequency.

    Args:
        engine: Host engine.
        generation: Generation being reported.
        mutation_ids: Mutations to report; all segregating or fixed
            mutations in the population if None.
        report_genotypes: Also compute hom-ref / hom-alt / het proportions
            across every living individual (one pass over all genomes).
        scope: 'population' or 'sample', recorded in the row.
        n_sampled: Individuals sampled to obtain ``mutation_ids``.
    """
    freqs = engine.mutation_frequencies()
    if mutation_ids is None:
        mutation_ids = sorted(freqs)
    else:
        mutation_ids = sorted(mutation_ids)
    attrs = engine.mutation_arrays(mutation_ids)

    row = MutationSummaryRow(
        generation=generation,
        scope=scope,
        n_sampled=n_sampled,
        type_ids=attrs['type_id'],
        ids=attrs['id'],
        abs_s=np.abs(attrs['s']),
        h=attrs['h'],
        origin_generation=attrs['origin_generation'],
        frequency=np.array([freqs.get(m, 0.0) for m in mutation_ids], dtype=np.float64),
    )
    if report_genotypes:
        row.hom_ref, row.hom_alt, row.het = genotype_proportions(engine.genomes,
                                                                 mutation_ids)
    return row


# ═══════════════════════════════════════════════════════════════════════
# WINDOWED HETEROZYGOSITY (π)
# ═══════════════════════════════════════════════════════════════════════


def window_bounds(genome_length: int, window_width: int) -> Tuple[np.ndarray, np.ndarray]:
    """(starts, widths) of consecutive windows covering [0, genome_length).

    The last window is truncated at the genome end.
    """
    if window_width < 1:
        raise ValueError(f"window_width must be >= 1, got {window_width}")
    if genome_length < 1:
        raise ValueError(f"genome_length must be >= 1, got {genome_length}")
    starts = np.arange(0, genome_length, window_width, dtype=np.int64)
    widths = np.minimum(starts + window_width, genome_length) - starts
    return starts, widths


def pi_from_positions(
    het_positions: Sequence[np.ndarray],
    genome_length: int,
    window_width: int,
) -> Tuple[np.ndarray, np.ndarray]:
    """Mean per-window heterozygosity from per-individual heterozygous sites.

    Args:
        het_positions: One array per individual of positions at which its
            two genomes differ. Repeated positions count once.
        genome_length: Sites covered by the windows.
        window_width: Window width in sites.

    Returns:
        (window_starts, pi), pi in [0, 1] for every window.
    """
    starts, widths = window_bounds(genome_length, window_width)
    n_windows = len(starts)
    if len(het_positions) == 0:
        return starts, np.zeros(n_windows, dtype=np.float64)

    per_individual = np.empty((len(het_positions), n_windows), dtype=np.float64)
    for i, pos in enumerate(het_positions):
        sites = np.unique(np.asarray(pos, dtype=np.int64))
        sites = sites[(sites >= 0) & (sites < genome_length)]
        counts = np.bincount(sites // window_width, minlength=n_windows)
        per_individual[i] = counts / widths
    return starts, per_individual.mean(axis=0)


def neutral_het_positions(engine: Engine, genome1: Genome, genome2: Genome) -> np.ndarray:
    """Positions of neutral mutations in the symmetric difference of two genomes."""
    diff = [m for m in genome1 ^ genome2 if engine.is_neutral(m)]
    return np.fromiter((engine.mutation(m).position for m in diff),
                       dtype=np.int64, count=len(diff))


def windowed_pi(
    engine: Engine,
    rng: np.random.Generator,
    generation: int,
    window_width: int,
    sample_size: int = 20,
) -> DiversityRow:
    """Windowed π from neutral mutations in a random sample of individuals."""
    idx = engine.sample(rng, sample_size)
    positions = [neutral_het_positions(engine, *engine.genomes[i]) for i in idx]
    starts, pi = pi_from_positions(positions, engine.genomic_map.length, window_width)
    return DiversityRow(
        generation=generation,
        n_sampled=len(idx),
        window_width=window_width,
        window_starts=starts,
        pi=pi,
    )
