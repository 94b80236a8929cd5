"""Host simulation engine: genomes, crossing, mutation and survival.

A minimal non-Wright-Fisher engine the load model runs inside:
  - Genomes are frozensets of mutation ids; mutation instances live in a
    registry that is pruned of lost mutations every generation
  - Crossing: one gamete per parent, crossovers only where the
    recombination map is non-zero, plus Poisson(Σ rate × interval length)
    new mutations per gamete placed by the mutation-rate map, with the
    catalog's type weights
  - Fitness: multiplicative, 1 + s for homozygotes and 1 + h·s for
    heterozygotes, cached on the agent at birth
  - Survival: soft selection. Each agent survives with probability
    fitness × scaling × (carrying_capacity / n_eligible), clipped to
    [0, 1], where agents whose ``survival`` scaling is 0 are not eligible
  - Generation cycle driven by hooks:
        first → reproduction → early → survival → late → aging

Ages increase after ``late`` so newborns report age 0 in every hook of the
generation they were born in.
"""

from __future__ import annotations

from collections import Counter
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from loadsim.architecture import GeneticArchitecture
from loadsim.types import (
    NEUTRAL_TYPE_ID,
    Genome,
    GenomicMap,
    Mutation,
    MutationType,
    allocate_agents,
)

HOOK_STAGES = ('first', 'reproduction', 'early', 'late')

Hook = Callable[['Engine'], None]
GenomePair = Tuple[Genome, Genome]

_EMPTY: Genome = frozenset()


class ExtinctionError(RuntimeError):
    """Raised when no living individuals remain to reproduce."""

    def __init__(self, generation: int):
        super().__init__(f"Population extinct at generation {generation}")
        self.generation = generation


class Engine:
    """Single-population forward simulator with hook-driven generations."""

    def __init__(
        self,
        mutation_rng: np.random.Generator,
        survival_rng: np.random.Generator,
    ):
        self._mutation_rng = mutation_rng
        self._survival_rng = survival_rng

        self.generation: int = 1
        self.finished: bool = False
        self.finished_generation: Optional[int] = None
        self.carrying_capacity: Optional[float] = None

        self.agents: np.ndarray = allocate_agents(0)
        self.genomes: List[GenomePair] = []

        self.mutation_types: Dict[int, MutationType] = {}
        self.type_weights: Optional[np.ndarray] = None
        self.genomic_map: Optional[GenomicMap] = None
        self.mutations: Dict[int, Mutation] = {}

        self._type_s = np.zeros(0)
        self._type_h = np.zeros(0)
        self._next_mutation_id = 0
        self._next_individual_id = 0
        self._hooks: Dict[str, List[Hook]] = {stage: [] for stage in HOOK_STAGES}

    # ── Initialization ────────────────────────────────────────────────

    def register_mutation_types(
        self,
        types: Dict[int, MutationType],
        weights: np.ndarray,
    ) -> None:
        """Install the mutation-type catalog. Type ids must be 0..n-1."""
        if sorted(types) != list(range(len(types))):
            raise ValueError("mutation type ids must be contiguous from 0")
        if len(weights) != len(types):
            raise ValueError(
                f"got {len(weights)} type weights for {len(types)} mutation types"
            )
        if not np.isclose(np.sum(weights), 1.0):
            raise ValueError("mutation type weights must sum to 1")
        self.mutation_types = dict(types)
        self.type_weights = np.asarray(weights, dtype=np.float64)
        self._type_s = np.array([types[i].s for i in range(len(types))])
        self._type_h = np.array([types[i].h for i in range(len(types))])

    def install_genomic_map(self, genomic_map: GenomicMap) -> None:
        self.genomic_map = genomic_map

    def install_architecture(self, architecture: GeneticArchitecture) -> None:
        """Register types, weights and map in one call."""
        self.register_mutation_types(architecture.mutation_types,
                                     architecture.type_weights)
        self.install_genomic_map(architecture.genomic_map)

    def create_population(self, n: int) -> None:
        """Found the population with ``n`` mutation-free individuals.

        Founders are one generation old, so generation 1 replaces them with
        their offspring like any other parental cohort.
        """
        if n < 1:
            raise ValueError(f"initial population size must be >= 1, got {n}")
        if self.genomic_map is None or not self.mutation_types:
            raise RuntimeError("install the genetic architecture before creating a population")
        self.agents = allocate_agents(0)
        self.genomes = []
        self.add_offspring([(_EMPTY, _EMPTY)] * n, age=1)

    def register_hook(self, stage: str, callback: Hook) -> None:
        if stage not in self._hooks:
            raise ValueError(f"unknown hook stage '{stage}'; expected one of {HOOK_STAGES}")
        self._hooks[stage].append(callback)

    # ── Accessors ─────────────────────────────────────────────────────

    @property
    def n_alive(self) -> int:
        return len(self.agents)

    def mutation(self, mutation_id: int) -> Mutation:
        return self.mutations[mutation_id]

    def mutation_type(self, type_id: int) -> MutationType:
        return self.mutation_types[type_id]

    def sample(self, rng: np.random.Generator, n: int) -> np.ndarray:
        """Indices of up to ``n`` living individuals, without replacement."""
        n = min(n, self.n_alive)
        return rng.choice(self.n_alive, size=n, replace=False)

    def mutation_counts(self) -> Counter:
        """Copies of each mutation across all living genomes."""
        counts: Counter = Counter()
        for g1, g2 in self.genomes:
            counts.update(g1)
            counts.update(g2)
        return counts

    def mutation_frequencies(self) -> Dict[int, float]:
        """Population frequency of every segregating or fixed mutation."""
        if self.n_alive == 0:
            return {}
        n_genomes = 2.0 * self.n_alive
        return {m: c / n_genomes for m, c in self.mutation_counts().items()}

    def mutation_arrays(self, ids: Sequence[int]) -> Dict[str, np.ndarray]:
        """Parallel arrays of registry attributes for ``ids``."""
        muts = [self.mutations[m] for m in ids]
        type_ids = np.array([m.type_id for m in muts], dtype=np.int64)
        return {
            'id': np.array([m.id for m in muts], dtype=np.int64),
            'type_id': type_ids,
            'position': np.array([m.position for m in muts], dtype=np.int64),
            'origin_generation': np.array([m.origin_generation for m in muts],
                                          dtype=np.int64),
            's': self._type_s[type_ids] if len(muts) else np.zeros(0),
            'h': self._type_h[type_ids] if len(muts) else np.zeros(0),
        }

    def is_neutral(self, mutation_id: int) -> bool:
        return self.mutations[mutation_id].type_id == NEUTRAL_TYPE_ID

    # ── Fitness ───────────────────────────────────────────────────────

    def fitness_of(self, genome1: Genome, genome2: Genome) -> float:
        """Multiplicative fitness: Π(1 + s) homozygous × Π(1 + h·s) heterozygous."""
        hom = genome1 & genome2
        het = genome1 ^ genome2
        w = 1.0
        if hom:
            t = np.fromiter((self.mutations[m].type_id for m in hom),
                            dtype=np.int64, count=len(hom))
            w *= float(np.prod(1.0 + self._type_s[t]))
        if het:
            t = np.fromiter((self.mutations[m].type_id for m in het),
                            dtype=np.int64, count=len(het))
            w *= float(np.prod(1.0 + self._type_h[t] * self._type_s[t]))
        return max(w, 0.0)

    # ── Crossing ──────────────────────────────────────────────────────

    def register_mutation(self, type_id: int, position: int) -> int:
        """Add a mutation of ``type_id`` at ``position`` to the registry.

        The mutation originates in the current generation. Returns its id.
        """
        if type_id not in self.mutation_types:
            raise ValueError(f"unknown mutation type {type_id}")
        mut = Mutation(self._next_mutation_id, int(type_id), int(position), self.generation)
        self.mutations[mut.id] = mut
        self._next_mutation_id += 1
        return mut.id

    def _new_mutations(self) -> List[int]:
        gmap = self.genomic_map
        rng = self._mutation_rng
        n_new = rng.poisson(gmap.expected_mutations)
        if n_new == 0:
            return []
        positions = gmap.draw_mutation_positions(rng, n_new)
        type_ids = rng.choice(len(self.type_weights), size=n_new, p=self.type_weights)
        return [self.register_mutation(t, pos)
                for t, pos in zip(type_ids.tolist(), positions.tolist())]

    def _gamete(self, genome_a: Genome, genome_b: Genome) -> Genome:
        """Recombine two parental genomes at the map's breakpoints."""
        gmap = self.genomic_map
        rng = self._mutation_rng
        first = int(rng.integers(2))
        n_bp = len(gmap.breakpoints)
        if n_bp:
            crossovers = rng.random(n_bp) < gmap.breakpoint_rates
            segment_strand = (first + np.concatenate(([0], np.cumsum(crossovers)))) % 2
        else:
            segment_strand = np.array([first])

        kept: List[int] = []
        for strand, genome in enumerate((genome_a, genome_b)):
            if not genome:
                continue
            ids = np.fromiter(genome, dtype=np.int64, count=len(genome))
            pos = np.fromiter((self.mutations[m].position for m in genome),
                              dtype=np.int64, count=len(genome))
            keep = segment_strand[gmap.segment_of(pos)] == strand
            kept.extend(ids[keep].tolist())
        kept.extend(self._new_mutations())
        return frozenset(kept)

    def cross(self, parent1: int, parent2: int) -> GenomePair:
        """One recombinant, newly mutated offspring genome pair from two parents."""
        g1a, g1b = self.genomes[parent1]
        g2a, g2b = self.genomes[parent2]
        return self._gamete(g1a, g1b), self._gamete(g2a, g2b)

    def add_offspring(
        self,
        genome_pairs: Iterable[GenomePair],
        age: int = 0,
    ) -> np.ndarray:
        """Append individuals (newborns by default); returns their indices."""
        genome_pairs = list(genome_pairs)
        n = len(genome_pairs)
        born = allocate_agents(n)
        born['id'] = np.arange(self._next_individual_id, self._next_individual_id + n)
        born['age'] = age
        born['fitness'] = [self.fitness_of(g1, g2) for g1, g2 in genome_pairs]
        born['survival'] = 1.0
        self._next_individual_id += n

        start = self.n_alive
        self.agents = np.concatenate([self.agents, born])
        self.genomes.extend(genome_pairs)
        return np.arange(start, start + n)

    # ── Generation cycle ──────────────────────────────────────────────

    def _run_hooks(self, stage: str) -> None:
        for callback in self._hooks[stage]:
            callback(self)

    def _survival(self) -> None:
        """Soft-selection survival draw over the whole population."""
        scaling = self.agents['survival']
        n_eligible = int(np.count_nonzero(scaling > 0))
        if n_eligible and self.carrying_capacity is not None:
            density = self.carrying_capacity / n_eligible
        else:
            density = 1.0
        p = np.clip(self.agents['fitness'] * scaling * density, 0.0, 1.0)
        survives = self._survival_rng.random(self.n_alive) < p
        self.agents = self.agents[survives]
        self.genomes = [g for g, keep in zip(self.genomes, survives) if keep]

    def _purge_lost_mutations(self) -> None:
        carried = self.mutation_counts()
        for m in [m for m in self.mutations if m not in carried]:
            del self.mutations[m]

    def step(self) -> None:
        """Run one full generation.

        Raises:
            ExtinctionError: If no individual survives the survival draw.
            RuntimeError: If the simulation has already finished.
        """
        if self.finished:
            raise RuntimeError("simulation already finished")
        self._run_hooks('first')
        self._run_hooks('reproduction')
        self._run_hooks('early')
        self._survival()
        if self.n_alive == 0:
            raise ExtinctionError(self.generation)
        self._run_hooks('late')
        self.agents['age'] += 1
        self.agents['survival'] = 1.0
        self._purge_lost_mutations()
        self.generation += 1

    def simulation_finished(self) -> None:
        """Termination primitive: the current generation is the last."""
        self.finished = True
        self.finished_generation = self.generation
