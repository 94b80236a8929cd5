"""Bottleneck-and-recovery load simulation.

Wires the architecture, schedule, regulator, reproduction model and
analytics into the engine's generation cycle:

  first         schedule check + capacity regulation (burn-in end … end)
  reproduction  round(soft capacity) random matings
  early         non-newborns condemned; soft capacity handed to the engine
  (survival)    engine soft-selection draw
  late          census, periodic analytics, termination at ``end``

All per-generation mutable state lives on ``SimulationContext``: the
target-Ne tag and the soft-capacity tag. The schedule and genetic
architecture are immutable after build.

The run stops exactly at the schedule's ``end`` generation. Extinction
raises ``ExtinctionError`` out of ``run_simulation``; rows already written
remain valid.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import numpy as np

from loadsim.analytics import (
    subsample_mutation_ids,
    summarize_individuals,
    summarize_mutations,
    summarize_population,
    windowed_pi,
)
from loadsim.architecture import GeneticArchitecture, initialize_architecture
from loadsim.config import SimulationConfig, default_config, validate_config
from loadsim.engine import Engine
from loadsim.output import RunArtifacts
from loadsim.regulator import CapacityRegulator
from loadsim.reproduction import enforce_non_overlapping, reproduce
from loadsim.rng import create_rng_hierarchy
from loadsim.schedule import DemographicSchedule, DutyCycle, schedule_from_config
from loadsim.types import PopulationLoadRow

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════
# CONTEXT & RESULT
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationContext:
    """Everything one run needs, with the two per-generation tags."""
    config: SimulationConfig
    schedule: DemographicSchedule
    architecture: GeneticArchitecture
    rngs: Dict[str, np.random.Generator]
    target_ne: int
    soft_capacity: float
    generation: int = 1
    phase: str = 'burn-in'

    @property
    def regulated(self) -> bool:
        """Whether the regulator runs in the current generation."""
        return self.schedule.burn_in_end <= self.generation <= self.schedule.end


@dataclass
class LoadSimResult:
    """Results from one bottleneck simulation."""
    schedule: DemographicSchedule
    final_generation: int = 0
    # Per-generation timeseries (index 0 = generation 1)
    census: Optional[np.ndarray] = None           # post-survival N
    target_ne: Optional[np.ndarray] = None
    soft_capacity: Optional[np.ndarray] = None
    mean_fitness: Optional[np.ndarray] = None
    # Report rows kept in memory
    population_rows: List[PopulationLoadRow] = field(default_factory=list)
    n_individual_reports: int = 0
    n_mutation_reports: int = 0
    n_diversity_reports: int = 0
    artifact_paths: Optional[Dict[str, Path]] = None

    @property
    def generations(self) -> np.ndarray:
        return np.arange(1, self.final_generation + 1)

    @property
    def min_census(self) -> int:
        return int(self.census.min()) if self.census is not None and len(self.census) else 0


# ═══════════════════════════════════════════════════════════════════════
# SETUP
# ═══════════════════════════════════════════════════════════════════════


def build_simulation(
    config: SimulationConfig,
    rngs: Optional[Dict[str, np.random.Generator]] = None,
) -> Tuple[Engine, SimulationContext]:
    """Initialize architecture, schedule, engine and founders.

    Args:
        config: Validated configuration.
        rngs: Optional RNG hierarchy; created from ``simulation.seed`` if None.

    Returns:
        (engine, context)

    Raises:
        ValueError: On any configuration error, before generation 1 runs.
    """
    validate_config(config)
    if rngs is None:
        rngs = create_rng_hierarchy(config.simulation.seed)

    capacity = config.simulation.capacity
    architecture = initialize_architecture(config.architecture, rngs['architecture'])
    schedule = schedule_from_config(config.demography, capacity)

    engine = Engine(mutation_rng=rngs['mutation'], survival_rng=rngs['survival'])
    engine.install_architecture(architecture)
    engine.create_population(capacity)

    context = SimulationContext(
        config=config,
        schedule=schedule,
        architecture=architecture,
        rngs=rngs,
        target_ne=capacity,
        soft_capacity=float(capacity),
    )
    return engine, context


class _Recorder:
    """Per-generation census plus periodic analytics (the ``late`` hook)."""

    def __init__(self, context: SimulationContext, artifacts: Optional[RunArtifacts]):
        out = context.config.output
        sched = context.schedule
        self.context = context
        self.artifacts = artifacts
        self.dense = DutyCycle(sched.burn_in_end, sched.end,
                               out.pre_interval, out.post_interval)
        self.mutation_cycle = DutyCycle(sched.burn_in_end, sched.end,
                                        out.pre_interval, out.mutation_interval)
        self.census: List[int] = []
        self.target_ne: List[int] = []
        self.soft_capacity: List[float] = []
        self.mean_fitness: List[float] = []
        self.population_rows: List[PopulationLoadRow] = []
        self.n_individual = 0
        self.n_mutation = 0
        self.n_diversity = 0

    def __call__(self, engine: Engine) -> None:
        ctx = self.context
        gen = engine.generation
        self.census.append(engine.n_alive)
        self.target_ne.append(ctx.target_ne)
        self.soft_capacity.append(ctx.soft_capacity)
        self.mean_fitness.append(float(np.mean(engine.agents['fitness'])))

        if self.dense.is_due(gen):
            self._report_load(engine, gen)
        if self.mutation_cycle.is_due(gen):
            self._report_mutations(engine, gen)

        if gen == ctx.schedule.end:
            logger.info("Generation %d reached; N = %d", gen, engine.n_alive)
            engine.simulation_finished()

    def _report_load(self, engine: Engine, gen: int) -> None:
        ctx = self.context
        out = ctx.config.output
        rng = ctx.rngs['analytics']

        pop_row = summarize_population(engine, gen, ctx.target_ne, ctx.soft_capacity)
        ind_row = summarize_individuals(engine, rng, gen, out.individual_sample)
        pi_row = windowed_pi(engine, rng, gen, out.window_width, out.pi_sample)
        self.population_rows.append(pop_row)
        self.n_individual += 1
        self.n_diversity += 1
        if self.artifacts is not None:
            self.artifacts.write_population(pop_row)
            self.artifacts.write_individual(ind_row)
            self.artifacts.write_diversity(pi_row)

    def _report_mutations(self, engine: Engine, gen: int) -> None:
        ctx = self.context
        out = ctx.config.output
        whole = summarize_mutations(engine, gen, report_genotypes=out.report_genotypes)
        ids, n_sampled = subsample_mutation_ids(engine, ctx.rngs['analytics'],
                                                out.mutation_sample)
        sample = summarize_mutations(engine, gen, ids,
                                     report_genotypes=out.report_genotypes,
                                     scope='sample', n_sampled=n_sampled)
        self.n_mutation += 1
        if self.artifacts is not None:
            self.artifacts.write_mutations(whole)
            self.artifacts.write_mutations(sample)


def install_hooks(
    engine: Engine,
    context: SimulationContext,
    artifacts: Optional[RunArtifacts] = None,
) -> _Recorder:
    """Register regulator, reproduction, survival and reporting callbacks."""
    reg_cfg = context.config.regulator
    regulator = CapacityRegulator(context.schedule, reg_cfg.tolerance, reg_cfg.max_ratio)
    recorder = _Recorder(context, artifacts)

    def first(eng: Engine) -> None:
        context.generation = eng.generation
        phase = context.schedule.phase(eng.generation)
        if phase != context.phase:
            logger.info("Generation %d: entering %s (N = %d)",
                        eng.generation, phase, eng.n_alive)
            context.phase = phase
        if context.regulated:
            regulator.regulate(context, eng.n_alive)

    def reproduction(eng: Engine) -> None:
        reproduce(eng, context.rngs['reproduction'], context.soft_capacity)

    def early(eng: Engine) -> None:
        enforce_non_overlapping(eng.agents)
        eng.carrying_capacity = context.soft_capacity

    engine.register_hook('first', first)
    engine.register_hook('reproduction', reproduction)
    engine.register_hook('early', early)
    engine.register_hook('late', recorder)
    return recorder


# ═══════════════════════════════════════════════════════════════════════
# RUN
# ═══════════════════════════════════════════════════════════════════════


def run_simulation(
    config: Optional[SimulationConfig] = None,
    output_dir: Optional[Union[str, Path]] = None,
    write_output: bool = True,
    rngs: Optional[Dict[str, np.random.Generator]] = None,
) -> LoadSimResult:
    """Run one replicate from generation 1 to the schedule's end.

    Args:
        config: Configuration; defaults if None.
        output_dir: Overrides ``config.output.directory``.
        write_output: If False, no artifacts are written (rows are still
            kept in the result).
        rngs: Optional injected RNG hierarchy.

    Returns:
        LoadSimResult.

    Raises:
        ValueError: On configuration errors (nothing is simulated).
        ExtinctionError: If the population dies out before ``end``.
    """
    if config is None:
        config = default_config()
    engine, context = build_simulation(config, rngs)
    schedule = context.schedule

    artifacts = None
    if write_output:
        directory = output_dir if output_dir is not None else config.output.directory
        artifacts = RunArtifacts(directory, config.output.name, config)

    recorder = install_hooks(engine, context, artifacts)
    logger.info(
        "Starting run: K=%d, burn-in end %d, bottleneck Ne %d over [%d, %d], "
        "end %d, seed %d",
        config.simulation.capacity, schedule.burn_in_end,
        config.demography.bottleneck_ne, schedule.ramp_start,
        schedule.plateau_end, schedule.end, config.simulation.seed,
    )

    while not engine.finished:
        engine.step()

    logger.info("Run finished at generation %d", engine.finished_generation)
    return LoadSimResult(
        schedule=schedule,
        final_generation=engine.finished_generation,
        census=np.array(recorder.census, dtype=np.int64),
        target_ne=np.array(recorder.target_ne, dtype=np.int64),
        soft_capacity=np.array(recorder.soft_capacity, dtype=np.float64),
        mean_fitness=np.array(recorder.mean_fitness, dtype=np.float64),
        population_rows=recorder.population_rows,
        n_individual_reports=recorder.n_individual,
        n_mutation_reports=recorder.n_mutation,
        n_diversity_reports=recorder.n_diversity,
        artifact_paths=artifacts.paths if artifacts is not None else None,
    )
