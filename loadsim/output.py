"""Append-only tab-separated report artifacts.

Five artifacts per run, all in ``output.directory`` and prefixed by
``output.name``:

  <name>_popLoad.txt           PopulationLoadRow per report generation
  <name>_indLoad.txt           IndividualLoadRow per report generation
  <name>_mutSummary.txt        MutationSummaryRow (whole population)
  <name>_mutSummarySample.txt  MutationSummaryRow (individual subsample)
  <name>_pi.txt                DiversityRow

Each file gets its fixed header when the run opens it and one row per
invocation afterwards; rows are flushed as they are written so a run that
ends in extinction leaves valid partial output. Array-valued columns are
comma-joined. A ``<name>_config.yaml`` records the configuration used.
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
import yaml

from loadsim.config import SimulationConfig, config_to_dict
from loadsim.types import (
    DiversityRow,
    IndividualLoadRow,
    MutationSummaryRow,
    PopulationLoadRow,
)

logger = logging.getLogger(__name__)

FLOAT_FORMAT = '%.6g'

POPULATION_HEADER = [
    'generation', 'N', 'targetNe', 'softK', 'meanFitness', 'sdFitness',
    'nSegregating', 'totalLoad', 'realizedLoad', 'maskedLoad',
]
INDIVIDUAL_HEADER = [
    'generation', 'nSampled', 'meanTotalLoad', 'meanRealizedLoad',
    'meanMaskedLoad', 'Lmut', 'f11', 'f01', 'totalLoad', 'realizedLoad',
    'maskedLoad',
]
MUTATION_HEADER = [
    'generation', 'scope', 'nSampled', 'nMutations', 'typeID', 'mutID', 's',
    'h', 'originGeneration', 'frequency', 'homRef', 'homAlt', 'het',
]
DIVERSITY_HEADER = [
    'generation', 'nSampled', 'windowWidth', 'windowStart', 'pi',
]

ARTIFACT_SUFFIXES = {
    'population': '_popLoad.txt',
    'individual': '_indLoad.txt',
    'mutation': '_mutSummary.txt',
    'mutation_sample': '_mutSummarySample.txt',
    'diversity': '_pi.txt',
}


# ═══════════════════════════════════════════════════════════════════════
# SERIALIZATION
# ═══════════════════════════════════════════════════════════════════════


def format_value(value) -> str:
    """One cell: floats via FLOAT_FORMAT, arrays comma-joined, None empty."""
    if value is None:
        return ''
    if isinstance(value, np.ndarray):
        return ','.join(format_value(v) for v in value.tolist())
    if isinstance(value, (bool, np.bool_)):
        return 'T' if value else 'F'
    if isinstance(value, (int, np.integer)):
        return str(int(value))
    if isinstance(value, (float, np.floating)):
        return FLOAT_FORMAT % value
    return str(value)


def population_cells(row: PopulationLoadRow) -> List[str]:
    return [format_value(v) for v in (
        row.generation, row.n_alive, row.target_ne, row.soft_capacity,
        row.mean_fitness, row.sd_fitness, row.n_segregating,
        row.total_load, row.realized_load, row.masked_load,
    )]


def individual_cells(row: IndividualLoadRow) -> List[str]:
    return [format_value(v) for v in (
        row.generation, row.n_sampled, row.mean_total_load,
        row.mean_realized_load, row.mean_masked_load, row.n_mutations,
        row.f_hom, row.f_het, row.total_load, row.realized_load,
        row.masked_load,
    )]


def mutation_cells(row: MutationSummaryRow) -> List[str]:
    return [format_value(v) for v in (
        row.generation, row.scope, row.n_sampled, row.n_mutations,
        row.type_ids, row.ids, row.abs_s, row.h, row.origin_generation,
        row.frequency, row.hom_ref, row.hom_alt, row.het,
    )]


def diversity_cells(row: DiversityRow) -> List[str]:
    return [format_value(v) for v in (
        row.generation, row.n_sampled, row.window_width, row.window_starts,
        row.pi,
    )]


# ═══════════════════════════════════════════════════════════════════════
# WRITERS
# ═══════════════════════════════════════════════════════════════════════


class ArtifactWriter:
    """One tab-separated file: header on open, then appended rows."""

    def __init__(self, path: Union[str, Path], header: Sequence[str]):
        self.path = Path(path)
        self.header = list(header)
        self.n_rows = 0
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w', newline='') as f:
            csv.writer(f, delimiter='\t', lineterminator='\n').writerow(self.header)

    def append(self, cells: Sequence[str]) -> None:
        if len(cells) != len(self.header):
            raise ValueError(
                f"{self.path.name}: row has {len(cells)} cells, "
                f"header has {len(self.header)}"
            )
        with open(self.path, 'a', newline='') as f:
            csv.writer(f, delimiter='\t', lineterminator='\n').writerow(cells)
        self.n_rows += 1


class RunArtifacts:
    """The five report artifacts of one run.

    Args:
        directory: Output directory (created if missing).
        name: File-name prefix.
        config: If given, written alongside as ``<name>_config.yaml``.
    """

    def __init__(
        self,
        directory: Union[str, Path],
        name: str,
        config: Optional[SimulationConfig] = None,
    ):
        self.directory = Path(directory)
        self.name = name
        self.directory.mkdir(parents=True, exist_ok=True)
        self.population = ArtifactWriter(self.path_for('population'), POPULATION_HEADER)
        self.individual = ArtifactWriter(self.path_for('individual'), INDIVIDUAL_HEADER)
        self.mutation = ArtifactWriter(self.path_for('mutation'), MUTATION_HEADER)
        self.mutation_sample = ArtifactWriter(self.path_for('mutation_sample'),
                                              MUTATION_HEADER)
        self.diversity = ArtifactWriter(self.path_for('diversity'), DIVERSITY_HEADER)
        if config is not None:
            with open(self.directory / f"{name}_config.yaml", 'w') as f:
                yaml.safe_dump(config_to_dict(config), f, sort_keys=False)
        logger.info("Writing artifacts to %s/%s_*", self.directory, name)

    def path_for(self, kind: str) -> Path:
        return self.directory / f"{self.name}{ARTIFACT_SUFFIXES[kind]}"

    @property
    def paths(self) -> Dict[str, Path]:
        return {kind: self.path_for(kind) for kind in ARTIFACT_SUFFIXES}

    def write_population(self, row: PopulationLoadRow) -> None:
        self.population.append(population_cells(row))

    def write_individual(self, row: IndividualLoadRow) -> None:
        self.individual.append(individual_cells(row))

    def write_mutations(self, row: MutationSummaryRow) -> None:
        writer = self.mutation_sample if row.scope == 'sample' else self.mutation
        writer.append(mutation_cells(row))

    def write_diversity(self, row: DiversityRow) -> None:
        self.diversity.append(diversity_cells(row))
