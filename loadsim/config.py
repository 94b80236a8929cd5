"""Configuration system for LoadSim.

Hierarchical YAML configuration with deep-merge support:
  base.yaml → scenario override → command-line / sweep overrides

Every parameter has a documented default; ``default_config()`` returns a
validated configuration without touching the filesystem.
"""

from __future__ import annotations

import dataclasses
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml


# ═══════════════════════════════════════════════════════════════════════
# CONFIGURATION DATACLASSES
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class SimulationSection:
    """Top-level run control."""
    seed: int = 42
    capacity: int = 1000          # K: pre-bottleneck Ne, also the initial size


@dataclass
class ArchitectureSection:
    """Mutation-type catalog and genome layout.

    Selection coefficients: s = −Gamma(shape, mean/shape), with a
    ``lethal_fraction`` of the catalog overwritten by ``lethal_s``.
    Dominance: h = 0.5 × 10^(−dominance_scale·|s|).
    Within genes, neutral : deleterious mutations occur at
    neutral_weight : deleterious_weight (split evenly across the catalog).
    """
    n_deleterious: int = 500          # size of the deleterious catalog
    lethal_fraction: float = 0.05
    lethal_s: float = -1.0
    gamma_mean: float = 0.05          # mean |s| of the gamma DFE
    gamma_shape: float = 0.5
    dominance_scale: float = 13.0
    neutral_weight: float = 1.0
    deleterious_weight: float = 2.31
    gene_length: int = 1000           # sites per gene
    n_genes: int = 100
    n_chromosomes: int = 10           # equal-sized, freely assorting groups
    recombination_rate: float = 1e-3  # per gap between genes on a chromosome
    mutation_rate: float = 1e-7       # per site per generation, inside genes


@dataclass
class DemographySection:
    """Demographic schedule (all lengths in generations).

    burn-in = capacity × burn_multiplier; the bottleneck ramp declines from
    capacity to bottleneck_ne, the plateau holds bottleneck_ne, and the
    recovery ramp climbs to capacity × recovery_fraction.
    """
    burn_multiplier: float = 5.0
    bottleneck_ne: int = 10
    bottleneck_ramp: int = 10
    bottleneck_duration: int = 20
    recovery_fraction: float = 0.5
    recovery_ramp: int = 10
    tail: int = 20


@dataclass
class RegulatorSection:
    """Carrying-capacity regulator."""
    tolerance: float = 0.01     # ± band around target Ne with no adjustment
    max_ratio: float = 2.0      # soft capacity ≤ max_ratio × target Ne


@dataclass
class OutputSection:
    """Artifacts and reporting duty cycle."""
    directory: str = "results/"
    name: str = "loadsim"
    report_genotypes: bool = False    # per-mutation genotype proportions (slow)
    individual_sample: int = 20
    mutation_sample: int = 20
    pi_sample: int = 20
    window_width: int = 10000
    pre_interval: int = 500           # report interval up to burn-in end
    post_interval: int = 2            # report interval after burn-in end
    mutation_interval: int = 10       # post-burn-in interval for mutation summaries


@dataclass
class SimulationConfig:
    """Complete simulation configuration.

    Load from YAML via `load_config()`. Sections map 1:1 to YAML top-level keys.
    """
    simulation: SimulationSection = field(default_factory=SimulationSection)
    architecture: ArchitectureSection = field(default_factory=ArchitectureSection)
    demography: DemographySection = field(default_factory=DemographySection)
    regulator: RegulatorSection = field(default_factory=RegulatorSection)
    output: OutputSection = field(default_factory=OutputSection)


_SECTION_MAP = {
    'simulation': SimulationSection,
    'architecture': ArchitectureSection,
    'demography': DemographySection,
    'regulator': RegulatorSection,
    'output': OutputSection,
}


# ═══════════════════════════════════════════════════════════════════════
# YAML LOADING & MERGING
# ═══════════════════════════════════════════════════════════════════════

def deep_merge(base: Dict, override: Dict) -> Dict:
    """Recursively merge override into base. Modifies base in place.

    - Dict values are merged recursively
    - Non-dict values are replaced
    - Keys in override but not base are added

    Returns:
        The merged base dictionary.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _dict_to_section(section_cls, data: Dict) -> Any:
    """Convert a dict to a dataclass, warning about unknown keys."""
    valid_fields = {f.name for f in dataclasses.fields(section_cls)}
    unknown = sorted(set(data) - valid_fields)
    if unknown:
        warnings.warn(
            f"Ignoring unknown {section_cls.__name__} keys: {unknown}",
            UserWarning,
            stacklevel=3,
        )
    filtered = {k: v for k, v in data.items() if k in valid_fields}
    return section_cls(**filtered)


def _yaml_to_config(data: Dict) -> SimulationConfig:
    """Convert a merged YAML dict to a SimulationConfig."""
    sections = {}
    for key, cls in _SECTION_MAP.items():
        if key in data and isinstance(data[key], dict):
            sections[key] = _dict_to_section(cls, data[key])
        else:
            sections[key] = cls()
    return SimulationConfig(**sections)


def config_to_dict(config: SimulationConfig) -> Dict[str, Dict[str, Any]]:
    """Plain-dict view of a config, suitable for ``yaml.safe_dump``."""
    return dataclasses.asdict(config)


def validate_config(config: SimulationConfig) -> None:
    """Validate configuration constraints. Raises ValueError on failure.

    Checks:
      - Capacities, lengths, counts and rates are positive
      - Fractions lie in their unit intervals
      - Gene count divides evenly into chromosome groups
      - Reporting intervals and sample sizes are positive
    """
    sim = config.simulation
    if sim.seed < 0:
        raise ValueError("simulation.seed must be non-negative")
    if sim.capacity < 1:
        raise ValueError(f"simulation.capacity must be >= 1, got {sim.capacity}")

    a = config.architecture
    for name in ('n_deleterious', 'gene_length', 'n_genes', 'n_chromosomes'):
        if getattr(a, name) < 1:
            raise ValueError(
                f"architecture.{name} must be >= 1, got {getattr(a, name)}"
            )
    for name in ('gamma_mean', 'gamma_shape', 'dominance_scale',
                 'neutral_weight', 'deleterious_weight',
                 'recombination_rate', 'mutation_rate'):
        if getattr(a, name) <= 0:
            raise ValueError(
                f"architecture.{name} must be positive, got {getattr(a, name)}"
            )
    if not 0.0 <= a.lethal_fraction <= 1.0:
        raise ValueError(
            f"architecture.lethal_fraction must be in [0, 1], got {a.lethal_fraction}"
        )
    if a.lethal_s >= 0:
        raise ValueError(f"architecture.lethal_s must be negative, got {a.lethal_s}")
    if a.recombination_rate > 0.5:
        raise ValueError(
            f"architecture.recombination_rate must be <= 0.5, got {a.recombination_rate}"
        )
    if a.n_genes % a.n_chromosomes != 0:
        raise ValueError(
            f"architecture.n_genes ({a.n_genes}) must be divisible by "
            f"n_chromosomes ({a.n_chromosomes})"
        )

    d = config.demography
    if d.burn_multiplier <= 0:
        raise ValueError(
            f"demography.burn_multiplier must be positive, got {d.burn_multiplier}"
        )
    for name in ('bottleneck_ne', 'bottleneck_ramp', 'bottleneck_duration',
                 'recovery_ramp'):
        if getattr(d, name) < 1:
            raise ValueError(
                f"demography.{name} must be >= 1, got {getattr(d, name)}"
            )
    if d.tail < 0:
        raise ValueError(f"demography.tail must be >= 0, got {d.tail}")
    if d.recovery_fraction <= 0:
        raise ValueError(
            f"demography.recovery_fraction must be positive, got {d.recovery_fraction}"
        )
    if d.bottleneck_ne > sim.capacity:
        warnings.warn(
            f"demography.bottleneck_ne ({d.bottleneck_ne}) exceeds "
            f"simulation.capacity ({sim.capacity}); the 'bottleneck' is an expansion.",
            UserWarning,
            stacklevel=2,
        )

    r = config.regulator
    if r.tolerance < 0:
        raise ValueError(f"regulator.tolerance must be >= 0, got {r.tolerance}")
    if r.max_ratio < 1.0:
        raise ValueError(f"regulator.max_ratio must be >= 1, got {r.max_ratio}")

    o = config.output
    for name in ('individual_sample', 'mutation_sample', 'pi_sample',
                 'window_width', 'pre_interval', 'post_interval',
                 'mutation_interval'):
        if getattr(o, name) < 1:
            raise ValueError(f"output.{name} must be >= 1, got {getattr(o, name)}")
    if not o.name:
        raise ValueError("output.name must be non-empty")
    genome_length = a.n_genes * (a.gene_length + 1) - 1
    if o.window_width > genome_length:
        warnings.warn(
            f"output.window_width ({o.window_width}) exceeds the genome length "
            f"({genome_length}); π will be reported for a single window.",
            UserWarning,
            stacklevel=2,
        )


def load_config(
    base_path: Union[str, Path],
    scenario_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict] = None,
) -> SimulationConfig:
    """Load and merge hierarchical YAML configuration.

    Merge order: base → scenario → overrides.
    Each layer overrides only the fields it specifies.

    Args:
        base_path: Path to base configuration YAML.
        scenario_path: Optional scenario override YAML.
        overrides: Optional nested dict of overrides (e.g. from the CLI).

    Returns:
        Validated SimulationConfig.

    Raises:
        FileNotFoundError: If base_path or scenario_path doesn't exist.
        ValueError: If validation fails.
    """
    base_path = Path(base_path)
    if not base_path.exists():
        raise FileNotFoundError(f"Config file not found: {base_path}")

    with open(base_path) as f:
        config_dict = yaml.safe_load(f) or {}

    if scenario_path is not None:
        scenario_path = Path(scenario_path)
        if not scenario_path.exists():
            raise FileNotFoundError(f"Scenario file not found: {scenario_path}")
        with open(scenario_path) as f:
            scenario = yaml.safe_load(f) or {}
        deep_merge(config_dict, scenario)

    if overrides is not None:
        deep_merge(config_dict, overrides)

    config = _yaml_to_config(config_dict)
    validate_config(config)
    return config


def default_config(overrides: Optional[Dict] = None) -> SimulationConfig:
    """Return a validated SimulationConfig with default values.

    Args:
        overrides: Optional nested dict merged over the defaults, e.g.
            ``{'simulation': {'capacity': 100}}``.
    """
    if overrides:
        config = _yaml_to_config(deep_merge(config_to_dict(SimulationConfig()),
                                            overrides))
    else:
        config = SimulationConfig()
    validate_config(config)
    return config
