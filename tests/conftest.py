"""Shared fixtures: a small genome and a tiny engine that runs in milliseconds."""

import numpy as np
import pytest

from loadsim.architecture import (
    GeneticArchitecture,
    build_genomic_map,
    build_mutation_types,
    mutation_type_weights,
)
from loadsim.engine import Engine


def _small_architecture(mutation_rate: float = 1e-4) -> GeneticArchitecture:
    s = np.array([-1.0, -0.1, -0.01])
    return GeneticArchitecture(
        mutation_types=build_mutation_types(s),
        type_weights=mutation_type_weights(len(s)),
        genomic_map=build_genomic_map(
            gene_length=10, n_genes=4, n_chromosomes=2,
            recombination_rate=1e-3, mutation_rate=mutation_rate,
        ),
    )


def _make_engine(seed: int = 0, mutation_rate: float = 1e-4) -> Engine:
    engine = Engine(
        mutation_rng=np.random.default_rng(seed),
        survival_rng=np.random.default_rng(seed + 1),
    )
    engine.install_architecture(_small_architecture(mutation_rate))
    return engine


def _tiny_overrides(seed: int = 1) -> dict:
    return {
        'simulation': {'seed': seed, 'capacity': 100},
        'architecture': {
            'n_deleterious': 50, 'gene_length': 100, 'n_genes': 20,
            'n_chromosomes': 2, 'mutation_rate': 1e-4,
        },
        'demography': {
            'burn_multiplier': 0.2, 'bottleneck_ne': 10, 'bottleneck_ramp': 5,
            'bottleneck_duration': 10, 'recovery_ramp': 5, 'tail': 5,
        },
        'output': {
            'name': 'tiny', 'window_width': 500, 'individual_sample': 5,
            'mutation_sample': 5, 'pi_sample': 5, 'pre_interval': 5,
            'post_interval': 2, 'mutation_interval': 4,
        },
    }


@pytest.fixture(scope='session')
def small_architecture():
    """Factory: neutral type 0 plus three deleterious types (s = -1, -0.1, -0.01)."""
    return _small_architecture


@pytest.fixture(scope='session')
def make_engine():
    """Factory: ``make_engine(seed=0, mutation_rate=1e-4)`` on the small genome."""
    return _make_engine


@pytest.fixture(scope='session')
def tiny_overrides():
    """Factory: config overrides for a full run of 50 generations at K = 100.

    burn-in ends at 20, bottleneck ramp [25, 30], plateau to 40, recovery
    to 45, end at 50.
    """
    return _tiny_overrides


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def engine():
    return _make_engine()
