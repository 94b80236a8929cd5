"""Integration tests for loadsim.model: full bottleneck runs at small K."""

import numpy as np
import pandas as pd
import pytest

from loadsim.config import default_config
from loadsim.engine import ExtinctionError
from loadsim.model import (
    LoadSimResult,
    build_simulation,
    install_hooks,
    run_simulation,
)
from loadsim.output import RunArtifacts
from loadsim.rng import create_rng_hierarchy
from loadsim.schedule import DutyCycle


@pytest.fixture(scope='module')
def tiny_config(tiny_overrides):
    return default_config(tiny_overrides())


@pytest.fixture(scope='module')
def tiny_run(tiny_config, tmp_path_factory):
    out = tmp_path_factory.mktemp('tiny')
    return run_simulation(tiny_config, output_dir=out)


class TestBuildSimulation:
    def test_initial_state(self, tiny_config):
        engine, ctx = build_simulation(tiny_config)
        assert engine.n_alive == 100
        assert engine.generation == 1
        assert ctx.target_ne == 100
        assert ctx.soft_capacity == 100.0
        assert ctx.architecture.n_types == 51
        assert ctx.schedule.end == 50

    def test_regulated_window(self, tiny_config):
        _, ctx = build_simulation(tiny_config)
        ctx.generation = 19
        assert not ctx.regulated
        ctx.generation = 20
        assert ctx.regulated
        ctx.generation = 50
        assert ctx.regulated

    def test_invalid_config_rejected_before_run(self, tiny_overrides):
        config = default_config(tiny_overrides())
        config.architecture.n_genes = 21
        with pytest.raises(ValueError):
            build_simulation(config)


class TestRunSimulation:
    def test_stops_exactly_at_end(self, tiny_run):
        assert isinstance(tiny_run, LoadSimResult)
        assert tiny_run.final_generation == tiny_run.schedule.end == 50
        assert len(tiny_run.census) == 50
        np.testing.assert_array_equal(tiny_run.generations, np.arange(1, 51))

    def test_population_survives(self, tiny_run):
        assert tiny_run.min_census > 0

    def test_soft_capacity_bounds(self, tiny_run):
        target = tiny_run.target_ne
        soft = tiny_run.soft_capacity
        assert np.all(soft >= target)
        assert np.all(soft <= 2 * target)

    def test_targets_follow_schedule(self, tiny_run):
        sched = tiny_run.schedule
        expected = [sched.target_in_effect(g) for g in tiny_run.generations]
        np.testing.assert_array_equal(tiny_run.target_ne, expected)

    def test_census_tracks_bottleneck(self, tiny_run):
        plateau = tiny_run.census[30:40]        # generations 31..40
        assert np.all(plateau <= 20)
        assert np.all(tiny_run.census[:19] <= 100)     # unregulated burn-in

    def test_report_counts(self, tiny_run):
        sched = tiny_run.schedule
        dense = len(list(DutyCycle(sched.burn_in_end, sched.end, 5, 2).due_generations()))
        sparse = len(list(DutyCycle(sched.burn_in_end, sched.end, 5, 4).due_generations()))
        assert len(tiny_run.population_rows) == dense
        assert tiny_run.n_individual_reports == dense
        assert tiny_run.n_diversity_reports == dense
        assert tiny_run.n_mutation_reports == sparse

    def test_artifacts_written(self, tiny_run):
        paths = tiny_run.artifact_paths
        pop = pd.read_csv(paths['population'], sep='\t')
        assert len(pop) == len(tiny_run.population_rows)
        assert pop['generation'].iloc[-1] == 50
        np.testing.assert_allclose(pop['totalLoad'],
                                   pop['realizedLoad'] + pop['maskedLoad'],
                                   rtol=1e-5, atol=1e-5)
        for kind in ('individual', 'diversity'):
            lines = paths[kind].read_text().splitlines()
            assert len(lines) == len(pop) + 1
        n_mut = tiny_run.n_mutation_reports
        assert len(paths['mutation'].read_text().splitlines()) == n_mut + 1
        assert len(paths['mutation_sample'].read_text().splitlines()) == n_mut + 1
        assert (paths['population'].parent / 'tiny_config.yaml').exists()

    def test_pi_bounded(self, tiny_run):
        pi = pd.read_csv(tiny_run.artifact_paths['diversity'], sep='\t',
                         dtype={'pi': str})
        for cell in pi['pi'].dropna():
            values = np.array([float(v) for v in cell.split(',')])
            assert np.all((values >= 0.0) & (values <= 1.0))

    def test_reproducible(self, tiny_config):
        r1 = run_simulation(tiny_config, write_output=False)
        r2 = run_simulation(tiny_config, write_output=False)
        assert r1.artifact_paths is None
        np.testing.assert_array_equal(r1.census, r2.census)
        np.testing.assert_array_equal(r1.soft_capacity, r2.soft_capacity)
        assert [r.total_load for r in r1.population_rows] == \
            [r.total_load for r in r2.population_rows]

    def test_injected_rngs(self, tiny_config, tiny_overrides):
        r1 = run_simulation(tiny_config, write_output=False,
                            rngs=create_rng_hierarchy(99))
        r2 = run_simulation(default_config(tiny_overrides(seed=99)), write_output=False)
        np.testing.assert_array_equal(r1.census, r2.census)

    def test_extinction_propagates(self, tiny_config):
        engine, ctx = build_simulation(tiny_config)
        install_hooks(engine, ctx)
        engine.register_hook('early', lambda e: e.agents['survival'].fill(0.0))
        with pytest.raises(ExtinctionError):
            engine.step()

    def test_extinction_keeps_written_rows(self, tiny_config, tmp_path):
        engine, ctx = build_simulation(tiny_config)
        artifacts = RunArtifacts(tmp_path, 'tiny', tiny_config)
        install_hooks(engine, ctx, artifacts)
        for _ in range(5):              # generation 5 is the first report
            engine.step()
        engine.register_hook('early', lambda e: e.agents['survival'].fill(0.0))
        with pytest.raises(ExtinctionError) as excinfo:
            engine.step()
        assert excinfo.value.generation == 6

        pop = pd.read_csv(artifacts.paths['population'], sep='\t')
        assert pop['generation'].tolist() == [5]
        assert pop['N'].iloc[0] > 0
        pi = pd.read_csv(artifacts.paths['diversity'], sep='\t')
        assert pi['generation'].tolist() == [5]
        for kind in ('individual', 'mutation', 'mutation_sample'):
            df = pd.read_csv(artifacts.paths[kind], sep='\t')
            assert len(df) == 1
