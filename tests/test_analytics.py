"""Tests for loadsim.analytics: load decompositions, zygosity and windowed π."""

from dataclasses import fields

import numpy as np
import pytest

from loadsim.analytics import (
    classify_mutations,
    classify_zygosity,
    genotype_proportions,
    individual_load,
    individual_load_components,
    pi_from_positions,
    population_load,
    selection_lookup,
    subsample_mutation_ids,
    summarize_individuals,
    summarize_mutations,
    summarize_population,
    window_bounds,
    windowed_pi,
)
from loadsim.config import default_config
from loadsim.model import build_simulation, install_hooks
from loadsim.types import Zygosity


# ═══════════════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════════════

@pytest.fixture
def loaded(make_engine):
    """Three individuals carrying a known set of mutations.

    ind 0: lethal (type 1) het, type 2 hom, neutral het at 5
    ind 1: type 2 het, neutral het at 5
    ind 2: mutation-free
    """
    engine = make_engine()
    lethal = engine.register_mutation(1, 0)
    mild = engine.register_mutation(2, 11)
    neutral = engine.register_mutation(0, 5)
    engine.add_offspring([
        (frozenset([lethal, mild, neutral]), frozenset([mild])),
        (frozenset([mild]), frozenset([neutral])),
        (frozenset(), frozenset()),
    ])
    return engine, lethal, mild, neutral


# ═══════════════════════════════════════════════════════════════════════
# POPULATION LOAD
# ═══════════════════════════════════════════════════════════════════════

class TestPopulationLoad:
    def test_known_values(self):
        total, realized, masked = population_load([0.5], [-0.1], [0.25])
        assert total == pytest.approx(0.05)
        assert realized == pytest.approx(0.0375)
        assert masked == pytest.approx(0.0125)

    def test_decomposition_identity(self, rng):
        for _ in range(50):
            k = int(rng.integers(1, 200))
            f = rng.random(k)
            s = -rng.gamma(0.5, 0.1, k)
            h = rng.uniform(0, 0.5, k)
            total, realized, masked = population_load(f, s, h)
            assert total == pytest.approx(realized + masked)
            assert masked >= -1e-12

    def test_fixed_mutations_fully_realized(self):
        total, realized, masked = population_load([1.0, 1.0], [-0.2, -1.0], [0.1, 0.0])
        assert realized == pytest.approx(total)
        assert masked == pytest.approx(0.0)

    def test_empty(self):
        assert population_load([], [], []) == (0.0, 0.0, 0.0)

    def test_summarize_population(self, loaded):
        engine, lethal, mild, neutral = loaded
        row = summarize_population(engine, 12, target_ne=10, soft_capacity=15.0)
        assert row.generation == 12
        assert row.n_alive == 3
        assert row.target_ne == 10
        assert row.soft_capacity == 15.0
        assert row.n_segregating == 2   # neutral excluded
        f = np.array([1 / 6, 3 / 6])
        s = np.array([-1.0, -0.1])
        h = np.array([engine.mutation_type(1).h, engine.mutation_type(2).h])
        expected = population_load(f, s, h)
        assert row.total_load == pytest.approx(expected[0])
        assert row.realized_load == pytest.approx(expected[1])
        assert row.masked_load == pytest.approx(expected[2])
        assert row.mean_fitness == pytest.approx(np.mean(engine.agents['fitness']))


# ═══════════════════════════════════════════════════════════════════════
# ZYGOSITY
# ═══════════════════════════════════════════════════════════════════════

class TestZygosity:
    def test_classes(self):
        g1, g2 = frozenset([1, 2]), frozenset([2, 3])
        assert classify_zygosity(g1, g2, 2) == Zygosity.HOM_ALT
        assert classify_zygosity(g1, g2, 1) == Zygosity.HET
        assert classify_zygosity(g1, g2, 3) == Zygosity.HET
        assert classify_zygosity(g1, g2, 4) == Zygosity.HOM_REF

    def test_vectorized(self):
        codes = classify_mutations(frozenset([1, 2]), frozenset([2]), [1, 2, 9])
        np.testing.assert_array_equal(codes, [1, 2, 0])


# ═══════════════════════════════════════════════════════════════════════
# INDIVIDUAL LOAD
# ═══════════════════════════════════════════════════════════════════════

class TestIndividualLoad:
    def test_identity(self, rng):
        for _ in range(100):
            lmut = int(rng.integers(0, 50))
            f11 = rng.random()
            f01 = 1.0 - f11
            s_hom, s_het = rng.random(2)
            sh_het = s_het * rng.uniform(0, 0.5)
            total, realized, masked = individual_load(lmut, f11, f01, s_hom, s_het, sh_het)
            assert total == pytest.approx(realized + masked)

    def test_components(self):
        sel = {1: (-1.0, 0.0), 2: (-0.2, 0.25), 3: (-0.1, 0.5)}
        comps = individual_load_components(frozenset([1, 2, 99]), frozenset([1, 3]), sel)
        assert comps.lmut == 3            # 99 is neutral (not in lookup)
        assert comps.f11 == pytest.approx(1 / 3)
        assert comps.f01 == pytest.approx(2 / 3)
        assert comps.s_hom == pytest.approx(1.0)
        assert comps.s_het == pytest.approx(0.15)
        assert comps.sh_het == pytest.approx((0.2 * 0.25 + 0.1 * 0.5) / 2)

    def test_empty_het_class(self):
        sel = {1: (-0.5, 0.1)}
        comps = individual_load_components(frozenset([1]), frozenset([1]), sel)
        assert comps.f01 == 0.0
        assert comps.s_het == 0.0 and comps.sh_het == 0.0
        total, realized, masked = comps.loads()
        assert total == pytest.approx(0.5)
        assert realized == pytest.approx(0.5)
        assert masked == 0.0

    def test_mutation_free(self):
        comps = individual_load_components(frozenset(), frozenset(), {})
        assert comps.loads() == (0.0, 0.0, 0.0)

    def test_selection_lookup_skips_neutral(self, loaded):
        engine, lethal, mild, neutral = loaded
        lookup = selection_lookup(engine)
        assert set(lookup) == {lethal, mild}
        assert lookup[lethal][0] == -1.0

    def test_summarize_individuals(self, rng, loaded):
        engine, *_ = loaded
        row = summarize_individuals(engine, rng, 4, sample_size=20)
        assert row.n_sampled == 3
        assert sorted(row.n_mutations.tolist()) == [0, 1, 2]
        np.testing.assert_allclose(row.total_load, row.realized_load + row.masked_load)
        assert row.mean_total_load == pytest.approx(np.mean(row.total_load))


# ═══════════════════════════════════════════════════════════════════════
# MUTATION SUMMARIES
# ═══════════════════════════════════════════════════════════════════════

class TestMutationSummaries:
    def test_genotype_proportions_sum_to_one(self):
        genomes = [(frozenset([1]), frozenset([1])),
                   (frozenset([1]), frozenset()),
                   (frozenset(), frozenset([2]))]
        ref, alt, het = genotype_proportions(genomes, [1, 2])
        np.testing.assert_allclose(ref + alt + het, 1.0)
        np.testing.assert_allclose(alt, [1 / 3, 0.0])
        np.testing.assert_allclose(het, [1 / 3, 1 / 3])

    def test_whole_population(self, loaded):
        engine, lethal, mild, neutral = loaded
        row = summarize_mutations(engine, 3)
        assert row.scope == 'population'
        assert row.n_mutations == 3
        np.testing.assert_array_equal(row.ids, sorted([lethal, mild, neutral]))
        freq = dict(zip(row.ids.tolist(), row.frequency.tolist()))
        assert freq[mild] == pytest.approx(0.5)
        assert freq[neutral] == pytest.approx(2 / 6)
        assert np.all(row.abs_s >= 0)
        assert row.hom_ref is None

    def test_with_genotypes(self, loaded):
        engine, lethal, mild, neutral = loaded
        row = summarize_mutations(engine, 3, report_genotypes=True)
        np.testing.assert_allclose(row.hom_ref + row.hom_alt + row.het, 1.0)

    def test_subsample(self, rng, loaded):
        engine, lethal, mild, neutral = loaded
        ids, n = subsample_mutation_ids(engine, rng, 20)
        assert n == 3
        assert ids == sorted([lethal, mild, neutral])
        row = summarize_mutations(engine, 3, ids, scope='sample', n_sampled=n)
        assert row.scope == 'sample'
        assert row.n_sampled == 3


# ═══════════════════════════════════════════════════════════════════════
# WINDOWED π
# ═══════════════════════════════════════════════════════════════════════

class TestWindowedPi:
    def test_window_bounds_truncate(self):
        starts, widths = window_bounds(25, 10)
        np.testing.assert_array_equal(starts, [0, 10, 20])
        np.testing.assert_array_equal(widths, [10, 10, 5])

    def test_invalid_width(self):
        with pytest.raises(ValueError):
            window_bounds(25, 0)

    def test_known_values(self):
        starts, pi = pi_from_positions(
            [np.array([0, 5, 22, 24]), np.array([12])], genome_length=25, window_width=10,
        )
        np.testing.assert_allclose(pi, [(0.2 + 0.0) / 2, (0.0 + 0.1) / 2, (0.4 + 0.0) / 2])

    def test_repeated_sites_count_once(self):
        _, pi = pi_from_positions([np.array([3, 3, 3])], 10, 10)
        np.testing.assert_allclose(pi, [0.1])

    def test_bounded(self, rng):
        positions = [rng.integers(0, 1000, size=int(rng.integers(0, 3000)))
                     for _ in range(20)]
        _, pi = pi_from_positions(positions, 1000, 37)
        assert np.all((pi >= 0.0) & (pi <= 1.0))

    def test_no_individuals(self):
        starts, pi = pi_from_positions([], 100, 10)
        assert len(starts) == 10
        assert np.all(pi == 0.0)

    def test_from_engine_neutral_only(self, rng, loaded):
        engine, *_ = loaded
        row = windowed_pi(engine, rng, 9, window_width=10, sample_size=20)
        assert row.n_sampled == 3
        assert len(row.pi) == len(row.window_starts) == 5   # length 43
        # two of three individuals are heterozygous at neutral site 5
        assert row.pi[0] == pytest.approx((0.1 + 0.1 + 0.0) / 3)
        assert np.all(row.pi[1:] == 0.0)


# ═══════════════════════════════════════════════════════════════════════
# READ-ONLY REPORTING
# ═══════════════════════════════════════════════════════════════════════

def _assert_rows_equal(a, b):
    for f in fields(a):
        x, y = getattr(a, f.name), getattr(b, f.name)
        if isinstance(x, np.ndarray):
            np.testing.assert_array_equal(x, y)
        else:
            assert x == y, f.name


@pytest.fixture
def simulated(tiny_overrides):
    """A tiny bottleneck run stopped at generation 30, inside the plateau."""
    engine, ctx = build_simulation(default_config(tiny_overrides()))
    install_hooks(engine, ctx)
    for _ in range(29):
        engine.step()
    return engine, ctx


class TestReadOnly:
    def test_repeat_calls_agree_and_leave_state_untouched(self, simulated):
        engine, ctx = simulated
        gen = engine.generation
        agents = engine.agents.copy()
        genomes = list(engine.genomes)
        mutations = dict(engine.mutations)

        pop = [summarize_population(engine, gen, ctx.target_ne, ctx.soft_capacity)
               for _ in range(2)]
        muts = [summarize_mutations(engine, gen, report_genotypes=True)
                for _ in range(2)]
        everyone = engine.n_alive + 10
        pis = [windowed_pi(engine, np.random.default_rng(seed), gen, 500, everyone)
               for seed in (1, 2)]

        assert pop[0] == pop[1]
        _assert_rows_equal(muts[0], muts[1])
        assert pis[0].n_sampled == pis[1].n_sampled == engine.n_alive
        np.testing.assert_array_equal(pis[0].window_starts, pis[1].window_starts)
        np.testing.assert_allclose(pis[0].pi, pis[1].pi)

        np.testing.assert_array_equal(engine.agents, agents)
        assert engine.genomes == genomes
        assert engine.mutations == mutations
        assert engine.generation == gen
