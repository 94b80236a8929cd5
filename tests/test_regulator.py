"""Tests for loadsim.regulator: proportional soft-capacity control."""

from dataclasses import dataclass

import numpy as np
import pytest

from loadsim.regulator import (
    CapacityRegulator,
    adjust_capacity,
    clamp_capacity,
)
from loadsim.schedule import build_schedule


@dataclass
class _Context:
    generation: int
    target_ne: int
    soft_capacity: float


class TestAdjustCapacity:
    def test_raise_on_deficit(self):
        new, action, clamped = adjust_capacity(100.0, 80, 100)
        assert action == 'raise'
        assert new == pytest.approx(120.0)
        assert not clamped

    def test_lower_on_surplus(self):
        new, action, clamped = adjust_capacity(150.0, 120, 100)
        assert action == 'lower'
        assert new == pytest.approx(120.0)
        assert not clamped

    def test_hold_inside_tolerance(self):
        new, action, _ = adjust_capacity(130.0, 100, 100, tolerance=0.01)
        assert action == 'hold'
        assert new == 130.0

    def test_tolerance_band_edges(self):
        _, action, _ = adjust_capacity(130.0, 99, 100, tolerance=0.02)
        assert action == 'hold'
        _, action, _ = adjust_capacity(130.0, 97, 100, tolerance=0.02)
        assert action == 'raise'

    def test_clamped_to_upper_bound(self):
        new, action, clamped = adjust_capacity(180.0, 10, 100)
        assert action == 'raise'
        assert new == 200.0
        assert clamped

    def test_clamped_to_lower_bound(self):
        new, action, clamped = adjust_capacity(100.0, 300, 100)
        assert action == 'lower'
        assert new == 100.0
        assert clamped

    def test_zero_target_rejected(self):
        with pytest.raises(ValueError):
            adjust_capacity(10.0, 5, 0)

    def test_invariant_over_random_inputs(self, rng):
        for _ in range(500):
            target = int(rng.integers(1, 1000))
            soft = float(rng.uniform(0, 5000))
            n = int(rng.integers(0, 3000))
            new, _, _ = adjust_capacity(soft, n, target)
            assert target <= new <= 2 * target


class TestClampCapacity:
    def test_bounds(self):
        assert clamp_capacity(5.0, 10) == 10.0
        assert clamp_capacity(25.0, 10) == 20.0
        assert clamp_capacity(15.0, 10) == 15.0
        assert clamp_capacity(35.0, 10, max_ratio=3.0) == 30.0


class TestCapacityRegulator:
    @pytest.fixture
    def schedule(self):
        return build_schedule(100, 1.0, 10, 2, 3, 0.5, 2, tail=5)

    def test_applies_scheduled_target(self, schedule):
        reg = CapacityRegulator(schedule)
        ctx = _Context(generation=schedule.ramp_end, target_ne=100, soft_capacity=100.0)
        reg.regulate(ctx, n_alive=100)
        assert ctx.target_ne == 10
        # N = 100 against target 10: lowered past zero, then clamped to Ne
        assert ctx.soft_capacity == 10.0

    def test_keeps_target_without_entry(self, schedule):
        reg = CapacityRegulator(schedule)
        ctx = _Context(generation=schedule.end, target_ne=42, soft_capacity=60.0)
        step = reg.regulate(ctx, n_alive=42)
        assert ctx.target_ne == 42
        assert step.action == 'hold'
        assert reg.last_step is step

    def test_drives_soft_capacity_up_under_load(self, schedule):
        reg = CapacityRegulator(schedule)
        ctx = _Context(generation=schedule.end, target_ne=50, soft_capacity=50.0)
        # a persistent 20% shortfall keeps raising soft capacity until the cap
        for _ in range(10):
            reg.regulate(ctx, n_alive=40)
        assert ctx.soft_capacity == 100.0

    def test_invalid_parameters(self, schedule):
        with pytest.raises(ValueError):
            CapacityRegulator(schedule, tolerance=-0.1)
        with pytest.raises(ValueError):
            CapacityRegulator(schedule, max_ratio=0.5)

    def test_step_record(self, schedule):
        reg = CapacityRegulator(schedule)
        ctx = _Context(generation=schedule.end, target_ne=50, soft_capacity=50.0)
        step = reg.regulate(ctx, n_alive=25)
        assert step.old_capacity == 50.0
        assert step.new_capacity == pytest.approx(75.0)
        assert step.action == 'raise'
        assert np.isclose(ctx.soft_capacity, step.new_capacity)
