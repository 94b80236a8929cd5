"""Demographic schedule: target Ne for every generation of change.

Phases, in order:
  burn-in            capacity K for K × burn_multiplier generations
  lead-in            K held for ``bottleneck_ramp`` further generations
  bottleneck ramp    K → bottleneck Ne, one entry per generation (inclusive)
  plateau            bottleneck Ne for ``bottleneck_duration`` generations
  recovery ramp      bottleneck Ne → K × recovery_fraction
  tail               final target held until ``end``

Lookups are exact-match: every generation at which the target changes has
an explicit entry; generations without an entry keep the previous target.
Also defines the reporting duty cycle (sparse during burn-in, dense after).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional

import numpy as np

from loadsim.config import DemographySection

DEFAULT_TAIL = 20


# ═══════════════════════════════════════════════════════════════════════
# SCHEDULE
# ═══════════════════════════════════════════════════════════════════════


def linear_ramp(start: float, stop: float, n_points: int) -> np.ndarray:
    """Integer-rounded linear interpolation with ``n_points`` entries."""
    return np.rint(np.linspace(start, stop, n_points)).astype(np.int64)


@dataclass(frozen=True, eq=False)
class DemographicSchedule:
    """Generation-indexed target-Ne trajectory. Immutable after build."""
    capacity: int
    burn_in_end: int
    ramp_start: int
    ramp_end: int
    plateau_end: int
    recovery_end: int
    end: int
    generations: np.ndarray      # strictly increasing int64
    target_ne: np.ndarray        # aligned with generations

    def __post_init__(self):
        # Read-only views; the schedule is consulted, never edited.
        self.generations.setflags(write=False)
        self.target_ne.setflags(write=False)

    def target_at(self, generation: int) -> Optional[int]:
        """Scheduled target Ne for ``generation``, or None without an entry."""
        idx = np.searchsorted(self.generations, generation)
        if idx < len(self.generations) and self.generations[idx] == generation:
            return int(self.target_ne[idx])
        return None

    def target_in_effect(self, generation: int) -> int:
        """Target Ne after applying every entry up to ``generation``."""
        idx = np.searchsorted(self.generations, generation, side='right')
        if idx == 0:
            return self.capacity
        return int(self.target_ne[idx - 1])

    def phase(self, generation: int) -> str:
        """Name of the demographic phase containing ``generation``."""
        if generation <= self.burn_in_end:
            return 'burn-in'
        if generation < self.ramp_start:
            return 'lead-in'
        if generation <= self.ramp_end:
            return 'bottleneck-ramp'
        if generation <= self.plateau_end:
            return 'plateau'
        if generation <= self.recovery_end:
            return 'recovery-ramp'
        return 'tail'

    def validate(self) -> None:
        """Raise ValueError on a malformed schedule."""
        if len(self.generations) != len(self.target_ne):
            raise ValueError("schedule generations and targets are misaligned")
        if len(self.generations) == 0:
            raise ValueError("schedule is empty")
        if np.any(np.diff(self.generations) <= 0):
            raise ValueError("schedule generations must be strictly increasing")
        if self.generations[0] <= self.burn_in_end:
            raise ValueError("schedule entries must follow the burn-in")
        if np.any(self.target_ne < 1):
            raise ValueError("schedule target Ne must be >= 1 in every generation")
        if self.end < self.generations[-1]:
            raise ValueError("schedule end precedes its last entry")


def build_schedule(
    capacity: int,
    burn_multiplier: float,
    bottleneck_ne: int,
    bottleneck_ramp: int,
    bottleneck_duration: int,
    recovery_fraction: float,
    recovery_ramp: int,
    tail: int = DEFAULT_TAIL,
) -> DemographicSchedule:
    """Compute the full target-Ne trajectory from scalar parameters.

    Example (K=1000, burn=2.5, Ne=5, ramp=5, duration=20, recovery=0.4,
    recovery ramp=5): burn-in ends at 2500, the ramp spans [2505, 2510],
    the plateau ends at 2530, recovery reaches 400 at 2535, end = 2555.

    Raises:
        ValueError: On non-positive inputs or a non-monotonic result.
    """
    if capacity < 1:
        raise ValueError(f"capacity must be >= 1, got {capacity}")
    if burn_multiplier <= 0:
        raise ValueError(f"burn_multiplier must be positive, got {burn_multiplier}")
    if min(bottleneck_ne, bottleneck_ramp, bottleneck_duration, recovery_ramp) < 1:
        raise ValueError(
            "bottleneck_ne, bottleneck_ramp, bottleneck_duration and "
            "recovery_ramp must all be >= 1"
        )
    if recovery_fraction <= 0:
        raise ValueError(f"recovery_fraction must be positive, got {recovery_fraction}")
    if tail < 0:
        raise ValueError(f"tail must be >= 0, got {tail}")

    burn_in_end = int(round(capacity * burn_multiplier))

    ramp_start = burn_in_end + bottleneck_ramp
    ramp_gens = np.arange(ramp_start, ramp_start + bottleneck_ramp + 1, dtype=np.int64)
    ramp_ne = linear_ramp(capacity, bottleneck_ne, bottleneck_ramp + 1)
    ramp_end = int(ramp_gens[-1])

    plateau_gens = np.arange(ramp_end + 1, ramp_end + bottleneck_duration + 1,
                             dtype=np.int64)
    plateau_ne = np.full(bottleneck_duration, bottleneck_ne, dtype=np.int64)
    plateau_end = int(plateau_gens[-1])

    recovery_target = capacity * recovery_fraction
    recovery_gens = np.arange(plateau_end + 1, plateau_end + recovery_ramp + 1,
                              dtype=np.int64)
    recovery_ne = linear_ramp(bottleneck_ne, recovery_target, recovery_ramp + 1)[1:]
    recovery_end = int(recovery_gens[-1])

    schedule = DemographicSchedule(
        capacity=capacity,
        burn_in_end=burn_in_end,
        ramp_start=ramp_start,
        ramp_end=ramp_end,
        plateau_end=plateau_end,
        recovery_end=recovery_end,
        end=recovery_end + tail,
        generations=np.concatenate([ramp_gens, plateau_gens, recovery_gens]),
        target_ne=np.maximum(np.concatenate([ramp_ne, plateau_ne, recovery_ne]), 1),
    )
    schedule.validate()
    return schedule


def schedule_from_config(section: DemographySection, capacity: int) -> DemographicSchedule:
    """Build the schedule for a configured run."""
    return build_schedule(
        capacity=capacity,
        burn_multiplier=section.burn_multiplier,
        bottleneck_ne=section.bottleneck_ne,
        bottleneck_ramp=section.bottleneck_ramp,
        bottleneck_duration=section.bottleneck_duration,
        recovery_fraction=section.recovery_fraction,
        recovery_ramp=section.recovery_ramp,
        tail=section.tail,
    )


# ═══════════════════════════════════════════════════════════════════════
# REPORTING DUTY CYCLE
# ═══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class DutyCycle:
    """Which generations a periodic report runs on.

    Every ``pre_interval`` generations up to and including burn-in end,
    every ``post_interval`` generations after it, and always at ``end``.
    """
    burn_in_end: int
    end: int
    pre_interval: int = 500
    post_interval: int = 2

    def is_due(self, generation: int) -> bool:
        if generation == self.end:
            return True
        if generation <= self.burn_in_end:
            return generation % self.pre_interval == 0
        return generation % self.post_interval == 0

    def due_generations(self, start: int = 1) -> Iterator[int]:
        for gen in range(start, self.end + 1):
            if self.is_due(gen):
                yield gen
