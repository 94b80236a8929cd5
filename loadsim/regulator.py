"""Carrying-capacity regulator: keeps realized N on the scheduled Ne.

The engine limits population size through density-dependent survival
(soft selection), so a population carrying heavy load settles below its
nominal capacity. Each generation, before reproduction, the regulator
nudges the soft capacity, i.e. the number of offspring produced, by the
relative shortfall or excess of the living population:

    deficit  = 1 − N / Ne      soft ← min(soft · (1 + deficit), 2·Ne)
    surplus  = N / Ne − 1      soft ← max(soft · (1 − surplus), Ne)

No adjustment is made inside the ±tolerance band. Proportional control
only; there is no integral or derivative term.

Invariant: Ne ≤ soft capacity ≤ max_ratio · Ne after every call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from loadsim.schedule import DemographicSchedule

logger = logging.getLogger(__name__)


@dataclass
class RegulatorStep:
    """What the regulator saw and did in one generation."""
    generation: int
    n_alive: int
    target_ne: int
    old_capacity: float
    new_capacity: float
    action: str           # 'hold', 'raise', 'lower'
    clamped: bool = False


def clamp_capacity(soft_capacity: float, target_ne: int, max_ratio: float = 2.0) -> float:
    """Bound soft capacity to [target_ne, max_ratio × target_ne]."""
    return min(max(soft_capacity, float(target_ne)), max_ratio * target_ne)


def adjust_capacity(
    soft_capacity: float,
    n_alive: int,
    target_ne: int,
    tolerance: float = 0.01,
    max_ratio: float = 2.0,
) -> Tuple[float, str, bool]:
    """One proportional adjustment step.

    Returns:
        (new_capacity, action, clamped)
    """
    if target_ne < 1:
        raise ValueError(f"target_ne must be >= 1, got {target_ne}")

    ratio = n_alive / target_ne
    if ratio < 1.0 - tolerance:
        deficit = 1.0 - ratio
        adjusted = soft_capacity + soft_capacity * deficit
        action = 'raise'
    elif ratio > 1.0 + tolerance:
        surplus = ratio - 1.0
        adjusted = soft_capacity - soft_capacity * surplus
        action = 'lower'
    else:
        adjusted = soft_capacity
        action = 'hold'

    bounded = clamp_capacity(adjusted, target_ne, max_ratio)
    return bounded, action, bounded != adjusted


class CapacityRegulator:
    """Applies the schedule and the proportional feedback each generation.

    Args:
        schedule: Demographic schedule supplying exact-match target Ne.
        tolerance: Relative band around target with no adjustment.
        max_ratio: Upper bound on soft capacity as a multiple of target.
    """

    def __init__(
        self,
        schedule: DemographicSchedule,
        tolerance: float = 0.01,
        max_ratio: float = 2.0,
    ):
        if tolerance < 0:
            raise ValueError(f"tolerance must be >= 0, got {tolerance}")
        if max_ratio < 1.0:
            raise ValueError(f"max_ratio must be >= 1, got {max_ratio}")
        self.schedule = schedule
        self.tolerance = tolerance
        self.max_ratio = max_ratio
        self.last_step: Optional[RegulatorStep] = None

    def regulate(self, context, n_alive: int) -> RegulatorStep:
        """Update ``context.target_ne`` and ``context.soft_capacity`` in place.

        Args:
            context: Object with ``generation``, ``target_ne`` and
                ``soft_capacity`` attributes (a SimulationContext).
            n_alive: Current living-population count.
        """
        scheduled = self.schedule.target_at(context.generation)
        if scheduled is not None and scheduled != context.target_ne:
            logger.debug("gen %d: target Ne %d → %d",
                         context.generation, context.target_ne, scheduled)
            context.target_ne = scheduled

        old = context.soft_capacity
        new, action, clamped = adjust_capacity(
            old, n_alive, context.target_ne, self.tolerance, self.max_ratio,
        )
        if clamped:
            logger.debug("gen %d: soft capacity clamped to %.1f (target %d)",
                         context.generation, new, context.target_ne)
        context.soft_capacity = new

        step = RegulatorStep(
            generation=context.generation,
            n_alive=n_alive,
            target_ne=context.target_ne,
            old_capacity=old,
            new_capacity=new,
            action=action,
            clamped=clamped,
        )
        self.last_step = step
        return step
