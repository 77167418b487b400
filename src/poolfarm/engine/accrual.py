"""Module C: Accrual Engine - Per-share accumulator updates with lazy activation.

Key Concepts:
- reward(pool) = generated(last, now) * weight / total_weight
- acc_per_share += reward * SCALE / staked_supply
- An interval with no stake advances the clock but banks nothing
- A dormant pool is activated (weight added to the total) on its first
  accrual with non-zero stake
"""

import logging
from dataclasses import dataclass
from typing import Callable

from .emission import EmissionSchedule
from .registry import Pool, PoolRegistry

logger = logging.getLogger(__name__)

SCALE = 10**18


@dataclass(frozen=True)
class AccrualProjection:
    """Outcome of accruing a pool up to ``now`` without applying it."""
    acc_per_share: int
    last_accrual_time: int
    activates: bool
    total_weight: int
    reward: int = 0


def project_accrual(
    pool: Pool,
    now: int,
    staked_supply: int,
    total_weight: int,
    schedule: EmissionSchedule,
) -> AccrualProjection:
    """
    Compute what an accrual pass would do to a pool.

    This is the single source of accrual arithmetic: the authoritative
    update and the read-only pending-reward query both go through it.

    Args:
        pool: Pool record (not modified)
        now: Current time
        staked_supply: Amount of the staked asset held in custody
        total_weight: Registry weight total before this pass
        schedule: Global emission schedule

    Returns:
        AccrualProjection describing the resulting pool state
    """
    if now <= pool.last_accrual_time:
        return AccrualProjection(
            acc_per_share=pool.acc_per_share,
            last_accrual_time=pool.last_accrual_time,
            activates=False,
            total_weight=total_weight,
        )

    if staked_supply == 0:
        # Unclaimed emission for an empty pool is dropped, not carried forward.
        return AccrualProjection(
            acc_per_share=pool.acc_per_share,
            last_accrual_time=now,
            activates=False,
            total_weight=total_weight,
        )

    activates = not pool.is_active
    if activates:
        total_weight += pool.weight

    acc_per_share = pool.acc_per_share
    reward = 0
    if total_weight > 0:
        generated = schedule.generated_reward(pool.last_accrual_time, now)
        reward = generated * pool.weight // total_weight
        acc_per_share += reward * SCALE // staked_supply

    return AccrualProjection(
        acc_per_share=acc_per_share,
        last_accrual_time=now,
        activates=activates,
        total_weight=total_weight,
        reward=reward,
    )


def pending_reward(staked_amount: int, acc_per_share: int, reward_debt: int) -> int:
    """Unpaid reward for a position at a given accumulator value."""
    return staked_amount * acc_per_share // SCALE - reward_debt


def reward_debt(staked_amount: int, acc_per_share: int) -> int:
    """Checkpoint value for a position at a given accumulator value."""
    return staked_amount * acc_per_share // SCALE


class AccrualEngine:
    """Applies accrual passes to pools in a registry."""

    def __init__(self, registry: PoolRegistry, schedule: EmissionSchedule):
        """
        Initialize accrual engine.

        Args:
            registry: Pool registry to mutate
            schedule: Global emission schedule
        """
        self.registry = registry
        self.schedule = schedule

    def project(self, pool_id: int, now: int, staked_supply: int) -> AccrualProjection:
        pool = self.registry.get(pool_id)
        return project_accrual(pool, now, staked_supply, self.registry.total_weight, self.schedule)

    def update_pool(self, pool_id: int, now: int, staked_supply: int) -> AccrualProjection:
        """
        Bring a pool's accumulator current.

        Args:
            pool_id: Pool to update
            now: Current time
            staked_supply: Custody balance of the pool's staked asset

        Returns:
            The projection that was applied
        """
        pool = self.registry.get(pool_id)
        projection = self.project(pool_id, now, staked_supply)

        if projection.activates:
            self.registry.activate(pool)
            logger.info(
                f"Pool {pool_id} ({pool.staked_asset}) activated at t={now}, "
                f"total weight now {self.registry.total_weight}"
            )

        pool.acc_per_share = projection.acc_per_share
        pool.last_accrual_time = projection.last_accrual_time

        if projection.reward:
            logger.debug(
                f"Pool {pool_id} accrued {projection.reward} over supply {staked_supply}, "
                f"acc_per_share={pool.acc_per_share}"
            )
        return projection

    def mass_update(self, now: int, supply_of: Callable[[Pool], int]):
        """Accrue every registered pool up to ``now`` in registry order."""
        for pool in self.registry:
            self.update_pool(pool.pool_id, now, supply_of(pool))
