"""Module B: Pool Registry - Ordered collection of weighted staking pools."""

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from .errors import DuplicateAsset, FeeOutOfRange, UnknownPool
from .fees import (
    MAX_DEPOSIT_TAX_BPS,
    MAX_SUBSCRIPTION_RATE_BPS,
    check_deposit_tax,
    check_subscription_rate,
)


@dataclass
class Pool:
    """A weighted bucket accepting one staked asset.

    ``acc_per_share`` is scaled by 10**18 and never decreases. A pool only
    contributes its weight to the registry total once it is active.
    """
    pool_id: int
    staked_asset: str
    weight: int
    last_accrual_time: int
    acc_per_share: int = 0
    is_active: bool = False
    deposit_tax_bps: int = 0
    subscription_rate_bps: int = 0


@dataclass(frozen=True)
class PoolInfo:
    """Read-only view of a pool returned by queries."""
    pool_id: int
    staked_asset: str
    weight: int
    last_accrual_time: int
    acc_per_share: int
    is_active: bool
    deposit_tax_bps: int
    subscription_rate_bps: int
    staked_supply: int


def validate_fees(deposit_tax_bps: int, subscription_rate_bps: int = 0):
    """Raise FeeOutOfRange unless both parameters sit inside their bounds."""
    if not check_deposit_tax(deposit_tax_bps):
        raise FeeOutOfRange(
            f"Deposit tax {deposit_tax_bps} bps outside [0, {MAX_DEPOSIT_TAX_BPS}]"
        )
    if not check_subscription_rate(subscription_rate_bps):
        raise FeeOutOfRange(
            f"Subscription rate {subscription_rate_bps} bps outside [0, {MAX_SUBSCRIPTION_RATE_BPS}]"
        )


class PoolRegistry:
    """Indexed pool records plus the active weight total.

    ``total_weight`` is only changed through :meth:`activate` and
    :meth:`set_weight` so it always equals the weight sum of active pools.
    """

    def __init__(self):
        self._pools: List[Pool] = []
        self._by_asset: Dict[str, int] = {}
        self.total_weight = 0

    def __len__(self) -> int:
        return len(self._pools)

    def __iter__(self) -> Iterator[Pool]:
        return iter(self._pools)

    def get(self, pool_id: int) -> Pool:
        if not 0 <= pool_id < len(self._pools):
            raise UnknownPool(f"No pool with id {pool_id}")
        return self._pools[pool_id]

    def find_by_asset(self, staked_asset: str) -> Optional[Pool]:
        pool_id = self._by_asset.get(staked_asset)
        return None if pool_id is None else self._pools[pool_id]

    def check_new_asset(self, staked_asset: str):
        if staked_asset in self._by_asset:
            raise DuplicateAsset(
                f"Asset {staked_asset!r} already staked in pool {self._by_asset[staked_asset]}"
            )

    def add(
        self,
        staked_asset: str,
        weight: int,
        last_accrual_time: int,
        is_active: bool,
        deposit_tax_bps: int = 0,
        subscription_rate_bps: int = 0,
    ) -> Pool:
        """
        Append a new pool.

        Args:
            staked_asset: Asset accepted by the pool (unique)
            weight: Allocation weight
            last_accrual_time: Resolved first accrual timestamp
            is_active: Whether the pool starts active
            deposit_tax_bps: Entry fee
            subscription_rate_bps: Weekly levy (subscription variant)

        Returns:
            The stored pool record

        Raises:
            DuplicateAsset: If the asset already has a pool
            FeeOutOfRange: If a fee parameter is out of bounds
        """
        if weight < 0:
            raise ValueError(f"Pool weight must be non-negative, got {weight}")
        self.check_new_asset(staked_asset)
        validate_fees(deposit_tax_bps, subscription_rate_bps)

        pool = Pool(
            pool_id=len(self._pools),
            staked_asset=staked_asset,
            weight=weight,
            last_accrual_time=last_accrual_time,
            is_active=False,
            deposit_tax_bps=deposit_tax_bps,
            subscription_rate_bps=subscription_rate_bps,
        )
        self._pools.append(pool)
        self._by_asset[staked_asset] = pool.pool_id
        if is_active:
            self.activate(pool)
        return pool

    def activate(self, pool: Pool) -> bool:
        """Mark a dormant pool active and count its weight. Idempotent."""
        if pool.is_active:
            return False
        pool.is_active = True
        self.total_weight += pool.weight
        return True

    def set_weight(self, pool: Pool, new_weight: int):
        if new_weight < 0:
            raise ValueError(f"Pool weight must be non-negative, got {new_weight}")
        if pool.is_active:
            self.total_weight = self.total_weight - pool.weight + new_weight
        pool.weight = new_weight

    def active_weight_sum(self) -> int:
        return sum(pool.weight for pool in self._pools if pool.is_active)

    def assets(self) -> List[str]:
        return [pool.staked_asset for pool in self._pools]
