"""Module D: Position Ledger - Per (pool, account) stake and reward checkpoints."""

from dataclasses import dataclass, replace
from typing import Dict, Iterator, Optional, Tuple


@dataclass
class Position:
    """A staker's position in one pool.

    Positions are never deleted; a full exit zeroes the amount and debt but
    keeps the timestamps for audit.
    """
    staked_amount: int = 0
    reward_debt: int = 0
    deposit_timestamp: int = 0
    last_subscription_timestamp: int = 0


@dataclass(frozen=True)
class PositionInfo:
    """Read-only view of a position returned by queries."""
    pool_id: int
    account: str
    staked_amount: int
    reward_debt: int
    deposit_timestamp: int
    last_subscription_timestamp: int


class PositionLedger:
    """Default-valued position store keyed by (pool_id, account)."""

    def __init__(self):
        self._positions: Dict[Tuple[int, str], Position] = {}

    def get(self, pool_id: int, account: str) -> Position:
        """Return the position, creating a zeroed one on first access."""
        key = (pool_id, account)
        position = self._positions.get(key)
        if position is None:
            position = Position()
            self._positions[key] = position
        return position

    def peek(self, pool_id: int, account: str) -> Position:
        """Return the position without recording a new entry."""
        return self._positions.get((pool_id, account), Position())

    def save(self, pool_id: int, account: str) -> Optional[Position]:
        """Copy of one stored position (None if it was never created)."""
        position = self._positions.get((pool_id, account))
        return None if position is None else replace(position)

    def restore(self, pool_id: int, account: str, saved: Optional[Position]):
        """Put back a position captured by :meth:`save`."""
        if saved is None:
            self._positions.pop((pool_id, account), None)
        else:
            self._positions[(pool_id, account)] = saved

    def items(self) -> Iterator[Tuple[Tuple[int, str], Position]]:
        return iter(self._positions.items())

    def positions_in(self, pool_id: int) -> Iterator[Tuple[str, Position]]:
        for (pid, account), position in self._positions.items():
            if pid == pool_id:
                yield account, position

    def total_staked(self, pool_id: int) -> int:
        return sum(position.staked_amount for _, position in self.positions_in(pool_id))

    def info(self, pool_id: int, account: str) -> PositionInfo:
        position = self.peek(pool_id, account)
        return PositionInfo(
            pool_id=pool_id,
            account=account,
            staked_amount=position.staked_amount,
            reward_debt=position.reward_debt,
            deposit_timestamp=position.deposit_timestamp,
            last_subscription_timestamp=position.last_subscription_timestamp,
        )
