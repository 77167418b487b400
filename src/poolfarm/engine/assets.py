"""Asset collaborators: balance book and reward disbursement strategies.

The engine never touches balances directly. It moves staked assets through
an ``AssetBook`` and pays rewards through an injected ``Disbursement``.
"""

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, Optional, Tuple

from .errors import InsufficientFunds

logger = logging.getLogger(__name__)


class AssetBook:
    """In-memory fungible balances keyed by (asset, holder)."""

    def __init__(self):
        self._balances: Dict[Tuple[str, str], int] = defaultdict(int)
        self.supply: Dict[str, int] = defaultdict(int)

    def balance_of(self, asset: str, holder: str) -> int:
        return self._balances.get((asset, holder), 0)

    def credit(self, asset: str, holder: str, amount: int):
        """Seed a balance from outside the ledger (faucet)."""
        self.mint(asset, holder, amount)

    def mint(self, asset: str, to: str, amount: int):
        if amount < 0:
            raise ValueError(f"Cannot mint negative amount {amount}")
        self._balances[(asset, to)] += amount
        self.supply[asset] += amount

    def transfer(self, asset: str, src: str, dst: str, amount: int):
        """
        Move ``amount`` of ``asset`` between holders.

        Raises:
            InsufficientFunds: If ``src`` holds less than ``amount``
        """
        if amount < 0:
            raise ValueError(f"Cannot transfer negative amount {amount}")
        available = self.balance_of(asset, src)
        if available < amount:
            raise InsufficientFunds(
                f"{src} holds {available} {asset}, needs {amount}"
            )
        if amount == 0 or src == dst:
            return
        self._balances[(asset, src)] = available - amount
        self._balances[(asset, dst)] += amount

    def holdings(self, holder: str) -> Dict[str, int]:
        return {
            asset: amount
            for (asset, owner), amount in self._balances.items()
            if owner == holder and amount
        }


class Disbursement(ABC):
    """Strategy for paying reward to an account.

    ``disburse`` returns the amount actually paid, which may be less than
    requested for capped strategies.
    """

    def __init__(self, assets: AssetBook, reward_asset: str):
        self.assets = assets
        self.reward_asset = reward_asset

    @abstractmethod
    def disburse(self, account: str, amount: int) -> int:
        """Pay up to ``amount`` of reward to ``account`` and return what was paid."""

    def available(self) -> Optional[int]:
        """Upper bound on what can be paid right now (None for unbounded)."""
        return None


class MintDisbursement(Disbursement):
    """Issue new reward supply to the account. Always pays in full."""

    def disburse(self, account: str, amount: int) -> int:
        if amount <= 0:
            return 0
        self.assets.mint(self.reward_asset, account, amount)
        return amount


class ReserveDisbursement(Disbursement):
    """Transfer reward from a reserve holder, capped at its balance.

    A shortfall is not an error: the account receives what is left and the
    remainder is not tracked.
    """

    def __init__(self, assets: AssetBook, reward_asset: str, reserve: str):
        super().__init__(assets, reward_asset)
        self.reserve = reserve

    def available(self) -> int:
        return self.assets.balance_of(self.reward_asset, self.reserve)

    def disburse(self, account: str, amount: int) -> int:
        if amount <= 0:
            return 0
        paid = min(amount, self.available())
        if paid < amount:
            logger.warning(
                f"Reward reserve short: paying {paid} of {amount} to {account}"
            )
        self.assets.transfer(self.reward_asset, self.reserve, account, paid)
        return paid
