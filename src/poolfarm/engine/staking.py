"""Module E: Staking Operations - Deposit, withdraw and emergency exit.

Every state-changing operation follows the same order:
1. Validate inputs (nothing is touched on failure)
2. Accrue the pool up to ``now``
3. Update the position ledger and reward checkpoint
4. Pay reward, the only collaborator call that may fail
5. Move staked assets and fees, all pre-checked in step 1

Operations are serialized by an engine-wide lock and run inside an atomic
scope that restores the engine's own state if anything raises. A ledger
operation started from inside another one (for example from a payout
callback) is rejected with ReentrantCall.
"""

import copy
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .access import AccessControl
from .accrual import AccrualEngine, pending_reward, reward_debt
from .assets import AssetBook, Disbursement
from .emission import EmissionSchedule
from .errors import (
    InsufficientBalance,
    InsufficientFunds,
    NonMonotonicTime,
    ProtectedPool,
    RecoveryLocked,
    ReentrantCall,
)
from .fees import (
    DAY,
    WEEK,
    WithdrawalTaxCurve,
    deposit_tax,
    subscription_fee,
    unpaid_weeks,
    withdrawal_tax,
)
from .ledger import Position, PositionInfo, PositionLedger
from .registry import Pool, PoolInfo, PoolRegistry, validate_fees

logger = logging.getLogger(__name__)

RECOVERY_GRACE_PERIOD = 90 * DAY


@dataclass(frozen=True)
class LedgerEvent:
    """Domain event recorded by an operation."""
    kind: str
    time: int
    pool_id: Optional[int] = None
    account: Optional[str] = None
    amount: int = 0
    data: Dict[str, Any] = field(default_factory=dict)


class StakingEngine:
    """Weighted multi-pool staking ledger with decaying exit tax."""

    variant = "standard"

    def __init__(
        self,
        schedule: EmissionSchedule,
        assets: AssetBook,
        disbursement: Disbursement,
        admin: str,
        fee_recipient: str,
        custody: str = "custody",
        tax_curve: Optional[WithdrawalTaxCurve] = None,
        protected_pool_id: int = 0,
        mass_update_on_add: bool = True,
    ):
        """
        Initialize staking engine.

        Args:
            schedule: Global emission schedule
            assets: Balance book used for every staked-asset transfer
            disbursement: Reward payment strategy (mint or capped reserve)
            admin: Operator identity allowed to run administrative operations
            fee_recipient: Holder receiving deposit, exit and subscription fees
            custody: Holder of staked balances
            tax_curve: Withdrawal tax decay parameters
            protected_pool_id: Pool on which emergency withdrawal is disabled
            mass_update_on_add: Accrue every pool before adding a new one
        """
        self.schedule = schedule
        self.assets = assets
        self.disbursement = disbursement
        self.access = AccessControl(admin)
        self.fee_recipient = fee_recipient
        self.custody = custody
        self.tax_curve = tax_curve or WithdrawalTaxCurve()
        self.protected_pool_id = protected_pool_id
        self.mass_update_on_add = mass_update_on_add

        self.registry = PoolRegistry()
        self.ledger = PositionLedger()
        self.accrual = AccrualEngine(self.registry, self.schedule)
        self.events: List[LedgerEvent] = []
        self.latest_time = 0
        self.reward_owed_total = 0
        self.reward_paid_total = 0
        self.fees_collected: Dict[str, int] = {}

        self._lock = threading.RLock()
        self._busy = False

    # ==================== Atomic scope ====================

    def _snapshot(self, position_key: Optional[Tuple[int, str]]) -> Dict[str, Any]:
        # Pools are few; positions are not, so only the touched one is saved.
        snapshot = copy.deepcopy({
            'registry': self.registry,
            'schedule': self.schedule,
            'admin': self.access.admin,
            'fee_recipient': self.fee_recipient,
            'latest_time': self.latest_time,
            'reward_owed_total': self.reward_owed_total,
            'reward_paid_total': self.reward_paid_total,
            'fees_collected': self.fees_collected,
            'events_len': len(self.events),
        })
        snapshot['position_key'] = position_key
        if position_key is not None:
            snapshot['position'] = self.ledger.save(*position_key)
        return snapshot

    def _restore(self, snapshot: Dict[str, Any]):
        self.registry = snapshot['registry']
        self.schedule = snapshot['schedule']
        self.accrual = AccrualEngine(self.registry, self.schedule)
        if snapshot['position_key'] is not None:
            self.ledger.restore(*snapshot['position_key'], snapshot['position'])
        self.access.admin = snapshot['admin']
        self.fee_recipient = snapshot['fee_recipient']
        self.latest_time = snapshot['latest_time']
        self.reward_owed_total = snapshot['reward_owed_total']
        self.reward_paid_total = snapshot['reward_paid_total']
        self.fees_collected = snapshot['fees_collected']
        del self.events[snapshot['events_len']:]

    def _check_reentry(self):
        if self._busy:
            raise ReentrantCall("Ledger operation started from inside another operation")

    @contextmanager
    def _operation(self, now: int, pool_id: Optional[int] = None, account: Optional[str] = None):
        with self._lock:
            self._check_reentry()
            if now < self.latest_time:
                raise NonMonotonicTime(
                    f"Timestamp {now} is earlier than last observed {self.latest_time}"
                )
            snapshot = self._snapshot(None if account is None else (pool_id, account))
            self._busy = True
            try:
                yield
            except Exception:
                self._restore(snapshot)
                raise
            finally:
                self._busy = False
            self.latest_time = now

    # ==================== Helpers ====================

    def staked_supply(self, pool: Pool) -> int:
        """Custody balance of the pool's staked asset."""
        return self.assets.balance_of(pool.staked_asset, self.custody)

    def _mass_update(self, now: int):
        self.accrual.mass_update(now, self.staked_supply)

    def _emit(self, kind: str, now: int, pool_id=None, account=None, amount=0, **data):
        self.events.append(LedgerEvent(kind, now, pool_id, account, amount, data))

    def _pay_reward(self, pool_id: int, account: str, owed: int, now: int) -> int:
        paid = self.disbursement.disburse(account, owed)
        self.reward_owed_total += owed
        self.reward_paid_total += paid
        self._emit('RewardPaid', now, pool_id, account, paid, owed=owed)
        return paid

    def _send_fee(self, asset: str, amount: int):
        if amount <= 0:
            return
        self.assets.transfer(asset, self.custody, self.fee_recipient, amount)
        self.fees_collected[asset] = self.fees_collected.get(asset, 0) + amount

    def _require_custody(self, pool: Pool, needed: int):
        held = self.staked_supply(pool)
        if held < needed:
            raise InsufficientFunds(
                f"Custody holds {held} {pool.staked_asset}, withdrawal needs {needed}"
            )

    # Subscription hooks; the base engine charges no levy.

    def _subscription_due(self, pool: Pool, position: Position, now: int) -> Tuple[int, int]:
        return 0, 0

    def _stamp_subscription(self, position: Position, now: int):
        pass

    # ==================== Staking operations ====================

    def deposit(self, pool_id: int, account: str, amount: int, now: int) -> int:
        """
        Stake ``amount`` into a pool, paying out any pending reward first.

        A zero amount is a pure reward claim.

        Args:
            pool_id: Target pool
            account: Depositing account
            amount: Gross amount transferred from the account
            now: Current time

        Returns:
            Reward paid to the account

        Raises:
            InsufficientFunds: If the account cannot cover ``amount``
        """
        if amount < 0:
            raise ValueError(f"Deposit amount must be non-negative, got {amount}")

        with self._operation(now, pool_id, account):
            pool = self.registry.get(pool_id)
            held = self.assets.balance_of(pool.staked_asset, account)
            if held < amount:
                raise InsufficientFunds(f"{account} holds {held} {pool.staked_asset}, deposit needs {amount}")

            self.accrual.update_pool(pool_id, now, self.staked_supply(pool))
            position = self.ledger.get(pool_id, account)

            pending = 0
            if position.staked_amount > 0:
                pending = pending_reward(position.staked_amount, pool.acc_per_share, position.reward_debt)

            tax = net = 0
            if amount > 0:
                tax = deposit_tax(amount, pool.deposit_tax_bps)
                net = amount - tax
                position.staked_amount += net
                position.deposit_timestamp = now
                self._stamp_subscription(position, now)
            position.reward_debt = reward_debt(position.staked_amount, pool.acc_per_share)

            paid = 0
            if pending > 0:
                paid = self._pay_reward(pool_id, account, pending, now)
            if amount > 0:
                self.assets.transfer(pool.staked_asset, account, self.custody, amount)
                self._send_fee(pool.staked_asset, tax)
                if tax:
                    self._emit('DepositTaxCharged', now, pool_id, account, tax)
                self._emit('Deposit', now, pool_id, account, net, gross=amount)

            logger.debug(f"deposit pool={pool_id} account={account} net={net} tax={tax} paid={paid}")
            return paid

    def claim(self, pool_id: int, account: str, now: int) -> int:
        """Harvest pending reward without changing the stake."""
        return self.deposit(pool_id, account, 0, now)

    def withdraw(self, pool_id: int, account: str, amount: int, now: int) -> int:
        """
        Unstake ``amount`` from a pool.

        Pending reward is paid, any unpaid subscription levy is deducted from
        both the stake and the requested amount, and the remainder is taxed
        on the decaying exit curve when the pool carries a deposit tax.

        Args:
            pool_id: Source pool
            account: Withdrawing account
            amount: Amount requested
            now: Current time

        Returns:
            Amount of the staked asset delivered to the account

        Raises:
            InsufficientBalance: If ``amount`` exceeds the staked amount
        """
        if amount < 0:
            raise ValueError(f"Withdraw amount must be non-negative, got {amount}")

        with self._operation(now, pool_id, account):
            pool = self.registry.get(pool_id)
            position = self.ledger.get(pool_id, account)
            if amount > position.staked_amount:
                raise InsufficientBalance(
                    f"{account} has {position.staked_amount} staked in pool {pool_id}, requested {amount}"
                )
            levy, weeks = self._subscription_due(pool, position, now)
            self._require_custody(pool, max(levy, amount))

            self.accrual.update_pool(pool_id, now, self.staked_supply(pool))
            pending = pending_reward(position.staked_amount, pool.acc_per_share, position.reward_debt)

            if weeks:
                position.staked_amount -= levy
                position.last_subscription_timestamp += weeks * WEEK
                amount = max(0, amount - levy)

            tax = 0
            if amount > 0 and pool.deposit_tax_bps > 0:
                rate = self.tax_curve.rate_bps(position.deposit_timestamp, now)
                tax = withdrawal_tax(amount, rate)
            position.staked_amount -= amount
            position.reward_debt = reward_debt(position.staked_amount, pool.acc_per_share)

            paid = 0
            if pending > 0:
                paid = self._pay_reward(pool_id, account, pending, now)
            if levy:
                self._send_fee(pool.staked_asset, levy)
                self._emit('SubscriptionCharged', now, pool_id, account, levy, weeks=weeks)
            received = amount - tax
            if amount > 0:
                self._send_fee(pool.staked_asset, tax)
                self.assets.transfer(pool.staked_asset, self.custody, account, received)
                if tax:
                    self._emit('WithdrawTaxCharged', now, pool_id, account, tax)
                self._emit('Withdraw', now, pool_id, account, received, gross=amount)

            logger.debug(
                f"withdraw pool={pool_id} account={account} gross={amount} tax={tax} "
                f"levy={levy} paid={paid}"
            )
            return received

    def emergency_withdraw(self, pool_id: int, account: str, now: int) -> int:
        """
        Exit a position in full, forfeiting pending reward and skipping fees.

        Raises:
            ProtectedPool: On the reserved pool
        """
        with self._operation(now, pool_id, account):
            pool = self.registry.get(pool_id)
            if pool_id == self.protected_pool_id:
                raise ProtectedPool(f"Emergency withdrawal is disabled on pool {pool_id}")

            position = self.ledger.get(pool_id, account)
            amount = position.staked_amount
            self._require_custody(pool, amount)
            position.staked_amount = 0
            position.reward_debt = 0

            self.assets.transfer(pool.staked_asset, self.custody, account, amount)
            self._emit('EmergencyWithdraw', now, pool_id, account, amount)
            logger.info(f"Emergency withdrawal of {amount} from pool {pool_id} by {account}")
            return amount

    # ==================== Administration ====================

    def _resolve_start(self, hint: int, now: int) -> int:
        start = self.schedule.start_time
        if now < start:
            return start if hint < start else hint
        return now if hint < now else hint

    def add_pool(
        self,
        caller: str,
        staked_asset: str,
        weight: int,
        now: int,
        last_reward_time: int = 0,
        deposit_tax_bps: int = 0,
        subscription_rate_bps: int = 0,
        with_update: Optional[bool] = None,
    ) -> int:
        """
        Register a new pool.

        Args:
            caller: Must be the operator
            staked_asset: Asset accepted by the pool
            weight: Allocation weight
            now: Current time
            last_reward_time: First accrual time hint (0 for "as soon as possible")
            deposit_tax_bps: Entry fee, at most 400 bps
            subscription_rate_bps: Weekly levy, at most 1000 bps
            with_update: Accrue every pool first (defaults to engine setting)

        Returns:
            The new pool id

        Raises:
            Unauthorized, DuplicateAsset, FeeOutOfRange
        """
        with self._operation(now):
            self.access.require_admin(caller)
            if weight < 0:
                raise ValueError(f"Pool weight must be non-negative, got {weight}")
            self.registry.check_new_asset(staked_asset)
            validate_fees(deposit_tax_bps, subscription_rate_bps)

            if self.mass_update_on_add if with_update is None else with_update:
                self._mass_update(now)

            start = self._resolve_start(last_reward_time, now)
            is_active = start <= self.schedule.start_time or start <= now
            pool = self.registry.add(
                staked_asset,
                weight,
                start,
                is_active,
                deposit_tax_bps=deposit_tax_bps,
                subscription_rate_bps=subscription_rate_bps,
            )
            self._emit('PoolAdded', now, pool.pool_id, amount=weight, asset=staked_asset, active=is_active)
            logger.info(
                f"Added pool {pool.pool_id} for {staked_asset}: weight={weight}, "
                f"starts={start}, active={is_active}, total weight={self.registry.total_weight}"
            )
            return pool.pool_id

    def set_pool_weight(self, caller: str, pool_id: int, new_weight: int, now: int):
        """Change a pool's weight after accruing every pool at the old weights."""
        with self._operation(now):
            self.access.require_admin(caller)
            pool = self.registry.get(pool_id)
            if new_weight < 0:
                raise ValueError(f"Pool weight must be non-negative, got {new_weight}")
            self._mass_update(now)
            old_weight = pool.weight
            self.registry.set_weight(pool, new_weight)
            self._emit('WeightChanged', now, pool_id, amount=new_weight, previous=old_weight)
            logger.info(
                f"Pool {pool_id} weight {old_weight} -> {new_weight}, "
                f"total weight={self.registry.total_weight}"
            )

    def set_deposit_tax(self, caller: str, pool_id: int, bps: int, now: int):
        with self._operation(now):
            self.access.require_admin(caller)
            pool = self.registry.get(pool_id)
            validate_fees(bps, pool.subscription_rate_bps)
            pool.deposit_tax_bps = bps
            logger.info(f"Pool {pool_id} deposit tax set to {bps} bps")

    def set_subscription_rate(self, caller: str, pool_id: int, bps: int, now: int):
        with self._operation(now):
            self.access.require_admin(caller)
            pool = self.registry.get(pool_id)
            validate_fees(pool.deposit_tax_bps, bps)
            pool.subscription_rate_bps = bps
            logger.info(f"Pool {pool_id} subscription rate set to {bps} bps")

    def set_emission_rate(self, caller: str, rate_per_second: int, now: int):
        """Change the emission rate; elapsed time is accrued at the old rate."""
        with self._operation(now):
            self.access.require_admin(caller)
            self._mass_update(now)
            previous = self.schedule.rate_per_second
            self.schedule.change_rate(rate_per_second, now)
            self._emit('EmissionRateChanged', now, amount=rate_per_second, previous=previous)
            logger.info(f"Emission rate {previous} -> {rate_per_second} per second")

    def set_fee_recipient(self, caller: str, recipient: str):
        with self._lock:
            self._check_reentry()
            self.access.require_admin(caller)
            if not recipient:
                raise ValueError("Fee recipient must be a non-empty identity")
            self.fee_recipient = recipient
            logger.info(f"Fee recipient set to {recipient}")

    def transfer_admin(self, caller: str, new_admin: str):
        with self._lock:
            self._check_reentry()
            self.access.transfer_admin(caller, new_admin)

    def recover_unsupported(self, caller: str, asset: str, amount: int, to: str, now: int):
        """
        Move stray assets out of custody.

        Staked assets and the reward asset stay locked until 90 days after
        the emission window closes.

        Raises:
            RecoveryLocked: If the asset is still protected
        """
        with self._operation(now):
            self.access.require_admin(caller)
            if now < self.schedule.end_time + RECOVERY_GRACE_PERIOD:
                if asset == self.disbursement.reward_asset:
                    raise RecoveryLocked(f"Reward asset {asset} cannot be recovered yet")
                if self.registry.find_by_asset(asset) is not None:
                    raise RecoveryLocked(f"Staked asset {asset} cannot be recovered yet")
            self.assets.transfer(asset, self.custody, to, amount)
            self._emit('TokensRecovered', now, amount=amount, asset=asset, to=to)
            logger.info(f"Recovered {amount} {asset} from custody to {to}")

    # ==================== Queries ====================

    def pool_count(self) -> int:
        return len(self.registry)

    def pool_info(self, pool_id: int) -> PoolInfo:
        with self._lock:
            pool = self.registry.get(pool_id)
            return PoolInfo(
                pool_id=pool.pool_id,
                staked_asset=pool.staked_asset,
                weight=pool.weight,
                last_accrual_time=pool.last_accrual_time,
                acc_per_share=pool.acc_per_share,
                is_active=pool.is_active,
                deposit_tax_bps=pool.deposit_tax_bps,
                subscription_rate_bps=pool.subscription_rate_bps,
                staked_supply=self.staked_supply(pool),
            )

    def position_info(self, pool_id: int, account: str) -> PositionInfo:
        with self._lock:
            self.registry.get(pool_id)
            return self.ledger.info(pool_id, account)

    def pending_reward(self, pool_id: int, account: str, now: Optional[int] = None) -> int:
        """
        Reward an account would be owed if it claimed at ``now``.

        Uses the same accrual projection as the authoritative update, so a
        claim at ``now`` owes exactly this amount.
        """
        with self._lock:
            if now is None:
                now = self.latest_time
            pool = self.registry.get(pool_id)
            position = self.ledger.peek(pool_id, account)
            projection = self.accrual.project(pool_id, now, self.staked_supply(pool))
            return pending_reward(position.staked_amount, projection.acc_per_share, position.reward_debt)

    def unpaid_subscription_weeks(self, account: str, now: Optional[int] = None, pool_id: int = 0) -> int:
        return 0

    @property
    def total_reward_budget(self) -> int:
        return self.schedule.total_reward_budget


class SubscriptionStakingEngine(StakingEngine):
    """Staking engine that also levies a weekly subscription on stakes.

    The levy is settled in arrears on withdrawal for whole unpaid weeks and
    re-stamped on every deposit.
    """

    variant = "subscription"

    def _subscription_due(self, pool: Pool, position: Position, now: int) -> Tuple[int, int]:
        weeks = unpaid_weeks(position.last_subscription_timestamp, now)
        if weeks < 1 or position.staked_amount == 0:
            return 0, 0
        levy = subscription_fee(position.staked_amount, pool.subscription_rate_bps, weeks)
        return min(levy, position.staked_amount), weeks

    def _stamp_subscription(self, position: Position, now: int):
        position.last_subscription_timestamp = now

    def unpaid_subscription_weeks(self, account: str, now: Optional[int] = None, pool_id: int = 0) -> int:
        """Whole weeks of levy owed by ``account`` in ``pool_id``."""
        with self._lock:
            if now is None:
                now = self.latest_time
            self.registry.get(pool_id)
            position = self.ledger.peek(pool_id, account)
            if position.staked_amount == 0:
                return 0
            return unpaid_weeks(position.last_subscription_timestamp, now)
