"""Tests for deposit, withdraw, emergency withdraw and disbursement."""

import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from poolfarm.engine.assets import AssetBook, Disbursement, MintDisbursement
from poolfarm.engine.errors import (
    InsufficientBalance,
    InsufficientFunds,
    NonMonotonicTime,
    ProtectedPool,
    ReentrantCall,
    UnknownPool,
)
from poolfarm.engine.fees import DAY, WEEK
from poolfarm.engine.ledger import PositionLedger
from poolfarm.validation.sanity_checks import InvariantChecker

from conftest import CUSTODY, E18, RATE, RESERVE, REWARD, START, TREASURY, make_engine


class FailingDisbursement(Disbursement):
    """Payout collaborator that is always offline."""

    def disburse(self, account, amount):
        raise RuntimeError("payout offline")


class ReentrantDisbursement(MintDisbursement):
    """Tries to withdraw again from inside the payout."""

    def __init__(self, assets, reward_asset, engine, pool_id, now):
        super().__init__(assets, reward_asset)
        self.engine = engine
        self.pool_id = pool_id
        self.now = now

    def disburse(self, account, amount):
        self.engine.withdraw(self.pool_id, account, 1, self.now)
        return super().disburse(account, amount)


class RecordingDisbursement(MintDisbursement):
    """Captures the engine's view of the position at payout time."""

    def __init__(self, assets, reward_asset, engine, pool_id):
        super().__init__(assets, reward_asset)
        self.engine = engine
        self.pool_id = pool_id
        self.seen = []

    def disburse(self, account, amount):
        self.seen.append(self.engine.position_info(self.pool_id, account))
        return super().disburse(account, amount)


def fund(engine, pool_id, account, amount):
    engine.assets.credit(engine.registry.get(pool_id).staked_asset, account, amount)


class TestDeposit:
    """Staking into a pool."""

    def test_deposit_tax_split(self, taxed_pools):
        fund(taxed_pools, 1, "alice", 1000)
        taxed_pools.deposit(1, "alice", 1000, START)

        position = taxed_pools.position_info(1, "alice")
        assert position.staked_amount == 990
        assert position.deposit_timestamp == START
        assert taxed_pools.assets.balance_of("USDC", CUSTODY) == 990
        assert taxed_pools.assets.balance_of("USDC", TREASURY) == 10
        assert taxed_pools.assets.balance_of("USDC", "alice") == 0
        assert taxed_pools.fees_collected == {"USDC": 10}

    def test_zero_deposit_is_a_claim(self, single_pool):
        fund(single_pool, 0, "alice", 1000 * E18)
        single_pool.deposit(0, "alice", 1000 * E18, START)
        paid = single_pool.deposit(0, "alice", 0, START + 1_000)
        assert paid == 1_000 * RATE
        assert single_pool.assets.balance_of(REWARD, "alice") == paid
        assert single_pool.position_info(0, "alice").staked_amount == 1000 * E18

    def test_second_deposit_pays_pending_first(self, single_pool):
        fund(single_pool, 0, "alice", 2000 * E18)
        single_pool.deposit(0, "alice", 1000 * E18, START)
        paid = single_pool.deposit(0, "alice", 1000 * E18, START + 100)
        assert paid == 100 * RATE
        assert single_pool.pending_reward(0, "alice", START + 100) == 0
        assert single_pool.position_info(0, "alice").deposit_timestamp == START + 100

    def test_insufficient_funds_leaves_state_unchanged(self, taxed_pools):
        fund(taxed_pools, 1, "alice", 5)
        events_before = len(taxed_pools.events)
        with pytest.raises(InsufficientFunds):
            taxed_pools.deposit(1, "alice", 10, START)
        assert taxed_pools.position_info(1, "alice").staked_amount == 0
        assert taxed_pools.assets.balance_of("USDC", "alice") == 5
        assert len(taxed_pools.events) == events_before
        assert taxed_pools.latest_time == 0

    def test_unknown_pool(self, single_pool):
        with pytest.raises(UnknownPool):
            single_pool.deposit(7, "alice", 0, START)

    def test_negative_amount_rejected(self, single_pool):
        with pytest.raises(ValueError):
            single_pool.deposit(0, "alice", -1, START)


class TestWithdraw:
    """Unstaking with exit tax."""

    def test_exit_tax_decays_with_days_held(self, taxed_pools):
        fund(taxed_pools, 1, "alice", 10_000)
        taxed_pools.deposit(1, "alice", 10_000, START)
        received = taxed_pools.withdraw(1, "alice", 9_900, START + 10 * DAY)

        assert received == 9_504
        assert taxed_pools.assets.balance_of("USDC", "alice") == 9_504
        assert taxed_pools.assets.balance_of("USDC", TREASURY) == 100 + 396
        assert taxed_pools.assets.balance_of("USDC", CUSTODY) == 0
        assert taxed_pools.assets.balance_of(REWARD, "alice") > 0

        position = taxed_pools.position_info(1, "alice")
        assert position.staked_amount == 0
        assert position.reward_debt == 0
        assert position.deposit_timestamp == START

    def test_immediate_round_trip_pays_no_reward(self, taxed_pools):
        """Same-second deposit and withdraw: no reward, exit tax at its maximum."""
        fund(taxed_pools, 1, "alice", 10_000)
        now = START + 100
        taxed_pools.deposit(1, "alice", 10_000, now)
        received = taxed_pools.withdraw(1, "alice", 9_900, now)

        assert received == 9_900 - 495
        assert taxed_pools.assets.balance_of(REWARD, "alice") == 0
        assert not [e for e in taxed_pools.events if e.kind == 'RewardPaid']

    def test_untaxed_pool_has_no_exit_tax(self, taxed_pools):
        fund(taxed_pools, 0, "alice", 1_000)
        taxed_pools.deposit(0, "alice", 1_000, START)
        assert taxed_pools.withdraw(0, "alice", 400, START + 60) == 400
        assert taxed_pools.position_info(0, "alice").staked_amount == 600

    def test_over_withdrawal_rejected(self, taxed_pools):
        fund(taxed_pools, 1, "alice", 1_000)
        taxed_pools.deposit(1, "alice", 1_000, START)
        before = taxed_pools.position_info(1, "alice")
        events_before = len(taxed_pools.events)

        with pytest.raises(InsufficientBalance):
            taxed_pools.withdraw(1, "alice", 991, START + 500)

        assert taxed_pools.position_info(1, "alice") == before
        assert len(taxed_pools.events) == events_before
        assert taxed_pools.pool_info(1).last_accrual_time == START

    def test_checkpoint_holds_after_every_operation(self, taxed_pools):
        checker = InvariantChecker(taxed_pools)
        fund(taxed_pools, 1, "alice", 10 * E18)
        fund(taxed_pools, 1, "bob", 10 * E18)
        script = [
            ("deposit", "alice", 4 * E18, START + 10),
            ("deposit", "bob", 3 * E18, START + 700),
            ("withdraw", "alice", E18, START + 1_300),
            ("deposit", "alice", 2 * E18, START + 5_000),
            ("withdraw", "bob", 2 * E18, START + 9_000),
            ("deposit", "bob", 0, START + 9_500),
        ]
        for op, account, amount, now in script:
            getattr(taxed_pools, op)(1, account, amount, now)
            assert checker.check_checkpoint(1, account) == []
            assert checker.check_accumulators() == []
        assert [w for w in checker.run_all() if w.severity == "error"] == []


class TestEmergencyWithdraw:
    """Reward-forfeiting full exit."""

    def test_reserved_pool_is_protected(self, taxed_pools):
        fund(taxed_pools, 0, "alice", 1_000)
        taxed_pools.deposit(0, "alice", 1_000, START)
        before = taxed_pools.position_info(0, "alice")

        with pytest.raises(ProtectedPool):
            taxed_pools.emergency_withdraw(0, "alice", START + 10)

        assert taxed_pools.position_info(0, "alice") == before
        assert taxed_pools.assets.balance_of("LP", CUSTODY) == 1_000

    def test_forfeits_reward_and_skips_fees(self, taxed_pools):
        fund(taxed_pools, 1, "alice", 1_000)
        taxed_pools.deposit(1, "alice", 1_000, START)
        assert taxed_pools.pending_reward(1, "alice", START + 5_000) > 0

        returned = taxed_pools.emergency_withdraw(1, "alice", START + 5_000)

        assert returned == 990
        assert taxed_pools.assets.balance_of("USDC", "alice") == 990
        assert taxed_pools.assets.balance_of(REWARD, "alice") == 0
        position = taxed_pools.position_info(1, "alice")
        assert (position.staked_amount, position.reward_debt) == (0, 0)
        assert position.deposit_timestamp == START
        assert taxed_pools.pool_info(1).last_accrual_time == START


class TestTimeAndAtomicity:
    """Monotonic clock and all-or-nothing operations."""

    def test_stale_timestamp_rejected(self, single_pool):
        single_pool.claim(0, "alice", 5_000)
        with pytest.raises(NonMonotonicTime):
            single_pool.claim(0, "alice", 4_999)

    def test_failed_payout_rolls_back(self, single_pool):
        fund(single_pool, 0, "alice", 1000 * E18)
        single_pool.deposit(0, "alice", 1000 * E18, START)
        single_pool.disbursement = FailingDisbursement(single_pool.assets, REWARD)
        events_before = len(single_pool.events)

        with pytest.raises(RuntimeError):
            single_pool.claim(0, "alice", START + 500)

        info = single_pool.pool_info(0)
        assert info.acc_per_share == 0
        assert info.last_accrual_time == START
        assert single_pool.position_info(0, "alice").reward_debt == 0
        assert single_pool.latest_time == START
        assert len(single_pool.events) == events_before
        assert single_pool.pending_reward(0, "alice", START + 500) == 500 * RATE

    def test_state_settled_before_payout(self, single_pool):
        """The payout collaborator already sees the updated checkpoint."""
        recorder = RecordingDisbursement(single_pool.assets, REWARD, single_pool, 0)
        single_pool.disbursement = recorder
        fund(single_pool, 0, "alice", 1000 * E18)
        single_pool.deposit(0, "alice", 1000 * E18, START)
        single_pool.withdraw(0, "alice", 400 * E18, START + 100)

        seen = recorder.seen[0]
        assert seen.staked_amount == 600 * E18
        assert seen.reward_debt == 600 * E18 * single_pool.pool_info(0).acc_per_share // E18

    def test_failed_payout_on_levied_withdraw_moves_no_assets(self, subscription_pools):
        engine = subscription_pools
        fund(engine, 1, "alice", 10_000)
        engine.deposit(1, "alice", 10_000, START)
        engine.disbursement = FailingDisbursement(engine.assets, REWARD)

        with pytest.raises(RuntimeError):
            engine.withdraw(1, "alice", 1_000, START + 2 * WEEK)

        position = engine.position_info(1, "alice")
        assert position.staked_amount == 10_000
        assert position.last_subscription_timestamp == START
        assert engine.unpaid_subscription_weeks("alice", START + 2 * WEEK, pool_id=1) == 2
        assert engine.assets.balance_of("USDC", CUSTODY) == 10_000
        assert engine.assets.balance_of("USDC", TREASURY) == 0
        assert engine.assets.balance_of("USDC", "alice") == 0
        assert engine.fees_collected == {}
        assert InvariantChecker(engine).check_custody() == []

    def test_failed_payout_on_taxed_withdraw_moves_no_assets(self, taxed_pools):
        fund(taxed_pools, 1, "alice", 1_000)
        taxed_pools.deposit(1, "alice", 1_000, START)
        taxed_pools.disbursement = FailingDisbursement(taxed_pools.assets, REWARD)

        with pytest.raises(RuntimeError):
            taxed_pools.withdraw(1, "alice", 500, START + 100)

        assert taxed_pools.position_info(1, "alice").staked_amount == 990
        assert taxed_pools.assets.balance_of("USDC", CUSTODY) == 990
        assert taxed_pools.assets.balance_of("USDC", TREASURY) == 10
        assert taxed_pools.assets.balance_of("USDC", "alice") == 0
        assert taxed_pools.fees_collected == {"USDC": 10}

    def test_payout_cannot_reenter_the_ledger(self, single_pool):
        fund(single_pool, 0, "alice", 1000 * E18)
        single_pool.deposit(0, "alice", 1000 * E18, START)
        single_pool.disbursement = ReentrantDisbursement(
            single_pool.assets, REWARD, single_pool, 0, START + 100
        )

        with pytest.raises(ReentrantCall):
            single_pool.withdraw(0, "alice", 400 * E18, START + 100)

        assert single_pool.position_info(0, "alice").staked_amount == 1000 * E18
        assert single_pool.assets.balance_of("LP", CUSTODY) == 1000 * E18
        assert single_pool.assets.balance_of(REWARD, "alice") == 0
        assert single_pool.latest_time == START

    def test_failed_first_deposit_leaves_no_position(self, single_pool):
        with pytest.raises(InsufficientFunds):
            single_pool.deposit(0, "bob", E18, START)
        assert (0, "bob") not in dict(single_pool.ledger.items())


class TestPositionLedger:
    """Per-position save and restore used by the atomic scope."""

    def test_restore_reverts_changes(self):
        ledger = PositionLedger()
        ledger.get(0, "alice").staked_amount = 5
        saved = ledger.save(0, "alice")
        ledger.get(0, "alice").staked_amount = 9
        ledger.restore(0, "alice", saved)
        assert ledger.peek(0, "alice").staked_amount == 5

    def test_restore_of_unsaved_position_removes_it(self):
        ledger = PositionLedger()
        assert ledger.save(1, "bob") is None
        ledger.get(1, "bob").staked_amount = 3
        ledger.restore(1, "bob", None)
        assert list(ledger.items()) == []

    def test_save_is_a_copy(self):
        ledger = PositionLedger()
        ledger.get(0, "alice").reward_debt = 7
        saved = ledger.save(0, "alice")
        ledger.get(0, "alice").reward_debt = 8
        assert saved.reward_debt == 7


class TestDisbursementStrategies:
    """Mint versus capped reserve payouts."""

    def test_strategy_must_implement_disburse(self):
        with pytest.raises(TypeError):
            Disbursement(AssetBook(), REWARD)

    def test_mint_issues_new_supply(self, single_pool):
        fund(single_pool, 0, "alice", E18)
        single_pool.deposit(0, "alice", E18, START)
        paid = single_pool.claim(0, "alice", START + 10)
        assert single_pool.assets.supply[REWARD] == paid
        assert single_pool.reward_paid_total == single_pool.reward_owed_total == paid

    def test_reserve_caps_payout_without_error(self):
        engine = make_engine([{'staked_asset': 'LP', 'weight': 1}], reserve_balance=100)
        fund(engine, 0, "alice", 1000 * E18)
        engine.deposit(0, "alice", 1000 * E18, START)

        paid = engine.claim(0, "alice", START + 1_000)
        assert paid == 100
        assert engine.assets.balance_of(REWARD, "alice") == 100
        assert engine.assets.balance_of(REWARD, RESERVE) == 0
        assert engine.reward_owed_total == 1_000 * RATE
        assert engine.pending_reward(0, "alice", START + 1_000) == 0

        assert engine.claim(0, "alice", START + 2_000) == 0
        rewards = [e for e in engine.events if e.kind == 'RewardPaid']
        assert rewards[-1].amount == 0
        assert rewards[-1].data['owed'] == 1_000 * RATE
