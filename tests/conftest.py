"""Shared fixtures for staking ledger tests."""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from poolfarm.engine.assets import AssetBook, MintDisbursement, ReserveDisbursement
from poolfarm.engine.emission import EmissionSchedule
from poolfarm.engine.fees import WithdrawalTaxCurve
from poolfarm.engine.staking import StakingEngine, SubscriptionStakingEngine

E18 = 10**18
START = 1_000
END = 87_400  # 24h window
RATE = 10_000 * E18 // 86_400  # 10000 tokens per day

ADMIN = "operator"
TREASURY = "treasury"
CUSTODY = "custody"
RESERVE = "reward_reserve"
REWARD = "REWARD"


def make_engine(
    pools=(),
    subscription: bool = False,
    reserve_balance=None,
    rate: int = RATE,
    add_time: int = 0,
):
    """
    Build an engine with the 24h test window.

    Args:
        pools: Iterable of dicts passed to add_pool (staked_asset, weight, ...)
        subscription: Use the subscription variant
        reserve_balance: Use the capped reserve strategy with this balance
        rate: Emission rate per second
        add_time: Time at which the pools are added
    """
    assets = AssetBook()
    if reserve_balance is None:
        disbursement = MintDisbursement(assets, REWARD)
    else:
        assets.credit(REWARD, RESERVE, reserve_balance)
        disbursement = ReserveDisbursement(assets, REWARD, RESERVE)

    engine_cls = SubscriptionStakingEngine if subscription else StakingEngine
    engine = engine_cls(
        schedule=EmissionSchedule(START, END, rate),
        assets=assets,
        disbursement=disbursement,
        admin=ADMIN,
        fee_recipient=TREASURY,
        custody=CUSTODY,
        tax_curve=WithdrawalTaxCurve(500, 200, 10),
    )
    for pool in pools:
        pool = dict(pool)
        engine.add_pool(ADMIN, pool.pop('staked_asset'), pool.pop('weight'), add_time, **pool)
    return engine


@pytest.fixture
def single_pool():
    """One pool, weight 100, no taxes."""
    return make_engine([{'staked_asset': 'LP', 'weight': 100}])


@pytest.fixture
def taxed_pools():
    """Reserved pool 0 plus a 1% deposit-tax pool 1."""
    return make_engine([
        {'staked_asset': 'LP', 'weight': 1},
        {'staked_asset': 'USDC', 'weight': 1, 'deposit_tax_bps': 100},
    ])


@pytest.fixture
def subscription_pools():
    """Subscription variant: reserved pool 0 plus a 1%/week pool 1."""
    return make_engine(
        [
            {'staked_asset': 'LP', 'weight': 1},
            {'staked_asset': 'USDC', 'weight': 1, 'subscription_rate_bps': 100},
        ],
        subscription=True,
    )
