"""Staking ledger engine: emission, accrual, positions, fees and operations."""

from .accrual import SCALE, AccrualEngine, AccrualProjection, pending_reward, project_accrual, reward_debt
from .assets import AssetBook, Disbursement, MintDisbursement, ReserveDisbursement
from .emission import EmissionSchedule
from .errors import (
    DuplicateAsset,
    FeeOutOfRange,
    InsufficientBalance,
    InsufficientFunds,
    NonMonotonicTime,
    ProtectedPool,
    RecoveryLocked,
    ReentrantCall,
    StakingError,
    Unauthorized,
    UnknownPool,
)
from .fees import WithdrawalTaxCurve, subscription_fee, unpaid_weeks, withdrawal_tax_rate
from .ledger import Position, PositionInfo, PositionLedger
from .registry import Pool, PoolInfo, PoolRegistry
from .staking import LedgerEvent, StakingEngine, SubscriptionStakingEngine

__all__ = [
    "SCALE",
    "AccrualEngine",
    "AccrualProjection",
    "pending_reward",
    "project_accrual",
    "reward_debt",
    "AssetBook",
    "Disbursement",
    "MintDisbursement",
    "ReserveDisbursement",
    "EmissionSchedule",
    "StakingError",
    "DuplicateAsset",
    "FeeOutOfRange",
    "InsufficientBalance",
    "InsufficientFunds",
    "NonMonotonicTime",
    "ProtectedPool",
    "RecoveryLocked",
    "ReentrantCall",
    "Unauthorized",
    "UnknownPool",
    "WithdrawalTaxCurve",
    "subscription_fee",
    "unpaid_weeks",
    "withdrawal_tax_rate",
    "Position",
    "PositionInfo",
    "PositionLedger",
    "Pool",
    "PoolInfo",
    "PoolRegistry",
    "LedgerEvent",
    "StakingEngine",
    "SubscriptionStakingEngine",
]
