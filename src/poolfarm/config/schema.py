"""Pydantic schema for configuration validation."""

import hashlib
import json
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..engine.fees import MAX_DEPOSIT_TAX_BPS, MAX_SUBSCRIPTION_RATE_BPS


class EmissionConfig(BaseModel):
    """Global emission window."""
    start_time: int = Field(ge=0, description="Emission start (unix seconds)")
    end_time: int = Field(gt=0, description="Emission end (unix seconds)")
    reward_rate_per_second: int = Field(ge=0, description="Reward base units emitted per second")

    @field_validator('end_time')
    @classmethod
    def validate_end_after_start(cls, v, info):
        """Ensure the window is non-empty."""
        if 'start_time' in info.data and v <= info.data['start_time']:
            raise ValueError("end_time must be greater than start_time")
        return v

    @property
    def total_reward_budget(self) -> int:
        return self.reward_rate_per_second * (self.end_time - self.start_time)


class WithdrawalTaxConfig(BaseModel):
    """Decaying exit tax curve."""
    max_rate_bps: int = Field(default=500, ge=0, le=10_000, description="Tax on day 0")
    min_rate_bps: int = Field(default=200, ge=0, le=10_000, description="Floor after decay")
    step_bps_per_day: int = Field(default=10, ge=0, description="Decay per full day since deposit")

    @model_validator(mode='after')
    def validate_floor(self):
        """Ensure the floor does not exceed the starting rate."""
        if self.min_rate_bps > self.max_rate_bps:
            raise ValueError(
                f"min_rate_bps ({self.min_rate_bps}) must not exceed max_rate_bps ({self.max_rate_bps})"
            )
        return self


class PoolConfig(BaseModel):
    """A pool registered at engine construction."""
    staked_asset: str = Field(min_length=1, description="Asset accepted by the pool")
    weight: int = Field(ge=0, description="Allocation weight")
    last_reward_time: int = Field(default=0, ge=0, description="First accrual time hint")
    deposit_tax_bps: int = Field(default=0, ge=0, le=MAX_DEPOSIT_TAX_BPS, description="Entry fee")
    subscription_rate_bps: int = Field(
        default=0, ge=0, le=MAX_SUBSCRIPTION_RATE_BPS,
        description="Weekly levy (subscription variant only)"
    )


class EngineConfig(BaseModel):
    """Engine wiring and identities."""
    variant: Literal["standard", "subscription"] = Field(default="standard", description="Pool variant")
    disbursement: Literal["mint", "reserve"] = Field(default="mint", description="Reward payment strategy")
    reward_asset: str = Field(default="REWARD", min_length=1, description="Asset paid as reward")
    admin: str = Field(default="operator", min_length=1, description="Operator identity")
    fee_recipient: str = Field(default="treasury", min_length=1, description="Fee destination")
    custody: str = Field(default="custody", min_length=1, description="Holder of staked balances")
    reward_reserve: str = Field(default="reward_reserve", min_length=1, description="Reserve holder for capped payouts")
    protected_pool_id: int = Field(default=0, ge=0, description="Pool without emergency withdrawal")
    mass_update_on_add: bool = Field(default=True, description="Accrue all pools before adding one")

    @model_validator(mode='after')
    def validate_holders(self):
        """Custody, reserve and fee recipient must be distinct holders."""
        holders = [self.custody, self.reward_reserve, self.fee_recipient]
        if len(set(holders)) != len(holders):
            raise ValueError(
                f"custody, reward_reserve and fee_recipient must differ, got {holders}"
            )
        return self


class Simulation(BaseModel):
    """Randomised replay parameters."""
    monte_carlo_runs: int = Field(default=20, gt=0, description="Number of Monte Carlo runs")
    steps_per_run: int = Field(default=200, gt=0, description="Operations per run")
    accounts: int = Field(default=5, gt=0, description="Distinct accounts per run")
    max_amount: int = Field(default=10**21, gt=0, description="Upper bound of a random deposit")
    random_seed: int = Field(default=42, description="Random seed for reproducibility")


class Config(BaseModel):
    """Complete configuration for the staking ledger."""
    emission: EmissionConfig
    withdrawal_tax: WithdrawalTaxConfig = Field(default_factory=WithdrawalTaxConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    pools: List[PoolConfig] = Field(default_factory=list)
    simulation: Simulation = Field(default_factory=Simulation)
    initial_balances: Dict[str, Dict[str, int]] = Field(
        default_factory=dict,
        description="holder -> asset -> amount seeded into the asset book"
    )

    @model_validator(mode='after')
    def validate_unique_assets(self):
        """No two pools may stake the same asset."""
        seen = set()
        for pool in self.pools:
            if pool.staked_asset in seen:
                raise ValueError(f"Duplicate staked asset in pools: {pool.staked_asset!r}")
            seen.add(pool.staked_asset)
        return self

    def pool_by_asset(self, staked_asset: str) -> Optional[PoolConfig]:
        for pool in self.pools:
            if pool.staked_asset == staked_asset:
                return pool
        return None

    def compute_hash(self) -> str:
        """Compute config hash for reproducibility."""
        config_dict = self.model_dump()
        config_str = json.dumps(config_dict, sort_keys=True)
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Create config from dictionary."""
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return self.model_dump()
