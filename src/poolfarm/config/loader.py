"""Configuration loader from YAML, and engine construction from config."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..engine.assets import AssetBook, MintDisbursement, ReserveDisbursement
from ..engine.emission import EmissionSchedule
from ..engine.fees import WithdrawalTaxCurve
from ..engine.staking import StakingEngine, SubscriptionStakingEngine
from .schema import Config


def load_config(yaml_path: str = None) -> Config:
    """
    Load configuration from YAML file.

    Args:
        yaml_path: Path to YAML file (defaults to defaults.yaml)

    Returns:
        Config object
    """
    if yaml_path is None:
        yaml_path = Path(__file__).parent / "defaults.yaml"

    with open(yaml_path, 'r') as f:
        data = yaml.safe_load(f)

    return Config.from_dict(data)


def config_from_dict(data: Dict[str, Any]) -> Config:
    """
    Create config from dictionary.

    Args:
        data: Configuration dictionary

    Returns:
        Config object
    """
    return Config.from_dict(data)


def build_engine(config: Config, assets: Optional[AssetBook] = None, now: Optional[int] = None) -> StakingEngine:
    """
    Wire a staking engine from configuration and register its pools.

    Args:
        config: Validated configuration
        assets: Balance book to use (a fresh one seeded from
            ``initial_balances`` when omitted)
        now: Time at which configured pools are added (defaults to the
            emission start)

    Returns:
        Ready-to-use engine
    """
    if assets is None:
        assets = AssetBook()
        for holder, balances in config.initial_balances.items():
            for asset, amount in balances.items():
                assets.credit(asset, holder, amount)

    engine_cfg = config.engine
    schedule = EmissionSchedule(
        start_time=config.emission.start_time,
        end_time=config.emission.end_time,
        rate_per_second=config.emission.reward_rate_per_second,
    )
    if engine_cfg.disbursement == "mint":
        disbursement = MintDisbursement(assets, engine_cfg.reward_asset)
    else:
        disbursement = ReserveDisbursement(assets, engine_cfg.reward_asset, engine_cfg.reward_reserve)

    engine_cls = SubscriptionStakingEngine if engine_cfg.variant == "subscription" else StakingEngine
    engine = engine_cls(
        schedule=schedule,
        assets=assets,
        disbursement=disbursement,
        admin=engine_cfg.admin,
        fee_recipient=engine_cfg.fee_recipient,
        custody=engine_cfg.custody,
        tax_curve=WithdrawalTaxCurve(
            max_rate_bps=config.withdrawal_tax.max_rate_bps,
            min_rate_bps=config.withdrawal_tax.min_rate_bps,
            step_bps_per_day=config.withdrawal_tax.step_bps_per_day,
        ),
        protected_pool_id=engine_cfg.protected_pool_id,
        mass_update_on_add=engine_cfg.mass_update_on_add,
    )

    add_time = config.emission.start_time if now is None else now
    for pool in config.pools:
        engine.add_pool(
            engine_cfg.admin,
            pool.staked_asset,
            pool.weight,
            add_time,
            last_reward_time=pool.last_reward_time,
            deposit_tax_bps=pool.deposit_tax_bps,
            subscription_rate_bps=pool.subscription_rate_bps,
        )
    return engine
