"""Configuration schema and loading."""

from .loader import build_engine, config_from_dict, load_config
from .schema import Config, EmissionConfig, EngineConfig, PoolConfig, Simulation, WithdrawalTaxConfig

__all__ = [
    "Config",
    "EmissionConfig",
    "EngineConfig",
    "PoolConfig",
    "Simulation",
    "WithdrawalTaxConfig",
    "build_engine",
    "config_from_dict",
    "load_config",
]
