"""poolfarm - weighted multi-pool staking ledger with time-based reward accrual."""

__version__ = "1.0.0"
