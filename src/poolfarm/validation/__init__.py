"""Validation and invariant checks for the staking ledger."""

from .sanity_checks import InvariantChecker, ValidationWarning, has_errors, validate_engine

__all__ = [
    "InvariantChecker",
    "ValidationWarning",
    "has_errors",
    "validate_engine"
]
