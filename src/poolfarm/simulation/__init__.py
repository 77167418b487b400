"""Scenario replay and randomised invariant checking."""

from .monte_carlo import MonteCarloRun, MonteCarloRunner
from .runner import LedgerSnapshot, ScenarioResult, ScenarioRunner, load_scenario

__all__ = [
    "LedgerSnapshot",
    "MonteCarloRun",
    "MonteCarloRunner",
    "ScenarioResult",
    "ScenarioRunner",
    "load_scenario",
]
