"""Scenario runner - Replay a scripted sequence of ledger operations.

A scenario is a list of steps, each a mapping with ``time`` and ``action``
plus the fields the action needs:

- ``fund``: credit ``amount`` of the pool's asset (or ``asset``) to ``account``
- ``deposit`` / ``withdraw``: ``pool``, ``account``, ``amount``
- ``claim`` / ``emergency_withdraw``: ``pool``, ``account``
- ``set_weight``: ``pool``, ``amount`` (new weight)
- ``set_rate``: ``amount`` (new rate per second)

A step may carry ``expect_error`` naming the error class it should raise.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..config.loader import build_engine
from ..config.schema import Config
from ..engine import errors
from ..engine.staking import LedgerEvent, StakingEngine
from ..validation.sanity_checks import InvariantChecker, ValidationWarning

logger = logging.getLogger(__name__)

ACTIONS = ("fund", "deposit", "withdraw", "claim", "emergency_withdraw", "set_weight", "set_rate")


@dataclass
class LedgerSnapshot:
    """Engine state after one scenario step."""
    step: int
    time: int
    action: str
    pool: Optional[int]
    account: Optional[str]
    amount: int
    result: int
    error: Optional[str]
    total_weight: int
    reward_owed_total: int
    reward_paid_total: int
    pools: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class ScenarioResult:
    """Complete scenario result."""
    config: Config
    snapshots: List[LedgerSnapshot]
    events: List[LedgerEvent]
    warnings: List[ValidationWarning]
    final_metrics: Dict[str, Any]
    step_errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.step_errors and not any(w.severity == "error" for w in self.warnings)


def load_scenario(yaml_path: str) -> List[Dict[str, Any]]:
    """Load scenario steps from YAML (a list, or a mapping with ``steps``)."""
    with open(Path(yaml_path), 'r') as f:
        data = yaml.safe_load(f)
    if isinstance(data, dict):
        data = data.get('steps', [])
    if not isinstance(data, list):
        raise ValueError(f"Scenario {yaml_path} must contain a list of steps")
    return data


class ScenarioRunner:
    """Drive an engine through scripted steps and audit it after each one."""

    def __init__(self, config: Config, engine: Optional[StakingEngine] = None):
        """
        Initialize scenario runner.

        Args:
            config: Ledger configuration
            engine: Pre-built engine (built from ``config`` when omitted)
        """
        self.config = config
        self.engine = engine or build_engine(config)
        self.checker = InvariantChecker(self.engine)

    def run(self, steps: List[Dict[str, Any]]) -> ScenarioResult:
        """
        Replay every step in order.

        Args:
            steps: Scenario steps

        Returns:
            ScenarioResult with one snapshot per step
        """
        snapshots: List[LedgerSnapshot] = []
        step_errors: List[str] = []
        warnings: List[ValidationWarning] = []

        for index, step in enumerate(steps):
            action = step.get('action')
            if action not in ACTIONS:
                raise ValueError(f"Step {index}: unknown action {action!r}")

            result = 0
            error = None
            expected = step.get('expect_error')
            try:
                result = self._apply(step)
            except errors.StakingError as exc:
                error = type(exc).__name__
                if error != expected:
                    step_errors.append(f"step {index} ({action}): unexpected {error}: {exc}")
                    logger.warning(f"Step {index} {action} failed: {exc}")
            else:
                if expected:
                    step_errors.append(f"step {index} ({action}): expected {expected}, succeeded")

            if error is None and action in ("deposit", "withdraw", "claim", "emergency_withdraw"):
                warnings.extend(self.checker.check_checkpoint(int(step['pool']), step['account']))
            warnings.extend(self.checker.check_accumulators())
            snapshots.append(self._snapshot(index, step, result, error))

        warnings.extend(self.checker.run_all())
        return ScenarioResult(
            config=self.config,
            snapshots=snapshots,
            events=list(self.engine.events),
            warnings=warnings,
            final_metrics=self._compute_final_metrics(),
            step_errors=step_errors,
        )

    def _apply(self, step: Dict[str, Any]) -> int:
        engine = self.engine
        admin = engine.access.admin
        action = step['action']
        now = int(step['time'])
        amount = int(step.get('amount', 0))
        pool_id = int(step['pool']) if 'pool' in step else None
        account = step.get('account')

        if action == "fund":
            asset = step.get('asset') or engine.registry.get(pool_id).staked_asset
            engine.assets.credit(asset, account, amount)
            return amount
        if action == "deposit":
            return engine.deposit(pool_id, account, amount, now)
        if action == "withdraw":
            return engine.withdraw(pool_id, account, amount, now)
        if action == "claim":
            return engine.claim(pool_id, account, now)
        if action == "emergency_withdraw":
            return engine.emergency_withdraw(pool_id, account, now)
        if action == "set_weight":
            engine.set_pool_weight(admin, pool_id, amount, now)
            return amount
        engine.set_emission_rate(admin, amount, now)
        return amount

    def _snapshot(self, index: int, step: Dict[str, Any], result: int, error: Optional[str]) -> LedgerSnapshot:
        engine = self.engine
        return LedgerSnapshot(
            step=index,
            time=int(step['time']),
            action=step['action'],
            pool=int(step['pool']) if 'pool' in step else None,
            account=step.get('account'),
            amount=int(step.get('amount', 0)),
            result=result,
            error=error,
            total_weight=engine.registry.total_weight,
            reward_owed_total=engine.reward_owed_total,
            reward_paid_total=engine.reward_paid_total,
            pools=[
                {
                    'pool_id': pool.pool_id,
                    'acc_per_share': pool.acc_per_share,
                    'last_accrual_time': pool.last_accrual_time,
                    'is_active': pool.is_active,
                    'staked_supply': engine.staked_supply(pool),
                }
                for pool in engine.registry
            ],
        )

    def _compute_final_metrics(self) -> Dict[str, Any]:
        engine = self.engine
        budget = engine.total_reward_budget
        return {
            'total_reward_budget': budget,
            'reward_owed_total': engine.reward_owed_total,
            'reward_paid_total': engine.reward_paid_total,
            'reward_shortfall': engine.reward_owed_total - engine.reward_paid_total,
            'remaining_budget': budget - engine.reward_owed_total,
            'fees_collected': dict(engine.fees_collected),
            'pool_count': engine.pool_count(),
            'event_count': len(engine.events),
        }
