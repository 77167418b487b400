"""Invariant audits for a staking engine's state."""

from dataclasses import dataclass
from typing import Dict, List, Optional

from ..engine.accrual import reward_debt
from ..engine.fees import check_deposit_tax, check_subscription_rate
from ..engine.staking import StakingEngine


@dataclass
class ValidationWarning:
    """A validation warning with severity and message."""
    severity: str  # "warning" or "error"
    category: str  # e.g., "weight", "accumulator", "checkpoint"
    message: str
    details: Optional[str] = None


class InvariantChecker:
    """Run invariant checks against a live engine.

    The checker remembers accumulator values between calls to
    :meth:`check_accumulators`, so auditing after every operation catches a
    regression as soon as it happens.
    """

    def __init__(self, engine: StakingEngine):
        """Initialize with the engine to audit."""
        self.engine = engine
        self._last_acc: Dict[int, int] = {}

    def check_weights(self) -> List[ValidationWarning]:
        """Total weight must equal the weight sum of active pools."""
        registry = self.engine.registry
        expected = registry.active_weight_sum()
        if registry.total_weight != expected:
            return [ValidationWarning(
                severity="error",
                category="weight",
                message="Total weight does not match active pools",
                details=f"total_weight={registry.total_weight}, active sum={expected}"
            )]
        return []

    def check_accumulators(self) -> List[ValidationWarning]:
        """Accumulators must never decrease between audits."""
        warnings = []
        for pool in self.engine.registry:
            previous = self._last_acc.get(pool.pool_id, 0)
            if pool.acc_per_share < previous:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="accumulator",
                    message=f"Accumulator regressed on pool {pool.pool_id}",
                    details=f"{previous} -> {pool.acc_per_share}"
                ))
            self._last_acc[pool.pool_id] = max(previous, pool.acc_per_share)
        return warnings

    def check_positions(self) -> List[ValidationWarning]:
        """
        Check every position for negative balances and checkpoint drift.

        Returns:
            List of validation warnings
        """
        warnings = []
        for (pool_id, account), position in self.engine.ledger.items():
            pool = self.engine.registry.get(pool_id)
            if position.staked_amount < 0 or position.reward_debt < 0:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="bounds",
                    message=f"Negative position for {account} in pool {pool_id}",
                    details=f"staked={position.staked_amount}, debt={position.reward_debt}"
                ))
            if position.reward_debt > reward_debt(position.staked_amount, pool.acc_per_share):
                warnings.append(ValidationWarning(
                    severity="error",
                    category="checkpoint",
                    message=f"Reward debt exceeds accrued value for {account} in pool {pool_id}",
                    details=(
                        f"debt={position.reward_debt}, "
                        f"accrued={reward_debt(position.staked_amount, pool.acc_per_share)}"
                    )
                ))
        return warnings

    def check_checkpoint(self, pool_id: int, account: str) -> List[ValidationWarning]:
        """Right after an operation, debt must equal stake * acc / SCALE exactly."""
        pool = self.engine.registry.get(pool_id)
        position = self.engine.ledger.peek(pool_id, account)
        expected = reward_debt(position.staked_amount, pool.acc_per_share)
        if position.reward_debt != expected:
            return [ValidationWarning(
                severity="error",
                category="checkpoint",
                message=f"Checkpoint drift for {account} in pool {pool_id}",
                details=f"debt={position.reward_debt}, expected={expected}"
            )]
        return []

    def check_custody(self) -> List[ValidationWarning]:
        """Staked balances on the ledger must be backed by custody."""
        warnings = []
        for pool in self.engine.registry:
            on_ledger = self.engine.ledger.total_staked(pool.pool_id)
            held = self.engine.staked_supply(pool)
            if on_ledger > held:
                warnings.append(ValidationWarning(
                    severity="error",
                    category="custody",
                    message=f"Pool {pool.pool_id} ledger exceeds custody",
                    details=f"ledger={on_ledger}, custody={held} {pool.staked_asset}"
                ))
            elif held > on_ledger:
                warnings.append(ValidationWarning(
                    severity="warning",
                    category="custody",
                    message=f"Pool {pool.pool_id} custody holds unattributed balance",
                    details=f"surplus={held - on_ledger} {pool.staked_asset}"
                ))
        return warnings

    def check_pools(self) -> List[ValidationWarning]:
        """Asset uniqueness and fee bounds."""
        warnings = []
        assets = self.engine.registry.assets()
        duplicates = sorted({a for a in assets if assets.count(a) > 1})
        if duplicates:
            warnings.append(ValidationWarning(
                severity="error",
                category="registry",
                message="Staked asset registered in more than one pool",
                details=", ".join(duplicates)
            ))
        for pool in self.engine.registry:
            if not check_deposit_tax(pool.deposit_tax_bps):
                warnings.append(ValidationWarning(
                    severity="error",
                    category="fees",
                    message=f"Deposit tax out of bounds on pool {pool.pool_id}",
                    details=f"{pool.deposit_tax_bps} bps"
                ))
            if not check_subscription_rate(pool.subscription_rate_bps):
                warnings.append(ValidationWarning(
                    severity="error",
                    category="fees",
                    message=f"Subscription rate out of bounds on pool {pool.pool_id}",
                    details=f"{pool.subscription_rate_bps} bps"
                ))
        return warnings

    def check_budget(self) -> List[ValidationWarning]:
        """Owed reward should not exceed what the schedule can emit."""
        budget = self.engine.total_reward_budget
        if self.engine.reward_owed_total > budget:
            return [ValidationWarning(
                severity="warning",
                category="sustainability",
                message="Reward owed exceeds the emission budget",
                details=f"owed={self.engine.reward_owed_total}, budget={budget}"
            )]
        return []

    def run_all(self) -> List[ValidationWarning]:
        warnings = []
        warnings.extend(self.check_weights())
        warnings.extend(self.check_accumulators())
        warnings.extend(self.check_positions())
        warnings.extend(self.check_custody())
        warnings.extend(self.check_pools())
        warnings.extend(self.check_budget())
        return warnings


def validate_engine(engine: StakingEngine) -> List[ValidationWarning]:
    """
    Audit an engine's current state.

    Args:
        engine: Engine to audit

    Returns:
        List of all validation warnings
    """
    return InvariantChecker(engine).run_all()


def has_errors(warnings: List[ValidationWarning]) -> bool:
    return any(w.severity == "error" for w in warnings)
