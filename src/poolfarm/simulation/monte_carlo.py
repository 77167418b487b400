"""Monte Carlo replay of random operation sequences for invariant checking."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List

import numpy as np

from ..config.loader import build_engine
from ..config.schema import Config
from ..engine.errors import StakingError
from ..validation.sanity_checks import InvariantChecker, ValidationWarning

logger = logging.getLogger(__name__)

OPERATIONS = ("deposit", "withdraw", "claim", "emergency_withdraw")


@dataclass
class MonteCarloRun:
    """Outcome of one randomised run."""
    seed: int
    operations: int
    rejected: int
    reward_owed_total: int
    reward_paid_total: int
    total_reward_budget: int
    warnings: List[ValidationWarning] = field(default_factory=list)

    @property
    def budget_utilization(self) -> float:
        if self.total_reward_budget <= 0:
            return 0.0
        return self.reward_owed_total / self.total_reward_budget

    @property
    def error_count(self) -> int:
        return sum(1 for w in self.warnings if w.severity == "error")


class MonteCarloRunner:
    """Run random deposit/withdraw/claim sequences and audit invariants."""

    def __init__(self, config: Config):
        """
        Initialize Monte Carlo runner.

        Args:
            config: Base configuration (pools, emission window, simulation sizes)
        """
        self.config = config

    def run(self, num_runs: int = None, random_seed: int = None) -> List[MonteCarloRun]:
        """
        Run Monte Carlo simulation.

        Args:
            num_runs: Number of runs (defaults to config value)
            random_seed: Random seed (defaults to config value)

        Returns:
            List of run outcomes
        """
        if num_runs is None:
            num_runs = self.config.simulation.monte_carlo_runs

        if random_seed is None:
            random_seed = self.config.simulation.random_seed

        return [self.run_once(random_seed + run_idx) for run_idx in range(num_runs)]

    def run_once(self, seed: int) -> MonteCarloRun:
        """Replay one random sequence, auditing after every operation."""
        rng = np.random.default_rng(seed)
        sim = self.config.simulation
        engine = build_engine(self.config)
        checker = InvariantChecker(engine)
        accounts = [f"account_{i}" for i in range(sim.accounts)]
        pool_count = engine.pool_count()
        unit = max(1, sim.max_amount // 1000)

        for pool in engine.registry:
            for account in accounts:
                engine.assets.credit(pool.staked_asset, account, sim.max_amount * sim.steps_per_run)

        start = self.config.emission.start_time
        end = self.config.emission.end_time
        times = np.sort(rng.integers(start, end + (end - start) // 10, size=sim.steps_per_run))

        warnings: List[ValidationWarning] = []
        rejected = 0
        for now in times:
            now = int(now)
            op = OPERATIONS[int(rng.integers(0, len(OPERATIONS)))]
            pool_id = int(rng.integers(0, pool_count))
            account = accounts[int(rng.integers(0, len(accounts)))]
            try:
                if op == "deposit":
                    engine.deposit(pool_id, account, int(rng.integers(1, 1001)) * unit, now)
                elif op == "withdraw":
                    staked = engine.position_info(pool_id, account).staked_amount
                    amount = staked * int(rng.integers(0, 101)) // 100
                    engine.withdraw(pool_id, account, amount, now)
                elif op == "claim":
                    engine.claim(pool_id, account, now)
                else:
                    engine.emergency_withdraw(pool_id, account, now)
            except StakingError as exc:
                rejected += 1
                logger.debug(f"seed={seed} {op} rejected: {exc}")
                continue
            warnings.extend(checker.check_checkpoint(pool_id, account))
            warnings.extend(checker.check_accumulators())

        warnings.extend(checker.run_all())
        return MonteCarloRun(
            seed=seed,
            operations=len(times),
            rejected=rejected,
            reward_owed_total=engine.reward_owed_total,
            reward_paid_total=engine.reward_paid_total,
            total_reward_budget=engine.total_reward_budget,
            warnings=[w for w in warnings if w.severity == "error"],
        )

    def analyze_results(self, results: List[MonteCarloRun]) -> Dict[str, Any]:
        """
        Analyze Monte Carlo results.

        Args:
            results: List of run outcomes

        Returns:
            Statistical analysis
        """
        if not results:
            return {}

        utilization = [r.budget_utilization for r in results]
        rejected = [r.rejected for r in results]

        def compute_stats(values: List[float]) -> Dict[str, float]:
            """Compute statistical summary."""
            return {
                'mean': float(np.mean(values)),
                'std': float(np.std(values)),
                'min': float(np.min(values)),
                'max': float(np.max(values)),
                'p5': float(np.percentile(values, 5)),
                'p50': float(np.percentile(values, 50)),
                'p95': float(np.percentile(values, 95)),
            }

        return {
            'num_runs': len(results),
            'invariant_errors': sum(r.error_count for r in results),
            'budget_utilization': compute_stats(utilization),
            'rejected_operations': compute_stats(rejected),
        }
