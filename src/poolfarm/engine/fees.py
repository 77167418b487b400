"""Module F: Fee Curves - Decaying exit tax and weekly subscription levy.

Withdrawal tax: tax(d) = max(min_rate, max_rate - step * d), d = whole days
since the position's last deposit.

Subscription fee: fee = staked * rate_bps / 10000 * weeks, flat and
non-compounding.
"""

from dataclasses import dataclass

BPS_DENOMINATOR = 10_000
DAY = 86_400
WEEK = 7 * DAY

MAX_DEPOSIT_TAX_BPS = 400  # 4%
MAX_SUBSCRIPTION_RATE_BPS = 1_000  # 10% per week


@dataclass(frozen=True)
class WithdrawalTaxCurve:
    """Linear decaying withdrawal tax, floored at a minimum."""
    max_rate_bps: int = 500
    min_rate_bps: int = 200
    step_bps_per_day: int = 10

    def __post_init__(self):
        if not 0 <= self.min_rate_bps <= self.max_rate_bps <= BPS_DENOMINATOR:
            raise ValueError(
                "Withdrawal tax curve requires 0 <= min <= max <= 10000 bps, "
                f"got min={self.min_rate_bps}, max={self.max_rate_bps}"
            )
        if self.step_bps_per_day < 0:
            raise ValueError(f"Tax step must be non-negative, got {self.step_bps_per_day}")

    def rate_bps(self, deposit_timestamp: int, now: int) -> int:
        """Tax rate in bps for a withdrawal at ``now``."""
        return withdrawal_tax_rate(
            deposit_timestamp,
            now,
            self.max_rate_bps,
            self.min_rate_bps,
            self.step_bps_per_day,
        )


def withdrawal_tax_rate(
    deposit_timestamp: int,
    now: int,
    max_rate_bps: int = 500,
    min_rate_bps: int = 200,
    step_bps_per_day: int = 10,
) -> int:
    """
    Compute the exit tax rate for a position.

    Args:
        deposit_timestamp: Time of the last deposit into the position
        now: Current time
        max_rate_bps: Rate charged on day 0
        min_rate_bps: Floor reached after enough days
        step_bps_per_day: Decrease per full elapsed day

    Returns:
        Tax rate in basis points
    """
    elapsed_days = max(0, now - deposit_timestamp) // DAY
    decayed = max_rate_bps - step_bps_per_day * elapsed_days
    return max(min_rate_bps, decayed)


def unpaid_weeks(last_subscription_timestamp: int, now: int) -> int:
    """Whole weeks elapsed since subscription was last settled."""
    if now <= last_subscription_timestamp:
        return 0
    return (now - last_subscription_timestamp) // WEEK


def subscription_fee(staked_amount: int, rate_bps: int, weeks_unpaid: int) -> int:
    """Flat weekly levy on the staked balance, charged in arrears."""
    if staked_amount <= 0 or rate_bps <= 0 or weeks_unpaid <= 0:
        return 0
    return staked_amount * rate_bps // BPS_DENOMINATOR * weeks_unpaid


def deposit_tax(amount: int, deposit_tax_bps: int) -> int:
    """Fixed entry fee taken from a deposit."""
    return amount * deposit_tax_bps // BPS_DENOMINATOR


def withdrawal_tax(amount: int, rate_bps: int) -> int:
    """Exit fee taken from a withdrawal at ``rate_bps``."""
    return amount * rate_bps // BPS_DENOMINATOR


def check_deposit_tax(bps: int) -> bool:
    return 0 <= bps <= MAX_DEPOSIT_TAX_BPS


def check_subscription_rate(bps: int) -> bool:
    return 0 <= bps <= MAX_SUBSCRIPTION_RATE_BPS
