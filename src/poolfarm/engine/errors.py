"""Error taxonomy for the staking ledger.

Every error is raised before the operation mutates state. Anything that
escapes an operation midway is rolled back by the engine's atomic scope.
"""


class StakingError(Exception):
    """Base class for all ledger failures."""


class DuplicateAsset(StakingError):
    """A pool for this staked asset is already registered."""


class FeeOutOfRange(StakingError):
    """A tax or subscription parameter is outside its configured bounds."""


class InsufficientBalance(StakingError):
    """Withdrawal exceeds the staked amount of the position."""


class ProtectedPool(StakingError):
    """Emergency withdrawal is disabled on the reserved pool."""


class InsufficientFunds(StakingError):
    """A collaborator transfer found the source short of balance."""


class Unauthorized(StakingError):
    """Caller is not allowed to run an administrative operation."""


class UnknownPool(StakingError):
    """No pool is registered under this id."""


class NonMonotonicTime(StakingError):
    """An operation presented a timestamp earlier than one already seen."""


class RecoveryLocked(StakingError):
    """Asset cannot be recovered from custody before the grace period ends."""


class ReentrantCall(StakingError):
    """A ledger operation was started while another one is still running."""
