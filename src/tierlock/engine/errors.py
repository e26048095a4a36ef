"""Exception types for the lock ledger.

Lookup failures (``UnknownLockError``) and policy failures (``PolicyError``
subclasses) are kept on separate branches so callers can tell "this lock id
is not yours" apart from "the parameters you asked for are not allowed".
"""


class LockLedgerError(Exception):
    """Base class for every error raised by the ledger."""


class LockLookupError(LockLedgerError):
    """Raised when a referenced record cannot be resolved for an account."""


class UnknownLockError(LockLookupError):
    """Raised when a lock id is not (or no longer) owned by the account."""

    def __init__(self, owner: str, lock_id: int) -> None:
        self.owner = owner
        self.lock_id = lock_id
        super().__init__(f"lock {lock_id} is not held by {owner}")


class PolicyError(LockLedgerError):
    """Raised when a request is well-formed but violates lock policy."""


class InvalidAmountError(PolicyError):
    """Zero or negative amount, or a tier index outside the tier table."""


class FeatureDisabledError(PolicyError):
    """Raised when early exit is administratively disabled."""


class PeriodTooShortError(PolicyError):
    """Raised when a restake period is below the applicable floor."""

    def __init__(self, requested: int, minimum: int) -> None:
        self.requested = requested
        self.minimum = minimum
        super().__init__(f"period {requested}s is shorter than the required {minimum}s")


class NotEligibleForRestakeError(PolicyError):
    """Raised when restaking a record that was never late-exited."""


class LockStateError(PolicyError):
    """Raised when a record is not in the state an operation requires."""


class BadConfigurationError(LockLedgerError):
    """Malformed penalty fractions, tier arrays or token settings."""


class UninitializedError(LockLedgerError):
    """Raised when a required token or address has not been configured."""


class AlreadyConfiguredError(LockLedgerError):
    """Raised when a set-once setting is configured a second time."""


class UnauthorizedError(LockLedgerError):
    """Raised when a non-operator calls an operator-only setter."""


class EnginePausedError(LockLedgerError):
    """Raised for user-facing writes while the engine is paused."""


class ReentrantCallError(LockLedgerError):
    """Raised when a fund-moving operation is re-entered mid-transfer."""


class InsufficientFundsError(LockLedgerError):
    """Raised by the custody ledger when a holder cannot cover a transfer."""
