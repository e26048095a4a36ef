"""Lock registry, reward accumulator and the lock lifecycle engine."""

from .cycles import WHOLE, calc_penalty, effective_period, remaining_cycle_time
from .errors import (
    AlreadyConfiguredError,
    BadConfigurationError,
    EnginePausedError,
    FeatureDisabledError,
    InsufficientFundsError,
    InvalidAmountError,
    LockLedgerError,
    LockLookupError,
    LockStateError,
    NotEligibleForRestakeError,
    PeriodTooShortError,
    PolicyError,
    ReentrantCallError,
    UnauthorizedError,
    UninitializedError,
    UnknownLockError,
)
from .journal import UndoLog
from .ledger import TokenLedger
from .locker import AccountBalance, ExitReceipt, LockEngine
from .registry import LockRecord, LockRegistry
from .rewards import SCALE, RewardAccumulator, RewardChannel

__all__ = [
    "SCALE",
    "WHOLE",
    "AccountBalance",
    "AlreadyConfiguredError",
    "BadConfigurationError",
    "EnginePausedError",
    "ExitReceipt",
    "FeatureDisabledError",
    "InsufficientFundsError",
    "InvalidAmountError",
    "LockEngine",
    "LockLedgerError",
    "LockLookupError",
    "LockRecord",
    "LockRegistry",
    "LockStateError",
    "NotEligibleForRestakeError",
    "PeriodTooShortError",
    "PolicyError",
    "ReentrantCallError",
    "RewardAccumulator",
    "RewardChannel",
    "TokenLedger",
    "UndoLog",
    "UnauthorizedError",
    "UninitializedError",
    "UnknownLockError",
    "calc_penalty",
    "effective_period",
    "remaining_cycle_time",
]
