"""Lock cycle and early-exit penalty math.

Once a lock outlives its own declared period it is treated as relocking in
``default_cycle``-length increments. ``remaining`` is always the time left in
the current cycle, whichever cycle length applies.

    effective_period = period   if period <= default_cycle or elapsed < period
                       default_cycle otherwise
    remaining        = effective_period - (elapsed mod effective_period)
    penalty_factor   = remaining * time_penalty_fraction / effective_period + base_penalty
    penalty          = amount * penalty_factor / WHOLE

All values are integers (seconds, base units, ``WHOLE``-scaled fractions).
"""

from ..config.schema import WHOLE
from .registry import LockRecord


def effective_period(period: int, default_cycle: int, elapsed: int) -> int:
    """Cycle length that applies to a lock ``elapsed`` seconds after it started."""
    if period <= default_cycle or elapsed < period:
        return period
    return default_cycle


def remaining_cycle_time(record: LockRecord, now: int, default_cycle: int) -> int:
    """
    Seconds left in the record's current cycle.

    A lock sitting exactly on a cycle boundary has a full cycle remaining.
    """
    elapsed = max(now - record.start_time, 0)
    cycle = effective_period(record.period, default_cycle, elapsed)
    return cycle - (elapsed % cycle)


def penalty_factor(
    remaining: int,
    cycle: int,
    base_penalty: int,
    time_penalty_fraction: int,
) -> int:
    """WHOLE-scaled share of the amount forfeited with ``remaining`` of ``cycle`` left."""
    return remaining * time_penalty_fraction // cycle + base_penalty


def calc_penalty(
    record: LockRecord,
    unlock_time: int,
    now: int,
    default_cycle: int,
    base_penalty: int,
    time_penalty_fraction: int,
) -> int:
    """
    Penalty owed for leaving ``record`` at ``now`` instead of at ``unlock_time``.

    Args:
        record: Lock being exited
        unlock_time: End of the record's current cycle
        now: Current timestamp
        default_cycle: Configured default relock duration
        base_penalty: WHOLE-scaled floor of the penalty
        time_penalty_fraction: WHOLE-scaled share that decays with time served

    Returns:
        Penalty in base units, never more than ``record.amount``
    """
    elapsed = max(now - record.start_time, 0)
    cycle = effective_period(record.period, default_cycle, elapsed)
    remaining = max(unlock_time - now, 0)
    factor = penalty_factor(remaining, cycle, base_penalty, time_penalty_fraction)
    return min(record.amount * factor // WHOLE, record.amount)
