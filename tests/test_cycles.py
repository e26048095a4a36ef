"""Unit tests for lock cycle and penalty math.

Tests verify:
- Remaining time within the current cycle, including relock cycles
- Penalty bounds and the time-decaying component
"""

import pytest

from conftest import DAY

from tierlock.engine.cycles import (
    WHOLE,
    calc_penalty,
    effective_period,
    penalty_factor,
    remaining_cycle_time,
)
from tierlock.engine.registry import LockRecord

BASE = 15_000  # 15%
TIME_FRACTION = 35_000  # 35%


def make_record(period: int, amount: int = 100_000, start_time: int = 0) -> LockRecord:
    return LockRecord(id=1, amount=amount, start_time=start_time, period=period, multiplier=1)


class TestEffectivePeriod:
    """Tests for choosing between the lock period and the default cycle."""

    def test_own_period_while_first_cycle_running(self):
        """A long lock uses its own period until it has elapsed once."""
        assert effective_period(360 * DAY, 30 * DAY, 100 * DAY) == 360 * DAY

    def test_default_cycle_after_long_lock_completes(self):
        """A long lock falls back to the default cycle once completed."""
        assert effective_period(360 * DAY, 30 * DAY, 360 * DAY) == 30 * DAY

    def test_short_lock_keeps_own_period(self):
        """Locks no longer than the default cycle always relock in their own period."""
        assert effective_period(10 * DAY, 30 * DAY, 500 * DAY) == 10 * DAY


class TestRemainingCycleTime:
    """Tests for time left in the current cycle."""

    @pytest.mark.parametrize("period,elapsed,expected", [
        (30 * DAY, 15 * DAY, 15 * DAY),
        (60 * DAY, 60 * DAY, 30 * DAY),  # full reset into the default cycle
        (60 * DAY, 59 * DAY, 1 * DAY),
        (360 * DAY, 349 * DAY, 11 * DAY),
        (360 * DAY, 400 * DAY, 20 * DAY),  # 360d, then 30d, then 10d into the next 30d
    ])
    def test_cycle_examples(self, period, elapsed, expected):
        """Remaining time matches worked examples with a 30 day default cycle."""
        record = make_record(period)
        assert remaining_cycle_time(record, elapsed, 30 * DAY) == expected

    def test_fresh_lock_has_full_period(self):
        """At creation the whole period remains."""
        record = make_record(90 * DAY, start_time=500)
        assert remaining_cycle_time(record, 500, 30 * DAY) == 90 * DAY

    def test_short_lock_cycles_in_own_period(self):
        """A 10 day lock 25 days in has 5 days left."""
        record = make_record(10 * DAY)
        assert remaining_cycle_time(record, 25 * DAY, 30 * DAY) == 5 * DAY


class TestPenalty:
    """Tests for the early-exit penalty."""

    def test_near_cycle_end(self):
        """One second left of a ten second lock costs 18.5%."""
        record = make_record(10, amount=100_000)
        now = 9
        unlock = now + remaining_cycle_time(record, now, 30 * DAY)
        assert unlock == 10
        penalty = calc_penalty(record, unlock, now, 30 * DAY, BASE, TIME_FRACTION)
        assert penalty == 18_500

    def test_forced_default_relock_caps_at_maximum(self):
        """With a full default cycle remaining the penalty is base + time fraction."""
        record = make_record(60 * DAY, amount=100_000)
        now = 60 * DAY
        remaining = remaining_cycle_time(record, now, 30 * DAY)
        assert remaining == 30 * DAY
        penalty = calc_penalty(record, now + remaining, now, 30 * DAY, BASE, TIME_FRACTION)
        assert penalty == 50_000

    def test_fresh_lock_pays_maximum(self):
        """Exiting immediately after staking costs the full 50%."""
        record = make_record(30 * DAY, amount=2_000)
        penalty = calc_penalty(record, 30 * DAY, 0, 30 * DAY, BASE, TIME_FRACTION)
        assert penalty == 1_000

    def test_midway(self):
        """Halfway through a cycle half of the time fraction applies."""
        record = make_record(30 * DAY, amount=100_000)
        now = 15 * DAY
        penalty = calc_penalty(record, now + 15 * DAY, now, 30 * DAY, BASE, TIME_FRACTION)
        assert penalty == 32_500

    def test_never_below_base(self):
        """Even with no time remaining the base penalty is charged."""
        record = make_record(30 * DAY, amount=100_000)
        penalty = calc_penalty(record, 30 * DAY, 30 * DAY, 30 * DAY, BASE, TIME_FRACTION)
        assert penalty == 15_000

    def test_capped_at_amount(self):
        """The penalty never exceeds the staked amount."""
        record = make_record(30 * DAY, amount=1_000)
        penalty = calc_penalty(record, 30 * DAY, 0, 30 * DAY, WHOLE, WHOLE)
        assert penalty == 1_000

    def test_factor_is_whole_scaled(self):
        """Penalty factor is expressed in parts of WHOLE."""
        assert penalty_factor(1, 10, BASE, TIME_FRACTION) == 18_500
        assert penalty_factor(10, 10, BASE, TIME_FRACTION) == 50_000
