"""Unit tests for the reward accumulator."""

import pytest

from tierlock.engine.errors import AlreadyConfiguredError, UninitializedError
from tierlock.engine.journal import UndoLog
from tierlock.engine.rewards import SCALE, RewardAccumulator


@pytest.fixture
def acc():
    acc = RewardAccumulator()
    acc.register("USDC")
    return acc


class TestRegistration:
    """Tests for reward token channels."""

    def test_register_twice_fails(self, acc):
        """A token can only be registered once."""
        with pytest.raises(AlreadyConfiguredError):
            acc.register("USDC")

    def test_unknown_token(self, acc):
        """Unregistered tokens have no channel."""
        with pytest.raises(UninitializedError):
            acc.channel("DAI")
        with pytest.raises(UninitializedError):
            acc.notify_inflow("DAI", 100, 10, 0)


class TestInflow:
    """Tests for sensing new reward funds."""

    def test_inflow_moves_accumulator(self, acc):
        """Inflow divides across total weighted stake."""
        assert acc.notify_inflow("USDC", 600, 600, now=5) == 600
        channel = acc.channel("USDC")
        assert channel.cumulated_reward_per_weight == SCALE
        assert channel.tracked_balance == 600
        assert channel.last_update_time == 5

    def test_repeat_notify_is_noop(self, acc):
        """Notifying without new funds attributes nothing."""
        acc.notify_inflow("USDC", 600, 600, now=0)
        assert acc.notify_inflow("USDC", 600, 600, now=1) == 0
        assert acc.channel("USDC").cumulated_reward_per_weight == SCALE

    def test_inflow_with_no_stake_is_absorbed(self, acc):
        """With zero weighted stake the inflow is tracked but never distributed."""
        assert acc.notify_inflow("USDC", 1_000, 0, now=0) == 1_000
        channel = acc.channel("USDC")
        assert channel.cumulated_reward_per_weight == 0
        assert channel.tracked_balance == 1_000
        assert channel.absorbed == 1_000
        # Staking later does not recover the stranded amount
        assert acc.notify_inflow("USDC", 1_000, 500, now=1) == 0
        assert acc.claimable("alice", "USDC", 500) == 0


class TestSettlement:
    """Tests for settling and claiming accrual."""

    def test_settle_twice_accrues_once(self, acc):
        """A second settlement with no inflow in between adds nothing."""
        acc.notify_inflow("USDC", 300, 300, now=0)
        first = acc.settle("alice", 100)
        second = acc.settle("alice", 100)
        assert first["USDC"] == 100 * SCALE
        assert second["USDC"] == 0
        assert acc.claimable("alice", "USDC", 100) == 100

    def test_reset_debt_rebaselines(self, acc):
        """After a weight change only later inflow accrues at the new weight."""
        acc.notify_inflow("USDC", 100, 100, now=0)
        acc.settle("alice", 100)
        acc.reset_debt("alice", 200)
        assert acc.claimable("alice", "USDC", 200) == 100
        acc.notify_inflow("USDC", 300, 200, now=1)
        assert acc.claimable("alice", "USDC", 200) == 300

    def test_claim_leaves_dust_and_updates_tracking(self, acc):
        """Only whole units are paid; the tracked balance drops by the payout."""
        acc.notify_inflow("USDC", 10, 3, now=0)
        acc.settle("alice", 1)
        assert acc.take_claimable("alice", "USDC") == 3
        assert acc.claimable("alice", "USDC", 1) == 0
        assert acc.paid_to_date("alice", "USDC") == 3
        assert acc.channel("USDC").tracked_balance == 7

    def test_take_without_claimable(self, acc):
        """Nothing settled means nothing paid."""
        assert acc.take_claimable("alice", "USDC") == 0
        assert acc.paid_to_date("alice", "USDC") == 0

    def test_read_does_not_create_entries(self, acc):
        """Read paths leave the per-account map untouched."""
        acc.claimable("alice", "USDC", 10)
        acc.paid_to_date("alice", "USDC")
        assert "alice" not in acc.accounts


class TestUndo:
    """Accumulator changes made inside a savepoint are reverted on failure."""

    def test_failed_claim_is_reverted(self):
        """Settlement, payout, inflow and registration all roll back together."""
        undo = UndoLog()
        acc = RewardAccumulator(undo=undo)
        acc.register("USDC")
        acc.notify_inflow("USDC", 600, 600, now=0)

        with pytest.raises(RuntimeError):
            with undo.savepoint():
                acc.settle("alice", 100)
                assert acc.take_claimable("alice", "USDC") == 100
                acc.notify_inflow("USDC", 550, 100, now=1)
                acc.register("WETH")
                raise RuntimeError("abort")

        assert acc.tokens == ["USDC"]
        assert acc.channel("USDC").tracked_balance == 600
        assert acc.channel("USDC").cumulated_reward_per_weight == SCALE
        assert acc.paid_to_date("alice", "USDC") == 0
        assert acc.claimable("alice", "USDC", 100) == 100
        assert "alice" not in acc.accounts
