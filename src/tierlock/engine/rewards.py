"""Reward Accumulator - pro-rata reward distribution across reward tokens.

Key Concepts:
- Each reward token has a channel holding ``cumulated_reward_per_weight``,
  the fixed-point reward issued per unit of weighted stake since genesis
- New inflow is sensed as custody balance minus ``tracked_balance``
- An account's accrual is ``cumulated * locked_weighted - reward_debt``

Accrued rewards stay in ``SCALE`` units until paid out, so no precision is
lost between settlements.
"""

import logging
from dataclasses import dataclass, field, replace
from functools import partial
from typing import Dict, List

from .errors import AlreadyConfiguredError, UninitializedError
from .journal import UndoLog

logger = logging.getLogger(__name__)

SCALE = 10**18


@dataclass
class RewardChannel:
    """Running totals for one reward token."""
    token: str
    cumulated_reward_per_weight: int = 0  # SCALE-fixed-point, never decreases
    tracked_balance: int = 0  # Reward funds attributed so far (base units)
    last_update_time: int = 0
    absorbed: int = 0  # Inflow sensed while nothing was staked


@dataclass
class AccountRewards:
    """Per-account reward bookkeeping for one token."""
    debt: int = 0  # SCALE units
    claimable: int = 0  # SCALE units
    paid: int = 0  # Base units paid to date


@dataclass
class RewardAccumulator:
    """Accumulator for every registered reward token."""
    channels: Dict[str, RewardChannel] = field(default_factory=dict)
    accounts: Dict[str, Dict[str, AccountRewards]] = field(default_factory=dict)
    undo: UndoLog = field(default_factory=UndoLog, repr=False, compare=False)

    def register(self, token: str, now: int = 0) -> RewardChannel:
        """
        Open a channel for ``token``. Registration is permanent.

        Raises:
            AlreadyConfiguredError: If the token already has a channel
        """
        if token in self.channels:
            raise AlreadyConfiguredError(f"reward token {token} is already registered")
        channel = RewardChannel(token=token, last_update_time=now)
        self.channels[token] = channel
        self.undo.record(partial(self.channels.pop, token, None))
        return channel

    @property
    def tokens(self) -> List[str]:
        return list(self.channels)

    def channel(self, token: str) -> RewardChannel:
        try:
            return self.channels[token]
        except KeyError:
            raise UninitializedError(f"reward token {token} is not registered") from None

    def notify_inflow(
        self,
        token: str,
        custody_balance: int,
        total_locked_weighted: int,
        now: int,
    ) -> int:
        """
        Fold unseen reward funds into the accumulator.

        Inflow that arrives while ``total_locked_weighted`` is zero is absorbed
        into the tracked balance without moving the accumulator; it stays
        stranded and is never distributed.

        Args:
            token: Reward token
            custody_balance: Current custody balance of ``token``
            total_locked_weighted: Global weighted stake
            now: Current timestamp

        Returns:
            The unseen amount that was attributed (0 if none)
        """
        channel = self.channel(token)
        unseen = custody_balance - channel.tracked_balance
        if unseen <= 0:
            return 0
        self._save_channel(channel)

        if total_locked_weighted > 0:
            channel.cumulated_reward_per_weight += unseen * SCALE // total_locked_weighted
            logger.info(
                "Reward inflow distributed",
                extra={
                    "event": "rewards.inflow",
                    "token": token,
                    "amount": unseen,
                    "total_locked_weighted": total_locked_weighted,
                },
            )
        else:
            channel.absorbed += unseen
            logger.warning(
                "Reward inflow absorbed with no weighted stake",
                extra={"event": "rewards.absorbed", "token": token, "amount": unseen},
            )

        channel.tracked_balance += unseen
        channel.last_update_time = now
        return unseen

    def pending(self, account: str, token: str, locked_weighted: int) -> int:
        """Unsettled accrual for ``account`` in SCALE units."""
        entry = self._peek(account, token)
        accrued = self.channel(token).cumulated_reward_per_weight * locked_weighted - entry.debt
        return max(accrued, 0)

    def settle(self, account: str, locked_weighted: int) -> Dict[str, int]:
        """
        Move accrual since the last settlement into claimable balances.

        Must run before anything changes the account's weighted stake.

        Returns:
            SCALE-unit accrual credited per token
        """
        credited = {}
        for token, channel in self.channels.items():
            entry = self._entry(account, token)
            accrued = self.pending(account, token, locked_weighted)
            entry.claimable += accrued
            entry.debt = channel.cumulated_reward_per_weight * locked_weighted
            credited[token] = accrued
        return credited

    def reset_debt(self, account: str, locked_weighted: int) -> None:
        """Rebaseline future accrual after the account's weighted stake changed."""
        for token, channel in self.channels.items():
            self._entry(account, token).debt = channel.cumulated_reward_per_weight * locked_weighted

    def claimable(self, account: str, token: str, locked_weighted: int) -> int:
        """Amount in base units the account could claim right now."""
        self.channel(token)
        entry = self._peek(account, token)
        return (entry.claimable + self.pending(account, token, locked_weighted)) // SCALE

    def take_claimable(self, account: str, token: str) -> int:
        """
        Remove the whole-unit part of a settled claimable balance.

        Sub-unit dust stays claimable. The channel's tracked balance drops by
        the paid amount so the payout is not mistaken for missing inflow.

        Returns:
            Amount to pay out in base units
        """
        channel = self.channel(token)
        entry = self._entry(account, token)
        payout = entry.claimable // SCALE
        if payout == 0:
            return 0
        self._save_channel(channel)
        entry.claimable -= payout * SCALE
        entry.paid += payout
        channel.tracked_balance -= payout
        return payout

    def paid_to_date(self, account: str, token: str) -> int:
        self.channel(token)
        return self._peek(account, token).paid

    def _peek(self, account: str, token: str) -> AccountRewards:
        return self.accounts.get(account, {}).get(token) or AccountRewards()

    def _save_channel(self, channel: RewardChannel) -> None:
        self.undo.record(partial(self.channels.__setitem__, channel.token, replace(channel)))

    def _entry(self, account: str, token: str) -> AccountRewards:
        """Entry about to be changed; its current state is saved for rollback."""
        per_token = self.accounts.get(account)
        if per_token is None:
            per_token = self.accounts[account] = {}
            self.undo.record(partial(self.accounts.pop, account, None))
        entry = per_token.get(token)
        if entry is None:
            entry = AccountRewards()
            per_token[token] = entry
            self.undo.record(partial(per_token.pop, token, None))
        else:
            self.undo.record(partial(per_token.__setitem__, token, replace(entry)))
        return entry
