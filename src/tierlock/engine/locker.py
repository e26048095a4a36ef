"""Lock Engine - orchestrates the lock lifecycle.

Record states:
- Active: ``unlock_time == 0``, counted in locked totals and earning rewards
- Maturing: late-exited, counting down to ``unlock_time``, no longer earning
- Withdrawn / Restaked: terminal, record removed from the registry

Every lifecycle operation settles the caller's rewards first, then adjusts
locked totals, then the registry, and moves tokens last. Each public call
runs as one transaction: a re-entrant mutex serializes callers and an undo
log reverts every change, token transfers included, if anything raises. Reads
take the same mutex, so other threads never see a transaction in flight.
"""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from functools import partial
from typing import Callable, Dict, Iterable, Iterator, List, Optional

from ..config.schema import LockPolicy, Tier
from .cycles import calc_penalty, effective_period, remaining_cycle_time
from .errors import (
    AlreadyConfiguredError,
    BadConfigurationError,
    EnginePausedError,
    FeatureDisabledError,
    InvalidAmountError,
    LockStateError,
    NotEligibleForRestakeError,
    PeriodTooShortError,
    ReentrantCallError,
    UnauthorizedError,
    UninitializedError,
)
from .journal import UndoLog
from .ledger import TokenLedger
from .registry import LockRecord, LockRegistry
from .rewards import RewardAccumulator

logger = logging.getLogger(__name__)


@dataclass
class AccountBalance:
    """Aggregates over an account's active records."""
    locked: int = 0
    locked_weighted: int = 0


@dataclass
class ExitReceipt:
    """Outcome of an early exit."""
    lock_id: int
    amount: int
    penalty: int
    payout: int  # amount - penalty, sent to the owner
    remaining: int  # Seconds that were left in the current cycle


def _wall_clock() -> int:
    return int(time.time())


class LockEngine:
    """Stake, exit, restake and withdraw tiered locks, settling rewards on the way."""

    # Scalar attributes captured before each transaction and restored on failure
    _STATE = (
        'policy',
        'stake_token',
        'treasury',
        'paused',
        '_total_locked',
        '_total_locked_weighted',
    )

    def __init__(
        self,
        policy: LockPolicy,
        ledger: TokenLedger,
        operator: str,
        address: str = "tierlock",
        clock: Optional[Callable[[], int]] = None,
        stake_token: Optional[str] = None,
        treasury: Optional[str] = None,
    ):
        """
        Initialize lock engine.

        Args:
            policy: Tier table and exit rules
            ledger: Custody ledger holding staked and reward funds
            operator: Account allowed to call operator setters
            address: Holder name the engine keeps funds under
            clock: Returns the current time in integer seconds
            stake_token: Token accepted for staking (may be set later, once)
            treasury: Recipient of early-exit penalties
        """
        self.policy = policy
        self.ledger = ledger
        self.operator = operator
        self.address = address
        self.clock = clock or _wall_clock
        self.stake_token = stake_token
        self.treasury = treasury
        self.paused = False

        self._mutex = threading.RLock()
        self._undo = UndoLog()

        self.registry = LockRegistry(self._undo)
        self.rewards = RewardAccumulator(undo=self._undo)
        self.balances: Dict[str, AccountBalance] = {}
        self._total_locked = 0
        self._total_locked_weighted = 0

    # ==================== Transactions ====================

    @contextmanager
    def _transaction(self, moves_funds_out: bool = False) -> Iterator[None]:
        with self._mutex:
            if moves_funds_out and self._undo.active:
                raise ReentrantCallError("re-entrant call during an in-flight transfer")
            saved = {name: getattr(self, name) for name in self._STATE}
            try:
                with self._undo.savepoint():
                    yield
            except BaseException:
                for name, value in saved.items():
                    setattr(self, name, value)
                raise

    @contextmanager
    def consistent_view(self) -> Iterator[None]:
        """Hold the engine lock so a series of reads sees one committed state."""
        with self._mutex:
            yield

    @property
    def total_locked(self) -> int:
        with self._mutex:
            return self._total_locked

    @property
    def total_locked_weighted(self) -> int:
        with self._mutex:
            return self._total_locked_weighted

    # ==================== User operations ====================

    def stake(
        self,
        caller: str,
        amount: int,
        tier_index: int,
        beneficiary: Optional[str] = None,
    ) -> LockRecord:
        """
        Lock ``amount`` stake tokens from ``caller`` under a tier.

        Args:
            caller: Account funds are pulled from
            amount: Base units to lock
            tier_index: Index into the tier table
            beneficiary: Owner of the new lock (defaults to caller)

        Returns:
            The new active record

        Raises:
            InvalidAmountError: Zero amount or tier index out of range
            UninitializedError: Stake token not configured
        """
        owner = beneficiary or caller
        with self._transaction():
            self._require_not_paused()
            stake_token = self._require_stake_token()
            record = self._stake(owner, amount, tier_index, self.clock())
            self._transfer(stake_token, caller, self.address, amount)

        logger.info(
            "Lock staked",
            extra={
                "event": "lock.staked",
                "owner": owner,
                "lock_id": record.id,
                "amount": amount,
                "period": record.period,
                "multiplier": record.multiplier,
            },
        )
        return record

    def early_exit_by_id(self, caller: str, lock_id: int) -> ExitReceipt:
        """
        Leave an active lock immediately, paying a time-decaying penalty.

        The owner receives ``amount - penalty`` and the treasury the penalty.

        Raises:
            FeatureDisabledError: Early exit is switched off
            UnknownLockError: Lock not held by caller
            LockStateError: Lock is already maturing
        """
        with self._transaction(moves_funds_out=True):
            self._require_not_paused()
            if not self.policy.early_exit_enabled:
                raise FeatureDisabledError("early exit is disabled")
            record = self.registry.get(caller, lock_id)
            if not record.is_active:
                raise LockStateError(
                    f"lock {lock_id} is already exiting; withdraw it once unlocked"
                )
            stake_token = self._require_stake_token()
            treasury = self._require_treasury()

            now = self.clock()
            self._settle(caller)
            remaining = remaining_cycle_time(record, now, self.policy.default_relock_period)
            penalty = calc_penalty(
                record,
                now + remaining,
                now,
                self.policy.default_relock_period,
                self.policy.penalty.base_penalty,
                self.policy.penalty.time_penalty_fraction,
            )
            self._deactivate(caller, record)
            self.registry.remove(caller, lock_id)

            payout = record.amount - penalty
            if payout > 0:
                self._transfer(stake_token, self.address, caller, payout)
            if penalty > 0:
                self._transfer(stake_token, self.address, treasury, penalty)

        logger.info(
            "Lock exited early",
            extra={
                "event": "lock.early_exit",
                "owner": caller,
                "lock_id": lock_id,
                "amount": record.amount,
                "penalty": penalty,
            },
        )
        return ExitReceipt(
            lock_id=lock_id,
            amount=record.amount,
            penalty=penalty,
            payout=payout,
            remaining=remaining,
        )

    def exit_late_by_id(self, caller: str, lock_id: int) -> LockRecord:
        """
        Start maturing an active lock; it unlocks at the end of its current cycle.

        The record stops earning immediately. No tokens move.

        Raises:
            UnknownLockError: Lock not held by caller
            LockStateError: Lock is already maturing
        """
        with self._transaction():
            self._require_not_paused()
            record = self.registry.get(caller, lock_id)
            if not record.is_active:
                raise LockStateError(f"lock {lock_id} is already exiting")

            now = self.clock()
            self._settle(caller)
            remaining = remaining_cycle_time(record, now, self.policy.default_relock_period)
            self._deactivate(caller, record)
            self.registry.set_unlock_time(caller, lock_id, now + remaining)
            record = self.registry.mark_exited_late(caller, lock_id)

        logger.info(
            "Lock exiting late",
            extra={
                "event": "lock.exit_late",
                "owner": caller,
                "lock_id": lock_id,
                "unlock_time": record.unlock_time,
            },
        )
        return record

    def restake_after_late_exit(self, caller: str, lock_id: int, tier_index: int) -> LockRecord:
        """
        Relock a late-exited record's amount under a new tier.

        The new period must be at least the record's current cycle length: its
        own period until that has fully elapsed once (or whenever it does not
        exceed the default relock period), the default relock period after.

        Returns:
            The new active record

        Raises:
            UnknownLockError: Lock not held by caller
            NotEligibleForRestakeError: Lock was never late-exited
            InvalidAmountError: Tier index out of range
            PeriodTooShortError: New period below the applicable floor
        """
        with self._transaction():
            self._require_not_paused()
            record = self.registry.get(caller, lock_id)
            if not record.exited_late:
                raise NotEligibleForRestakeError(
                    f"lock {lock_id} must be late-exited before it can be restaked"
                )
            tier = self._tier(tier_index)
            now = self.clock()
            minimum = self.min_restake_period(record, now)
            if tier.period < minimum:
                raise PeriodTooShortError(tier.period, minimum)

            new_record = self._stake(caller, record.amount, tier_index, now)
            self.registry.remove(caller, lock_id)

        logger.info(
            "Lock restaked",
            extra={
                "event": "lock.restaked",
                "owner": caller,
                "old_lock_id": lock_id,
                "lock_id": new_record.id,
                "amount": new_record.amount,
                "period": new_record.period,
            },
        )
        return new_record

    def withdraw_unlocked_by_id(self, caller: str, lock_id: int) -> int:
        """
        Pay out a matured lock and remove it.

        Returns:
            Amount paid

        Raises:
            UnknownLockError: Lock not held by caller (including already withdrawn)
            LockStateError: Lock not exited or still counting down
        """
        with self._transaction(moves_funds_out=True):
            self._require_not_paused()
            record = self.registry.get(caller, lock_id)
            now = self.clock()
            if not record.is_unlocked(now):
                raise LockStateError(f"lock {lock_id} is not unlocked yet")
            stake_token = self._require_stake_token()

            self._settle(caller)
            self.registry.remove(caller, lock_id)
            self._transfer(stake_token, self.address, caller, record.amount)

        logger.info(
            "Lock withdrawn",
            extra={"event": "lock.withdrawn", "owner": caller, "lock_id": lock_id, "amount": record.amount},
        )
        return record.amount

    def withdraw_all_unlocked(self, caller: str) -> int:
        """
        Pay out every matured lock the caller holds in one transfer.

        Returns:
            Total amount paid (0 if nothing was unlocked)
        """
        with self._transaction(moves_funds_out=True):
            self._require_not_paused()
            now = self.clock()
            unlocked = [r for r in self.registry.iter_owner(caller) if r.is_unlocked(now)]
            if not unlocked:
                return 0
            stake_token = self._require_stake_token()

            self._settle(caller)
            total = 0
            for record in unlocked:
                self.registry.remove(caller, record.id)
                total += record.amount
            self._transfer(stake_token, self.address, caller, total)

        logger.info(
            "Unlocked locks withdrawn",
            extra={
                "event": "lock.withdrawn",
                "owner": caller,
                "lock_ids": [r.id for r in unlocked],
                "amount": total,
            },
        )
        return total

    def claim(self, caller: str, tokens: Iterable[str]) -> Dict[str, int]:
        """
        Pay out settled rewards for the requested reward tokens.

        Returns:
            Amount paid per token

        Raises:
            UninitializedError: A token is not a registered reward token
        """
        tokens = list(tokens)
        payouts = {}
        with self._transaction(moves_funds_out=True):
            self._require_not_paused()
            for token in tokens:
                self.rewards.channel(token)
            self._settle(caller)
            for token in tokens:
                payout = self.rewards.take_claimable(caller, token)
                payouts[token] = payouts.get(token, 0) + payout
                if payout > 0:
                    self._transfer(token, self.address, caller, payout)

        logger.info(
            "Rewards claimed",
            extra={"event": "rewards.claimed", "owner": caller, "payouts": payouts},
        )
        return payouts

    def claim_all(self, caller: str) -> Dict[str, int]:
        with self._mutex:
            return self.claim(caller, self.rewards.tokens)

    def notify_inflow(self, token: str) -> int:
        """Attribute reward funds that reached custody since the last notification."""
        with self._transaction():
            balance = self.ledger.balance_of(self.address, token)
            return self.rewards.notify_inflow(
                token, balance, self._total_locked_weighted, self.clock()
            )

    def notify_all(self) -> Dict[str, int]:
        with self._transaction():
            return {token: self.notify_inflow(token) for token in self.rewards.tokens}

    # ==================== Read surface ====================
    # Lock records are immutable, so returning them hands out no live state.

    def tiers(self) -> List[Tier]:
        with self._mutex:
            return list(self.policy.tiers)

    def account_balance(self, account: str) -> AccountBalance:
        with self._mutex:
            balance = self.balances.get(account, AccountBalance())
            return AccountBalance(locked=balance.locked, locked_weighted=balance.locked_weighted)

    def lock_count(self, account: str) -> int:
        with self._mutex:
            return self.registry.count(account)

    def get_lock(self, account: str, lock_id: int) -> LockRecord:
        with self._mutex:
            return self.registry.get(account, lock_id)

    def list_locks(self, account: str, page: int = 0, page_size: int = 50) -> List[LockRecord]:
        with self._mutex:
            return self.registry.list_page(account, page, page_size)

    def unlockable_locks(self, account: str) -> List[LockRecord]:
        with self._mutex:
            now = self.clock()
            return [r for r in self.registry.iter_owner(account) if r.is_unlocked(now)]

    def claimable(self, account: str, token: str) -> int:
        with self._mutex:
            weighted = self.account_balance(account).locked_weighted
            return self.rewards.claimable(account, token, weighted)

    def claimable_all(self, account: str) -> Dict[str, int]:
        with self._mutex:
            return {token: self.claimable(account, token) for token in self.rewards.tokens}

    def paid_to_date(self, account: str, token: str) -> int:
        with self._mutex:
            return self.rewards.paid_to_date(account, token)

    def remaining_time(self, account: str, lock_id: int) -> int:
        """Seconds left in the current cycle, or until unlock for a maturing lock."""
        with self._mutex:
            record = self.registry.get(account, lock_id)
            now = self.clock()
            if not record.is_active:
                return max(record.unlock_time - now, 0)
            return remaining_cycle_time(record, now, self.policy.default_relock_period)

    def penalty_for(self, account: str, lock_id: int) -> int:
        """Penalty an early exit of this lock would cost right now."""
        with self._mutex:
            record = self.registry.get(account, lock_id)
            now = self.clock()
            remaining = remaining_cycle_time(record, now, self.policy.default_relock_period)
            return calc_penalty(
                record,
                now + remaining,
                now,
                self.policy.default_relock_period,
                self.policy.penalty.base_penalty,
                self.policy.penalty.time_penalty_fraction,
            )

    def min_restake_period(self, record: LockRecord, now: int) -> int:
        """Shortest tier period a restake of ``record`` may choose at ``now``."""
        elapsed = max(now - record.start_time, 0)
        with self._mutex:
            return effective_period(record.period, self.policy.default_relock_period, elapsed)

    # ==================== Operator surface ====================

    def set_penalty_params(self, caller: str, base_penalty: int, time_penalty_fraction: int) -> None:
        with self._transaction():
            self._require_operator(caller)
            self._update_policy(
                penalty={
                    'base_penalty': base_penalty,
                    'time_penalty_fraction': time_penalty_fraction,
                }
            )

    def set_default_relock_period(self, caller: str, seconds: int) -> None:
        with self._transaction():
            self._require_operator(caller)
            self._update_policy(default_relock_period=seconds)

    def set_early_exit_enabled(self, caller: str, enabled: bool) -> None:
        with self._transaction():
            self._require_operator(caller)
            self._update_policy(early_exit_enabled=enabled)

    def set_tiers(self, caller: str, periods: List[int], multipliers: List[int]) -> None:
        """Replace the tier table. Existing locks keep their own period and multiplier."""
        with self._transaction():
            self._require_operator(caller)
            if len(periods) != len(multipliers):
                raise BadConfigurationError(
                    f"periods and multipliers must have the same length, "
                    f"got {len(periods)} and {len(multipliers)}"
                )
            self._update_policy(
                tiers=[{'period': p, 'multiplier': m} for p, m in zip(periods, multipliers)]
            )

    def set_stake_token(self, caller: str, token: str) -> None:
        with self._transaction():
            self._require_operator(caller)
            if self.stake_token is not None:
                raise AlreadyConfiguredError(f"stake token is already {self.stake_token}")
            if not token:
                raise BadConfigurationError("stake token must not be empty")
            if token in self.rewards.channels:
                raise BadConfigurationError(f"{token} is registered as a reward token")
            self.stake_token = token
        self._log_admin("set_stake_token", token=token)

    def set_treasury(self, caller: str, treasury: str) -> None:
        with self._transaction():
            self._require_operator(caller)
            if not treasury:
                raise BadConfigurationError("treasury must not be empty")
            self.treasury = treasury
        self._log_admin("set_treasury", treasury=treasury)

    def register_reward_token(self, caller: str, token: str) -> None:
        """Start distributing ``token``. Registration cannot be undone."""
        with self._transaction():
            self._require_operator(caller)
            if not token:
                raise BadConfigurationError("reward token must not be empty")
            if token == self.stake_token:
                raise BadConfigurationError(f"{token} is the stake token")
            self.rewards.register(token, self.clock())
        self._log_admin("register_reward_token", token=token)

    def sweep(self, caller: str, token: str, to: str, amount: int) -> None:
        """Send out tokens that were sent to the engine by mistake."""
        with self._transaction(moves_funds_out=True):
            self._require_operator(caller)
            if token == self.stake_token or token in self.rewards.channels:
                raise BadConfigurationError(f"{token} is managed by the engine and cannot be swept")
            self._transfer(token, self.address, to, amount)
        self._log_admin("sweep", token=token, to=to, amount=amount)

    def pause(self, caller: str) -> None:
        with self._transaction():
            self._require_operator(caller)
            self.paused = True
        self._log_admin("pause")

    def unpause(self, caller: str) -> None:
        with self._transaction():
            self._require_operator(caller)
            self.paused = False
        self._log_admin("unpause")

    # ==================== Internals ====================

    def _stake(self, owner: str, amount: int, tier_index: int, now: int) -> LockRecord:
        if amount <= 0:
            raise InvalidAmountError(f"amount must be positive, got {amount}")
        tier = self._tier(tier_index)

        self._settle(owner)
        balance = self._balance_for_update(owner)
        weighted = amount * tier.multiplier
        balance.locked += amount
        balance.locked_weighted += weighted
        self._total_locked += amount
        self._total_locked_weighted += weighted
        self.rewards.reset_debt(owner, balance.locked_weighted)

        return self.registry.create(owner, amount, now, tier.period, tier.multiplier)

    def _deactivate(self, owner: str, record: LockRecord) -> None:
        """Drop an active record's amounts from the account and global totals."""
        balance = self._balance_for_update(owner)
        balance.locked -= record.amount
        balance.locked_weighted -= record.weighted_amount
        self._total_locked -= record.amount
        self._total_locked_weighted -= record.weighted_amount
        self.rewards.reset_debt(owner, balance.locked_weighted)

    def _balance_for_update(self, owner: str) -> AccountBalance:
        balance = self.balances.get(owner)
        if balance is None:
            balance = self.balances[owner] = AccountBalance()
            self._undo.record(partial(self.balances.pop, owner, None))
        else:
            saved = AccountBalance(locked=balance.locked, locked_weighted=balance.locked_weighted)
            self._undo.record(partial(self.balances.__setitem__, owner, saved))
        return balance

    def _transfer(self, token: str, sender: str, recipient: str, amount: int) -> None:
        self.ledger.transfer(token, sender, recipient, amount)
        self._undo.record(partial(self.ledger.reverse, token, sender, recipient, amount))

    def _settle(self, account: str) -> None:
        weighted = self.balances.get(account, AccountBalance()).locked_weighted
        self.rewards.settle(account, weighted)

    def _tier(self, tier_index: int) -> Tier:
        tiers = self.policy.tiers
        if isinstance(tier_index, bool) or not 0 <= tier_index < len(tiers):
            raise InvalidAmountError(
                f"tier index {tier_index} out of range (0..{len(tiers) - 1})"
            )
        return tiers[tier_index]

    def _update_policy(self, **changes) -> None:
        try:
            self.policy = self.policy.evolve(**changes)
        except ValueError as exc:
            raise BadConfigurationError(str(exc)) from exc
        self._log_admin("policy_updated", version=self.policy.version, changes=sorted(changes))

    def _require_operator(self, caller: str) -> None:
        if caller != self.operator:
            raise UnauthorizedError(f"{caller} is not the operator")

    def _require_not_paused(self) -> None:
        if self.paused:
            raise EnginePausedError("engine is paused")

    def _require_stake_token(self) -> str:
        if self.stake_token is None:
            raise UninitializedError("stake token has not been set")
        return self.stake_token

    def _require_treasury(self) -> str:
        if self.treasury is None:
            raise UninitializedError("treasury has not been set")
        return self.treasury

    def _log_admin(self, action: str, **details) -> None:
        logger.info(
            "Operator action",
            extra={"event": f"admin.{action}", **details},
        )
