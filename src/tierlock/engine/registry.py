"""Lock Registry - authoritative store of lock records.

Records are keyed by a global id that only ever increases. Each owner has an
index of the ids they hold; a dict is used as an ordered set so membership is
O(1), ids are unique, and pages come back in creation order.
"""

from dataclasses import dataclass, replace
from functools import partial
from typing import Dict, Iterator, List, Optional

from .errors import UnknownLockError
from .journal import UndoLog


@dataclass(frozen=True)
class LockRecord:
    """A single timed lock.

    Records are immutable values. State changes store a new record under the
    same id, so a record handed to a caller never changes underneath them.

    ``period`` and ``multiplier`` are frozen from the tier table at creation,
    so later policy changes never touch existing locks.

    ``unlock_time == 0`` means the record is active: it earns rewards and is
    counted in the locked totals. Any other value means it is maturing.
    """
    id: int
    amount: int  # Base units staked
    start_time: int  # Creation timestamp (seconds)
    period: int  # Lock duration (seconds)
    multiplier: int  # Reward weight for the tier
    unlock_time: int = 0
    exited_late: bool = False

    @property
    def is_active(self) -> bool:
        return self.unlock_time == 0

    @property
    def weighted_amount(self) -> int:
        return self.amount * self.multiplier

    def is_unlocked(self, now: int) -> bool:
        """True once an exit has been initiated and its timer has run out."""
        return self.unlock_time != 0 and self.unlock_time < now


class LockRegistry:
    """Create, look up, mutate and remove lock records per owner."""

    def __init__(self, undo: Optional[UndoLog] = None):
        self._records: Dict[int, LockRecord] = {}
        self._owned: Dict[str, Dict[int, None]] = {}
        self._next_id = 1
        self._undo = undo or UndoLog()

    def create(
        self,
        owner: str,
        amount: int,
        start_time: int,
        period: int,
        multiplier: int,
    ) -> LockRecord:
        """
        Store a new active record for ``owner``.

        Returns:
            The created record, carrying its newly assigned id
        """
        lock_id = self._next_id
        self._next_id += 1

        record = LockRecord(
            id=lock_id,
            amount=amount,
            start_time=start_time,
            period=period,
            multiplier=multiplier,
        )
        self._records[lock_id] = record
        self._owned.setdefault(owner, {})[lock_id] = None
        self._undo.record(partial(self._undo_create, owner, lock_id))
        return record

    def remove(self, owner: str, lock_id: int) -> None:
        """
        Delete a record and drop it from the owner's index.

        Raises:
            UnknownLockError: If ``owner`` does not hold ``lock_id``
        """
        self._require_owned(owner, lock_id)
        del self._owned[owner][lock_id]
        if not self._owned[owner]:
            del self._owned[owner]
        # The owner's index is the source of truth; a missing record is not an error
        record = self._records.pop(lock_id, None)
        self._undo.record(partial(self._undo_remove, owner, lock_id, record))

    def get(self, owner: str, lock_id: int) -> LockRecord:
        """
        Raises:
            UnknownLockError: If ``owner`` does not hold ``lock_id``
        """
        self._require_owned(owner, lock_id)
        record = self._records.get(lock_id)
        if record is None:
            raise UnknownLockError(owner, lock_id)
        return record

    def contains(self, owner: str, lock_id: int) -> bool:
        return lock_id in self._owned.get(owner, {})

    def count(self, owner: str) -> int:
        return len(self._owned.get(owner, {}))

    def ids(self, owner: str) -> List[int]:
        """Snapshot of the owner's lock ids in creation order."""
        return list(self._owned.get(owner, {}))

    def list_page(self, owner: str, page: int, page_size: int) -> List[LockRecord]:
        """
        Return one page of the owner's records.

        Pages are zero-based. The last page may be shorter than ``page_size``
        and pages past the end are empty; no placeholder records are padded in.
        """
        if page < 0 or page_size <= 0:
            raise ValueError(f"invalid page request: page={page}, page_size={page_size}")
        ids = self.ids(owner)
        start = page * page_size
        return [self._records[i] for i in ids[start:start + page_size] if i in self._records]

    def iter_owner(self, owner: str) -> Iterator[LockRecord]:
        for lock_id in self.ids(owner):
            record = self._records.get(lock_id)
            if record is not None:
                yield record

    def owners(self) -> List[str]:
        return list(self._owned)

    def iter_all(self) -> Iterator[LockRecord]:
        return iter(list(self._records.values()))

    def set_unlock_time(self, owner: str, lock_id: int, timestamp: int) -> LockRecord:
        return self._update(owner, lock_id, unlock_time=timestamp)

    def mark_exited_late(self, owner: str, lock_id: int) -> LockRecord:
        return self._update(owner, lock_id, exited_late=True)

    def _update(self, owner: str, lock_id: int, **changes) -> LockRecord:
        old = self.get(owner, lock_id)
        self._records[lock_id] = replace(old, **changes)
        self._undo.record(partial(self._records.__setitem__, lock_id, old))
        return self._records[lock_id]

    def _undo_create(self, owner: str, lock_id: int) -> None:
        del self._records[lock_id]
        del self._owned[owner][lock_id]
        if not self._owned[owner]:
            del self._owned[owner]
        self._next_id = lock_id

    def _undo_remove(self, owner: str, lock_id: int, record: Optional[LockRecord]) -> None:
        if record is not None:
            self._records[lock_id] = record
        owned = self._owned.setdefault(owner, {})
        owned[lock_id] = None
        # Ids grow with creation time, so sorting restores creation order
        self._owned[owner] = dict.fromkeys(sorted(owned))

    def _require_owned(self, owner: str, lock_id: int) -> None:
        if not self.contains(owner, lock_id):
            raise UnknownLockError(owner, lock_id)
