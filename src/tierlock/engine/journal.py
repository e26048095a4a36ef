"""Undo log for engine transactions.

Each store records an undo action before changing anything in place. A failed
transaction replays the actions taken since its savepoint in reverse, so a
rollback costs the size of what it touched rather than the size of the state.
"""

from contextlib import contextmanager
from typing import Callable, Iterator, List

Undo = Callable[[], None]


class UndoLog:
    """Undo actions recorded while at least one transaction is open."""

    def __init__(self):
        self._entries: List[Undo] = []
        self.depth = 0

    @property
    def active(self) -> bool:
        return self.depth > 0

    def record(self, undo: Undo) -> None:
        """Remember how to revert a change. Ignored outside a transaction."""
        if self.depth > 0:
            self._entries.append(undo)

    @contextmanager
    def savepoint(self) -> Iterator[None]:
        """
        Open a (possibly nested) transaction.

        On error only the changes made inside this savepoint are undone; the
        log is cleared once the outermost savepoint closes.
        """
        mark = len(self._entries)
        self.depth += 1
        try:
            yield
        except BaseException:
            self._rollback_to(mark)
            raise
        finally:
            self.depth -= 1
            if self.depth == 0:
                self._entries.clear()

    def _rollback_to(self, mark: int) -> None:
        while len(self._entries) > mark:
            self._entries.pop()()
