"""Tests for the transaction undo log."""

import pytest

from tierlock.engine.journal import UndoLog


class TestUndoLog:
    """Savepoints replay recorded undo actions in reverse."""

    def test_rollback_runs_in_reverse(self):
        """Undo actions run last-in first-out."""
        undo = UndoLog()
        calls = []
        with pytest.raises(ValueError):
            with undo.savepoint():
                undo.record(lambda: calls.append("first"))
                undo.record(lambda: calls.append("second"))
                raise ValueError("abort")
        assert calls == ["second", "first"]
        assert not undo.active

    def test_inner_failure_keeps_outer_changes(self):
        """A failed nested savepoint only reverts its own changes."""
        undo = UndoLog()
        state = {'a': 0, 'b': 0}
        with undo.savepoint():
            state['a'] = 1
            undo.record(lambda: state.update(a=0))
            with pytest.raises(ValueError):
                with undo.savepoint():
                    state['b'] = 1
                    undo.record(lambda: state.update(b=0))
                    raise ValueError("abort")
        assert state == {'a': 1, 'b': 0}

    def test_outer_failure_reverts_committed_inner(self):
        """Changes from a nested savepoint that succeeded are still reverted with the outer one."""
        undo = UndoLog()
        state = {'a': 0}
        with pytest.raises(ValueError):
            with undo.savepoint():
                with undo.savepoint():
                    state['a'] = 1
                    undo.record(lambda: state.update(a=0))
                raise ValueError("abort")
        assert state == {'a': 0}

    def test_nothing_recorded_outside_savepoint(self):
        """Records made with no open savepoint are dropped."""
        undo = UndoLog()
        calls = []
        undo.record(lambda: calls.append("x"))
        with pytest.raises(ValueError):
            with undo.savepoint():
                raise ValueError("abort")
        assert calls == []
