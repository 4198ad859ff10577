"""Tests for sync state transitions."""

from datetime import datetime, timezone

from todosync.sync.models import SyncErrorRecord
from todosync.sync.state import (
    MAX_STATE_ERRORS,
    SyncState,
    begin_sync,
    complete_sync,
    fail_sync,
    mark_started,
    record_error,
)

AT = datetime(2025, 1, 1, tzinfo=timezone.utc)


class TestTransitions:
    """Test pure state transitions."""

    def test_initial_state(self):
        """Test defaults."""
        state = SyncState()
        assert not state.syncing
        assert state.pending_operations == 0
        assert state.errors == ()
        assert state.version == 1

    def test_begin_does_not_mutate(self):
        """Test transitions return a new state and leave the old one intact."""
        state = SyncState()
        started = begin_sync(state)

        assert started is not state
        assert started.syncing
        assert started.pending_operations == 1
        assert started.version == 2
        assert not state.syncing
        assert state.version == 1

    def test_complete(self):
        """Test completion clears syncing and records the time and conflicts."""
        state = complete_sync(begin_sync(SyncState()), AT, conflicts=2)
        assert not state.syncing
        assert state.pending_operations == 0
        assert state.last_sync_at == AT
        assert state.unresolved_conflicts == 2
        assert state.version == 3

    def test_fail(self):
        """Test failure records the error."""
        error = SyncErrorRecord(message="disk gone", context="sync_file_to_db")
        state = fail_sync(begin_sync(SyncState()), error)
        assert not state.syncing
        assert state.pending_operations == 0
        assert state.errors == (error,)
        assert state.last_sync_at is None

    def test_pending_never_negative(self):
        """Test completing without a begin keeps the counter at zero."""
        assert complete_sync(SyncState(), AT).pending_operations == 0

    def test_errors_capped(self):
        """Test only the most recent errors are kept."""
        state = SyncState()
        for i in range(MAX_STATE_ERRORS + 5):
            state = record_error(state, SyncErrorRecord(message=str(i), context="test"))
        assert len(state.errors) == MAX_STATE_ERRORS
        assert state.errors[-1].message == str(MAX_STATE_ERRORS + 4)
        assert state.errors[0].message == "5"

    def test_mark_started_keeps_last_sync(self):
        """Test starting does not overwrite an earlier sync time."""
        later = datetime(2025, 2, 1, tzinfo=timezone.utc)
        assert mark_started(SyncState(), AT).last_sync_at == AT
        assert mark_started(SyncState(last_sync_at=AT), later).last_sync_at == AT
