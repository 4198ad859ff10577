"""Sync state and the pure transitions that advance it.

The orchestrator owns a single ``SyncState`` and replaces it with the result
of one of these functions; nothing mutates a state in place.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from todosync.sync.models import SyncErrorRecord

# Errors kept in state; older ones are dropped.
MAX_STATE_ERRORS = 50


@dataclass(frozen=True)
class SyncState:
    """Snapshot of the orchestrator's sync status."""

    syncing: bool = False
    pending_operations: int = 0
    unresolved_conflicts: int = 0
    errors: tuple[SyncErrorRecord, ...] = ()
    last_sync_at: datetime | None = None
    version: int = 1


def _advance(state: SyncState, **changes) -> SyncState:
    return replace(state, version=state.version + 1, **changes)


def begin_sync(state: SyncState) -> SyncState:
    """A pass has started."""
    return _advance(
        state,
        syncing=True,
        pending_operations=state.pending_operations + 1,
    )


def complete_sync(state: SyncState, at: datetime, conflicts: int = 0) -> SyncState:
    """A pass finished successfully."""
    return _advance(
        state,
        syncing=False,
        pending_operations=max(state.pending_operations - 1, 0),
        unresolved_conflicts=state.unresolved_conflicts + conflicts,
        last_sync_at=at,
    )


def fail_sync(state: SyncState, error: SyncErrorRecord) -> SyncState:
    """A pass gave up; record why."""
    return _advance(
        state,
        syncing=False,
        pending_operations=max(state.pending_operations - 1, 0),
        errors=(*state.errors, error)[-MAX_STATE_ERRORS:],
    )


def record_error(state: SyncState, error: SyncErrorRecord) -> SyncState:
    """Record an error raised outside a pass (e.g. by the watcher)."""
    return _advance(state, errors=(*state.errors, error)[-MAX_STATE_ERRORS:])


def mark_started(state: SyncState, at: datetime) -> SyncState:
    """The orchestrator came up."""
    return _advance(state, last_sync_at=state.last_sync_at or at)
