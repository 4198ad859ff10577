"""Sync engine: orchestrator, watcher, events and state."""

from todosync.sync.conflict import ConflictResolver, FieldConflict, MergeResult
from todosync.sync.events import (
    DbChangedEvent,
    EventBus,
    FileChangedEvent,
    StateUpdatedEvent,
    SyncCompleteEvent,
    SyncErrorEvent,
    SyncEvent,
    SyncStartEvent,
)
from todosync.sync.filesystem import LocalFileSystem
from todosync.sync.models import (
    ConflictPolicy,
    FileStats,
    FileWatcherEvent,
    SyncConfig,
    SyncDirection,
    SyncErrorRecord,
    SyncHistory,
    SyncStrategy,
)
from todosync.sync.orchestrator import RetryConfig, SyncOrchestrator
from todosync.sync.state import SyncState
from todosync.sync.watcher import FileWatcher

__all__ = [
    "ConflictPolicy",
    "ConflictResolver",
    "DbChangedEvent",
    "EventBus",
    "FieldConflict",
    "FileChangedEvent",
    "FileStats",
    "FileWatcher",
    "FileWatcherEvent",
    "LocalFileSystem",
    "MergeResult",
    "RetryConfig",
    "StateUpdatedEvent",
    "SyncCompleteEvent",
    "SyncConfig",
    "SyncDirection",
    "SyncErrorEvent",
    "SyncErrorRecord",
    "SyncEvent",
    "SyncHistory",
    "SyncOrchestrator",
    "SyncStartEvent",
    "SyncState",
    "SyncStrategy",
]
