"""Configuration and record types for sync passes."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _history_id() -> str:
    return str(uuid.uuid4())


class SyncDirection(str, Enum):
    """Which way changes are allowed to flow."""

    FILE_TO_APP = "file_to_app"
    APP_TO_FILE = "app_to_file"
    BIDIRECTIONAL = "bidirectional"

    @property
    def reads_file(self) -> bool:
        """True when file edits should be pulled into the database."""
        return self in (SyncDirection.FILE_TO_APP, SyncDirection.BIDIRECTIONAL)

    @property
    def writes_file(self) -> bool:
        """True when database changes should be written to the file."""
        return self in (SyncDirection.APP_TO_FILE, SyncDirection.BIDIRECTIONAL)


class SyncStrategy(str, Enum):
    """How matched tasks are reconciled."""

    LAST_WRITE_WINS = "last_write_wins"
    THREE_WAY_MERGE = "three_way_merge"
    MANUAL_RESOLUTION = "manual_resolution"


class ConflictPolicy(str, Enum):
    """Policy handed to the conflict resolver."""

    PREFER_FILE = "prefer_file"
    PREFER_APP = "prefer_app"
    MANUAL = "manual"
    MERGE = "merge"


class SyncConfig(BaseModel):
    """Settings for one orchestrator; frozen for its lifetime."""

    model_config = ConfigDict(frozen=True)

    todo_path: str = ""
    direction: SyncDirection | None = None
    strategy: SyncStrategy | None = None
    conflict_resolution: ConflictPolicy = ConflictPolicy.PREFER_FILE
    debounce_ms: int = 500
    throttle_ms: int = 2000
    max_file_size_mb: int = 5
    max_tasks: int = 10000
    dry_run: bool = False
    board_id: str = "default"
    column_id: str = "todo"


@dataclass(frozen=True)
class FileStats:
    """Size and modification time of a file."""

    size: int
    mtime: datetime


@dataclass
class FileWatcherEvent:
    """Notification from the file watcher."""

    type: Literal["add", "change", "unlink", "error"]
    path: str
    timestamp: datetime = field(default_factory=_now)
    stats: FileStats | None = None
    error: Exception | None = None


@dataclass(frozen=True)
class SyncErrorRecord:
    """An error kept in the sync state."""

    message: str
    context: str
    timestamp: datetime = field(default_factory=_now)


@dataclass
class SyncHistory:
    """Outcome of one sync attempt."""

    direction: SyncDirection | None
    started_at: datetime
    success: bool
    id: str = field(default_factory=_history_id)
    completed_at: datetime | None = None
    tasks_changed: int = 0
    tasks_created: int = 0
    tasks_updated: int = 0
    tasks_deleted: int = 0
    conflicts_detected: int = 0
    conflicts_resolved: int = 0
    error: str | None = None
    duration_ms: int = 0
