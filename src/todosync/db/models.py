"""Pydantic models for todosync tasks."""

import uuid
from datetime import date, datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


def _utc_now() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def _task_id() -> str:
    return str(uuid.uuid4())


class TaskStatus(str, Enum):
    """Task status enumeration."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DELETED = "deleted"


class TaskPriority(str, Enum):
    """Task priority enumeration."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Task(BaseModel):
    """A task on a board, as stored in the database."""

    id: str = Field(default_factory=_task_id)
    board_id: str = "default"
    column_id: str = "todo"
    title: str
    description: str | None = None
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    labels: list[str] = Field(default_factory=list)
    due_date: date | None = None
    position: int = 0
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
    completed_at: datetime | None = None
    deleted_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        """True when the task is neither completed nor deleted."""
        return self.status not in (TaskStatus.COMPLETED, TaskStatus.DELETED)
