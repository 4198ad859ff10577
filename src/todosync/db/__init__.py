"""Database layer for todosync."""

from todosync.db.database import Database
from todosync.db.models import Task, TaskPriority, TaskStatus

__all__ = [
    "Database",
    "Task",
    "TaskPriority",
    "TaskStatus",
]
