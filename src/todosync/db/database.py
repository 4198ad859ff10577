"""Async SQLite task store for todosync."""

import json
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

from todosync.db.models import Task, TaskPriority, TaskStatus

SCHEMA = """
-- Tasks table
CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    board_id TEXT NOT NULL,
    column_id TEXT NOT NULL,
    title TEXT NOT NULL,
    description TEXT,
    status TEXT NOT NULL DEFAULT 'todo',
    priority TEXT NOT NULL DEFAULT 'medium',
    labels TEXT DEFAULT '[]',
    due_date TEXT,
    position INTEGER DEFAULT 0,
    created_at TEXT DEFAULT (datetime('now')),
    updated_at TEXT DEFAULT (datetime('now')),
    completed_at TEXT,
    deleted_at TEXT
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_tasks_board ON tasks(board_id);
CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status);
CREATE INDEX IF NOT EXISTS idx_tasks_title ON tasks(board_id, title);
"""

_UPDATABLE_FIELDS = frozenset(
    {
        "column_id",
        "title",
        "description",
        "status",
        "priority",
        "labels",
        "due_date",
        "position",
        "updated_at",
        "completed_at",
        "deleted_at",
    }
)


def _iso(value: datetime | date | None) -> str | None:
    return value.isoformat() if value else None


class Database:
    """Async SQLite task store."""

    def __init__(self, db_path: Path | str):
        """Initialize the task store.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        self.db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    def is_connected(self) -> bool:
        """Check whether a connection is open."""
        return self._connection is not None

    async def connect(self) -> None:
        """Connect to database and initialize schema."""
        self._connection = await aiosqlite.connect(self.db_path)
        self._connection.row_factory = aiosqlite.Row

        await self._connection.execute("PRAGMA journal_mode = WAL")
        await self._connection.execute("PRAGMA synchronous = NORMAL")

        await self._connection.executescript(SCHEMA)
        await self._connection.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    @property
    def conn(self) -> aiosqlite.Connection:
        """Get active connection."""
        if not self._connection:
            raise RuntimeError("Database not connected")
        return self._connection

    # =========================================================================
    # Task CRUD
    # =========================================================================

    async def create_task(self, task: Task) -> Task:
        """Create a new task."""
        await self.conn.execute(
            """
            INSERT INTO tasks (
                id, board_id, column_id, title, description, status,
                priority, labels, due_date, position,
                created_at, updated_at, completed_at, deleted_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                task.id,
                task.board_id,
                task.column_id,
                task.title,
                task.description,
                task.status.value,
                task.priority.value,
                json.dumps(task.labels),
                _iso(task.due_date),
                task.position,
                task.created_at.isoformat(),
                task.updated_at.isoformat(),
                _iso(task.completed_at),
                _iso(task.deleted_at),
            ),
        )
        await self.conn.commit()
        return task

    async def get_task(self, task_id: str) -> Task | None:
        """Get a task by ID."""
        async with self.conn.execute(
            "SELECT * FROM tasks WHERE id = ?",
            (task_id,),
        ) as cursor:
            row = await cursor.fetchone()
            if row:
                return self._row_to_task(row)
            return None

    async def get_tasks_by_board(
        self,
        board_id: str,
        include_deleted: bool = False,
    ) -> list[Task]:
        """Get tasks for a board in position order.

        Args:
            board_id: Board identifier.
            include_deleted: Also return soft-deleted tasks.

        Returns:
            List of tasks.
        """
        query = "SELECT * FROM tasks WHERE board_id = ?"
        if not include_deleted:
            query += " AND deleted_at IS NULL"
        query += " ORDER BY position, created_at"

        async with self.conn.execute(query, (board_id,)) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_task(row) for row in rows]

    async def update_task(self, task_id: str, updates: dict[str, Any]) -> Task | None:
        """Apply a partial update to a task.

        Args:
            task_id: Task identifier.
            updates: Field name to new value. ``updated_at`` defaults to now.

        Returns:
            The updated task, or None if it does not exist.

        Raises:
            ValueError: If an unknown or read-only field is given.
        """
        unknown = set(updates) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update task fields: {sorted(unknown)}")

        task = await self.get_task(task_id)
        if task is None:
            return None

        changes = {"updated_at": datetime.now(timezone.utc), **updates}
        task = Task.model_validate({**task.model_dump(), **changes})

        await self.conn.execute(
            """
            UPDATE tasks SET
                column_id = ?, title = ?, description = ?, status = ?,
                priority = ?, labels = ?, due_date = ?, position = ?,
                updated_at = ?, completed_at = ?, deleted_at = ?
            WHERE id = ?
            """,
            (
                task.column_id,
                task.title,
                task.description,
                task.status.value,
                task.priority.value,
                json.dumps(task.labels),
                _iso(task.due_date),
                task.position,
                task.updated_at.isoformat(),
                _iso(task.completed_at),
                _iso(task.deleted_at),
                task.id,
            ),
        )
        await self.conn.commit()
        return task

    def _row_to_task(self, row: aiosqlite.Row) -> Task:
        """Convert database row to Task model."""
        return Task(
            id=row["id"],
            board_id=row["board_id"],
            column_id=row["column_id"],
            title=row["title"],
            description=row["description"],
            status=TaskStatus(row["status"]),
            priority=TaskPriority(row["priority"]),
            labels=json.loads(row["labels"] or "[]"),
            due_date=date.fromisoformat(row["due_date"]) if row["due_date"] else None,
            position=row["position"] or 0,
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            completed_at=(
                datetime.fromisoformat(row["completed_at"])
                if row["completed_at"]
                else None
            ),
            deleted_at=(
                datetime.fromisoformat(row["deleted_at"]) if row["deleted_at"] else None
            ),
        )
