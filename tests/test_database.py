"""Tests for the database layer."""

from datetime import date, datetime, timezone

import pytest

from todosync.db import Database, Task, TaskPriority, TaskStatus


@pytest.fixture
async def db():
    """Create an in-memory database for testing."""
    database = Database(":memory:")
    await database.connect()
    yield database
    await database.close()


@pytest.fixture
async def sample_task(db: Database) -> Task:
    """Create a sample task."""
    task = Task(
        title="Write report",
        priority=TaskPriority.HIGH,
        labels=["work"],
        due_date=date(2025, 7, 1),
    )
    await db.create_task(task)
    return task


class TestConnection:
    """Test connection lifecycle."""

    async def test_connect_and_close(self):
        """Test connection state tracking."""
        database = Database(":memory:")
        assert not database.is_connected()

        await database.connect()
        assert database.is_connected()

        await database.close()
        assert not database.is_connected()

    def test_conn_requires_connect(self):
        """Test using the connection before connecting raises."""
        with pytest.raises(RuntimeError, match="not connected"):
            _ = Database(":memory:").conn


class TestTaskCRUD:
    """Test task CRUD operations."""

    async def test_create_task(self, db: Database):
        """Test creating a task."""
        task = Task(title="Implement feature", description="Add new feature")
        result = await db.create_task(task)
        assert result.id == task.id

    async def test_get_task(self, db: Database, sample_task: Task):
        """Test retrieving a task round-trips every field."""
        retrieved = await db.get_task(sample_task.id)
        assert retrieved is not None
        assert retrieved.title == "Write report"
        assert retrieved.priority == TaskPriority.HIGH
        assert retrieved.status == TaskStatus.TODO
        assert retrieved.labels == ["work"]
        assert retrieved.due_date == date(2025, 7, 1)
        assert retrieved.created_at == sample_task.created_at
        assert retrieved.deleted_at is None

    async def test_get_nonexistent_task(self, db: Database):
        """Test retrieving a missing task."""
        assert await db.get_task("missing") is None

    async def test_get_tasks_by_board(self, db: Database):
        """Test getting tasks by board in position order."""
        for i in (2, 0, 1):
            await db.create_task(Task(title=f"Task {i}", position=i))
        await db.create_task(Task(title="Other board", board_id="other"))

        tasks = await db.get_tasks_by_board("default")
        assert [t.title for t in tasks] == ["Task 0", "Task 1", "Task 2"]

    async def test_deleted_tasks_hidden_by_default(self, db: Database, sample_task: Task):
        """Test soft-deleted tasks are excluded unless requested."""
        await db.update_task(
            sample_task.id,
            {"deleted_at": datetime.now(timezone.utc), "status": TaskStatus.DELETED},
        )

        assert await db.get_tasks_by_board("default") == []
        hidden = await db.get_tasks_by_board("default", include_deleted=True)
        assert len(hidden) == 1
        assert hidden[0].status == TaskStatus.DELETED


class TestUpdateTask:
    """Test partial updates."""

    async def test_update_fields(self, db: Database, sample_task: Task):
        """Test updating a subset of fields."""
        completed_at = datetime(2025, 6, 2, 8, 0, tzinfo=timezone.utc)
        updated = await db.update_task(
            sample_task.id,
            {"status": TaskStatus.COMPLETED, "completed_at": completed_at},
        )
        assert updated is not None
        assert updated.status == TaskStatus.COMPLETED

        stored = await db.get_task(sample_task.id)
        assert stored.status == TaskStatus.COMPLETED
        assert stored.completed_at == completed_at
        assert stored.title == "Write report"

    async def test_updated_at_defaults_to_now(self, db: Database, sample_task: Task):
        """Test updated_at is bumped when not given."""
        updated = await db.update_task(sample_task.id, {"title": "Write the report"})
        assert updated.updated_at >= sample_task.updated_at

    async def test_string_values_coerced(self, db: Database, sample_task: Task):
        """Test values are validated through the model."""
        updated = await db.update_task(sample_task.id, {"due_date": "2025-08-15"})
        assert updated.due_date == date(2025, 8, 15)

    async def test_unknown_field_rejected(self, db: Database, sample_task: Task):
        """Test read-only and unknown fields raise."""
        with pytest.raises(ValueError, match="Cannot update"):
            await db.update_task(sample_task.id, {"id": "new-id"})
        with pytest.raises(ValueError):
            await db.update_task(sample_task.id, {"nonsense": 1})

    async def test_update_missing_task(self, db: Database):
        """Test updating a missing task returns None."""
        assert await db.update_task("missing", {"title": "x"}) is None
