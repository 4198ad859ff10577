"""Collaborator interfaces consumed by the sync orchestrator."""

from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, Protocol

from todosync.db.models import Task
from todosync.sync.models import FileStats, FileWatcherEvent

WatcherHandler = Callable[[FileWatcherEvent], Awaitable[None]]


class FileSystem(Protocol):
    """Async file access."""

    async def read_file(self, path: Path) -> str: ...

    async def write_file(self, path: Path, content: str) -> None: ...

    async def stat(self, path: Path) -> FileStats: ...

    async def exists(self, path: Path) -> bool: ...


class TaskDatabase(Protocol):
    """The slice of the task store the orchestrator needs."""

    def is_connected(self) -> bool: ...

    async def connect(self) -> None: ...

    async def get_tasks_by_board(
        self, board_id: str, include_deleted: bool = False
    ) -> list[Task]: ...

    async def create_task(self, task: Task) -> Task: ...

    async def update_task(self, task_id: str, updates: dict[str, Any]) -> Task | None: ...


class Watcher(Protocol):
    """Source of already rate-limited file events."""

    def on(self, event_type: str, handler: WatcherHandler) -> None: ...

    async def start(self) -> None: ...

    async def stop(self) -> None: ...
