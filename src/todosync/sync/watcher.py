"""Polling watcher for the TODO file.

Detects add/change/unlink by comparing size and mtime between polls, then
delivers events only after the file has been quiet for ``debounce_ms`` and no
sooner than ``throttle_ms`` after the previous delivery.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections import Counter
from pathlib import Path

import structlog

from todosync.security.path_validator import PathValidator
from todosync.sync.filesystem import LocalFileSystem
from todosync.sync.interfaces import FileSystem, WatcherHandler
from todosync.sync.models import FileStats, FileWatcherEvent

log = structlog.get_logger()

EVENT_TYPES = ("add", "change", "unlink", "error")


class FileWatcher:
    """Watch one file and emit rate-limited events to async handlers."""

    def __init__(
        self,
        file_path: str | Path,
        path_validator: PathValidator | None = None,
        file_system: FileSystem | None = None,
        debounce_ms: int = 500,
        throttle_ms: int = 2000,
        poll_interval: float = 0.25,
    ):
        """Initialize the watcher.

        Args:
            file_path: File to watch, relative to the validator's base.
            path_validator: Validator for ``file_path`` (default: cwd base).
            file_system: File access used for stat calls.
            debounce_ms: Quiet period required before delivering an event.
            throttle_ms: Minimum gap between two deliveries.
            poll_interval: Seconds between polls.
        """
        validator = path_validator or PathValidator()
        self.path = validator.validate(file_path)
        self.file_system = file_system or LocalFileSystem()
        self.debounce = debounce_ms / 1000
        self.throttle = throttle_ms / 1000
        self.poll_interval = poll_interval

        self._handlers: dict[str, list[WatcherHandler]] = {t: [] for t in EVENT_TYPES}
        self._task: asyncio.Task | None = None
        self._handler_tasks: set[asyncio.Task] = set()
        self._last_stats: FileStats | None = None
        self._pending: FileWatcherEvent | None = None
        self._pending_since = 0.0
        self._last_emit: float | None = None
        self.event_counts: Counter[str] = Counter()

    @property
    def is_watching(self) -> bool:
        """Whether the poll loop is running."""
        return self._task is not None and not self._task.done()

    def on(self, event_type: str, handler: WatcherHandler) -> None:
        """Register an async handler for ``add``, ``change``, ``unlink`` or ``error``."""
        if event_type not in self._handlers:
            raise ValueError(f"Unknown watcher event type: {event_type}")
        self._handlers[event_type].append(handler)

    async def start(self) -> None:
        """Take an initial snapshot and start polling."""
        if self.is_watching:
            log.warning("file_watcher_already_running", path=str(self.path))
            return

        self._last_stats = await self._stat()
        if self._last_stats is None:
            log.warning("file_watcher_waiting_for_file", path=str(self.path))

        self._task = asyncio.create_task(self._run())
        log.info(
            "file_watcher_started",
            path=str(self.path),
            debounce_ms=int(self.debounce * 1000),
            throttle_ms=int(self.throttle * 1000),
        )

    async def stop(self) -> None:
        """Stop polling and drop any undelivered event.

        Handlers already running are not cancelled; they finish on their own.
        """
        if not self._task:
            log.warning("file_watcher_not_running", path=str(self.path))
            return

        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        self._pending = None
        log.info(
            "file_watcher_stopped",
            path=str(self.path),
            events=dict(self.event_counts),
            running_handlers=len(self._handler_tasks),
        )

    async def _stat(self) -> FileStats | None:
        try:
            return await self.file_system.stat(self.path)
        except FileNotFoundError:
            return None

    async def poll(self) -> FileWatcherEvent | None:
        """Compare the file against the last snapshot.

        Returns:
            The detected event, or None if nothing changed.
        """
        stats = await self._stat()
        previous, self._last_stats = self._last_stats, stats

        if stats is None:
            if previous is None:
                return None
            return FileWatcherEvent(type="unlink", path=str(self.path))
        if previous is None:
            return FileWatcherEvent(type="add", path=str(self.path), stats=stats)
        if stats != previous:
            return FileWatcherEvent(type="change", path=str(self.path), stats=stats)
        return None

    def _queue(self, event: FileWatcherEvent, now: float) -> None:
        # A change right after creation is still a creation
        if self._pending and self._pending.type == "add" and event.type == "change":
            event.type = "add"
        self._pending = event
        self._pending_since = now

    def _ready(self, now: float) -> bool:
        if self._pending is None or now - self._pending_since < self.debounce:
            return False
        return self._last_emit is None or now - self._last_emit >= self.throttle

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                event = await self.poll()
            except OSError as e:
                self._dispatch(FileWatcherEvent(type="error", path=str(self.path), error=e))
                continue

            now = loop.time()
            if event:
                self._queue(event, now)
            if self._ready(now):
                pending, self._pending = self._pending, None
                self._last_emit = now
                self._dispatch(pending)

    def _dispatch(self, event: FileWatcherEvent) -> None:
        # Handlers run outside the poll loop so stop() never cancels them
        task = asyncio.create_task(self._emit(event))
        self._handler_tasks.add(task)
        task.add_done_callback(self._handler_tasks.discard)

    async def _emit(self, event: FileWatcherEvent) -> None:
        self.event_counts[event.type] += 1
        log.debug("file_watcher_event", type=event.type, path=event.path)
        for handler in list(self._handlers[event.type]):
            try:
                await handler(event)
            except Exception as e:
                log.error("file_watcher_handler_failed", type=event.type, error=str(e))
