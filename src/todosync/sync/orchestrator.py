"""Bidirectional TODO file <-> task database synchronization.

The orchestrator listens to the file watcher, runs file -> database passes
when the file changes, and database -> file passes on request. Each pass is
retried with exponential backoff on transient errors and reported through
typed events and a bounded history.
"""

from __future__ import annotations

import asyncio
import contextlib
import hashlib
import uuid
from collections import defaultdict, deque
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

import structlog

from todosync.db.models import Task, TaskPriority, TaskStatus
from todosync.errors import (
    ConfigurationError,
    ContentValidationError,
    FileTooLargeError,
    OrchestratorNotRunningError,
    SecurityError,
    SyncCancelledError,
)
from todosync.markdown.generator import MarkdownGenerator
from todosync.markdown.models import ParsedTask
from todosync.markdown.parser import MarkdownParser
from todosync.security.path_validator import PathValidator
from todosync.sync.conflict import ConflictResolver
from todosync.sync.events import (
    DbChangedEvent,
    E,
    EventBus,
    FileChangedEvent,
    StateUpdatedEvent,
    SyncCompleteEvent,
    SyncErrorEvent,
    SyncStartEvent,
)
from todosync.sync.filesystem import LocalFileSystem
from todosync.sync.interfaces import FileSystem, TaskDatabase, Watcher
from todosync.sync.models import (
    FileWatcherEvent,
    SyncConfig,
    SyncErrorRecord,
    SyncHistory,
    SyncStrategy,
)
from todosync.sync.state import (
    SyncState,
    begin_sync,
    complete_sync,
    fail_sync,
    mark_started,
    record_error,
)

log = structlog.get_logger()

PassDirection = Literal["file_to_db", "db_to_file"]

MAX_HISTORY = 100
STOP_TIMEOUT_SECONDS = 5.0
STOP_POLL_SECONDS = 0.1

# Errors that fail a pass immediately instead of being retried
NON_RETRYABLE_ERRORS = (SecurityError, FileTooLargeError, ContentValidationError)

# Fields a file -> database pass is allowed to change on a matched task
SYNCED_FIELDS = ("status", "priority", "labels", "due_date", "completed_at")

SECTION_PRIORITY_KEYWORDS: list[tuple[TaskPriority, tuple[str, ...]]] = [
    (TaskPriority.CRITICAL, ("critical", "urgent", "最優先")),
    (TaskPriority.HIGH, ("high", "高優先")),
    (TaskPriority.MEDIUM, ("medium", "中優先")),
    (TaskPriority.LOW, ("low", "低優先")),
]

METADATA_PRIORITY = {
    "high": TaskPriority.HIGH,
    "medium": TaskPriority.MEDIUM,
    "low": TaskPriority.LOW,
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RetryConfig:
    """Exponential backoff settings for a sync pass."""

    max_retries: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 10000
    backoff_multiplier: float = 2.0

    def delay_ms(self, attempt: int) -> float:
        """Delay after the given failed attempt (1-based)."""
        return min(
            self.initial_delay_ms * self.backoff_multiplier ** (attempt - 1),
            self.max_delay_ms,
        )


@dataclass
class SyncCounts:
    """What one successful attempt changed."""

    total: int = 0
    created: int = 0
    updated: int = 0
    deleted: int = 0
    # Fields the resolver left in conflict, and fields it settled
    conflicts: int = 0
    resolved: int = 0


def priority_from_task(parsed: ParsedTask) -> TaskPriority | None:
    """Priority from inline metadata, falling back to the section heading."""
    if parsed.metadata.priority:
        return METADATA_PRIORITY[parsed.metadata.priority]

    section = parsed.section.lower()
    for priority, keywords in SECTION_PRIORITY_KEYWORDS:
        if any(keyword in section for keyword in keywords):
            return priority
    return None


def status_from_task(parsed: ParsedTask) -> TaskStatus:
    """Map a checkbox state to a task status."""
    if parsed.checked:
        return TaskStatus.COMPLETED
    if parsed.in_progress:
        return TaskStatus.IN_PROGRESS
    return TaskStatus.TODO


class SyncOrchestrator:
    """Drives sync passes between a TODO file and a task database.

    Example:
        >>> orchestrator = SyncOrchestrator(parser, generator, watcher, db, config)
        >>> orchestrator.on(SyncCompleteEvent, lambda e: print(e.history.tasks_changed))
        >>> await orchestrator.start()
    """

    def __init__(
        self,
        parser: MarkdownParser,
        generator: MarkdownGenerator,
        watcher: Watcher,
        database: TaskDatabase,
        config: SyncConfig,
        *,
        file_system: FileSystem | None = None,
        path_validator: PathValidator | None = None,
        resolver: ConflictResolver | None = None,
        retry: RetryConfig | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            parser: Parser for file -> task conversion.
            generator: Generator for task -> file conversion.
            watcher: Watcher delivering debounced file events.
            database: Task store.
            config: Sync configuration.
            file_system: File access (default: local disk).
            path_validator: Sandbox for ``config.todo_path`` (default: cwd).
            resolver: Conflict resolver for matched tasks.
            retry: Backoff settings.
        """
        self.parser = parser
        self.generator = generator
        self.watcher = watcher
        self.database = database
        self.config = config
        self.file_system = file_system or LocalFileSystem()
        self.path_validator = path_validator or PathValidator()
        self.resolver = resolver
        self.retry = retry or RetryConfig()

        self._events = EventBus()
        self._running = False
        self._state = SyncState()
        self._history: deque[SyncHistory] = deque(maxlen=MAX_HISTORY)
        self._active_operations: dict[str, PassDirection] = {}
        self._pass_lock = asyncio.Lock()
        self._last_written_digest: str | None = None

        self.watcher.on("change", self.handle_file_change)
        self.watcher.on("add", self.handle_file_change)
        self.watcher.on("error", self._handle_watcher_error)

    # =========================================================================
    # Events
    # =========================================================================

    def on(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        """Subscribe to an orchestrator event."""
        self._events.on(event_type, handler)

    def off(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        """Unsubscribe from an orchestrator event."""
        self._events.off(event_type, handler)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """Connect, start watching, and run the initial file -> database pass.

        Raises:
            ConfigurationError: If ``todo_path``, ``direction`` or ``strategy``
                is missing.
        """
        if self._running:
            log.warning("orchestrator_already_running")
            return

        log.info("orchestrator_starting", todo_path=self.config.todo_path)
        self._validate_config()

        try:
            if not self.database.is_connected():
                await self.database.connect()
            await self.watcher.start()
            await self._perform_initial_sync()
        except Exception as e:
            log.error("orchestrator_start_failed", error=str(e))
            self._running = False
            raise

        self._running = True
        self._update_state(mark_started, _now())
        log.info(
            "orchestrator_started",
            direction=self.config.direction.value,
            strategy=self.config.strategy.value,
            todo_path=self.config.todo_path,
        )

    async def stop(self) -> None:
        """Wait briefly for in-flight passes, then stop watching."""
        if not self._running:
            log.warning("orchestrator_not_running")
            return

        if self._active_operations:
            log.info("orchestrator_waiting_for_operations", pending=len(self._active_operations))
            await self._wait_for_pending_operations(STOP_TIMEOUT_SECONDS)

        await self.watcher.stop()
        self._running = False
        log.info(
            "orchestrator_stopped",
            total_syncs=len(self._history),
            last_sync_at=self._state.last_sync_at,
        )

    async def dispose(self) -> None:
        """Stop and drop every event subscription."""
        await self.stop()
        self._events.remove_all_listeners()
        log.info("orchestrator_disposed")

    def is_active(self) -> bool:
        """Whether the orchestrator is running."""
        return self._running

    def get_sync_state(self) -> SyncState:
        """Current sync state snapshot."""
        return self._state

    def get_sync_history(self, limit: int | None = None) -> list[SyncHistory]:
        """Sync history, newest first."""
        history = list(reversed(self._history))
        return history[:limit] if limit else history

    def _validate_config(self) -> None:
        if not self.config.todo_path:
            raise ConfigurationError("Configuration error: todo_path is required")
        if not self.config.direction:
            raise ConfigurationError("Configuration error: direction is required")
        if not self.config.strategy:
            raise ConfigurationError("Configuration error: strategy is required")

        log.debug(
            "orchestrator_config_validated",
            todo_path=self.config.todo_path,
            direction=self.config.direction.value,
            strategy=self.config.strategy.value,
        )

    async def _perform_initial_sync(self) -> None:
        if not self.config.direction.reads_file:
            return

        try:
            path = self.path_validator.validate(self.config.todo_path)
            if not await self.file_system.exists(path):
                log.warning("initial_sync_skipped_missing_file", path=str(path))
                return
            await self.sync_file_to_db()
        except Exception as e:
            # The orchestrator still starts; the next file event retries
            log.error("initial_sync_failed", error=str(e))

    async def _wait_for_pending_operations(self, timeout: float) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while self._active_operations:
            if loop.time() > deadline:
                log.warning("orchestrator_stop_timeout", pending=len(self._active_operations))
                break
            await asyncio.sleep(STOP_POLL_SECONDS)

    # =========================================================================
    # Triggers
    # =========================================================================

    async def handle_file_change(self, event: FileWatcherEvent) -> None:
        """Watcher callback: run a file -> database pass."""
        if not self._running:
            log.debug("file_change_ignored_not_running", path=event.path)
            return

        self._events.emit(FileChangedEvent(event=event))
        log.info(
            "file_change_detected",
            event_type=event.type,
            path=event.path,
            size=event.stats.size if event.stats else None,
        )

        try:
            await self.sync_file_to_db()
        except NON_RETRYABLE_ERRORS as e:
            # Already reported through SyncErrorEvent
            log.error("file_change_sync_rejected", error=str(e))

    async def _handle_watcher_error(self, event: FileWatcherEvent) -> None:
        error = event.error or RuntimeError("File watcher error")
        log.error("file_watcher_error", path=event.path, error=str(error))
        self._update_state(record_error, SyncErrorRecord(message=str(error), context="file_watcher"))
        self._events.emit(SyncErrorEvent(error=error, context="file_watcher"))

    async def trigger_file_to_db_sync(self) -> SyncHistory | None:
        """Run a file -> database pass now.

        Raises:
            OrchestratorNotRunningError: If the orchestrator is stopped.
        """
        if not self._running:
            raise OrchestratorNotRunningError("SyncOrchestrator is not running")
        return await self.sync_file_to_db()

    async def trigger_db_to_file_sync(self) -> SyncHistory | None:
        """Write the board's tasks to the TODO file now.

        Raises:
            OrchestratorNotRunningError: If the orchestrator is stopped.
        """
        if not self._running:
            raise OrchestratorNotRunningError("SyncOrchestrator is not running")

        tasks = await self.database.get_tasks_by_board(self.config.board_id)
        return await self.sync_db_to_file(tasks)

    # =========================================================================
    # Sync passes
    # =========================================================================

    async def sync_file_to_db(self) -> SyncHistory | None:
        """Read, parse and reconcile the TODO file into the database.

        Returns:
            The history row on success, None once retries are exhausted.

        Raises:
            SecurityError, FileTooLargeError, ContentValidationError: Not
                retried; reported via ``SyncErrorEvent`` and re-raised.
        """
        async with self._track_operation("file_to_db"):
            return await self._run_with_retry(
                "file_to_db", self._file_to_db_attempt, "sync_file_to_db"
            )

    async def sync_db_to_file(self, tasks: list[Task]) -> SyncHistory | None:
        """Generate the TODO file from tasks.

        Returns:
            The history row on success, None once retries are exhausted.
        """

        async def attempt(number: int) -> SyncCounts:
            return await self._db_to_file_attempt(tasks, number)

        async with self._track_operation("db_to_file"):
            return await self._run_with_retry("db_to_file", attempt, "sync_db_to_file")

    @contextlib.asynccontextmanager
    async def _track_operation(self, direction: PassDirection) -> AsyncIterator[str]:
        operation_id = str(uuid.uuid4())
        self._active_operations[operation_id] = direction
        try:
            async with self._pass_lock:
                yield operation_id
        finally:
            self._active_operations.pop(operation_id, None)

    async def _run_with_retry(
        self,
        direction: PassDirection,
        attempt_fn: Callable[[int], Awaitable[SyncCounts]],
        context: str,
    ) -> SyncHistory | None:
        history_id = str(uuid.uuid4())
        started_at = _now()

        self._events.emit(SyncStartEvent(direction=direction, timestamp=started_at))
        self._update_state(begin_sync)

        last_error: Exception | None = None
        try:
            for attempt in range(1, self.retry.max_retries + 2):
                try:
                    counts = await attempt_fn(attempt)
                except NON_RETRYABLE_ERRORS as e:
                    self._fail_pass(history_id, started_at, e, context)
                    raise
                except Exception as e:
                    last_error = e
                    log.warning(
                        "sync_attempt_failed",
                        direction=direction,
                        attempt=attempt,
                        max_retries=self.retry.max_retries,
                        error=str(e),
                    )
                    if attempt <= self.retry.max_retries:
                        await asyncio.sleep(self.retry.delay_ms(attempt) / 1000)
                    continue

                return self._complete_pass(history_id, started_at, counts)
        except asyncio.CancelledError:
            self._fail_pass(
                history_id, started_at, SyncCancelledError("Sync pass cancelled"), context
            )
            raise

        self._fail_pass(
            history_id,
            started_at,
            last_error or RuntimeError("Sync failed after retries"),
            context,
        )
        return None

    async def _file_to_db_attempt(self, attempt: int) -> SyncCounts:
        path = await self.path_validator.validate_async(self.config.todo_path)
        await self.path_validator.validate_file_size(path, self.config.max_file_size_mb)
        content = await self.file_system.read_file(path)

        # Only the first read after our own write is skipped
        digest = hashlib.sha256(content.encode("utf-8")).hexdigest()
        own_write = digest == self._last_written_digest
        self._last_written_digest = None
        if own_write:
            log.info("file_unchanged_since_last_write", path=str(path))
            return SyncCounts()

        result = self.parser.parse(content)
        parsed = self.parser.extract_tasks(result)
        if len(parsed) > self.config.max_tasks:
            raise ContentValidationError(
                f"Task count ({len(parsed)}) exceeds limit ({self.config.max_tasks})"
            )

        log.info("tasks_parsed", task_count=len(parsed), attempt=attempt)

        if self.config.dry_run:
            log.info("dry_run_skipping_database", task_count=len(parsed))
            return SyncCounts(total=len(parsed))

        counts = await self._reconcile(parsed)
        log.info(
            "database_update_completed",
            created=counts.created,
            updated=counts.updated,
            deleted=counts.deleted,
        )
        return counts

    async def _db_to_file_attempt(self, tasks: list[Task], attempt: int) -> SyncCounts:
        if self.config.dry_run:
            log.info("dry_run_skipping_file_write", task_count=len(tasks))
            return SyncCounts(total=len(tasks))

        path = await self.path_validator.validate_async(self.config.todo_path)
        await self.generator.generate(tasks, path)
        content = await self.file_system.read_file(path)
        self._last_written_digest = hashlib.sha256(content.encode("utf-8")).hexdigest()

        log.info("markdown_file_written", task_count=len(tasks), path=str(path), attempt=attempt)
        return SyncCounts(total=len(tasks))

    async def _reconcile(self, parsed_tasks: list[ParsedTask]) -> SyncCounts:
        """Match parsed tasks to live board tasks by exact title.

        Matches are updated, unmatched parsed tasks are created, and board
        tasks missing from the file are soft-deleted. Duplicate titles pair
        up in order.
        """
        counts = SyncCounts(total=len(parsed_tasks))
        touched: list[str] = []
        now = _now()

        existing = await self.database.get_tasks_by_board(self.config.board_id)
        by_title: dict[str, deque[Task]] = defaultdict(deque)
        for task in existing:
            by_title[task.title].append(task)

        for position, parsed in enumerate(parsed_tasks):
            if not parsed.title:
                log.debug("empty_task_title_skipped", line_number=parsed.line_number)
                continue

            candidates = by_title.get(parsed.title)
            match = candidates.popleft() if candidates else None

            if match is None:
                task = Task(
                    board_id=self.config.board_id,
                    column_id=self.config.column_id,
                    title=parsed.title,
                    position=position,
                    created_at=now,
                    updated_at=now,
                    **self._fields_from_parsed(parsed, None, now),
                )
                await self.database.create_task(task)
                counts.created += 1
                touched.append(task.id)
                continue

            updates = self._fields_from_parsed(parsed, match, now)
            if self.resolver and self.config.strategy != SyncStrategy.LAST_WRITE_WINS:
                file_version = Task.model_validate({**match.model_dump(), **updates})
                merge = self.resolver.resolve(
                    None, file_version, match, self.config.conflict_resolution
                )
                differing = [
                    name
                    for name in SYNCED_FIELDS
                    if getattr(file_version, name) != getattr(match, name)
                ]
                counts.conflicts += len(merge.conflicts)
                counts.resolved += max(len(differing) - len(merge.conflicts), 0)
                updates = {name: getattr(merge.resolved, name) for name in SYNCED_FIELDS}

            await self.database.update_task(match.id, {**updates, "updated_at": now})
            counts.updated += 1
            touched.append(match.id)

        for leftovers in by_title.values():
            for task in leftovers:
                if task.deleted_at is None:
                    await self.database.update_task(
                        task.id, {"deleted_at": now, "status": TaskStatus.DELETED}
                    )
                    counts.deleted += 1
                    touched.append(task.id)

        if touched:
            self._events.emit(DbChangedEvent(task_ids=touched))
        return counts

    def _fields_from_parsed(
        self, parsed: ParsedTask, existing: Task | None, now: datetime
    ) -> dict[str, Any]:
        status = status_from_task(parsed)
        fields: dict[str, Any] = {
            "status": status,
            "labels": list(parsed.metadata.tags or []),
        }

        priority = priority_from_task(parsed)
        if priority is not None:
            fields["priority"] = priority
        elif existing is None:
            fields["priority"] = TaskPriority.MEDIUM

        if parsed.metadata.due_date:
            fields["due_date"] = parsed.metadata.due_date

        if status == TaskStatus.COMPLETED:
            fields["completed_at"] = (existing.completed_at if existing else None) or now
        else:
            fields["completed_at"] = None

        return fields

    # =========================================================================
    # State and history
    # =========================================================================

    def _update_state(self, transition: Callable[..., SyncState], *args: Any) -> None:
        self._state = transition(self._state, *args)
        self._events.emit(StateUpdatedEvent(state=self._state))

    def _complete_pass(
        self, history_id: str, started_at: datetime, counts: SyncCounts
    ) -> SyncHistory:
        completed_at = _now()
        history = SyncHistory(
            id=history_id,
            direction=self.config.direction,
            started_at=started_at,
            completed_at=completed_at,
            success=True,
            tasks_changed=counts.created + counts.updated + counts.deleted,
            tasks_created=counts.created,
            tasks_updated=counts.updated,
            tasks_deleted=counts.deleted,
            conflicts_detected=counts.conflicts + counts.resolved,
            conflicts_resolved=counts.resolved,
            duration_ms=int((completed_at - started_at).total_seconds() * 1000),
        )
        self._history.append(history)
        self._update_state(complete_sync, completed_at, counts.conflicts)
        self._events.emit(SyncCompleteEvent(history=history))

        log.info(
            "sync_completed",
            history_id=history_id,
            duration_ms=history.duration_ms,
            tasks_changed=history.tasks_changed,
            tasks_deleted=history.tasks_deleted,
        )
        return history

    def _fail_pass(
        self, history_id: str, started_at: datetime, error: Exception, context: str
    ) -> None:
        completed_at = _now()
        self._update_state(fail_sync, SyncErrorRecord(message=str(error), context=context))
        self._events.emit(SyncErrorEvent(error=error, context=context))
        self._history.append(
            SyncHistory(
                id=history_id,
                direction=self.config.direction,
                started_at=started_at,
                completed_at=completed_at,
                success=False,
                error=str(error),
                duration_ms=int((completed_at - started_at).total_seconds() * 1000),
            )
        )
        log.error("sync_failed", history_id=history_id, context=context, error=str(error))
