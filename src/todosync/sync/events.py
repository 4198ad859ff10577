"""Typed lifecycle events emitted by the sync orchestrator."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import ClassVar, Literal, TypeVar

import structlog

from todosync.sync.models import FileWatcherEvent, SyncHistory
from todosync.sync.state import SyncState

log = structlog.get_logger()


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SyncEvent:
    """Base event."""

    name: ClassVar[str] = "event"


@dataclass
class SyncStartEvent(SyncEvent):
    """A sync pass began."""

    name: ClassVar[str] = "sync:start"
    direction: Literal["file_to_db", "db_to_file"] = "file_to_db"
    timestamp: datetime = field(default_factory=_now)


@dataclass
class SyncCompleteEvent(SyncEvent):
    """A sync pass succeeded."""

    name: ClassVar[str] = "sync:complete"
    history: SyncHistory = field(
        default_factory=lambda: SyncHistory(direction=None, started_at=_now(), success=True)
    )


@dataclass
class SyncErrorEvent(SyncEvent):
    """A sync pass (or the watcher) failed."""

    name: ClassVar[str] = "sync:error"
    error: Exception = field(default_factory=Exception)
    context: str = ""


@dataclass
class FileChangedEvent(SyncEvent):
    """The watched file changed."""

    name: ClassVar[str] = "file:changed"
    event: FileWatcherEvent | None = None


@dataclass
class DbChangedEvent(SyncEvent):
    """Tasks were written to the database."""

    name: ClassVar[str] = "db:changed"
    task_ids: list[str] = field(default_factory=list)


@dataclass
class StateUpdatedEvent(SyncEvent):
    """The sync state advanced."""

    name: ClassVar[str] = "state:updated"
    state: SyncState = field(default_factory=SyncState)


E = TypeVar("E", bound=SyncEvent)


class EventBus:
    """Synchronous event dispatch keyed by event class.

    Example:
        >>> bus = EventBus()
        >>> bus.on(SyncCompleteEvent, lambda e: print(e.history.success))
        >>> bus.emit(SyncCompleteEvent())
        True
    """

    def __init__(self):
        self._handlers: dict[type[SyncEvent], list[Callable[[SyncEvent], None]]] = (
            defaultdict(list)
        )

    def on(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        """Subscribe a handler to one event type."""
        self._handlers[event_type].append(handler)  # type: ignore[arg-type]

    def off(self, event_type: type[E], handler: Callable[[E], None]) -> None:
        """Unsubscribe a handler; unknown handlers are ignored."""
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)  # type: ignore[arg-type]

    def emit(self, event: SyncEvent) -> None:
        """Deliver an event to its subscribers.

        A failing handler is logged and does not stop delivery to the others.
        """
        for handler in list(self._handlers.get(type(event), [])):
            try:
                handler(event)
            except Exception as e:
                log.error("event_handler_failed", event_name=event.name, error=str(e))

    def listener_count(self, event_type: type[SyncEvent]) -> int:
        """Number of handlers subscribed to an event type."""
        return len(self._handlers.get(event_type, []))

    def remove_all_listeners(self) -> None:
        """Drop every subscription."""
        self._handlers.clear()
