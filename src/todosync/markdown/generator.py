"""Markdown TODO file generator.

Writes tasks back out in the dialect the parser reads: a metadata header,
one section per priority (always present, possibly empty) and a trailing
completed section. Deleted tasks are never written.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from todosync.db.models import Task, TaskPriority, TaskStatus
from todosync.markdown.parser import TAG_CHARS, escape_metadata
from todosync.markdown.sanitizer import MarkdownSanitizer, Sanitizer
from todosync.security.path_validator import PathValidator

if TYPE_CHECKING:
    from todosync.sync.interfaces import FileSystem

log = structlog.get_logger()

DOCUMENT_TITLE = "# Personal TODOs"

PRIORITY_SECTIONS: list[tuple[TaskPriority, str]] = [
    (TaskPriority.CRITICAL, "## 🔥 Critical"),
    (TaskPriority.HIGH, "## ⚠️ High"),
    (TaskPriority.MEDIUM, "## 📌 Medium"),
    (TaskPriority.LOW, "## 📝 Low"),
]

COMPLETED_SECTION = "## ✅ Completed"

_NON_TAG_RE = re.compile(rf"[^{TAG_CHARS}]+")

STATUS_CHECKBOX: dict[TaskStatus, str] = {
    TaskStatus.TODO: "[ ]",
    TaskStatus.IN_PROGRESS: "[~]",
    TaskStatus.COMPLETED: "[x]",
}


def label_to_tag(label: str) -> str:
    """Reduce a label to characters the parser accepts in a tag.

    Runs of other characters become one underscore, so ``bug-fix`` is
    written as ``#bug_fix``. Returns an empty string if nothing is left.
    """
    return _NON_TAG_RE.sub("_", label).strip("_")


def format_date(value: datetime | date) -> str:
    """Format the local calendar date as YYYY-MM-DD."""
    if isinstance(value, datetime) and value.tzinfo is not None:
        value = value.astimezone()
    return value.strftime("%Y-%m-%d")


class MarkdownGenerator:
    """Serializes tasks to a TODO file."""

    def __init__(
        self,
        file_system: FileSystem,
        path_validator: PathValidator | None = None,
        sanitizer: Sanitizer | None = None,
    ):
        """Initialize the generator.

        Args:
            file_system: Where the generated file is written.
            path_validator: Validates the output path before writing.
            sanitizer: Cleans titles and tag names.
        """
        self.file_system = file_system
        self.path_validator = path_validator
        self.sanitizer = sanitizer or MarkdownSanitizer()

    async def generate(self, tasks: list[Task], file_path: str | Path) -> None:
        """Render tasks and write them to ``file_path``.

        Args:
            tasks: Tasks to write; deleted ones are skipped.
            file_path: Output path, validated when a path validator is set.
        """
        content = self.generate_content(tasks)
        if self.path_validator is not None:
            file_path = await self.path_validator.validate_async(file_path)
        await self.file_system.write_file(Path(file_path), content)
        log.info("markdown_generated", path=str(file_path), tasks=len(tasks))

    def generate_content(self, tasks: list[Task], now: datetime | None = None) -> str:
        """Render tasks as Markdown.

        Args:
            tasks: Tasks to render.
            now: Timestamp for the header (default: current local time).

        Returns:
            Markdown text.
        """
        visible = [t for t in tasks if t.status != TaskStatus.DELETED]
        active = [t for t in visible if t.status != TaskStatus.COMPLETED]
        completed = [t for t in visible if t.status == TaskStatus.COMPLETED]

        now = now or datetime.now()
        lines = [
            DOCUMENT_TITLE,
            "",
            "<!-- metadata -->",
            f"<!-- last_updated: {now.strftime('%Y-%m-%d %H:%M:%S')} -->",
            f"<!-- total_todos: {len(active)} -->",
            "",
        ]

        for priority, heading in PRIORITY_SECTIONS:
            lines.append("")
            lines.append(heading)
            lines.extend(self._task_line(t) for t in active if t.priority == priority)

        if completed:
            lines.append("")
            lines.append(COMPLETED_SECTION)
            lines.extend(self._task_line(t) for t in completed)

        return "\n".join(lines)

    def _task_line(self, task: Task) -> str:
        checkbox = STATUS_CHECKBOX.get(task.status, "[ ]")
        line = f"- {checkbox} {escape_metadata(self.sanitizer.sanitize_title(task.title))}"

        tags = [label_to_tag(self.sanitizer.sanitize_title(label)) for label in task.labels]
        tags = [tag for tag in tags if tag]
        if tags:
            line += " " + " ".join(f"#{tag}" for tag in tags)

        dates = f"created: {format_date(task.created_at)}"
        if task.completed_at:
            dates += f", completed: {format_date(task.completed_at)}"
        return f"{line} ({dates})"
