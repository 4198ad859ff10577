"""Result types produced by the Markdown TODO parser."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

# Front matter scalars are inferred at parse time; the Python type is the tag.
FrontMatterValue = bool | int | float | str

MetadataPriority = Literal["low", "medium", "high"]


@dataclass
class MarkdownSection:
    """A heading and everything beneath it up to the next equal-or-higher heading."""

    name: str
    level: int
    start_line: int
    end_line: int
    content: str
    children: list[MarkdownSection] = field(default_factory=list)


@dataclass
class MarkdownCheckbox:
    """A `- [ ]` list item."""

    checked: bool
    text: str
    line_number: int
    indent_level: int
    section: str | None = None
    in_progress: bool = False


@dataclass
class TaskMetadata:
    """Inline metadata tokens found in a checkbox's text."""

    due_date: str | None = None
    priority: MetadataPriority | None = None
    tags: list[str] | None = None


@dataclass
class ParsedTask:
    """A checkbox with its title cleaned of metadata tokens."""

    title: str
    checked: bool
    line_number: int
    section: str
    indent_level: int
    raw_text: str
    metadata: TaskMetadata = field(default_factory=TaskMetadata)
    in_progress: bool = False


@dataclass
class MarkdownParseResult:
    """Everything extracted from one parse call."""

    sections: list[MarkdownSection] = field(default_factory=list)
    checkboxes: list[MarkdownCheckbox] = field(default_factory=list)
    raw_content: str = ""
    line_count: int = 0
    char_count: int = 0
    front_matter: dict[str, FrontMatterValue] | None = None


@dataclass
class ValidationResult:
    """Outcome of the structural linter."""

    valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
