"""Parser for the Markdown TODO dialect.

The dialect is plain Markdown with three extras:

- an optional ``---`` framed front matter block of ``key: value`` scalars,
- checkbox list items (``- [ ]``, ``- [x]``, ``- [~]``) nested by two spaces,
- inline metadata tokens in checkbox text (``due:``, ``priority:``, ``#tag``).
"""

from __future__ import annotations

import re
import time
from typing import TYPE_CHECKING

import structlog

from todosync.markdown.models import (
    FrontMatterValue,
    MarkdownCheckbox,
    MarkdownParseResult,
    MarkdownSection,
    MetadataPriority,
    ParsedTask,
    TaskMetadata,
    ValidationResult,
)
from todosync.markdown.sanitizer import MarkdownSanitizer, Sanitizer

if TYPE_CHECKING:
    from todosync.config import Settings

log = structlog.get_logger()

FRONT_MATTER_DELIMITER = "---"

HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$")
CHECKBOX_RE = re.compile(r"^(\s*)-\s+\[([xX\s~])\]\s+(.+)$")
DUE_DATE_RE = re.compile(
    r"(?:due:|期限:|deadline:)\s*([0-9]{4}-[0-9]{2}-[0-9]{2})", re.IGNORECASE
)
PRIORITY_RE = re.compile(
    r"(?:priority:|優先度:)\s*(low|medium|high|低|中|高)", re.IGNORECASE
)
TAG_CHARS = r"a-zA-Z0-9_\u3040-\u309F\u30A0-\u30FF\u4E00-\u9FFF"
# A backslash before the hash keeps it literal.
TAG_RE = re.compile(rf"(?<!\\)#([{TAG_CHARS}]+)")
# Trailing date annotation written by the generator.
DATE_ANNOTATION_RE = re.compile(
    r"\(created:\s*[0-9]{4}-[0-9]{2}-[0-9]{2}"
    r"(?:,\s*completed:\s*[0-9]{4}-[0-9]{2}-[0-9]{2})?\)"
)

_INT_RE = re.compile(r"^[0-9]+$")
_FLOAT_RE = re.compile(r"^[0-9]+\.[0-9]+$")
_QUOTE_RE = re.compile(r"^[\"']|[\"']$")
_WHITESPACE_RE = re.compile(r"\s+")
_ESCAPED_RE = re.compile(r"\\([#:])")

PRIORITY_MAP: dict[str, MetadataPriority] = {
    "low": "low",
    "低": "low",
    "medium": "medium",
    "中": "medium",
    "high": "high",
    "高": "high",
}


def parse_front_matter_value(value: str) -> FrontMatterValue:
    """Infer the scalar type of a front matter value.

    Args:
        value: Raw text after the colon, already trimmed.

    Returns:
        bool, int, float, or the string with surrounding quotes removed.
    """
    if value == "true":
        return True
    if value == "false":
        return False
    if _INT_RE.match(value):
        return int(value)
    if _FLOAT_RE.match(value):
        return float(value)
    return _QUOTE_RE.sub("", value)


def _escape_keyword_colon(match: re.Match[str]) -> str:
    token = match.group(0)
    colon = token.index(":")
    return token[:colon] + "\\" + token[colon:]


def escape_metadata(text: str) -> str:
    """Escape tokens in free text that would otherwise parse as metadata.

    ``#tag`` becomes ``\\#tag`` and keyword colons (``due:``, ``priority:``,
    the ``(created:`` annotation) become ``\\:``. ``clean_title`` removes the
    backslashes again, so an escaped title parses back unchanged.
    """
    text = DUE_DATE_RE.sub(_escape_keyword_colon, text)
    text = PRIORITY_RE.sub(_escape_keyword_colon, text)
    text = DATE_ANNOTATION_RE.sub(_escape_keyword_colon, text)
    return TAG_RE.sub(lambda m: "\\" + m.group(0), text)


def _split_lines(content: str) -> list[str]:
    return [line.removesuffix("\r") for line in content.split("\n")]


class MarkdownParser:
    """Parses TODO files into sections, checkboxes and tasks.

    Example:
        >>> parser = MarkdownParser()
        >>> result = parser.parse("## Inbox\\n- [ ] Buy milk #errand\\n")
        >>> [t.title for t in parser.extract_tasks(result)]
        ['Buy milk']
    """

    def __init__(
        self,
        sanitizer: Sanitizer | None = None,
        max_file_size_mb: int = 5,
        max_tasks: int = 10000,
    ):
        """Initialize the parser.

        Args:
            sanitizer: Text cleaner for titles and headings.
            max_file_size_mb: Size limit enforced by ``validate``.
            max_tasks: Checkbox count limit enforced by ``validate``.
        """
        self.sanitizer = sanitizer or MarkdownSanitizer()
        self.max_file_size_mb = max_file_size_mb
        self.max_tasks = max_tasks

    @classmethod
    def from_settings(cls, settings: Settings) -> MarkdownParser:
        """Build a parser with limits taken from settings."""
        return cls(
            max_file_size_mb=settings.todo_max_file_size_mb,
            max_tasks=settings.todo_max_tasks,
        )

    def parse(self, content: str) -> MarkdownParseResult:
        """Parse Markdown content.

        Malformed constructs are skipped rather than raised. Non-string or
        empty input yields an empty result.

        Args:
            content: Markdown text.

        Returns:
            MarkdownParseResult for the content.
        """
        started = time.perf_counter()

        if not content or not isinstance(content, str):
            log.warning("markdown_parse_invalid_content", content_type=type(content).__name__)
            return MarkdownParseResult()

        try:
            lines = _split_lines(content)
            log.debug("markdown_parse_started", line_count=len(lines), char_count=len(content))

            front_matter, start_line = self._parse_front_matter(lines)
            sections = self._parse_sections(lines, start_line)
            checkboxes = self._parse_checkboxes(lines, start_line)
        except Exception as e:
            log.error("markdown_parse_failed", error=str(e))
            raise

        log.info(
            "markdown_parse_completed",
            sections=len(sections),
            checkboxes=len(checkboxes),
            front_matter=front_matter is not None,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )

        return MarkdownParseResult(
            front_matter=front_matter,
            sections=sections,
            checkboxes=checkboxes,
            raw_content=content,
            line_count=len(lines),
            char_count=len(content),
        )

    def _parse_front_matter(
        self, lines: list[str]
    ) -> tuple[dict[str, FrontMatterValue] | None, int]:
        """Parse the front matter block.

        Returns:
            Tuple of (front matter or None, first body line index).
        """
        if len(lines) < 3 or lines[0].strip() != FRONT_MATTER_DELIMITER:
            return None, 0

        end_line = next(
            (
                i
                for i in range(1, len(lines))
                if lines[i].strip() == FRONT_MATTER_DELIMITER
            ),
            None,
        )
        if end_line is None:
            log.warning("front_matter_not_closed")
            return None, 0

        front_matter: dict[str, FrontMatterValue] = {}
        for line in lines[1:end_line]:
            line = line.strip()
            if not line or ":" not in line:
                continue
            key, _, value = line.partition(":")
            front_matter[key.strip()] = parse_front_matter_value(value.strip())

        return front_matter, end_line + 1

    def _parse_sections(self, lines: list[str], start_line: int) -> list[MarkdownSection]:
        """Build the heading tree.

        Returns:
            Root-level sections; nested ones hang off ``children``.
        """
        headings: list[tuple[int, int, str]] = []
        for i in range(start_line, len(lines)):
            match = HEADING_RE.match(lines[i])
            if match:
                headings.append((i, len(match.group(1)), match.group(2)))

        roots: list[MarkdownSection] = []
        stack: list[MarkdownSection] = []

        for hi, (index, level, raw_name) in enumerate(headings):
            # Ends before the next heading at the same or a higher level
            end_line = len(lines) - 1
            for next_index, next_level, _ in headings[hi + 1 :]:
                if next_level <= level:
                    end_line = next_index - 1
                    break

            section = MarkdownSection(
                name=self.sanitizer.sanitize_section(raw_name),
                level=level,
                start_line=index,
                end_line=end_line,
                content="\n".join(lines[index : end_line + 1]),
            )

            while stack and stack[-1].level >= level:
                stack.pop()
            if stack:
                stack[-1].children.append(section)
            else:
                roots.append(section)
            stack.append(section)

        log.debug("sections_parsed", sections=len(roots), headings=len(headings))
        return roots

    def _parse_checkboxes(self, lines: list[str], start_line: int) -> list[MarkdownCheckbox]:
        """Collect checkbox items, tagging each with the last heading seen."""
        checkboxes: list[MarkdownCheckbox] = []
        current_section = ""

        for i in range(start_line, len(lines)):
            line = lines[i]

            heading = HEADING_RE.match(line)
            if heading:
                current_section = self.sanitizer.sanitize_section(heading.group(2))
                continue

            match = CHECKBOX_RE.match(line)
            if not match:
                continue

            mark = match.group(2)
            checkboxes.append(
                MarkdownCheckbox(
                    checked=mark.lower() == "x",
                    in_progress=mark == "~",
                    text=self.sanitizer.sanitize_title(match.group(3)),
                    line_number=i,
                    indent_level=len(match.group(1)) // 2,
                    section=current_section or None,
                )
            )

        log.debug("checkboxes_parsed", checkboxes=len(checkboxes))
        return checkboxes

    def extract_metadata(self, text: str) -> TaskMetadata:
        """Pull due date, priority and tags out of checkbox text."""
        metadata = TaskMetadata()

        due = DUE_DATE_RE.search(text)
        if due:
            metadata.due_date = due.group(1)

        priority = PRIORITY_RE.search(text)
        if priority:
            metadata.priority = PRIORITY_MAP.get(priority.group(1).lower())

        tags = TAG_RE.findall(text)
        if tags:
            metadata.tags = tags

        return metadata

    def clean_title(self, text: str) -> str:
        """Strip metadata tokens and collapse whitespace."""
        cleaned = DUE_DATE_RE.sub("", text, count=1)
        cleaned = PRIORITY_RE.sub("", cleaned, count=1)
        cleaned = TAG_RE.sub("", cleaned)
        cleaned = DATE_ANNOTATION_RE.sub("", cleaned)
        cleaned = _WHITESPACE_RE.sub(" ", cleaned).strip()
        return _ESCAPED_RE.sub(r"\1", cleaned)

    def _checkbox_to_task(self, checkbox: MarkdownCheckbox) -> ParsedTask:
        return ParsedTask(
            title=self.clean_title(checkbox.text),
            checked=checkbox.checked,
            in_progress=checkbox.in_progress,
            line_number=checkbox.line_number,
            section=checkbox.section or "",
            indent_level=checkbox.indent_level,
            raw_text=checkbox.text,
            metadata=self.extract_metadata(checkbox.text),
        )

    def extract_tasks(self, result: MarkdownParseResult) -> list[ParsedTask]:
        """Convert every checkbox in a parse result to a ParsedTask."""
        return [self._checkbox_to_task(cb) for cb in result.checkboxes]

    def extract_tasks_by_section(
        self, result: MarkdownParseResult, section_name: str
    ) -> list[ParsedTask]:
        """Convert only the checkboxes under the named heading."""
        return [
            self._checkbox_to_task(cb)
            for cb in result.checkboxes
            if cb.section == section_name
        ]

    def validate(self, content: str) -> ValidationResult:
        """Lint content for hard limits and structural problems.

        Size and task-count overruns make the content invalid. An unclosed
        front matter block and skipped heading levels are warnings only.

        Args:
            content: Markdown text.

        Returns:
            ValidationResult with errors and warnings.
        """
        if not content:
            return ValidationResult(valid=False, errors=["Content is empty"])
        if not isinstance(content, str):
            return ValidationResult(valid=False, errors=["Content must be a string"])

        errors: list[str] = []
        warnings: list[str] = []
        lines = _split_lines(content)

        max_bytes = self.max_file_size_mb * 1024 * 1024
        if len(content.encode("utf-8")) > max_bytes:
            errors.append(f"File size exceeds {self.max_file_size_mb}MB limit")

        checkbox_count = sum(1 for line in lines if CHECKBOX_RE.match(line))
        if checkbox_count > self.max_tasks:
            errors.append(
                f"Task count ({checkbox_count}) exceeds limit ({self.max_tasks})"
            )

        if lines[0].strip() == FRONT_MATTER_DELIMITER and not any(
            line.strip() == FRONT_MATTER_DELIMITER for line in lines[1:]
        ):
            warnings.append("Front matter delimiter not closed")

        previous_level: int | None = None
        for line in lines:
            match = HEADING_RE.match(line)
            if not match:
                continue
            level = len(match.group(1))
            if previous_level is not None and level > previous_level + 1:
                warnings.append(
                    f"Heading level skip detected: {previous_level} to {level}"
                )
            previous_level = level

        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)
