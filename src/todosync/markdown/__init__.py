"""Markdown TODO dialect: parsing, generation and sanitizing."""

from todosync.markdown.generator import MarkdownGenerator
from todosync.markdown.models import (
    FrontMatterValue,
    MarkdownCheckbox,
    MarkdownParseResult,
    MarkdownSection,
    ParsedTask,
    TaskMetadata,
    ValidationResult,
)
from todosync.markdown.parser import MarkdownParser
from todosync.markdown.sanitizer import MarkdownSanitizer, Sanitizer

__all__ = [
    # Parser
    "MarkdownParser",
    "MarkdownParseResult",
    "MarkdownSection",
    "MarkdownCheckbox",
    "ParsedTask",
    "TaskMetadata",
    "FrontMatterValue",
    "ValidationResult",
    # Generator
    "MarkdownGenerator",
    # Sanitizer
    "MarkdownSanitizer",
    "Sanitizer",
]
