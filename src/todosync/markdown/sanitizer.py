"""HTML stripping for text read from or written to the TODO file."""

import re
from typing import Protocol

from bs4 import BeautifulSoup

# Elements whose text content is dropped along with the tag.
_DROP_CONTENT_TAGS = ("script", "style", "iframe", "object", "embed", "noscript", "template")

_WHITESPACE_RE = re.compile(r"\s+")


class Sanitizer(Protocol):
    """Text cleaning used by the parser and generator."""

    def sanitize_title(self, title: str) -> str: ...

    def sanitize_section(self, section: str) -> str: ...


def _strip_html(text: str) -> str:
    """Remove all tags, keeping inner text of harmless elements."""
    if "<" not in text and "&" not in text:
        return text

    soup = BeautifulSoup(text, "html.parser")
    for element in soup.find_all(_DROP_CONTENT_TAGS):
        element.decompose()
    return soup.get_text()


class MarkdownSanitizer:
    """Strips HTML from task titles and section names.

    Example:
        >>> MarkdownSanitizer().sanitize_title('<script>alert("x")</script>Task')
        'Task'
    """

    def sanitize_title(self, title: str) -> str:
        """Strip tags and collapse whitespace in a task title."""
        if not title or not isinstance(title, str):
            return ""
        return _WHITESPACE_RE.sub(" ", _strip_html(title).strip())

    def sanitize_section(self, section: str) -> str:
        """Strip tags from a heading, keeping emoji and inner spacing."""
        if not section or not isinstance(section, str):
            return ""
        return _strip_html(section).strip()
