"""Tests for HTML sanitizing."""

from todosync.markdown.sanitizer import MarkdownSanitizer


class TestSanitizeTitle:
    """Test title sanitizing."""

    def test_plain_text_unchanged(self):
        """Test text without markup passes through."""
        assert MarkdownSanitizer().sanitize_title("Buy milk #errand") == "Buy milk #errand"

    def test_script_removed_with_content(self):
        """Test script bodies are dropped entirely."""
        title = '<script>alert("xss")</script>Pay bills'
        assert MarkdownSanitizer().sanitize_title(title) == "Pay bills"

    def test_inline_tags_keep_text(self):
        """Test harmless tags are unwrapped."""
        assert MarkdownSanitizer().sanitize_title("<b>Bold</b> and <a href='x'>link</a>") == (
            "Bold and link"
        )

    def test_event_handler_attributes_removed(self):
        """Test attributes disappear with their tag."""
        result = MarkdownSanitizer().sanitize_title('<img src=x onerror="alert(1)">Photo')
        assert result == "Photo"
        assert "onerror" not in result

    def test_entities_decoded(self):
        """Test entities become plain text."""
        assert MarkdownSanitizer().sanitize_title("Tom &amp; Jerry") == "Tom & Jerry"

    def test_whitespace_collapsed(self):
        """Test whitespace runs collapse and ends are trimmed."""
        assert MarkdownSanitizer().sanitize_title("  a \t  b  ") == "a b"

    def test_empty_and_non_string(self):
        """Test empty and non-string input yield an empty string."""
        sanitizer = MarkdownSanitizer()
        assert sanitizer.sanitize_title("") == ""
        assert sanitizer.sanitize_title(None) == ""  # type: ignore[arg-type]


class TestSanitizeSection:
    """Test section name sanitizing."""

    def test_emoji_preserved(self):
        """Test emoji and inner spacing survive."""
        assert MarkdownSanitizer().sanitize_section(" 🔥  最優先 ") == "🔥  最優先"

    def test_tags_removed(self):
        """Test markup is stripped from headings."""
        assert MarkdownSanitizer().sanitize_section("<em>Work</em><style>h1{}</style>") == "Work"
