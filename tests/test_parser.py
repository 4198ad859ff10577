"""Tests for the Markdown TODO parser."""

from structlog.testing import capture_logs

from todosync.markdown.parser import MarkdownParser, escape_metadata, parse_front_matter_value


class TestFrontMatter:
    """Test front matter parsing."""

    def test_typed_scalars(self):
        """Test values are typed as bool, int, float or string."""
        content = """---
title: "Weekly"
draft: false
pinned: true
count: 42
ratio: 0.5
owner: 'alice'
plain: some text
---
# Tasks
- [ ] One
"""
        result = MarkdownParser().parse(content)
        assert result.front_matter == {
            "title": "Weekly",
            "draft": False,
            "pinned": True,
            "count": 42,
            "ratio": 0.5,
            "owner": "alice",
            "plain": "some text",
        }
        assert isinstance(result.front_matter["count"], int)
        assert isinstance(result.front_matter["ratio"], float)

    def test_body_starts_after_front_matter(self):
        """Test front matter lines are not parsed as content."""
        content = "---\nkey: value\n---\n- [ ] Real task\n"
        result = MarkdownParser().parse(content)
        assert len(result.checkboxes) == 1
        assert result.checkboxes[0].line_number == 3

    def test_unclosed_front_matter(self):
        """Test an unclosed opener yields no front matter and a warning."""
        content = "---\nkey: value\n- [ ] Task\n"
        with capture_logs() as logs:
            result = MarkdownParser().parse(content)
        assert result.front_matter is None
        assert any(entry["event"] == "front_matter_not_closed" for entry in logs)
        assert len(result.checkboxes) == 1

    def test_no_front_matter(self):
        """Test content without front matter."""
        result = MarkdownParser().parse("# Title\n- [ ] Task\n")
        assert result.front_matter is None

    def test_value_inference(self):
        """Test the scalar inference helper."""
        assert parse_front_matter_value("true") is True
        assert parse_front_matter_value("false") is False
        assert parse_front_matter_value("7") == 7
        assert parse_front_matter_value("3.14") == 3.14
        assert parse_front_matter_value('"quoted"') == "quoted"
        assert parse_front_matter_value("1.2.3") == "1.2.3"


class TestSections:
    """Test heading tree construction."""

    def test_nested_children(self):
        """Test sibling and child headings are nested by level."""
        result = MarkdownParser().parse("# A\n## B\n### C\n## D")
        assert len(result.sections) == 1

        a = result.sections[0]
        assert a.name == "A"
        assert [child.name for child in a.children] == ["B", "D"]
        assert [child.name for child in a.children[0].children] == ["C"]
        assert a.children[1].children == []

    def test_section_line_ranges(self):
        """Test a section ends before the next equal-or-higher heading."""
        content = "# A\ntext\n## B\nmore\n# E\nend"
        result = MarkdownParser().parse(content)

        a, e = result.sections
        assert (a.start_line, a.end_line) == (0, 3)
        assert (a.children[0].start_line, a.children[0].end_line) == (2, 3)
        assert (e.start_line, e.end_line) == (4, 5)
        assert e.content == "# E\nend"

    def test_heading_without_text_ignored(self):
        """Test a bare hash run is not a heading."""
        result = MarkdownParser().parse("#\n####### Seven\n# Real")
        assert [s.name for s in result.sections] == ["Real"]


class TestCheckboxes:
    """Test checkbox detection."""

    def test_task_count_matches_checkbox_lines(self):
        """Test every well-formed checkbox line becomes a task."""
        content = "\n".join(
            [
                "# Tasks",
                "- [ ] one",
                "- [x] two",
                "- [X] three",
                "- [~] four",
                "  - [ ] five",
                "- not a checkbox",
                "- [] malformed",
                "* [ ] other bullet",
            ]
        )
        parser = MarkdownParser()
        tasks = parser.extract_tasks(parser.parse(content))
        assert len(tasks) == 5

    def test_checked_states(self):
        """Test checked, unchecked and in-progress marks."""
        parser = MarkdownParser()
        result = parser.parse("- [ ] a\n- [x] b\n- [X] c\n- [~] d")
        states = [(cb.checked, cb.in_progress) for cb in result.checkboxes]
        assert states == [(False, False), (True, False), (True, False), (False, True)]

    def test_indent_level(self):
        """Test indentation is two spaces per level."""
        result = MarkdownParser().parse("- [ ] top\n    - [ ] nested")
        assert result.checkboxes[0].indent_level == 0
        assert result.checkboxes[1].indent_level == 2

    def test_section_tracking(self):
        """Test each checkbox records the nearest heading above it."""
        result = MarkdownParser().parse("- [ ] orphan\n# Work\n- [ ] a\n## Sub\n- [ ] b")
        assert [cb.section for cb in result.checkboxes] == [None, "Work", "Sub"]

    def test_crlf_line_endings(self):
        """Test Windows line endings are handled."""
        result = MarkdownParser().parse("# A\r\n- [ ] Task\r\n")
        assert result.sections[0].name == "A"
        assert result.checkboxes[0].text == "Task"

    def test_html_stripped_from_text(self):
        """Test checkbox text is sanitized."""
        result = MarkdownParser().parse("- [ ] <script>alert(1)</script>Safe <b>bold</b>")
        assert result.checkboxes[0].text == "Safe bold"


class TestMetadata:
    """Test inline metadata extraction and title cleaning."""

    def test_order_independent_metadata(self):
        """Test metadata is found wherever it appears and stripped from the title."""
        parser = MarkdownParser()
        result = parser.parse("- [ ] priority: high #tag due: 2025-01-01 Buy milk")
        task = parser.extract_tasks(result)[0]

        assert task.title == "Buy milk"
        assert task.metadata.priority == "high"
        assert task.metadata.tags == ["tag"]
        assert task.metadata.due_date == "2025-01-01"

    def test_japanese_tokens(self):
        """Test Japanese keywords and tags."""
        parser = MarkdownParser()
        metadata = parser.extract_metadata("資料作成 期限: 2025-03-01 優先度: 高 #仕事 #カタカナ")
        assert metadata.due_date == "2025-03-01"
        assert metadata.priority == "high"
        assert metadata.tags == ["仕事", "カタカナ"]

    def test_priority_mapping(self):
        """Test priority values map to low/medium/high."""
        parser = MarkdownParser()
        assert parser.extract_metadata("priority: LOW").priority == "low"
        assert parser.extract_metadata("優先度: 中").priority == "medium"
        assert parser.extract_metadata("deadline: 2024-02-29").due_date == "2024-02-29"

    def test_no_metadata(self):
        """Test plain text has empty metadata."""
        metadata = MarkdownParser().extract_metadata("Just a task")
        assert metadata.due_date is None
        assert metadata.priority is None
        assert metadata.tags is None

    def test_whitespace_collapsed(self):
        """Test residual whitespace runs collapse to one space."""
        assert MarkdownParser().clean_title("Call   #home  mom   due: 2025-05-05") == "Call mom"

    def test_generated_date_annotation_stripped(self):
        """Test the created/completed suffix written by the generator is removed."""
        parser = MarkdownParser()
        assert parser.clean_title("Ship it (created: 2025-01-02)") == "Ship it"
        assert (
            parser.clean_title("Ship it #ops (created: 2025-01-02, completed: 2025-01-05)")
            == "Ship it"
        )

    def test_escaped_tokens_are_literal(self):
        """Test backslash-escaped tokens stay in the title instead of becoming metadata."""
        parser = MarkdownParser()
        text = r"Fix issue \#42 before due\: 2025-01-01 #bug"
        metadata = parser.extract_metadata(text)

        assert metadata.tags == ["bug"]
        assert metadata.due_date is None
        assert parser.clean_title(text) == "Fix issue #42 before due: 2025-01-01"

    def test_escape_metadata(self):
        """Test escaped text parses back to the original title with no metadata."""
        text = "Fix issue #42 priority: high (created: 2025-01-02)"
        escaped = escape_metadata(text)
        assert escaped == r"Fix issue \#42 priority\: high (created\: 2025-01-02)"

        parser = MarkdownParser()
        metadata = parser.extract_metadata(escaped)
        assert metadata.tags is None
        assert metadata.priority is None
        assert parser.clean_title(escaped) == text

    def test_tasks_by_section(self):
        """Test filtering tasks by heading."""
        parser = MarkdownParser()
        result = parser.parse("# Home\n- [ ] a\n# Work\n- [ ] b\n- [ ] c")
        assert [t.title for t in parser.extract_tasks_by_section(result, "Work")] == ["b", "c"]
        assert parser.extract_tasks_by_section(result, "Missing") == []


class TestParse:
    """Test parse entry point."""

    def test_end_to_end(self):
        """Test the documented Japanese example."""
        content = (
            "## 🔥 最優先\n"
            "- [ ] Fix bug due: 2025-12-31 priority: high #urgent\n"
            "- [x] Done task\n"
        )
        parser = MarkdownParser()
        tasks = parser.extract_tasks(parser.parse(content))

        assert len(tasks) == 2
        fix, done = tasks
        assert fix.title == "Fix bug"
        assert fix.checked is False
        assert fix.section == "🔥 最優先"
        assert fix.metadata.due_date == "2025-12-31"
        assert fix.metadata.priority == "high"
        assert fix.metadata.tags == ["urgent"]

        assert done.title == "Done task"
        assert done.checked is True

    def test_empty_content(self):
        """Test empty input yields an empty result."""
        result = MarkdownParser().parse("")
        assert result.sections == []
        assert result.checkboxes == []
        assert result.line_count == 0

    def test_non_string_content(self):
        """Test non-string input yields an empty result instead of raising."""
        result = MarkdownParser().parse(None)  # type: ignore[arg-type]
        assert result.checkboxes == []

    def test_counts(self):
        """Test line and character counts."""
        content = "# A\n- [ ] b\n"
        result = MarkdownParser().parse(content)
        assert result.line_count == 3
        assert result.char_count == len(content)
        assert result.raw_content == content


class TestValidate:
    """Test structural validation."""

    def test_valid_content(self):
        """Test well-formed content passes."""
        result = MarkdownParser().validate("# A\n## B\n- [ ] task")
        assert result.valid
        assert result.errors == []
        assert result.warnings == []

    def test_empty_content(self):
        """Test empty content is invalid."""
        result = MarkdownParser().validate("")
        assert not result.valid
        assert result.errors == ["Content is empty"]

    def test_size_limit(self):
        """Test content over the size limit is invalid."""
        parser = MarkdownParser(max_file_size_mb=1)
        result = parser.validate("x" * (1024 * 1024 + 1))
        assert not result.valid
        assert result.errors == ["File size exceeds 1MB limit"]

    def test_size_limit_counts_bytes(self):
        """Test multi-byte characters count by encoded size."""
        parser = MarkdownParser(max_file_size_mb=1)
        # 3 bytes each in UTF-8
        result = parser.validate("あ" * 400_000)
        assert not result.valid

    def test_task_limit(self):
        """Test checkbox count over the limit is invalid."""
        parser = MarkdownParser(max_tasks=2)
        result = parser.validate("- [ ] a\n- [ ] b\n- [ ] c")
        assert not result.valid
        assert result.errors == ["Task count (3) exceeds limit (2)"]

    def test_unclosed_front_matter_warning(self):
        """Test an unclosed front matter block is only a warning."""
        result = MarkdownParser().validate("---\nkey: value\n# A")
        assert result.valid
        assert result.warnings == ["Front matter delimiter not closed"]

    def test_heading_skip_warning(self):
        """Test a heading jumping more than one level is a warning."""
        result = MarkdownParser().validate("# A\n### C\n## D\n#### F")
        assert result.valid
        assert result.warnings == [
            "Heading level skip detected: 1 to 3",
            "Heading level skip detected: 2 to 4",
        ]
