"""Tests for the Markdown inbox document editor."""

from datetime import date
from unittest.mock import patch

import pytest

from taskbot.capture.inbox import (
    INSERTION_MARKER,
    DocumentError,
    DocumentErrorKind,
    InboxDocument,
    Placement,
    format_date,
    parse_document,
    render_header,
    render_item,
)
from taskbot.common.schemas import Task

DAY = date(2026, 10, 19)

TEMPLATE = f"""# Planning

{INSERTION_MARKER}

## Later
- [ ] **Someday thing**
"""


@pytest.fixture
def inbox(tmp_path):
    path = tmp_path / "inbox.md"
    path.write_text(TEMPLATE)
    return InboxDocument(path)


class TestGrammar:
    def test_format_date(self):
        assert format_date(DAY) == "Oct 19, 2026"
        assert format_date(date(2026, 3, 5)) == "Mar 5, 2026"

    def test_render_header(self):
        assert render_header("Work", "eng (tasks)", DAY) == "### Work (via eng tasks - Oct 19, 2026)"

    def test_render_item(self):
        assert render_item(Task(title="Fix **bug**", description="now")) == "- [ ] **Fix bug** - now"
        assert render_item(Task(title="Plain")) == "- [ ] **Plain**"

    def test_parse_document(self):
        doc = parse_document(TEMPLATE + "### Work (via Slack - Oct 19, 2026)\n")
        assert doc.has_marker
        assert doc.marker_index == 2
        assert doc.boundaries == [0, 4]
        assert doc.headers[0].category == "Work"
        assert doc.headers[0].date == "Oct 19, 2026"


class TestInsert:
    def test_new_section_after_marker(self, inbox):
        result = inbox.insert(Task(title="Fix login bug", category="Work"), DAY, source="eng")
        assert result.placement == Placement.NEW_SECTION

        lines = inbox.read().splitlines()
        marker = lines.index(INSERTION_MARKER)
        assert lines[marker + 1] == "### Work (via eng - Oct 19, 2026)"
        assert lines[marker + 2] == "- [ ] **Fix login bug**"
        assert lines[marker + 3] == ""
        assert "## Later" in lines

    def test_same_section_reused(self, inbox):
        inbox.insert(Task(title="First", category="Work"), DAY)
        result = inbox.insert(Task(title="Second", category="Work"), DAY)
        assert result.placement == Placement.EXISTING_SECTION

        text = inbox.read()
        assert text.count("### Work (via Slack - Oct 19, 2026)") == 1
        doc = parse_document(text)
        items = doc.section_items(doc.headers[0])
        assert items == ["- [ ] **Second**", "- [ ] **First**"]

    def test_different_category_or_date_gets_new_header(self, inbox):
        inbox.insert(Task(title="A", category="Work"), DAY)
        inbox.insert(Task(title="B", category="Personal"), DAY)
        inbox.insert(Task(title="C", category="Work"), date(2026, 10, 20))

        headers = parse_document(inbox.read()).headers
        assert len(headers) == 3
        assert {(h.category, h.date) for h in headers} == {
            ("Work", "Oct 19, 2026"), ("Personal", "Oct 19, 2026"), ("Work", "Oct 20, 2026"),
        }

    def test_header_past_boundary_is_not_reused(self, tmp_path):
        path = tmp_path / "inbox.md"
        path.write_text(
            f"{INSERTION_MARKER}\n\n## Archive\n### Work (via Slack - Oct 19, 2026)\n- [ ] **Old**\n"
        )
        doc = InboxDocument(path)
        result = doc.insert(Task(title="New", category="Work"), DAY)
        assert result.placement == Placement.NEW_SECTION

        lines = path.read_text().splitlines()
        assert lines[1] == "### Work (via Slack - Oct 19, 2026)"
        assert lines[2] == "- [ ] **New**"
        assert "- [ ] **Old**" in lines

    def test_missing_marker_appends(self, tmp_path):
        path = tmp_path / "inbox.md"
        path.write_text("# Notes\nsomething")
        result = InboxDocument(path).insert(Task(title="Call bank"), DAY)
        assert result.placement == Placement.APPENDED
        assert path.read_text() == (
            "# Notes\nsomething\n\n### General (via Slack - Oct 19, 2026)\n- [ ] **Call bank**\n"
        )

    def test_missing_file_is_created(self, tmp_path):
        path = tmp_path / "nested" / "inbox.md"
        InboxDocument(path).insert(Task(title="First task"), DAY)
        assert path.read_text() == "### General (via Slack - Oct 19, 2026)\n- [ ] **First task**\n"

    def test_source_with_dash_reuses_section(self, inbox):
        first = inbox.insert(Task(title="First", category="Work"), DAY, source="eng - tasks")
        second = inbox.insert(Task(title="Second", category="Work"), DAY, source="eng - tasks")
        assert first.placement == Placement.NEW_SECTION
        assert second.placement == Placement.EXISTING_SECTION

        doc = parse_document(inbox.read())
        assert len(doc.headers) == 1
        assert doc.headers[0].source == "eng - tasks"
        assert doc.headers[0].date == "Oct 19, 2026"
        assert doc.section_items(doc.headers[0]) == ["- [ ] **Second**", "- [ ] **First**"]

    def test_preserves_existing_lines(self, inbox):
        inbox.insert(Task(title="X"), DAY)
        text = inbox.read()
        for line in TEMPLATE.splitlines():
            assert line in text.splitlines()


class TestFailures:
    def test_read_failure(self, tmp_path):
        path = tmp_path / "inbox.md"
        path.mkdir()
        with pytest.raises(DocumentError) as exc:
            InboxDocument(path).insert(Task(title="X"), DAY)
        assert exc.value.kind == DocumentErrorKind.READ_FAILURE
        assert "couldn't read" in exc.value.user_message()

    def test_write_failure_leaves_document(self, inbox):
        before = inbox.read()
        with patch("taskbot.capture.inbox.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(DocumentError) as exc:
                inbox.insert(Task(title="X"), DAY)
        assert exc.value.kind == DocumentErrorKind.WRITE_FAILURE
        assert inbox.read() == before
        assert [p.name for p in inbox.path.parent.iterdir()] == ["inbox.md"]
