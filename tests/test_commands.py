"""Tests for helpers in agentpm.commands."""

import pytest

from agentpm.commands.docs import gather_docs_context, render_markdown
from agentpm.commands.log import clamp_limit, event_symbol
from agentpm.commands.query import normalize_path
from agentpm.commands.show import parse_kind
from agentpm.lib.epicfile import load_epic
from agentpm.lib.errors import UsageError
from agentpm.lib.model import Kind


class TestNormalizePath:
    """Tests for query path normalization."""

    @pytest.mark.parametrize("expression,expected", [
        ("//task", ".//task"),
        ("//test[@result='failing']", ".//test[@result='failing']"),
        ("/epic", "."),
        ("/epic/phases/phase", "./phases/phase"),
        ("phases/phase[@id='p1']", "phases/phase[@id='p1']"),
    ])
    def test_normalize(self, expression, expected):
        """Absolute paths are rewritten relative to the epic root."""
        assert normalize_path(expression) == expected


class TestClampLimit:
    """Tests for clamp_limit()."""

    def test_default(self):
        """No --limit falls back to the default."""
        assert clamp_limit(None, 10) == 10

    def test_maximum(self):
        """Large limits are capped at 100."""
        assert clamp_limit(500, 10) == 100

    def test_below_one(self):
        """Zero or negative limits are refused."""
        with pytest.raises(UsageError):
            clamp_limit(0, 10)


class TestEventSymbol:
    """Tests for event_symbol()."""

    def test_symbols(self):
        """Each event family gets its own marker in the events listing."""
        assert event_symbol("task_started") == "+"
        assert event_symbol("test_failed") == "x"
        assert event_symbol("blocker") == "!"
        assert event_symbol("note") == "."


class TestParseKind:
    def test_known(self):
        assert parse_kind("test") == Kind.TEST

    def test_unknown(self):
        """Kinds outside epic/phase/task/test are usage errors."""
        with pytest.raises(UsageError, match="Unknown entity kind"):
            parse_kind("story")


class TestDocs:
    """Tests for the markdown report."""

    def test_report(self, epic_builder):
        """Report sections reflect the document's progress, tasks, tests and blockers."""
        path = (epic_builder.epic("wip")
                .phase("p1", "done", name="Setup").phase("p2", "wip", name="Build")
                .task("t1", "p1", "done", name="Init").task("t2", "p2", "wip", name="Core")
                .test("x1", "t1", "done", name="init works")
                .event("blocker", "2025-08-16T11:00:00Z", "CI is down")
                .write())
        ctx = gather_docs_context(load_epic(path))
        assert ctx["progress"]["percent"] == 67
        assert [p["done_tasks"] for p in ctx["phases"]] == [1, 0]

        markdown = render_markdown(ctx)
        assert markdown.startswith("# Test Epic\n")
        assert "- **Progress:** 67% complete" in markdown
        assert "| p1 | Setup | done | 1/1 |" in markdown
        assert "- [x] **t1** Init (phase p1)" in markdown
        assert "- [~] **t2** Core (phase p2)" in markdown
        assert "1 passing, 0 failing, 1 total" in markdown
        assert "- 2025-08-16T11:00:00Z: CI is down" in markdown

    def test_empty_sections(self, epic_builder):
        """Empty sections get placeholder text instead of tables."""
        path = epic_builder.epic("pending").write()
        markdown = render_markdown(gather_docs_context(load_epic(path)))
        assert "_No tasks._" in markdown
        assert "_None._" in markdown
        assert "_No activity yet._" in markdown
