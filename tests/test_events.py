"""Tests for agentpm.workflow.events module.

Requested timestamps earlier than the log (or than the entity's own history)
are clamped upward; the event keeps the requested value alongside.
"""

import logging
from datetime import datetime, timezone

import pytest

from agentpm.lib.errors import UsageError
from agentpm.lib.model import Epic, Event, Kind, Phase, Status, Task, Test
from agentpm.workflow.events import (
    FileChange,
    append_event,
    context_for,
    effective_timestamp,
    event_type,
    lifecycle_message,
    parse_file_changes,
)

T1 = datetime(2025, 8, 16, 9, 0, 0, tzinfo=timezone.utc)
T2 = datetime(2025, 8, 16, 10, 0, 0, tzinfo=timezone.utc)
T3 = datetime(2025, 8, 16, 11, 0, 0, tzinfo=timezone.utc)


class TestParseFileChanges:
    """Tests for parse_file_changes()."""

    def test_empty(self):
        """No --files value means no changes."""
        assert parse_file_changes(None) == []
        assert parse_file_changes("") == []

    def test_actions(self):
        """Actions are case-insensitive and default to modified."""
        changes = parse_file_changes("src/a.py:added, src/b.py:DELETED,README.md")
        assert changes == [
            FileChange("src/a.py", "added"),
            FileChange("src/b.py", "deleted"),
            FileChange("README.md", "modified"),
        ]

    def test_last_colon_splits(self):
        """Only the last colon separates path from action."""
        assert parse_file_changes("C:/x.py:renamed") == [FileChange("C:/x.py", "renamed")]

    def test_unknown_action(self):
        with pytest.raises(UsageError, match="Invalid file action 'moved'"):
            parse_file_changes("a.py:moved")

    def test_missing_path(self):
        """An action with no path is refused."""
        with pytest.raises(UsageError, match="missing path"):
            parse_file_changes(":added")


class TestMessages:
    """Tests for event naming helpers."""

    def test_event_type(self):
        assert event_type(Kind.PHASE, "completed") == "phase_completed"
        assert event_type(Kind.TEST, "failed") == "test_failed"

    def test_lifecycle_message(self):
        """Messages name the entity, its display name and any note."""
        assert lifecycle_message(Phase(id="p1", name="Setup"), "started") == "Phase p1 (Setup) started"
        assert lifecycle_message(Test(id="x1"), "failed", "timeout") == "Test x1 failed: timeout"

    def test_context_for(self):
        """Events carry the ids of every ancestor of the entity."""
        epic = Epic(id="e1", phases=[Phase(id="p1")], tasks=[Task(id="t1", phase_id="p1")])
        test = Test(id="x1", task_id="t1")
        assert context_for(epic, epic) == {}
        assert context_for(epic, epic.tasks[0]) == {"phase_id": "p1", "task_id": "t1"}
        assert context_for(epic, test) == {"phase_id": "p1", "task_id": "t1", "test_id": "x1"}


class TestEffectiveTimestamp:
    """Tests for effective_timestamp()."""

    def test_later_time_kept(self):
        """A time after the last event is used as is."""
        epic = Epic(id="e1", events=[Event(id="evt_0001", type="note", timestamp=T1)])
        assert effective_timestamp(epic, T2) == T2

    def test_earlier_than_last_event_is_clamped(self, caplog):
        """Going back in time is clamped to the last event and logged."""
        caplog.set_level(logging.WARNING, logger="agentpm.workflow.events")
        epic = Epic(id="e1", events=[Event(id="evt_0001", type="note", timestamp=T2)])
        assert effective_timestamp(epic, T1) == T2
        assert "[EVENT] requested timestamp 2025-08-16T09:00:00Z precedes" in caplog.text

    def test_entity_history_also_floors(self):
        """A task started at T3 cannot complete at T2 even with an older log."""
        epic = Epic(id="e1", events=[Event(id="evt_0001", type="note", timestamp=T1)])
        task = Task(id="t1", status=Status.WIP, started_at=T3)
        assert effective_timestamp(epic, T2, task) == T3

    def test_empty_log(self):
        """With no events and no history the requested time stands."""
        assert effective_timestamp(Epic(id="e1"), T1) == T1


class TestAppendEvent:
    """Tests for append_event()."""

    def test_ids_increase(self):
        """New ids continue from the highest existing one."""
        epic = Epic(id="e1", events=[Event(id="evt_0009", type="note", timestamp=T1)])
        event = append_event(epic, type="note", agent="bot", timestamp=T2, message="hi")
        assert event.id == "evt_0010"
        assert epic.events[-1] is event

    def test_foreign_and_missing_ids_ignored(self):
        """Ids in other formats never collide with the next evt_NNNN id."""
        epic = Epic(id="e1", events=[
            Event(id="implementation_1755338400", type="implementation", timestamp=T1),
            Event(id="implementation_1755338400", type="implementation", timestamp=T1),
            Event(id="", type="note", timestamp=T1),
        ])
        event = append_event(epic, type="note", agent="bot", timestamp=T2, message="hi")
        assert event.id == "evt_0001"

    def test_requested_kept_only_when_clamped(self):
        """requested_timestamp is recorded only when it differs from the stored time."""
        epic = Epic(id="e1")
        same = append_event(epic, type="note", agent="bot", timestamp=T2, requested=T2, message="a")
        clamped = append_event(epic, type="note", agent="bot", timestamp=T2, requested=T1, message="b")
        assert same.requested_timestamp is None
        assert clamped.requested_timestamp == T1
