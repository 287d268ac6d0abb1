"""Tests for agentpm.lib.invariants module."""

from datetime import datetime, timezone

from agentpm.lib.invariants import CHECKS, ERROR, WARNING, Finding, check_epic, errors
from agentpm.lib.model import CurrentState, Epic, Event, Outcome, Phase, Status, Task, Test

T1 = datetime(2025, 8, 16, 9, 0, 0, tzinfo=timezone.utc)
T2 = datetime(2025, 8, 16, 10, 0, 0, tzinfo=timezone.utc)


def _epic(**kwargs) -> Epic:
    kwargs.setdefault("created_at", T1)
    return Epic(id="e1", current_state=CurrentState(), **kwargs)


def _codes(findings, severity=None):
    return [f.code for f in findings if severity is None or f.severity == severity]


class TestFinding:
    """Tests for the Finding record."""

    def test_to_dict(self):
        """Findings serialise with severity, check, code, entity and message."""
        finding = Finding(ERROR, "references", "orphan_test", "Test x1 is orphaned", "test", "x1")
        assert finding.is_error
        assert finding.to_dict() == {
            "severity": "error",
            "check": "references",
            "code": "orphan_test",
            "entity_kind": "test",
            "entity_id": "x1",
            "message": "Test x1 is orphaned",
        }

    def test_errors_filters_warnings(self):
        findings = [Finding(WARNING, "statuses", "a", "w"), Finding(ERROR, "statuses", "b", "e")]
        assert [f.code for f in errors(findings)] == ["b"]


class TestCheckEpic:
    """Tests for check_epic()."""

    def test_clean_epic(self):
        """A consistent epic yields no findings at all."""
        epic = _epic(
            status=Status.WIP, started_at=T1,
            phases=[Phase(id="p1", status=Status.WIP, started_at=T1)],
            tasks=[Task(id="t1", phase_id="p1")],
            tests=[Test(id="x1", task_id="t1")],
            events=[Event(id="evt_0001", type="epic_started", timestamp=T1)],
        )
        assert check_epic(epic) == []

    def test_check_names(self):
        """Checks run and report in a fixed order."""
        assert CHECKS == ("identifiers", "references", "hierarchy", "statuses", "timestamps", "results", "events")

    def test_duplicate_ids(self):
        """Two phases with one id is an error."""
        epic = _epic(phases=[Phase(id="p1"), Phase(id="p1")])
        assert _codes(check_epic(epic), ERROR) == ["duplicate_id"]

    def test_missing_id(self):
        epic = _epic(phases=[Phase(id="")])
        assert "missing_id" in _codes(check_epic(epic), ERROR)

    def test_task_with_unknown_phase(self):
        """A task pointing at a phase that does not exist is an error."""
        epic = _epic(tasks=[Task(id="t1", phase_id="nope")])
        assert _codes(check_epic(epic), ERROR) == ["missing_phase"]

    def test_orphan_test(self):
        """Tests must belong to a known task."""
        epic = _epic(phases=[Phase(id="p1")], tests=[Test(id="x1", task_id="ghost")])
        assert _codes(check_epic(epic), ERROR) == ["orphan_test"]

    def test_dangling_event_reference_is_warning(self):
        """Events may outlive the entities they mention."""
        epic = _epic(events=[Event(id="evt_0001", type="note", timestamp=T1, phase_id="gone")])
        findings = check_epic(epic)
        assert _codes(findings, WARNING) == ["dangling_event_ref"]
        assert errors(findings) == []

    def test_test_phase_disagrees_with_task(self):
        """A test's own phase_id must match its task's phase."""
        epic = _epic(
            phases=[Phase(id="p1"), Phase(id="p2")],
            tasks=[Task(id="t1", phase_id="p1")],
            tests=[Test(id="x1", task_id="t1", phase_id="p2")],
        )
        assert _codes(check_epic(epic), ERROR) == ["phase_mismatch"]

    def test_pending_with_timestamp(self):
        """Pending entities carry no lifecycle timestamps."""
        epic = _epic(phases=[Phase(id="p1", started_at=T1)])
        assert _codes(check_epic(epic), ERROR) == ["unexpected_timestamp"]

    def test_wip_with_completed_at(self):
        """A wip phase cannot already be completed."""
        epic = _epic(phases=[Phase(id="p1", status=Status.WIP, started_at=T1, completed_at=T2)])
        assert _codes(check_epic(epic), ERROR) == ["unexpected_timestamp"]

    def test_failing_wip_test_may_have_failed_at(self):
        """failed_at is not terminal; a re-opened test keeps it."""
        epic = _epic(
            phases=[Phase(id="p1", status=Status.WIP, started_at=T1)],
            tasks=[Task(id="t1", phase_id="p1", status=Status.WIP, started_at=T1)],
            tests=[Test(id="x1", task_id="t1", status=Status.WIP, result=Outcome.FAILING,
                        started_at=T1, failed_at=T2)],
        )
        assert check_epic(epic) == []

    def test_missing_started_at_is_warning(self):
        epic = _epic(phases=[Phase(id="p1", status=Status.WIP)])
        findings = check_epic(epic)
        assert _codes(findings, WARNING) == ["missing_timestamp"]
        assert errors(findings) == []

    def test_missing_created_at_is_warning(self):
        """The epic's creation time is expected but not required."""
        epic = Epic(id="e1")
        assert _codes(check_epic(epic), WARNING) == ["missing_created_at"]

    def test_completed_before_started(self):
        """Completion cannot precede start."""
        epic = _epic(phases=[Phase(id="p1", status=Status.DONE, started_at=T2, completed_at=T1)])
        assert _codes(check_epic(epic), ERROR) == ["timestamp_order"]

    def test_done_test_cannot_be_failing(self):
        """A done test is always passing."""
        epic = _epic(
            phases=[Phase(id="p1", status=Status.WIP, started_at=T1)],
            tasks=[Task(id="t1", phase_id="p1", status=Status.WIP, started_at=T1)],
            tests=[Test(id="x1", task_id="t1", status=Status.DONE, result=Outcome.FAILING,
                        started_at=T1, passed_at=T2)],
        )
        assert _codes(check_epic(epic), ERROR) == ["failing_done_test"]

    def test_events_out_of_order(self):
        """The event log must be chronological."""
        epic = _epic(events=[
            Event(id="evt_0001", type="note", timestamp=T2),
            Event(id="evt_0002", type="note", timestamp=T1),
        ])
        assert _codes(check_epic(epic), ERROR) == ["event_order"]

    def test_equal_event_timestamps_allowed(self):
        """Ties in the event log are fine."""
        epic = _epic(events=[
            Event(id="evt_0001", type="note", timestamp=T1),
            Event(id="evt_0002", type="note", timestamp=T1),
        ])
        assert check_epic(epic) == []

    def test_event_without_id_is_allowed(self):
        """Events need no id; older documents omit it."""
        epic = _epic(events=[Event(id="", type="epic_started", timestamp=T1)])
        assert check_epic(epic) == []

    def test_duplicate_event_ids_are_warning(self):
        """Ids built from type and unix second can repeat; that is tolerated."""
        epic = _epic(events=[
            Event(id="implementation_1755338400", type="implementation", timestamp=T1),
            Event(id="implementation_1755338400", type="implementation", timestamp=T1),
        ])
        findings = check_epic(epic)
        assert _codes(findings, WARNING) == ["duplicate_event_id"]
        assert errors(findings) == []

    def test_done_without_completed_at_is_error(self):
        """A done entity with a recorded start but no completion breaks the timestamp rules."""
        epic = _epic(phases=[Phase(id="p1", status=Status.DONE, started_at=T1)])
        findings = check_epic(epic)
        assert _codes(findings, ERROR) == ["missing_timestamp"]
        assert "is done but has no completed_at" in findings[0].message

    def test_status_only_done_record_is_warning(self):
        """A done entity with no timestamps at all (older documents) is only reported."""
        epic = _epic(
            phases=[Phase(id="p1", status=Status.DONE)],
            tasks=[Task(id="t1", phase_id="p1", status=Status.DONE)],
            tests=[Test(id="x1", task_id="t1", status=Status.DONE, result=Outcome.PASSING)],
        )
        findings = check_epic(epic)
        assert _codes(findings, WARNING) == ["missing_timestamp"] * 3
        assert errors(findings) == []

    def test_done_test_without_passed_at_is_error(self):
        """A started, done test must record when it passed."""
        epic = _epic(
            phases=[Phase(id="p1", status=Status.WIP, started_at=T1)],
            tasks=[Task(id="t1", phase_id="p1", status=Status.WIP, started_at=T1)],
            tests=[Test(id="x1", task_id="t1", status=Status.DONE, result=Outcome.PASSING, started_at=T1)],
        )
        assert _codes(check_epic(epic), ERROR) == ["missing_timestamp"]
