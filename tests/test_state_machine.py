"""Tests for agentpm.workflow.state_machine module."""

from datetime import datetime, timezone

import pytest

from agentpm.lib.errors import InvalidTransition
from agentpm.lib.model import Epic, Kind, Outcome, Phase, Status, Task, Test
from agentpm.workflow.state_machine import VERBS, already_flag, apply, can_transition, verb_allowed

NOW = datetime(2025, 8, 16, 12, 0, 0, tzinfo=timezone.utc)


class TestCanTransition:
    """Tests for can_transition()."""

    @pytest.mark.parametrize("kind", [Kind.EPIC, Kind.PHASE, Kind.TASK])
    def test_work_item_edges(self, kind):
        """Shared lifecycle for epic, phase and task."""
        assert can_transition(kind, Status.PENDING, Status.WIP)
        assert can_transition(kind, Status.WIP, Status.DONE)
        assert can_transition(kind, Status.PENDING, Status.CANCELLED)
        assert can_transition(kind, Status.WIP, Status.CANCELLED)
        assert not can_transition(kind, Status.PENDING, Status.DONE)
        assert not can_transition(kind, Status.DONE, Status.WIP)
        assert not can_transition(kind, Status.DONE, Status.CANCELLED)
        assert not can_transition(kind, Status.CANCELLED, Status.WIP)

    def test_pause_only_for_epic(self):
        """Only the epic has a paused state."""
        assert can_transition(Kind.EPIC, Status.WIP, Status.PAUSED)
        assert can_transition(Kind.EPIC, Status.PAUSED, Status.WIP)
        assert not can_transition(Kind.EPIC, Status.PENDING, Status.PAUSED)
        assert not can_transition(Kind.PHASE, Status.WIP, Status.PAUSED)
        assert not can_transition(Kind.TASK, Status.WIP, Status.PAUSED)

    def test_test_edges(self):
        """Tests can re-open from done and cannot be cancelled once done."""
        assert can_transition(Kind.TEST, Status.WIP, Status.DONE)
        assert can_transition(Kind.TEST, Status.DONE, Status.WIP)
        assert can_transition(Kind.TEST, Status.WIP, Status.WIP)
        assert not can_transition(Kind.TEST, Status.PENDING, Status.DONE)
        assert not can_transition(Kind.TEST, Status.DONE, Status.CANCELLED)


class TestVerbAllowed:
    """Tests for verb_allowed()."""

    def test_resume_is_not_start(self):
        """paused -> wip is reachable through resume only."""
        assert verb_allowed(Kind.EPIC, VERBS["resume"], Status.PAUSED)
        assert not verb_allowed(Kind.EPIC, VERBS["start"], Status.PAUSED)

    def test_fail_from_wip_and_done(self):
        """fail works on a running or passed test, not a pending one."""
        assert verb_allowed(Kind.TEST, VERBS["fail"], Status.WIP)
        assert verb_allowed(Kind.TEST, VERBS["fail"], Status.DONE)
        assert not verb_allowed(Kind.TEST, VERBS["fail"], Status.PENDING)

    def test_pass_requires_wip(self):
        """pass only fires on a running test."""
        assert verb_allowed(Kind.TEST, VERBS["pass"], Status.WIP)
        assert not verb_allowed(Kind.TEST, VERBS["pass"], Status.PENDING)

    def test_done_is_not_a_test_verb(self):
        """Tests complete through pass, never through done."""
        assert not verb_allowed(Kind.TEST, VERBS["done"], Status.WIP)


class TestAlreadyFlag:
    """Tests for already_flag()."""

    def test_start_on_wip(self):
        """Starting a wip phase is a no-op."""
        assert already_flag(Phase(id="p1", status=Status.WIP), VERBS["start"]) == "is_already_started"

    def test_start_on_done_reports_completed(self):
        """Starting something finished reports it as completed."""
        assert already_flag(Epic(id="e1", status=Status.DONE), VERBS["start"]) == "is_already_completed"

    def test_done_on_done(self):
        """Completing a done task is flagged as already completed."""
        assert already_flag(Task(id="t1", status=Status.DONE), VERBS["done"]) == "is_already_completed"

    def test_pass_on_passed_test(self):
        """A passed test reports is_already_passed rather than completed."""
        test = Test(id="x1", status=Status.DONE, result=Outcome.PASSING)
        assert already_flag(test, VERBS["pass"]) == "is_already_passed"

    def test_pause_and_cancel(self):
        """Paused and cancelled entities flag repeated pause or cancel."""
        assert already_flag(Epic(id="e1", status=Status.PAUSED), VERBS["pause"]) == "is_already_paused"
        assert already_flag(Task(id="t1", status=Status.CANCELLED), VERBS["cancel"]) == "is_already_cancelled"

    def test_fail_is_never_redundant(self):
        """Every failure is recorded, even on an already-failing test."""
        test = Test(id="x1", status=Status.WIP, result=Outcome.FAILING)
        assert already_flag(test, VERBS["fail"]) is None

    def test_no_flag_when_transition_is_real(self):
        """A pending task can really start, so nothing is flagged."""
        assert already_flag(Task(id="t1"), VERBS["start"]) is None


class TestApply:
    """Tests for apply()."""

    def test_apply_returns_trigger(self):
        """apply() fires the named trigger and stamps started_at."""
        task = Task(id="t1")
        assert apply(task, Status.WIP, NOW) == "start"
        assert task.status == Status.WIP
        assert task.started_at == NOW

    def test_apply_unknown_edge_raises(self):
        """Missing edges raise InvalidTransition with both statuses."""
        task = Task(id="t1")
        with pytest.raises(InvalidTransition) as exc:
            apply(task, Status.DONE, NOW)
        assert exc.value.to_fields()["current_status"] == "pending"
        assert exc.value.to_fields()["target_status"] == "done"
        assert task.status == Status.PENDING

    def test_apply_wrong_trigger_raises(self):
        """An explicit trigger that does not fire from here is rejected."""
        epic = Epic(id="e1", status=Status.PAUSED)
        with pytest.raises(InvalidTransition):
            apply(epic, Status.WIP, NOW, trigger="start")
        assert epic.status == Status.PAUSED
