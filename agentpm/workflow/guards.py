"""
Guard engine: cross-entity preconditions.

Guards run after the status machine has accepted a transition and before
anything is mutated. Each guard is a pure function of the in-memory epic
that returns None to allow, or a GuardDiagnostic describing the refusal.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable

from agentpm.lib.model import Epic, Kind, Status
from agentpm.workflow.aggregate import Progress, phase_ref, progress, task_ref

logger = logging.getLogger(__name__)

COMPLETION = "completion_validation"
PRECONDITION = "validation"


@dataclass
class GuardDiagnostic:
    """Why a guard refused, with the offending children enumerated."""
    rejection: str
    entity_kind: str
    entity_id: str
    message: str
    suggestion: str = ""
    children: dict[str, list[dict]] = field(default_factory=dict)
    context: dict = field(default_factory=dict)
    progress: Progress | None = None

    def to_fields(self) -> dict:
        fields = {"entity_kind": self.entity_kind, "entity_id": self.entity_id}
        fields.update(self.context)
        fields.update(self.children)
        if self.progress is not None:
            fields["percent"] = self.progress.percent
            fields["progress"] = self.progress.to_dict()
        return fields


def _test_item(epic: Epic, test) -> dict:
    return {
        "id": test.id,
        "name": test.name,
        "description": test.description,
        "task_id": test.task_id,
        "phase_id": epic.test_phase_id(test),
        "status": test.status.value,
        "result": test.result.value if test.result else None,
    }


def _test_settled(test) -> bool:
    return test.status == Status.CANCELLED or (test.status == Status.DONE and not test.is_failing)


def _plural(n: int, word: str) -> str:
    return f"{n} {word}" if n == 1 else f"{n} {word}s"


def _parent_diagnostic(entity, parent, required: tuple[Status, ...]) -> GuardDiagnostic:
    kind = entity.kind.value
    parent_kind = parent.kind.value
    wanted = " or ".join(s.value for s in required)
    return GuardDiagnostic(
        rejection=PRECONDITION,
        entity_kind=kind,
        entity_id=entity.id,
        message=f"Cannot start {kind} {entity.id}: {parent_kind} {parent.id} is {parent.status.value} (must be {wanted})",
        suggestion=f"Start {parent_kind} {parent.id} first" if parent.status == Status.PENDING else "",
        context={
            "parent_kind": parent_kind,
            "parent_id": parent.id,
            "parent_status": parent.status.value,
            "required_status": wanted,
        },
    )


def _require_parent(entity, parent, required: tuple[Status, ...]) -> GuardDiagnostic | None:
    if parent is None or parent.status in required:
        return None
    return _parent_diagnostic(entity, parent, required)


def _active_conflict(entity, active, scope: str) -> GuardDiagnostic:
    kind = entity.kind.value
    return GuardDiagnostic(
        rejection=PRECONDITION,
        entity_kind=kind,
        entity_id=entity.id,
        message=f"Cannot start {kind} {entity.id}: {kind} {active.id} is already wip{scope}",
        suggestion=f"Complete or cancel {kind} {active.id} first",
        context={f"active_{kind}": active.id},
    )


def guard_start_phase(epic: Epic, phase, note: str = "") -> GuardDiagnostic | None:
    diagnostic = _require_parent(phase, epic, (Status.WIP,))
    if diagnostic is not None:
        return diagnostic
    active = next((p for p in epic.phases if p.status == Status.WIP and p.id != phase.id), None)
    if active is not None:
        return _active_conflict(phase, active, "")
    return None


def guard_start_task(epic: Epic, task, note: str = "") -> GuardDiagnostic | None:
    diagnostic = _require_parent(task, epic.phase(task.phase_id), (Status.WIP,))
    if diagnostic is not None:
        return diagnostic
    active = active_task(epic, task.phase_id)
    if active is not None and active.id != task.id:
        return _active_conflict(task, active, f" in phase {task.phase_id}")
    return None


def active_task(epic: Epic, phase_id: str):
    """The wip task of a phase, if any."""
    return next((t for t in epic.tasks_in(phase_id) if t.status == Status.WIP), None)


def guard_start_test(epic: Epic, test, note: str = "") -> GuardDiagnostic | None:
    active = (Status.WIP, Status.DONE)
    task = epic.task(test.task_id)
    diagnostic = _require_parent(test, task, active)
    if diagnostic is None:
        diagnostic = _require_parent(test, epic.phase(epic.test_phase_id(test)), active)
    return diagnostic


def guard_fail_test(epic: Epic, test, note: str = "") -> GuardDiagnostic | None:
    if note and note.strip():
        return None
    return GuardDiagnostic(
        rejection=PRECONDITION,
        entity_kind="test",
        entity_id=test.id,
        message=f"Cannot fail test {test.id}: a failure note is required",
        suggestion=f"agentpm fail-test {test.id} \"<what went wrong>\"",
    )


def guard_done_task(epic: Epic, task, note: str = "") -> GuardDiagnostic | None:
    unfinished = [t for t in epic.tests_for_task(task.id) if not _test_settled(t)]
    if not unfinished:
        return None
    stats = progress(epic)
    failing = [t for t in unfinished if t.is_failing]
    return GuardDiagnostic(
        rejection=COMPLETION,
        entity_kind="task",
        entity_id=task.id,
        message=(f"Task {task.id} cannot be completed: {_plural(len(unfinished), 'unfinished test')}, "
                 f"{_plural(len(failing), 'failing test')}; {stats.percent}% complete ({stats.summary})"),
        suggestion="Pass or cancel every test of the task first",
        children={
            "unfinished_tests": [_test_item(epic, t) for t in unfinished],
            "failing_tests": [_test_item(epic, t) for t in failing],
        },
        progress=stats,
    )


def guard_done_phase(epic: Epic, phase, note: str = "") -> GuardDiagnostic | None:
    open_tasks = [t for t in epic.tasks_in(phase.id) if t.status not in (Status.DONE, Status.CANCELLED)]
    unfinished = [t for t in epic.tests_in(phase.id) if not _test_settled(t)]
    if not open_tasks and not unfinished:
        return None
    stats = progress(epic)
    failing = [t for t in unfinished if t.is_failing]
    return GuardDiagnostic(
        rejection=COMPLETION,
        entity_kind="phase",
        entity_id=phase.id,
        message=(f"Phase {phase.id} cannot be completed: {_plural(len(open_tasks), 'pending task')}, "
                 f"{_plural(len(unfinished), 'unfinished test')}; {stats.percent}% complete ({stats.summary})"),
        suggestion="Finish or cancel the remaining tasks and tests of the phase",
        children={
            "pending_tasks": [task_ref(t) for t in open_tasks],
            "unfinished_tests": [_test_item(epic, t) for t in unfinished],
            "failing_tests": [_test_item(epic, t) for t in failing],
        },
        progress=stats,
    )


def guard_done_epic(epic: Epic, entity=None, note: str = "") -> GuardDiagnostic | None:
    open_phases = [p for p in epic.phases if p.status in (Status.PENDING, Status.WIP)]
    failing = [t for t in epic.tests if t.is_failing]
    if not open_phases and not failing:
        return None
    stats = progress(epic)
    return GuardDiagnostic(
        rejection=COMPLETION,
        entity_kind="epic",
        entity_id=epic.id,
        message=(f"Epic cannot be completed: {_plural(len(open_phases), 'pending phase')}, "
                 f"{_plural(len(failing), 'failing test')}; {stats.percent}% complete ({stats.summary})"),
        suggestion="Complete all phases and fix failing tests before completing the epic",
        children={
            "pending_phases": [phase_ref(p) for p in open_phases],
            "failing_tests": [_test_item(epic, t) for t in failing],
        },
        progress=stats,
    )


def guard_log(epic: Epic, entity=None, note: str = "") -> GuardDiagnostic | None:
    if epic.status != Status.CANCELLED:
        return None
    return GuardDiagnostic(
        rejection=PRECONDITION,
        entity_kind="epic",
        entity_id=epic.id,
        message=f"Cannot log to epic {epic.id}: it is cancelled",
        context={"epic_status": epic.status.value},
    )


# (kind, verb) -> guard; combinations without an entry have no cross-entity precondition
GUARDS: dict[tuple[Kind, str], Callable] = {
    (Kind.PHASE, "start"): guard_start_phase,
    (Kind.PHASE, "done"): guard_done_phase,
    (Kind.TASK, "start"): guard_start_task,
    (Kind.TASK, "done"): guard_done_task,
    (Kind.TEST, "start"): guard_start_test,
    (Kind.TEST, "fail"): guard_fail_test,
    (Kind.EPIC, "done"): guard_done_epic,
}


def check(epic: Epic, kind: Kind, verb: str, entity, note: str = "") -> GuardDiagnostic | None:
    """Evaluate the guard for (kind, verb) against the epic."""
    guard = GUARDS.get((kind, verb))
    if guard is None:
        return None
    diagnostic = guard(epic, entity, note)
    if diagnostic is not None:
        logger.info(f"[GUARD] {verb} {kind.value} {diagnostic.entity_id} refused: {diagnostic.message}")
    return diagnostic
