"""
Aggregation views over an in-memory epic.

Pure functions: progress counts and percentage, the "current" pointers,
pending and failing lists, recent events, and the handoff bundle.
"""

from dataclasses import asdict, dataclass
from fractions import Fraction

from agentpm.lib.clock import format_timestamp
from agentpm.lib.constants import DEFAULT_HANDOFF_EVENTS
from agentpm.lib.model import Epic, Event, Status


@dataclass
class Progress:
    done_phases: int
    total_phases: int
    done_tasks: int
    total_tasks: int
    passing_tests: int
    failing_tests: int
    total_tests: int
    percent: int

    @property
    def summary(self) -> str:
        return (f"{self.done_phases}/{self.total_phases} phases, "
                f"{self.done_tasks}/{self.total_tasks} tasks, "
                f"{self.passing_tests}/{self.total_tests} tests")

    def to_dict(self) -> dict:
        return asdict(self)


def completion_percent(ratios: list[tuple[int, int]]) -> int:
    """Mean of the defined ratios as a whole percentage, halves rounded up.

    Ratios with a zero denominator are skipped; with none left the result is 0.
    """
    defined = [Fraction(done, total) for done, total in ratios if total > 0]
    if not defined:
        return 0
    mean = sum(defined, Fraction(0)) / len(defined)
    scaled = mean * 100 + Fraction(1, 2)
    return scaled.numerator // scaled.denominator


def progress(epic: Epic) -> Progress:
    done_phases = sum(1 for p in epic.phases if p.status == Status.DONE)
    done_tasks = sum(1 for t in epic.tasks if t.status == Status.DONE)
    passing = sum(1 for t in epic.tests if t.status == Status.DONE)
    failing = sum(1 for t in epic.tests if t.is_failing)
    percent = completion_percent([
        (done_phases, len(epic.phases)),
        (done_tasks, len(epic.tasks)),
        (passing, len(epic.tests)),
    ])
    return Progress(
        done_phases=done_phases,
        total_phases=len(epic.phases),
        done_tasks=done_tasks,
        total_tasks=len(epic.tasks),
        passing_tests=passing,
        failing_tests=failing,
        total_tests=len(epic.tests),
        percent=percent,
    )


def phase_ref(phase) -> dict:
    return {"id": phase.id, "name": phase.name, "status": phase.status.value}


def task_ref(task) -> dict:
    return {"id": task.id, "phase_id": task.phase_id, "name": task.name, "status": task.status.value}


def testcase_ref(epic: Epic, test) -> dict:
    return {
        "id": test.id,
        "task_id": test.task_id,
        "phase_id": epic.test_phase_id(test),
        "name": test.name,
        "description": test.description,
        "status": test.status.value,
        "result": test.result.value if test.result else None,
    }


def event_ref(event: Event) -> dict:
    return {
        "id": event.id,
        "type": event.type,
        "timestamp": format_timestamp(event.timestamp) if event.timestamp else None,
        "agent": event.agent,
        "phase_id": event.phase_id or None,
        "task_id": event.task_id or None,
        "test_id": event.test_id or None,
        "message": event.message,
    }


def current(epic: Epic) -> dict:
    """First wip phase, first wip task within it, and the recorded next action."""
    phase = next((p for p in epic.phases if p.status == Status.WIP), None)
    task = None
    if phase is not None:
        task = next((t for t in epic.tasks_in(phase.id) if t.status == Status.WIP), None)
    return {
        "epic_id": epic.id,
        "epic_status": epic.status.value,
        "active_phase": phase_ref(phase) if phase else None,
        "active_task": task_ref(task) if task else None,
        "next_action": epic.current_state.next_action or None,
        "failing_tests": sum(1 for t in epic.tests if t.is_failing),
    }


def failing(epic: Epic) -> list[dict]:
    return [
        {
            "id": t.id,
            "phase_id": epic.test_phase_id(t),
            "task_id": t.task_id,
            "name": t.name,
            "description": t.description,
            "given": t.given,
            "when": t.when,
            "then": t.then,
            "failure_note": t.failure_note,
            "failed_at": format_timestamp(t.failed_at) if t.failed_at else None,
        }
        for t in epic.tests
        if t.is_failing
    ]


def pending(epic: Epic) -> dict:
    return {
        "pending_phases": [phase_ref(p) for p in epic.phases if p.status == Status.PENDING],
        "pending_tasks": [task_ref(t) for t in epic.tasks if t.status == Status.PENDING],
    }


def recent_events(epic: Epic, limit: int, event_type: str | None = None) -> list[Event]:
    """Most recent first; document order breaks timestamp ties."""
    events = [e for e in epic.events if event_type is None or e.type == event_type]
    return list(reversed(events))[:limit]


def blockers(epic: Epic) -> list[Event]:
    return [e for e in epic.events if e.type == "blocker"]


def handoff(epic: Epic, limit: int = DEFAULT_HANDOFF_EVENTS) -> dict:
    """Snapshot for a successor agent."""
    return {
        "epic": {
            "id": epic.id,
            "name": epic.name,
            "status": epic.status.value,
            "assignee": epic.assignee or None,
            "started": format_timestamp(epic.started_at) if epic.started_at else None,
        },
        "current": current(epic),
        "progress": progress(epic).to_dict(),
        "recent_events": [event_ref(e) for e in recent_events(epic, limit)],
        "blockers": [event_ref(e) for e in blockers(epic)],
    }
