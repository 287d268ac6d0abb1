"""
In-memory entity model for one epic document.

The epic is the aggregate root: phases, tasks, tests and events live only
inside it. Entities are plain dataclasses; the operations that differ per
entity kind are dispatched on `Kind` rather than through subclasses.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from .constants import EVENT_ID_PATTERN, EVENT_ID_PREFIX

logger = logging.getLogger(__name__)


class Kind(Enum):
    """Entity kinds addressable by commands."""

    EPIC = "epic"
    PHASE = "phase"
    TASK = "task"
    TEST = "test"


class Status(Enum):
    """Canonical lifecycle statuses.

    PAUSED only applies to the epic.
    """

    PENDING = "pending"
    WIP = "wip"
    DONE = "done"
    CANCELLED = "cancelled"
    PAUSED = "paused"


class Outcome(Enum):
    """Result axis of a test, orthogonal to its lifecycle status."""

    PASSING = "passing"
    FAILING = "failing"


# Legacy names accepted on read, never written
LEGACY_STATUSES = {
    "planning": Status.PENDING,
    "active": Status.WIP,
    "completed": Status.DONE,
    "on_hold": Status.PAUSED,
}

ALLOWED_STATUSES = {
    Kind.EPIC: {Status.PENDING, Status.WIP, Status.DONE, Status.CANCELLED, Status.PAUSED},
    Kind.PHASE: {Status.PENDING, Status.WIP, Status.DONE, Status.CANCELLED},
    Kind.TASK: {Status.PENDING, Status.WIP, Status.DONE, Status.CANCELLED},
    Kind.TEST: {Status.PENDING, Status.WIP, Status.DONE, Status.CANCELLED},
}


def parse_status(value: str | None) -> Status | None:
    """Parse a status string, normalizing legacy names.

    Returns None if the status is unknown.
    """
    if value is None:
        return None
    text = value.strip().lower()
    for status in Status:
        if status.value == text:
            return status
    legacy = LEGACY_STATUSES.get(text)
    if legacy is not None:
        logger.debug(f"[MODEL] legacy status '{text}' read as '{legacy.value}'")
    return legacy


def parse_outcome(value: str | None) -> Outcome | None:
    if not value:
        return None
    text = value.strip().lower()
    for outcome in Outcome:
        if outcome.value == text:
            return outcome
    return None


@dataclass
class Phase:
    id: str
    name: str = ""
    status: Status = Status.PENDING
    description: str = ""
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    kind = Kind.PHASE


@dataclass
class Task:
    id: str
    phase_id: str = ""
    name: str = ""
    status: Status = Status.PENDING
    assignee: str = ""
    description: str = ""
    acceptance_criteria: str = ""
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    kind = Kind.TASK


@dataclass
class Test:
    """A verification tied to a task.

    `status` is the lifecycle; `result` is the passing/failing axis, only
    meaningful once the test is wip or done.
    """

    __test__ = False  # not a pytest test class

    id: str
    task_id: str = ""
    phase_id: str = ""
    name: str = ""
    status: Status = Status.PENDING
    result: Optional[Outcome] = None
    description: str = ""
    given: str = ""
    when: str = ""
    then: str = ""
    started_at: Optional[datetime] = None
    passed_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    failure_note: str = ""
    cancellation_reason: str = ""

    kind = Kind.TEST

    @property
    def is_failing(self) -> bool:
        return self.result == Outcome.FAILING

    @property
    def completed_at(self) -> Optional[datetime]:
        return self.passed_at


@dataclass
class Event:
    id: str
    type: str
    timestamp: Optional[datetime] = None
    agent: str = ""
    message: str = ""
    phase_id: str = ""
    task_id: str = ""
    test_id: str = ""
    requested_timestamp: Optional[datetime] = None


@dataclass
class CurrentState:
    active_phase: str = ""
    active_task: str = ""
    next_action: str = ""


@dataclass
class Epic:
    """Aggregate root. Collections keep document order."""

    id: str
    name: str = ""
    status: Status = Status.PENDING
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    paused_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    assignee: str = ""
    description: str = ""
    workflow: str = ""
    requirements: str = ""
    dependencies: str = ""
    metadata: str = ""
    outline: str = ""
    current_state: CurrentState = field(default_factory=CurrentState)
    phases: list[Phase] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)
    tests: list[Test] = field(default_factory=list)
    events: list[Event] = field(default_factory=list)
    extras: list[str] = field(default_factory=list)

    kind = Kind.EPIC

    def phase(self, phase_id: str) -> Phase | None:
        return next((p for p in self.phases if p.id == phase_id), None)

    def task(self, task_id: str) -> Task | None:
        return next((t for t in self.tasks if t.id == task_id), None)

    def test(self, test_id: str) -> Test | None:
        return next((t for t in self.tests if t.id == test_id), None)

    def find(self, kind: Kind, entity_id: str | None):
        """Locate an entity by kind and id; the epic itself ignores the id."""
        if kind == Kind.EPIC:
            return self
        lookup = {Kind.PHASE: self.phase, Kind.TASK: self.task, Kind.TEST: self.test}[kind]
        return lookup(entity_id)

    def tasks_in(self, phase_id: str) -> list[Task]:
        return [t for t in self.tasks if t.phase_id == phase_id]

    def tests_for_task(self, task_id: str) -> list[Test]:
        return [t for t in self.tests if t.task_id == task_id]

    def test_phase_id(self, test: Test) -> str:
        """Stored phase_id, else the one derived through the test's task."""
        if test.phase_id:
            return test.phase_id
        task = self.task(test.task_id)
        return task.phase_id if task else ""

    def tests_in(self, phase_id: str) -> list[Test]:
        return [t for t in self.tests if self.test_phase_id(t) == phase_id]

    def last_event_timestamp(self) -> Optional[datetime]:
        stamps = [e.timestamp for e in self.events if e.timestamp is not None]
        return max(stamps) if stamps else None

    def next_event_id(self) -> str:
        """One past the highest `evt_NNNN` id.

        Ids in other formats (or missing) are ignored, so the result never
        collides with an existing event.
        """
        highest = 0
        for event in self.events:
            m = EVENT_ID_PATTERN.match(event.id)
            if m:
                highest = max(highest, int(m.group(1)))
        return f"{EVENT_ID_PREFIX}{highest + 1:04d}"


def entity_timestamps(entity) -> dict[str, Optional[datetime]]:
    """Lifecycle timestamp slots of any entity, keyed by attribute name."""
    if entity.kind == Kind.TEST:
        names = ("started_at", "passed_at", "failed_at", "cancelled_at")
    elif entity.kind == Kind.EPIC:
        names = ("created_at", "started_at", "paused_at", "completed_at", "cancelled_at")
    else:
        names = ("started_at", "completed_at", "cancelled_at")
    return {name: getattr(entity, name) for name in names}
