"""
Document invariants.

Pure checks over an in-memory epic. Each check yields Findings; a finding
with severity "error" makes the document unusable for commands, "warning"
findings are reported by `validate` but tolerated everywhere else.
"""

from dataclasses import dataclass

from .model import Epic, Kind, Status, entity_timestamps

ERROR = "error"
WARNING = "warning"

# Check families, in the order they run
CHECKS = ("identifiers", "references", "hierarchy", "statuses", "timestamps", "results", "events")


@dataclass
class Finding:
    severity: str
    check: str
    code: str
    message: str
    entity_kind: str = ""
    entity_id: str = ""

    @property
    def is_error(self) -> bool:
        return self.severity == ERROR

    def to_dict(self) -> dict:
        return {
            "severity": self.severity,
            "check": self.check,
            "code": self.code,
            "entity_kind": self.entity_kind,
            "entity_id": self.entity_id,
            "message": self.message,
        }


def errors(findings: list[Finding]) -> list[Finding]:
    return [f for f in findings if f.is_error]


def _check_identifiers(epic: Epic) -> list[Finding]:
    findings = []
    for kind, items in (("phase", epic.phases), ("task", epic.tasks), ("test", epic.tests)):
        seen = set()
        for item in items:
            if not item.id:
                findings.append(Finding(ERROR, "identifiers", "missing_id", f"A {kind} has no id", kind))
            elif item.id in seen:
                findings.append(Finding(ERROR, "identifiers", "duplicate_id", f"Duplicate {kind} id '{item.id}'", kind, item.id))
            seen.add(item.id)
    return findings


def _check_references(epic: Epic) -> list[Finding]:
    findings = []
    phase_ids = {p.id for p in epic.phases}
    task_ids = {t.id for t in epic.tasks}
    for task in epic.tasks:
        if task.phase_id not in phase_ids:
            findings.append(Finding(
                ERROR, "references", "missing_phase",
                f"Task {task.id} references unknown phase '{task.phase_id}'", "task", task.id,
            ))
    for test in epic.tests:
        if test.task_id not in task_ids:
            findings.append(Finding(
                ERROR, "references", "orphan_test",
                f"Test {test.id} references unknown task '{test.task_id}'", "test", test.id,
            ))
    for event in epic.events:
        for attr, ids, kind in (("phase_id", phase_ids, "phase"), ("task_id", task_ids, "task")):
            ref = getattr(event, attr)
            if ref and ref not in ids:
                findings.append(Finding(
                    WARNING, "references", "dangling_event_ref",
                    f"Event {event.id} references unknown {kind} '{ref}'", "event", event.id,
                ))
    return findings


def _check_hierarchy(epic: Epic) -> list[Finding]:
    """Stored test phase ids must agree with the owning task."""
    findings = []
    for test in epic.tests:
        task = epic.task(test.task_id)
        if test.phase_id and task and task.phase_id != test.phase_id:
            findings.append(Finding(
                ERROR, "hierarchy", "phase_mismatch",
                f"Test {test.id} claims phase '{test.phase_id}' but task {task.id} is in phase '{task.phase_id}'",
                "test", test.id,
            ))
    return findings


def _all_entities(epic: Epic):
    yield epic
    yield from epic.phases
    yield from epic.tasks
    yield from epic.tests


def _terminal_slots(entity) -> tuple[str, ...]:
    if entity.kind == Kind.TEST:
        return ("passed_at", "cancelled_at")
    return ("completed_at", "cancelled_at")


def _completion_slot(entity) -> str:
    return "passed_at" if entity.kind == Kind.TEST else "completed_at"


def _check_statuses(epic: Epic) -> list[Finding]:
    """Status and timestamp slots must agree."""
    findings = []
    for entity in _all_entities(epic):
        kind = entity.kind.value
        stamps = entity_timestamps(entity)
        present = {name for name, value in stamps.items() if value is not None and name != "created_at"}

        if entity.status == Status.PENDING and present:
            findings.append(Finding(
                ERROR, "statuses", "unexpected_timestamp",
                f"{kind.capitalize()} {entity.id} is pending but has {', '.join(sorted(present))}",
                kind, entity.id,
            ))
        elif entity.status in (Status.WIP, Status.PAUSED):
            if entity.started_at is None:
                findings.append(Finding(
                    WARNING, "statuses", "missing_timestamp",
                    f"{kind.capitalize()} {entity.id} is {entity.status.value} but has no started_at",
                    kind, entity.id,
                ))
            terminal = [name for name in _terminal_slots(entity) if stamps.get(name) is not None]
            if terminal:
                findings.append(Finding(
                    ERROR, "statuses", "unexpected_timestamp",
                    f"{kind.capitalize()} {entity.id} is {entity.status.value} but has {', '.join(terminal)}",
                    kind, entity.id,
                ))
        elif entity.status == Status.DONE:
            slot = _completion_slot(entity)
            if stamps.get(slot) is None:
                # Status-only records (older documents) carry no history at all
                severity = ERROR if present else WARNING
                findings.append(Finding(
                    severity, "statuses", "missing_timestamp",
                    f"{kind.capitalize()} {entity.id} is done but has no {slot}",
                    kind, entity.id,
                ))

    if epic.created_at is None:
        findings.append(Finding(WARNING, "statuses", "missing_created_at", f"Epic {epic.id} has no created_at", "epic", epic.id))
    return findings


def _check_timestamps(epic: Epic) -> list[Finding]:
    findings = []
    for entity in _all_entities(epic):
        started = entity.started_at
        if started is None:
            continue
        stamps = entity_timestamps(entity)
        for name in ("completed_at", "passed_at", "failed_at"):
            value = stamps.get(name)
            if value is not None and value < started:
                findings.append(Finding(
                    ERROR, "timestamps", "timestamp_order",
                    f"{entity.kind.value.capitalize()} {entity.id} has {name} before started_at",
                    entity.kind.value, entity.id,
                ))
    return findings


def _check_results(epic: Epic) -> list[Finding]:
    return [
        Finding(ERROR, "results", "failing_done_test", f"Test {t.id} is done but its result is failing", "test", t.id)
        for t in epic.tests
        if t.status == Status.DONE and t.is_failing
    ]


def _check_events(epic: Epic) -> list[Finding]:
    findings = []
    seen = set()
    for event in epic.events:
        if event.id in seen:
            findings.append(Finding(
                WARNING, "events", "duplicate_event_id",
                f"Duplicate event id '{event.id}'", "event", event.id,
            ))
        elif event.id:
            seen.add(event.id)

    previous = None
    for event in epic.events:
        if event.timestamp is None:
            continue
        if previous is not None and event.timestamp < previous:
            findings.append(Finding(
                ERROR, "events", "event_order",
                f"Event {event.id} is earlier than the event before it", "event", event.id,
            ))
        previous = event.timestamp if previous is None else max(previous, event.timestamp)
    return findings


_CHECK_FUNCS = {
    "identifiers": _check_identifiers,
    "references": _check_references,
    "hierarchy": _check_hierarchy,
    "statuses": _check_statuses,
    "timestamps": _check_timestamps,
    "results": _check_results,
    "events": _check_events,
}


def check_epic(epic: Epic) -> list[Finding]:
    """Run every invariant check and return all findings."""
    findings = []
    for name in CHECKS:
        findings.extend(_CHECK_FUNCS[name](epic))
    return findings
