"""
Epic document codec.

Maps the on-disk XML document to the in-memory model and back. Reading is
tolerant: legacy status names are normalized, unknown root children are kept
verbatim, and problems are reported as Findings instead of exceptions. Writing
always produces the canonical form (canonical status names, fixed element
order, four-space indentation).
"""

import logging
import xml.etree.ElementTree as ET
from pathlib import Path

from . import invariants
from .clock import format_timestamp, parse_timestamp
from .errors import StorageError, ValidationError
from .fileio import atomic_write, read_bytes
from .invariants import ERROR, WARNING, Finding
from .model import (
    ALLOWED_STATUSES,
    CurrentState,
    Epic,
    Event,
    Kind,
    Outcome,
    Phase,
    Status,
    Task,
    Test,
    parse_outcome,
    parse_status,
)

logger = logging.getLogger(__name__)

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'
INDENT = "    "

# Free-text root children, in write order
EPIC_TEXT_CHILDREN = ("assignee", "description", "workflow", "requirements", "dependencies", "metadata", "outline")
KNOWN_ROOT_CHILDREN = set(EPIC_TEXT_CHILDREN) | {"current_state", "phases", "tasks", "tests", "events"}


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------

class _Reader:
    """Collects findings while converting elements to entities."""

    def __init__(self):
        self.findings: list[Finding] = []

    def timestamp(self, value: str | None, kind: str, entity_id: str, name: str):
        if value is None or not value.strip():
            return None
        try:
            return parse_timestamp(value)
        except ValueError:
            self.findings.append(Finding(
                WARNING, "timestamps", "invalid_timestamp",
                f"{kind.capitalize()} {entity_id} has unparseable {name} '{value}' (ignored)",
                kind, entity_id,
            ))
            return None

    def child_timestamp(self, elem: ET.Element, tag: str, kind: str, entity_id: str):
        child = elem.find(tag)
        return self.timestamp(child.text if child is not None else None, kind, entity_id, tag)

    def status(self, raw: str | None, kind: Kind, entity_id: str) -> Status:
        status = parse_status(raw)
        if status is None or status not in ALLOWED_STATUSES[kind]:
            self.findings.append(Finding(
                ERROR, "statuses", "invalid_status",
                f"{kind.value.capitalize()} {entity_id} has invalid status '{raw}'",
                kind.value, entity_id,
            ))
            return Status.PENDING
        return status

    def epic(self, root: ET.Element) -> Epic:
        epic_id = root.get("id", "")
        epic = Epic(
            id=epic_id,
            name=root.get("name", ""),
            status=self.status(root.get("status", "pending"), Kind.EPIC, epic_id),
            created_at=self.timestamp(root.get("created_at"), "epic", epic_id, "created_at"),
            started_at=self.timestamp(root.get("started", root.get("started_at")), "epic", epic_id, "started"),
            completed_at=self.timestamp(root.get("completed_at"), "epic", epic_id, "completed_at"),
            paused_at=self.timestamp(root.get("paused_at"), "epic", epic_id, "paused_at"),
            cancelled_at=self.timestamp(root.get("cancelled_at"), "epic", epic_id, "cancelled_at"),
        )
        if not epic_id:
            self.findings.append(Finding(ERROR, "identifiers", "missing_id", "Epic has no id", "epic"))

        for tag in EPIC_TEXT_CHILDREN:
            setattr(epic, tag, child_inner_xml(root, tag))

        state = root.find("current_state")
        if state is not None:
            epic.current_state = CurrentState(
                active_phase=child_text(state, "active_phase"),
                active_task=child_text(state, "active_task"),
                next_action=child_inner_xml(state, "next_action"),
            )

        epic.phases = [self.phase(e) for e in _collection(root, "phases", "phase")]
        epic.tasks = [self.task(e) for e in _collection(root, "tasks", "task")]
        epic.tests = [self.test(e) for e in _collection(root, "tests", "test")]
        epic.events = [self.event(e) for e in _collection(root, "events", "event")]

        for child in root:
            if child.tag not in KNOWN_ROOT_CHILDREN:
                child.tail = None
                epic.extras.append(ET.tostring(child, encoding="unicode"))
        return epic

    def phase(self, elem: ET.Element) -> Phase:
        pid = elem.get("id", "")
        return Phase(
            id=pid,
            name=elem.get("name", ""),
            status=self.status(elem.get("status", "pending"), Kind.PHASE, pid),
            description=child_inner_xml(elem, "description"),
            started_at=self.child_timestamp(elem, "started_at", "phase", pid),
            completed_at=self.child_timestamp(elem, "completed_at", "phase", pid),
            cancelled_at=self.child_timestamp(elem, "cancelled_at", "phase", pid),
        )

    def task(self, elem: ET.Element) -> Task:
        tid = elem.get("id", "")
        return Task(
            id=tid,
            phase_id=elem.get("phase_id", ""),
            name=elem.get("name", ""),
            status=self.status(elem.get("status", "pending"), Kind.TASK, tid),
            assignee=elem.get("assignee", ""),
            description=child_inner_xml(elem, "description"),
            acceptance_criteria=child_inner_xml(elem, "acceptance_criteria"),
            started_at=self.child_timestamp(elem, "started_at", "task", tid),
            completed_at=self.child_timestamp(elem, "completed_at", "task", tid),
            cancelled_at=self.child_timestamp(elem, "cancelled_at", "task", tid),
        )

    def test(self, elem: ET.Element) -> Test:
        xid = elem.get("id", "")
        test = Test(
            id=xid,
            task_id=elem.get("task_id", ""),
            phase_id=elem.get("phase_id", ""),
            name=elem.get("name", ""),
            description=child_inner_xml(elem, "description"),
            given=child_inner_xml(elem, "given"),
            when=child_inner_xml(elem, "when"),
            then=child_inner_xml(elem, "then"),
            started_at=self.child_timestamp(elem, "started_at", "test", xid),
            passed_at=self.child_timestamp(elem, "passed_at", "test", xid),
            failed_at=self.child_timestamp(elem, "failed_at", "test", xid),
            cancelled_at=self.child_timestamp(elem, "cancelled_at", "test", xid),
            failure_note=child_inner_xml(elem, "failure_note"),
            cancellation_reason=child_inner_xml(elem, "cancellation_reason"),
        )
        if elem.find("description") is None and elem.text and elem.text.strip():
            test.description = elem.text.strip()

        status = parse_status(elem.get("test_status"))
        result = parse_outcome(elem.get("result"))
        if status not in ALLOWED_STATUSES[Kind.TEST]:
            status = None
        if status is None:
            # Older documents carry a single status that may be a result
            legacy = (elem.get("status") or "").strip().lower()
            if legacy == Outcome.PASSING.value:
                status, result = Status.DONE, result or Outcome.PASSING
            elif legacy == Outcome.FAILING.value:
                status, result = Status.WIP, result or Outcome.FAILING
            else:
                status = self.status(elem.get("status", "pending"), Kind.TEST, xid)
        test.status = status

        if result is None:
            if status == Status.DONE:
                result = Outcome.PASSING
            elif status == Status.WIP and test.failed_at is not None:
                result = Outcome.FAILING
        test.result = result
        return test

    def event(self, elem: ET.Element) -> Event:
        eid = elem.get("id", "")
        message = child_text(elem, "data") or child_text(elem, "message") or (elem.text or "").strip()
        return Event(
            id=eid,
            type=elem.get("type", ""),
            timestamp=self.timestamp(elem.get("timestamp"), "event", eid, "timestamp"),
            agent=elem.get("agent", ""),
            message=message,
            phase_id=elem.get("phase_id", ""),
            task_id=elem.get("task_id", ""),
            test_id=elem.get("test_id", ""),
            requested_timestamp=self.timestamp(elem.get("requested_timestamp"), "event", eid, "requested_timestamp"),
        )


def _collection(root: ET.Element, wrapper: str, tag: str) -> list[ET.Element]:
    container = root.find(wrapper)
    return list(container.findall(tag)) if container is not None else []


def child_text(elem: ET.Element, tag: str) -> str:
    child = elem.find(tag)
    if child is None or child.text is None:
        return ""
    return child.text.strip()


def inner_xml(elem: ET.Element) -> str:
    """Element content as markup, so formatted descriptions survive a rewrite."""
    if len(elem) == 0:
        return (elem.text or "").strip()
    parts = [elem.text or ""]
    parts.extend(ET.tostring(child, encoding="unicode") for child in elem)
    return "".join(parts).strip()


def child_inner_xml(elem: ET.Element, tag: str) -> str:
    child = elem.find(tag)
    return inner_xml(child) if child is not None else ""


def set_inner_xml(elem: ET.Element, content: str) -> None:
    """Inverse of inner_xml; content that is not well-formed is kept as text."""
    if "<" not in content:
        elem.text = content
        return
    try:
        wrapper = ET.fromstring(f"<wrapper>{content}</wrapper>")
    except ET.ParseError:
        elem.text = content
        return
    elem.text = wrapper.text
    elem.extend(list(wrapper))


def parse_epic(data: bytes, source: str = "") -> tuple[Epic, list[Finding]]:
    """Parse document bytes into an Epic plus every finding about it.

    Raises:
        StorageError: If the bytes are not well-formed XML rooted at <epic>
    """
    where = f" {source}" if source else ""
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise StorageError(f"Cannot parse epic document{where}: {e}") from e
    if root.tag != "epic":
        raise StorageError(f"Not an epic document{where}: root element is <{root.tag}>")

    reader = _Reader()
    epic = reader.epic(root)
    findings = reader.findings + invariants.check_epic(epic)
    logger.debug(f"[CODEC] parsed epic {epic.id}: {len(epic.phases)} phases, {len(epic.tasks)} tasks, "
                 f"{len(epic.tests)} tests, {len(epic.events)} events, {len(findings)} findings")
    return epic, findings


def read_epic(path: Path) -> tuple[Epic, list[Finding]]:
    """Tolerant load: returns the epic and all findings without judging them."""
    return parse_epic(read_bytes(path, "epic file"), str(path))


def load_epic(path: Path) -> Epic:
    """Strict load used by every command except `validate`.

    Raises:
        NotFoundError: If the document is missing
        StorageError: If it cannot be read or parsed
        ValidationError: If any invariant is broken
    """
    epic, findings = read_epic(path)
    errs = invariants.errors(findings)
    if errs:
        raise ValidationError(
            f"Epic document {path} failed validation with {len(errs)} error(s): {errs[0].message}",
            suggestion="Run 'agentpm validate' for the full list",
            findings=errs,
        )
    return epic


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------

def _set_attr(elem: ET.Element, name: str, value) -> None:
    if value:
        elem.set(name, value)


def _set_ts_attr(elem: ET.Element, name: str, value) -> None:
    if value is not None:
        elem.set(name, format_timestamp(value))


def _add_text(parent: ET.Element, tag: str, content: str) -> None:
    if content:
        set_inner_xml(ET.SubElement(parent, tag), content)


def _add_ts(parent: ET.Element, tag: str, value) -> None:
    if value is not None:
        ET.SubElement(parent, tag).text = format_timestamp(value)


def _phase_element(phase: Phase) -> ET.Element:
    elem = ET.Element("phase", {"id": phase.id})
    _set_attr(elem, "name", phase.name)
    elem.set("status", phase.status.value)
    _add_text(elem, "description", phase.description)
    _add_ts(elem, "started_at", phase.started_at)
    _add_ts(elem, "completed_at", phase.completed_at)
    _add_ts(elem, "cancelled_at", phase.cancelled_at)
    return elem


def _task_element(task: Task) -> ET.Element:
    elem = ET.Element("task", {"id": task.id, "phase_id": task.phase_id})
    _set_attr(elem, "name", task.name)
    elem.set("status", task.status.value)
    _set_attr(elem, "assignee", task.assignee)
    _add_text(elem, "description", task.description)
    _add_text(elem, "acceptance_criteria", task.acceptance_criteria)
    _add_ts(elem, "started_at", task.started_at)
    _add_ts(elem, "completed_at", task.completed_at)
    _add_ts(elem, "cancelled_at", task.cancelled_at)
    return elem


def _test_element(test: Test) -> ET.Element:
    elem = ET.Element("test", {"id": test.id, "task_id": test.task_id})
    _set_attr(elem, "phase_id", test.phase_id)
    _set_attr(elem, "name", test.name)
    # Coarse status kept for older readers, always derived from the lifecycle
    elem.set("status", test.status.value)
    elem.set("test_status", test.status.value)
    if test.result is not None:
        elem.set("result", test.result.value)
    _add_text(elem, "description", test.description)
    _add_text(elem, "given", test.given)
    _add_text(elem, "when", test.when)
    _add_text(elem, "then", test.then)
    _add_ts(elem, "started_at", test.started_at)
    _add_ts(elem, "passed_at", test.passed_at)
    _add_ts(elem, "failed_at", test.failed_at)
    _add_ts(elem, "cancelled_at", test.cancelled_at)
    _add_text(elem, "failure_note", test.failure_note)
    _add_text(elem, "cancellation_reason", test.cancellation_reason)
    return elem


def _event_element(event: Event) -> ET.Element:
    elem = ET.Element("event")
    _set_attr(elem, "id", event.id)
    elem.set("type", event.type)
    _set_ts_attr(elem, "timestamp", event.timestamp)
    _set_attr(elem, "agent", event.agent)
    _set_attr(elem, "phase_id", event.phase_id)
    _set_attr(elem, "task_id", event.task_id)
    _set_attr(elem, "test_id", event.test_id)
    _set_ts_attr(elem, "requested_timestamp", event.requested_timestamp)
    if event.message:
        elem.text = event.message
    return elem


def epic_to_element(epic: Epic) -> ET.Element:
    root = ET.Element("epic", {"id": epic.id})
    _set_attr(root, "name", epic.name)
    root.set("status", epic.status.value)
    _set_ts_attr(root, "created_at", epic.created_at)
    _set_ts_attr(root, "started", epic.started_at)
    _set_ts_attr(root, "paused_at", epic.paused_at)
    _set_ts_attr(root, "completed_at", epic.completed_at)
    _set_ts_attr(root, "cancelled_at", epic.cancelled_at)

    for tag in EPIC_TEXT_CHILDREN:
        _add_text(root, tag, getattr(epic, tag))

    state = epic.current_state
    if state.active_phase or state.active_task or state.next_action:
        state_elem = ET.SubElement(root, "current_state")
        _add_text(state_elem, "active_phase", state.active_phase)
        _add_text(state_elem, "active_task", state.active_task)
        _add_text(state_elem, "next_action", state.next_action)

    for raw in epic.extras:
        root.append(ET.fromstring(raw))

    for wrapper, items, build in (
        ("phases", epic.phases, _phase_element),
        ("tasks", epic.tasks, _task_element),
        ("tests", epic.tests, _test_element),
        ("events", epic.events, _event_element),
    ):
        container = ET.SubElement(root, wrapper)
        for item in items:
            container.append(build(item))
    return root


def serialize_epic(epic: Epic) -> bytes:
    """Canonical document bytes for an epic."""
    root = epic_to_element(epic)
    ET.indent(root, space=INDENT)
    return (XML_DECLARATION + ET.tostring(root, encoding="unicode") + "\n").encode("utf-8")


def save_epic(epic: Epic, path: Path) -> None:
    """Re-check invariants, then write the document atomically.

    Raises:
        ValidationError: If the in-memory epic breaks an invariant (nothing is written)
        StorageError: If the write fails
    """
    errs = invariants.errors(invariants.check_epic(epic))
    if errs:
        raise ValidationError(
            f"Refusing to save epic {epic.id}: {errs[0].message}",
            findings=errs,
        )
    atomic_write(path, serialize_epic(epic))
    logger.debug(f"[CODEC] saved epic {epic.id} to {path}")
