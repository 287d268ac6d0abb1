"""
Event log: append-only, chronologically non-decreasing.

Every successful mutation appends exactly one event. A requested timestamp
that would move time backwards is clamped upward; the event then keeps the
requested value in `requested_timestamp`.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from agentpm.lib.clock import format_timestamp
from agentpm.lib.constants import DEFAULT_FILE_ACTION, FILE_ACTIONS
from agentpm.lib.errors import UsageError
from agentpm.lib.model import Epic, Event, Kind, entity_timestamps

logger = logging.getLogger(__name__)


@dataclass
class FileChange:
    path: str
    action: str = DEFAULT_FILE_ACTION

    def __str__(self) -> str:
        return f"{self.path}:{self.action}"


def parse_file_changes(raw: str | None) -> list[FileChange]:
    """Parse `path:action,path:action` as given to `log --files`.

    Raises:
        UsageError: On an empty path or unknown action
    """
    if not raw:
        return []
    changes = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        path, sep, action = item.rpartition(":")
        if not sep:
            path, action = item, DEFAULT_FILE_ACTION
        path, action = path.strip(), action.strip().lower()
        if not path:
            raise UsageError(f"Invalid file change '{item}': missing path")
        if action not in FILE_ACTIONS:
            raise UsageError(
                f"Invalid file action '{action}' in '{item}'",
                suggestion=f"Use one of: {', '.join(FILE_ACTIONS)}",
            )
        changes.append(FileChange(path, action))
    return changes


def event_type(kind: Kind, past: str) -> str:
    """`phase` + `completed` -> `phase_completed`."""
    return f"{kind.value}_{past}"


def lifecycle_message(entity, past: str, note: str = "") -> str:
    label = f"{entity.kind.value.capitalize()} {entity.id}"
    if entity.name:
        label += f" ({entity.name})"
    message = f"{label} {past}"
    if note:
        message += f": {note}"
    return message


def effective_timestamp(epic: Epic, requested: datetime, entity=None) -> datetime:
    """Requested time, raised to the latest event and to the entity's own latest timestamp."""
    floor = epic.last_event_timestamp()
    if entity is not None:
        stamps = [v for v in entity_timestamps(entity).values() if v is not None]
        if stamps and (floor is None or max(stamps) > floor):
            floor = max(stamps)
    if floor is not None and requested < floor:
        logger.warning(f"[EVENT] requested timestamp {format_timestamp(requested)} precedes "
                       f"{format_timestamp(floor)}; clamping")
        return floor
    return requested


def append_event(
    epic: Epic,
    type: str,
    agent: str,
    timestamp: datetime,
    message: str,
    requested: datetime | None = None,
    phase_id: str = "",
    task_id: str = "",
    test_id: str = "",
) -> Event:
    """Append an event at `timestamp` (already clamped by the caller)."""
    event = Event(
        id=epic.next_event_id(),
        type=type,
        timestamp=timestamp,
        agent=agent,
        message=message,
        phase_id=phase_id,
        task_id=task_id,
        test_id=test_id,
        requested_timestamp=requested if requested is not None and requested != timestamp else None,
    )
    epic.events.append(event)
    logger.info(f"[EVENT] {event.id} {type} at {format_timestamp(timestamp)} by {agent}")
    return event


def context_for(epic: Epic, entity) -> dict[str, str]:
    """phase_id/task_id/test_id attribution for an event about `entity`."""
    if entity.kind == Kind.PHASE:
        return {"phase_id": entity.id}
    if entity.kind == Kind.TASK:
        return {"phase_id": entity.phase_id, "task_id": entity.id}
    if entity.kind == Kind.TEST:
        return {"phase_id": epic.test_phase_id(entity), "task_id": entity.task_id, "test_id": entity.id}
    return {}
