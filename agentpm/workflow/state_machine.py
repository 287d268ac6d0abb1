"""Pure status-machine API over the FSM tables in fsm.py.

Provides:
- VERBS: each command verb mapped to its trigger and target status
- can_transition(): legality predicate on (kind, from, to)
- apply(): update status and timestamp slot of an in-memory entity
- already_flag(): name of the "already in that state" flag for a verb

Usage:
    from agentpm.workflow.state_machine import apply, can_transition

    if can_transition(Kind.TASK, Status.PENDING, Status.WIP):
        apply(task, Status.WIP, now)
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from transitions import MachineError

from agentpm.lib.errors import InvalidTransition
from agentpm.lib.model import Kind, Status
from agentpm.workflow.fsm import TRIGGER_FOR, EntityFSM

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Verb:
    name: str
    trigger: str
    target: Status
    past: str  # used for event types and result variants


VERBS = {
    "start": Verb("start", "start", Status.WIP, "started"),
    "done": Verb("done", "complete", Status.DONE, "completed"),
    "pause": Verb("pause", "pause", Status.PAUSED, "paused"),
    "resume": Verb("resume", "resume", Status.WIP, "resumed"),
    "cancel": Verb("cancel", "cancel", Status.CANCELLED, "cancelled"),
    "pass": Verb("pass", "pass_test", Status.DONE, "passed"),
    "fail": Verb("fail", "fail_test", Status.WIP, "failed"),
}

# State an entity is already in -> flag suffix (is_already_<suffix>)
_ALREADY_SUFFIX = {
    Status.WIP: "started",
    Status.DONE: "completed",
    Status.PAUSED: "paused",
    Status.CANCELLED: "cancelled",
}


def can_transition(kind: Kind, from_status: Status, to_status: Status) -> bool:
    """Whether the lifecycle graph of `kind` has an edge from -> to."""
    return (kind, from_status.value, to_status.value) in TRIGGER_FOR


def trigger_for(kind: Kind, from_status: Status, to_status: Status) -> str | None:
    return TRIGGER_FOR.get((kind, from_status.value, to_status.value))


def verb_allowed(kind: Kind, verb: Verb, from_status: Status) -> bool:
    """Legal only if the edge exists and is reached by this verb's trigger."""
    return trigger_for(kind, from_status, verb.target) == verb.trigger


def already_flag(entity, verb: Verb) -> str | None:
    """Flag name when `verb` would be a no-op, else None.

    A start on a finished entity also counts: it is already past started.
    Failing is never a no-op since every failure is recorded.
    """
    if verb.name == "fail":
        return None
    status = entity.status
    if status == verb.target or (verb.name == "start" and status == Status.DONE):
        suffix = _ALREADY_SUFFIX[status]
        if entity.kind == Kind.TEST and status == Status.DONE:
            suffix = "passed"
        return f"is_already_{suffix}"
    return None


def apply(entity, to_status: Status, ts: datetime, note: str = "", trigger: str | None = None) -> str:
    """Move `entity` to `to_status` at `ts`, filling the matching timestamp slot.

    Returns the trigger that fired.

    Raises:
        InvalidTransition: If no such edge exists for the entity's kind
    """
    from_status = entity.status
    trigger = trigger or trigger_for(entity.kind, from_status, to_status)
    if trigger is None:
        raise InvalidTransition(entity.kind.value, entity.id, from_status.value, to_status.value)

    fsm = EntityFSM(entity)
    try:
        getattr(fsm, trigger)(timestamp=ts, note=note)
    except (MachineError, AttributeError):
        raise InvalidTransition(entity.kind.value, entity.id, from_status.value, to_status.value) from None
    return trigger
