"""Entity lifecycle state machines using transitions library.

One transition table per entity kind. Triggers are the verbs agents issue
(start, complete, pause, resume, cancel, pass_test, fail_test); each becomes
a method on EntityFSM. Firing a trigger writes the new status and the
matching timestamp slot back onto the wrapped entity.

Usage:
    from agentpm.workflow.fsm import EntityFSM

    fsm = EntityFSM(phase)
    fsm.start(timestamp=now)     # pending -> wip, sets started_at
    fsm.complete(timestamp=now)  # wip -> done, sets completed_at
"""

import logging
from datetime import datetime
from typing import Callable

from transitions import Machine

from agentpm.lib.model import Kind, Outcome, Status

logger = logging.getLogger(__name__)


_LIFECYCLE = ["pending", "wip", "done", "cancelled"]

STATES = {
    Kind.EPIC: _LIFECYCLE + ["paused"],
    Kind.PHASE: list(_LIFECYCLE),
    Kind.TASK: list(_LIFECYCLE),
    Kind.TEST: list(_LIFECYCLE),
}

_WORK_TRANSITIONS = [
    {"trigger": "start", "source": "pending", "dest": "wip"},
    {"trigger": "complete", "source": "wip", "dest": "done"},

    # Abandon before or during work; done is terminal
    {"trigger": "cancel", "source": "pending", "dest": "cancelled"},
    {"trigger": "cancel", "source": "wip", "dest": "cancelled"},
]

# Transitions defined per kind as {trigger, source, dest}
TRANSITIONS = {
    Kind.EPIC: _WORK_TRANSITIONS + [
        {"trigger": "pause", "source": "wip", "dest": "paused"},
        {"trigger": "resume", "source": "paused", "dest": "wip"},
    ],
    Kind.PHASE: list(_WORK_TRANSITIONS),
    Kind.TASK: list(_WORK_TRANSITIONS),
    Kind.TEST: [
        {"trigger": "start", "source": "pending", "dest": "wip"},
        {"trigger": "pass_test", "source": "wip", "dest": "done"},

        # Failing keeps the test open; a passed test can be re-opened as failing
        {"trigger": "fail_test", "source": "wip", "dest": "wip"},
        {"trigger": "fail_test", "source": "done", "dest": "wip"},

        {"trigger": "cancel", "source": "pending", "dest": "cancelled"},
        {"trigger": "cancel", "source": "wip", "dest": "cancelled"},
    ],
}


# Pre-computed lookup: (kind, source, dest) -> trigger name
def _build_trigger_lookup() -> dict[tuple[Kind, str, str], str]:
    """Build lookup from (kind, source, dest) -> trigger name."""
    lookup: dict[tuple[Kind, str, str], str] = {}
    for kind, transitions in TRANSITIONS.items():
        for t in transitions:
            key = (kind, t["source"], t["dest"])
            if key not in lookup:  # First trigger wins for a given source->dest
                lookup[key] = t["trigger"]
    return lookup


TRIGGER_FOR = _build_trigger_lookup()


def _set_started(entity, ts: datetime, note: str) -> None:
    entity.started_at = ts


def _set_completed(entity, ts: datetime, note: str) -> None:
    entity.completed_at = ts


def _set_paused(entity, ts: datetime, note: str) -> None:
    entity.paused_at = ts


def _clear_paused(entity, ts: datetime, note: str) -> None:
    entity.paused_at = None


def _set_cancelled(entity, ts: datetime, note: str) -> None:
    entity.cancelled_at = ts
    if entity.kind == Kind.TEST:
        entity.cancellation_reason = note


def _set_passed(entity, ts: datetime, note: str) -> None:
    entity.passed_at = ts
    entity.result = Outcome.PASSING
    entity.failure_note = ""


def _set_failed(entity, ts: datetime, note: str) -> None:
    # started_at is left as it was, even when re-opening a passed test
    entity.failed_at = ts
    entity.passed_at = None
    entity.result = Outcome.FAILING
    entity.failure_note = note


# Side effects per trigger, applied after the status has changed
EFFECTS: dict[str, Callable] = {
    "start": _set_started,
    "complete": _set_completed,
    "pause": _set_paused,
    "resume": _clear_paused,
    "cancel": _set_cancelled,
    "pass_test": _set_passed,
    "fail_test": _set_failed,
}


class EntityFSM:
    """State machine wrapping one epic, phase, task, or test.

    Triggers must be fired with a `timestamp` keyword; `note` is optional and
    used by fail_test and cancel.
    """

    def __init__(self, entity):
        """Initialize FSM for an entity (a model object with `kind` and `status`)."""
        self.entity = entity
        self.kind = entity.kind

        self.machine = Machine(
            model=self,
            states=STATES[self.kind],
            transitions=TRANSITIONS[self.kind],
            initial=entity.status.value,
            auto_transitions=False,  # Only explicit transitions
            send_event=True,  # Pass EventData to callbacks
            after_state_change="on_state_change",  # Callback after any transition
        )

    def on_state_change(self, event) -> None:
        """Callback after any state transition.

        Writes status and timestamps onto the entity and logs the transition.
        """
        from_state = event.transition.source
        to_state = event.transition.dest
        trigger = event.event.name
        ts = event.kwargs["timestamp"]
        note = event.kwargs.get("note", "")

        self.entity.status = Status(to_state)
        EFFECTS[trigger](self.entity, ts, note)

        logger.info(f"[FSM] {self.kind.value} {self.entity.id}: {from_state} -> {to_state} ({trigger})")
