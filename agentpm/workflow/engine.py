"""
Mutation pipeline shared by every lifecycle command.

load -> locate entity -> status machine -> guards -> apply -> append event -> save

Nothing is written unless every step succeeds; a redundant command (entity
already in the target state) returns early without touching the file.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from agentpm.lib.constants import DEFAULT_LOG_TYPE, LOG_EVENT_TYPES
from agentpm.lib.epicfile import load_epic, save_epic
from agentpm.lib.errors import (
    CompletionValidationError,
    InvalidTransition,
    NotFoundError,
    UsageError,
    ValidationError,
)
from agentpm.lib.model import Epic, Event, Kind, Status
from agentpm.workflow import guards
from agentpm.workflow.events import (
    FileChange,
    append_event,
    context_for,
    effective_timestamp,
    event_type,
    lifecycle_message,
)
from agentpm.workflow.guards import COMPLETION, GuardDiagnostic
from agentpm.workflow.state_machine import VERBS, Verb, already_flag, apply, verb_allowed

logger = logging.getLogger(__name__)


@dataclass
class Invocation:
    """Everything one command run needs from the outside world."""
    epic_path: Path
    agent: str
    now: datetime


@dataclass
class TransitionOutcome:
    epic: Epic
    entity: object
    verb: Verb
    previous_status: Status
    already: str | None = None
    event: Event | None = None

    @property
    def kind(self) -> Kind:
        return self.entity.kind

    @property
    def new_status(self) -> Status:
        return self.entity.status

    @property
    def variant(self) -> str:
        return event_type(self.kind, self.verb.past)


@dataclass
class LogOutcome:
    epic: Epic
    event: Event
    files: list[FileChange] = field(default_factory=list)


def locate(epic: Epic, kind: Kind, entity_id: str | None):
    """Find the addressed entity.

    Raises:
        UsageError: If a phase/task/test id is missing
        NotFoundError: If no entity has that id
    """
    if kind == Kind.EPIC:
        return epic
    if not entity_id:
        raise UsageError(f"A {kind.value} id is required")
    entity = epic.find(kind, entity_id)
    if entity is None:
        raise NotFoundError(
            f"{kind.value.capitalize()} '{entity_id}' not found in epic {epic.id}",
            suggestion=f"Run 'agentpm show epic' to list {kind.value}s",
            entity_kind=kind.value,
            entity_id=entity_id,
        )
    return entity


def _transition_suggestion(kind: Kind, verb: Verb, current: Status) -> str:
    name = kind.value
    if current == Status.CANCELLED:
        return f"The {name} is cancelled and cannot change state"
    if current == Status.DONE:
        return f"The {name} is already done"
    if current == Status.PENDING and verb.target != Status.WIP:
        return f"Start the {name} first"
    if current == Status.PAUSED:
        return "Resume the epic first"
    return ""


def guard_error(diagnostic: GuardDiagnostic):
    if diagnostic.rejection == COMPLETION:
        return CompletionValidationError(diagnostic)
    return ValidationError(diagnostic.message, diagnostic.suggestion, **diagnostic.to_fields())


def _track_current(epic: Epic, entity, verb: Verb) -> None:
    """Keep current_state pointers in step with phase and task lifecycles."""
    state = epic.current_state
    if entity.kind == Kind.PHASE:
        if verb.target == Status.WIP:
            state.active_phase = entity.id
        elif state.active_phase == entity.id:
            state.active_phase = ""
    elif entity.kind == Kind.TASK:
        if verb.target == Status.WIP:
            state.active_task = entity.id
        elif state.active_task == entity.id:
            state.active_task = ""


def transition(epic: Epic, kind: Kind, verb_name: str, entity_id: str | None,
               now: datetime, agent: str, note: str = "") -> TransitionOutcome:
    """Run one lifecycle verb against an in-memory epic.

    Raises:
        NotFoundError, UsageError: Entity cannot be addressed
        InvalidTransition: Status machine has no such edge
        CompletionValidationError, ValidationError: A guard refused
    """
    verb = VERBS[verb_name]
    entity = locate(epic, kind, entity_id)
    previous = entity.status

    flag = already_flag(entity, verb)
    if flag:
        logger.info(f"[ENGINE] {verb.name} {kind.value} {entity.id}: already {previous.value}, nothing to do")
        return TransitionOutcome(epic, entity, verb, previous, already=flag)

    if not verb_allowed(kind, verb, previous):
        raise InvalidTransition(
            kind.value, entity.id, previous.value, verb.target.value,
            suggestion=_transition_suggestion(kind, verb, previous),
        )

    diagnostic = guards.check(epic, kind, verb.name, entity, note)
    if diagnostic is not None:
        raise guard_error(diagnostic)

    ts = effective_timestamp(epic, now, entity)
    apply(entity, verb.target, ts, note=note, trigger=verb.trigger)
    _track_current(epic, entity, verb)

    event = append_event(
        epic,
        type=event_type(kind, verb.past),
        agent=agent,
        timestamp=ts,
        requested=now,
        message=lifecycle_message(entity, verb.past, note),
        **context_for(epic, entity),
    )
    return TransitionOutcome(epic, entity, verb, previous, event=event)


def run_transition(inv: Invocation, kind: Kind, verb_name: str,
                   entity_id: str | None = None, note: str = "") -> TransitionOutcome:
    """Load, transition, and save when something changed."""
    epic = load_epic(inv.epic_path)
    outcome = transition(epic, kind, verb_name, entity_id, inv.now, inv.agent, note)
    if outcome.event is not None:
        save_epic(epic, inv.epic_path)
    return outcome


@dataclass
class BatchOutcome:
    epic: Epic
    verb: Verb
    outcomes: list[TransitionOutcome] = field(default_factory=list)

    @property
    def changed(self) -> list[TransitionOutcome]:
        return [o for o in self.outcomes if o.event is not None]

    @property
    def unchanged(self) -> list[TransitionOutcome]:
        return [o for o in self.outcomes if o.already]


def run_test_batch(inv: Invocation, verb_name: str, test_ids: list[str], note: str = "") -> BatchOutcome:
    """Apply one test verb to many tests, all or nothing.

    Every id is tried against the in-memory epic in order; the document is
    saved only when none of them failed.

    Raises:
        ValidationError: With one entry per refused test under `failures`
    """
    if not test_ids:
        raise UsageError("At least one test id is required")
    epic = load_epic(inv.epic_path)
    batch = BatchOutcome(epic, VERBS[verb_name])
    failures = []
    for test_id in test_ids:
        try:
            batch.outcomes.append(transition(epic, Kind.TEST, verb_name, test_id, inv.now, inv.agent, note))
        except (NotFoundError, InvalidTransition, ValidationError, CompletionValidationError) as e:
            failures.append({"test_id": test_id, "error_type": e.kind, "message": e.message})

    if failures:
        logger.info(f"[ENGINE] {verb_name}-batch refused: {len(failures)} of {len(test_ids)} tests")
        raise ValidationError(
            f"Batch {verb_name} failed: {len(failures)} of {len(test_ids)} tests cannot be changed",
            suggestion="Fix or remove the refused tests; nothing was written",
            operation=verb_name,
            failures=failures,
        )

    if batch.changed:
        save_epic(epic, inv.epic_path)
    return batch


def log_message(message: str, files: list[FileChange]) -> str:
    if not files:
        return message
    return f"{message} [files: {', '.join(str(f) for f in files)}]"


def run_log(inv: Invocation, message: str, log_type: str = DEFAULT_LOG_TYPE,
            files: list[FileChange] | None = None) -> LogOutcome:
    """Record a free-text event; no status changes."""
    if not message or not message.strip():
        raise UsageError("A log message is required")
    if log_type not in LOG_EVENT_TYPES:
        raise UsageError(
            f"Invalid event type '{log_type}'",
            suggestion=f"Use one of: {', '.join(LOG_EVENT_TYPES)}",
        )
    files = files or []

    epic = load_epic(inv.epic_path)
    diagnostic = guards.guard_log(epic)
    if diagnostic is not None:
        raise guard_error(diagnostic)

    # Attribute to whatever is being worked on right now
    phase = next((p for p in epic.phases if p.status == Status.WIP), None)
    task = None
    if phase is not None:
        task = next((t for t in epic.tasks_in(phase.id) if t.status == Status.WIP), None)

    ts = effective_timestamp(epic, inv.now)
    event = append_event(
        epic,
        type=log_type,
        agent=inv.agent,
        timestamp=ts,
        requested=inv.now,
        message=log_message(message.strip(), files),
        phase_id=phase.id if phase else "",
        task_id=task.id if task else "",
    )
    save_epic(epic, inv.epic_path)
    return LogOutcome(epic, event, files)
