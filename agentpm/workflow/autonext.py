"""
start-next: pick the next piece of work and start it.

Selection is deterministic, in document order:
1. If the wip phase already has a wip task, there is nothing to start.
2. The first pending task whose phase is wip.
3. If no phase is wip, start the first pending phase, then its first pending task.
"""

import logging
from dataclasses import dataclass, field

from agentpm.lib.epicfile import load_epic, save_epic
from agentpm.lib.model import Epic, Kind, Phase, Status, Task
from agentpm.workflow.engine import Invocation, TransitionOutcome, transition
from agentpm.workflow.guards import active_task

logger = logging.getLogger(__name__)


@dataclass
class NextOutcome:
    epic: Epic
    started: list[TransitionOutcome] = field(default_factory=list)
    active: Task | None = None

    @property
    def phase(self) -> Phase | None:
        return next((o.entity for o in self.started if o.kind == Kind.PHASE), None)

    @property
    def task(self) -> Task | None:
        return next((o.entity for o in self.started if o.kind == Kind.TASK), None)

    @property
    def found_work(self) -> bool:
        return bool(self.started)


def wip_phase(epic: Epic) -> Phase | None:
    return next((p for p in epic.phases if p.status == Status.WIP), None)


def next_task(epic: Epic) -> Task | None:
    """First pending task in the wip phase."""
    phase = wip_phase(epic)
    if phase is None:
        return None
    return next((t for t in epic.tasks_in(phase.id) if t.status == Status.PENDING), None)


def next_phase(epic: Epic) -> Phase | None:
    """First pending phase, only when no phase is in progress."""
    if wip_phase(epic) is not None:
        return None
    return next((p for p in epic.phases if p.status == Status.PENDING), None)


def run_start_next(inv: Invocation) -> NextOutcome:
    epic = load_epic(inv.epic_path)
    outcome = NextOutcome(epic)

    phase = wip_phase(epic)
    if phase is not None:
        outcome.active = active_task(epic, phase.id)
        if outcome.active is not None:
            logger.info(f"[ENGINE] start-next: task {outcome.active.id} is already wip in phase {phase.id}")
            return outcome

    task = next_task(epic)
    if task is None:
        phase = next_phase(epic)
        if phase is not None:
            outcome.started.append(transition(epic, Kind.PHASE, "start", phase.id, inv.now, inv.agent))
            task = next_task(epic)

    if task is not None:
        outcome.started.append(transition(epic, Kind.TASK, "start", task.id, inv.now, inv.agent))

    if outcome.found_work:
        save_epic(epic, inv.epic_path)
    else:
        logger.info(f"[ENGINE] start-next: nothing to start in epic {epic.id}")
    return outcome
