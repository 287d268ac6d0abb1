"""
agentpm start-next - Start the next pending task (and its phase if needed).
"""

from agentpm.lib.render import Result
from agentpm.workflow.autonext import run_start_next
from agentpm.workflow.engine import Invocation


def cmd_start_next(args, inv: Invocation) -> Result:
    outcome = run_start_next(inv)
    phase = outcome.phase
    task = outcome.task

    if not outcome.found_work:
        active = outcome.active
        if active is not None:
            message = f"Task {active.id} is already wip in phase {active.phase_id}"
        else:
            message = f"No pending work to start in epic {outcome.epic.id}"
        return Result("no_work", {
            "epic_id": outcome.epic.id,
            "active_task_id": active.id if active else None,
            "message": message,
        })

    parts = []
    if phase is not None:
        parts.append(f"phase {phase.id}")
    if task is not None:
        parts.append(f"task {task.id}" + (f" ({task.name})" if task.name else ""))
    return Result("next_started", {
        "epic_id": outcome.epic.id,
        "started_phase": phase.id if phase else None,
        "task_id": task.id if task else None,
        "task_name": task.name if task else None,
        "phase_id": task.phase_id if task else phase.id,
        "event_ids": [o.event.id for o in outcome.started],
        "message": "Started " + " and ".join(parts),
    })
