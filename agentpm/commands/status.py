"""
agentpm status / current / failing / pending - read-only views of the epic.
"""

from agentpm.lib.clock import format_timestamp
from agentpm.lib.epicfile import load_epic
from agentpm.lib.render import Result, text_formatter
from agentpm.workflow import aggregate
from agentpm.workflow.engine import Invocation


def _ts(value) -> str | None:
    return format_timestamp(value) if value else None


def cmd_status(args, inv: Invocation) -> Result:
    """Epic overview with progress."""
    epic = load_epic(inv.epic_path)
    current = aggregate.current(epic)
    return Result("status", {
        "epic_id": epic.id,
        "name": epic.name,
        "status": epic.status.value,
        "assignee": epic.assignee or None,
        "created_at": _ts(epic.created_at),
        "started": _ts(epic.started_at),
        "completed_at": _ts(epic.completed_at),
        "progress": aggregate.progress(epic).to_dict(),
        "active_phase": current["active_phase"]["id"] if current["active_phase"] else None,
        "active_task": current["active_task"]["id"] if current["active_task"] else None,
        "file": str(inv.epic_path),
    })


@text_formatter("status")
def _status_text(f: dict) -> list[str]:
    p = f["progress"]
    lines = [
        f"Epic: {f['epic_id']}" + (f" - {f['name']}" if f["name"] else ""),
        "=" * 60,
        "",
        f"Status:         {f['status']}",
    ]
    if f["assignee"]:
        lines.append(f"Assignee:       {f['assignee']}")
    if f["started"]:
        lines.append(f"Started:        {f['started']}")
    if f["completed_at"]:
        lines.append(f"Completed:      {f['completed_at']}")
    lines += [
        "",
        f"Progress:       {p['percent']}%",
        f"  Phases:       {p['done_phases']}/{p['total_phases']} done",
        f"  Tasks:        {p['done_tasks']}/{p['total_tasks']} done",
        f"  Tests:        {p['passing_tests']}/{p['total_tests']} passing, {p['failing_tests']} failing",
        "",
        f"Active phase:   {f['active_phase'] or '(none)'}",
        f"Active task:    {f['active_task'] or '(none)'}",
    ]
    return lines


def cmd_current(args, inv: Invocation) -> Result:
    """What is being worked on right now."""
    epic = load_epic(inv.epic_path)
    return Result("current", aggregate.current(epic))


@text_formatter("current")
def _current_text(f: dict) -> list[str]:
    phase = f["active_phase"]
    task = f["active_task"]
    lines = [f"Epic {f['epic_id']}: {f['epic_status']}"]
    lines.append(f"Phase: {phase['id']} ({phase['name']})" if phase else "Phase: (none active)")
    lines.append(f"Task:  {task['id']} ({task['name']})" if task else "Task:  (none active)")
    if f["next_action"]:
        lines.append(f"Next:  {f['next_action']}")
    if f["failing_tests"]:
        lines.append(f"Failing tests: {f['failing_tests']}")
    return lines


def cmd_failing(args, inv: Invocation) -> Result:
    epic = load_epic(inv.epic_path)
    tests = aggregate.failing(epic)
    return Result("failing_tests", {"epic_id": epic.id, "count": len(tests), "tests": tests})


@text_formatter("failing_tests")
def _failing_text(f: dict) -> list[str]:
    if not f["tests"]:
        return ["No failing tests."]
    lines = [f"{f['count']} failing test(s):"]
    for t in f["tests"]:
        lines.append(f"  x {t['id']}" + (f" ({t['name']})" if t["name"] else "") + f" [task {t['task_id']}, phase {t['phase_id']}]")
        for key in ("given", "when", "then"):
            if t[key]:
                lines.append(f"      {key.capitalize()}: {t[key]}")
        if t["failure_note"]:
            lines.append(f"      Failure: {t['failure_note']}")
    return lines


def cmd_pending(args, inv: Invocation) -> Result:
    epic = load_epic(inv.epic_path)
    fields = {"epic_id": epic.id}
    fields.update(aggregate.pending(epic))
    return Result("pending", fields)


@text_formatter("pending")
def _pending_text(f: dict) -> list[str]:
    if not f["pending_phases"] and not f["pending_tasks"]:
        return ["Nothing pending."]
    lines = [f"Pending phases ({len(f['pending_phases'])}):"]
    lines += [f"  - {p['id']}" + (f" ({p['name']})" if p["name"] else "") for p in f["pending_phases"]]
    lines.append(f"Pending tasks ({len(f['pending_tasks'])}):")
    lines += [f"  - {t['id']}" + (f" ({t['name']})" if t["name"] else "") + f" [phase {t['phase_id']}]"
              for t in f["pending_tasks"]]
    return lines
