"""
agentpm handoff - Snapshot for the next agent picking up the epic.
"""

from agentpm.lib.constants import DEFAULT_HANDOFF_EVENTS
from agentpm.lib.epicfile import load_epic
from agentpm.lib.render import Result, text_formatter
from agentpm.workflow import aggregate
from agentpm.workflow.engine import Invocation

from agentpm.commands.log import clamp_limit, format_event_oneline


def cmd_handoff(args, inv: Invocation) -> Result:
    epic = load_epic(inv.epic_path)
    limit = clamp_limit(args.limit, DEFAULT_HANDOFF_EVENTS)
    return Result("handoff", aggregate.handoff(epic, limit))


@text_formatter("handoff")
def _handoff_text(f: dict) -> list[str]:
    epic = f["epic"]
    current = f["current"]
    p = f["progress"]
    lines = [
        "=== AGENT HANDOFF REPORT ===",
        "",
        f"Epic: {epic['id']}" + (f" - {epic['name']}" if epic["name"] else ""),
        f"Status: {epic['status']}",
    ]
    if epic["assignee"]:
        lines.append(f"Assignee: {epic['assignee']}")
    if epic["started"]:
        lines.append(f"Started: {epic['started']}")

    lines += ["", "CURRENT STATE"]
    phase, task = current["active_phase"], current["active_task"]
    lines.append(f"  Active phase: {phase['id']} ({phase['name']})" if phase else "  Active phase: (none)")
    lines.append(f"  Active task:  {task['id']} ({task['name']})" if task else "  Active task:  (none)")
    if current["next_action"]:
        lines.append(f"  Next action:  {current['next_action']}")

    lines += [
        "",
        "PROGRESS SUMMARY",
        f"  {p['percent']}% complete",
        f"  Phases: {p['done_phases']}/{p['total_phases']}  Tasks: {p['done_tasks']}/{p['total_tasks']}  "
        f"Tests: {p['passing_tests']}/{p['total_tests']} passing, {p['failing_tests']} failing",
    ]

    lines += ["", "BLOCKERS"]
    if f["blockers"]:
        lines += [f"  ! {b['timestamp'] or '?'}  {b['message']}" for b in f["blockers"]]
    else:
        lines.append("  (none)")

    lines += ["", "RECENT EVENTS"]
    if f["recent_events"]:
        lines += ["  " + format_event_oneline(e) for e in f["recent_events"]]
    else:
        lines.append("  (none)")
    return lines
