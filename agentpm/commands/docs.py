"""
agentpm docs - Generate a markdown report of the epic.

Sections: overview, phase progress table, task status, test results,
blockers, recent activity. With --output the markdown is written to a file.
"""

import logging
from pathlib import Path

from agentpm.lib.clock import format_timestamp
from agentpm.lib.epicfile import load_epic
from agentpm.lib.fileio import atomic_write
from agentpm.lib.model import Epic, Status
from agentpm.lib.render import Result, text_formatter
from agentpm.workflow import aggregate
from agentpm.workflow.engine import Invocation

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 10

STATUS_MARKS = {
    "pending": "[ ]",
    "wip": "[~]",
    "done": "[x]",
    "cancelled": "[-]",
    "paused": "[=]",
}


def gather_docs_context(epic: Epic) -> dict:
    """Everything the report needs, as plain data.

    Returns dict with:
      - epic: header fields
      - progress: aggregate counts and percent
      - phases: each phase with task counts
      - tasks, tests: status listings
      - blockers, recent_activity: event listings
    """
    phases = []
    for phase in epic.phases:
        tasks = epic.tasks_in(phase.id)
        phases.append({
            "id": phase.id,
            "name": phase.name,
            "status": phase.status.value,
            "done_tasks": sum(1 for t in tasks if t.status == Status.DONE),
            "total_tasks": len(tasks),
        })
    return {
        "epic": {
            "id": epic.id,
            "name": epic.name,
            "status": epic.status.value,
            "assignee": epic.assignee or None,
            "description": epic.description,
            "started": format_timestamp(epic.started_at) if epic.started_at else None,
            "completed_at": format_timestamp(epic.completed_at) if epic.completed_at else None,
        },
        "progress": aggregate.progress(epic).to_dict(),
        "phases": phases,
        "tasks": [aggregate.task_ref(t) for t in epic.tasks],
        "tests": [aggregate.testcase_ref(epic, t) for t in epic.tests],
        "blockers": [aggregate.event_ref(e) for e in aggregate.blockers(epic)],
        "recent_activity": [aggregate.event_ref(e) for e in aggregate.recent_events(epic, RECENT_ACTIVITY_LIMIT)],
    }


def render_markdown(ctx: dict) -> str:
    epic = ctx["epic"]
    p = ctx["progress"]
    lines = [f"# {epic['name'] or epic['id']}", "", "## Epic Overview", ""]
    lines.append(f"- **ID:** {epic['id']}")
    lines.append(f"- **Status:** {epic['status']}")
    if epic["assignee"]:
        lines.append(f"- **Assignee:** {epic['assignee']}")
    if epic["started"]:
        lines.append(f"- **Started:** {epic['started']}")
    if epic["completed_at"]:
        lines.append(f"- **Completed:** {epic['completed_at']}")
    lines.append(f"- **Progress:** {p['percent']}% complete")
    if epic["description"]:
        lines += ["", epic["description"]]

    lines += ["", "## Phase Progress", "", "| Phase | Name | Status | Tasks |", "|---|---|---|---|"]
    for phase in ctx["phases"]:
        lines.append(f"| {phase['id']} | {phase['name']} | {phase['status']} | "
                     f"{phase['done_tasks']}/{phase['total_tasks']} |")

    lines += ["", "## Task Status", ""]
    if ctx["tasks"]:
        for task in ctx["tasks"]:
            lines.append(f"- {STATUS_MARKS.get(task['status'], '[?]')} **{task['id']}** {task['name']} "
                         f"(phase {task['phase_id']})")
    else:
        lines.append("_No tasks._")

    lines += ["", "## Test Results", "",
              f"{p['passing_tests']} passing, {p['failing_tests']} failing, {p['total_tests']} total", ""]
    for test in ctx["tests"]:
        outcome = test["result"] or test["status"]
        lines.append(f"- {STATUS_MARKS.get(test['status'], '[?]')} **{test['id']}** {test['name']} - {outcome}")

    lines += ["", "## Blockers", ""]
    if ctx["blockers"]:
        lines += [f"- {b['timestamp'] or '?'}: {b['message']}" for b in ctx["blockers"]]
    else:
        lines.append("_None._")

    lines += ["", "## Recent Activity", ""]
    if ctx["recent_activity"]:
        lines += [f"- {e['timestamp'] or '?'} `{e['type']}` {e['message']}" for e in ctx["recent_activity"]]
    else:
        lines.append("_No activity yet._")
    return "\n".join(lines) + "\n"


def cmd_docs(args, inv: Invocation) -> Result:
    epic = load_epic(inv.epic_path)
    ctx = gather_docs_context(epic)
    markdown = render_markdown(ctx)

    if args.output:
        output = Path(args.output)
        atomic_write(output, markdown)
        logger.info(f"[DOCS] wrote {output}")
        return Result("documentation_written", {
            "epic_id": epic.id,
            "output": str(output),
            "bytes": len(markdown.encode("utf-8")),
            "message": f"Documentation for {epic.id} written to {output}",
        })

    ctx["markdown"] = markdown
    return Result("documentation", ctx)


@text_formatter("documentation")
def _documentation_text(f: dict) -> list[str]:
    return f["markdown"].rstrip("\n").split("\n")
