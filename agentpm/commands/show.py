"""
agentpm show <epic|phase|task|test> [id] - Entity details with related items.
"""

from agentpm.lib.clock import format_timestamp
from agentpm.lib.epicfile import load_epic
from agentpm.lib.errors import UsageError
from agentpm.lib.model import Epic, Kind
from agentpm.lib.render import Result, text_formatter
from agentpm.workflow import aggregate
from agentpm.workflow.engine import Invocation, locate


def _ts(value) -> str | None:
    return format_timestamp(value) if value else None


def _epic_fields(epic: Epic, entity) -> dict:
    return {
        "id": epic.id,
        "name": epic.name,
        "status": epic.status.value,
        "assignee": epic.assignee or None,
        "description": epic.description,
        "created_at": _ts(epic.created_at),
        "started": _ts(epic.started_at),
        "paused_at": _ts(epic.paused_at),
        "completed_at": _ts(epic.completed_at),
        "cancelled_at": _ts(epic.cancelled_at),
        "progress": aggregate.progress(epic).to_dict(),
        "phases": [aggregate.phase_ref(p) for p in epic.phases],
    }


def _phase_fields(epic: Epic, phase) -> dict:
    return {
        "id": phase.id,
        "name": phase.name,
        "status": phase.status.value,
        "description": phase.description,
        "started_at": _ts(phase.started_at),
        "completed_at": _ts(phase.completed_at),
        "cancelled_at": _ts(phase.cancelled_at),
        "tasks": [aggregate.task_ref(t) for t in epic.tasks_in(phase.id)],
        "tests": [aggregate.testcase_ref(epic, t) for t in epic.tests_in(phase.id)],
    }


def _task_fields(epic: Epic, task) -> dict:
    phase = epic.phase(task.phase_id)
    return {
        "id": task.id,
        "name": task.name,
        "status": task.status.value,
        "assignee": task.assignee or None,
        "description": task.description,
        "acceptance_criteria": task.acceptance_criteria,
        "started_at": _ts(task.started_at),
        "completed_at": _ts(task.completed_at),
        "cancelled_at": _ts(task.cancelled_at),
        "phase": aggregate.phase_ref(phase) if phase else None,
        "tests": [aggregate.testcase_ref(epic, t) for t in epic.tests_for_task(task.id)],
    }


def _test_fields(epic: Epic, test) -> dict:
    task = epic.task(test.task_id)
    phase = epic.phase(epic.test_phase_id(test))
    return {
        "id": test.id,
        "name": test.name,
        "status": test.status.value,
        "result": test.result.value if test.result else None,
        "description": test.description,
        "given": test.given,
        "when": test.when,
        "then": test.then,
        "started_at": _ts(test.started_at),
        "passed_at": _ts(test.passed_at),
        "failed_at": _ts(test.failed_at),
        "cancelled_at": _ts(test.cancelled_at),
        "failure_note": test.failure_note,
        "cancellation_reason": test.cancellation_reason,
        "task": aggregate.task_ref(task) if task else None,
        "phase": aggregate.phase_ref(phase) if phase else None,
    }


_FIELDS = {
    Kind.EPIC: _epic_fields,
    Kind.PHASE: _phase_fields,
    Kind.TASK: _task_fields,
    Kind.TEST: _test_fields,
}


def parse_kind(value: str) -> Kind:
    for kind in Kind:
        if kind.value == value:
            return kind
    raise UsageError(f"Unknown entity kind '{value}'", suggestion="Use one of: epic, phase, task, test")


def cmd_show(args, inv: Invocation) -> Result:
    kind = parse_kind(args.kind)
    if kind != Kind.EPIC and not args.id:
        raise UsageError(f"show {kind.value} requires an id")
    epic = load_epic(inv.epic_path)
    entity = locate(epic, kind, args.id)
    return Result(kind.value, _FIELDS[kind](epic, entity))


def _header(f: dict, kind: str) -> list[str]:
    title = f"{kind.capitalize()}: {f['id']}" + (f" - {f['name']}" if f.get("name") else "")
    lines = [title, "=" * 60, f"Status:      {f['status']}" + (f" ({f['result']})" if f.get("result") else "")]
    for key in ("started", "started_at", "paused_at", "completed_at", "passed_at", "failed_at", "cancelled_at"):
        if f.get(key):
            lines.append(f"{key.replace('_at', '').capitalize() + ':':<12} {f[key]}")
    if f.get("description"):
        lines += ["", f["description"]]
    return lines


def _refs(title: str, items: list[dict]) -> list[str]:
    lines = ["", f"{title} ({len(items)}):"]
    for item in items:
        extra = f" [{item['result']}]" if item.get("result") else ""
        lines.append(f"  - {item['id']} {item['status']}{extra}" + (f"  {item['name']}" if item["name"] else ""))
    return lines


@text_formatter("epic")
def _epic_text(f: dict) -> list[str]:
    p = f["progress"]
    lines = _header(f, "epic")
    lines += ["", f"Progress:    {p['percent']}% ({p['done_phases']}/{p['total_phases']} phases, "
                  f"{p['done_tasks']}/{p['total_tasks']} tasks, {p['passing_tests']}/{p['total_tests']} tests)"]
    return lines + _refs("Phases", f["phases"])


@text_formatter("phase")
def _phase_text(f: dict) -> list[str]:
    return _header(f, "phase") + _refs("Tasks", f["tasks"]) + _refs("Tests", f["tests"])


@text_formatter("task")
def _task_text(f: dict) -> list[str]:
    lines = _header(f, "task")
    if f["phase"]:
        lines += ["", f"Phase:       {f['phase']['id']} ({f['phase']['status']})"]
    if f["acceptance_criteria"]:
        lines += ["", "Acceptance criteria:", f"  {f['acceptance_criteria']}"]
    return lines + _refs("Tests", f["tests"])


@text_formatter("test")
def _test_text(f: dict) -> list[str]:
    lines = _header(f, "test")
    for key in ("given", "when", "then"):
        if f[key]:
            lines.append(f"{key.capitalize() + ':':<12} {f[key]}")
    if f["failure_note"]:
        lines.append(f"Failure:     {f['failure_note']}")
    if f["cancellation_reason"]:
        lines.append(f"Reason:      {f['cancellation_reason']}")
    if f["task"]:
        lines.append(f"Task:        {f['task']['id']} ({f['task']['status']})")
    if f["phase"]:
        lines.append(f"Phase:       {f['phase']['id']} ({f['phase']['status']})")
    return lines
