"""
agentpm log - Record a free-text event.
agentpm events - Show the event log, newest first.

Lifecycle commands append their own events; `log` is how an agent records
everything else (implementation notes, blockers, decisions).
"""

from agentpm.lib.constants import DEFAULT_EVENTS_LIMIT, MAX_EVENTS_LIMIT
from agentpm.lib.epicfile import load_epic
from agentpm.lib.errors import UsageError
from agentpm.lib.render import Result, text_formatter
from agentpm.workflow import aggregate
from agentpm.workflow.engine import Invocation, run_log
from agentpm.workflow.events import parse_file_changes

EVENT_SYMBOLS = {
    "started": "+",
    "resumed": "+",
    "completed": "*",
    "passed": "*",
    "failed": "x",
    "cancelled": "-",
    "paused": "=",
    "blocker": "!",
    "issue": "!",
    "milestone": "#",
    "decision": ">",
}


def event_symbol(event_type: str) -> str:
    suffix = event_type.rsplit("_", 1)[-1]
    return EVENT_SYMBOLS.get(event_type) or EVENT_SYMBOLS.get(suffix, ".")


def format_event_oneline(e: dict) -> str:
    return f"{event_symbol(e['type'])} {e['timestamp'] or '?'}  {e['type']:<16} {e['message']}"


def cmd_log(args, inv: Invocation) -> Result:
    files = parse_file_changes(args.files)
    outcome = run_log(inv, args.message, args.type, files)
    event = aggregate.event_ref(outcome.event)
    return Result("event_logged", {
        "epic_id": outcome.epic.id,
        "event_id": event["id"],
        "type": event["type"],
        "timestamp": event["timestamp"],
        "agent": event["agent"],
        "phase_id": event["phase_id"],
        "task_id": event["task_id"],
        "files": [{"path": f.path, "action": f.action} for f in outcome.files],
        "message": event["message"],
    })


@text_formatter("event_logged")
def _logged_text(f: dict) -> list[str]:
    return [f"Logged {f['type']} event {f['event_id']} at {f['timestamp']}: {f['message']}"]


def clamp_limit(limit: int | None, default: int) -> int:
    if limit is None:
        return default
    if limit < 1:
        raise UsageError(f"--limit must be at least 1 (got {limit})")
    return min(limit, MAX_EVENTS_LIMIT)


def cmd_events(args, inv: Invocation) -> Result:
    """Show recent events."""
    epic = load_epic(inv.epic_path)
    limit = clamp_limit(args.limit, DEFAULT_EVENTS_LIMIT)
    events = aggregate.recent_events(epic, limit, args.type)
    return Result("events", {
        "epic_id": epic.id,
        "total": len(epic.events),
        "limit": limit,
        "events": [aggregate.event_ref(e) for e in events],
    })


@text_formatter("events")
def _events_text(f: dict) -> list[str]:
    if not f["events"]:
        return ["No events found."]
    lines = [f"Events for {f['epic_id']} (showing {len(f['events'])} of {f['total']}, newest first)", ""]
    lines += [format_event_oneline(e) for e in f["events"]]
    return lines
