"""Shared fixtures: an epic document builder and a CLI runner."""

import pytest

from agentpm.cli import main

CREATED = "2025-08-16T08:00:00Z"
STARTED = "2025-08-16T09:00:00Z"
FINISHED = "2025-08-16T10:00:00Z"

# Legacy names resolve to these for timestamp filling
_CANONICAL = {"planning": "pending", "active": "wip", "completed": "done", "on_hold": "paused"}


def _stamps(status: str, done_tag: str = "completed_at") -> str:
    status = _CANONICAL.get(status, status)
    if status in ("wip", "paused"):
        return f"<started_at>{STARTED}</started_at>"
    if status == "done":
        return f"<started_at>{STARTED}</started_at><{done_tag}>{FINISHED}</{done_tag}>"
    if status == "cancelled":
        return f"<cancelled_at>{FINISHED}</cancelled_at>"
    return ""


class EpicBuilder:
    """Builds small epic documents with timestamps consistent with each status."""

    def __init__(self, path):
        self.path = path
        self.epic_id = "epic-1"
        self.epic_status = "pending"
        self.children = ""
        self.phases = []
        self.tasks = []
        self.tests = []
        self.events = []

    def epic(self, status="pending", epic_id="epic-1", children=""):
        self.epic_status = status
        self.epic_id = epic_id
        self.children = children
        return self

    def phase(self, phase_id, status="pending", name=""):
        name_attr = f' name="{name}"' if name else ""
        self.phases.append(f'<phase id="{phase_id}"{name_attr} status="{status}">{_stamps(status)}</phase>')
        return self

    def task(self, task_id, phase_id, status="pending", name=""):
        name_attr = f' name="{name}"' if name else ""
        self.tasks.append(
            f'<task id="{task_id}" phase_id="{phase_id}"{name_attr} status="{status}">{_stamps(status)}</task>'
        )
        return self

    def test(self, test_id, task_id, status="pending", result=None, failure_note="", name="", description=""):
        attrs = f'id="{test_id}" task_id="{task_id}"'
        if name:
            attrs += f' name="{name}"'
        attrs += f' test_status="{status}"'
        if result:
            attrs += f' result="{result}"'
        body = f"<description>{description}</description>" if description else ""
        body += _stamps(status, "passed_at")
        if result == "failing":
            body += f"<failed_at>{FINISHED}</failed_at>"
        if failure_note:
            body += f"<failure_note>{failure_note}</failure_note>"
        self.tests.append(f"<test {attrs}>{body}</test>")
        return self

    def event(self, event_type, timestamp, message="", agent="agent", event_id=None):
        """Append an event; ids default to evt_NNNN and an empty id leaves the attribute out."""
        if event_id is None:
            event_id = f"evt_{len(self.events) + 1:04d}"
        id_attr = f'id="{event_id}" ' if event_id else ""
        self.events.append(
            f'<event {id_attr}type="{event_type}" timestamp="{timestamp}" agent="{agent}">{message}</event>'
        )
        return self

    def xml(self) -> str:
        status = _CANONICAL.get(self.epic_status, self.epic_status)
        attrs = f'id="{self.epic_id}" name="Test Epic" status="{self.epic_status}" created_at="{CREATED}"'
        if status in ("wip", "done", "paused"):
            attrs += f' started="{STARTED}"'
        if status == "done":
            attrs += f' completed_at="{FINISHED}"'
        if status == "paused":
            attrs += f' paused_at="{FINISHED}"'
        if status == "cancelled":
            attrs += f' cancelled_at="{FINISHED}"'
        return (
            '<?xml version="1.0" encoding="UTF-8"?>\n'
            f"<epic {attrs}>"
            f"{self.children}"
            f"<phases>{''.join(self.phases)}</phases>"
            f"<tasks>{''.join(self.tasks)}</tasks>"
            f"<tests>{''.join(self.tests)}</tests>"
            f"<events>{''.join(self.events)}</events>"
            "</epic>\n"
        )

    def write(self):
        self.path.write_text(self.xml(), encoding="utf-8")
        return self.path


@pytest.fixture
def epic_builder(tmp_path):
    """Builder writing to tmp_path/epic.xml."""
    return EpicBuilder(tmp_path / "epic.xml")


@pytest.fixture
def run_cli(capsys):
    """Run the CLI in-process; returns (exit_code, stdout, stderr)."""
    def run(*argv):
        code = main([str(a) for a in argv])
        out, err = capsys.readouterr()
        return code, out, err
    return run
