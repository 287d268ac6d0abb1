"""
agentpm lifecycle commands: start/done/pause/resume/cancel for the epic,
phases and tasks; start/pass/fail/cancel for tests.
"""

from agentpm.lib.clock import format_timestamp
from agentpm.lib.model import Kind
from agentpm.lib.render import Result, text_formatter
from agentpm.workflow.aggregate import progress
from agentpm.workflow.engine import Invocation, TransitionOutcome, run_test_batch, run_transition


def _label(entity) -> str:
    label = f"{entity.kind.value.capitalize()} {entity.id}"
    return f"{label} ({entity.name})" if entity.name else label


def transition_fields(outcome: TransitionOutcome) -> dict:
    entity = outcome.entity
    kind = outcome.kind
    fields = {f"{kind.value}_id": entity.id, "name": entity.name}
    if kind == Kind.TASK:
        fields["phase_id"] = entity.phase_id
    elif kind == Kind.TEST:
        fields["task_id"] = entity.task_id
        fields["phase_id"] = outcome.epic.test_phase_id(entity)

    fields["previous_status"] = outcome.previous_status.value
    fields["new_status"] = outcome.new_status.value
    if kind == Kind.TEST:
        fields["result"] = entity.result.value if entity.result else None

    if outcome.already:
        fields[outcome.already] = True
        state = outcome.already[len("is_already_"):]
        fields["message"] = f"{_label(entity)} is already {state}"
        return fields

    event = outcome.event
    fields["timestamp"] = format_timestamp(event.timestamp)
    if event.requested_timestamp is not None:
        fields["requested_timestamp"] = format_timestamp(event.requested_timestamp)
    fields["event_id"] = event.id
    if kind == Kind.TEST and outcome.verb.name == "fail":
        fields["failure_note"] = entity.failure_note
    if kind == Kind.EPIC and outcome.verb.name == "done":
        fields["progress"] = progress(outcome.epic).to_dict()
    fields["message"] = event.message
    return fields


def transition_result(outcome: TransitionOutcome) -> Result:
    return Result(outcome.variant, transition_fields(outcome))


def cmd_transition(args, inv: Invocation) -> Result:
    """Run the verb bound to this subcommand (args.kind, args.verb)."""
    note = getattr(args, "note", None) or getattr(args, "reason", None) or ""
    outcome = run_transition(inv, args.kind, args.verb, getattr(args, "id", None), note)
    return transition_result(outcome)


def cmd_test_batch(args, inv: Invocation) -> Result:
    """pass-batch / fail-batch: one verb over many tests in a single write."""
    batch = run_test_batch(inv, args.verb, args.ids, getattr(args, "note", None) or "")
    past = batch.verb.past
    return Result(f"tests_{past}", {
        "epic_id": batch.epic.id,
        "operation": args.verb,
        "changed_count": len(batch.changed),
        "unchanged_count": len(batch.unchanged),
        "tests": [transition_fields(o) for o in batch.outcomes],
        "message": f"{len(batch.changed)} of {len(batch.outcomes)} tests {past}",
    })


@text_formatter("tests_passed", "tests_failed")
def _batch_text(fields: dict) -> list[str]:
    lines = [fields["message"]]
    for test in fields["tests"]:
        lines.append(f"  {test['test_id']}: {test['message']}")
    return lines
