#!/usr/bin/env python3
"""agentpm CLI entrypoint."""

import sys
import argparse
import logging
from pathlib import Path

from agentpm.lib.clock import resolve_now
from agentpm.lib.config import default_config_path, load_config, require_config, resolve_epic_path
from agentpm.lib.constants import (
    DEFAULT_ASSIGNEE,
    DEFAULT_LOG_TYPE,
    EXIT_OK,
    LOG_EVENT_TYPES,
    OUTPUT_FORMATS,
)
from agentpm.lib.errors import AgentPMError, UsageError
from agentpm.lib.model import Kind
from agentpm.lib.render import Result, render
from agentpm.workflow.engine import Invocation
from agentpm.commands import docs as cmd_docs_module
from agentpm.commands import fixxml as cmd_fixxml_module
from agentpm.commands import handoff as cmd_handoff_module
from agentpm.commands import lifecycle as cmd_lifecycle_module
from agentpm.commands import log as cmd_log_module
from agentpm.commands import project as cmd_project_module
from agentpm.commands import query as cmd_query_module
from agentpm.commands import show as cmd_show_module
from agentpm.commands import startnext as cmd_next_module
from agentpm.commands import status as cmd_status_module
from agentpm.commands import validate as cmd_validate_module

logger = logging.getLogger(__name__)


class ArgumentParser(argparse.ArgumentParser):
    """Parser whose errors surface as `usage` failures (exit 3)."""

    def error(self, message):
        raise UsageError(message, suggestion=f"Run '{self.prog} --help' for usage")


def get_config_path(args) -> Path:
    return Path(args.config) if args.config else default_config_path()


def get_invocation(args) -> Invocation:
    """Resolve document path, agent and clock for this run.

    --file wins over the configured current epic; the config is still read
    (when present) for the agent name.
    """
    config_path = get_config_path(args)
    if args.file:
        config = load_config(config_path) if config_path.exists() else None
        epic_path = Path(args.file)
    else:
        config = require_config(config_path)
        epic_path = resolve_epic_path(config, config_path)
    agent = config.default_assignee if config else DEFAULT_ASSIGNEE
    return Invocation(epic_path=epic_path, agent=agent, now=resolve_now(args.time))


def with_epic(func):
    """Wrap a command that works on the epic document."""
    def run(args):
        return func(args, get_invocation(args))
    return run


def with_config(func):
    """Wrap a command that only touches the config file."""
    def run(args):
        return func(args, get_config_path(args))
    return run


def _global_options(parser, suppress: bool):
    """Global flags, accepted before or after the subcommand."""
    def default(value):
        return argparse.SUPPRESS if suppress else value

    parser.add_argument('--file', '-f', default=default(None),
                        help='Epic document (overrides the configured current epic)')
    parser.add_argument('--config', '-c', default=default(None), help='Config file (default: ./.agentpm.json)')
    parser.add_argument('--time', '-t', default=default(None),
                        help='Override the clock (ISO 8601, e.g. 2025-08-16T15:30:00Z)')
    parser.add_argument('--format', choices=OUTPUT_FORMATS, default=default("text"), help='Output format')
    parser.add_argument('--verbose', '-v', action='store_true', default=default(False), help='Debug logging on stderr')


def build_parser() -> ArgumentParser:
    common = ArgumentParser(add_help=False)
    _global_options(common, suppress=True)

    parser = ArgumentParser(prog='agentpm', description='Project management for autonomous coding agents')
    _global_options(parser, suppress=False)
    subparsers = parser.add_subparsers(dest='command', required=True)

    def add(name, help_text):
        return subparsers.add_parser(name, help=help_text, parents=[common])

    # Configuration
    p_init = add('init', 'Create config bound to an existing epic file')
    p_init.add_argument('--epic', '-e', required=True, help='Epic document path')
    p_init.add_argument('--project-name', help='Project name (informational)')
    p_init.add_argument('--assignee', help='Default agent name for event attribution')
    p_init.set_defaults(func=with_config(cmd_project_module.cmd_init))

    p_switch = add('switch', 'Switch the current epic')
    p_switch.add_argument('epic', nargs='?', help='Epic document path')
    p_switch.add_argument('--back', '-b', action='store_true', help='Switch back to the previous epic')
    p_switch.set_defaults(func=with_config(cmd_project_module.cmd_switch))

    p_config = add('config', 'Show configuration')
    p_config.set_defaults(func=with_config(cmd_project_module.cmd_config))

    p_version = add('version', 'Show version')
    p_version.set_defaults(func=with_config(cmd_project_module.cmd_version))

    # Lifecycle: epic
    transition = with_epic(cmd_lifecycle_module.cmd_transition)
    for verb, help_text in (
        ('start', 'Start the epic'),
        ('done', 'Complete the epic'),
        ('pause', 'Pause the epic'),
        ('resume', 'Resume a paused epic'),
    ):
        p = add(f'{verb}-epic', help_text)
        p.set_defaults(func=transition, kind=Kind.EPIC, verb=verb)
    p_cancel_epic = add('cancel-epic', 'Cancel the epic')
    p_cancel_epic.add_argument('reason', nargs='?', default='', help='Reason (optional)')
    p_cancel_epic.set_defaults(func=transition, kind=Kind.EPIC, verb='cancel')

    # Lifecycle: phases and tasks
    for kind in (Kind.PHASE, Kind.TASK):
        for verb, help_text in (('start', f'Start a {kind.value}'), ('done', f'Complete a {kind.value}')):
            p = add(f'{verb}-{kind.value}', help_text)
            p.add_argument('id', help=f'{kind.value.capitalize()} ID')
            p.set_defaults(func=transition, kind=kind, verb=verb)
        p = add(f'cancel-{kind.value}', f'Cancel a {kind.value}')
        p.add_argument('id', help=f'{kind.value.capitalize()} ID')
        p.add_argument('reason', nargs='?', default='', help='Reason (optional)')
        p.set_defaults(func=transition, kind=kind, verb='cancel')

    # Lifecycle: tests
    p_start_test = add('start-test', 'Start a test')
    p_start_test.add_argument('id', help='Test ID')
    p_start_test.set_defaults(func=transition, kind=Kind.TEST, verb='start')

    p_pass_test = add('pass-test', 'Mark a test as passing')
    p_pass_test.add_argument('id', help='Test ID')
    p_pass_test.set_defaults(func=transition, kind=Kind.TEST, verb='pass')

    p_fail_test = add('fail-test', 'Mark a test as failing')
    p_fail_test.add_argument('id', help='Test ID')
    p_fail_test.add_argument('note', help='What failed')
    p_fail_test.set_defaults(func=transition, kind=Kind.TEST, verb='fail')

    p_cancel_test = add('cancel-test', 'Cancel a test')
    p_cancel_test.add_argument('id', help='Test ID')
    p_cancel_test.add_argument('note', help='Why the test is cancelled')
    p_cancel_test.set_defaults(func=transition, kind=Kind.TEST, verb='cancel')

    batch = with_epic(cmd_lifecycle_module.cmd_test_batch)
    p_pass_batch = add('pass-batch', 'Mark several tests as passing in one write (all or nothing)')
    p_pass_batch.add_argument('ids', nargs='+', help='Test IDs')
    p_pass_batch.set_defaults(func=batch, verb='pass')

    p_fail_batch = add('fail-batch', 'Mark several tests as failing in one write (all or nothing)')
    p_fail_batch.add_argument('ids', nargs='+', help='Test IDs')
    p_fail_batch.add_argument('--note', '-m', required=True, help='What failed (recorded on every test)')
    p_fail_batch.set_defaults(func=batch, verb='fail')

    p_next = add('start-next', 'Start the next pending task')
    p_next.set_defaults(func=with_epic(cmd_next_module.cmd_start_next))

    # Event log
    p_log = add('log', 'Record an event')
    p_log.add_argument('message', help='Event message')
    p_log.add_argument('--type', default=DEFAULT_LOG_TYPE, choices=LOG_EVENT_TYPES, help='Event type')
    p_log.add_argument('--files', help='Changed files: "path:action,..." (added, modified, deleted, renamed)')
    p_log.set_defaults(func=with_epic(cmd_log_module.cmd_log))

    p_events = add('events', 'Show recent events')
    p_events.add_argument('--limit', '-n', type=int, help='Number of events (default 10, max 100)')
    p_events.add_argument('--type', help='Only events of this type')
    p_events.set_defaults(func=with_epic(cmd_log_module.cmd_events))

    # Views
    p_status = add('status', 'Show epic status and progress')
    p_status.set_defaults(func=with_epic(cmd_status_module.cmd_status))

    p_current = add('current', 'Show active phase and task')
    p_current.set_defaults(func=with_epic(cmd_status_module.cmd_current))

    p_failing = add('failing', 'List failing tests')
    p_failing.set_defaults(func=with_epic(cmd_status_module.cmd_failing))

    p_pending = add('pending', 'List pending phases and tasks')
    p_pending.set_defaults(func=with_epic(cmd_status_module.cmd_pending))

    p_handoff = add('handoff', 'Handoff report for the next agent')
    p_handoff.add_argument('--limit', '-n', type=int, help='Number of recent events (default 3)')
    p_handoff.set_defaults(func=with_epic(cmd_handoff_module.cmd_handoff))

    p_show = add('show', 'Show an entity with related items')
    p_show.add_argument('kind', help='epic, phase, task, or test')
    p_show.add_argument('id', nargs='?', help='Entity ID (not needed for epic)')
    p_show.set_defaults(func=with_epic(cmd_show_module.cmd_show))

    p_query = add('query', 'Run a path query against the epic document')
    p_query.add_argument('expression', help="Path expression, e.g. \"//task[@status='wip']\"")
    p_query.set_defaults(func=with_epic(cmd_query_module.cmd_query))

    p_validate = add('validate', 'Check the epic document for consistency')
    p_validate.set_defaults(func=with_epic(cmd_validate_module.cmd_validate))

    p_fix = add('fix-xml', 'Escape stray & and < characters in the epic file')
    p_fix.add_argument('--dry-run', action='store_true', help='Report fixes without writing')
    p_fix.add_argument('--no-backup', action='store_true', help='Do not keep a copy of the original file')
    p_fix.set_defaults(func=with_epic(cmd_fixxml_module.cmd_fix_xml))

    p_docs = add('docs', 'Generate a markdown report')
    p_docs.add_argument('--output', '-o', help='Write the report to this file')
    p_docs.set_defaults(func=with_epic(cmd_docs_module.cmd_docs))

    return parser


def _format_from_argv(argv: list[str]) -> str:
    """Best-effort --format lookup for errors raised before parsing finishes."""
    for i, arg in enumerate(argv):
        if arg == '--format' and i + 1 < len(argv) and argv[i + 1] in OUTPUT_FORMATS:
            return argv[i + 1]
        if arg.startswith('--format=') and arg.split('=', 1)[1] in OUTPUT_FORMATS:
            return arg.split('=', 1)[1]
    return "text"


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    fmt = _format_from_argv(argv)
    parser = build_parser()
    try:
        args = parser.parse_args(argv)
        fmt = args.format
        logging.basicConfig(
            level=logging.DEBUG if args.verbose else logging.WARNING,
            format="%(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )
        result = args.func(args)
    except AgentPMError as e:
        logger.debug(f"[CLI] {e.kind}: {e.message}")
        print(render(Result("error", e.to_fields(), is_error=True), fmt), file=sys.stderr)
        return e.exit_code

    print(render(result, fmt))
    return EXIT_OK


if __name__ == '__main__':
    sys.exit(main())
