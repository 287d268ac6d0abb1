"""Shared constants for agentpm."""

import re

VERSION = "0.4.0"

CONFIG_FILENAME = ".agentpm.json"
DEFAULT_ASSIGNEE = "agent"

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Event ids are sequential within one document
EVENT_ID_PREFIX = "evt_"
EVENT_ID_PATTERN = re.compile(r'^evt_(\d+)$')

# Free-form event types accepted by `log`
LOG_EVENT_TYPES = ("implementation", "blocker", "issue", "milestone", "decision", "note")
DEFAULT_LOG_TYPE = "implementation"

FILE_ACTIONS = ("added", "modified", "deleted", "renamed")
DEFAULT_FILE_ACTION = "modified"

# Query limits
DEFAULT_EVENTS_LIMIT = 10
MAX_EVENTS_LIMIT = 100
DEFAULT_HANDOFF_EVENTS = 3

OUTPUT_FORMATS = ("text", "json", "xml")

# Exit codes
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_IO = 2
EXIT_USAGE = 3
