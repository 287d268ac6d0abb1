"""Tests for agentpm.lib.clock module."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from agentpm.lib.clock import format_timestamp, parse_timestamp, resolve_now, utcnow
from agentpm.lib.epicfile import load_epic
from agentpm.lib.errors import UsageError

PINNED = datetime(2025, 8, 16, 15, 30, 0, tzinfo=timezone.utc)


class TestParseTimestamp:
    """Tests for parse_timestamp()."""

    def test_zulu(self):
        """A trailing Z parses as UTC."""
        assert parse_timestamp("2025-08-16T15:30:00Z") == PINNED

    def test_offset_converted_to_utc(self):
        """Offsets are normalised to UTC."""
        assert parse_timestamp("2025-08-16T17:30:00+02:00") == PINNED

    def test_naive_is_utc(self):
        """A timestamp without offset is read as UTC."""
        assert parse_timestamp("2025-08-16T15:30:00") == PINNED

    def test_fraction_dropped(self):
        """Sub-second precision is discarded."""
        assert parse_timestamp("2025-08-16T15:30:00.987Z") == PINNED

    def test_garbage(self):
        """Garbage input raises ValueError for the caller to wrap."""
        with pytest.raises(ValueError):
            parse_timestamp("half past three")


class TestFormatTimestamp:
    def test_format(self):
        """Timestamps are written as second-precision Zulu time."""
        assert format_timestamp(PINNED) == "2025-08-16T15:30:00Z"


class TestResolveNow:
    """Tests for resolve_now()."""

    def test_override(self):
        """--time replaces the wall clock."""
        assert resolve_now("2025-08-16T15:30:00Z") == PINNED

    def test_bad_override_is_usage_error(self):
        """An unparseable --time is a usage error (exit 3)."""
        with pytest.raises(UsageError):
            resolve_now("tomorrow")

    def test_wall_clock_has_no_microseconds(self):
        """The real clock is truncated to whole seconds."""
        assert utcnow().microsecond == 0

    def test_pinned_clock_reaches_document(self, epic_builder, run_cli):
        """Without --time, the wall clock is what gets recorded."""
        path = epic_builder.epic("pending").write()
        with patch("agentpm.lib.clock.utcnow", return_value=PINNED):
            code, _, err = run_cli("--file", path, "start-epic")
        assert code == 0, err
        epic = load_epic(path)
        assert epic.started_at == PINNED
        assert epic.events[-1].timestamp == PINNED
