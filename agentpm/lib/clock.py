"""Clock adapter: wall time, or a per-invocation override."""

from datetime import datetime, timezone

from .constants import TIMESTAMP_FORMAT
from .errors import UsageError


def utcnow() -> datetime:
    """Current UTC time truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp into an aware UTC datetime.

    Accepts a trailing `Z` or an explicit offset; naive values are taken as UTC.
    Raises ValueError on malformed input.
    """
    text = value.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).replace(microsecond=0)


def format_timestamp(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def resolve_now(override: str | None = None) -> datetime:
    """Time for one invocation: the `--time` override if given, else wall clock."""
    if not override:
        return utcnow()
    try:
        return parse_timestamp(override)
    except ValueError:
        raise UsageError(
            f"Invalid --time value: {override!r}",
            suggestion="Use ISO 8601, e.g. 2025-08-16T15:30:00Z",
        ) from None
