"""ISO 8601 helpers used by the decision rules and the resolver."""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now_iso() -> str:
    """Return the current UTC time as an ISO 8601 string with ``Z`` suffix."""
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )


def parse_timestamp(value: str | None) -> float:
    """Convert an ISO 8601 string to epoch milliseconds.

    Naive timestamps are taken as UTC.  Missing or unparsable values sort
    before everything else and return ``0.0``.
    """
    if not value:
        return 0.0
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp() * 1000.0


def latest(values: list[str | None]) -> str | None:
    """Return the latest of *values* by parsed time, or ``None``."""
    present = [v for v in values if v]
    if not present:
        return None
    return max(present, key=parse_timestamp)
