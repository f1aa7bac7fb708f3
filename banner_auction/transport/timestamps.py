"""Timestamp helpers enforcing canonical ISO-8601 UTC formatting."""

from __future__ import annotations

from datetime import datetime, timezone


class TimestampError(ValueError):
    """Raised when timestamps are malformed."""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Render as ISO-8601 with millisecond precision and a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    if not value:
        raise TimestampError("timestamp missing")
    try:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        dt = datetime.fromisoformat(value)
    except ValueError as exc:
        raise TimestampError("timestamp is not ISO-8601 compatible") from exc
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
