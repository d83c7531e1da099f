"""Timestamp helpers enforcing canonical ISO-8601 formatting and skew checks."""

from __future__ import annotations

from datetime import datetime, timezone


class TimestampError(ValueError):
    """Raised when timestamps are malformed or outside the permitted skew."""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    if not value:
        raise TimestampError("timestamp missing")
    try:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        dt = datetime.fromisoformat(value)
    except ValueError as exc:  # pragma: no cover - delegated to datetime
        raise TimestampError("timestamp is not ISO-8601 compatible") from exc
    if dt.tzinfo is None:
        raise TimestampError("timestamp must include timezone information")
    return dt.astimezone(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """Render a datetime as a UTC ISO-8601 string with microsecond precision."""
    if dt.tzinfo is None:
        raise TimestampError("timestamp must include timezone information")
    utc = dt.astimezone(timezone.utc)
    return utc.isoformat(timespec="microseconds").replace("+00:00", "Z")


def assert_within_skew(timestamp: str, *, max_skew_ms: int, now: datetime | None = None) -> datetime:
    """Validate timestamp string and ensure it is within the configured skew."""
    dt = parse_timestamp(timestamp)
    ref = now or utc_now()
    delta_ms = abs((ref - dt).total_seconds() * 1000)
    if delta_ms > max_skew_ms:
        raise TimestampError(
            f"timestamp skew {delta_ms:.1f}ms exceeds max {max_skew_ms}ms"
        )
    return dt
