"""Timestamp parsing shared by the export parsers and artifact reader."""

from datetime import UTC, datetime


def parse_iso(ts: str | None) -> datetime | None:
    """Parse an ISO 8601 timestamp. Naive values are taken as UTC.

    Returns None for: None, empty string, unparseable text.
    """
    if not ts:
        return None
    try:
        dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt


def from_epoch(seconds: float | None) -> datetime | None:
    """Convert Unix epoch seconds (ChatGPT's create_time) to an aware datetime."""
    if seconds is None:
        return None
    try:
        return datetime.fromtimestamp(seconds, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def to_iso(dt: datetime) -> str:
    return dt.astimezone(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def utcnow() -> datetime:
    return datetime.now(UTC)
