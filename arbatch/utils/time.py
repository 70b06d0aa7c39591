"""
Timestamp utilities.

Every timestamp the scheduler stores is timezone-aware UTC. Job configs
arrive as JSON, so date filters are parsed here at the boundary.
"""

from datetime import datetime, timezone
from typing import Optional

_UTC = timezone.utc


def utc_now() -> datetime:
    """Current time as a tz-aware UTC datetime."""
    return datetime.now(_UTC)


def ensure_utc(ts: datetime) -> datetime:
    """Validate that a datetime is tz-aware and convert to UTC.

    Raises:
        ValueError: If ts is naive (no tzinfo).
    """
    if ts.tzinfo is None:
        raise ValueError(
            "ensure_utc requires a tz-aware datetime, got naive. "
            "Hint: use datetime(..., tzinfo=timezone.utc) for UTC timestamps."
        )
    return ts.astimezone(_UTC)


def parse_iso_timestamp(value: Optional[str | datetime]) -> Optional[datetime]:
    """Parse an ISO-8601 string (or pass a datetime through) as UTC.

    Naive values are assumed to be UTC. Both 'Z' and '+00:00' suffixes are
    accepted.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = value
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=_UTC)
    return dt.astimezone(_UTC)
