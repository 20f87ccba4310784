"""
Domain time utilities (pure).

Centralized timestamp validation and serialization helpers.

Every timestamp the round engine stores or compares is UTC. Callers pass
`now` explicitly; nothing in the domain layer reads the wall clock.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional


def require_utc_timestamp(name: str, value: datetime) -> None:
    """
    Enforces that timestamps are UTC.

    Invariants:
    - Timestamps must be timezone-aware.
    - Timestamps must have UTC offset 0.
    """

    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware (UTC)")
    if value.utcoffset() != timedelta(0):
        raise ValueError(f"{name} must be a UTC timestamp (offset 0)")


def to_iso_utc(value: Optional[datetime], *, name: str) -> Optional[str]:
    """Serialize a UTC datetime to ISO-8601 (timezone-aware, offset 0)."""

    if value is None:
        return None
    require_utc_timestamp(name, value)
    return value.astimezone(timezone.utc).isoformat()


def parse_utc_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a stored timestamp into a timezone-aware UTC datetime.

    Stored documents commonly carry ISO-8601 strings, sometimes with a trailing 'Z'.
    Naive values are assumed to already be UTC.
    """

    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
