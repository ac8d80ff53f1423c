"""
Datetime utilities for consistent timezone handling across the application.

All timestamps are stored and compared as timezone-aware UTC datetimes.
"""

import logging
from datetime import datetime, timezone, date
from typing import Optional

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """
    Get the current UTC datetime.

    Services call this through their own module namespace so tests can
    patch the clock per module.

    Returns:
        Current timezone-aware datetime in UTC
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime is timezone-aware in UTC.

    Some backends (SQLite) hand back naive datetimes even for
    TIMESTAMP(timezone=True) columns; those are assumed to already be UTC.

    Args:
        dt: Datetime to normalize

    Returns:
        Timezone-aware UTC datetime, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso_datetime(value: str) -> datetime:
    """
    Parse an ISO 8601 datetime string coming from tool arguments.

    Naive values are interpreted as UTC.

    Raises:
        ValueError: If the value is not a valid ISO 8601 datetime
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid datetime: {value!r}")
    text = value.strip()
    if text.endswith('Z'):
        text = text[:-1] + '+00:00'
    parsed = datetime.fromisoformat(text)
    result = ensure_utc(parsed)
    assert result is not None
    return result


def parse_iso_date(value: str) -> date:
    """Parse an ISO 8601 date (YYYY-MM-DD), also accepting a full datetime."""
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid date: {value!r}")
    text = value.strip()
    if len(text) > 10:
        return parse_iso_datetime(text).date()
    return date.fromisoformat(text)
