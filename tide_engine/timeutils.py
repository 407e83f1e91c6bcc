"""
Timestamp normalization.

Record dates reach the engine either as datetime/date objects or as raw
strings. They are normalized once, at the engine boundary, into an aware UTC
datetime; anything that cannot be normalized is reported as None and treated
as an invalid date downstream.
"""
import math
from datetime import date, datetime, time, timezone
from typing import Any, Optional

# J2000.0 epoch (JD 2451545.0)
J2000_EPOCH = datetime(2000, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def normalize_timestamp(value: Any) -> Optional[datetime]:
    """
    Convert a timestamp-like value to an aware UTC datetime.

    Args:
        value: datetime (naive values are taken as UTC), date (midnight UTC),
            ISO 8601 string (a trailing 'Z' is accepted) or epoch seconds

    Returns:
        UTC datetime, or None when the value is missing or unparsable
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time.min)
    elif isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def hours_since_j2000(dt: datetime) -> float:
    """Hours elapsed between the J2000.0 epoch and an aware datetime."""
    return (dt - J2000_EPOCH).total_seconds() / 3600.0


def day_of_year(dt: datetime) -> int:
    """Gregorian day number within the year (1-366)."""
    return dt.timetuple().tm_yday
