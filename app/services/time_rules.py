"""
Time rules for work timers.
Handles timestamp parsing, UTC normalization, elapsed-time clamping and minute rounding.
"""
import math
from datetime import datetime
from typing import Optional, Union

import pytz


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(pytz.UTC)


def ensure_utc(dt: datetime) -> datetime:
    """
    Normalize a datetime to timezone-aware UTC.

    Naive values are taken to already be UTC (that is how SQLite hands back
    DateTime(timezone=True) columns).
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=pytz.UTC)
    return dt.astimezone(pytz.UTC)


def parse_timestamp(value: Union[datetime, str, None]) -> Optional[datetime]:
    """
    Parse a stored timestamp into an aware UTC datetime.

    Accepts datetimes and ISO-8601 strings (a trailing ``Z`` is allowed).
    Returns None for anything that does not parse.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if not isinstance(value, str):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return ensure_utc(parsed)


def elapsed_seconds(started_at: Union[datetime, str, None], now: datetime) -> Optional[float]:
    """
    Seconds between ``started_at`` and ``now``, clamped to >= 0.

    Returns None when ``started_at`` is missing or unparsable, or the result
    is not a finite number; callers keep their previous total in that case.
    """
    start = parse_timestamp(started_at)
    if start is None:
        return None
    seconds = (ensure_utc(now) - start).total_seconds()
    if not math.isfinite(seconds):
        return None
    return max(0.0, seconds)


def round_minutes(minutes: float) -> int:
    """Round a minute count half-up to a whole minute."""
    return int(math.floor(minutes + 0.5))


def utc_to_local(utc_datetime: datetime, timezone_str: str) -> datetime:
    """
    Convert UTC datetime to local timezone.

    Args:
        utc_datetime: UTC datetime (timezone-aware or naive)
        timezone_str: Timezone string (e.g., "America/Toronto")

    Returns:
        Local datetime (timezone-aware)
    """
    try:
        tz = pytz.timezone(timezone_str)
    except pytz.UnknownTimeZoneError:
        return ensure_utc(utc_datetime)
    return ensure_utc(utc_datetime).astimezone(tz)
