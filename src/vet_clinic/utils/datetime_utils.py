"""
DateTime utilities for clinic scheduling.

All timestamps handled by the services are timezone-aware UTC values.
"""

from datetime import datetime, timedelta
from typing import Tuple
from zoneinfo import ZoneInfo

UTC = ZoneInfo("UTC")


def get_current_utc() -> datetime:
    """Get the current UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    Naive values are assumed to already be in UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def window_around(moment: datetime, minutes: int) -> Tuple[datetime, datetime]:
    """Return the (start, end) bounds of a symmetric window around a moment."""
    moment = ensure_utc(moment)
    delta = timedelta(minutes=minutes)
    return moment - delta, moment + delta


def reminder_window(
    now: datetime, lead_hours: int = 24, width_hours: int = 1
) -> Tuple[datetime, datetime]:
    """
    Return the closed range of appointment times due for a reminder.

    Args:
        now: Reference time of the sweep
        lead_hours: How far ahead the reminder is sent
        width_hours: Width of the range, matching the sweep period

    Returns:
        ``(now + lead, now + lead + width)``
    """
    start = ensure_utc(now) + timedelta(hours=lead_hours)
    return start, start + timedelta(hours=width_hours)
