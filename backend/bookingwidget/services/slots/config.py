# backend/bookingwidget/services/slots/config.py
"""
Time helpers shared by the normalizer and the slot calculator.

Times of day are plain ints (minutes since midnight); "24:00" is allowed
as an end-of-day bound.
"""

import re
from datetime import date, datetime, time, timedelta

MINUTES_PER_DAY = 24 * 60

# Longest range the calendar endpoint answers for in one call
CALENDAR_MAX_DAYS = 93

_TIME_24 = re.compile(r"^(\d{1,2}):(\d{2})$")
_TIME_12 = re.compile(r"^(\d{1,2}):(\d{2})\s*(AM|PM)$", re.IGNORECASE)


def time_str_to_minutes(value: str) -> int:
    """
    Parse "HH:MM" (24h) or "h:MM AM/PM" into minutes since midnight.

    Raises ValueError on anything else.
    """
    cleaned = re.sub(r"\s+", " ", str(value).strip())

    match = _TIME_24.match(cleaned)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if minute > 59 or hour > 24 or (hour == 24 and minute != 0):
            raise ValueError(f"Invalid time: {value!r}")
        return hour * 60 + minute

    match = _TIME_12.match(cleaned)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if not 1 <= hour <= 12 or minute > 59:
            raise ValueError(f"Invalid time: {value!r}")
        period = match.group(3).upper()
        if period == "PM" and hour != 12:
            hour += 12
        elif period == "AM" and hour == 12:
            hour = 0
        return hour * 60 + minute

    raise ValueError(f"Invalid time: {value!r}")


def minutes_to_time_str(minutes: int) -> str:
    """Convert minutes since midnight to "HH:MM"."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def combine(target_date: date, minutes: int) -> datetime:
    """Naive local datetime for a time-of-day on a date (1440 = next midnight)."""
    return datetime.combine(target_date, time.min) + timedelta(minutes=minutes)


def date_range(start: date, end: date) -> list[date]:
    """Dates in [start, end], empty if end < start."""
    days = []
    current = start
    while current <= end:
        days.append(current)
        current += timedelta(days=1)
    return days
