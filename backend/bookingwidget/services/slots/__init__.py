# backend/bookingwidget/services/slots/__init__.py
"""
Slots calculation module.

calculator:   pure (config, date, snapshot, now) → slots
availability: snapshot reads, Redis memoization, month calendar
"""

from .calculator import CapacitySnapshot, Slot, compute_slots, resolve_day_window
from .redis_store import SlotsRedisStore
from .invalidator import invalidate_activity_cache
from .availability import (
    AvailabilityResult,
    CalendarDay,
    calculate_activity_availability,
    calculate_calendar,
    get_capacity_snapshot,
)

__all__ = [
    "CapacitySnapshot",
    "Slot",
    "compute_slots",
    "resolve_day_window",
    "SlotsRedisStore",
    "invalidate_activity_cache",
    "AvailabilityResult",
    "CalendarDay",
    "calculate_activity_availability",
    "calculate_calendar",
    "get_capacity_snapshot",
]
