# backend/bookingwidget/services/slots/calculator.py
"""
Slot calculation for one activity on one date.

Pure function of (WidgetConfig, date, CapacitySnapshot, now):
no DB, no Redis, no clock. Same inputs give the same list.

Steps:
  1. Resolve the day's open window
     blocked date > customHours[date] > customDates > weekly override > global hours
  2. Walk the window in slot_interval steps; a slot that would run past
     the window end is dropped, never clipped
  3. Subtract counted bookings (capacity) and partial-day blocks
  4. Drop slots outside the advance-booking window
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from ..widget.config import DayHours, WidgetConfig
from .config import combine, minutes_to_time_str, time_str_to_minutes

REASON_SOLD_OUT = "sold_out"
REASON_BLOCKED = "blocked"


@dataclass(frozen=True)
class BookedInterval:
    start: int
    end: int
    players: int


@dataclass(frozen=True)
class CapacitySnapshot:
    """
    Point-in-time capacity read for (activity, date).

    version is bumped by every write that changes capacity on that date,
    so it doubles as the cache key component.
    """
    version: int = 0
    intervals: tuple[BookedInterval, ...] = ()

    def players_overlapping(self, start: int, end: int) -> int:
        return sum(i.players for i in self.intervals if i.start < end and start < i.end)


EMPTY_SNAPSHOT = CapacitySnapshot()


@dataclass(frozen=True)
class Slot:
    date: date
    start_time: int
    end_time: int
    capacity_remaining: int
    ticket_types_available: tuple[str, ...] = field(default_factory=tuple)
    bookable: bool = True
    reason: str | None = None

    @property
    def start_str(self) -> str:
        return minutes_to_time_str(self.start_time)

    @property
    def end_str(self) -> str:
        return minutes_to_time_str(self.end_time)

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "start_time": self.start_str,
            "end_time": self.end_str,
            "capacity_remaining": self.capacity_remaining,
            "ticket_types_available": list(self.ticket_types_available),
            "bookable": self.bookable,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Slot":
        return cls(
            date=date.fromisoformat(data["date"]),
            start_time=time_str_to_minutes(data["start_time"]),
            end_time=time_str_to_minutes(data["end_time"]),
            capacity_remaining=data["capacity_remaining"],
            ticket_types_available=tuple(data["ticket_types_available"]),
            bookable=data["bookable"],
            reason=data["reason"],
        )


def resolve_day_window(config: WidgetConfig, target_date: date) -> DayHours | None:
    """Effective open window for target_date, None when closed."""
    if target_date in config.blocked_dates:
        return None

    if target_date in config.custom_hours:
        return config.custom_hours[target_date]

    for custom in config.custom_dates:
        if custom.date == target_date:
            return custom.hours

    weekday = target_date.weekday()
    if weekday not in config.operating_days:
        return None
    if weekday in config.weekly_hours:
        return config.weekly_hours[weekday]
    return config.default_hours


def compute_slots(
    config: WidgetConfig,
    target_date: date,
    snapshot: CapacitySnapshot = EMPTY_SNAPSHOT,
    now: datetime | None = None,
) -> list[Slot]:
    """
    Ascending, non-overlapping, fixed-length slots for target_date.

    `now` is venue-local; None skips the advance-booking filter
    (used for cache fills, the filter runs again at read time).
    """
    slots = generate_day_slots(config, target_date, snapshot)
    if now is None:
        return slots
    return filter_advance_window(config, slots, now)


def generate_day_slots(
    config: WidgetConfig,
    target_date: date,
    snapshot: CapacitySnapshot = EMPTY_SNAPSHOT,
) -> list[Slot]:
    window = resolve_day_window(config, target_date)
    if window is None or window.length <= 0:
        return []

    blocks = [b for b in config.blocked_times if b.date == target_date]
    all_tickets = tuple(t.id for t in config.ticket_types)
    step = config.slot_interval_minutes

    slots: list[Slot] = []
    t = window.start
    while t + step <= window.end:
        end = t + step

        if any(b.start < end and t < b.end for b in blocks):
            slots.append(Slot(target_date, t, end, 0, (), False, REASON_BLOCKED))
        else:
            remaining = max(config.slot_capacity - snapshot.players_overlapping(t, end), 0)
            if remaining > 0:
                slots.append(Slot(target_date, t, end, remaining, all_tickets))
            else:
                slots.append(Slot(target_date, t, end, 0, (), False, REASON_SOLD_OUT))

        t += step

    return slots


def filter_advance_window(config: WidgetConfig, slots: list[Slot], now: datetime) -> list[Slot]:
    """Keep slots starting within [now + min lead, now + max lead]."""
    window = config.advance_booking
    earliest = now + timedelta(minutes=window.min_lead_minutes)
    latest = now + timedelta(minutes=window.max_lead_minutes)

    result = []
    for slot in slots:
        if not window.same_day_allowed and slot.date == now.date():
            continue
        start = combine(slot.date, slot.start_time)
        if earliest <= start <= latest:
            result.append(slot)
    return result
