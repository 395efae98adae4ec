# backend/bookingwidget/services/widget/config.py
"""
Normalized widget configuration.

Instances are only ever produced by `normalizer.normalize_widget_config`;
every field is populated and every invariant already holds.
"""

from dataclasses import dataclass, field
from datetime import date

WEEKDAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
ALL_WEEKDAYS = frozenset(range(7))

QUESTION_TYPES = ("text", "textarea", "email", "phone", "number", "select", "checkbox")


@dataclass(frozen=True)
class DayHours:
    """Open window for one day, minutes since midnight."""
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class CustomDate:
    """One-off open date."""
    date: date
    hours: DayHours


@dataclass(frozen=True)
class BlockedTime:
    """Partial-day block; slots overlapping it stay visible but unbookable."""
    date: date
    start: int
    end: int
    reason: str | None = None


@dataclass(frozen=True)
class AdvanceBookingWindow:
    """
    Allowed lead time between "now" and a slot start.

    Attributes:
        min_lead_minutes: Earliest bookable start is now + this
        max_lead_days: Latest bookable start is now + this many days
        same_day_allowed: False = nothing bookable on today's date
    """
    min_lead_minutes: int = 0
    max_lead_days: int = 30
    same_day_allowed: bool = True

    @property
    def max_lead_minutes(self) -> int:
        return self.max_lead_days * 24 * 60


@dataclass(frozen=True)
class TicketType:
    id: str
    name: str
    price_per_unit: float = 0.0


@dataclass(frozen=True)
class FormField:
    id: str
    label: str
    type: str = "text"
    required: bool = False
    options: tuple[str, ...] = ()


DEFAULT_TICKET_TYPE = TicketType(id="players", name="Players", price_per_unit=0.0)


@dataclass(frozen=True)
class WidgetConfig:
    operating_days: frozenset[int] = ALL_WEEKDAYS
    start_time: int = 10 * 60
    end_time: int = 22 * 60
    slot_interval_minutes: int = 60
    advance_booking: AdvanceBookingWindow = field(default_factory=AdvanceBookingWindow)
    custom_hours: dict[date, DayHours | None] = field(default_factory=dict)
    weekly_hours: dict[int, DayHours | None] = field(default_factory=dict)
    custom_dates: tuple[CustomDate, ...] = ()
    blocked_dates: frozenset[date] = frozenset()
    blocked_times: tuple[BlockedTime, ...] = ()
    ticket_types: tuple[TicketType, ...] = (DEFAULT_TICKET_TYPE,)
    min_players: int = 1
    max_players: int = 8
    slot_capacity: int = 8
    additional_questions: tuple[FormField, ...] = ()
    count_no_show_against_capacity: bool = False
    timezone: str | None = None

    @property
    def default_hours(self) -> DayHours:
        return DayHours(self.start_time, self.end_time)

    def ticket_type(self, ticket_id: str) -> TicketType | None:
        for ticket in self.ticket_types:
            if ticket.id == ticket_id:
                return ticket
        return None

    def counted_statuses(self) -> tuple[str, ...]:
        """Booking statuses that consume slot capacity."""
        if self.count_no_show_against_capacity:
            return ("pending", "confirmed", "no-show")
        return ("pending", "confirmed")
