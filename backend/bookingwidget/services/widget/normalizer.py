# backend/bookingwidget/services/widget/normalizer.py
"""
Widget configuration normalizer.

Turns the loosely-typed configuration bag the widget admin saves
(camelCase keys, optional everything) into a `WidgetConfig`.

Every problem is collected, never just the first one:
    result = normalize_widget_config(raw)
    if not result.ok:
        result.errors  -> [FieldError("endTime", ...), FieldError("maxPlayers", ...)]

Downstream code never re-applies defaults; it only sees WidgetConfig.

Weekdays are 0 = Monday internally (date.weekday()). `operatingDays`
accepts names ("monday", "mon") or the admin UI's getDay() numbers,
where 0 = Sunday and 6 = Saturday. A missing `operatingDays` means every
day is open; an explicit empty list means the activity never opens.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ...errors import ConfigValidationError, FieldError
from ..slots.config import MINUTES_PER_DAY, time_str_to_minutes
from .config import (
    ALL_WEEKDAYS,
    DEFAULT_TICKET_TYPE,
    QUESTION_TYPES,
    WEEKDAY_NAMES,
    AdvanceBookingWindow,
    BlockedTime,
    CustomDate,
    DayHours,
    FormField,
    TicketType,
    WidgetConfig,
)

logger = logging.getLogger(__name__)

DEFAULT_START_TIME = "10:00"
DEFAULT_END_TIME = "22:00"
DEFAULT_SLOT_INTERVAL = 60
DEFAULT_MIN_PLAYERS = 1
DEFAULT_MAX_PLAYERS = 8
DEFAULT_MAX_LEAD_DAYS = 30

_CLOSED_MARKERS = ("closed", "off", "day_off")


@dataclass
class NormalizeResult:
    """Ok(config) when errors is empty, Err(errors) otherwise."""
    config: WidgetConfig | None = None
    errors: list[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.config is not None and not self.errors


def load_widget_config(raw: Mapping[str, Any] | None) -> WidgetConfig:
    """Normalize or raise ConfigValidationError listing every violated field."""
    result = normalize_widget_config(raw)
    if not result.ok:
        raise ConfigValidationError(result.errors)
    return result.config


def normalize_widget_config(raw: Mapping[str, Any] | None) -> NormalizeResult:
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        return NormalizeResult(errors=[FieldError("", "Configuration must be an object", "type")])

    errors: list[FieldError] = []

    operating_days = _parse_operating_days(_get(raw, "operatingDays", "operating_days"), errors)

    start_time = _parse_time(_get(raw, "startTime", "start_time", default=DEFAULT_START_TIME), "startTime", errors)
    end_time = _parse_time(_get(raw, "endTime", "end_time", default=DEFAULT_END_TIME), "endTime", errors)
    if start_time is not None and end_time is not None and start_time >= end_time:
        errors.append(FieldError("endTime", "endTime must be after startTime", "time_order"))

    interval = _parse_int(
        _get(raw, "slotIntervalMinutes", "slotInterval", "slot_interval_minutes", default=DEFAULT_SLOT_INTERVAL),
        "slotIntervalMinutes", errors, minimum=1, maximum=MINUTES_PER_DAY,
    )

    advance = _parse_advance_window(raw, errors)

    custom_hours, weekly_hours = _parse_custom_hours(raw, errors)
    custom_dates = _parse_custom_dates(_get(raw, "customDates", "custom_dates", "customAvailableDates"), errors)
    blocked_dates, blocked_times = _parse_blocked_dates(_get(raw, "blockedDates", "blocked_dates"), errors)

    ticket_types = _parse_ticket_types(raw, errors)

    min_players = _parse_int(
        _get(raw, "minPlayers", "min_players", "minAdults", default=DEFAULT_MIN_PLAYERS),
        "minPlayers", errors, minimum=1,
    )
    max_players = _parse_int(
        _get(raw, "maxPlayers", "max_players", "maxAdults", default=DEFAULT_MAX_PLAYERS),
        "maxPlayers", errors, minimum=1,
    )
    if min_players is not None and max_players is not None and min_players > max_players:
        errors.append(FieldError("minPlayers", "minPlayers must not exceed maxPlayers", "range"))

    capacity_raw = _get(raw, "slotCapacity", "slot_capacity", "capacity")
    slot_capacity = max_players
    if capacity_raw is not None:
        slot_capacity = _parse_int(capacity_raw, "slotCapacity", errors, minimum=1)

    questions = _parse_questions(_get(raw, "additionalQuestions", "additional_questions"), errors)

    count_no_show = _get(raw, "countNoShowAgainstCapacity", "count_no_show_against_capacity", default=False)
    if not isinstance(count_no_show, bool):
        errors.append(FieldError("countNoShowAgainstCapacity", "Must be a boolean", "type"))

    timezone = _get(raw, "timezone")
    if timezone in ("", None):
        timezone = None
    else:
        try:
            ZoneInfo(str(timezone))
        except (ZoneInfoNotFoundError, ValueError):
            errors.append(FieldError("timezone", f"Unknown timezone {timezone!r}", "invalid"))

    if errors:
        logger.debug(f"Widget config rejected: {[e.field for e in errors]}")
        return NormalizeResult(errors=errors)

    config = WidgetConfig(
        operating_days=operating_days,
        start_time=start_time,
        end_time=end_time,
        slot_interval_minutes=interval,
        advance_booking=advance,
        custom_hours=custom_hours,
        weekly_hours=weekly_hours,
        custom_dates=custom_dates,
        blocked_dates=blocked_dates,
        blocked_times=blocked_times,
        ticket_types=ticket_types,
        min_players=min_players,
        max_players=max_players,
        slot_capacity=slot_capacity,
        additional_questions=questions,
        count_no_show_against_capacity=count_no_show,
        timezone=timezone,
    )
    return NormalizeResult(config=config)


# ── Field parsers ────────────────────────────────────────────────────────


def _get(raw: Mapping[str, Any], *names: str, default: Any = None) -> Any:
    for name in names:
        if name in raw and raw[name] is not None:
            return raw[name]
    return default


def _parse_int(
    value: Any,
    path: str,
    errors: list[FieldError],
    minimum: int | None = None,
    maximum: int | None = None,
) -> int | None:
    if isinstance(value, bool):
        errors.append(FieldError(path, "Must be an integer", "type"))
        return None
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        value = int(value.strip())
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int):
        errors.append(FieldError(path, "Must be an integer", "type"))
        return None
    if minimum is not None and value < minimum:
        errors.append(FieldError(path, f"Must be at least {minimum}", "range"))
        return None
    if maximum is not None and value > maximum:
        errors.append(FieldError(path, f"Must be at most {maximum}", "range"))
        return None
    return value


def _parse_time(value: Any, path: str, errors: list[FieldError]) -> int | None:
    try:
        return time_str_to_minutes(value)
    except ValueError:
        errors.append(FieldError(path, f"Invalid time {value!r}, expected HH:MM", "time_format"))
        return None


def _parse_date(value: Any, path: str, errors: list[FieldError]) -> date | None:
    if isinstance(value, date):
        return value
    # "2030-01-07T00:00:00" style values carry a time part; nothing else may follow the date
    try:
        return date.fromisoformat(str(value).split("T", 1)[0])
    except ValueError:
        errors.append(FieldError(path, f"Invalid date {value!r}, expected YYYY-MM-DD", "date_format"))
        return None


def _parse_weekday(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        # 0 = Sunday, as the admin UI stores getDay() numbers
        return (value - 1) % 7 if 0 <= value <= 6 else None
    name = str(value).strip().lower()
    for index, day_name in enumerate(WEEKDAY_NAMES):
        if name == day_name or name == day_name[:3]:
            return index
    return None


def _parse_operating_days(value: Any, errors: list[FieldError]) -> frozenset[int]:
    if value is None:
        return ALL_WEEKDAYS
    if not isinstance(value, (list, tuple, set, frozenset)):
        errors.append(FieldError("operatingDays", "Must be a list of weekdays", "type"))
        return ALL_WEEKDAYS

    days = set()
    for i, item in enumerate(value):
        weekday = _parse_weekday(item)
        if weekday is None:
            errors.append(FieldError(f"operatingDays[{i}]", f"Unknown weekday {item!r}", "invalid"))
            continue
        days.add(weekday)
    return frozenset(days)


def _parse_hours(value: Any, path: str, errors: list[FieldError]) -> DayHours | None:
    """Parse a {startTime, endTime} window; caller handles 'closed' markers."""
    if not isinstance(value, Mapping):
        errors.append(FieldError(path, "Must be an object with startTime and endTime, or 'closed'", "type"))
        return None

    start = _parse_time(_get(value, "startTime", "start", "start_time"), f"{path}.startTime", errors)
    end = _parse_time(_get(value, "endTime", "end", "end_time"), f"{path}.endTime", errors)
    if start is None or end is None:
        return None
    if start >= end:
        errors.append(FieldError(f"{path}.endTime", "endTime must be after startTime", "time_order"))
        return None
    return DayHours(start, end)


def _is_closed(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip().lower() in _CLOSED_MARKERS
    if isinstance(value, Mapping):
        return value.get("closed") is True
    return False


def _parse_custom_hours(
    raw: Mapping[str, Any],
    errors: list[FieldError],
) -> tuple[dict[date, DayHours | None], dict[int, DayHours | None]]:
    """
    Split `customHours` into per-date overrides and per-weekday overrides.

    ISO date keys -> per-date (None = closed).
    Weekday keys  -> per-weekday, only when customHoursEnabled is not false;
                     {"enabled": false} entries mean "no override".
    """
    value = raw.get("customHours", raw.get("custom_hours"))
    weekly_enabled = _get(raw, "customHoursEnabled", "custom_hours_enabled", default=True)
    per_date: dict[date, DayHours | None] = {}
    weekly: dict[int, DayHours | None] = {}

    if value is None:
        return per_date, weekly
    if not isinstance(value, Mapping):
        errors.append(FieldError("customHours", "Must be an object keyed by date or weekday", "type"))
        return per_date, weekly

    for key, entry in value.items():
        path = f"customHours.{key}"
        weekday = _parse_weekday(key) if not str(key)[:1].isdigit() else None

        if weekday is not None:
            if weekly_enabled is False:
                continue
            if isinstance(entry, Mapping) and entry.get("enabled") is False:
                continue
            weekly[weekday] = None if _is_closed(entry) else _parse_hours(entry, path, errors)
            continue

        day = _parse_date(key, path, errors)
        if day is None:
            continue
        if _is_closed(entry) or (isinstance(entry, Mapping) and entry.get("enabled") is False):
            per_date[day] = None
        else:
            hours = _parse_hours(entry, path, errors)
            if hours is not None:
                per_date[day] = hours

    return per_date, weekly


def _parse_custom_dates(value: Any, errors: list[FieldError]) -> tuple[CustomDate, ...]:
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)):
        errors.append(FieldError("customDates", "Must be a list", "type"))
        return ()

    result = []
    for i, item in enumerate(value):
        path = f"customDates[{i}]"
        if not isinstance(item, Mapping):
            errors.append(FieldError(path, "Must be an object with date, startTime, endTime", "type"))
            continue
        day = _parse_date(item.get("date"), f"{path}.date", errors)
        hours = _parse_hours(item, path, errors)
        if day is not None and hours is not None:
            result.append(CustomDate(day, hours))
    return tuple(result)


def _parse_blocked_dates(
    value: Any,
    errors: list[FieldError],
) -> tuple[frozenset[date], tuple[BlockedTime, ...]]:
    """Plain dates / full-day objects are blackouts; objects with times are partial blocks."""
    if value is None:
        return frozenset(), ()
    if not isinstance(value, (list, tuple, set, frozenset)):
        errors.append(FieldError("blockedDates", "Must be a list", "type"))
        return frozenset(), ()

    full_days = set()
    partial = []
    for i, item in enumerate(value):
        path = f"blockedDates[{i}]"
        if not isinstance(item, Mapping):
            day = _parse_date(item, path, errors)
            if day is not None:
                full_days.add(day)
            continue

        day = _parse_date(item.get("date"), f"{path}.date", errors)
        has_times = item.get("startTime") or item.get("endTime")
        if item.get("blockType") == "time-slot" or has_times:
            hours = _parse_hours(item, path, errors)
            if day is not None and hours is not None:
                partial.append(BlockedTime(day, hours.start, hours.end, item.get("reason")))
        elif day is not None:
            full_days.add(day)

    return frozenset(full_days), tuple(partial)


def _parse_advance_window(raw: Mapping[str, Any], errors: list[FieldError]) -> AdvanceBookingWindow:
    value = _get(raw, "advanceBookingWindow", "advance_booking_window")
    legacy_days = _get(raw, "advanceBooking", "advance_booking")

    if value is None:
        value = {}
    if not isinstance(value, Mapping):
        errors.append(FieldError("advanceBookingWindow", "Must be an object", "type"))
        return AdvanceBookingWindow()

    min_minutes = 0
    min_hours = _get(value, "minHours", "min_hours")
    min_raw = _get(value, "minMinutes", "min_lead_minutes", "min")
    if min_hours is not None:
        hours = _parse_int(min_hours, "advanceBookingWindow.minHours", errors, minimum=0)
        min_minutes = hours * 60 if hours is not None else None
    elif min_raw is not None:
        min_minutes = _parse_int(min_raw, "advanceBookingWindow.minMinutes", errors, minimum=0)

    max_raw = _get(value, "maxDays", "max_lead_days", "max", default=legacy_days)
    max_days = DEFAULT_MAX_LEAD_DAYS
    if max_raw is not None:
        path = "advanceBookingWindow.maxDays" if "advanceBooking" not in raw or value else "advanceBooking"
        max_days = _parse_int(max_raw, path, errors, minimum=0)

    same_day = _get(value, "sameDayAllowed", "same_day_allowed", default=True)
    if value.get("noSameDay") is True:
        same_day = False
    if not isinstance(same_day, bool):
        errors.append(FieldError("advanceBookingWindow.sameDayAllowed", "Must be a boolean", "type"))
        same_day = True

    if min_minutes is None or max_days is None:
        return AdvanceBookingWindow()

    window = AdvanceBookingWindow(min_minutes, max_days, same_day)
    if window.min_lead_minutes > window.max_lead_minutes:
        errors.append(FieldError(
            "advanceBookingWindow",
            "Minimum lead time exceeds maximum lead time",
            "range",
        ))
    return window


def _parse_ticket_types(raw: Mapping[str, Any], errors: list[FieldError]) -> tuple[TicketType, ...]:
    value = _get(raw, "ticketTypes", "ticket_types")
    if value is None or (isinstance(value, (list, tuple)) and not value):
        price = _get(raw, "price", "adultPrice")
        if price is None:
            return (DEFAULT_TICKET_TYPE,)
        if isinstance(price, bool) or not isinstance(price, (int, float)) or price < 0:
            errors.append(FieldError("price", "Must be a non-negative number", "range"))
            return (DEFAULT_TICKET_TYPE,)
        return (TicketType(DEFAULT_TICKET_TYPE.id, DEFAULT_TICKET_TYPE.name, float(price)),)

    if not isinstance(value, (list, tuple)):
        errors.append(FieldError("ticketTypes", "Must be a list", "type"))
        return (DEFAULT_TICKET_TYPE,)

    tickets = []
    seen: set[str] = set()
    for i, item in enumerate(value):
        path = f"ticketTypes[{i}]"
        if not isinstance(item, Mapping):
            errors.append(FieldError(path, "Must be an object", "type"))
            continue

        ticket_id = str(item.get("id") or "").strip()
        name = str(item.get("name") or "").strip()
        price = _get(item, "pricePerUnit", "price_per_unit", "price", default=0)

        valid = True
        if not ticket_id:
            errors.append(FieldError(f"{path}.id", "Ticket type id is required", "required"))
            valid = False
        elif ticket_id in seen:
            errors.append(FieldError(f"{path}.id", f"Duplicate ticket type id {ticket_id!r}", "duplicate"))
            valid = False
        if not name:
            errors.append(FieldError(f"{path}.name", "Ticket type name is required", "required"))
            valid = False
        if isinstance(price, bool) or not isinstance(price, (int, float)) or price < 0:
            errors.append(FieldError(f"{path}.pricePerUnit", "Must be a non-negative number", "range"))
            valid = False

        if valid:
            seen.add(ticket_id)
            tickets.append(TicketType(ticket_id, name, float(price)))

    return tuple(tickets)


def _parse_questions(value: Any, errors: list[FieldError]) -> tuple[FormField, ...]:
    if value is None:
        return ()
    if not isinstance(value, (list, tuple)):
        errors.append(FieldError("additionalQuestions", "Must be a list", "type"))
        return ()

    questions = []
    seen: set[str] = set()
    for i, item in enumerate(value):
        path = f"additionalQuestions[{i}]"
        if not isinstance(item, Mapping):
            errors.append(FieldError(path, "Must be an object", "type"))
            continue

        field_id = str(item.get("id") or "").strip()
        label = str(item.get("label") or item.get("question") or "").strip()
        field_type = str(item.get("type") or "text").strip().lower()
        options = item.get("options") or []

        count = len(errors)
        if not field_id:
            errors.append(FieldError(f"{path}.id", "Question id is required", "required"))
        elif field_id in seen:
            errors.append(FieldError(f"{path}.id", f"Duplicate question id {field_id!r}", "duplicate"))
        if not label:
            errors.append(FieldError(f"{path}.label", "Question label is required", "required"))
        if field_type not in QUESTION_TYPES:
            errors.append(FieldError(f"{path}.type", f"Unknown question type {field_type!r}", "invalid"))
        if not isinstance(options, (list, tuple)):
            errors.append(FieldError(f"{path}.options", "Must be a list", "type"))
            options = []
        elif field_type == "select" and not options:
            errors.append(FieldError(f"{path}.options", "Select questions need options", "required"))

        if len(errors) == count:
            seen.add(field_id)
            questions.append(FormField(
                id=field_id,
                label=label,
                type=field_type,
                required=bool(item.get("required", False)),
                options=tuple(str(o) for o in options),
            ))

    return tuple(questions)
