# backend/bookingwidget/services/slots/availability.py
"""
Activity availability: capacity snapshot + config → slots.

Takes into account:
- Normalized widget config (hours, overrides, blocks, advance window)
- Existing bookings whose status consumes capacity
- Redis memoization keyed by snapshot version (optional)

A failed snapshot read never looks like "zero bookings": the result is
status="unknown" and the widget shows "availability temporarily unknown".
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from redis import Redis
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import settings
from ...errors import AvailabilityUnknown, ConfigValidationError, FieldError
from ...models import Activities, Bookings, CapacityVersions
from ..widget.config import WidgetConfig
from ..widget.normalizer import load_widget_config
from .calculator import (
    BookedInterval,
    CapacitySnapshot,
    Slot,
    filter_advance_window,
    generate_day_slots,
    resolve_day_window,
)
from .config import CALENDAR_MAX_DAYS, date_range, time_str_to_minutes
from .redis_store import SlotsRedisStore, config_fingerprint

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_UNKNOWN = "unknown"
STATUS_UNAVAILABLE = "unavailable"


@dataclass
class AvailabilityResult:
    status: str
    slots: list[Slot] = field(default_factory=list)
    snapshot_version: int | None = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


@dataclass
class CalendarDay:
    date: date
    has_slots: bool
    open_slots_count: int = 0
    reason: str | None = None

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "has_slots": self.has_slots,
            "open_slots_count": self.open_slots_count,
            "reason": self.reason,
        }


# ── Config / clock ───────────────────────────────────────────────────────


def load_activity_config(activity: Activities) -> WidgetConfig:
    """Normalize the stored widget_config; raises ConfigValidationError."""
    try:
        raw = json.loads(activity.widget_config or "{}")
    except json.JSONDecodeError:
        raise ConfigValidationError([FieldError("", "Stored configuration is not valid JSON", "json")])
    return load_widget_config(raw)


def local_now(config: WidgetConfig, now: datetime | None = None) -> datetime:
    """
    Naive venue-local "now" (the calculator compares naive datetimes).

    A naive `now` is taken as already venue-local; an aware one is
    converted to the venue timezone (server local time when unset).
    """
    if now is not None and now.tzinfo is None:
        return now
    if now is not None:
        local = now.astimezone(ZoneInfo(config.timezone)) if config.timezone else now.astimezone()
        return local.replace(tzinfo=None)
    if config.timezone:
        return datetime.now(ZoneInfo(config.timezone)).replace(tzinfo=None)
    return datetime.now()


# ── Capacity snapshot ────────────────────────────────────────────────────


def read_capacity_snapshot(
    db: Session,
    activity_id: int,
    target_date: date,
    statuses: tuple[str, ...],
) -> CapacitySnapshot:
    """Single read of version + counted booking intervals (no retry)."""
    date_str = target_date.isoformat()

    version = (
        db.query(CapacityVersions.version)
        .filter(
            CapacityVersions.activity_id == activity_id,
            CapacityVersions.date == date_str,
        )
        .scalar()
    )

    rows = (
        db.query(Bookings.start_time, Bookings.end_time, Bookings.players)
        .filter(
            Bookings.activity_id == activity_id,
            Bookings.booking_date == date_str,
            Bookings.status.in_(statuses),
        )
        .all()
    )

    try:
        intervals = tuple(
            BookedInterval(time_str_to_minutes(start), time_str_to_minutes(end), players)
            for start, end, players in rows
        )
    except ValueError as e:
        # Corrupt stored times: retrying reads the same rows
        logger.error(f"Unreadable booking times activity={activity_id} date={date_str}: {e}")
        raise AvailabilityUnknown(f"Capacity snapshot unreadable: {e}") from e
    return CapacitySnapshot(version=version or 0, intervals=intervals)


def get_capacity_snapshot(
    db: Session,
    activity_id: int,
    target_date: date,
    statuses: tuple[str, ...],
    retries: int | None = None,
) -> CapacitySnapshot:
    """
    Read the snapshot, retrying transient store errors.

    Raises:
        AvailabilityUnknown: every attempt failed, or stored booking times are unreadable
    """
    attempts = 1 + (settings.availability_read_retries if retries is None else retries)
    last_error: Exception | None = None

    for attempt in range(1, attempts + 1):
        try:
            return read_capacity_snapshot(db, activity_id, target_date, statuses)
        except SQLAlchemyError as e:
            last_error = e
            db.rollback()
            logger.warning(
                f"Capacity snapshot read failed activity={activity_id} "
                f"date={target_date} attempt={attempt}/{attempts}: {e}"
            )

    raise AvailabilityUnknown(f"Capacity snapshot unavailable: {last_error}")


# ── Slots (with cache) ───────────────────────────────────────────────────


def _get_day_slots(
    activity: Activities,
    config: WidgetConfig,
    target_date: date,
    snapshot: CapacitySnapshot,
    redis: Redis | None,
) -> list[Slot]:
    """Unfiltered day slots, using Redis cache when available."""
    if redis is None:
        return generate_day_slots(config, target_date, snapshot)

    store = SlotsRedisStore(redis, settings.slots_cache_ttl_seconds)
    fingerprint = config_fingerprint(activity.widget_config)
    try:
        cached = store.get_day_slots(activity.id, target_date, snapshot.version, fingerprint)
    except (RedisError, ValueError, KeyError) as e:
        logger.warning(f"Slot cache read failed for activity={activity.id}: {e}")
        cached = None
    if cached is not None:
        return cached

    # Cache miss: calculate and store
    slots = generate_day_slots(config, target_date, snapshot)
    try:
        store.store_day_slots(activity.id, target_date, snapshot.version, fingerprint, slots)
    except RedisError as e:
        logger.warning(f"Slot cache write failed for activity={activity.id}: {e}")
    return slots


def calculate_activity_availability(
    db: Session,
    activity: Activities,
    target_date: date,
    now: datetime | None = None,
    redis: Redis | None = None,
) -> AvailabilityResult:
    """
    Slots for one activity on one date.

    Returns:
        AvailabilityResult with status ok / unknown / unavailable.
    """
    try:
        config = load_activity_config(activity)
    except ConfigValidationError as e:
        logger.error(f"Activity {activity.id} has an invalid widget config: {e.detail}")
        return AvailabilityResult(STATUS_UNAVAILABLE, detail="Booking temporarily unavailable")

    try:
        snapshot = get_capacity_snapshot(db, activity.id, target_date, config.counted_statuses())
    except AvailabilityUnknown as e:
        return AvailabilityResult(STATUS_UNKNOWN, detail=e.default_detail)

    slots = _get_day_slots(activity, config, target_date, snapshot, redis)
    slots = filter_advance_window(config, slots, local_now(config, now))
    return AvailabilityResult(STATUS_OK, slots, snapshot.version)


# ── Calendar ─────────────────────────────────────────────────────────────


def calculate_calendar(
    db: Session,
    activity: Activities,
    start_date: date | None = None,
    end_date: date | None = None,
    now: datetime | None = None,
    redis: Redis | None = None,
) -> list[CalendarDay]:
    """
    Per-day summary for a date range (month view).

    Reasons for days without slots:
        past, beyond_advance_window, blocked, closed, fully_booked, unknown

    Raises:
        ConfigValidationError: stored config is malformed
        ValueError: end_date before start_date
    """
    config = load_activity_config(activity)
    current = local_now(config, now)
    today = current.date()
    last_bookable = (current + timedelta(minutes=config.advance_booking.max_lead_minutes)).date()

    start_date = start_date or today
    end_date = end_date or min(last_bookable, start_date + timedelta(days=CALENDAR_MAX_DAYS - 1))
    if end_date < start_date:
        raise ValueError("end_date must not be before start_date")
    end_date = min(end_date, start_date + timedelta(days=CALENDAR_MAX_DAYS - 1))

    days = []
    for day in date_range(start_date, end_date):
        if day < today:
            days.append(CalendarDay(day, False, reason="past"))
            continue
        if day > last_bookable:
            days.append(CalendarDay(day, False, reason="beyond_advance_window"))
            continue
        if day in config.blocked_dates:
            days.append(CalendarDay(day, False, reason="blocked"))
            continue
        if resolve_day_window(config, day) is None:
            days.append(CalendarDay(day, False, reason="closed"))
            continue

        try:
            snapshot = get_capacity_snapshot(db, activity.id, day, config.counted_statuses())
        except AvailabilityUnknown:
            days.append(CalendarDay(day, False, reason="unknown"))
            continue

        all_slots = _get_day_slots(activity, config, day, snapshot, redis)
        slots = filter_advance_window(config, all_slots, current)
        open_count = sum(1 for s in slots if s.bookable)

        if open_count:
            days.append(CalendarDay(day, True, open_count))
        elif not all_slots:
            days.append(CalendarDay(day, False, reason="closed"))
        elif not slots:
            days.append(CalendarDay(day, False, reason="past" if day == today else "beyond_advance_window"))
        elif all(s.reason == "blocked" for s in slots):
            days.append(CalendarDay(day, False, reason="blocked"))
        else:
            days.append(CalendarDay(day, False, reason="fully_booked"))

    return days
