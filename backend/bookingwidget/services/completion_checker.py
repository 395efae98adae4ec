"""
Booking completion checker.

Periodically completes confirmed bookings whose slot has ended
(booking_date + end_time <= now) and emits booking_completed events.
"now" is taken in each activity's venue timezone, so a slot ends at
the wall-clock time the customer booked.

Runs as an asyncio task in backend lifespan.
Uses synchronous DB and Redis (via asyncio.to_thread).
"""

import asyncio
import logging
from datetime import date, datetime, timedelta, timezone

from sqlalchemy.orm import Session

from ..config import settings
from ..database import SessionLocal
from ..errors import ConfigValidationError, InvalidTransition
from ..models import Bookings
from .bookings.controller import complete
from .bookings.lifecycle import CONFIRMED
from .slots.availability import load_activity_config, local_now
from .slots.config import combine, time_str_to_minutes
from .widget.config import WidgetConfig

logger = logging.getLogger(__name__)


async def completion_checker_loop(interval: int | None = None) -> None:
    """
    Periodic loop completing confirmed bookings after their slot ends.

    Pending bookings are left alone: an unpaid booking is not completed
    automatically.
    """
    interval = interval or settings.completion_check_interval
    logger.info("completion_checker_loop started")

    try:
        while True:
            try:
                await asyncio.to_thread(check_completed_bookings)
            except asyncio.CancelledError:
                logger.info("completion_checker_loop cancelled")
                raise
            except Exception:
                logger.exception("completion_checker_loop error")

            await asyncio.sleep(interval)
    except asyncio.CancelledError:
        pass


def check_completed_bookings(now: datetime | None = None) -> int:
    """Complete every ended confirmed booking (synchronous). Returns the count."""
    now = now or datetime.now(timezone.utc)

    db = SessionLocal()
    try:
        return complete_ended_bookings(db, now)
    finally:
        db.close()


def complete_ended_bookings(db: Session, now: datetime) -> int:
    """
    Complete confirmed bookings whose slot ended before `now`.

    An aware `now` is converted per activity timezone; a naive one is
    compared as venue-local time.
    """
    # Venues east of `now` may already be on the next day
    latest = (now.date() + timedelta(days=1)).isoformat()
    bookings = (
        db.query(Bookings)
        .filter(
            Bookings.status == CONFIRMED,
            Bookings.booking_date <= latest,
        )
        .all()
    )

    configs: dict[int, WidgetConfig] = {}
    completed = 0
    for booking in bookings:
        try:
            config = _activity_config(booking, configs)
            if _process_single_booking(db, booking, local_now(config, now)):
                completed += 1
        except InvalidTransition:
            # Moved by an operator between the query and the update
            logger.info(f"Booking {booking.id} changed status before completion, skipped")
        except Exception:
            logger.exception(f"Error processing booking {booking.id} for completion")
            db.rollback()
    return completed


def _activity_config(booking: Bookings, configs: dict[int, WidgetConfig]) -> WidgetConfig:
    if booking.activity_id not in configs:
        try:
            configs[booking.activity_id] = load_activity_config(booking.activity)
        except ConfigValidationError as e:
            logger.warning(
                f"Activity {booking.activity_id} has an invalid widget config, "
                f"completing in server time: {e.detail}"
            )
            configs[booking.activity_id] = WidgetConfig()
    return configs[booking.activity_id]


def _process_single_booking(db: Session, booking: Bookings, now: datetime) -> bool:
    """Complete a single booking if its slot has ended."""
    try:
        slot_end = combine(
            date.fromisoformat(booking.booking_date),
            time_str_to_minutes(booking.end_time),
        )
    except (ValueError, TypeError):
        logger.warning(f"Booking {booking.id} has an unparseable slot, skipped")
        return False

    if slot_end > now:
        return False

    complete(db, booking.id)
    logger.info(
        f"booking_completed for booking={booking.id} "
        f"(slot ended at {slot_end.strftime('%Y-%m-%d %H:%M')})"
    )
    return True
