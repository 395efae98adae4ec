# backend/bookingwidget/services/bookings/store.py
"""
Store access for bookings that must be atomic with capacity.

Every write that changes capacity on (activity, date) goes through
`bump_capacity_version` as the FIRST statement of its transaction:

  - the UPDATE takes the row lock (SQLite: the database write lock),
    so concurrent submissions for the same date run one after another
  - the new version makes memoized availability for that date stale

Submission then re-reads the snapshot inside the same transaction, checks
capacity and inserts. The loser of a race for the last seat sees the
winner's booking in its fresh read and gets SlotFull.
"""

import json
import logging
import secrets
import string
from datetime import date, datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...errors import SlotFull
from ...models import Bookings, CapacityVersions
from ..slots.availability import read_capacity_snapshot
from ..slots.config import minutes_to_time_str
from ..widget.config import WidgetConfig
from .lifecycle import PENDING, assert_transition

logger = logging.getLogger(__name__)

CONFIRMATION_PREFIX = "CONF-"
CONFIRMATION_ALPHABET = string.ascii_uppercase + string.digits
CONFIRMATION_LENGTH = 8


def now_str() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def generate_confirmation_code() -> str:
    """CONF-XXXXXXXX from a CSPRNG (36^8 space)."""
    suffix = "".join(secrets.choice(CONFIRMATION_ALPHABET) for _ in range(CONFIRMATION_LENGTH))
    return f"{CONFIRMATION_PREFIX}{suffix}"


def _unique_confirmation_code(db: Session, attempts: int = 5) -> str:
    for _ in range(attempts):
        code = generate_confirmation_code()
        exists = db.query(Bookings.id).filter(Bookings.confirmation_code == code).first()
        if not exists:
            return code
    raise RuntimeError("Could not allocate a unique confirmation code")


# ── Capacity version ─────────────────────────────────────────────────────


def ensure_capacity_row(db: Session, activity_id: int, date_str: str) -> None:
    """Create the (activity, date) version row if missing; commits on its own."""
    exists = (
        db.query(CapacityVersions.id)
        .filter(CapacityVersions.activity_id == activity_id, CapacityVersions.date == date_str)
        .first()
    )
    if exists:
        return

    db.add(CapacityVersions(activity_id=activity_id, date=date_str, version=0))
    try:
        db.commit()
    except IntegrityError:
        # Created by a concurrent writer in the meantime
        db.rollback()


def bump_capacity_version(db: Session, activity_id: int, date_str: str) -> int:
    """Increment the version inside the current transaction; returns the new value."""
    db.query(CapacityVersions).filter(
        CapacityVersions.activity_id == activity_id,
        CapacityVersions.date == date_str,
    ).update(
        {CapacityVersions.version: CapacityVersions.version + 1},
        synchronize_session=False,
    )
    return (
        db.query(CapacityVersions.version)
        .filter(CapacityVersions.activity_id == activity_id, CapacityVersions.date == date_str)
        .scalar()
    )


# ── Writes ───────────────────────────────────────────────────────────────


def insert_booking(
    db: Session,
    venue_id: int,
    activity_id: int,
    config: WidgetConfig,
    slot_date: date,
    start: int,
    end: int,
    players: int,
    fields: dict,
) -> Bookings:
    """
    Lock → fresh snapshot → capacity check → insert, in one transaction.

    Raises:
        SlotFull: fewer than `players` seats left in the fresh snapshot
    """
    date_str = slot_date.isoformat()
    ensure_capacity_row(db, activity_id, date_str)

    try:
        version = bump_capacity_version(db, activity_id, date_str)

        snapshot = read_capacity_snapshot(db, activity_id, slot_date, config.counted_statuses())
        remaining = config.slot_capacity - snapshot.players_overlapping(start, end)
        if remaining < players:
            raise SlotFull(f"Only {max(remaining, 0)} places left in this slot")

        booking = Bookings(
            venue_id=venue_id,
            activity_id=activity_id,
            booking_date=date_str,
            start_time=minutes_to_time_str(start),
            end_time=minutes_to_time_str(end),
            players=players,
            confirmation_code=_unique_confirmation_code(db),
            status=PENDING,
            created_at=now_str(),
            updated_at=now_str(),
            **fields,
        )
        db.add(booking)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(booking)
    logger.info(
        f"Booking inserted: booking_id={booking.id} activity={activity_id} "
        f"date={date_str} {booking.start_time} players={players} version={version}"
    )
    return booking


def change_status(db: Session, booking: Bookings, target: str, **fields) -> Bookings:
    """
    Move a booking to `target` and bump its date's capacity version.

    Raises:
        InvalidTransition: target not reachable from the current status
    """
    assert_transition(booking.status, target)
    booking_id = booking.id
    ensure_capacity_row(db, booking.activity_id, booking.booking_date)

    try:
        bump_capacity_version(db, booking.activity_id, booking.booking_date)

        # Re-check under the lock: a concurrent writer may have moved it already
        db.refresh(booking)
        assert_transition(booking.status, target)

        booking.status = target
        for name, value in fields.items():
            setattr(booking, name, value)
        booking.updated_at = now_str()
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(booking)
    logger.info(f"Booking {booking_id} → {target}")
    return booking


def update_fields(db: Session, booking: Bookings, **fields) -> Bookings:
    """Non-status updates (payment/refund bookkeeping); capacity unaffected."""
    for name, value in fields.items():
        setattr(booking, name, value)
    booking.updated_at = now_str()
    db.commit()
    db.refresh(booking)
    return booking


def dump_json(value) -> str:
    return json.dumps(value, ensure_ascii=False)
