# backend/bookingwidget/services/bookings/controller.py
"""
Booking lifecycle operations.

submit                → pending booking, capacity-checked under the date lock
confirm_payment       → confirmed (payment paid / partial)
cancel                → cancelled, optional refund through the payment collaborator
request_refund        → explicit refund for an already cancelled booking
refresh_refund_status → idempotent status query, never re-issues a refund
mark_no_show, complete

Every status change bumps the date's capacity version, drops cached
slots for that date and emits an event for notification delivery.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Mapping, Sequence

from redis import Redis
from sqlalchemy.orm import Session

from ...errors import (
    ActivityNotFound,
    BookingNotFound,
    BookingValidationError,
    FieldError,
    InvalidTransition,
    RefundFailed,
    RefundInProgress,
    SlotUnavailable,
)
from ...models import Activities, Bookings
from ...redis_client import redis_client
from ..embed.keys import resolve_venue
from ..events import emit_event
from ..payments import PaymentCollaborator, RefundResult
from ..slots.availability import load_activity_config, local_now
from ..slots.calculator import REASON_BLOCKED, compute_slots
from ..slots.config import time_str_to_minutes
from ..slots.invalidator import invalidate_activity_cache
from ..widget.config import WidgetConfig
from . import store
from .lifecycle import (
    CANCELLED,
    COMPLETED,
    CONFIRMED,
    NO_SHOW,
    PAYMENT_PAID,
    PAYMENT_PARTIAL,
    PAYMENT_REFUNDED,
    REFUND_FAILED,
    REFUND_REQUESTED,
    REFUND_SUCCEEDED,
    STATUS_EVENTS,
)

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


@dataclass
class CancelOutcome:
    booking: Bookings
    refund: RefundResult | None = None
    refund_error: RefundFailed | None = None

    @property
    def refund_status(self) -> str:
        return self.booking.refund_status


# ── Lookups ──────────────────────────────────────────────────────────────


def get_booking(db: Session, booking_id: int) -> Bookings:
    booking = db.get(Bookings, booking_id)
    if not booking:
        raise BookingNotFound()
    return booking


def get_activity(db: Session, venue_id: int, activity_id: int) -> Activities:
    activity = (
        db.query(Activities)
        .filter(
            Activities.id == activity_id,
            Activities.venue_id == venue_id,
            Activities.is_active == 1,
        )
        .first()
    )
    if not activity:
        raise ActivityNotFound()
    return activity


# ── Validation ───────────────────────────────────────────────────────────


def _get(data: Any, name: str, default: Any = None) -> Any:
    if isinstance(data, Mapping):
        return data.get(name, default)
    return getattr(data, name, default)


def _validate_customer(customer: Any, errors: list[FieldError]) -> dict:
    name = str(_get(customer, "name") or "").strip()
    email = str(_get(customer, "email") or "").strip()
    phone = str(_get(customer, "phone") or "").strip() or None

    if not name:
        errors.append(FieldError("customer.name", "Name is required", "required"))
    if not email:
        errors.append(FieldError("customer.email", "Email is required", "required"))
    elif not EMAIL_RE.match(email):
        errors.append(FieldError("customer.email", "Invalid email address", "invalid"))

    return {"customer_name": name, "customer_email": email, "customer_phone": phone}


def _validate_tickets(
    config: WidgetConfig,
    selections: Sequence[Any],
    errors: list[FieldError],
) -> tuple[int, float, list[dict]]:
    """Returns (players, total_amount, normalized selections)."""
    players = 0
    total = 0.0
    normalized = []
    count = len(errors)

    if not selections:
        errors.append(FieldError("ticket_selections", "Select at least one ticket", "required"))
        return 0, 0.0, []

    for i, selection in enumerate(selections):
        ticket_id = _get(selection, "ticket_type_id")
        quantity = _get(selection, "quantity")
        ticket = config.ticket_type(str(ticket_id)) if ticket_id is not None else None

        if ticket is None:
            errors.append(FieldError(f"ticket_selections[{i}].ticket_type_id", f"Unknown ticket type {ticket_id!r}", "invalid"))
            continue
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
            errors.append(FieldError(f"ticket_selections[{i}].quantity", "Quantity must be a non-negative integer", "range"))
            continue
        if quantity == 0:
            continue

        players += quantity
        total += quantity * ticket.price_per_unit
        normalized.append({
            "ticket_type_id": ticket.id,
            "name": ticket.name,
            "quantity": quantity,
            "price_per_unit": ticket.price_per_unit,
        })

    if len(errors) == count and not config.min_players <= players <= config.max_players:
        errors.append(FieldError(
            "ticket_selections",
            f"Total players must be between {config.min_players} and {config.max_players}",
            "range",
        ))

    return players, round(total, 2), normalized


def _validate_answers(
    config: WidgetConfig,
    answers: Mapping[str, Any] | None,
    errors: list[FieldError],
) -> dict:
    answers = dict(answers or {})
    known = {q.id for q in config.additional_questions}

    for question in config.additional_questions:
        value = answers.get(question.id)
        path = f"answers.{question.id}"
        empty = value is None or value is False or (isinstance(value, str) and not value.strip())

        if question.required and empty:
            errors.append(FieldError(path, f"'{question.label}' is required", "required"))
            continue
        if empty:
            continue
        if question.type == "select" and str(value) not in question.options:
            errors.append(FieldError(path, f"'{value}' is not one of the options", "invalid"))
        elif question.type == "email" and not EMAIL_RE.match(str(value)):
            errors.append(FieldError(path, "Invalid email address", "invalid"))
        elif question.type == "number":
            try:
                float(value)
            except (TypeError, ValueError):
                errors.append(FieldError(path, "Must be a number", "invalid"))

    return {k: v for k, v in answers.items() if k in known}


# ── Helpers ──────────────────────────────────────────────────────────────


def _redis(redis: Redis | None) -> Redis | None:
    return redis if redis is not None else redis_client


def _booking_written(booking: Bookings, event_type: str, redis: Redis | None, **extra) -> None:
    """Drop cached slots for the booking's date and notify."""
    client = _redis(redis)
    invalidate_activity_cache(client, booking.activity_id, [date.fromisoformat(booking.booking_date)])
    emit_event(event_type, {
        "booking_id": booking.id,
        "venue_id": booking.venue_id,
        "activity_id": booking.activity_id,
        "status": booking.status,
        **extra,
    }, client)


# ── Operations ───────────────────────────────────────────────────────────


def submit(
    db: Session,
    embed_key: str,
    activity_id: int,
    slot_date: date,
    start_time: str,
    ticket_selections: Sequence[Any],
    customer: Any,
    answers: Mapping[str, Any] | None = None,
    now: datetime | None = None,
    redis: Redis | None = None,
) -> Bookings:
    """
    Create a pending booking.

    Raises:
        InvalidEmbedKey / EmbedKeyNotFound / ActivityNotFound
        ConfigValidationError: stored widget config is malformed
        BookingValidationError: customer info, tickets or answers invalid
        SlotUnavailable: not a bookable slot of that day
        SlotFull: capacity taken by a concurrent submission
    """
    venue = resolve_venue(db, embed_key)
    activity = get_activity(db, venue.id, activity_id)
    config = load_activity_config(activity)

    errors: list[FieldError] = []
    customer_fields = _validate_customer(customer, errors)
    players, total_amount, selections = _validate_tickets(config, ticket_selections, errors)
    clean_answers = _validate_answers(config, answers, errors)

    try:
        start = time_str_to_minutes(start_time)
    except ValueError:
        errors.append(FieldError("start_time", f"Invalid time {start_time!r}", "time_format"))
        start = None

    if errors:
        raise BookingValidationError(errors)

    # Slot must exist on the computed day; capacity is checked under the lock
    day_slots = compute_slots(config, slot_date, now=local_now(config, now))
    slot = next((s for s in day_slots if s.start_time == start), None)
    if slot is None or slot.reason == REASON_BLOCKED:
        raise SlotUnavailable(f"{slot_date.isoformat()} {start_time} is not open for booking")

    booking = store.insert_booking(
        db,
        venue_id=venue.id,
        activity_id=activity.id,
        config=config,
        slot_date=slot_date,
        start=slot.start_time,
        end=slot.end_time,
        players=players,
        fields={
            **customer_fields,
            "total_amount": total_amount,
            "ticket_selections": store.dump_json(selections),
            "answers": store.dump_json(clean_answers),
        },
    )

    _booking_written(booking, STATUS_EVENTS[booking.status], redis, initiated_by={"channel": "widget"})
    return booking


def confirm_payment(
    db: Session,
    booking_id: int,
    amount_paid: float | None = None,
    redis: Redis | None = None,
) -> Bookings:
    """
    Record a payment: pending → confirmed, or a top-up on a confirmed booking.

    amount_paid None means the full total; less than the total is a deposit.
    """
    booking = get_booking(db, booking_id)
    amount = booking.total_amount if amount_paid is None else amount_paid
    if amount < 0:
        raise BookingValidationError([FieldError("amount_paid", "Must be a non-negative number", "range")])

    paid = round((booking.amount_paid or 0) + amount, 2)
    payment_status = PAYMENT_PAID if paid >= booking.total_amount else PAYMENT_PARTIAL

    if booking.status == CONFIRMED:
        booking = store.update_fields(db, booking, amount_paid=paid, payment_status=payment_status)
        logger.info(f"Booking {booking.id} payment top-up: paid={paid} status={payment_status}")
        return booking

    booking = store.change_status(db, booking, CONFIRMED, amount_paid=paid, payment_status=payment_status)
    _booking_written(booking, STATUS_EVENTS[CONFIRMED], redis, payment_status=payment_status)
    return booking


def cancel(
    db: Session,
    booking_id: int,
    reason: str | None = None,
    issue_refund: bool = False,
    payments: PaymentCollaborator | None = None,
    redis: Redis | None = None,
) -> CancelOutcome:
    """
    Cancel, then optionally refund.

    The cancellation is committed first and never rolled back; a refund
    failure is reported in the outcome (refund_error) with refund_status
    'failed' and payment_status left as it was.
    """
    booking = get_booking(db, booking_id)
    booking = store.change_status(db, booking, CANCELLED, cancel_reason=reason)
    _booking_written(booking, STATUS_EVENTS[CANCELLED], redis, reason=reason)

    if not issue_refund:
        return CancelOutcome(booking)
    return _issue_refund(db, booking, payments, reason, redis)


def request_refund(
    db: Session,
    booking_id: int,
    payments: PaymentCollaborator | None,
    reason: str | None = None,
    redis: Redis | None = None,
) -> CancelOutcome:
    """
    Explicit refund for a cancelled booking (e.g. after a failed attempt).

    Raises:
        InvalidTransition: booking is not cancelled
        RefundInProgress: a refund is already requested or succeeded
    """
    booking = get_booking(db, booking_id)
    if booking.status != CANCELLED:
        raise InvalidTransition(booking.status, "refunded")
    return _issue_refund(db, booking, payments, reason, redis)


def _issue_refund(
    db: Session,
    booking: Bookings,
    payments: PaymentCollaborator | None,
    reason: str | None,
    redis: Redis | None,
) -> CancelOutcome:
    if booking.refund_status in (REFUND_REQUESTED, REFUND_SUCCEEDED):
        raise RefundInProgress()

    # Pending bookings still go to the collaborator; it decides what a zero refund means
    amount = booking.amount_paid or 0

    if payments is None:
        booking = store.update_fields(db, booking, refund_status=REFUND_FAILED)
        error = RefundFailed("Payment collaborator is not configured")
        logger.error(f"Refund for booking {booking.id} failed: {error.detail}")
        return CancelOutcome(booking, RefundResult(REFUND_FAILED, detail=error.detail), error)

    # Mark before calling out: a crash mid-request must not look like "no refund"
    booking = store.update_fields(db, booking, refund_status=REFUND_REQUESTED)
    result = payments.request_refund(
        booking.id,
        amount,
        reason=reason,
        idempotency_key=f"booking-{booking.id}-refund",
    )
    return _apply_refund_result(db, booking, result, redis)


def _apply_refund_result(
    db: Session,
    booking: Bookings,
    result: RefundResult,
    redis: Redis | None,
) -> CancelOutcome:
    refund_id = result.refund_id or booking.refund_id

    if result.failed:
        booking = store.update_fields(db, booking, refund_status=REFUND_FAILED, refund_id=refund_id)
        error = RefundFailed(result.detail or RefundFailed.default_detail)
        logger.error(f"Refund for booking {booking.id} failed: {error.detail}")
        emit_event("refund_failed", {"booking_id": booking.id, "detail": error.detail}, _redis(redis))
        return CancelOutcome(booking, result, error)

    if result.succeeded:
        booking = store.update_fields(
            db, booking,
            refund_status=REFUND_SUCCEEDED,
            payment_status=PAYMENT_REFUNDED,
            refund_id=refund_id,
        )
        emit_event("refund_succeeded", {"booking_id": booking.id, "refund_id": refund_id}, _redis(redis))
        return CancelOutcome(booking, result)

    booking = store.update_fields(db, booking, refund_status=REFUND_REQUESTED, refund_id=refund_id)
    return CancelOutcome(booking, result)


def refresh_refund_status(
    db: Session,
    booking_id: int,
    payments: PaymentCollaborator | None,
    redis: Redis | None = None,
) -> CancelOutcome:
    """Query the collaborator for a pending refund; safe to call repeatedly."""
    booking = get_booking(db, booking_id)

    if booking.refund_status != REFUND_REQUESTED or not booking.refund_id or payments is None:
        return CancelOutcome(booking)

    result = payments.get_refund_status(booking.refund_id)
    if result.failed or result.succeeded:
        return _apply_refund_result(db, booking, result, redis)
    return CancelOutcome(booking, result)


def mark_no_show(db: Session, booking_id: int, redis: Redis | None = None) -> Bookings:
    booking = store.change_status(db, get_booking(db, booking_id), NO_SHOW)
    _booking_written(booking, STATUS_EVENTS[NO_SHOW], redis)
    return booking


def complete(db: Session, booking_id: int, redis: Redis | None = None) -> Bookings:
    booking = store.change_status(db, get_booking(db, booking_id), COMPLETED)
    _booking_written(booking, STATUS_EVENTS[COMPLETED], redis)
    return booking

