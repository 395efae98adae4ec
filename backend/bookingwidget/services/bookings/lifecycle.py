# backend/bookingwidget/services/bookings/lifecycle.py
"""
Booking status machine.

    pending   → confirmed | cancelled
    confirmed → completed | cancelled | no-show
    completed, cancelled, no-show: terminal
"""

from ...errors import InvalidTransition

PENDING = "pending"
CONFIRMED = "confirmed"
COMPLETED = "completed"
CANCELLED = "cancelled"
NO_SHOW = "no-show"

STATUSES = (PENDING, CONFIRMED, COMPLETED, CANCELLED, NO_SHOW)

TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({CONFIRMED, CANCELLED}),
    CONFIRMED: frozenset({COMPLETED, CANCELLED, NO_SHOW}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
    NO_SHOW: frozenset(),
}

# Payment status
PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_PARTIAL = "partial"
PAYMENT_REFUNDED = "refunded"
PAYMENT_FAILED = "failed"

# Refund request status, tracked apart from payment_status
REFUND_NONE = "none"
REFUND_REQUESTED = "requested"
REFUND_FAILED = "failed"
REFUND_SUCCEEDED = "succeeded"

# Event emitted when a booking enters each status
STATUS_EVENTS = {
    PENDING: "booking_created",
    CONFIRMED: "booking_confirmed",
    COMPLETED: "booking_completed",
    CANCELLED: "booking_cancelled",
    NO_SHOW: "booking_no_show",
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def assert_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidTransition(current, target)


def is_terminal(status: str) -> bool:
    return not TRANSITIONS.get(status)
