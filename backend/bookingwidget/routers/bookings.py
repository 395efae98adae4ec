# backend/bookingwidget/routers/bookings.py

from fastapi import APIRouter, Depends, HTTPException, status
from redis import Redis
from sqlalchemy.orm import Session

from ..database import get_db
from ..redis_client import get_redis
from ..schemas.bookings import (
    BookingCancel,
    BookingCreate,
    BookingRead,
    CancelResponse,
    PaymentConfirm,
    RefundRead,
)
from ..services.bookings import controller
from ..services.bookings.controller import CancelOutcome
from ..services.payments import PaymentCollaborator, get_payments

router = APIRouter(prefix="/bookings", tags=["bookings"])

# Submission lives under the widget's public prefix
widget_router = APIRouter(prefix="/widget", tags=["bookings"])


def _cancel_response(outcome: CancelOutcome) -> CancelResponse:
    refund = None
    if outcome.refund is not None:
        refund = RefundRead(
            status=outcome.refund.status,
            refund_id=outcome.refund.refund_id,
            detail=outcome.refund.detail,
        )
    return CancelResponse(
        booking=BookingRead.model_validate(outcome.booking),
        refund_status=outcome.refund_status,
        refund=refund,
        refund_error=outcome.refund_error.to_dict() if outcome.refund_error else None,
    )


@widget_router.post(
    "/{embed_key}/activities/{activity_id}/bookings",
    response_model=BookingRead,
    status_code=status.HTTP_201_CREATED,
)
def submit_booking(
    embed_key: str,
    activity_id: int,
    data: BookingCreate,
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    """Never retried server-side: a SlotFull answer is final for this request."""
    return controller.submit(
        db,
        embed_key=embed_key,
        activity_id=activity_id,
        slot_date=data.date,
        start_time=data.start_time,
        ticket_selections=data.ticket_selections,
        customer=data.customer,
        answers=data.answers,
        redis=redis,
    )


@router.get("/{id}", response_model=BookingRead)
def get_booking(id: int, db: Session = Depends(get_db)):
    return controller.get_booking(db, id)


@router.post("/{id}/confirm-payment", response_model=BookingRead)
def confirm_payment(
    id: int,
    data: PaymentConfirm,
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    return controller.confirm_payment(db, id, data.amount_paid, redis=redis)


@router.post("/{id}/cancel", response_model=CancelResponse)
def cancel_booking(
    id: int,
    data: BookingCancel,
    db: Session = Depends(get_db),
    payments: PaymentCollaborator | None = Depends(get_payments),
    redis: Redis | None = Depends(get_redis),
):
    """
    200 even when the refund fails: the cancellation stands and
    refund_error carries the collaborator's answer.
    """
    outcome = controller.cancel(
        db, id,
        reason=data.reason,
        issue_refund=data.issue_refund,
        payments=payments,
        redis=redis,
    )
    return _cancel_response(outcome)


@router.post("/{id}/refund", response_model=CancelResponse)
def request_refund(
    id: int,
    db: Session = Depends(get_db),
    payments: PaymentCollaborator | None = Depends(get_payments),
    redis: Redis | None = Depends(get_redis),
):
    outcome = controller.request_refund(db, id, payments, redis=redis)
    return _cancel_response(outcome)


@router.get("/{id}/refund", response_model=CancelResponse)
def refund_status(
    id: int,
    db: Session = Depends(get_db),
    payments: PaymentCollaborator | None = Depends(get_payments),
    redis: Redis | None = Depends(get_redis),
):
    """Idempotent: only queries the collaborator, never re-issues a refund."""
    outcome = controller.refresh_refund_status(db, id, payments, redis=redis)
    return _cancel_response(outcome)


@router.post("/{id}/no-show", response_model=BookingRead)
def mark_no_show(id: int, db: Session = Depends(get_db), redis: Redis | None = Depends(get_redis)):
    return controller.mark_no_show(db, id, redis=redis)


@router.post("/{id}/complete", response_model=BookingRead)
def complete_booking(id: int, db: Session = Depends(get_db), redis: Redis | None = Depends(get_redis)):
    return controller.complete(db, id, redis=redis)


@router.patch("/{id}")
def patch_not_allowed():
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
    )


@router.delete("/{id}")
def delete_not_allowed():
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
    )
