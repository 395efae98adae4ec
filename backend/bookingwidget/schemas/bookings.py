# backend/bookingwidget/schemas/bookings.py

import json
from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class TicketSelection(BaseModel):
    ticket_type_id: str
    quantity: int


class CustomerInfo(BaseModel):
    # Checked by the controller so every problem is reported at once
    name: str = ""
    email: str = ""
    phone: Optional[str] = None


class BookingCreate(BaseModel):
    date: date
    start_time: str = Field(description="Slot start, HH:MM")
    ticket_selections: list[TicketSelection]
    customer: CustomerInfo
    answers: dict[str, Any] = {}


class BookingCancel(BaseModel):
    reason: Optional[str] = None
    issue_refund: bool = False


class PaymentConfirm(BaseModel):
    amount_paid: Optional[float] = Field(None, ge=0, description="None = full total")


class BookingRead(BaseModel):
    id: int

    venue_id: int
    activity_id: int

    booking_date: date
    start_time: str
    end_time: str
    players: int
    confirmation_code: str

    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None

    status: str
    payment_status: str
    refund_status: str
    refund_id: Optional[str] = None
    total_amount: float
    amount_paid: float

    ticket_selections: list[dict] = []
    answers: dict = {}
    cancel_reason: Optional[str] = None

    model_config = {"from_attributes": True}

    @field_validator("ticket_selections", mode="before")
    @classmethod
    def parse_selections(cls, v):
        return json.loads(v or "[]") if isinstance(v, str) else v

    @field_validator("answers", mode="before")
    @classmethod
    def parse_answers(cls, v):
        return json.loads(v or "{}") if isinstance(v, str) else v


class RefundRead(BaseModel):
    status: Optional[str] = Field(None, description="Collaborator answer: pending / succeeded / failed")
    refund_id: Optional[str] = None
    detail: Optional[str] = None


class CancelResponse(BaseModel):
    booking: BookingRead
    refund_status: str
    refund: Optional[RefundRead] = None
    refund_error: Optional[dict] = None
