# backend/bookingwidget/schemas/slots.py
"""
Pydantic schemas for slots API.
"""

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field


class SlotRead(BaseModel):
    """A single slot; start/end as "HH:MM"."""
    date: date
    start_time: str
    end_time: str
    capacity_remaining: int
    ticket_types_available: list[str]
    bookable: bool
    reason: Optional[str] = Field(None, description="sold_out / blocked when not bookable")


class SlotsDayResponse(BaseModel):
    """Slots for one activity on one day."""
    activity_id: int
    date: date
    status: str = Field(description="ok / unknown / unavailable")
    snapshot_version: Optional[int] = None
    detail: Optional[str] = None
    slots: list[SlotRead] = []


class SlotsDayStatus(BaseModel):
    """Status of a single day in calendar."""
    date: date
    has_slots: bool
    open_slots_count: int = 0
    reason: Optional[str] = None

    model_config = {"from_attributes": True}


class SlotsCalendarResponse(BaseModel):
    """Response with calendar of available days."""
    activity_id: int
    start_date: date
    end_date: date
    days: list[SlotsDayStatus]

    # Metadata
    max_lead_days: int
    min_lead_minutes: int
    slot_interval_minutes: int
