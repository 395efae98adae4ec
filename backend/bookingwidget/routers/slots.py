# backend/bookingwidget/routers/slots.py
"""
Slots API endpoints (public, called by the embedded widget).

GET /widget/{embed_key}/activities/{activity_id}/slots    - Slots for a day
GET /widget/{embed_key}/activities/{activity_id}/calendar - Day summary for a range
"""

from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from redis import Redis
from sqlalchemy.orm import Session

from ..database import get_db
from ..redis_client import get_redis
from ..schemas.slots import SlotRead, SlotsCalendarResponse, SlotsDayResponse, SlotsDayStatus
from ..services.bookings.controller import get_activity
from ..services.embed.keys import resolve_venue
from ..services.slots.availability import (
    calculate_activity_availability,
    calculate_calendar,
    load_activity_config,
)

router = APIRouter(prefix="/widget", tags=["slots"])


@router.get("/{embed_key}/activities/{activity_id}/slots", response_model=SlotsDayResponse)
def get_slots_day(
    embed_key: str,
    activity_id: int,
    target_date: date = Query(..., alias="date"),
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    """
    Slots for one day.

    status=unknown means the booking store could not be read; the widget
    shows "availability temporarily unknown" rather than an empty day.
    """
    venue = resolve_venue(db, embed_key)
    activity = get_activity(db, venue.id, activity_id)

    result = calculate_activity_availability(db, activity, target_date, redis=redis)

    return SlotsDayResponse(
        activity_id=activity.id,
        date=target_date,
        status=result.status,
        snapshot_version=result.snapshot_version,
        detail=result.detail,
        slots=[SlotRead(**slot.to_dict()) for slot in result.slots],
    )


@router.get("/{embed_key}/activities/{activity_id}/calendar", response_model=SlotsCalendarResponse)
def get_slots_calendar(
    embed_key: str,
    activity_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    db: Session = Depends(get_db),
    redis: Redis | None = Depends(get_redis),
):
    """Calendar of available days for an activity."""
    venue = resolve_venue(db, embed_key)
    activity = get_activity(db, venue.id, activity_id)
    config = load_activity_config(activity)

    try:
        days = calculate_calendar(db, activity, start_date, end_date, redis=redis)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return SlotsCalendarResponse(
        activity_id=activity.id,
        start_date=days[0].date,
        end_date=days[-1].date,
        days=[SlotsDayStatus(**day.to_dict()) for day in days],
        max_lead_days=config.advance_booking.max_lead_days,
        min_lead_minutes=config.advance_booking.min_lead_minutes,
        slot_interval_minutes=config.slot_interval_minutes,
    )
