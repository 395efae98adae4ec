# backend/bookingwidget/routers/embed.py
"""
Embed endpoints.

GET  /embed               - Widget page rendered inside the iframe
GET  /embed/bookingtms.js - Loader for the script embed
GET  /embed/code          - One embed artifact (url / script / iframe / react)
POST /embed/codes         - Artifacts for many venues at once
GET  /embed/key           - Embed key carried by an embed URL
"""

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse, Response
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..errors import ConfigValidationError, EmbedKeyNotFound, InvalidEmbedKey
from ..models import Activities, Venues
from ..schemas.embed import (
    BulkEmbedEntry,
    BulkEmbedRequest,
    BulkEmbedResponse,
    EmbedCodeResponse,
    EmbedFormat,
)
from ..services.embed.keys import extract_embed_key_from_url, is_valid_embed_key, resolve_venue
from ..services.embed.page import (
    ActivityView,
    render_loader_js,
    render_unavailable_page,
    render_widget_page,
)
from ..services.embed.transport import (
    DEFAULT_WIDGET_ID,
    WIDGET_IDS,
    allowed_origin,
    generate_bulk_embed_codes,
    generate_embed_code,
)
from ..services.slots.availability import load_activity_config, local_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/embed", tags=["embed"])


@router.get("", response_class=HTMLResponse)
def embed_page(
    widget_key: str | None = Query(None, alias="widgetKey"),
    widget_id: str = Query(DEFAULT_WIDGET_ID, alias="widgetId"),
    db: Session = Depends(get_db),
):
    """Widget page; never answers with a stack trace, only an HTML notice."""
    try:
        venue = resolve_venue(db, widget_key)
    except InvalidEmbedKey:
        return HTMLResponse(render_unavailable_page("This booking widget link is invalid."), status_code=400)
    except EmbedKeyNotFound:
        return HTMLResponse(render_unavailable_page("This booking widget is not available."), status_code=404)

    if widget_id not in WIDGET_IDS:
        widget_id = DEFAULT_WIDGET_ID

    activities = (
        db.query(Activities)
        .filter(Activities.venue_id == venue.id, Activities.is_active == 1)
        .order_by(Activities.id)
        .all()
    )

    views = []
    today = None
    for activity in activities:
        try:
            config = load_activity_config(activity)
        except ConfigValidationError as e:
            logger.error(f"Activity {activity.id} config invalid, shown as unavailable: {e.detail}")
            config = None
        if config is not None and today is None:
            today = local_now(config).date().isoformat()
        views.append(ActivityView(activity, config))

    return HTMLResponse(render_widget_page(venue, views, widget_id, today or ""))


@router.get("/bookingtms.js")
def loader_js():
    js = render_loader_js(settings.embed_base_url, allowed_origin(None))
    return Response(
        content=js,
        media_type="application/javascript",
        headers={"Cache-Control": "public, max-age=300"},
    )


@router.get("/code", response_model=EmbedCodeResponse)
def get_embed_code(
    embed_key: str = "",
    widget_id: str = DEFAULT_WIDGET_ID,
    format: EmbedFormat = "iframe",
    db: Session = Depends(get_db),
):
    """Invalid input gives ok=false with a reason, never an exception."""
    primary_color = None
    venue = (
        db.query(Venues).filter(Venues.embed_key == embed_key).first()
        if is_valid_embed_key(embed_key) else None
    )
    if venue is not None:
        primary_color = venue.primary_color

    code = generate_embed_code(embed_key, widget_id, format, primary_color=primary_color)
    if code is None:
        return EmbedCodeResponse(
            ok=False,
            embed_key=embed_key or None,
            widget_id=widget_id,
            format=format,
            detail="Invalid embed key or widget id",
        )

    return EmbedCodeResponse(
        ok=True,
        embed_key=embed_key,
        widget_id=widget_id,
        format=format,
        code=code,
    )


@router.post("/codes", response_model=BulkEmbedResponse)
def bulk_embed_codes(data: BulkEmbedRequest, db: Session = Depends(get_db)):
    venues: list = [v.model_dump() for v in data.venues]
    if data.venue_ids:
        rows = db.query(Venues).filter(Venues.id.in_(data.venue_ids)).order_by(Venues.id).all()
        venues.extend(rows)

    results = generate_bulk_embed_codes(venues, data.widget_id, data.format)
    return BulkEmbedResponse(
        widget_id=data.widget_id,
        format=data.format,
        results=[BulkEmbedEntry(**r) for r in results],
    )


@router.get("/key")
def embed_key_from_url(url: str):
    embed_key = extract_embed_key_from_url(url)
    return {"embed_key": embed_key, "valid": embed_key is not None}
