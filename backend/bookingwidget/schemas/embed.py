# backend/bookingwidget/schemas/embed.py

from typing import Literal, Optional

from pydantic import BaseModel, Field

EmbedFormat = Literal["url", "script", "iframe", "react"]


class EmbedCodeResponse(BaseModel):
    ok: bool
    embed_key: Optional[str] = None
    widget_id: str
    format: EmbedFormat
    code: Optional[str] = None
    detail: Optional[str] = None


class BulkVenue(BaseModel):
    id: Optional[int] = None
    name: Optional[str] = None
    embed_key: Optional[str] = None
    primary_color: Optional[str] = None


class BulkEmbedRequest(BaseModel):
    widget_id: str = "farebook"
    format: EmbedFormat = "iframe"
    venue_ids: list[int] = Field(default_factory=list, description="Venues looked up by id")
    venues: list[BulkVenue] = Field(default_factory=list, description="Venues passed inline")


class BulkEmbedEntry(BaseModel):
    venue_id: Optional[int] = None
    name: Optional[str] = None
    embed_key: Optional[str] = None
    ok: bool
    code: Optional[str] = None
    error: Optional[str] = None


class BulkEmbedResponse(BaseModel):
    widget_id: str
    format: EmbedFormat
    results: list[BulkEmbedEntry]
