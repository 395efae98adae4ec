# backend/bookingwidget/services/embed/keys.py
"""
Embed key validation (consumer side only).

Keys are issued by the store when a venue is created; this service
validates and resolves them and never constructs one.

Format: emb_ + 12 lowercase alphanumeric characters, e.g. emb_a1b2c3d4e5f6
"""

import logging
import re
from urllib.parse import parse_qs, urlsplit

from sqlalchemy.orm import Session

from ...errors import EmbedKeyNotFound, InvalidEmbedKey
from ...models import Venues

logger = logging.getLogger(__name__)

EMBED_KEY_PATTERN = re.compile(r"^emb_[a-z0-9]{12}$")
SLUG_PATTERN = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")
HEX_COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")


def is_valid_embed_key(embed_key: str | None) -> bool:
    if not embed_key or not isinstance(embed_key, str):
        return False
    return EMBED_KEY_PATTERN.fullmatch(embed_key) is not None


def assert_valid_embed_key(embed_key: str | None) -> str:
    if not is_valid_embed_key(embed_key):
        logger.warning(f"Rejected malformed embed key: {embed_key!r}")
        raise InvalidEmbedKey()
    return embed_key


def is_valid_slug(slug: str | None) -> bool:
    if not slug or not isinstance(slug, str):
        return False
    return SLUG_PATTERN.fullmatch(slug) is not None


def extract_embed_key_from_url(url: str | None) -> str | None:
    """widgetKey query parameter of an embed URL, None if absent or malformed."""
    if not url:
        return None
    try:
        query = parse_qs(urlsplit(url).query)
    except ValueError:
        return None
    values = query.get("widgetKey")
    if not values:
        return None
    return values[0] if is_valid_embed_key(values[0]) else None


def validate_venue_data(
    embed_key: str | None = None,
    slug: str | None = None,
    primary_color: str | None = None,
) -> list[str]:
    """Format problems with venue fields; empty list = valid. Empty fields are skipped."""
    errors = []
    if embed_key and not is_valid_embed_key(embed_key):
        errors.append("Invalid embed_key format. Must be emb_xxxxxxxxxxxx (12 lowercase alphanumeric chars)")
    if slug and not is_valid_slug(slug):
        errors.append("Invalid slug format. Must be lowercase alphanumeric with hyphens only")
    if primary_color and not HEX_COLOR_PATTERN.fullmatch(primary_color):
        errors.append("Invalid primary_color format. Must be hex color like #2563eb")
    return errors


def resolve_venue(db: Session, embed_key: str | None) -> Venues:
    """
    Venue bound to embed_key.

    Raises:
        InvalidEmbedKey: malformed key (checked before any store access)
        EmbedKeyNotFound: no active venue holds the key
    """
    assert_valid_embed_key(embed_key)

    venue = (
        db.query(Venues)
        .filter(Venues.embed_key == embed_key, Venues.is_active == 1)
        .first()
    )
    if not venue:
        raise EmbedKeyNotFound()
    return venue
