from .keys import (
    assert_valid_embed_key,
    extract_embed_key_from_url,
    is_valid_embed_key,
    is_valid_slug,
    resolve_venue,
    validate_venue_data,
)
from .resize import ResizeMessage, parse_resize_message
from .transport import (
    WIDGET_IDS,
    generate_bulk_embed_codes,
    generate_embed_code,
    generate_embed_url,
    generate_iframe_code,
    generate_react_code,
    generate_script_embed,
)

__all__ = [
    "assert_valid_embed_key",
    "extract_embed_key_from_url",
    "is_valid_embed_key",
    "is_valid_slug",
    "resolve_venue",
    "validate_venue_data",
    "ResizeMessage",
    "parse_resize_message",
    "WIDGET_IDS",
    "generate_bulk_embed_codes",
    "generate_embed_code",
    "generate_embed_url",
    "generate_iframe_code",
    "generate_react_code",
    "generate_script_embed",
]
