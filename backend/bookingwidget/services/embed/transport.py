# backend/bookingwidget/services/embed/transport.py
"""
Embed artifact builders: URL, script tag, iframe, React component.

Every builder returns None for a malformed embed key or an unknown
widget id and never raises, so admin screens can render whatever
succeeded. Keys are never generated here, only embedded.

URL format: {base}/embed?widgetId={widget}&widgetKey={embed_key}
"""

import logging
from html import escape
from typing import Any, Iterable
from urllib.parse import urlsplit

from ...config import settings
from .keys import HEX_COLOR_PATTERN, is_valid_embed_key, validate_venue_data
from .resize import listener_js

logger = logging.getLogger(__name__)

WIDGET_IDS = ("farebook", "multistep", "list", "quickbook", "resolvex")
DEFAULT_WIDGET_ID = "farebook"
DEFAULT_PRIMARY_COLOR = "#2563eb"
LOADER_PATH = "/embed/bookingtms.js"

FORMAT_URL = "url"
FORMAT_SCRIPT = "script"
FORMAT_IFRAME = "iframe"
FORMAT_REACT = "react"
FORMATS = (FORMAT_URL, FORMAT_SCRIPT, FORMAT_IFRAME, FORMAT_REACT)


def _base(base_url: str | None) -> str:
    return (base_url if base_url is not None else settings.embed_base_url).rstrip("/")


def allowed_origin(base_url: str | None) -> str | None:
    """Origin the host listener trusts; None = any (baseline behaviour)."""
    if not settings.embed_restrict_origin:
        return None
    parts = urlsplit(_base(base_url))
    if not parts.scheme or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}"


def _check(embed_key: Any, widget_id: Any) -> bool:
    if not is_valid_embed_key(embed_key):
        logger.warning(f"Embed code requested for malformed key: {embed_key!r}")
        return False
    if widget_id not in WIDGET_IDS:
        logger.warning(f"Embed code requested for unknown widget: {widget_id!r}")
        return False
    return True


def generate_embed_url(
    embed_key: str | None,
    widget_id: str = DEFAULT_WIDGET_ID,
    base_url: str | None = None,
) -> str | None:
    if not _check(embed_key, widget_id):
        return None
    return f"{_base(base_url)}/embed?widgetId={widget_id}&widgetKey={embed_key}"


def generate_script_embed(
    embed_key: str | None,
    widget_id: str = DEFAULT_WIDGET_ID,
    primary_color: str | None = DEFAULT_PRIMARY_COLOR,
    base_url: str | None = None,
) -> str | None:
    """Host <div> + async loader; the loader builds the iframe and resize listener."""
    if not _check(embed_key, widget_id):
        return None

    if not primary_color or not HEX_COLOR_PATTERN.fullmatch(primary_color):
        primary_color = DEFAULT_PRIMARY_COLOR

    return (
        f'<div class="bookingtms-widget" data-embed-key="{embed_key}" '
        f'data-widget="{widget_id}" data-color="{primary_color.lstrip("#")}"></div>\n'
        f'<script async src="{escape(_base(base_url))}{LOADER_PATH}"></script>'
    )


def generate_iframe_code(
    embed_key: str | None,
    widget_id: str = DEFAULT_WIDGET_ID,
    width: str = "100%",
    height: str = "800",
    frame_border: str = "0",
    style: str = "border: none; border-radius: 8px;",
    responsive: bool = True,
    padding_top: str = "135%",
    base_url: str | None = None,
) -> str | None:
    """
    <iframe> snippet with a resize listener.

    responsive=True wraps the iframe in an aspect-ratio box
    (position: relative; padding-top: <padding_top>) until the first
    resize message arrives; otherwise a fixed width/height iframe.
    """
    url = generate_embed_url(embed_key, widget_id, base_url)
    if not url:
        return None

    frame_id = f"bookingtms-{embed_key}"
    origin = allowed_origin(base_url)

    if not responsive:
        listener = listener_js(f"document.getElementById('{frame_id}')", origin)
        return (
            f'<iframe id="{frame_id}" src="{escape(url)}" width="{escape(width)}" '
            f'height="{escape(height)}" frameborder="{escape(frame_border)}" style="{escape(style)}" '
            f'allow="payment; camera" allowfullscreen title="BookingTMS Widget"></iframe>\n'
            f"<script>\n(function() {{\n  {listener}\n}})();\n</script>"
        )

    wrapper_id = f"{frame_id}-wrapper"
    listener = listener_js(f"document.getElementById('{wrapper_id}')", origin, clear_padding=True)
    iframe_style = f"position: absolute; top: 0; left: 0; width: 100%; height: 100%; {style}"

    return f"""<!-- Responsive BookingTMS Widget Wrapper -->
<div id="{wrapper_id}" style="position: relative; width: {escape(width)}; padding-top: {escape(padding_top)}; overflow: hidden; border-radius: 8px; max-width: 100%;">
  <iframe
    id="{frame_id}"
    src="{escape(url)}"
    frameborder="{escape(frame_border)}"
    style="{escape(iframe_style)}"
    allow="payment; camera"
    allowfullscreen
    title="BookingTMS Widget"
  ></iframe>
</div>
<script>
(function() {{
  {listener}
}})();
</script>"""


def generate_react_code(
    embed_key: str | None,
    widget_id: str = DEFAULT_WIDGET_ID,
    base_url: str | None = None,
) -> str | None:
    """React component source (documentation output, never executed here)."""
    url = generate_embed_url(embed_key, widget_id, base_url)
    if not url:
        return None

    origin = allowed_origin(base_url)
    origin_check = f"\n      if (event.origin !== '{origin}') return;" if origin else ""

    return f"""import React, {{ useEffect, useRef }} from 'react';

export function BookingTMSWidget() {{
  const iframeRef = useRef<HTMLIFrameElement | null>(null);

  useEffect(() => {{
    const handleMessage = (event: MessageEvent) => {{{origin_check}
      if (!event.data || typeof event.data !== 'object') return;
      if (event.data.type !== 'BOOKINGTMS_RESIZE' && event.data.type !== 'resize-iframe') return;
      const height = event.data.height;
      if (typeof height !== 'number' || !Number.isFinite(height) || height < 0) return;
      if (iframeRef.current) {{
        iframeRef.current.style.height = height + 'px';
      }}
    }};

    window.addEventListener('message', handleMessage);
    return () => window.removeEventListener('message', handleMessage);
  }}, []);

  return (
    <iframe
      ref={{iframeRef}}
      src="{url}"
      title="BookingTMS Widget"
      style={{{{ width: '100%', height: '800px', border: 'none', borderRadius: '8px' }}}}
      allow="payment; camera"
      allowFullScreen
    />
  );
}}"""


def generate_embed_code(
    embed_key: str | None,
    widget_id: str = DEFAULT_WIDGET_ID,
    fmt: str = FORMAT_IFRAME,
    primary_color: str | None = None,
    base_url: str | None = None,
) -> str | None:
    """Dispatch to the builder for `fmt`; None for an unknown format too."""
    if fmt == FORMAT_URL:
        return generate_embed_url(embed_key, widget_id, base_url)
    if fmt == FORMAT_SCRIPT:
        return generate_script_embed(embed_key, widget_id, primary_color or DEFAULT_PRIMARY_COLOR, base_url)
    if fmt == FORMAT_IFRAME:
        return generate_iframe_code(embed_key, widget_id, base_url=base_url)
    if fmt == FORMAT_REACT:
        return generate_react_code(embed_key, widget_id, base_url)
    logger.warning(f"Unknown embed format: {fmt!r}")
    return None


def _venue_field(venue: Any, name: str) -> Any:
    if isinstance(venue, dict):
        return venue.get(name)
    return getattr(venue, name, None)


def _bulk_error(embed_key: Any) -> str:
    problems = validate_venue_data(embed_key=embed_key) if embed_key else ["Missing embed_key"]
    return "; ".join(problems) or "Unknown widget id or format"


def generate_bulk_embed_codes(
    venues: Iterable[Any],
    widget_id: str = DEFAULT_WIDGET_ID,
    fmt: str = FORMAT_IFRAME,
    base_url: str | None = None,
) -> list[dict]:
    """
    One entry per venue; a bad key yields ok=False for that venue only.

    Venues may be ORM rows or dicts with id / name / embed_key / primary_color.
    """
    results = []
    for venue in venues:
        embed_key = _venue_field(venue, "embed_key")
        code = generate_embed_code(
            embed_key,
            widget_id,
            fmt,
            primary_color=_venue_field(venue, "primary_color"),
            base_url=base_url,
        )
        results.append({
            "venue_id": _venue_field(venue, "id"),
            "name": _venue_field(venue, "name"),
            "embed_key": embed_key,
            "ok": code is not None,
            "code": code,
            "error": None if code is not None else _bulk_error(embed_key),
        })
    return results
