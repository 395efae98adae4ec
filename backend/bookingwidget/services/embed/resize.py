# backend/bookingwidget/services/embed/resize.py
"""
postMessage protocol between the embedded page and the host page.

Embedded → host:
    {"type": "resize-iframe" | "BOOKINGTMS_RESIZE", "height": <px>}
    {"type": "BOOKINGTMS_BOOKING_COMPLETE", "payload": {...}}

Fire-and-forget: no ack, no retry. Anything that does not match is ignored.
The JS listeners emitted by transport.py apply the same rules as
`parse_resize_message`.
"""

import math
from dataclasses import dataclass
from typing import Any, Mapping

RESIZE_TYPES = ("resize-iframe", "BOOKINGTMS_RESIZE")
BOOKING_COMPLETE_TYPE = "BOOKINGTMS_BOOKING_COMPLETE"


@dataclass(frozen=True)
class ResizeMessage:
    type: str
    height: float


def parse_resize_message(data: Any) -> ResizeMessage | None:
    """ResizeMessage for a well-formed message, None for anything else."""
    if not isinstance(data, Mapping):
        return None

    message_type = data.get("type")
    if message_type not in RESIZE_TYPES:
        return None

    height = data.get("height")
    if isinstance(height, bool) or not isinstance(height, (int, float)):
        return None
    if not math.isfinite(height) or height < 0:
        return None

    return ResizeMessage(message_type, float(height))


def build_resize_message(height: float) -> dict:
    return {"type": RESIZE_TYPES[0], "height": height}


def build_booking_complete_message(booking: Mapping[str, Any]) -> dict:
    """Result sent to the host page after a successful submission."""
    return {
        "type": BOOKING_COMPLETE_TYPE,
        "payload": {
            "bookingId": booking.get("id"),
            "confirmationCode": booking.get("confirmation_code"),
            "date": booking.get("booking_date"),
            "time": booking.get("start_time"),
            "partySize": booking.get("players"),
            "totalAmount": booking.get("total_amount"),
        },
    }


def listener_js(
    target_expr: str,
    allowed_origin: str | None = None,
    min_height: int = 0,
    clear_padding: bool = False,
) -> str:
    """
    JS `message` handler applying the parse_resize_message rules.

    target_expr is a JS expression for the element to resize; responsive
    wrappers pass clear_padding to drop their aspect-ratio padding. With
    allowed_origin set, messages from any other origin are dropped.
    """
    padding = " el.style.paddingTop = '0';" if clear_padding else ""
    origin_check = ""
    if allowed_origin:
        origin_check = f"\n    if (e.origin !== '{allowed_origin}') return;"

    return f"""window.addEventListener('message', function(e) {{{origin_check}
    var data = e.data;
    if (!data || typeof data !== 'object') return;
    if (data.type !== 'resize-iframe' && data.type !== 'BOOKINGTMS_RESIZE') return;
    var h = data.height;
    if (typeof h !== 'number' || !isFinite(h) || h < 0) return;
    var el = {target_expr};
    if (!el) return;{padding}
    el.style.height = Math.max(h, {min_height}) + 'px';
  }});"""
