from .controller import (
    CancelOutcome,
    cancel,
    complete,
    confirm_payment,
    get_booking,
    mark_no_show,
    refresh_refund_status,
    request_refund,
    submit,
)

__all__ = [
    "CancelOutcome",
    "cancel",
    "complete",
    "confirm_payment",
    "get_booking",
    "mark_no_show",
    "refresh_refund_status",
    "request_refund",
    "submit",
]
