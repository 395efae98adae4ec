"""
Error taxonomy for the widget core.

Every error carries a stable `code` and the HTTP status the API answers with.
Handlers in `install_error_handlers` keep routers thin: services raise,
FastAPI renders `{"detail", "code", "errors"}`.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

STATUS_BAD_REQUEST = 400
STATUS_NOT_FOUND = 404
STATUS_CONFLICT = 409
STATUS_UNPROCESSABLE = 422
STATUS_BAD_GATEWAY = 502
STATUS_SERVICE_UNAVAILABLE = 503


@dataclass(frozen=True)
class FieldError:
    """One violated field: dotted path, human message, machine code."""
    field: str
    message: str
    code: str = "invalid"

    def to_dict(self) -> dict:
        return asdict(self)


class BookingWidgetError(Exception):
    status_code = STATUS_BAD_REQUEST
    code = "error"
    default_detail = "Request failed"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    def to_dict(self) -> dict:
        return {"detail": self.detail, "code": self.code}


class _FieldErrorsMixin:
    errors: list[FieldError]

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["errors"] = [e.to_dict() for e in self.errors]
        return data


class ConfigValidationError(_FieldErrorsMixin, BookingWidgetError):
    status_code = STATUS_UNPROCESSABLE
    code = "config_invalid"
    default_detail = "Widget configuration is invalid"

    def __init__(self, errors: list[FieldError], detail: str | None = None):
        self.errors = list(errors)
        fields = ", ".join(e.field for e in self.errors)
        super().__init__(detail or f"{self.default_detail}: {fields}")


class BookingValidationError(_FieldErrorsMixin, BookingWidgetError):
    status_code = STATUS_UNPROCESSABLE
    code = "booking_invalid"
    default_detail = "Booking request is invalid"

    def __init__(self, errors: list[FieldError], detail: str | None = None):
        self.errors = list(errors)
        super().__init__(detail)


class InvalidEmbedKey(BookingWidgetError):
    status_code = STATUS_BAD_REQUEST
    code = "embed_key_invalid"
    default_detail = "Invalid embed key format"


class EmbedKeyNotFound(BookingWidgetError):
    status_code = STATUS_NOT_FOUND
    code = "embed_key_not_found"
    default_detail = "Embed key not found"


class ActivityNotFound(BookingWidgetError):
    status_code = STATUS_NOT_FOUND
    code = "activity_not_found"
    default_detail = "Activity not found"


class BookingNotFound(BookingWidgetError):
    status_code = STATUS_NOT_FOUND
    code = "booking_not_found"
    default_detail = "Booking not found"


class SlotUnavailable(BookingWidgetError):
    status_code = STATUS_CONFLICT
    code = "slot_unavailable"
    default_detail = "Slot is not open for booking"


class SlotFull(BookingWidgetError):
    status_code = STATUS_CONFLICT
    code = "slot_full"
    default_detail = "Slot does not have enough capacity left"


class InvalidTransition(BookingWidgetError):
    status_code = STATUS_CONFLICT
    code = "invalid_transition"
    default_detail = "Booking status transition not allowed"

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move booking from '{current}' to '{target}'")


class RefundFailed(BookingWidgetError):
    status_code = STATUS_BAD_GATEWAY
    code = "refund_failed"
    default_detail = "Refund request failed"


class RefundInProgress(BookingWidgetError):
    status_code = STATUS_CONFLICT
    code = "refund_in_progress"
    default_detail = "A refund was already requested for this booking"


class AvailabilityUnknown(BookingWidgetError):
    status_code = STATUS_SERVICE_UNAVAILABLE
    code = "availability_unknown"
    default_detail = "Availability temporarily unknown"


async def _handle_widget_error(request: Request, exc: BookingWidgetError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def install_error_handlers(app: FastAPI) -> None:
    """Register the taxonomy with FastAPI (subclasses resolve to the base handler)."""
    app.add_exception_handler(BookingWidgetError, _handle_widget_error)
