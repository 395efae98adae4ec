# backend/bookingwidget/services/payments.py
"""
Payment collaborator: refund execution lives in an external service.

POST {payments_api_url}/refunds              → request a refund
GET  {payments_api_url}/refunds/{refund_id}  → query its status

Requesting a refund is not idempotent and is never retried here;
querying the status is, and may be repeated freely.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx

from ..config import settings

logger = logging.getLogger(__name__)

REFUND_PENDING = "pending"
REFUND_SUCCEEDED = "succeeded"
REFUND_FAILED = "failed"


@dataclass
class RefundResult:
    status: str
    refund_id: str | None = None
    detail: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == REFUND_SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.status == REFUND_FAILED


class PaymentCollaborator(ABC):
    @abstractmethod
    def request_refund(
        self,
        booking_id: int,
        amount: float,
        reason: str | None = None,
        idempotency_key: str | None = None,
    ) -> RefundResult:
        ...

    @abstractmethod
    def get_refund_status(self, refund_id: str) -> RefundResult:
        ...


def _normalize_status(value: str | None) -> str:
    if value in ("succeeded", "success", "refunded"):
        return REFUND_SUCCEEDED
    if value in ("failed", "canceled", "cancelled", "error"):
        return REFUND_FAILED
    return REFUND_PENDING


class HttpPaymentClient(PaymentCollaborator):
    """Synchronous httpx client for the payments service."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.Client:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        return httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self.transport,
        )

    def request_refund(
        self,
        booking_id: int,
        amount: float,
        reason: str | None = None,
        idempotency_key: str | None = None,
    ) -> RefundResult:
        body = {"booking_id": booking_id, "amount": amount, "reason": reason}
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else {}

        with self._client() as client:
            try:
                resp = client.post("/refunds", json=body, headers=headers)
            except httpx.HTTPError as e:
                logger.error(f"Refund request failed: booking={booking_id} -> {e}")
                return RefundResult(REFUND_FAILED, detail=str(e))

        return self._parse(resp, f"booking={booking_id}")

    def get_refund_status(self, refund_id: str) -> RefundResult:
        with self._client() as client:
            try:
                resp = client.get(f"/refunds/{refund_id}")
            except httpx.HTTPError as e:
                logger.error(f"Refund status query failed: refund={refund_id} -> {e}")
                # Unknown, not failed: the refund may still complete
                return RefundResult(REFUND_PENDING, refund_id=refund_id, detail=str(e))

        return self._parse(resp, f"refund={refund_id}", refund_id)

    def _parse(self, resp: httpx.Response, context: str, refund_id: str | None = None) -> RefundResult:
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if resp.status_code >= 400:
            detail = data.get("detail") or data.get("error") or resp.text or f"HTTP {resp.status_code}"
            logger.error(f"Payments API error: {context} -> {resp.status_code} {detail}")
            return RefundResult(REFUND_FAILED, refund_id=data.get("id") or refund_id, detail=str(detail))

        return RefundResult(
            _normalize_status(data.get("status")),
            refund_id=data.get("id") or refund_id,
            detail=data.get("detail"),
        )


# Dependency for FastAPI
def get_payments() -> PaymentCollaborator | None:
    """Configured collaborator, None when PAYMENTS_API_URL is empty."""
    if not settings.payments_api_url:
        return None
    return HttpPaymentClient(
        settings.payments_api_url,
        settings.payments_api_key,
        settings.payments_timeout_seconds,
    )
