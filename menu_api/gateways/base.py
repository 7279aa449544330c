"""
Payment provider interface.

The reconciliation workflow is written once against PaymentProvider; each
gateway (Paystack, Stripe) is a variant that maps its own wire format and
status vocabulary into the normalized results below.
"""

import json
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

import httpx

from menu_api.errors import InternalServerError
from menu_api.gateways.circuit_breaker import CircuitBreaker
from menu_api.metrics import GATEWAY_LATENCY

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


class VerificationStatus(str, Enum):
    SUCCESSFUL = "SUCCESSFUL"
    FAILED = "FAILED"
    PENDING = "PENDING"


@dataclass
class VerificationResult:
    status: VerificationStatus
    gateway_message: str
    verified_amount: Decimal | None = None
    paid_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class TransactionInitialization:
    reference: str
    access_code: str
    authorization_url: str | None = None


@dataclass
class WebhookNotification:
    event_type: str
    reference: str
    amount: Decimal | None
    metadata: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Amount conversion (gateways speak minor units: kobo, cents, ...)
# ---------------------------------------------------------------------------


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int | str) -> Decimal:
    return (Decimal(amount) / 100).quantize(_CENT, rounding=ROUND_HALF_UP)


def decode_metadata(raw: Any) -> dict[str, Any]:
    """Normalize gateway metadata into a dict.

    Paystack may echo metadata back as a JSON string; Stripe only stores
    string values, so nested structures were JSON-encoded on the way in.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw) if raw else {}
        except ValueError:
            return {}
    if not isinstance(raw, dict):
        return {}
    decoded: dict[str, Any] = {}
    for key, value in raw.items():
        if isinstance(value, str) and value[:1] in ("[", "{"):
            try:
                value = json.loads(value)
            except ValueError:
                pass
        decoded[key] = value
    return decoded


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class PaymentProvider(ABC):
    name: str
    signature_header: str

    @abstractmethod
    async def initialize_transaction(
        self,
        amount: Decimal,
        currency: str,
        email: str,
        name: str,
        metadata: dict[str, Any],
    ) -> TransactionInitialization: ...

    @abstractmethod
    async def verify_transaction(self, reference: str) -> VerificationResult: ...

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: str | None) -> bool: ...

    @abstractmethod
    def parse_webhook(self, payload: dict[str, Any]) -> WebhookNotification | None: ...

    async def aclose(self) -> None:
        return None


class HttpPaymentProvider(PaymentProvider):
    """Shared httpx plumbing: one client per provider, guarded by a circuit breaker."""

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str],
        breaker: CircuitBreaker,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        auth: tuple[str, str] | None = None,
    ) -> None:
        self._breaker = breaker
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
            auth=auth,
        )

    async def _request(self, operation: str, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if not self._breaker.allow_request():
            logger.warning(
                "Circuit breaker OPEN, rejecting gateway call",
                extra={"provider": self.name, "operation": operation},
            )
            raise InternalServerError("Payment provider is temporarily unavailable")

        start = time.perf_counter()
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            self._breaker.record_failure()
            logger.error(
                "Payment gateway request failed",
                extra={"provider": self.name, "operation": operation, "error": str(exc)},
            )
            raise InternalServerError("Failed to reach payment provider")
        finally:
            GATEWAY_LATENCY.labels(provider=self.name, operation=operation).observe(
                time.perf_counter() - start
            )

        if response.status_code >= 500:
            self._breaker.record_failure()
            logger.error(
                "Payment gateway returned a server error",
                extra={
                    "provider": self.name,
                    "operation": operation,
                    "status_code": response.status_code,
                },
            )
            raise InternalServerError("Payment provider error")

        self._breaker.record_success()
        return response

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    async def aclose(self) -> None:
        await self._client.aclose()
