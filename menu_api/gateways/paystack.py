import hashlib
import hmac
import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any
from urllib.parse import quote

import httpx

from menu_api.errors import InternalServerError, NotFoundError
from menu_api.gateways.base import (
    HttpPaymentProvider,
    TransactionInitialization,
    VerificationResult,
    VerificationStatus,
    WebhookNotification,
    decode_metadata,
    from_minor_units,
    to_minor_units,
)
from menu_api.gateways.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)

_STATUS_MAP = {
    "success": VerificationStatus.SUCCESSFUL,
    "failed": VerificationStatus.FAILED,
    "abandoned": VerificationStatus.FAILED,
    "reversed": VerificationStatus.FAILED,
}


def _parse_paid_at(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class PaystackProvider(HttpPaymentProvider):
    name = "paystack"
    signature_header = "x-paystack-signature"

    def __init__(
        self,
        secret_key: str,
        breaker: CircuitBreaker,
        base_url: str = "https://api.paystack.co",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._secret_key = secret_key
        super().__init__(
            base_url=base_url,
            headers={"Authorization": f"Bearer {secret_key}"},
            breaker=breaker,
            timeout=timeout,
            transport=transport,
        )

    async def initialize_transaction(
        self,
        amount: Decimal,
        currency: str,
        email: str,
        name: str,
        metadata: dict[str, Any],
    ) -> TransactionInitialization:
        payload = {
            "amount": to_minor_units(amount),
            "currency": currency.upper(),
            "email": email,
            # Paystack stores metadata as a JSON string
            "metadata": json.dumps({**metadata, "customerName": name}),
        }
        response = await self._request("initialize", "POST", "/transaction/initialize", json=payload)
        body = self._json(response)
        data = body.get("data") or {}

        if response.status_code >= 400 or body.get("status") is not True:
            logger.error(
                "Paystack transaction initialization failed",
                extra={"status_code": response.status_code, "provider_message": body.get("message")},
            )
            raise InternalServerError("Failed to initialize payment with provider")

        authorization_url = data.get("authorization_url")
        access_code = data.get("access_code")
        reference = data.get("reference")
        if not (authorization_url and access_code and reference):
            logger.error("Paystack initialization response missing expected data", extra={"body": body})
            raise InternalServerError("Failed to get required details from payment provider")

        logger.info("Initialized Paystack transaction", extra={"reference": reference})
        return TransactionInitialization(
            reference=reference,
            access_code=access_code,
            authorization_url=authorization_url,
        )

    async def verify_transaction(self, reference: str) -> VerificationResult:
        response = await self._request(
            "verify", "GET", f"/transaction/verify/{quote(reference, safe='')}"
        )
        body = self._json(response)
        message = str(body.get("message") or "")

        if response.status_code == 404 or "not found" in message.lower():
            raise NotFoundError(f"Payment transaction with reference {reference} not found.")

        data = body.get("data")
        if response.status_code >= 400 or body.get("status") is not True or not isinstance(data, dict):
            logger.error(
                "Paystack verification response missing expected data",
                extra={"reference": reference, "status_code": response.status_code},
            )
            raise InternalServerError("Failed to get verification details from payment provider")

        status = data.get("status")
        gateway_response = data.get("gateway_response")
        if not status or not gateway_response:
            logger.error(
                "Paystack verification data missing status or gateway_response",
                extra={"reference": reference},
            )
            raise InternalServerError("Incomplete verification details received from payment provider")

        amount = data.get("amount")
        logger.info("Verified Paystack transaction", extra={"reference": reference, "status": status})
        return VerificationResult(
            status=_STATUS_MAP.get(status, VerificationStatus.PENDING),
            gateway_message=gateway_response,
            verified_amount=from_minor_units(amount) if amount is not None else None,
            paid_at=_parse_paid_at(data.get("paid_at")),
            metadata=decode_metadata(data.get("metadata")),
        )

    def verify_webhook_signature(self, payload: bytes, signature: str | None) -> bool:
        if not self._secret_key or not signature:
            return False
        expected = hmac.new(self._secret_key.encode("utf-8"), payload, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected, signature)

    def parse_webhook(self, payload: dict[str, Any]) -> WebhookNotification | None:
        event_type = payload.get("event")
        data = payload.get("data")
        if event_type != "charge.success" or not isinstance(data, dict):
            return None
        reference = data.get("reference")
        if not reference:
            logger.error("Webhook 'charge.success' missing reference")
            return None
        amount = data.get("amount")
        return WebhookNotification(
            event_type=event_type,
            reference=reference,
            amount=from_minor_units(amount) if amount is not None else None,
            metadata=decode_metadata(data.get("metadata")),
        )
