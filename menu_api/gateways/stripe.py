import asyncio
import json
import logging
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable

import stripe

from menu_api.errors import InternalServerError, NotFoundError
from menu_api.gateways.base import (
    PaymentProvider,
    TransactionInitialization,
    VerificationResult,
    VerificationStatus,
    WebhookNotification,
    decode_metadata,
    from_minor_units,
    to_minor_units,
)
from menu_api.gateways.circuit_breaker import CircuitBreaker
from menu_api.metrics import GATEWAY_LATENCY

logger = logging.getLogger(__name__)

# Stripe rejects metadata values longer than this
METADATA_VALUE_LIMIT = 500
ITEMS_CHUNK_PREFIX = "items_"


def _compact(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))


def _chunk_items(items: list[Any]) -> dict[str, str]:
    chunks: list[list[Any]] = []
    current: list[Any] = []
    for line in items:
        if current and len(_compact(current + [line])) > METADATA_VALUE_LIMIT:
            chunks.append(current)
            current = []
        current.append(line)
    if current:
        chunks.append(current)
    return {f"{ITEMS_CHUNK_PREFIX}{index}": _compact(chunk) for index, chunk in enumerate(chunks)}


def encode_metadata(metadata: dict[str, Any]) -> dict[str, str]:
    """Flatten metadata into Stripe's string-only values.

    The basket is split across ``items_0``, ``items_1``, ... so no single
    value exceeds the per-value limit.
    """
    encoded: dict[str, str] = {}
    for key, value in metadata.items():
        if key == "items" and isinstance(value, list):
            encoded.update(_chunk_items(value))
        else:
            encoded[key] = value if isinstance(value, str) else _compact(value)
    return encoded


def decode_intent_metadata(raw: Any) -> dict[str, Any]:
    metadata = decode_metadata(raw)
    chunk_keys = sorted(
        (
            key
            for key in metadata
            if key.startswith(ITEMS_CHUNK_PREFIX) and key[len(ITEMS_CHUNK_PREFIX):].isdigit()
        ),
        key=lambda key: int(key[len(ITEMS_CHUNK_PREFIX):]),
    )
    if chunk_keys:
        items: list[Any] = []
        for key in chunk_keys:
            chunk = metadata.pop(key)
            if isinstance(chunk, list):
                items.extend(chunk)
        metadata["items"] = items
    return metadata


def _map_status(intent: dict[str, Any]) -> VerificationStatus:
    status = intent.get("status")
    if status == "succeeded":
        return VerificationStatus.SUCCESSFUL
    if status == "canceled":
        return VerificationStatus.FAILED
    if status == "requires_payment_method" and intent.get("last_payment_error"):
        return VerificationStatus.FAILED
    return VerificationStatus.PENDING


class StripeProvider(PaymentProvider):
    """PaymentIntent-based gateway on the official SDK.

    SDK calls are blocking, so they run in a worker thread behind the
    circuit breaker and the gateway timeout.
    """

    name = "stripe"
    signature_header = "stripe-signature"
    API_VERSION = "2023-10-16"

    def __init__(
        self,
        secret_key: str,
        breaker: CircuitBreaker,
        webhook_secret: str = "",
        timeout: float = 30.0,
    ) -> None:
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret
        self._breaker = breaker
        self._timeout = timeout

    async def _call(self, operation: str, func: Callable[..., Any], *args: Any, **params: Any) -> Any:
        if not self._breaker.allow_request():
            logger.warning(
                "Circuit breaker OPEN, rejecting gateway call",
                extra={"provider": self.name, "operation": operation},
            )
            raise InternalServerError("Payment provider is temporarily unavailable")

        start = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                asyncio.to_thread(
                    func,
                    *args,
                    api_key=self._secret_key,
                    stripe_version=self.API_VERSION,
                    **params,
                ),
                timeout=self._timeout,
            )
        except (stripe.APIConnectionError, asyncio.TimeoutError) as exc:
            self._breaker.record_failure()
            logger.error(
                "Payment gateway request failed",
                extra={"provider": self.name, "operation": operation, "error": str(exc)},
            )
            raise InternalServerError("Failed to reach payment provider")
        except stripe.StripeError as exc:
            if exc.http_status is None or exc.http_status >= 500:
                self._breaker.record_failure()
                logger.error(
                    "Payment gateway returned a server error",
                    extra={
                        "provider": self.name,
                        "operation": operation,
                        "status_code": exc.http_status,
                    },
                )
                raise InternalServerError("Payment provider error")
            self._breaker.record_success()
            raise
        finally:
            GATEWAY_LATENCY.labels(provider=self.name, operation=operation).observe(
                time.perf_counter() - start
            )

        self._breaker.record_success()
        return result

    async def initialize_transaction(
        self,
        amount: Decimal,
        currency: str,
        email: str,
        name: str,
        metadata: dict[str, Any],
    ) -> TransactionInitialization:
        try:
            intent = await self._call(
                "initialize",
                stripe.PaymentIntent.create,
                amount=to_minor_units(amount),
                currency=currency.lower(),
                receipt_email=email,
                description=f"Order for {name}",
                automatic_payment_methods={"enabled": True},
                metadata=encode_metadata({**metadata, "customerName": name}),
            )
        except stripe.StripeError as exc:
            logger.error(
                "Stripe PaymentIntent creation failed",
                extra={"status_code": exc.http_status, "provider_message": exc.user_message or str(exc)},
            )
            raise InternalServerError("Failed to initialize payment with provider")

        intent_id = intent.get("id")
        client_secret = intent.get("client_secret")
        if not intent_id or not client_secret:
            logger.error("Stripe PaymentIntent response missing id or client_secret")
            raise InternalServerError("Failed to get required details from payment provider")

        logger.info("Created Stripe PaymentIntent", extra={"reference": intent_id})
        return TransactionInitialization(reference=intent_id, access_code=client_secret)

    async def verify_transaction(self, reference: str) -> VerificationResult:
        try:
            intent = await self._call("verify", stripe.PaymentIntent.retrieve, reference)
        except stripe.InvalidRequestError as exc:
            if exc.http_status == 404:
                raise NotFoundError(f"Payment transaction with reference {reference} not found.")
            logger.error(
                "Stripe PaymentIntent lookup failed",
                extra={"reference": reference, "provider_message": exc.user_message or str(exc)},
            )
            raise InternalServerError("Failed to get verification details from payment provider")
        except stripe.StripeError as exc:
            logger.error(
                "Stripe PaymentIntent lookup failed",
                extra={"reference": reference, "provider_message": exc.user_message or str(exc)},
            )
            raise InternalServerError("Failed to get verification details from payment provider")

        status = intent.get("status")
        if not status:
            logger.error("Stripe PaymentIntent missing status", extra={"reference": reference})
            raise InternalServerError("Incomplete verification details received from payment provider")

        mapped = _map_status(intent)
        amount = intent.get("amount_received") if mapped is VerificationStatus.SUCCESSFUL else intent.get("amount")
        last_error = intent.get("last_payment_error") or {}
        created = intent.get("created")

        logger.info("Verified Stripe PaymentIntent", extra={"reference": reference, "status": status})
        return VerificationResult(
            status=mapped,
            gateway_message=last_error.get("message") or status,
            verified_amount=from_minor_units(amount) if amount is not None else None,
            paid_at=datetime.fromtimestamp(created, tz=timezone.utc) if created else None,
            metadata=decode_intent_metadata(intent.get("metadata")),
        )

    def verify_webhook_signature(self, payload: bytes, signature: str | None) -> bool:
        if not self._webhook_secret or not signature:
            return False
        try:
            stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
        except stripe.SignatureVerificationError:
            logger.warning("Stripe webhook signature verification failed")
            return False
        except ValueError as exc:
            logger.warning("Stripe webhook payload invalid", extra={"error": str(exc)})
            return False
        return True

    def parse_webhook(self, payload: dict[str, Any]) -> WebhookNotification | None:
        event_type = payload.get("type")
        intent = (payload.get("data") or {}).get("object")
        if event_type != "payment_intent.succeeded" or not isinstance(intent, dict):
            return None
        reference = intent.get("id")
        if not reference:
            return None
        amount = intent.get("amount_received")
        return WebhookNotification(
            event_type=event_type,
            reference=reference,
            amount=from_minor_units(amount) if amount is not None else None,
            metadata=decode_intent_metadata(intent.get("metadata")),
        )
