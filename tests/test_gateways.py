"""Tests for the Paystack (mocked HTTP transport) and Stripe (patched SDK) adapters."""

import hashlib
import hmac
import json
import time
import uuid
from decimal import Decimal

import httpx
import pytest
import stripe

from menu_api.config import Settings
from menu_api.errors import InternalServerError, NotFoundError
from menu_api.gateways import PaystackProvider, StripeProvider, VerificationStatus, build_provider
from menu_api.gateways.base import decode_metadata, from_minor_units, to_minor_units
from menu_api.gateways.circuit_breaker import CircuitBreaker, CircuitState
from menu_api.gateways.stripe import METADATA_VALUE_LIMIT, decode_intent_metadata


def _breaker(threshold: int = 5) -> CircuitBreaker:
    return CircuitBreaker(name="test", failure_threshold=threshold, recovery_timeout=30.0)


def _paystack(handler) -> PaystackProvider:
    return PaystackProvider(
        secret_key="sk_test_123",
        breaker=_breaker(),
        transport=httpx.MockTransport(handler),
    )


def _stripe(webhook_secret: str = "whsec_test") -> StripeProvider:
    return StripeProvider(secret_key="sk_test_456", webhook_secret=webhook_secret, breaker=_breaker())


class TestAmountConversion:
    def test_minor_units_round_half_up(self):
        assert to_minor_units(Decimal("25.97")) == 2597
        assert to_minor_units(Decimal("0.005")) == 1
        assert from_minor_units(2597) == Decimal("25.97")

    def test_decode_metadata_handles_strings(self):
        raw = json.dumps({"menuId": "m-1", "items": json.dumps([{"menuItemId": "a", "quantity": 2}])})

        assert decode_metadata(raw) == {"menuId": "m-1", "items": [{"menuItemId": "a", "quantity": 2}]}
        assert decode_metadata("not json") == {}
        assert decode_metadata(None) == {}


class TestPaystackVerification:
    """Mapping Paystack's verify response into a VerificationResult."""

    @pytest.mark.asyncio
    async def test_success_maps_amount_and_metadata(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/transaction/verify/ref-1"
            assert request.headers["Authorization"] == "Bearer sk_test_123"
            return httpx.Response(
                200,
                json={
                    "status": True,
                    "message": "Verification successful",
                    "data": {
                        "status": "success",
                        "gateway_response": "Approved",
                        "amount": 2597,
                        "paid_at": "2024-05-01T12:00:00.000Z",
                        "metadata": json.dumps({"menuId": "m-1"}),
                    },
                },
            )

        result = await _paystack(handler).verify_transaction("ref-1")

        assert result.status is VerificationStatus.SUCCESSFUL
        assert result.gateway_message == "Approved"
        assert result.verified_amount == Decimal("25.97")
        assert result.paid_at.year == 2024
        assert result.metadata == {"menuId": "m-1"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,expected",
        [
            ("failed", VerificationStatus.FAILED),
            ("abandoned", VerificationStatus.FAILED),
            ("ongoing", VerificationStatus.PENDING),
        ],
    )
    async def test_status_vocabulary(self, status, expected):
        def handler(request):
            return httpx.Response(
                200,
                json={"status": True, "data": {"status": status, "gateway_response": "x", "amount": 100}},
            )

        result = await _paystack(handler).verify_transaction("ref-2")

        assert result.status is expected

    @pytest.mark.asyncio
    async def test_unknown_reference_is_not_found(self):
        def handler(request):
            return httpx.Response(400, json={"status": False, "message": "Transaction reference not found"})

        with pytest.raises(NotFoundError):
            await _paystack(handler).verify_transaction("ref-missing")

    @pytest.mark.asyncio
    async def test_incomplete_response_is_internal(self):
        def handler(request):
            return httpx.Response(200, json={"status": True, "data": {"amount": 100}})

        with pytest.raises(InternalServerError, match="Incomplete"):
            await _paystack(handler).verify_transaction("ref-3")

    @pytest.mark.asyncio
    async def test_server_errors_open_the_breaker(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(502)

        provider = PaystackProvider(
            secret_key="sk", breaker=_breaker(threshold=2), transport=httpx.MockTransport(handler)
        )
        for _ in range(2):
            with pytest.raises(InternalServerError, match="Payment provider error"):
                await provider.verify_transaction("ref-4")

        with pytest.raises(InternalServerError, match="temporarily unavailable"):
            await provider.verify_transaction("ref-4")
        assert len(calls) == 2


class TestPaystackInitialization:
    @pytest.mark.asyncio
    async def test_sends_minor_units_and_metadata(self):
        captured = {}

        def handler(request):
            captured.update(json.loads(request.content))
            return httpx.Response(
                200,
                json={
                    "status": True,
                    "data": {
                        "authorization_url": "https://checkout.paystack.com/abc",
                        "access_code": "abc",
                        "reference": "ref-new",
                    },
                },
            )

        result = await _paystack(handler).initialize_transaction(
            Decimal("25.97"), "ngn", "diner@example.com", "Ada", {"menuId": "m-1"}
        )

        assert result.reference == "ref-new"
        assert result.authorization_url == "https://checkout.paystack.com/abc"
        assert captured["amount"] == 2597
        assert captured["currency"] == "NGN"
        assert json.loads(captured["metadata"]) == {"menuId": "m-1", "customerName": "Ada"}


class TestPaystackWebhooks:
    def test_signature_is_hmac_sha512_of_body(self):
        provider = _paystack(lambda request: httpx.Response(200))
        body = b'{"event":"charge.success"}'
        signature = hmac.new(b"sk_test_123", body, hashlib.sha512).hexdigest()

        assert provider.verify_webhook_signature(body, signature) is True
        assert provider.verify_webhook_signature(body, "0" * 128) is False
        assert provider.verify_webhook_signature(body, None) is False

    def test_only_charge_success_is_parsed(self):
        provider = _paystack(lambda request: httpx.Response(200))
        payload = {
            "event": "charge.success",
            "data": {"reference": "ref-9", "amount": 1099, "metadata": {"menuId": "m-1"}},
        }

        notification = provider.parse_webhook(payload)

        assert notification.reference == "ref-9"
        assert notification.amount == Decimal("10.99")
        assert provider.parse_webhook({"event": "transfer.success", "data": {}}) is None


class TestStripe:
    """PaymentIntent verification and signed webhooks."""

    @pytest.mark.asyncio
    async def test_succeeded_intent_uses_amount_received(self, monkeypatch):
        calls = []

        def retrieve(reference, **options):
            calls.append((reference, options))
            return {
                "id": "pi_123",
                "status": "succeeded",
                "amount": 2600,
                "amount_received": 2597,
                "created": 1714564800,
                "metadata": {"menuId": "m-1", "items_0": '[{"menuItemId":"a","quantity":1}]'},
            }

        monkeypatch.setattr(stripe.PaymentIntent, "retrieve", retrieve)

        result = await _stripe().verify_transaction("pi_123")

        assert result.status is VerificationStatus.SUCCESSFUL
        assert result.verified_amount == Decimal("25.97")
        assert result.metadata == {"menuId": "m-1", "items": [{"menuItemId": "a", "quantity": 1}]}
        assert calls == [("pi_123", {"api_key": "sk_test_456", "stripe_version": StripeProvider.API_VERSION})]

    @pytest.mark.asyncio
    async def test_failed_payment_method_maps_to_failed(self, monkeypatch):
        def retrieve(reference, **options):
            return {
                "id": "pi_1",
                "status": "requires_payment_method",
                "amount": 1000,
                "last_payment_error": {"message": "Your card was declined."},
            }

        monkeypatch.setattr(stripe.PaymentIntent, "retrieve", retrieve)

        result = await _stripe().verify_transaction("pi_1")

        assert result.status is VerificationStatus.FAILED
        assert result.gateway_message == "Your card was declined."

    @pytest.mark.asyncio
    async def test_missing_intent_is_not_found(self, monkeypatch):
        def retrieve(reference, **options):
            raise stripe.InvalidRequestError("No such payment_intent", "intent", http_status=404)

        monkeypatch.setattr(stripe.PaymentIntent, "retrieve", retrieve)

        with pytest.raises(NotFoundError):
            await _stripe().verify_transaction("pi_x")

    @pytest.mark.asyncio
    async def test_server_errors_open_the_breaker(self, monkeypatch):
        calls = []

        def retrieve(reference, **options):
            calls.append(reference)
            raise stripe.APIError("upstream failure", http_status=503)

        monkeypatch.setattr(stripe.PaymentIntent, "retrieve", retrieve)
        provider = StripeProvider(secret_key="sk", breaker=_breaker(threshold=2))

        for _ in range(2):
            with pytest.raises(InternalServerError, match="Payment provider error"):
                await provider.verify_transaction("pi_4")

        with pytest.raises(InternalServerError, match="temporarily unavailable"):
            await provider.verify_transaction("pi_4")
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_initialize_splits_large_basket_across_metadata(self, monkeypatch):
        captured = {}

        def create(**params):
            captured.update(params)
            return {"id": "pi_new", "client_secret": "pi_new_secret"}

        monkeypatch.setattr(stripe.PaymentIntent, "create", create)
        basket = [{"menuItemId": str(uuid.uuid4()), "quantity": index + 1} for index in range(10)]

        result = await _stripe().initialize_transaction(
            Decimal("25.97"), "USD", "diner@example.com", "Ada", {"menuId": "m-1", "items": basket}
        )

        assert result.reference == "pi_new"
        assert result.access_code == "pi_new_secret"
        assert captured["amount"] == 2597
        assert captured["currency"] == "usd"
        metadata = captured["metadata"]
        assert all(isinstance(value, str) and len(value) <= METADATA_VALUE_LIMIT for value in metadata.values())
        assert "items" not in metadata
        assert decode_intent_metadata(metadata) == {"menuId": "m-1", "items": basket, "customerName": "Ada"}

    @pytest.mark.asyncio
    async def test_initialize_rejection_is_internal(self, monkeypatch):
        def create(**params):
            raise stripe.InvalidRequestError("Invalid currency", "currency", http_status=400)

        monkeypatch.setattr(stripe.PaymentIntent, "create", create)

        with pytest.raises(InternalServerError, match="Failed to initialize payment"):
            await _stripe().initialize_transaction(Decimal("1.00"), "XXX", "a@example.com", "Ada", {})

    def test_webhook_signature(self):
        provider = _stripe()
        body = b'{"type":"payment_intent.succeeded"}'
        timestamp = str(int(time.time()))
        digest = hmac.new(b"whsec_test", f"{timestamp}.".encode() + body, hashlib.sha256).hexdigest()

        assert provider.verify_webhook_signature(body, f"t={timestamp},v1={digest}") is True
        assert provider.verify_webhook_signature(body, f"t={timestamp},v1=deadbeef") is False

        stale = str(int(time.time()) - 3600)
        stale_digest = hmac.new(b"whsec_test", f"{stale}.".encode() + body, hashlib.sha256).hexdigest()
        assert provider.verify_webhook_signature(body, f"t={stale},v1={stale_digest}") is False

    def test_webhook_requires_configured_secret(self):
        provider = _stripe(webhook_secret="")

        assert provider.verify_webhook_signature(b"{}", "t=1,v1=abc") is False

    def test_only_succeeded_intents_are_parsed(self):
        provider = _stripe()
        payload = {
            "type": "payment_intent.succeeded",
            "data": {
                "object": {
                    "id": "pi_9",
                    "amount_received": 1099,
                    "metadata": {"menuId": "m-1", "items_0": '[{"menuItemId":"a","quantity":1}]'},
                }
            },
        }

        notification = provider.parse_webhook(payload)

        assert notification.reference == "pi_9"
        assert notification.amount == Decimal("10.99")
        assert notification.metadata["items"] == [{"menuItemId": "a", "quantity": 1}]
        assert provider.parse_webhook({"type": "payment_intent.created", "data": {}}) is None


class TestCircuitBreaker:
    def test_half_open_failure_reopens(self):
        breaker = CircuitBreaker(name="cb", failure_threshold=1, recovery_timeout=0.0)

        breaker.record_failure()
        assert breaker.state is CircuitState.HALF_OPEN  # recovery_timeout elapsed immediately
        breaker.record_failure()
        assert breaker._state is CircuitState.OPEN

        breaker.record_success()
        assert breaker.state is CircuitState.CLOSED


class TestBuildProvider:
    def test_selects_configured_provider(self):
        assert isinstance(build_provider(Settings(_env_file=None, payment_provider="stripe")), StripeProvider)
        assert isinstance(build_provider(Settings(_env_file=None, payment_provider="paystack")), PaystackProvider)

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            build_provider(Settings(_env_file=None, payment_provider="cash"))
