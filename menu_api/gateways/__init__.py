from menu_api.config import Settings
from menu_api.gateways.base import (
    PaymentProvider,
    TransactionInitialization,
    VerificationResult,
    VerificationStatus,
    WebhookNotification,
)
from menu_api.gateways.circuit_breaker import CircuitBreaker
from menu_api.gateways.paystack import PaystackProvider
from menu_api.gateways.stripe import StripeProvider

__all__ = [
    "PaymentProvider",
    "PaystackProvider",
    "StripeProvider",
    "TransactionInitialization",
    "VerificationResult",
    "VerificationStatus",
    "WebhookNotification",
    "build_provider",
]


def build_provider(settings: Settings) -> PaymentProvider:
    breaker = CircuitBreaker(
        name=settings.payment_provider,
        failure_threshold=settings.circuit_breaker_failure_threshold,
        recovery_timeout=settings.circuit_breaker_recovery_timeout,
    )
    if settings.payment_provider == "paystack":
        return PaystackProvider(
            secret_key=settings.paystack_secret_key,
            breaker=breaker,
            base_url=settings.paystack_base_url,
            timeout=settings.gateway_timeout,
        )
    if settings.payment_provider == "stripe":
        return StripeProvider(
            secret_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            breaker=breaker,
            timeout=settings.gateway_timeout,
        )
    raise ValueError(f"Unsupported payment provider: {settings.payment_provider}")
