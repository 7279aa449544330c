import json
import logging

from fastapi import APIRouter, HTTPException, Request, status

from menu_api.metrics import WEBHOOKS_RECEIVED
from shared.events import PaymentWebhookEvent, publish

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/payments", status_code=status.HTTP_202_ACCEPTED)
async def receive_payment_webhook(request: Request):
    """Authenticate a gateway callback and hand it to the reconciliation worker."""
    provider = getattr(request.app.state, "provider", None)
    producer = getattr(request.app.state, "kafka_producer", None)
    if provider is None or producer is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook processing unavailable",
        )

    request_id = getattr(request.state, "request_id", "unknown")
    body = await request.body()
    signature = request.headers.get(provider.signature_header)
    if not provider.verify_webhook_signature(body, signature):
        WEBHOOKS_RECEIVED.labels(provider=provider.name, status="rejected").inc()
        logger.warning(
            "Invalid webhook signature",
            extra={"provider": provider.name, "request_id": request_id},
        )
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        payload = json.loads(body)
    except ValueError:
        WEBHOOKS_RECEIVED.labels(provider=provider.name, status="malformed").inc()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed payload")
    if not isinstance(payload, dict):
        WEBHOOKS_RECEIVED.labels(provider=provider.name, status="malformed").inc()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed payload")

    notification = provider.parse_webhook(payload)
    if notification is None:
        WEBHOOKS_RECEIVED.labels(provider=provider.name, status="ignored").inc()
        logger.info(
            "Ignoring webhook event",
            extra={
                "provider": provider.name,
                "event": payload.get("event") or payload.get("type"),
                "request_id": request_id,
            },
        )
        return {"status": "ignored"}

    event = PaymentWebhookEvent(
        correlation_id=request_id,
        provider=provider.name,
        event_type=notification.event_type,
        reference=notification.reference,
        amount=notification.amount,
        metadata=notification.metadata,
    )
    await publish(producer, request.app.state.settings.webhook_topic, notification.reference, event)
    WEBHOOKS_RECEIVED.labels(provider=provider.name, status="accepted").inc()

    logger.info(
        "Published payment.webhook event",
        extra={"reference": notification.reference, "request_id": request_id},
    )
    return {"status": "accepted"}
