"""
Pydantic event schemas shared across all services.
All events extend EventBase which carries correlation/tracing metadata.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from opentelemetry.propagate import inject
from pydantic import BaseModel, Field


class EventBase(BaseModel):
    event_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_version: int = 1
    correlation_id: str  # carries X-Request-ID from the HTTP layer
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"extra": "ignore"}


class OrderItemEvent(BaseModel):
    menu_item_id: uuid.UUID
    name: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal

    model_config = {"extra": "ignore"}


class PaymentWebhookEvent(EventBase):
    provider: str
    event_type: str
    reference: str
    amount: Decimal | None = None
    metadata: dict[str, Any] = {}


class OrderConfirmedEvent(EventBase):
    order_id: uuid.UUID
    menu_id: uuid.UUID
    menu_name: str | None = None
    reference: str
    total_amount: Decimal
    items: list[OrderItemEvent]


async def publish(producer, topic: str, key: str, event: EventBase) -> None:
    """Send an event, propagating the current trace context in Kafka headers."""
    outgoing_headers: dict[str, str] = {}
    inject(outgoing_headers)
    kafka_headers = [(k, v.encode()) for k, v in outgoing_headers.items()]

    await producer.send_and_wait(
        topic,
        key=key.encode(),
        value=event.model_dump_json().encode(),
        headers=kafka_headers,
    )
