"""
Notification service consumer: listens to order.confirmed and logs a
rendered receipt. In a real system this would send email/SMS/push.
"""

import logging

from aiokafka import AIOKafkaConsumer
from opentelemetry import trace
from opentelemetry.propagate import extract
from pydantic import ValidationError

from notification_service.metrics import NOTIFICATIONS
from shared.events import OrderConfirmedEvent

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def format_receipt(event: OrderConfirmedEvent, currency: str = "NGN") -> str:
    lines = [
        f"Receipt for order {event.order_id}",
        f"Menu: {event.menu_name or event.menu_id}",
        f"Payment reference: {event.reference}",
    ]
    for item in event.items:
        lines.append(f"  {item.quantity} x {item.name} @ {item.unit_price:.2f} = {item.subtotal:.2f}")
    lines.append(f"Total: {currency} {event.total_amount:.2f}")
    return "\n".join(lines)


async def run_consumer(consumer: AIOKafkaConsumer, currency: str = "NGN") -> None:
    """Main consumer loop, runs until cancelled."""
    async for msg in consumer:
        await handle_message(msg, currency)


async def handle_message(msg, currency: str = "NGN") -> None:
    # Extract W3C trace context propagated via Kafka headers
    headers = {k: v.decode() for k, v in msg.headers} if msg.headers else {}
    ctx = extract(headers)

    with tracer.start_as_current_span("kafka.consume.order.confirmed", context=ctx):
        try:
            event = OrderConfirmedEvent.model_validate_json(msg.value)
        except ValidationError as exc:
            logger.error(
                "Failed to parse order.confirmed message",
                extra={"error": str(exc), "offset": msg.offset, "partition": msg.partition},
            )
            NOTIFICATIONS.labels("parse_error").inc()
            return

        logger.info(
            "NOTIFICATION: Order confirmed",
            extra={
                "order_id": str(event.order_id),
                "correlation_id": event.correlation_id,
                "reference": event.reference,
                "total_amount": str(event.total_amount),
                "receipt": format_receipt(event, currency),
            },
        )
        NOTIFICATIONS.labels("sent").inc()
