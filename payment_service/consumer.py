"""
At-least-once Kafka consumer for gateway webhooks.

Guarantees:
  - Idempotency: reconciliation is keyed by the payment reference, so a
    redelivered webhook returns the existing order instead of a second one
    and announces it again, keyed by order id
  - At-least-once delivery: offset committed only after the DB write and the
    order.confirmed publish (or after parking the message on the DLQ); a
    failed publish rewinds the partition so the message is redelivered
  - DLQ: unparseable messages and failed reconciliations go to payment.dlq
"""

import logging
import time

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer, TopicPartition
from opentelemetry import trace
from opentelemetry.propagate import extract
from pydantic import ValidationError

from menu_api.database import Database
from menu_api.errors import ServiceError
from menu_api.gateways.base import PaymentProvider
from menu_api.schemas.order import OrderFromPaymentCreate
from menu_api.services.order_service import build_order_confirmed_event, create_order_from_payment
from payment_service.config import Settings
from payment_service.metrics import MESSAGES_CONSUMED, PROCESSING_TIME
from shared.events import PaymentWebhookEvent, publish

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


async def run_consumer(
    consumer: AIOKafkaConsumer,
    producer: AIOKafkaProducer,
    database: Database,
    provider: PaymentProvider,
    settings: Settings,
) -> None:
    """Main consumer loop, runs until cancelled."""
    async for msg in consumer:
        await handle_message(msg, consumer, producer, database, provider, settings)


async def _send_to_dlq(producer: AIOKafkaProducer, settings: Settings, msg, reason: str) -> None:
    await producer.send_and_wait(
        settings.dlq_topic,
        key=msg.key,
        value=msg.value,
        headers=[("error", reason.encode())],
    )
    MESSAGES_CONSUMED.labels("dlq").inc()


async def handle_message(
    msg,
    consumer: AIOKafkaConsumer,
    producer: AIOKafkaProducer,
    database: Database,
    provider: PaymentProvider,
    settings: Settings,
) -> None:
    # Extract W3C trace context propagated via Kafka headers
    headers = {k: v.decode() for k, v in msg.headers} if msg.headers else {}
    ctx = extract(headers)

    with tracer.start_as_current_span("kafka.consume.payment.webhook", context=ctx):
        try:
            event = PaymentWebhookEvent.model_validate_json(msg.value)
            data = OrderFromPaymentCreate.from_metadata(event.reference, event.metadata)
        except ValidationError as exc:
            logger.error(
                "Unusable payment.webhook message, sending to DLQ",
                extra={"error": str(exc), "offset": msg.offset, "partition": msg.partition},
            )
            await _send_to_dlq(producer, settings, msg, "invalid message")
            await consumer.commit()
            return

        correlation_id = event.correlation_id
        logger.info(
            "Received payment.webhook event",
            extra={"reference": event.reference, "correlation_id": correlation_id},
        )

        start = time.perf_counter()
        async with database.session() as db:
            try:
                result = await create_order_from_payment(
                    db,
                    provider,
                    data,
                    request_id=correlation_id,
                    source="webhook",
                    transaction_timeout=settings.reconcile_transaction_timeout,
                )
            except ServiceError as exc:
                logger.error(
                    "Reconciliation failed, sending to DLQ",
                    extra={
                        "reference": event.reference,
                        "correlation_id": correlation_id,
                        "kind": exc.kind.value,
                        "error": exc.message,
                    },
                )
                await _send_to_dlq(producer, settings, msg, exc.message)
                await consumer.commit()
                return
        PROCESSING_TIME.observe(time.perf_counter() - start)

        if result.created:
            MESSAGES_CONSUMED.labels("processed").inc()
        else:
            # A redelivery may follow a publish that never reached Kafka
            logger.info(
                "Order already exists for reference, re-announcing (idempotency)",
                extra={"reference": event.reference, "order_id": str(result.order.id)},
            )
            MESSAGES_CONSUMED.labels("duplicate").inc()

        # --- Publish order.confirmed ---
        confirmed = build_order_confirmed_event(result.order, event.reference, correlation_id)
        try:
            await publish(producer, settings.order_confirmed_topic, str(result.order.id), confirmed)
        except Exception as exc:
            logger.error(
                "Failed to publish order.confirmed, rewinding for redelivery",
                extra={
                    "order_id": str(result.order.id),
                    "correlation_id": correlation_id,
                    "error": str(exc),
                },
            )
            MESSAGES_CONSUMED.labels("retry").inc()
            consumer.seek(TopicPartition(msg.topic, msg.partition), msg.offset)
            return

        logger.info(
            "Published order.confirmed event",
            extra={"order_id": str(result.order.id), "correlation_id": correlation_id},
        )

        # --- Commit offset only after successful DB write + publish ---
        await consumer.commit()
