"""
Payment Service entry point.
Reconciles gateway webhooks into orders: consumes payment.webhook and
publishes order.confirmed.
"""

import asyncio
import logging

import prometheus_client
from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor

from menu_api.database import Database
from menu_api.gateways import build_provider
from payment_service.config import settings
from payment_service.consumer import run_consumer
from shared.logging import setup_logging
from shared.tracing import setup_tracing

setup_logging(settings.log_level, "payment-service")
logger = logging.getLogger(__name__)


async def main() -> None:
    prometheus_client.start_http_server(settings.metrics_port)
    setup_tracing("payment-service", settings.otlp_endpoint)

    database = Database(settings.database_url, pool_timeout=settings.db_pool_timeout)
    await database.create_all()
    SQLAlchemyInstrumentor().instrument(engine=database.engine.sync_engine)
    provider = build_provider(settings)

    consumer = AIOKafkaConsumer(
        settings.webhook_topic,
        bootstrap_servers=settings.kafka_bootstrap_servers,
        group_id=settings.kafka_consumer_group,
        enable_auto_commit=False,
        auto_offset_reset="earliest",
    )
    producer = AIOKafkaProducer(
        bootstrap_servers=settings.kafka_bootstrap_servers,
        enable_idempotence=True,
    )

    await producer.start()
    await consumer.start()
    logger.info(
        "Payment service started",
        extra={
            "bootstrap_servers": settings.kafka_bootstrap_servers,
            "consumer_group": settings.kafka_consumer_group,
            "provider": provider.name,
            "metrics_port": settings.metrics_port,
        },
    )

    try:
        await run_consumer(consumer, producer, database, provider, settings)
    finally:
        await consumer.stop()
        await producer.stop()
        await provider.aclose()
        await database.dispose()
        logger.info("Payment service stopped")


if __name__ == "__main__":
    asyncio.run(main())
