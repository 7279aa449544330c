"""Tests for the payment.webhook reconciliation worker."""

import json

import pytest
from aiokafka import TopicPartition
from sqlalchemy import func, select

from menu_api.models.order import Order
from payment_service.config import Settings as WorkerSettings
from payment_service.consumer import handle_message
from shared.events import OrderConfirmedEvent, PaymentWebhookEvent
from tests.conftest import TEST_DATABASE_URL, FakeConsumer, FakeMessage, FakeProducer


@pytest.fixture
def worker_settings() -> WorkerSettings:
    return WorkerSettings(_env_file=None, database_url=TEST_DATABASE_URL, otlp_endpoint="")


class FlakyProducer(FakeProducer):
    """Drops the first order.confirmed send with a broker error."""

    def __init__(self) -> None:
        super().__init__()
        self.failed = False

    async def send_and_wait(self, topic, value=None, key=None, headers=None):
        if topic == "order.confirmed" and not self.failed:
            self.failed = True
            raise ConnectionError("broker unavailable")
        await super().send_and_wait(topic, value=value, key=key, headers=headers)


def _webhook_message(reference: str, metadata: dict) -> FakeMessage:
    event = PaymentWebhookEvent(
        correlation_id="req-7",
        provider="fake",
        event_type="charge.success",
        reference=reference,
        metadata=metadata,
    )
    return FakeMessage(event.model_dump_json().encode(), key=reference.encode())


async def _order_count(database) -> int:
    async with database.session() as session:
        return (await session.execute(select(func.count()).select_from(Order))).scalar_one()


class TestWebhookWorker:
    """Each delivery is reconciled once, then committed."""

    @pytest.mark.asyncio
    async def test_reconciles_and_publishes_confirmation(
        self, database, provider, producer, worker_settings, demo_menu, items
    ):
        provider.succeed("ref-w1", "25.97")
        metadata = {
            "menuId": str(demo_menu.id),
            "items": [
                {"menuItemId": str(items["Burger"].id), "quantity": 2},
                {"menuItemId": str(items["Fries"].id), "quantity": 1},
            ],
            "customerName": "Ada",
        }
        consumer = FakeConsumer()

        await handle_message(
            _webhook_message("ref-w1", metadata), consumer, producer, database, provider, worker_settings
        )

        assert consumer.commits == 1
        assert provider.verify_calls == ["ref-w1"]
        confirmed = producer.on("order.confirmed")
        assert len(confirmed) == 1
        event = OrderConfirmedEvent.model_validate_json(confirmed[0]["value"])
        assert event.correlation_id == "req-7"
        assert event.menu_name == "Test Menu"
        assert {item.name for item in event.items} == {"Burger", "Fries"}
        assert await _order_count(database) == 1

    @pytest.mark.asyncio
    async def test_redelivery_is_idempotent(self, database, provider, producer, worker_settings, demo_menu, items):
        provider.succeed("ref-w2", "10.99")
        metadata = {"menuId": str(demo_menu.id), "items": [{"menuItemId": str(items["Burger"].id), "quantity": 1}]}
        consumer = FakeConsumer()
        message = _webhook_message("ref-w2", metadata)

        await handle_message(message, consumer, producer, database, provider, worker_settings)
        await handle_message(message, consumer, producer, database, provider, worker_settings)

        assert consumer.commits == 2
        confirmed = producer.on("order.confirmed")
        assert len(confirmed) == 2
        assert confirmed[0]["key"] == confirmed[1]["key"]
        assert await _order_count(database) == 1

    @pytest.mark.asyncio
    async def test_failed_publish_is_redelivered_and_announced(
        self, database, provider, worker_settings, demo_menu, items
    ):
        provider.succeed("ref-w5", "10.99")
        metadata = {"menuId": str(demo_menu.id), "items": [{"menuItemId": str(items["Burger"].id), "quantity": 1}]}
        producer = FlakyProducer()
        consumer = FakeConsumer()
        message = _webhook_message("ref-w5", metadata)

        await handle_message(message, consumer, producer, database, provider, worker_settings)

        assert consumer.commits == 0
        assert consumer.seeks == [(TopicPartition("payment.webhook", 0), 0)]
        assert producer.on("order.confirmed") == []

        await handle_message(message, consumer, producer, database, provider, worker_settings)

        assert consumer.commits == 1
        assert len(producer.on("order.confirmed")) == 1
        assert await _order_count(database) == 1

    @pytest.mark.asyncio
    async def test_missing_basket_goes_to_dlq(self, database, provider, producer, worker_settings, demo_menu):
        consumer = FakeConsumer()

        await handle_message(
            _webhook_message("ref-w3", {"customerName": "Ada"}),
            consumer,
            producer,
            database,
            provider,
            worker_settings,
        )

        assert consumer.commits == 1
        assert len(producer.on("payment.dlq")) == 1
        assert provider.verify_calls == []

    @pytest.mark.asyncio
    async def test_unparseable_message_goes_to_dlq(self, database, provider, producer, worker_settings):
        consumer = FakeConsumer()

        await handle_message(FakeMessage(b"garbage"), consumer, producer, database, provider, worker_settings)

        assert consumer.commits == 1
        assert producer.on("payment.dlq")[0]["value"] == b"garbage"

    @pytest.mark.asyncio
    async def test_amount_mismatch_goes_to_dlq(self, database, provider, producer, worker_settings, demo_menu, items):
        provider.succeed("ref-w4", "1.00")
        metadata = {"menuId": str(demo_menu.id), "items": [{"menuItemId": str(items["Burger"].id), "quantity": 1}]}
        consumer = FakeConsumer()

        await handle_message(
            _webhook_message("ref-w4", metadata), consumer, producer, database, provider, worker_settings
        )

        dlq = producer.on("payment.dlq")
        assert len(dlq) == 1
        assert dict(dlq[0]["headers"])["error"] == b"Payment amount does not match order total. Cannot create order."
        assert producer.on("order.confirmed") == []
        assert await _order_count(database) == 0
        assert json.loads(dlq[0]["value"])["reference"] == "ref-w4"
