"""Pytest configuration and shared fixtures.

This module provides:
- An in-memory SQLite Database (aiosqlite) with the schema created
- A scriptable fake payment provider and fake Kafka producer/consumer
- The seeded demo menu, commission row and a super admin
- An httpx client bound to the FastAPI app over ASGITransport
"""

from decimal import Decimal
from typing import Any, AsyncGenerator

import httpx
import pytest
from aiokafka import TopicPartition
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from menu_api.config import Settings
from menu_api.database import Database
from menu_api.errors import NotFoundError
from menu_api.gateways.base import (
    PaymentProvider,
    TransactionInitialization,
    VerificationResult,
    VerificationStatus,
    WebhookNotification,
)
from menu_api.models.admin import RESTAURANT_ADMIN, SUPER_ADMIN, Admin
from menu_api.models.menu import Menu
from menu_api.security import AdminClaims, create_access_token, get_password_hash
from menu_api.services.admin_service import seed_defaults
from menu_api.services.menu_service import DEMO_QR_CODE, get_menu_with_all_items, seed_demo_menu

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
JWT_SECRET = "test-secret"


# ============================================================================
# FAKES
# ============================================================================


class FakeProvider(PaymentProvider):
    """Payment provider whose verification results are scripted per reference."""

    name = "fake"
    signature_header = "x-fake-signature"

    def __init__(self) -> None:
        self.results: dict[str, VerificationResult | Exception] = {}
        self.verify_calls: list[str] = []
        self.initialized: list[dict[str, Any]] = []

    def succeed(self, reference: str, amount: str, metadata: dict | None = None) -> None:
        self.results[reference] = VerificationResult(
            status=VerificationStatus.SUCCESSFUL,
            gateway_message="Approved",
            verified_amount=Decimal(amount),
            metadata=metadata or {},
        )

    async def initialize_transaction(self, amount, currency, email, name, metadata):
        self.initialized.append(
            {"amount": amount, "currency": currency, "email": email, "name": name, "metadata": metadata}
        )
        return TransactionInitialization(
            reference=f"ref-{len(self.initialized)}",
            access_code="access-code",
            authorization_url="https://checkout.example/pay",
        )

    async def verify_transaction(self, reference: str) -> VerificationResult:
        self.verify_calls.append(reference)
        result = self.results.get(reference)
        if result is None:
            raise NotFoundError(f"Payment transaction with reference {reference} not found.")
        if isinstance(result, Exception):
            raise result
        return result

    def verify_webhook_signature(self, payload: bytes, signature: str | None) -> bool:
        return signature == "valid"

    def parse_webhook(self, payload: dict[str, Any]) -> WebhookNotification | None:
        if payload.get("event") != "charge.success":
            return None
        data = payload.get("data") or {}
        return WebhookNotification(
            event_type="charge.success",
            reference=data["reference"],
            amount=Decimal(str(data["amount"])) if "amount" in data else None,
            metadata=data.get("metadata") or {},
        )


class FakeProducer:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    async def send_and_wait(self, topic, value=None, key=None, headers=None):
        self.sent.append({"topic": topic, "key": key, "value": value, "headers": headers or []})

    def on(self, topic: str) -> list[dict[str, Any]]:
        return [message for message in self.sent if message["topic"] == topic]


class FakeConsumer:
    def __init__(self) -> None:
        self.commits = 0
        self.seeks: list[tuple[TopicPartition, int]] = []

    async def commit(self) -> None:
        self.commits += 1

    def seek(self, partition: TopicPartition, offset: int) -> None:
        self.seeks.append((partition, offset))


class FakeMessage:
    def __init__(self, value: bytes, key: bytes | None = None, headers=None, topic: str = "payment.webhook") -> None:
        self.value = value
        self.key = key
        self.headers = headers or []
        self.topic = topic
        self.offset = 0
        self.partition = 0


# ============================================================================
# CORE FIXTURES
# ============================================================================


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from any local .env file."""
    return Settings(
        _env_file=None,
        database_url=TEST_DATABASE_URL,
        otlp_endpoint="",
        jwt_secret=JWT_SECRET,
        seed_demo_menu=False,
        frontend_url="http://menu.test",
    )


@pytest.fixture
async def database(settings: Settings) -> AsyncGenerator[Database, None]:
    """Create a fresh in-memory database with every table."""
    database = Database(settings.database_url)
    await database.create_all()
    yield database
    await database.dispose()


@pytest.fixture
async def db(database: Database) -> AsyncGenerator[AsyncSession, None]:
    async with database.session() as session:
        yield session


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def producer() -> FakeProducer:
    return FakeProducer()


# ============================================================================
# DATA FIXTURES
# ============================================================================


@pytest.fixture
async def demo_menu(db: AsyncSession, settings: Settings) -> Menu:
    """Seeded menu: Burger 10.99, Fries 3.99, Soda 1.99 (unavailable)."""
    await seed_defaults(db, settings)
    await seed_demo_menu(db)
    menu_id = (await db.execute(select(Menu.id).where(Menu.qr_code == DEMO_QR_CODE))).scalar_one()
    return await get_menu_with_all_items(db, menu_id)


@pytest.fixture
def items(demo_menu: Menu) -> dict[str, Any]:
    return {item.name: item for item in demo_menu.items}


async def _make_admin(db: AsyncSession, email: str, role: str) -> Admin:
    admin = Admin(email=email, password_hash=get_password_hash("s3cret-pass"), role=role)
    db.add(admin)
    await db.commit()
    return admin


@pytest.fixture
async def super_admin(db: AsyncSession) -> Admin:
    return await _make_admin(db, "owner@example.com", SUPER_ADMIN)


@pytest.fixture
async def restaurant_admin(db: AsyncSession) -> Admin:
    return await _make_admin(db, "kitchen@example.com", RESTAURANT_ADMIN)


def _headers_for(admin: Admin) -> dict[str, str]:
    token = create_access_token(AdminClaims(id=admin.id, email=admin.email, role=admin.role), JWT_SECRET)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(super_admin: Admin) -> dict[str, str]:
    """Bearer headers for a super admin."""
    return _headers_for(super_admin)


@pytest.fixture
def restaurant_headers(restaurant_admin: Admin) -> dict[str, str]:
    return _headers_for(restaurant_admin)


# ============================================================================
# API FIXTURES
# ============================================================================


@pytest.fixture
async def client(
    settings: Settings,
    database: Database,
    provider: FakeProvider,
    producer: FakeProducer,
    demo_menu: Menu,
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client for the API with fakes injected in place of real resources."""
    from menu_api.main import create_app

    app = create_app(settings, database=database, provider=provider, producer=producer)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture
def graphql(client: httpx.AsyncClient):
    """POST a GraphQL document and return the decoded response body."""

    async def execute(query: str, variables: dict | None = None, headers: dict | None = None) -> dict:
        response = await client.post(
            "/graphql",
            json={"query": query, "variables": variables or {}},
            headers=headers or {},
        )
        assert response.status_code == 200, response.text
        return response.json()

    return execute
