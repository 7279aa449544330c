import logging
from contextlib import asynccontextmanager

from aiokafka import AIOKafkaProducer
from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from prometheus_client import make_asgi_app

from menu_api.config import Settings
from menu_api.config import settings as default_settings
from menu_api.database import Database
from menu_api.gateways import PaymentProvider, build_provider
from menu_api.middleware.metrics import MetricsMiddleware
from menu_api.middleware.request_id import RequestIDMiddleware
from menu_api.resolvers.schema import build_graphql_router
from menu_api.routers import webhooks
from menu_api.services.admin_service import seed_defaults
from menu_api.services.menu_service import seed_demo_menu
from shared.logging import setup_logging
from shared.tracing import setup_tracing

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    database: Database = app.state.database
    setup_tracing("menu-api", settings.otlp_endpoint)

    logger.info("Starting up, creating database tables")
    await database.create_all()
    SQLAlchemyInstrumentor().instrument(engine=database.engine.sync_engine)

    async with database.session() as db:
        await seed_defaults(db, settings)
        if settings.seed_demo_menu:
            await seed_demo_menu(db)

    owns_producer = app.state.kafka_producer is None
    if owns_producer:
        producer = AIOKafkaProducer(
            bootstrap_servers=settings.kafka_bootstrap_servers,
            enable_idempotence=True,
        )
        await producer.start()
        app.state.kafka_producer = producer
    logger.info("Startup complete", extra={"provider": app.state.provider.name})

    yield

    if owns_producer:
        await app.state.kafka_producer.stop()
    if app.state.owns_provider:
        await app.state.provider.aclose()
    if app.state.owns_database:
        await database.dispose()
    logger.info("Shutting down")


def create_app(
    settings: Settings | None = None,
    *,
    database: Database | None = None,
    provider: PaymentProvider | None = None,
    producer=None,
) -> FastAPI:
    """Build the API. Resources passed in are used as-is and left open on shutdown."""
    settings = settings or default_settings

    app = FastAPI(
        title="QR Menu Ordering Platform",
        description="QR menus, gateway-verified orders and platform commission",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.owns_database = database is None
    app.state.database = database or Database(
        settings.database_url, pool_timeout=settings.db_pool_timeout
    )
    app.state.owns_provider = provider is None
    app.state.provider = provider or build_provider(settings)
    app.state.kafka_producer = producer

    FastAPIInstrumentor.instrument_app(app)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.include_router(build_graphql_router(), prefix="/graphql", tags=["graphql"])
    app.include_router(webhooks.router, prefix="/webhooks", tags=["webhooks"])

    # Expose Prometheus metrics at /metrics
    metrics_app = make_asgi_app()
    app.mount("/metrics", metrics_app)

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "ok"}

    return app


setup_logging(default_settings.log_level, "menu-api")
app = create_app()
