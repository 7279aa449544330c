from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "postgresql+asyncpg://postgres:postgres@db:5432/qrmenu"
    log_level: str = "INFO"

    # Database bounds used by order reconciliation
    db_pool_timeout: float = 10.0
    reconcile_transaction_timeout: float = 20.0

    # Payment gateway ("paystack" or "stripe")
    payment_provider: str = "paystack"
    payment_currency: str = "NGN"
    gateway_timeout: float = 30.0
    paystack_secret_key: str = ""
    paystack_base_url: str = "https://api.paystack.co"
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""

    # Circuit breaker around gateway calls
    circuit_breaker_failure_threshold: int = 5
    circuit_breaker_recovery_timeout: float = 30.0

    # Admin authentication
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    bootstrap_admin_email: str = ""
    bootstrap_admin_password: str = ""

    # Menus & commission
    frontend_url: str = "http://localhost:3000"
    default_commission_percentage: float = 0.05
    seed_demo_menu: bool = True

    # Kafka
    kafka_bootstrap_servers: str = "kafka:9092"
    webhook_topic: str = "payment.webhook"
    order_confirmed_topic: str = "order.confirmed"
    dlq_topic: str = "payment.dlq"

    # Observability
    otlp_endpoint: str = "http://jaeger:4318/v1/traces"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
