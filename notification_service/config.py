from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    log_level: str = "INFO"
    payment_currency: str = "NGN"

    # Kafka
    kafka_bootstrap_servers: str = "kafka:9092"
    kafka_consumer_group: str = "notification-service"
    order_confirmed_topic: str = "order.confirmed"

    # Observability
    otlp_endpoint: str = "http://jaeger:4318/v1/traces"
    metrics_port: int = 8002

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
