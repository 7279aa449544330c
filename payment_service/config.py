from menu_api.config import Settings as ApiSettings


class Settings(ApiSettings):
    kafka_consumer_group: str = "payment-service"
    metrics_port: int = 8001


settings = Settings()
