from prometheus_client import Counter, Histogram

MESSAGES_CONSUMED = Counter(
    "payment_webhook_messages_consumed_total",
    "Kafka payment.webhook messages consumed by the reconciliation worker",
    ["status"],  # processed | duplicate | retry | dlq
)

PROCESSING_TIME = Histogram(
    "payment_webhook_processing_duration_seconds",
    "End-to-end reconciliation time for one webhook message",
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0],
)
