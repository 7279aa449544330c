from prometheus_client import Counter, Gauge, Histogram

RECONCILIATION_OUTCOMES = Counter(
    "order_reconciliation_outcomes_total",
    "Order-from-payment reconciliation outcomes",
    ["source", "outcome"],  # confirmed | duplicate | rejected | mismatch | error
)

GATEWAY_LATENCY = Histogram(
    "payment_gateway_request_duration_seconds",
    "Latency of outbound payment gateway calls",
    ["provider", "operation"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

CIRCUIT_STATE = Gauge(
    "payment_gateway_circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
    ["provider"],
)

WEBHOOKS_RECEIVED = Counter(
    "payment_webhooks_received_total",
    "Gateway webhook deliveries by handling status",
    ["provider", "status"],  # accepted | ignored | rejected | malformed
)
