from prometheus_client import Counter

NOTIFICATIONS = Counter(
    "notifications_sent_total",
    "Order receipts processed by notification service",
    ["outcome"],  # sent | parse_error
)
