from prometheus_client import Counter, Histogram


# Checkout Metrics
checkouts_total = Counter("marketplace_checkouts_total", "Checkout attempts", ["flow", "status"])

# Reconciliation Metrics
orders_materialized_total = Counter(
    "marketplace_orders_materialized_total",
    "Order materialization attempts from payment sessions",
    ["source", "outcome"],
)
webhook_events_total = Counter("marketplace_webhook_events_total", "Payment webhook events received", ["event_type"])
order_value = Histogram(
    "marketplace_order_value",
    "Order value distribution",
    buckets=[10, 50, 100, 200, 500, 1000, 2000, 5000, float("inf")],
)

# Lifecycle Metrics
order_transitions_total = Counter(
    "marketplace_order_transitions_total", "Order lifecycle transitions", ["transition", "outcome"]
)
refunds_total = Counter("marketplace_refunds_total", "Refunds issued on cancellation", ["outcome"])
