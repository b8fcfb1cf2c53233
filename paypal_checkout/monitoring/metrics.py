"""
Prometheus metrics for the PayPal checkout integration.

Tracks:
- PayPal API requests and their duration
- Orders created
- Payments captured
- Local persistence failures after a successful capture
- Audit log replays
"""
from prometheus_client import Counter, Histogram

# PayPal API metrics
paypal_api_requests_total = Counter(
    "paypal_api_requests_total",
    "Total PayPal API requests",
    ["operation", "status"],  # status: HTTP code, timeout, transport_error
)

paypal_api_duration_seconds = Histogram(
    "paypal_api_duration_seconds",
    "PayPal API call duration in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0, 30.0),
)

# Checkout metrics
orders_created_total = Counter(
    "paypal_orders_created_total",
    "Total orders created at PayPal and stored locally",
    ["currency"],
)

payments_captured_total = Counter(
    "paypal_payments_captured_total",
    "Total payment rows stored from capture responses",
    ["currency", "status"],
)

capture_persistence_failures_total = Counter(
    "paypal_capture_persistence_failures_total",
    "Captures confirmed by PayPal whose local bookkeeping failed",
    ["reason"],
)

capture_unknown_outcomes_total = Counter(
    "paypal_capture_unknown_outcomes_total",
    "Capture calls that did not complete (outcome unknown)",
)

log_replays_total = Counter(
    "paypal_log_replays_total",
    "Capture log rows replayed into local state",
    ["result"],  # applied, already_applied
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_provider_call(operation: str, status: str, duration_seconds: float) -> None:
        """Record a PayPal API call."""
        paypal_api_requests_total.labels(operation=operation, status=status).inc()
        paypal_api_duration_seconds.labels(operation=operation).observe(duration_seconds)

    @staticmethod
    def record_order_created(currency: str) -> None:
        """Record a stored order."""
        orders_created_total.labels(currency=currency).inc()

    @staticmethod
    def record_payment_captured(currency: str, status: str) -> None:
        """Record a stored payment."""
        payments_captured_total.labels(currency=currency, status=status).inc()

    @staticmethod
    def record_capture_persistence_failure(reason: str) -> None:
        """Record a capture that PayPal confirmed but was not stored."""
        capture_persistence_failures_total.labels(reason=reason).inc()

    @staticmethod
    def record_capture_unknown_outcome() -> None:
        """Record a capture call that timed out or lost its connection."""
        capture_unknown_outcomes_total.inc()

    @staticmethod
    def record_log_replay(result: str) -> None:
        """Record a replay of a stored capture response."""
        log_replays_total.labels(result=result).inc()


# Export singleton instance
metrics = MetricsCollector()
