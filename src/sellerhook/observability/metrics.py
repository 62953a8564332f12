from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

WEBHOOK_REQUESTS = Counter(
    "sellerhook_webhook_requests_total",
    "Total inbound webhook requests",
    ["disposition"],  # rejected, malformed_rejected, handler_ok, handler_failed, unhandled
)

VERIFICATION_FAILURES = Counter(
    "sellerhook_verification_failures_total",
    "Webhook requests rejected during verification",
    ["status"],
)

EVENTS_DISPATCHED = Counter(
    "sellerhook_events_dispatched_total",
    "Verified events dispatched to handlers",
    ["kind", "status"],
)

REQUEST_DURATION = Histogram(
    "sellerhook_webhook_duration_seconds",
    "Webhook processing latency",
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)


def generate_metrics() -> bytes:
    return generate_latest()


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST
