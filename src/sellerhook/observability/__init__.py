from sellerhook.observability.metrics import (
    EVENTS_DISPATCHED,
    REQUEST_DURATION,
    VERIFICATION_FAILURES,
    WEBHOOK_REQUESTS,
    generate_metrics,
    get_content_type,
)

__all__ = [
    "WEBHOOK_REQUESTS",
    "VERIFICATION_FAILURES",
    "EVENTS_DISPATCHED",
    "REQUEST_DURATION",
    "generate_metrics",
    "get_content_type",
]
