"""Default handlers for LicenseChain event kinds.

These only record the event. Applications that need to act on an event
register their own handler for its kind, replacing the default.
"""

from __future__ import annotations

import structlog

from sellerhook.webhooks.dispatcher import Handler, HandlerRegistry
from sellerhook.webhooks.events import VerifiedEvent

logger = structlog.get_logger()

# kind -> data fields worth surfacing in the log line
LICENSECHAIN_EVENTS: dict[str, tuple[str, ...]] = {
    "license.created": ("id", "userId"),
    "license.updated": ("id",),
    "license.revoked": ("id",),
    "license.expired": ("id",),
    "license.deleted": ("id",),
    "payment.completed": ("id", "licenseId"),
    "payment.failed": ("id", "licenseId"),
    "payment.refunded": ("id", "licenseId"),
    "user.created": ("id",),
    "user.registered": ("id",),
    "user.updated": ("id",),
    "product.created": ("id", "sellerId"),
    "product.updated": ("id",),
    "application.created": ("id",),
    "application.updated": ("id",),
}


def _make_logging_handler(kind: str, fields: tuple[str, ...]) -> Handler:
    resource, _, action = kind.partition(".")

    def handle(event: VerifiedEvent) -> None:
        context = {field: event.data.get(field) for field in fields}
        logger.info(
            f"{resource.capitalize()} {action}",
            kind=event.kind,
            event_id=event.id,
            source_id=event.source_id,
            **context,
        )

    handle.__name__ = f"handle_{resource}_{action}"
    return handle


def default_registry() -> HandlerRegistry:
    """Build a registry with a logging handler for every known LicenseChain kind."""
    registry = HandlerRegistry()
    for kind, fields in LICENSECHAIN_EVENTS.items():
        registry.register(kind, _make_logging_handler(kind, fields))
    return registry
