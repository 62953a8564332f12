"""HTTP boundary for webhook ingress.

Routes:
    POST /api/webhooks/licensechain             - Signed LicenseChain webhook
    POST /api/webhooks/licensechain/{seller_id} - Same, seller taken from the path
    GET  /health                                - Liveness
    GET  /metrics                               - Prometheus metrics
    GET  /                                      - Service info

The raw body is read before anything parses it; it is the exact input the
sender signed. Response bodies never echo secrets or signatures.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from datetime import UTC, datetime

import structlog
from aiohttp import web

from sellerhook import __version__
from sellerhook.core.config import ServerSettings, WebhookSettings
from sellerhook.observability.metrics import (
    EVENTS_DISPATCHED,
    REQUEST_DURATION,
    VERIFICATION_FAILURES,
    WEBHOOK_REQUESTS,
    generate_metrics,
    get_content_type,
)
from sellerhook.webhooks.dispatcher import Handler
from sellerhook.webhooks.handlers import default_registry
from sellerhook.webhooks.processor import Disposition, ProcessingOutcome, WebhookProcessor
from sellerhook.webhooks.secrets import SecretStore
from sellerhook.webhooks.verifier import IncomingRequest, parse_signature_header

logger = structlog.get_logger()

SERVICE_NAME = "LicenseChain Seller Webhooks"
WEBHOOK_PATH = "/api/webhooks/licensechain"


def _record_metrics(outcome: ProcessingOutcome, handlers: Mapping[str, Handler]) -> None:
    WEBHOOK_REQUESTS.labels(disposition=outcome.disposition.value).inc()
    if outcome.disposition is Disposition.REJECTED:
        VERIFICATION_FAILURES.labels(status=outcome.verification.status.value).inc()
    if outcome.dispatch is not None:
        # Unknown kinds are bucketed to keep label cardinality bounded
        kind = outcome.dispatch.kind if outcome.dispatch.kind in handlers else "other"
        EVENTS_DISPATCHED.labels(kind=kind, status=outcome.dispatch.status.value).inc()


class WebhookRoutes:
    """aiohttp handlers around a WebhookProcessor."""

    def __init__(
        self,
        processor: WebhookProcessor,
        settings: WebhookSettings,
    ) -> None:
        self._processor = processor
        self._settings = settings
        self._started = time.monotonic()

    def register_routes(self, app: web.Application) -> None:
        """Register webhook and service routes on an aiohttp application."""
        app.router.add_post(WEBHOOK_PATH, self.handle_webhook)
        app.router.add_post(WEBHOOK_PATH + "/{seller_id}", self.handle_webhook)
        app.router.add_get("/health", self.handle_health)
        app.router.add_get("/metrics", self.handle_metrics)
        app.router.add_get("/", self.handle_info)

    def build_request(self, request: web.Request, body: bytes) -> IncomingRequest:
        """Capture the webhook headers and raw body as an IncomingRequest."""
        headers = request.headers
        source = request.match_info.get("seller_id") or headers.get(self._settings.source_header)
        return IncomingRequest(
            body=body,
            signature=parse_signature_header(
                headers.get(self._settings.signature_header),
                prefix=self._settings.signature_prefix,
            ),
            timestamp=headers.get(self._settings.timestamp_header),
            source=source or None,
        )

    async def handle_webhook(self, request: web.Request) -> web.Response:
        """Verify, parse and dispatch one webhook.

        Status codes: 401 rejected, 400 malformed, 200 handled or unhandled,
        500 handler failure. Oversized bodies are refused by aiohttp with 413.
        """
        start = time.perf_counter()
        body = await request.read()
        incoming = self.build_request(request, body)

        outcome = await self._processor.process_async(incoming)

        elapsed = time.perf_counter() - start
        REQUEST_DURATION.observe(elapsed)
        _record_metrics(outcome, self._processor.handlers)

        event = outcome.event
        logger.info(
            "Webhook processed",
            disposition=outcome.disposition.value,
            status=outcome.http_status,
            source=incoming.source,
            kind=event.kind if event else None,
            event_id=event.id if event else None,
            duration_ms=round(elapsed * 1000, 2),
        )

        if outcome.accepted:
            payload: dict[str, object] = {
                "received": True,
                "status": outcome.disposition.value,
            }
            if event is not None:
                payload["id"] = event.id
            return web.json_response(payload, status=outcome.http_status)

        return web.json_response(
            {
                "received": False,
                "status": outcome.disposition.value,
                "error": outcome.error or "Webhook processing failed",
            },
            status=outcome.http_status,
        )

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response(
            {
                "status": "ok",
                "timestamp": datetime.now(UTC).isoformat(),
                "version": __version__,
                "service": SERVICE_NAME,
                "uptime": round(time.monotonic() - self._started, 3),
            }
        )

    async def handle_metrics(self, request: web.Request) -> web.Response:
        return web.Response(
            body=generate_metrics(),
            headers={"Content-Type": get_content_type()},
        )

    async def handle_info(self, request: web.Request) -> web.Response:
        return web.json_response(
            {
                "name": SERVICE_NAME,
                "version": __version__,
                "description": "Signed webhook ingress for LicenseChain sellers",
                "endpoints": {
                    "health": "/health",
                    "metrics": "/metrics",
                    "webhooks": WEBHOOK_PATH,
                },
                "event_kinds": sorted(self._processor.handlers),
            }
        )


def create_app(
    settings: WebhookSettings | None = None,
    server: ServerSettings | None = None,
    handlers: Mapping[str, Handler] | None = None,
    processor: WebhookProcessor | None = None,
) -> web.Application:
    """Build the aiohttp application.

    Args:
        settings: Webhook settings; read from the environment if omitted.
        server: Server settings; read from the environment if omitted.
        handlers: Event handlers; the default LicenseChain logging handlers if omitted.
        processor: Fully built processor, overriding settings-derived secrets and handlers.
    """
    settings = settings or WebhookSettings()
    server = server or ServerSettings()

    if processor is None:
        secrets = SecretStore.from_settings(settings)
        if not secrets.has_default and not secrets.sources:
            logger.warning("No webhook secrets configured; every webhook will be rejected")
        processor = WebhookProcessor(
            secrets,
            handlers if handlers is not None else default_registry(),
            tolerance=settings.tolerance,
        )

    app = web.Application(client_max_size=server.max_body_size)
    WebhookRoutes(processor, settings).register_routes(app)
    return app


def run_server(
    settings: WebhookSettings | None = None,
    server: ServerSettings | None = None,
    handlers: Mapping[str, Handler] | None = None,
) -> None:
    """Serve the webhook application until interrupted."""
    server = server or ServerSettings()
    app = create_app(settings, server, handlers)
    logger.info(
        "Webhook server starting",
        host=server.host,
        port=server.port,
        version=__version__,
    )
    web.run_app(app, host=server.host, port=server.port, print=None)
