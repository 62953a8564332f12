"""Sellerhook HTTP server."""

from sellerhook.server.app import WEBHOOK_PATH, WebhookRoutes, create_app, run_server

__all__ = [
    "WEBHOOK_PATH",
    "WebhookRoutes",
    "create_app",
    "run_server",
]
