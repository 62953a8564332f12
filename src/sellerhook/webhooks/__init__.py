"""Sellerhook Webhook Ingress.

Authenticates inbound LicenseChain webhooks and routes them to handlers.

Pipeline:
- Verify: HMAC-SHA256 over the raw body, constant-time comparison,
  timestamp tolerance window (default 300s)
- Parse: body -> VerifiedEvent (kind, data, timestamp, source)
- Dispatch: kind -> registered handler; unknown kinds are acknowledged

Usage:
    from sellerhook.webhooks import (
        HandlerRegistry,
        IncomingRequest,
        SecretStore,
        WebhookProcessor,
    )

    registry = HandlerRegistry()

    @registry.on("license.created")
    def on_license_created(event):
        print(event.data["id"])

    processor = WebhookProcessor(SecretStore(default="s3cr3t"), registry)
    outcome = processor.process(
        IncomingRequest(body=raw_body, signature=sig, timestamp=ts, source="seller_1")
    )
    response_status = outcome.http_status
"""

from sellerhook.webhooks.dispatcher import (
    DispatchOutcome,
    DispatchStatus,
    Handler,
    HandlerRegistry,
    dispatch,
    dispatch_async,
)
from sellerhook.webhooks.events import (
    ParseResult,
    ParseStatus,
    VerifiedEvent,
    derive_event_id,
    parse_event,
)
from sellerhook.webhooks.handlers import LICENSECHAIN_EVENTS, default_registry
from sellerhook.webhooks.processor import (
    HTTP_STATUS,
    Disposition,
    ProcessingOutcome,
    WebhookProcessor,
)
from sellerhook.webhooks.secrets import SecretResolver, SecretStore
from sellerhook.webhooks.verifier import (
    DEFAULT_TOLERANCE,
    IncomingRequest,
    VerificationResult,
    VerificationStatus,
    WebhookConfig,
    WebhookVerifier,
    create_signature,
    parse_signature_header,
    verify_request,
    verify_signature,
)

__all__ = [
    # Verification
    "DEFAULT_TOLERANCE",
    "IncomingRequest",
    "VerificationResult",
    "VerificationStatus",
    "WebhookConfig",
    "WebhookVerifier",
    "create_signature",
    "parse_signature_header",
    "verify_request",
    "verify_signature",
    # Events
    "ParseResult",
    "ParseStatus",
    "VerifiedEvent",
    "derive_event_id",
    "parse_event",
    # Dispatch
    "DispatchOutcome",
    "DispatchStatus",
    "Handler",
    "HandlerRegistry",
    "dispatch",
    "dispatch_async",
    "LICENSECHAIN_EVENTS",
    "default_registry",
    # Pipeline
    "Disposition",
    "HTTP_STATUS",
    "ProcessingOutcome",
    "WebhookProcessor",
    # Secrets
    "SecretResolver",
    "SecretStore",
]
