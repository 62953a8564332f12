"""Webhook processing pipeline.

Runs one inbound request through verification, parsing and dispatch:

    Received -> Verifying -> {Rejected | Verified}
             -> Parsing -> {MalformedRejected | Parsed}
             -> Dispatching -> {HandlerOk | HandlerFailed | Unhandled}

Parsing is only reachable with a verified payload, so no VerifiedEvent is
ever built from an unauthenticated body. Nothing is retried here; senders
retry on non-2xx responses.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum

import structlog

from sellerhook.webhooks.dispatcher import (
    DispatchOutcome,
    DispatchStatus,
    Handler,
    dispatch,
    dispatch_async,
)
from sellerhook.webhooks.events import ParseResult, VerifiedEvent, parse_event
from sellerhook.webhooks.secrets import SecretResolver
from sellerhook.webhooks.verifier import (
    DEFAULT_TOLERANCE,
    IncomingRequest,
    VerificationResult,
    VerificationStatus,
    WebhookConfig,
    verify_request,
)

logger = structlog.get_logger()


class Disposition(Enum):
    """Terminal state of one request."""

    REJECTED = "rejected"
    MALFORMED_REJECTED = "malformed_rejected"
    HANDLER_OK = "handler_ok"
    HANDLER_FAILED = "handler_failed"
    UNHANDLED = "unhandled"


HTTP_STATUS: dict[Disposition, int] = {
    Disposition.REJECTED: 401,
    Disposition.MALFORMED_REJECTED: 400,
    Disposition.HANDLER_OK: 200,
    Disposition.HANDLER_FAILED: 500,
    # Acknowledge so the sender does not retry an event we cannot handle yet
    Disposition.UNHANDLED: 200,
}

_DISPATCH_DISPOSITION: dict[DispatchStatus, Disposition] = {
    DispatchStatus.HANDLER_OK: Disposition.HANDLER_OK,
    DispatchStatus.HANDLER_FAILED: Disposition.HANDLER_FAILED,
    DispatchStatus.UNHANDLED: Disposition.UNHANDLED,
}


@dataclass
class ProcessingOutcome:
    """Everything known about one processed request."""

    disposition: Disposition
    verification: VerificationResult
    error: str | None = None
    event: VerifiedEvent | None = None
    dispatch: DispatchOutcome | None = None

    @property
    def http_status(self) -> int:
        return HTTP_STATUS[self.disposition]

    @property
    def accepted(self) -> bool:
        return 200 <= self.http_status < 300


class WebhookProcessor:
    """Verify, parse and dispatch inbound webhooks.

    Holds only immutable settings and the handler table; safe to share
    between concurrent requests.
    """

    def __init__(
        self,
        secrets: SecretResolver,
        handlers: Mapping[str, Handler],
        tolerance: int | float = DEFAULT_TOLERANCE,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the processor.

        Args:
            secrets: Resolves the HMAC secret for a request's source.
            handlers: Mapping of event kind to handler.
            tolerance: Replay window in seconds.
            clock: Source of the current epoch time.
        """
        if tolerance < 0:
            raise ValueError(f"Tolerance must be non-negative, got {tolerance}")
        self._secrets = secrets
        self._handlers = handlers
        self._tolerance = tolerance
        self._clock = clock

    @property
    def handlers(self) -> Mapping[str, Handler]:
        return self._handlers

    @property
    def tolerance(self) -> int | float:
        return self._tolerance

    def _verify(self, request: IncomingRequest) -> VerificationResult:
        secret = self._secrets(request.source)
        if not secret:
            logger.warning(
                "Webhook verification failed",
                status=VerificationStatus.UNKNOWN_SOURCE.value,
                source=request.source,
            )
            return VerificationResult(
                valid=False,
                status=VerificationStatus.UNKNOWN_SOURCE,
                error="No webhook secret configured for source",
                source=request.source,
            )
        config = WebhookConfig(secret=secret, tolerance=self._tolerance)
        return verify_request(request, config, now=self._clock())

    def _verify_and_parse(
        self, request: IncomingRequest
    ) -> tuple[VerificationResult, ParseResult | None, ProcessingOutcome | None]:
        verification = self._verify(request)
        if not verification.valid:
            return verification, None, ProcessingOutcome(
                disposition=Disposition.REJECTED,
                verification=verification,
                error=verification.error,
            )

        parsed = parse_event(verification.payload or b"", default_source=request.source)
        if not parsed.ok:
            logger.warning("Malformed webhook event", reason=parsed.error, source=request.source)
            return verification, parsed, ProcessingOutcome(
                disposition=Disposition.MALFORMED_REJECTED,
                verification=verification,
                error=parsed.error,
            )

        return verification, parsed, None

    @staticmethod
    def _finish(
        verification: VerificationResult,
        event: VerifiedEvent,
        outcome: DispatchOutcome,
    ) -> ProcessingOutcome:
        error = None
        if outcome.status is DispatchStatus.HANDLER_FAILED:
            error = f"Handler for {event.kind!r} failed"
        return ProcessingOutcome(
            disposition=_DISPATCH_DISPOSITION[outcome.status],
            verification=verification,
            error=error,
            event=event,
            dispatch=outcome,
        )

    def process(self, request: IncomingRequest) -> ProcessingOutcome:
        """Run one request through the pipeline with synchronous handlers."""
        verification, parsed, rejected = self._verify_and_parse(request)
        if rejected is not None:
            return rejected
        event = parsed.event
        return self._finish(verification, event, dispatch(event, self._handlers))

    async def process_async(self, request: IncomingRequest) -> ProcessingOutcome:
        """Run one request through the pipeline, awaiting async handlers."""
        verification, parsed, rejected = self._verify_and_parse(request)
        if rejected is not None:
            return rejected
        event = parsed.event
        return self._finish(verification, event, await dispatch_async(event, self._handlers))
