"""Sellerhook Webhook Signature Verification.

Proves that an inbound webhook was produced by a holder of the shared secret
and that it is fresh, before any part of its body is trusted.

Security Features:
- HMAC-SHA256 over the raw request body (never a re-serialized structure)
- Constant-time comparison via hmac.compare_digest
- Timestamp tolerance window against replayed requests and clock skew
- Malformed signatures are a mismatch, never an exception

Usage:
    from sellerhook.webhooks import IncomingRequest, WebhookConfig, WebhookVerifier

    verifier = WebhookVerifier(WebhookConfig(secret=b"s3cr3t"))
    result = verifier.verify(
        IncomingRequest(
            body=raw_body,
            signature=headers.get("X-LicenseChain-Signature"),
            timestamp=headers.get("X-LicenseChain-Timestamp"),
        )
    )

    if result:
        event = parse_event(result.payload)
"""

from __future__ import annotations

import hashlib
import hmac
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import structlog

logger = structlog.get_logger()

DEFAULT_TOLERANCE = 300


class VerificationStatus(Enum):
    """Status of webhook signature verification."""

    VALID = "valid"
    MISSING_CREDENTIALS = "missing_credentials"
    MALFORMED_TIMESTAMP = "malformed_timestamp"
    STALE_REQUEST = "stale_request"
    INVALID_SIGNATURE = "invalid_signature"
    UNKNOWN_SOURCE = "unknown_source"


@dataclass(frozen=True)
class WebhookConfig:
    """Immutable verification settings for one verifier."""

    secret: bytes
    """Shared HMAC key."""

    tolerance: int | float = DEFAULT_TOLERANCE
    """Maximum allowed |now - timestamp| in seconds."""

    def __post_init__(self) -> None:
        if isinstance(self.secret, str):
            object.__setattr__(self, "secret", self.secret.encode("utf-8"))
        if not self.secret:
            raise ValueError("Webhook secret must not be empty")
        if self.tolerance < 0:
            raise ValueError(f"Tolerance must be non-negative, got {self.tolerance}")

    def __repr__(self) -> str:
        return f"WebhookConfig(secret=<redacted>, tolerance={self.tolerance})"


@dataclass(frozen=True)
class IncomingRequest:
    """One inbound webhook call, as captured before any body parsing."""

    body: bytes
    """Raw request body exactly as received."""

    signature: str | None
    """Signature header value."""

    timestamp: str | None
    """Timestamp header value (decimal epoch seconds)."""

    source: str | None = None
    """Route or seller label the request arrived for."""


@dataclass
class VerificationResult:
    """Result of webhook signature verification."""

    valid: bool
    """Whether the request is authentic and fresh."""

    status: VerificationStatus
    """Detailed verification status."""

    error: str | None = None
    """Error message if verification failed. Never contains key or signature material."""

    payload: bytes | None = None
    """Verified body bytes, only set when valid."""

    timestamp: int | None = None
    """Request timestamp if parsed."""

    source: str | None = None
    """Source label of the request."""

    def __bool__(self) -> bool:
        """Allow using result in boolean context."""
        return self.valid


def create_signature(payload: bytes, secret: bytes) -> str:
    """Compute the lowercase hex HMAC-SHA256 of ``payload`` keyed by ``secret``."""
    return hmac.new(secret, payload, hashlib.sha256).hexdigest()


def verify_signature(payload: bytes, signature: str | None, secret: bytes) -> bool:
    """Check ``signature`` against the HMAC of ``payload`` in constant time.

    Both sides are compared as decoded digest bytes. A signature that is not
    valid hex, or decodes to the wrong length, is simply not equal.

    Args:
        payload: Raw payload bytes.
        signature: Hex signature to check.
        secret: Shared HMAC key.

    Returns:
        True if the signature matches.
    """
    if not signature:
        return False
    try:
        provided = bytes.fromhex(signature)
    except (ValueError, TypeError):
        return False
    expected = hmac.new(secret, payload, hashlib.sha256).digest()
    return hmac.compare_digest(provided, expected)


def parse_signature_header(
    header_value: str | None,
    prefix: str = "sha256=",
) -> str | None:
    """Extract the hex signature from a header value.

    Handles both formats seen from LicenseChain senders:
    - "sha256=abc123"
    - "abc123"

    Returns:
        The extracted signature, or None if the header is empty.
    """
    if not header_value:
        return None

    value = header_value.strip()
    if prefix and value.lower().startswith(prefix.lower()):
        value = value[len(prefix) :]

    return value or None


def parse_timestamp(value: str) -> int | None:
    """Parse a decimal epoch-seconds header. Returns None if malformed."""
    value = value.strip()
    sign = value[:1] if value[:1] in "+-" else ""
    digits = value[len(sign) :]
    if not digits.isascii() or not digits.isdigit():
        return None
    try:
        return int(value)
    except ValueError:
        # Past the interpreter's int digit limit
        return None


def _reject(
    status: VerificationStatus,
    error: str,
    request: IncomingRequest,
    timestamp: int | None = None,
) -> VerificationResult:
    logger.warning(
        "Webhook verification failed",
        status=status.value,
        reason=error,
        source=request.source,
    )
    return VerificationResult(
        valid=False,
        status=status,
        error=error,
        timestamp=timestamp,
        source=request.source,
    )


def verify_request(
    request: IncomingRequest,
    config: WebhookConfig,
    *,
    now: float | None = None,
) -> VerificationResult:
    """Verify an inbound webhook request.

    Checks run in order: credentials present, timestamp well-formed,
    timestamp within tolerance, signature over the raw body. The first
    failing check decides the status.

    Args:
        request: The captured request.
        config: Secret and tolerance to verify with.
        now: Current epoch time; defaults to time.time().

    Returns:
        VerificationResult; when valid, ``payload`` holds the verified body.
    """
    signature = request.signature.strip() if request.signature else ""
    raw_timestamp = request.timestamp.strip() if request.timestamp else ""

    if not signature or not raw_timestamp:
        return _reject(
            VerificationStatus.MISSING_CREDENTIALS,
            "Missing webhook signature or timestamp",
            request,
        )

    timestamp = parse_timestamp(raw_timestamp)
    if timestamp is None:
        return _reject(
            VerificationStatus.MALFORMED_TIMESTAMP,
            "Webhook timestamp is not an integer number of seconds",
            request,
        )

    current_time = time.time() if now is None else now
    if abs(current_time - timestamp) > config.tolerance:
        return _reject(
            VerificationStatus.STALE_REQUEST,
            f"Webhook timestamp {timestamp} is outside the {config.tolerance}s tolerance window",
            request,
            timestamp,
        )

    if not verify_signature(request.body, signature, config.secret):
        return _reject(
            VerificationStatus.INVALID_SIGNATURE,
            "Invalid webhook signature",
            request,
            timestamp,
        )

    logger.debug("Webhook signature verified", source=request.source, timestamp=timestamp)
    return VerificationResult(
        valid=True,
        status=VerificationStatus.VALID,
        payload=request.body,
        timestamp=timestamp,
        source=request.source,
    )


class WebhookVerifier:
    """Verifier bound to a single WebhookConfig.

    Holds no mutable state; one instance may serve concurrent requests.
    """

    def __init__(
        self,
        config: WebhookConfig,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the webhook verifier.

        Args:
            config: Immutable secret and tolerance.
            clock: Source of the current epoch time.
        """
        self._config = config
        self._clock = clock

    @property
    def config(self) -> WebhookConfig:
        return self._config

    def compute_signature(self, payload: bytes) -> str:
        """Compute the hex signature a sender would attach to ``payload``."""
        return create_signature(payload, self._config.secret)

    def verify(self, request: IncomingRequest) -> VerificationResult:
        """Verify a request against this verifier's config."""
        return verify_request(request, self._config, now=self._clock())
