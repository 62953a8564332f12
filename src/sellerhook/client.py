"""Outbound webhook signing and delivery.

Produces requests that the ingress accepts: the signature is computed over
the exact bytes that are sent.

Usage:
    from sellerhook.client import WebhookSender, build_event_body

    body = build_event_body("license.created", {"id": "lic_1"}, source_id="seller_1")
    with WebhookSender("http://localhost:3002/api/webhooks/licensechain", "s3cr3t") as sender:
        response = sender.send(body)
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx
import structlog

from sellerhook.webhooks.verifier import create_signature

logger = structlog.get_logger()

DEFAULT_SIGNATURE_HEADER = "X-LicenseChain-Signature"
DEFAULT_TIMESTAMP_HEADER = "X-LicenseChain-Timestamp"
DEFAULT_SOURCE_HEADER = "X-LicenseChain-Seller"


@dataclass(frozen=True)
class SignedPayload:
    """A body together with its signature and signing time."""

    body: bytes
    signature: str
    timestamp: int
    prefix: str = ""

    def headers(
        self,
        signature_header: str = DEFAULT_SIGNATURE_HEADER,
        timestamp_header: str = DEFAULT_TIMESTAMP_HEADER,
    ) -> dict[str, str]:
        return {
            signature_header: f"{self.prefix}{self.signature}",
            timestamp_header: str(self.timestamp),
            "Content-Type": "application/json",
        }


def sign_payload(
    body: bytes,
    secret: str | bytes,
    *,
    timestamp: int | None = None,
    prefix: str = "",
) -> SignedPayload:
    """Sign ``body`` with ``secret``.

    Args:
        body: Exact bytes to be sent.
        secret: Shared HMAC secret.
        timestamp: Signing time in epoch seconds; now if omitted.
        prefix: Optional scheme prefix for the header value, e.g. "sha256=".
    """
    key = secret.encode("utf-8") if isinstance(secret, str) else secret
    return SignedPayload(
        body=body,
        signature=create_signature(body, key),
        timestamp=int(time.time()) if timestamp is None else timestamp,
        prefix=prefix,
    )


def build_event_body(
    kind: str,
    data: dict[str, Any],
    *,
    source_id: str | None = None,
    event_id: str | None = None,
    timestamp: datetime | None = None,
) -> bytes:
    """Serialize an event in the shape the ingress parses."""
    body: dict[str, Any] = {}
    if event_id:
        body["id"] = event_id
    body["event"] = kind
    body["data"] = data
    body["timestamp"] = (timestamp or datetime.now(UTC)).isoformat().replace("+00:00", "Z")
    if source_id:
        body["sellerId"] = source_id
    return json.dumps(body, separators=(",", ":")).encode("utf-8")


class WebhookSender:
    """Signs and POSTs webhook bodies to an ingress URL."""

    def __init__(
        self,
        url: str,
        secret: str | bytes,
        *,
        timeout: float = 30.0,
        signature_header: str = DEFAULT_SIGNATURE_HEADER,
        timestamp_header: str = DEFAULT_TIMESTAMP_HEADER,
        source_header: str = DEFAULT_SOURCE_HEADER,
        prefix: str = "",
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        self._secret = secret
        self._signature_header = signature_header
        self._timestamp_header = timestamp_header
        self._source_header = source_header
        self._prefix = prefix
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=timeout)

    def send(self, body: bytes, source: str | None = None) -> httpx.Response:
        """Sign and deliver ``body``.

        Raises:
            httpx.HTTPError: If the request cannot be delivered.
        """
        signed = sign_payload(body, self._secret, prefix=self._prefix)
        headers = signed.headers(self._signature_header, self._timestamp_header)
        if source:
            headers[self._source_header] = source

        response = self._client.post(self.url, content=body, headers=headers)
        logger.info(
            "Webhook delivered",
            url=self.url,
            status=response.status_code,
            source=source,
        )
        return response

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> WebhookSender:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
