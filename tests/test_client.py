"""Tests for outbound webhook signing and delivery."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import httpx
import pytest

from sellerhook.client import WebhookSender, build_event_body, sign_payload
from sellerhook.webhooks import (
    IncomingRequest,
    WebhookConfig,
    parse_event,
    parse_signature_header,
    verify_request,
)

SECRET = "s3cr3t"


class TestSignPayload:
    """Tests for sign_payload."""

    def test_headers(self):
        """Test the header set produced for a signed body."""
        signed = sign_payload(b"{}", SECRET, timestamp=1700000000)
        headers = signed.headers()

        assert headers["X-LicenseChain-Timestamp"] == "1700000000"
        assert len(headers["X-LicenseChain-Signature"]) == 64
        assert headers["Content-Type"] == "application/json"

    def test_prefix(self):
        """Test the optional signature prefix."""
        signed = sign_payload(b"{}", SECRET, prefix="sha256=")
        assert signed.headers()["X-LicenseChain-Signature"].startswith("sha256=")

    def test_custom_header_names(self):
        """Test header names are configurable."""
        headers = sign_payload(b"{}", SECRET).headers("X-Sig", "X-Ts")
        assert set(headers) == {"X-Sig", "X-Ts", "Content-Type"}

    def test_verifies(self):
        """Test a signed payload passes verification."""
        body = build_event_body("license.created", {"id": "lic_1"})
        signed = sign_payload(body, SECRET, prefix="sha256=")
        headers = signed.headers()

        result = verify_request(
            IncomingRequest(
                body=body,
                signature=parse_signature_header(headers["X-LicenseChain-Signature"]),
                timestamp=headers["X-LicenseChain-Timestamp"],
            ),
            WebhookConfig(secret=SECRET),
        )
        assert result.valid


class TestBuildEventBody:
    """Tests for build_event_body."""

    def test_shape(self):
        """Test the body has the fields the ingress parses."""
        body = build_event_body(
            "license.created",
            {"id": "lic_1"},
            source_id="seller_1",
            event_id="evt_1",
            timestamp=datetime(2024, 1, 1, tzinfo=UTC),
        )
        assert json.loads(body) == {
            "id": "evt_1",
            "event": "license.created",
            "data": {"id": "lic_1"},
            "timestamp": "2024-01-01T00:00:00Z",
            "sellerId": "seller_1",
        }

    def test_parses(self):
        """Test a built body parses into the same event."""
        event = parse_event(build_event_body("user.created", {"id": "u_1"}, source_id="seller_1")).event

        assert event.kind == "user.created"
        assert event.data["id"] == "u_1"
        assert event.source_id == "seller_1"
        assert event.timestamp is not None

    def test_optional_fields_omitted(self):
        """Test id and sellerId are left out when not given."""
        body = json.loads(build_event_body("user.created", {}))
        assert "id" not in body
        assert "sellerId" not in body


class TestWebhookSender:
    """Tests for WebhookSender."""

    def test_send_signs_exact_bytes(self):
        """Test the sender signs the bytes it sends."""
        captured = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200, json={"received": True})

        client = httpx.Client(transport=httpx.MockTransport(handler))
        body = build_event_body("license.created", {"id": "lic_1"})

        with WebhookSender("http://hooks.test/api/webhooks/licensechain", SECRET, client=client) as sender:
            response = sender.send(body, source="seller_1")

        assert response.status_code == 200
        request = captured[0]
        assert request.method == "POST"
        assert request.content == body
        assert request.headers["X-LicenseChain-Seller"] == "seller_1"

        result = verify_request(
            IncomingRequest(
                body=request.content,
                signature=request.headers["X-LicenseChain-Signature"],
                timestamp=request.headers["X-LicenseChain-Timestamp"],
            ),
            WebhookConfig(secret=SECRET),
        )
        assert result.valid

    def test_no_source_header_without_source(self):
        """Test the seller header is only sent when a source is given."""
        captured = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(202)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        WebhookSender("http://hooks.test/", SECRET, client=client).send(b"{}")

        assert "X-LicenseChain-Seller" not in captured[0].headers

    def test_external_client_not_closed(self):
        """Test a caller-provided client stays open."""
        client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        with WebhookSender("http://hooks.test/", SECRET, client=client):
            pass

        assert not client.is_closed
        client.close()

    def test_transport_error_propagates(self):
        """Test delivery failures raise httpx errors."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        with pytest.raises(httpx.ConnectError):
            WebhookSender("http://hooks.test/", SECRET, client=client).send(b"{}")
