"""Tests for the webhook processing pipeline."""

from __future__ import annotations

import pytest

from sellerhook.webhooks import (
    HTTP_STATUS,
    Disposition,
    DispatchStatus,
    HandlerRegistry,
    IncomingRequest,
    SecretStore,
    VerificationStatus,
    WebhookProcessor,
    create_signature,
)

SECRET = b"s3cr3t"
NOW = 1_704_067_200
SCENARIO_BODY = (
    b'{"event":"license.created","data":{"id":"lic_1"},'
    b'"timestamp":"2024-01-01T00:00:00Z","sellerId":"seller_1"}'
)


def _signed(
    body: bytes = SCENARIO_BODY,
    timestamp: int = NOW,
    secret: bytes = SECRET,
    source: str | None = None,
) -> IncomingRequest:
    return IncomingRequest(
        body=body,
        signature=create_signature(body, secret),
        timestamp=str(timestamp),
        source=source,
    )


@pytest.fixture
def received():
    return []


@pytest.fixture
def processor(received):
    registry = HandlerRegistry()
    registry.register("license.created", received.append)
    return WebhookProcessor(SecretStore(default=SECRET), registry, clock=lambda: NOW)


class TestScenarios:
    """End-to-end scenarios through verify, parse and dispatch."""

    def test_valid_event_is_routed(self, processor, received):
        """Test a correctly signed fresh body reaches its handler."""
        outcome = processor.process(_signed())

        assert outcome.disposition == Disposition.HANDLER_OK
        assert outcome.http_status == 200
        assert outcome.accepted
        assert len(received) == 1
        assert received[0].kind == "license.created"
        assert received[0].data["id"] == "lic_1"
        assert received[0].source_id == "seller_1"

    def test_stale_timestamp_rejected(self, processor, received):
        """Test a request signed ten minutes ago is rejected."""
        outcome = processor.process(_signed(timestamp=NOW - 600))

        assert outcome.disposition == Disposition.REJECTED
        assert outcome.verification.status == VerificationStatus.STALE_REQUEST
        assert outcome.http_status == 401
        assert received == []

    def test_altered_signature_rejected(self, processor, received):
        """Test a signature with one hex char changed is rejected."""
        request = _signed()
        signature = request.signature
        altered = signature[:-1] + ("0" if signature[-1] != "0" else "1")
        outcome = processor.process(
            IncomingRequest(body=request.body, signature=altered, timestamp=request.timestamp)
        )

        assert outcome.verification.status == VerificationStatus.INVALID_SIGNATURE
        assert outcome.event is None
        assert received == []

    def test_missing_event_kind_is_malformed(self, processor, received):
        """Test a signed body without a kind never reaches dispatch."""
        body = b'{"data":{"id":"lic_1"},"timestamp":"2024-01-01T00:00:00Z"}'
        outcome = processor.process(_signed(body=body))

        assert outcome.disposition == Disposition.MALFORMED_REJECTED
        assert outcome.verification.valid
        assert outcome.http_status == 400
        assert outcome.dispatch is None
        assert received == []

    def test_unknown_kind_acknowledged(self, processor, received):
        """Test unknown kinds are acknowledged and the processor keeps serving."""
        body = b'{"event":"license.transferred","data":{}}'
        first = processor.process(_signed(body=body))
        second = processor.process(_signed())

        assert first.disposition == Disposition.UNHANDLED
        assert first.http_status == 200
        assert second.disposition == Disposition.HANDLER_OK

    def test_prefixed_signature_is_not_stripped_here(self, processor):
        """Test the processor expects an already-parsed signature."""
        request = _signed()
        outcome = processor.process(
            IncomingRequest(
                body=request.body,
                signature="sha256=" + request.signature,
                timestamp=request.timestamp,
            )
        )
        assert outcome.verification.status == VerificationStatus.INVALID_SIGNATURE


class TestPathologicalInput:
    """Tests for oversized or pathological requests."""

    def test_oversized_timestamp_header(self, processor, received):
        """Test a timestamp too long to convert is rejected, not raised."""
        request = IncomingRequest(
            body=SCENARIO_BODY,
            signature=create_signature(SCENARIO_BODY, SECRET),
            timestamp="1" * 5000,
        )
        outcome = processor.process(request)

        assert outcome.disposition == Disposition.REJECTED
        assert outcome.verification.status == VerificationStatus.MALFORMED_TIMESTAMP
        assert outcome.http_status == 401
        assert received == []

    def test_deeply_nested_signed_body(self, processor, received):
        """Test a signed body nested too deeply is malformed."""
        outcome = processor.process(_signed(body=b"[" * 100_000 + b"]" * 100_000))

        assert outcome.disposition == Disposition.MALFORMED_REJECTED
        assert outcome.http_status == 400
        assert outcome.dispatch is None
        assert received == []

    @pytest.mark.asyncio
    async def test_deeply_nested_signed_body_async(self, processor):
        """Test the async pipeline also rejects deeply nested bodies."""
        outcome = await processor.process_async(_signed(body=b"[" * 100_000 + b"]" * 100_000))
        assert outcome.disposition == Disposition.MALFORMED_REJECTED


class TestSecrets:
    """Tests for per-source secret resolution."""

    def test_unknown_source_without_default(self, received):
        """Test a source with no secret is rejected as UNKNOWN_SOURCE."""
        processor = WebhookProcessor(
            SecretStore(per_source={"seller_1": SECRET}),
            {"license.created": received.append},
            clock=lambda: NOW,
        )
        outcome = processor.process(_signed(source="seller_9"))

        assert outcome.disposition == Disposition.REJECTED
        assert outcome.verification.status == VerificationStatus.UNKNOWN_SOURCE
        assert outcome.http_status == 401
        assert received == []

    def test_per_source_secret(self, received):
        """Test a seller's own secret is used for its requests."""
        processor = WebhookProcessor(
            SecretStore(default=b"shared", per_source={"seller_1": SECRET}),
            {"license.created": received.append},
            clock=lambda: NOW,
        )

        assert processor.process(_signed(source="seller_1")).accepted
        assert not processor.process(_signed(source="seller_2")).accepted
        assert processor.process(_signed(source="seller_2", secret=b"shared")).accepted

    def test_source_stamped_on_event(self, received):
        """Test the request source fills in a body without a seller id."""
        processor = WebhookProcessor(
            SecretStore(default=SECRET), {"user.created": received.append}, clock=lambda: NOW
        )
        processor.process(_signed(body=b'{"event":"user.created","data":{}}', source="seller_7"))

        assert received[0].source_id == "seller_7"

    def test_any_callable_resolver(self, received):
        """Test a plain function works as the secret resolver."""
        processor = WebhookProcessor(
            lambda source: SECRET if source == "seller_1" else None,
            {"license.created": received.append},
            clock=lambda: NOW,
        )
        assert processor.process(_signed(source="seller_1")).accepted
        assert processor.process(_signed()).verification.status == VerificationStatus.UNKNOWN_SOURCE


class TestHandlerFailures:
    """Tests for handler failure isolation."""

    def test_failure_maps_to_500(self):
        """Test a raising handler gives HANDLER_FAILED and 500."""

        def failing(event):
            raise RuntimeError("db down")

        processor = WebhookProcessor(
            SecretStore(default=SECRET), {"license.created": failing}, clock=lambda: NOW
        )
        outcome = processor.process(_signed())

        assert outcome.disposition == Disposition.HANDLER_FAILED
        assert outcome.http_status == 500
        assert outcome.dispatch.status == DispatchStatus.HANDLER_FAILED
        assert "license.created" in outcome.error
        assert "db down" not in outcome.error

    def test_next_request_succeeds(self):
        """Test the processor recovers after a handler failure."""
        calls = []

        def flaky(event):
            calls.append(event)
            if len(calls) == 1:
                raise RuntimeError("first call fails")

        processor = WebhookProcessor(
            SecretStore(default=SECRET), {"license.created": flaky}, clock=lambda: NOW
        )

        assert processor.process(_signed()).http_status == 500
        assert processor.process(_signed()).http_status == 200


class TestProcessAsync:
    """Tests for process_async."""

    @pytest.mark.asyncio
    async def test_async_handler(self):
        """Test async handlers are awaited."""
        seen = []

        async def handler(event):
            seen.append(event.data["id"])

        processor = WebhookProcessor(
            SecretStore(default=SECRET), {"license.created": handler}, clock=lambda: NOW
        )
        outcome = await processor.process_async(_signed())

        assert outcome.disposition == Disposition.HANDLER_OK
        assert seen == ["lic_1"]

    @pytest.mark.asyncio
    async def test_rejection(self, processor):
        """Test rejections behave the same as in process."""
        outcome = await processor.process_async(_signed(timestamp=NOW + 301))
        assert outcome.verification.status == VerificationStatus.STALE_REQUEST


class TestConfiguration:
    """Tests for processor construction and status mapping."""

    def test_negative_tolerance_rejected(self):
        """Test a negative tolerance is refused."""
        with pytest.raises(ValueError):
            WebhookProcessor(SecretStore(default=SECRET), {}, tolerance=-1)

    def test_custom_tolerance(self):
        """Test a narrower tolerance applies."""
        processor = WebhookProcessor(
            SecretStore(default=SECRET), {}, tolerance=10, clock=lambda: NOW
        )
        assert processor.tolerance == 10
        outcome = processor.process(_signed(timestamp=NOW - 11))
        assert outcome.verification.status == VerificationStatus.STALE_REQUEST

    def test_http_status_mapping(self):
        """Test every disposition has its documented status code."""
        assert HTTP_STATUS == {
            Disposition.REJECTED: 401,
            Disposition.MALFORMED_REJECTED: 400,
            Disposition.HANDLER_OK: 200,
            Disposition.HANDLER_FAILED: 500,
            Disposition.UNHANDLED: 200,
        }
