"""Tests for logging setup."""

from __future__ import annotations

import pytest
import structlog
from structlog.testing import capture_logs

from sellerhook.logconfig import configure_logging
from sellerhook.webhooks.verifier import IncomingRequest, WebhookConfig, verify_request


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


class TestConfigureLogging:
    """Tests for configure_logging."""

    @pytest.mark.parametrize("fmt", ["json", "console"])
    def test_valid_settings(self, fmt):
        """Test each renderer configures without error."""
        configure_logging("debug", fmt)
        assert structlog.is_configured()

    def test_level_case_insensitive(self):
        """Test level names ignore case."""
        configure_logging("WARNING")
        assert structlog.is_configured()

    def test_unknown_level(self):
        """Test an unknown level is refused."""
        with pytest.raises(ValueError):
            configure_logging("verbose")


class TestVerificationLogging:
    """Tests for the log lines emitted on rejection."""

    def test_rejection_logged_without_secrets(self):
        """Test a rejected request is logged with its status and no secret material."""
        request = IncomingRequest(body=b"{}", signature="ab" * 32, timestamp="1", source="seller_1")

        with capture_logs() as logs:
            verify_request(request, WebhookConfig(secret=b"s3cr3t"), now=1)

        assert logs[0]["status"] == "invalid_signature"
        assert logs[0]["source"] == "seller_1"
        assert logs[0]["log_level"] == "warning"
        assert "s3cr3t" not in str(logs)
        assert "ab" * 32 not in str(logs)
