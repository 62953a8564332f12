"""Configuration types with environment variable support.

All settings can be configured via environment variables with the SELLERHOOK_ prefix.
Example: SELLERHOOK_TOLERANCE=120 narrows the replay window to two minutes.
"""

from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def load_config_from_file(path: str | Path) -> dict[str, Any]:
    """Load configuration from a YAML or TOML file.

    Args:
        path: Path to the configuration file (.yaml, .yml, or .toml)

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the config file has encoding errors, invalid syntax, or unsupported format
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ValueError(f"Config file encoding error in {path}: {e}") from e

    try:
        if path.suffix in (".yaml", ".yml"):
            return yaml.safe_load(content) or {}
        elif path.suffix == ".toml":
            return tomllib.loads(content)
        else:
            raise ValueError(f"Unsupported config format: {path.suffix}")
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {path}: {e}") from e


class WebhookSettings(BaseSettings):
    """Inbound webhook verification settings.

    Environment variables:
    - SELLERHOOK_SECRET: Shared HMAC secret used when a seller has no own secret
    - SELLERHOOK_TOLERANCE: Replay window in seconds
    - SELLERHOOK_SELLER_SECRETS: JSON object mapping seller IDs to secrets
    - SELLERHOOK_SIGNATURE_HEADER / _TIMESTAMP_HEADER / _SOURCE_HEADER
    """

    model_config = SettingsConfigDict(
        env_prefix="SELLERHOOK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    secret: str | None = Field(
        default=None,
        repr=False,
        description="Shared webhook secret. Used for any seller without a dedicated secret.",
    )
    tolerance: int = Field(
        default=300,
        ge=0,
        description="Maximum clock skew between signing and verification (seconds).",
    )
    seller_secrets: dict[str, str] = Field(
        default_factory=dict,
        repr=False,
        description="Per-seller webhook secrets keyed by seller ID.",
    )
    signature_header: str = Field(
        default="X-LicenseChain-Signature",
        description="Header carrying the hex HMAC-SHA256 signature.",
    )
    timestamp_header: str = Field(
        default="X-LicenseChain-Timestamp",
        description="Header carrying the signing time in epoch seconds.",
    )
    source_header: str = Field(
        default="X-LicenseChain-Seller",
        description="Header identifying the seller the webhook was raised for.",
    )
    signature_prefix: str = Field(
        default="sha256=",
        description="Optional scheme prefix stripped from the signature header.",
    )

    @field_validator("seller_secrets", mode="before")
    @classmethod
    def _parse_seller_secrets(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip()
            return json.loads(value) if value else {}
        return value


class ServerSettings(BaseSettings):
    """HTTP server settings."""

    model_config = SettingsConfigDict(
        env_prefix="SELLERHOOK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    host: str = Field(
        default="0.0.0.0",
        description="Bind address.",
    )
    port: int = Field(
        default=3002,
        ge=1,
        le=65535,
        description="Bind port.",
    )
    max_body_size: int = Field(
        default=10 * 1024 * 1024,
        description="Maximum accepted request body (bytes). Default 10MB.",
    )
    log_level: str = Field(
        default="info",
        description="Log level: debug, info, warning or error.",
    )
    log_format: str = Field(
        default="json",
        description="Log renderer: 'json' or 'console'.",
    )

    @field_validator("log_format")
    @classmethod
    def _check_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "console"):
            raise ValueError(f"log_format must be 'json' or 'console', got {value!r}")
        return value


class SellerhookConfig(BaseSettings):
    """Master configuration combining all settings.

    Use get_config() to get a cached instance.

    Example:
        config = get_config()
        print(config.webhooks.tolerance)
        print(config.server.port)
    """

    model_config = SettingsConfigDict(
        env_prefix="SELLERHOOK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def webhooks(self) -> WebhookSettings:
        """Get webhook verification settings."""
        return WebhookSettings()

    @property
    def server(self) -> ServerSettings:
        """Get server settings."""
        return ServerSettings()

    def to_env_dict(self) -> dict[str, str]:
        """Export current configuration as environment variable dictionary.

        Secrets are never exported.
        """
        result = {}

        hooks = self.webhooks
        result["SELLERHOOK_TOLERANCE"] = str(hooks.tolerance)
        result["SELLERHOOK_SIGNATURE_HEADER"] = hooks.signature_header
        result["SELLERHOOK_TIMESTAMP_HEADER"] = hooks.timestamp_header
        result["SELLERHOOK_SOURCE_HEADER"] = hooks.source_header
        result["SELLERHOOK_SIGNATURE_PREFIX"] = hooks.signature_prefix

        server = self.server
        result["SELLERHOOK_HOST"] = server.host
        result["SELLERHOOK_PORT"] = str(server.port)
        result["SELLERHOOK_MAX_BODY_SIZE"] = str(server.max_body_size)
        result["SELLERHOOK_LOG_LEVEL"] = server.log_level
        result["SELLERHOOK_LOG_FORMAT"] = server.log_format

        return result

    def to_display_dict(self) -> dict[str, Any]:
        """Export current configuration as a nested dictionary for display."""
        hooks = self.webhooks
        server = self.server
        return {
            "webhooks": {
                "secret": "********" if hooks.secret else None,
                "tolerance": hooks.tolerance,
                "seller_secrets": sorted(hooks.seller_secrets),
                "signature_header": hooks.signature_header,
                "timestamp_header": hooks.timestamp_header,
                "source_header": hooks.source_header,
                "signature_prefix": hooks.signature_prefix,
            },
            "server": {
                "host": server.host,
                "port": server.port,
                "max_body_size": server.max_body_size,
                "log_level": server.log_level,
                "log_format": server.log_format,
            },
        }


_config: SellerhookConfig | None = None


def get_config() -> SellerhookConfig:
    """Get the global configuration instance.

    Returns a cached instance of SellerhookConfig that reads from environment variables.
    To reload config (e.g., in tests), call clear_config() first.
    """
    global _config
    if _config is None:
        _config = SellerhookConfig()
    return _config


def clear_config() -> None:
    """Clear the cached configuration.

    Call this to force reloading of environment variables on next get_config() call.
    """
    global _config
    _config = None


def load_settings(path: str | Path | None = None) -> tuple[WebhookSettings, ServerSettings]:
    """Build webhook and server settings, optionally from a config file.

    The file may contain ``webhooks`` and ``server`` sections. File values take
    precedence over environment variables.

    Example (YAML):
        webhooks:
          secret: s3cr3t
          tolerance: 120
          seller_secrets:
            seller_1: other-secret
        server:
          port: 8080

    Raises:
        ValueError: If the file or one of its sections is not a mapping
    """
    data = load_config_from_file(path) if path else {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping at the top level")

    sections = {}
    for name in ("webhooks", "server"):
        section = data.get(name) or {}
        if not isinstance(section, dict):
            raise ValueError(f"Config section '{name}' in {path} must be a mapping")
        sections[name] = section

    return (
        WebhookSettings(**sections["webhooks"]),
        ServerSettings(**sections["server"]),
    )
