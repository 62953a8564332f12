"""Core."""

from .config import (
    SellerhookConfig,
    ServerSettings,
    WebhookSettings,
    clear_config,
    get_config,
    load_config_from_file,
    load_settings,
)

__all__ = [
    "SellerhookConfig",
    "ServerSettings",
    "WebhookSettings",
    "clear_config",
    "get_config",
    "load_config_from_file",
    "load_settings",
]
