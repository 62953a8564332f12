"""Webhook secret resolution.

The processor asks a resolver for the secret of the source a request
arrived for. Any callable ``(source) -> bytes | None`` works; SecretStore
covers the common case of one shared secret plus per-seller overrides.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sellerhook.core.config import WebhookSettings

SecretResolver = Callable[[str | None], bytes | None]


def _to_bytes(secret: str | bytes) -> bytes:
    return secret.encode("utf-8") if isinstance(secret, str) else bytes(secret)


class SecretStore:
    """Static secret lookup: per-source secret first, then the shared default."""

    def __init__(
        self,
        default: str | bytes | None = None,
        per_source: Mapping[str, str | bytes] | None = None,
    ) -> None:
        self._default = _to_bytes(default) if default else None
        self._per_source = {
            source: _to_bytes(secret) for source, secret in (per_source or {}).items() if secret
        }

    @classmethod
    def from_settings(cls, settings: WebhookSettings) -> SecretStore:
        return cls(default=settings.secret, per_source=settings.seller_secrets)

    @property
    def sources(self) -> list[str]:
        """Sources with a dedicated secret."""
        return sorted(self._per_source)

    @property
    def has_default(self) -> bool:
        return self._default is not None

    def get_secret(self, source: str | None) -> bytes | None:
        if source is not None and source in self._per_source:
            return self._per_source[source]
        return self._default

    def __call__(self, source: str | None) -> bytes | None:
        return self.get_secret(source)

    def __repr__(self) -> str:
        return f"SecretStore(default={'<redacted>' if self._default else None}, sources={self.sources})"
