"""Verified webhook events and payload parsing.

Turns a verified body into a VerifiedEvent. Accepted body shape:

    {
        "id": "evt_123",                       # optional
        "event": "license.created",            # or "type"
        "data": {"id": "lic_1", ...},
        "timestamp": "2024-01-01T00:00:00Z",   # optional, ISO-8601
        "sellerId": "seller_1"                 # or "sourceId", optional
    }
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any

KIND_FIELDS = ("event", "type")
SOURCE_FIELDS = ("sellerId", "sourceId")


class ParseStatus(Enum):
    """Outcome of parsing a verified payload."""

    PARSED = "parsed"
    MALFORMED_EVENT = "malformed_event"


@dataclass(frozen=True)
class VerifiedEvent:
    """A webhook event whose payload passed signature verification."""

    id: str
    kind: str
    data: Mapping[str, Any]
    timestamp: datetime | None = None
    source_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "data": dict(self.data),
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "source_id": self.source_id,
        }


@dataclass
class ParseResult:
    """Result of parse_event."""

    status: ParseStatus
    event: VerifiedEvent | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is ParseStatus.PARSED

    def __bool__(self) -> bool:
        return self.ok


def derive_event_id(payload: bytes) -> str:
    """Stable id for bodies that carry none: redeliveries of the same bytes share it."""
    return "evt_" + hashlib.sha256(payload).hexdigest()[:24]


def parse_iso8601(value: str) -> datetime | None:
    """Parse an ISO-8601 timestamp into an aware datetime.

    Naive values are taken as UTC. Returns None if unparseable.
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _malformed(error: str) -> ParseResult:
    return ParseResult(status=ParseStatus.MALFORMED_EVENT, error=error)


def _first_present(body: Mapping[str, Any], names: tuple[str, ...]) -> Any:
    for name in names:
        if body.get(name) is not None:
            return body[name]
    return None


def parse_event(payload: bytes, *, default_source: str | None = None) -> ParseResult:
    """Deserialize a verified payload into a VerifiedEvent.

    Args:
        payload: Verified raw body bytes.
        default_source: Source id to stamp when the body names none.

    Returns:
        ParseResult with the event, or MALFORMED_EVENT and a reason.
    """
    try:
        body = json.loads(payload.decode("utf-8"))
    except UnicodeDecodeError:
        return _malformed("Body is not valid UTF-8")
    except json.JSONDecodeError as e:
        return _malformed(f"Body is not valid JSON: {e.msg}")
    except RecursionError:
        return _malformed("Body is nested too deeply")

    if not isinstance(body, dict):
        return _malformed("Body must be a JSON object")

    kind = _first_present(body, KIND_FIELDS)
    if not isinstance(kind, str) or not kind.strip():
        return _malformed("Missing or invalid 'event'/'type' field")

    data = body.get("data")
    if not isinstance(data, dict):
        return _malformed("Missing or invalid 'data' field")

    timestamp = None
    raw_timestamp = body.get("timestamp")
    if raw_timestamp is not None:
        if not isinstance(raw_timestamp, str):
            return _malformed("'timestamp' must be an ISO-8601 string")
        timestamp = parse_iso8601(raw_timestamp)
        if timestamp is None:
            return _malformed(f"Invalid ISO-8601 timestamp: {raw_timestamp!r}")

    source_id = _first_present(body, SOURCE_FIELDS)
    if source_id is not None and not isinstance(source_id, str):
        return _malformed("'sellerId'/'sourceId' must be a string")

    event_id = body.get("id")
    if not isinstance(event_id, str) or not event_id:
        event_id = derive_event_id(payload)

    event = VerifiedEvent(
        id=event_id,
        kind=kind.strip(),
        data=MappingProxyType(data),
        timestamp=timestamp,
        source_id=source_id or default_source,
    )
    return ParseResult(status=ParseStatus.PARSED, event=event)
