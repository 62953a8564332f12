"""Event dispatch - routes verified events to registered handlers.

Dispatch is a lookup in a kind -> handler table. Adding support for a new
event kind is a registration, not an edit here:

    registry = HandlerRegistry()

    @registry.on("license.created")
    def handle_license_created(event: VerifiedEvent) -> None:
        ...

    outcome = dispatch(event, registry)

Unknown kinds are not errors: upstream may introduce new kinds before this
service learns about them, so they are logged and acknowledged.
"""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable, Iterator, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from sellerhook.webhooks.events import VerifiedEvent

logger = structlog.get_logger()

Handler = Callable[[VerifiedEvent], Any]
"""Handler signature: (event) -> result. May return an awaitable for dispatch_async."""


class DispatchStatus(Enum):
    """Outcome of dispatching one event."""

    HANDLER_OK = "handler_ok"
    HANDLER_FAILED = "handler_failed"
    UNHANDLED = "unhandled"


@dataclass
class DispatchOutcome:
    """Result of dispatch."""

    status: DispatchStatus
    kind: str
    result: Any = None
    """Handler return value when HANDLER_OK."""

    cause: BaseException | None = None
    """Exception raised by the handler when HANDLER_FAILED."""

    @property
    def ok(self) -> bool:
        return self.status is not DispatchStatus.HANDLER_FAILED


class HandlerRegistry(Mapping[str, Handler]):
    """Explicitly extensible mapping of event kind to handler.

    Registering a kind that already has a handler replaces it.
    """

    def __init__(self, handlers: Mapping[str, Handler] | None = None) -> None:
        self._handlers: dict[str, Handler] = dict(handlers or {})

    def register(self, kind: str, handler: Handler) -> None:
        if kind in self._handlers:
            logger.info("Replacing webhook handler", kind=kind)
        self._handlers[kind] = handler

    def on(self, kind: str) -> Callable[[Handler], Handler]:
        """Decorator to register a function as the handler for ``kind``."""

        def decorator(fn: Handler) -> Handler:
            self.register(kind, fn)
            return fn

        return decorator

    def unregister(self, kind: str) -> Handler | None:
        return self._handlers.pop(kind, None)

    @property
    def kinds(self) -> list[str]:
        """All registered event kinds, sorted."""
        return sorted(self._handlers)

    def __getitem__(self, kind: str) -> Handler:
        return self._handlers[kind]

    def __iter__(self) -> Iterator[str]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)


def _unhandled(event: VerifiedEvent) -> DispatchOutcome:
    logger.info(
        "Unhandled webhook event kind",
        kind=event.kind,
        event_id=event.id,
        source_id=event.source_id,
    )
    return DispatchOutcome(status=DispatchStatus.UNHANDLED, kind=event.kind)


def _failed(event: VerifiedEvent, exc: Exception) -> DispatchOutcome:
    logger.error(
        "Webhook handler failed",
        kind=event.kind,
        event_id=event.id,
        source_id=event.source_id,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return DispatchOutcome(status=DispatchStatus.HANDLER_FAILED, kind=event.kind, cause=exc)


def dispatch(event: VerifiedEvent, handlers: Mapping[str, Handler]) -> DispatchOutcome:
    """Invoke the handler registered for ``event.kind``.

    Handler exceptions are captured in the outcome, never re-raised, so one
    failing event cannot stop later events from being processed.

    Args:
        event: The verified event.
        handlers: Mapping of event kind to handler.

    Returns:
        DispatchOutcome with HANDLER_OK, HANDLER_FAILED or UNHANDLED.
    """
    handler = handlers.get(event.kind)
    if handler is None:
        return _unhandled(event)

    logger.info("Dispatching webhook event", kind=event.kind, event_id=event.id, source_id=event.source_id)
    try:
        result = handler(event)
    except Exception as e:
        return _failed(event, e)

    if inspect.isawaitable(result):
        # Coroutine handlers need dispatch_async; close it so it is not left un-awaited.
        if inspect.iscoroutine(result):
            result.close()
        return _failed(event, TypeError(f"Handler for {event.kind!r} is async; use dispatch_async"))

    return DispatchOutcome(status=DispatchStatus.HANDLER_OK, kind=event.kind, result=result)


async def dispatch_async(
    event: VerifiedEvent,
    handlers: Mapping[str, Handler | Callable[[VerifiedEvent], Awaitable[Any]]],
) -> DispatchOutcome:
    """Like dispatch, awaiting handlers that return awaitables."""
    handler = handlers.get(event.kind)
    if handler is None:
        return _unhandled(event)

    logger.info("Dispatching webhook event", kind=event.kind, event_id=event.id, source_id=event.source_id)
    try:
        result = handler(event)
        if inspect.isawaitable(result):
            result = await result
    except Exception as e:
        return _failed(event, e)

    return DispatchOutcome(status=DispatchStatus.HANDLER_OK, kind=event.kind, result=result)
