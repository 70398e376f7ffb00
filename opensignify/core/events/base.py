"""Event bus infrastructure.

Domain events are frozen dataclasses published on an in-memory bus. Handlers
may be sync or async; one failing handler never affects the others or the
publisher.
"""

from __future__ import annotations

import asyncio
import inspect
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import UUID, uuid4

from opensignify.utils.logging import get_logger

logger = get_logger("events")


@dataclass(frozen=True)
class BaseEvent:
    """Base class for all domain events.

    Standard metadata:
    - event_id: Unique identifier for this event instance
    - occurred_at: Timestamp when the event occurred (UTC)
    - context: Optional additional context data
    """

    event_id: UUID = field(default_factory=uuid4, init=False)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC), init=False)
    context: dict[str, Any] | None = field(default=None, kw_only=True)


class EventBus(Protocol):
    """Publish/subscribe contract used by the invoice service."""

    def subscribe(
        self,
        event_type: type[BaseEvent],
        handler: Callable[[BaseEvent], Any],
        priority: int = 0,
    ) -> None: ...

    def unsubscribe(
        self,
        event_type: type[BaseEvent],
        handler: Callable[[BaseEvent], Any],
    ) -> None: ...

    async def publish_async(self, event: BaseEvent) -> None: ...


@dataclass
class _HandlerRegistration:
    handler: Callable[[BaseEvent], Any]
    priority: int
    is_async: bool


def _handler_name(handler: Callable[..., Any]) -> str:
    return getattr(handler, "__name__", type(handler).__name__)


class GlobalEventBus:
    """In-memory event bus with sync/async handler support.

    Handlers run by priority (higher first) and receive every event that is an
    instance of the type they subscribed to, so subscribing to ``BaseEvent``
    catches everything.

    Example:
        >>> bus = GlobalEventBus()
        >>> bus.subscribe(InvoiceSignedEvent, on_signed, priority=10)
        >>> await bus.publish_async(InvoiceSignedEvent(invoice_id="...", ...))
    """

    def __init__(self) -> None:
        self._handlers: dict[type[BaseEvent], list[_HandlerRegistration]] = defaultdict(list)

    def subscribe(
        self,
        event_type: type[BaseEvent],
        handler: Callable[[BaseEvent], Any],
        priority: int = 0,
    ) -> None:
        """Register a handler (sync or async) for the given event type."""
        is_async = inspect.iscoroutinefunction(handler)

        self._handlers[event_type].append(
            _HandlerRegistration(handler=handler, priority=priority, is_async=is_async)
        )
        self._handlers[event_type].sort(key=lambda r: r.priority, reverse=True)

        logger.debug(
            "handler_registered",
            event_type=event_type.__name__,
            handler=_handler_name(handler),
            priority=priority,
            is_async=is_async,
        )

    def unsubscribe(
        self,
        event_type: type[BaseEvent],
        handler: Callable[[BaseEvent], Any],
    ) -> None:
        """Remove a handler for the given event type."""
        if event_type in self._handlers:
            self._handlers[event_type] = [
                reg for reg in self._handlers[event_type] if reg.handler != handler
            ]
            logger.debug(
                "handler_unregistered",
                event_type=event_type.__name__,
                handler=_handler_name(handler),
            )

    def is_subscribed(self, event_type: type[BaseEvent], handler: Callable[..., Any]) -> bool:
        return any(reg.handler == handler for reg in self._handlers.get(event_type, []))

    async def publish_async(self, event: BaseEvent) -> None:
        """Publish an event and await every handler before returning.

        Handlers run one after another in priority order. Sync handlers run in
        a worker thread.
        """
        event_name = type(event).__name__

        logger.info(
            "event_published_async",
            event_type=event_name,
            event_id=str(event.event_id),
            occurred_at=event.occurred_at.isoformat(),
        )

        handlers = self._get_handlers_for_event(event)
        if not handlers:
            logger.debug("no_handlers_found", event_type=event_name)
            return

        for registration in handlers:
            await self._execute_handler(registration, event)

    async def _execute_handler(
        self,
        registration: _HandlerRegistration,
        event: BaseEvent,
    ) -> None:
        try:
            if registration.is_async:
                await registration.handler(event)
            else:
                await asyncio.to_thread(registration.handler, event)
            logger.debug(
                "handler_executed",
                event_type=type(event).__name__,
                handler=_handler_name(registration.handler),
                priority=registration.priority,
            )
        except Exception as e:
            logger.error(
                "handler_failed",
                event_type=type(event).__name__,
                handler=_handler_name(registration.handler),
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )

    def _get_handlers_for_event(self, event: BaseEvent) -> list[_HandlerRegistration]:
        handlers: list[_HandlerRegistration] = []
        for event_type, registrations in self._handlers.items():
            if isinstance(event, event_type):
                handlers.extend(registrations)

        handlers.sort(key=lambda r: r.priority, reverse=True)
        return handlers


_global_event_bus: GlobalEventBus | None = None


def get_global_event_bus() -> GlobalEventBus:
    """Return the process-wide event bus, creating it on first use."""
    global _global_event_bus
    if _global_event_bus is None:
        _global_event_bus = GlobalEventBus()
        logger.info("global_event_bus_initialized")
    return _global_event_bus
