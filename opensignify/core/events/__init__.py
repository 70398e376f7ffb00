"""Domain events for invoice operations.

Example:
    >>> from opensignify.core.events import GlobalEventBus, InvoiceSignedEvent
    >>> bus = GlobalEventBus()
    >>> bus.subscribe(InvoiceSignedEvent, my_handler)
"""

from __future__ import annotations

__all__ = [
    # Base
    "BaseEvent",
    "EventBus",
    "GlobalEventBus",
    "get_global_event_bus",
    # Invoice events
    "InvoiceCreatedEvent",
    "InvoiceDispatchedEvent",
    "RecipientNotifiedEvent",
    "InvoiceSignedEvent",
    "InvoiceRenderedEvent",
    # Listeners
    "audit_log_listener",
    "register_default_listeners",
]

from .base import BaseEvent, EventBus, GlobalEventBus, get_global_event_bus
from .invoice_events import (
    InvoiceCreatedEvent,
    InvoiceDispatchedEvent,
    InvoiceRenderedEvent,
    InvoiceSignedEvent,
    RecipientNotifiedEvent,
)
from .listeners import audit_log_listener, register_default_listeners
