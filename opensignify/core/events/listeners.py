"""Default event listeners.

``audit_log_listener`` writes every event to the structured log.
"""

from __future__ import annotations

from dataclasses import fields
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from opensignify.utils.logging import get_logger

from .base import BaseEvent, GlobalEventBus, get_global_event_bus

logger = get_logger("event_listeners")


def _loggable(value: Any) -> Any:
    if isinstance(value, UUID | Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def audit_log_listener(event: BaseEvent) -> None:
    """Log every event with its metadata."""
    event_data = {f.name: _loggable(getattr(event, f.name)) for f in fields(event)}
    logger.info("domain_event", event_type=type(event).__name__, **event_data)


def register_default_listeners(event_bus: GlobalEventBus | None = None) -> GlobalEventBus:
    """Register the audit log listener once per bus."""
    event_bus = event_bus or get_global_event_bus()

    if not event_bus.is_subscribed(BaseEvent, audit_log_listener):
        event_bus.subscribe(BaseEvent, audit_log_listener, priority=-100)
        logger.info("default_listeners_registered", listeners=["audit_log_listener"])
    return event_bus
