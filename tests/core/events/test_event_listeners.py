"""Tests for the default event listeners."""

import pytest

from opensignify.core.events import (
    BaseEvent,
    InvoiceDispatchedEvent,
    InvoiceSignedEvent,
    audit_log_listener,
    register_default_listeners,
)
from opensignify.core.events import listeners


class RecordingLogger:
    def __init__(self):
        self.calls = []

    def info(self, event, **kwargs):
        self.calls.append((event, kwargs))


@pytest.fixture
def audit_log(monkeypatch):
    recorder = RecordingLogger()
    monkeypatch.setattr(listeners, "logger", recorder)
    return recorder


@pytest.fixture
def dispatched_event(pending_record):
    return InvoiceDispatchedEvent(
        invoice_id=pending_record.id,
        invoice_number=pending_record.invoice_number,
        sender_id=pending_record.sender_id,
        recipient_email=pending_record.recipient_email,
        signing_link="https://sign.example.com/sign-invoice/inv-1",
    )


def test_register_default_listeners(event_bus):
    bus = register_default_listeners(event_bus)

    assert bus is event_bus
    assert event_bus.is_subscribed(BaseEvent, audit_log_listener)


@pytest.mark.asyncio
async def test_register_is_idempotent_for_audit(event_bus, audit_log, dispatched_event):
    register_default_listeners(event_bus)
    register_default_listeners(event_bus)

    await event_bus.publish_async(dispatched_event)

    assert [name for name, _ in audit_log.calls] == ["domain_event"]


def test_audit_listener_logs_scalar_fields(audit_log, signed_record):
    audit_log_listener(
        InvoiceSignedEvent(
            invoice_id="inv-1",
            invoice_number=signed_record.invoice_number,
            sender_id=signed_record.sender_id,
            signature_kind="drawn",
            signed_at=signed_record.signed_at,
        )
    )

    [(name, logged)] = audit_log.calls
    assert name == "domain_event"
    assert logged["event_type"] == "InvoiceSignedEvent"
    assert logged["signed_at"] == signed_record.signed_at.isoformat()
    assert isinstance(logged["event_id"], str)
