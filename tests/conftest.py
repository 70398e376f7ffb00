"""
Pytest configuration and global fixtures.

This module provides shared fixtures used across all tests.
"""

import os
import random
from collections.abc import Generator
from datetime import UTC, date, datetime, timedelta
from pathlib import Path

import pytest

from opensignify.core.events.base import GlobalEventBus
from opensignify.core.invoices.lifecycle import InvoiceLifecycle
from opensignify.core.invoices.service import InvoiceService
from opensignify.domain.models import InvoiceDraft, InvoiceRecord, Signature
from opensignify.notifications.notifier import LoggingNotifier
from opensignify.signature.capture import CaptureSurface, typed_signature
from opensignify.storage.database.base import dispose_db, init_db
from opensignify.storage.repository import InMemoryInvoiceStore, SqlAlchemyInvoiceStore
from opensignify.utils.config import Settings

OWNER_ID = "user-alice"
OTHER_ID = "user-mallory"


class FixedClock:
    """Deterministic clock; ``advance`` moves it forward."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 10, 19, 15, 4, tzinfo=UTC))


@pytest.fixture
def lifecycle(clock: FixedClock) -> InvoiceLifecycle:
    return InvoiceLifecycle(clock=clock, rng=random.Random(42))


@pytest.fixture
def invoice_fields() -> dict:
    """Valid raw fields for a new invoice."""
    return {
        "sender_name": "Alice Smith",
        "sender_email": "alice@example.com",
        "sender_address": "12 Market Street, Springfield",
        "sender_phone": "+1 555 0100",
        "recipient_name": "Bob Jones",
        "recipient_email": "bob@example.com",
        "description": "Website redesign\nHosting for October\nSupport retainer",
        "amount": "2500.00",
        "currency": "USD",
        "invoice_date": date(2026, 10, 19),
    }


@pytest.fixture
def draft(invoice_fields: dict) -> InvoiceDraft:
    return InvoiceDraft.parse(invoice_fields)


@pytest.fixture
def draft_record(lifecycle: InvoiceLifecycle, draft: InvoiceDraft) -> InvoiceRecord:
    return lifecycle.create(draft, OWNER_ID).model_copy(update={"id": "inv-1"})


@pytest.fixture
def pending_record(lifecycle: InvoiceLifecycle, draft_record: InvoiceRecord) -> InvoiceRecord:
    return lifecycle.dispatch(draft_record, OWNER_ID)


@pytest.fixture
def drawn_surface() -> CaptureSurface:
    """Surface with one diagonal stroke."""
    surface = CaptureSurface(width=300, height=100)
    surface.begin_stroke(20, 20)
    surface.extend_stroke(80, 60)
    surface.extend_stroke(150, 40)
    surface.end_stroke()
    return surface


@pytest.fixture
def drawn_signature(drawn_surface: CaptureSurface) -> Signature:
    return drawn_surface.current_state().to_signature()


@pytest.fixture
def typed(draft: InvoiceDraft) -> Signature:
    return typed_signature(draft.recipient_name).to_signature()


@pytest.fixture
def signed_record(
    lifecycle: InvoiceLifecycle, pending_record: InvoiceRecord, drawn_signature: Signature
) -> InvoiceRecord:
    return lifecycle.sign(pending_record, drawn_signature)


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings pointing at temporary directories."""
    return Settings(
        _env_file=None,
        data_dir=tmp_path / "data",
        output_dir=tmp_path / "documents",
        database_url="sqlite://",
        base_url="https://sign.example.com/",
        current_user_id=OWNER_ID,
    )


@pytest.fixture
def event_bus() -> GlobalEventBus:
    return GlobalEventBus()


@pytest.fixture
def memory_store() -> InMemoryInvoiceStore:
    return InMemoryInvoiceStore()


@pytest.fixture
def sql_store() -> Generator[SqlAlchemyInvoiceStore, None, None]:
    """Store on a fresh in-memory SQLite database."""
    init_db("sqlite://")
    yield SqlAlchemyInvoiceStore()
    dispose_db()


@pytest.fixture
def notifier() -> LoggingNotifier:
    return LoggingNotifier()


@pytest.fixture
def service(
    memory_store: InMemoryInvoiceStore,
    test_settings: Settings,
    lifecycle: InvoiceLifecycle,
    notifier: LoggingNotifier,
    event_bus: GlobalEventBus,
) -> InvoiceService:
    return InvoiceService(
        memory_store,
        settings=test_settings,
        lifecycle=lifecycle,
        notifier=notifier,
        event_bus=event_bus,
    )


@pytest.fixture
def mock_smtp_server(monkeypatch):
    """Mock SMTP server for testing."""
    sent_emails = []

    class MockSMTP:
        def __init__(self, server, port, context=None):
            self.server = server
            self.port = port

        def __enter__(self):
            return self

        def __exit__(self, *args):
            pass

        def login(self, username, password):
            if password == "wrong_password":
                raise Exception("Authentication failed")
            return True

        def send_message(self, msg):
            sent_emails.append(msg)
            return True

    import smtplib

    monkeypatch.setattr(smtplib, "SMTP_SSL", MockSMTP)

    return sent_emails


@pytest.fixture(autouse=True)
def reset_env():
    """Reset environment variables after each test."""
    original_env = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(original_env)
