"""Invoice lifecycle events.

Events emitted by the invoice service after the store has acknowledged a
write (creation, dispatch, signing), after the recipient was notified, or
after a document was rendered.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from .base import BaseEvent


@dataclass(frozen=True)
class InvoiceCreatedEvent(BaseEvent):
    """Event emitted when a draft invoice has been stored."""

    invoice_id: str
    invoice_number: str
    sender_id: str
    amount: Decimal
    currency: str


@dataclass(frozen=True)
class InvoiceDispatchedEvent(BaseEvent):
    """Event emitted when an invoice moved to pending.

    This is the "ready to notify recipient" signal. Delivery itself is done
    by the invoice service so that its failure reaches the caller.
    """

    invoice_id: str
    invoice_number: str
    sender_id: str
    recipient_email: str
    signing_link: str


@dataclass(frozen=True)
class RecipientNotifiedEvent(BaseEvent):
    """Event emitted once the signing request was handed to the notifier."""

    invoice_id: str
    invoice_number: str
    recipient_email: str
    resend: bool = False


@dataclass(frozen=True)
class InvoiceSignedEvent(BaseEvent):
    """Event emitted when the recipient's acknowledgment has been stored."""

    invoice_id: str
    invoice_number: str
    sender_id: str
    signature_kind: str
    signed_at: datetime
    via_link: bool = False


@dataclass(frozen=True)
class InvoiceRenderedEvent(BaseEvent):
    """Event emitted after a PDF was written."""

    invoice_id: str
    invoice_number: str
    output_path: str
    page_count: int
    signed: bool
