"""Flat parameters handed to the notification collaborator."""

from __future__ import annotations

from typing import TypedDict

from opensignify.domain.formatting import format_amount
from opensignify.domain.models import InvoiceRecord
from opensignify.utils.datetime import format_long_date

NOT_AVAILABLE = "N/A"


class NotificationParams(TypedDict):
    to_email: str
    to_name: str
    from_name: str
    from_email: str
    invoice_link: str
    invoice_number: str
    invoice_date: str
    invoice_description: str
    invoice_amount: str
    sender_address: str
    sender_phone: str


def build_notification_params(record: InvoiceRecord, invoice_link: str) -> NotificationParams:
    """Flatten a record into the "please sign" message parameters.

    Missing optional sender details become ``N/A``.
    """
    return NotificationParams(
        to_email=record.recipient_email,
        to_name=record.recipient_name,
        from_name=record.sender_name,
        from_email=record.sender_email,
        invoice_link=invoice_link,
        invoice_number=record.invoice_number,
        invoice_date=format_long_date(record.invoice_date),
        invoice_description=record.description,
        invoice_amount=format_amount(record.amount, record.currency),
        sender_address=record.sender_address or NOT_AVAILABLE,
        sender_phone=record.sender_phone or NOT_AVAILABLE,
    )
