"""Shareable signing links.

A link is ``<base_url>/sign-invoice/<id>``. Possession of the link is what
authorizes the recipient to sign; no further identity is checked.

The no-store variant appends ``?data=<record JSON>`` so the recipient's side
can show the invoice without reading the store. The embedded record is parsed
against the versioned ``InvoiceRecord`` schema.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import parse_qs, quote, unquote, urlsplit

from opensignify.domain.models import InvoiceRecord
from opensignify.exceptions import ValidationError

SIGNING_PATH = "sign-invoice"


@dataclass(frozen=True)
class SigningLink:
    """A parsed signing link."""

    record_id: str
    record: InvoiceRecord | None = None


def build_signing_link(base_url: str, record: InvoiceRecord, *, embed: bool = False) -> str:
    """Build the link sent to the recipient.

    Args:
        base_url: Public origin, e.g. ``https://sign.example.com``
        record: A stored record (must have an id)
        embed: Append the serialized record for the no-store variant
    """
    if not record.id:
        raise ValueError("Only stored records have a signing link")
    link = f"{base_url.rstrip('/')}/{SIGNING_PATH}/{quote(record.id, safe='')}"
    if embed:
        link += "?data=" + quote(record.to_json(), safe="")
    return link


def parse_signing_link(link: str) -> SigningLink:
    """Extract the record id and, when present, the embedded record.

    Raises:
        ValidationError: With field ``link`` for malformed links, or the
            record's violations when the embedded payload does not validate
    """
    parts = urlsplit(link.strip())
    segments = [segment for segment in parts.path.split("/") if segment]
    if len(segments) < 2 or segments[-2] != SIGNING_PATH:
        raise ValidationError("Not a signing link", field="link")
    record_id = unquote(segments[-1])

    data = parse_qs(parts.query).get("data")
    if not data:
        return SigningLink(record_id=record_id)

    record = InvoiceRecord.from_json(data[0])
    if record.id != record_id:
        raise ValidationError("Embedded invoice does not match the link", field="link")
    return SigningLink(record_id=record_id, record=record)
