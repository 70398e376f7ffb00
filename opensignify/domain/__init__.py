"""Invoice domain: enums, schema and formatting."""

from .enums import CURRENCY_SYMBOLS, Currency, InvoiceStatus, SignatureKind
from .formatting import currency_symbol, format_amount
from .models import SCHEMA_VERSION, InvoiceDraft, InvoiceRecord, Signature

__all__ = [
    "CURRENCY_SYMBOLS",
    "Currency",
    "InvoiceStatus",
    "SignatureKind",
    "currency_symbol",
    "format_amount",
    "SCHEMA_VERSION",
    "InvoiceDraft",
    "InvoiceRecord",
    "Signature",
]
