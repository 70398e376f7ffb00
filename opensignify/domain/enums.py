"""Domain enums."""

from enum import Enum


class InvoiceStatus(str, Enum):
    """Invoice lifecycle status.

    Lifecycle:
        DRAFT → PENDING (dispatched to the recipient)
        PENDING → SIGNED (recipient acknowledged)
    """

    DRAFT = "draft"
    PENDING = "pending"
    SIGNED = "signed"

    def __str__(self) -> str:
        return self.value

    @property
    def next_status(self) -> "InvoiceStatus | None":
        """The only status reachable from this one, if any."""
        return _NEXT_STATUS.get(self)


_NEXT_STATUS = {
    InvoiceStatus.DRAFT: InvoiceStatus.PENDING,
    InvoiceStatus.PENDING: InvoiceStatus.SIGNED,
}


class SignatureKind(str, Enum):
    """How the acknowledgment was captured."""

    DRAWN = "drawn"  # PNG data URL of the stroke raster
    TYPED = "typed"  # Literal typed name

    def __str__(self) -> str:
        return self.value


class Currency(str, Enum):
    """Currencies accepted when creating an invoice."""

    INR = "INR"
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    AUD = "AUD"
    CAD = "CAD"

    def __str__(self) -> str:
        return self.value

    @property
    def symbol(self) -> str:
        return CURRENCY_SYMBOLS[self.value]


CURRENCY_SYMBOLS: dict[str, str] = {
    "INR": "₹",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "AUD": "A$",
    "CAD": "C$",
}
