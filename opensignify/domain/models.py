"""Invoice record schema.

``InvoiceRecord`` is the single typed contract that crosses every boundary:
store rows, signing links and the composer all read and write it. It is
immutable; lifecycle transitions return new instances.

``InvoiceDraft`` holds the caller-supplied fields for a new invoice and
enforces the creation rules (closed currency set, positive amount, required
names, e-mail shape). Line items are an optional breakdown; their totals
are not required to add up to ``amount``.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated, Any, Literal

import pydantic
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    computed_field,
    field_validator,
    model_validator,
)

from opensignify.exceptions import ValidationError

from .enums import Currency, InvoiceStatus, SignatureKind

SCHEMA_VERSION = 1

INVOICE_NUMBER_PATTERN = re.compile(r"^INV-\d{4}-\d{4}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_AMOUNT_NOISE = re.compile(r"[^0-9.\-]+")

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


def _check_email(value: str) -> str:
    value = value.strip()
    if not EMAIL_PATTERN.match(value):
        raise ValueError("must be a valid e-mail address")
    return value


def _coerce_amount(value: Any) -> Any:
    """Accept ``"$2,500.00"``-style strings by dropping everything but digits, '.' and '-'."""
    if isinstance(value, str):
        cleaned = _AMOUNT_NOISE.sub("", value)
        try:
            return Decimal(cleaned)
        except InvalidOperation:
            raise ValueError("must be a number") from None
    if isinstance(value, float):
        return Decimal(str(value))
    return value


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def to_validation_error(exc: pydantic.ValidationError, message: str) -> ValidationError:
    """Convert a pydantic error into ours, keeping one entry per violated field."""
    violations: dict[str, str] = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"]) or "__root__"
        violations.setdefault(field, error["msg"])
    return ValidationError(message, violations=violations, original_error=exc)


class Signature(BaseModel):
    """Acknowledgment artifact embedded in a signed record."""

    model_config = ConfigDict(frozen=True)

    kind: SignatureKind
    payload: str = Field(min_length=1, repr=False)

    @field_validator("payload")
    @classmethod
    def _payload_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("signature payload is empty")
        return value

    @property
    def is_drawn(self) -> bool:
        return self.kind is SignatureKind.DRAWN


class LineItem(BaseModel):
    """One row of the optional itemized breakdown."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    description: NonEmptyStr
    quantity: Decimal = Decimal("1")
    unit_price: Decimal

    @field_validator("quantity", "unit_price", mode="before")
    @classmethod
    def _parse_number(cls, value: Any) -> Any:
        return _coerce_amount(value)

    @field_validator("quantity")
    @classmethod
    def _positive_quantity(cls, value: Decimal) -> Decimal:
        if not value.is_finite() or value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("unit_price")
    @classmethod
    def _non_negative_price(cls, value: Decimal) -> Decimal:
        if not value.is_finite() or value < 0:
            raise ValueError("must not be negative")
        return _quantize(value)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> Decimal:
        return _quantize(self.quantity * self.unit_price)


class InvoiceDraft(BaseModel):
    """Fields supplied by the sender when creating an invoice."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    sender_name: NonEmptyStr
    sender_email: str
    sender_address: str | None = None
    sender_phone: str | None = None
    recipient_name: NonEmptyStr
    recipient_email: str
    description: NonEmptyStr
    amount: Decimal
    currency: Currency = Currency.USD
    invoice_date: date
    items: tuple[LineItem, ...] = ()

    @field_validator("sender_email", "recipient_email")
    @classmethod
    def _valid_email(cls, value: str) -> str:
        return _check_email(value)

    @field_validator("sender_address", "sender_phone")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        return value or None

    @field_validator("amount", mode="before")
    @classmethod
    def _parse_amount(cls, value: Any) -> Any:
        return _coerce_amount(value)

    @field_validator("amount")
    @classmethod
    def _positive_amount(cls, value: Decimal) -> Decimal:
        if not value.is_finite() or value <= 0:
            raise ValueError("must be greater than zero")
        return _quantize(value)

    @field_validator("currency", mode="before")
    @classmethod
    def _upper_currency(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @classmethod
    def parse(cls, fields: dict[str, Any]) -> InvoiceDraft:
        """Validate raw fields, reporting every violation at once."""
        try:
            return cls.model_validate(fields)
        except pydantic.ValidationError as e:
            raise to_validation_error(e, "Invoice fields are invalid") from e


class InvoiceRecord(BaseModel):
    """A stored invoice at some point of its lifecycle."""

    model_config = ConfigDict(frozen=True)

    schema_version: Literal[1] = SCHEMA_VERSION

    id: str | None = None
    invoice_number: str

    sender_id: NonEmptyStr
    sender_name: NonEmptyStr
    sender_email: str
    sender_address: str | None = None
    sender_phone: str | None = None
    recipient_name: NonEmptyStr
    recipient_email: str

    amount: Decimal
    currency: Annotated[str, StringConstraints(pattern=r"^[A-Z]{3}$")]
    description: NonEmptyStr
    invoice_date: date
    items: tuple[LineItem, ...] = ()

    status: InvoiceStatus = InvoiceStatus.DRAFT
    created_at: datetime
    dispatched_at: datetime | None = None
    signed_at: datetime | None = None
    signature: Signature | None = None

    @field_validator("invoice_number")
    @classmethod
    def _valid_number(cls, value: str) -> str:
        if not INVOICE_NUMBER_PATTERN.match(value):
            raise ValueError("must match INV-<year>-<4 digits>")
        return value

    @field_validator("sender_email", "recipient_email")
    @classmethod
    def _valid_email(cls, value: str) -> str:
        return _check_email(value)

    @field_validator("amount", mode="before")
    @classmethod
    def _parse_amount(cls, value: Any) -> Any:
        return _coerce_amount(value)

    @field_validator("amount")
    @classmethod
    def _positive_amount(cls, value: Decimal) -> Decimal:
        if not value.is_finite() or value <= 0:
            raise ValueError("must be greater than zero")
        return _quantize(value)

    @model_validator(mode="after")
    def _lifecycle_consistency(self) -> InvoiceRecord:
        signed = self.status is InvoiceStatus.SIGNED
        if signed and (self.signature is None or self.signed_at is None):
            raise ValueError("signed records carry a signature and signed_at")
        if not signed and (self.signature is not None or self.signed_at is not None):
            raise ValueError("only signed records carry a signature or signed_at")
        if self.status is InvoiceStatus.DRAFT and self.dispatched_at is not None:
            raise ValueError("draft records have not been dispatched")
        return self

    @property
    def is_signed(self) -> bool:
        return self.status is InvoiceStatus.SIGNED

    def to_json(self) -> str:
        """Serialize for links and other text transports."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, payload: str | bytes) -> InvoiceRecord:
        """Parse a serialized record, rejecting unknown schema versions."""
        try:
            return cls.model_validate_json(payload)
        except pydantic.ValidationError as e:
            raise to_validation_error(e, "Invoice payload is invalid") from e
