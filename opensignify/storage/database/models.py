"""SQLAlchemy models for OpenSignify."""

from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    Enum,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from opensignify.domain.enums import InvoiceStatus, SignatureKind
from opensignify.domain.models import InvoiceRecord, Signature
from opensignify.exceptions import PersistenceError

from .base import Base

NUMBER_CONSTRAINT = "uq_invoices_sender_number"


def _aware(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo; every stored timestamp is UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class InvoiceRow(Base):
    """Stored invoice. Signature fields are filled only once signed."""

    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("sender_id", "invoice_number", name=NUMBER_CONSTRAINT),
        Index("ix_invoices_sender_created", "sender_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    schema_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    invoice_number: Mapped[str] = mapped_column(String(20), nullable=False)

    # Parties
    sender_id: Mapped[str] = mapped_column(String(128), nullable=False)
    sender_name: Mapped[str] = mapped_column(String(200), nullable=False)
    sender_email: Mapped[str] = mapped_column(String(254), nullable=False)
    sender_address: Mapped[str | None] = mapped_column(Text)
    sender_phone: Mapped[str | None] = mapped_column(String(50))
    recipient_name: Mapped[str] = mapped_column(String(200), nullable=False)
    recipient_email: Mapped[str] = mapped_column(String(254), nullable=False)

    # Economics & content
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    # Lifecycle
    status: Mapped[InvoiceStatus] = mapped_column(
        Enum(
            InvoiceStatus,
            native_enum=False,
            length=16,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=InvoiceStatus.DRAFT,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    dispatched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    signature_kind: Mapped[str | None] = mapped_column(String(16))
    signature_payload: Mapped[str | None] = mapped_column(Text)

    def __repr__(self) -> str:
        return f"<InvoiceRow(id={self.id!r}, number={self.invoice_number!r}, status={self.status})>"

    @classmethod
    def from_record(cls, record: InvoiceRecord, record_id: str) -> InvoiceRow:
        row = cls(id=record_id, invoice_number=record.invoice_number, sender_id=record.sender_id)
        row.apply(record)
        return row

    def apply(self, record: InvoiceRecord) -> None:
        """Copy the mutable columns from ``record``."""
        for column, value in self.columns_for(record).items():
            setattr(self, column, value)

    @staticmethod
    def columns_for(record: InvoiceRecord) -> dict[str, object]:
        signature = record.signature
        return {
            "schema_version": record.schema_version,
            "sender_name": record.sender_name,
            "sender_email": record.sender_email,
            "sender_address": record.sender_address,
            "sender_phone": record.sender_phone,
            "recipient_name": record.recipient_name,
            "recipient_email": record.recipient_email,
            "amount": record.amount,
            "currency": record.currency,
            "description": record.description,
            "invoice_date": record.invoice_date,
            "items": [
                item.model_dump(mode="json", exclude={"total"}) for item in record.items
            ],
            "status": record.status,
            "created_at": record.created_at,
            "dispatched_at": record.dispatched_at,
            "signed_at": record.signed_at,
            "signature_kind": signature.kind.value if signature else None,
            "signature_payload": signature.payload if signature else None,
        }

    def to_record(self) -> InvoiceRecord:
        """Rebuild the domain record.

        Raises:
            PersistenceError: If the stored row no longer forms a valid record
        """
        try:
            signature = None
            if self.signature_kind and self.signature_payload:
                signature = Signature(
                    kind=SignatureKind(self.signature_kind), payload=self.signature_payload
                )
            return InvoiceRecord(
                schema_version=self.schema_version,
                id=self.id,
                invoice_number=self.invoice_number,
                sender_id=self.sender_id,
                sender_name=self.sender_name,
                sender_email=self.sender_email,
                sender_address=self.sender_address,
                sender_phone=self.sender_phone,
                recipient_name=self.recipient_name,
                recipient_email=self.recipient_email,
                amount=self.amount,
                currency=self.currency,
                description=self.description,
                invoice_date=self.invoice_date,
                items=self.items or [],
                status=self.status,
                created_at=_aware(self.created_at),
                dispatched_at=_aware(self.dispatched_at),
                signed_at=_aware(self.signed_at),
                signature=signature,
            )
        except ValueError as e:  # includes pydantic.ValidationError
            raise PersistenceError(
                "Stored invoice is corrupt",
                context={"record_id": self.id},
                original_error=e,
            ) from e
