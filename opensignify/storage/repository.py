"""Invoice stores.

Every store implements ``InvoiceStore``. Writes for an existing record are
compare-and-set on the status the caller last read (``expected_status``): a
write that finds another status fails with ``StaleRecordError`` and changes
nothing. Records are never deleted.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable
from contextlib import AbstractContextManager
from typing import Protocol, TypeVar

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from opensignify.domain.enums import InvoiceStatus
from opensignify.domain.models import InvoiceRecord
from opensignify.exceptions import (
    NumberConflictError,
    PersistenceError,
    RecordNotFoundError,
    StaleRecordError,
    wrap_exception,
)
from opensignify.utils.logging import get_logger

from .database.models import NUMBER_CONSTRAINT, InvoiceRow
from .session import db_session

logger = get_logger(__name__)

T = TypeVar("T")


def new_record_id() -> str:
    return uuid.uuid4().hex


class InvoiceStore(Protocol):
    """Persistent document store for invoice records."""

    async def get(self, record_id: str) -> InvoiceRecord:
        """Fetch a record.

        Raises:
            RecordNotFoundError: If no record has this id
        """
        ...

    async def put(
        self, record: InvoiceRecord, expected_status: InvoiceStatus | None = None
    ) -> InvoiceRecord:
        """Insert (``expected_status is None``) or conditionally update a record.

        Returns the stored record, with its id assigned on insert.

        Raises:
            StaleRecordError: If the stored status differs from ``expected_status``
            PersistenceError: On any other storage failure
        """
        ...

    async def query_by_owner(self, owner_id: str, limit: int) -> list[InvoiceRecord]:
        """The owner's records, newest first."""
        ...

    async def invoice_numbers(self, owner_id: str) -> set[str]:
        """Invoice numbers already used by the owner."""
        ...


class InMemoryInvoiceStore:
    """Dict-backed store for tests and the no-store link variant."""

    def __init__(self) -> None:
        self._records: dict[str, InvoiceRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    async def get(self, record_id: str) -> InvoiceRecord:
        try:
            return self._records[record_id]
        except KeyError:
            raise RecordNotFoundError("Invoice not found", record_id=record_id) from None

    async def put(
        self, record: InvoiceRecord, expected_status: InvoiceStatus | None = None
    ) -> InvoiceRecord:
        if expected_status is None:
            record_id = record.id or new_record_id()
            if record_id in self._records:
                raise PersistenceError("Invoice already exists", context={"record_id": record_id})
            self._check_unique_number(record)
            stored = record.model_copy(update={"id": record_id})
        else:
            if record.id is None or record.id not in self._records:
                raise RecordNotFoundError("Invoice not found", record_id=record.id)
            current = self._records[record.id]
            if current.status is not expected_status:
                raise StaleRecordError(
                    "Invoice changed since it was read",
                    stored_status=str(current.status),
                    context={"record_id": record.id},
                )
            stored = record

        self._records[stored.id] = stored  # type: ignore[index]
        return stored

    def _check_unique_number(self, record: InvoiceRecord) -> None:
        for existing in self._records.values():
            if (
                existing.sender_id == record.sender_id
                and existing.invoice_number == record.invoice_number
            ):
                raise NumberConflictError(
                    "Invoice number already used", invoice_number=record.invoice_number
                )

    async def query_by_owner(self, owner_id: str, limit: int) -> list[InvoiceRecord]:
        owned = [r for r in self._records.values() if r.sender_id == owner_id]
        owned.sort(key=lambda r: r.created_at, reverse=True)
        return owned[:limit]

    async def invoice_numbers(self, owner_id: str) -> set[str]:
        return {r.invoice_number for r in self._records.values() if r.sender_id == owner_id}


class SqlAlchemyInvoiceStore:
    """Store backed by the ``invoices`` table.

    Session work is synchronous and runs in a worker thread.

    Args:
        session_factory: Context manager yielding a session (default: ``db_session``)
    """

    def __init__(
        self,
        session_factory: Callable[[], AbstractContextManager[Session]] = db_session,
    ) -> None:
        self.session_factory = session_factory

    async def _run(self, func: Callable[[Session], T], operation: str) -> T:
        def work() -> T:
            with self.session_factory() as db:
                return func(db)

        try:
            return await asyncio.to_thread(work)
        except PersistenceError:
            raise
        except IntegrityError as e:
            raise wrap_exception(
                e, "Invoice conflicts with a stored one", exception_class=PersistenceError,
                operation=operation,
            ) from e
        except SQLAlchemyError as e:
            logger.error("store_operation_failed", operation=operation, error=str(e))
            raise wrap_exception(
                e, "Invoice store failed", exception_class=PersistenceError, operation=operation
            ) from e

    async def get(self, record_id: str) -> InvoiceRecord:
        def load(db: Session) -> InvoiceRecord:
            row = db.get(InvoiceRow, record_id)
            if row is None:
                raise RecordNotFoundError("Invoice not found", record_id=record_id)
            return row.to_record()

        return await self._run(load, "get")

    async def put(
        self, record: InvoiceRecord, expected_status: InvoiceStatus | None = None
    ) -> InvoiceRecord:
        if expected_status is None:
            return await self._run(lambda db: self._insert(db, record), "insert")
        return await self._run(lambda db: self._update(db, record, expected_status), "update")

    @staticmethod
    def _insert(db: Session, record: InvoiceRecord) -> InvoiceRecord:
        record_id = record.id or new_record_id()
        db.add(InvoiceRow.from_record(record, record_id))
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            if NUMBER_CONSTRAINT in str(e.orig) or "invoice_number" in str(e.orig):
                raise NumberConflictError(
                    "Invoice number already used",
                    invoice_number=record.invoice_number,
                    original_error=e,
                ) from e
            raise
        logger.debug("invoice_row_inserted", record_id=record_id)
        return record.model_copy(update={"id": record_id})

    @staticmethod
    def _update(db: Session, record: InvoiceRecord, expected_status: InvoiceStatus) -> InvoiceRecord:
        if record.id is None:
            raise RecordNotFoundError("Invoice has not been stored")
        result = db.execute(
            update(InvoiceRow)
            .where(InvoiceRow.id == record.id, InvoiceRow.status == expected_status)
            .values(**InvoiceRow.columns_for(record))
        )
        if result.rowcount != 1:
            db.rollback()
            stored = db.scalar(select(InvoiceRow.status).where(InvoiceRow.id == record.id))
            if stored is None:
                raise RecordNotFoundError("Invoice not found", record_id=record.id)
            raise StaleRecordError(
                "Invoice changed since it was read",
                stored_status=str(stored),
                context={"record_id": record.id},
            )
        db.commit()
        logger.debug("invoice_row_updated", record_id=record.id, status=str(record.status))
        return record

    async def query_by_owner(self, owner_id: str, limit: int) -> list[InvoiceRecord]:
        def query(db: Session) -> list[InvoiceRecord]:
            rows = db.scalars(
                select(InvoiceRow)
                .where(InvoiceRow.sender_id == owner_id)
                .order_by(InvoiceRow.created_at.desc(), InvoiceRow.id.desc())
                .limit(limit)
            )
            return [row.to_record() for row in rows]

        return await self._run(query, "query_by_owner")

    async def invoice_numbers(self, owner_id: str) -> set[str]:
        def query(db: Session) -> set[str]:
            return set(
                db.scalars(
                    select(InvoiceRow.invoice_number).where(InvoiceRow.sender_id == owner_id)
                )
            )

        return await self._run(query, "invoice_numbers")
