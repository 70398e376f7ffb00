"""Tests for the invoice stores.

Both implementations run through the same contract tests.
"""

import pytest

from opensignify.domain.enums import InvoiceStatus
from sqlalchemy import update

from opensignify.domain.models import LineItem
from opensignify.exceptions import (
    NumberConflictError,
    PersistenceError,
    RecordNotFoundError,
    StaleRecordError,
)
from opensignify.storage.database.models import InvoiceRow
from opensignify.storage.session import db_session

from conftest import OTHER_ID, OWNER_ID


@pytest.fixture(params=["memory", "sql"])
def store(request):
    return request.getfixturevalue(f"{request.param}_store")


def _nth(record, n, clock):
    """Copy of ``record`` with its own id, number and creation time."""
    return record.model_copy(
        update={
            "id": f"inv-{n}",
            "invoice_number": f"INV-2026-{1000 + n}",
            "created_at": clock.advance(minutes=1),
        }
    )


class TestInsert:
    @pytest.mark.asyncio
    async def test_insert_assigns_id(self, store, draft_record):
        stored = await store.put(draft_record.model_copy(update={"id": None}))

        assert stored.id
        assert await store.get(stored.id) == stored

    @pytest.mark.asyncio
    async def test_insert_keeps_given_id(self, store, draft_record):
        stored = await store.put(draft_record)

        assert stored.id == "inv-1"

    @pytest.mark.asyncio
    async def test_round_trip_signed(self, store, signed_record):
        await store.put(signed_record)

        fetched = await store.get(signed_record.id)

        assert fetched == signed_record
        assert fetched.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, store, draft_record, clock):
        await store.put(draft_record)
        clash = _nth(draft_record, 2, clock).model_copy(update={"id": draft_record.id})

        with pytest.raises(PersistenceError):
            await store.put(clash)

    @pytest.mark.asyncio
    async def test_number_unique_per_owner(self, store, draft_record):
        await store.put(draft_record)

        with pytest.raises(NumberConflictError) as exc_info:
            await store.put(draft_record.model_copy(update={"id": "inv-2"}))
        assert exc_info.value.invoice_number == draft_record.invoice_number

        other_owner = draft_record.model_copy(update={"id": "inv-3", "sender_id": OTHER_ID})
        assert (await store.put(other_owner)).id == "inv-3"

    @pytest.mark.asyncio
    async def test_items_round_trip(self, store, draft_record):
        items = (
            LineItem(description="Design", quantity="2", unit_price="1000"),
            LineItem(description="Hosting", quantity="0.5", unit_price="99.99"),
        )
        await store.put(draft_record.model_copy(update={"items": items}))

        fetched = await store.get(draft_record.id)

        assert fetched.items == items
        assert [item.total for item in fetched.items] == [
            items[0].total,
            items[1].total,
        ]

    @pytest.mark.asyncio
    async def test_get_unknown(self, store):
        with pytest.raises(RecordNotFoundError):
            await store.get("missing")


class TestConditionalUpdate:
    @pytest.mark.asyncio
    async def test_update_matching_status(self, store, draft_record, pending_record):
        await store.put(draft_record)

        stored = await store.put(pending_record, expected_status=InvoiceStatus.DRAFT)

        assert stored == pending_record
        assert (await store.get("inv-1")).status is InvoiceStatus.PENDING

    @pytest.mark.asyncio
    async def test_stale_update_changes_nothing(self, store, draft_record, pending_record, signed_record):
        await store.put(draft_record)
        await store.put(pending_record, expected_status=InvoiceStatus.DRAFT)

        with pytest.raises(StaleRecordError) as exc_info:
            await store.put(pending_record, expected_status=InvoiceStatus.DRAFT)

        assert exc_info.value.stored_status == "pending"
        await store.put(signed_record, expected_status=InvoiceStatus.PENDING)
        with pytest.raises(StaleRecordError) as exc_info:
            await store.put(signed_record, expected_status=InvoiceStatus.PENDING)
        assert exc_info.value.stored_status == "signed"
        assert await store.get("inv-1") == signed_record

    @pytest.mark.asyncio
    async def test_update_unknown(self, store, pending_record):
        with pytest.raises(RecordNotFoundError):
            await store.put(pending_record, expected_status=InvoiceStatus.DRAFT)


class TestQueries:
    @pytest.mark.asyncio
    async def test_query_by_owner_newest_first(self, store, draft_record, clock):
        records = [_nth(draft_record, n, clock) for n in range(1, 5)]
        for record in records:
            await store.put(record)
        await store.put(
            _nth(draft_record, 9, clock).model_copy(update={"sender_id": OTHER_ID})
        )

        listed = await store.query_by_owner(OWNER_ID, 3)

        assert [r.id for r in listed] == ["inv-4", "inv-3", "inv-2"]

    @pytest.mark.asyncio
    async def test_invoice_numbers(self, store, draft_record, clock):
        await store.put(_nth(draft_record, 1, clock))
        await store.put(_nth(draft_record, 2, clock))

        assert await store.invoice_numbers(OWNER_ID) == {"INV-2026-1001", "INV-2026-1002"}
        assert await store.invoice_numbers(OTHER_ID) == set()


@pytest.mark.asyncio
async def test_sql_store_without_database():
    from opensignify.storage.database import base
    from opensignify.storage.repository import SqlAlchemyInvoiceStore

    base.dispose_db()

    with pytest.raises(RuntimeError):
        await SqlAlchemyInvoiceStore().get("inv-1")


@pytest.mark.asyncio
async def test_corrupt_row_raises_persistence_error(sql_store, draft_record):
    await sql_store.put(draft_record)
    with db_session() as db:
        db.execute(
            update(InvoiceRow)
            .where(InvoiceRow.id == draft_record.id)
            .values(recipient_email="not-an-address")
        )
        db.commit()

    with pytest.raises(PersistenceError) as exc_info:
        await sql_store.get(draft_record.id)

    assert exc_info.value.context["record_id"] == draft_record.id
    assert exc_info.value.original_error is not None
