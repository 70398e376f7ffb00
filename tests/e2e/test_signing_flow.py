"""End-to-end invoice signing flows on the SQL store."""

import pytest

from opensignify.core.invoices.service import InvoiceService
from opensignify.domain.enums import InvoiceStatus
from opensignify.exceptions import AlreadySigned, PermissionDenied

from conftest import OTHER_ID, OWNER_ID


@pytest.fixture
def sql_service(sql_store, test_settings, lifecycle, event_bus, notifier):
    return InvoiceService(
        sql_store,
        settings=test_settings,
        lifecycle=lifecycle,
        notifier=notifier,
        event_bus=event_bus,
    )


@pytest.mark.integration
@pytest.mark.asyncio
async def test_create_dispatch_sign_render(sql_service, notifier, draft, drawn_surface, tmp_path):
    record = await sql_service.create(draft, OWNER_ID)
    assert record.amount == draft.amount

    await sql_service.dispatch(record.id, OWNER_ID)
    (request,) = notifier.sent
    assert request["invoice_amount"] == "$2,500.00"

    signature = drawn_surface.current_state().to_signature()
    signed = await sql_service.sign_from_link(
        request["invoice_link"], signature, blank_baseline=drawn_surface.baseline
    )
    assert signed.status is InvoiceStatus.SIGNED

    layout = sql_service.composer.layout(signed)
    assert layout.page_count == 1
    assert layout.total_text == "Total: $2,500.00"
    assert any(e.kind == "image" for e in layout.elements)

    path = await sql_service.render(record.id, OWNER_ID, tmp_path)
    assert path.name == f"signed_invoice_{record.invoice_number}.pdf"

    with pytest.raises(AlreadySigned):
        await sql_service.sign(record.id, signature)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_stranger_can_only_sign_through_link(sql_service, draft, typed):
    record = await sql_service.create(draft, OWNER_ID)

    with pytest.raises(PermissionDenied):
        await sql_service.get(record.id, OTHER_ID)
    with pytest.raises(PermissionDenied):
        await sql_service.dispatch(record.id, OTHER_ID)

    pending = await sql_service.dispatch(record.id, OWNER_ID)
    signed = await sql_service.sign_from_link(sql_service.signing_link(pending), typed)

    assert signed.is_signed
    assert (await sql_service.get(record.id, OWNER_ID)).signature == typed
