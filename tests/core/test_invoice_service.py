"""Tests for InvoiceService orchestration."""

import asyncio
import gc

import pytest

from opensignify.core.events import (
    BaseEvent,
    InvoiceCreatedEvent,
    InvoiceDispatchedEvent,
    InvoiceRenderedEvent,
    InvoiceSignedEvent,
    RecipientNotifiedEvent,
)
from opensignify.domain.enums import InvoiceStatus
from opensignify.core.invoices.lifecycle import InvoiceLifecycle
from opensignify.core.invoices.service import InvoiceService
from opensignify.exceptions import (
    AlreadySigned,
    GenerationExhausted,
    InvalidTransition,
    NotificationError,
    PermissionDenied,
    PersistenceError,
    RecordNotFoundError,
    ValidationError,
)
from opensignify.notifications.notifier import LoggingNotifier
from opensignify.storage.repository import InMemoryInvoiceStore

from conftest import OTHER_ID, OWNER_ID


@pytest.fixture
def received(event_bus):
    """Every event published on the test bus."""
    events: list[BaseEvent] = []

    async def collect(event: BaseEvent) -> None:
        events.append(event)

    event_bus.subscribe(BaseEvent, collect)
    return events


class FailingWritesStore(InMemoryInvoiceStore):
    """Store whose conditional updates always fail."""

    async def put(self, record, expected_status=None):
        if expected_status is not None:
            raise PersistenceError("disk full")
        return await super().put(record, expected_status)


class StaleNumbersStore(InMemoryInvoiceStore):
    """Store whose number listing misses inserts made by others."""

    async def invoice_numbers(self, owner_id):
        return set()


class SequenceRng:
    """Returns the given values in order, then repeats the last one."""

    def __init__(self, *values):
        self.values = list(values)

    def randint(self, low, high):
        return self.values.pop(0) if len(self.values) > 1 else self.values[0]


class FlakyNotifier:
    """Fails the first ``failures`` deliveries with ``error``."""

    def __init__(self, failures=1, error=None):
        self.failures = failures
        self.error = error or NotificationError("smtp down")
        self.sent = []

    async def send(self, params):
        if self.failures:
            self.failures -= 1
            raise self.error
        self.sent.append(params)


@pytest.fixture
def build_service(test_settings, lifecycle, event_bus):
    def build(store=None, notifier=None, lifecycle_=None):
        return InvoiceService(
            store if store is not None else InMemoryInvoiceStore(),
            settings=test_settings,
            lifecycle=lifecycle_ or lifecycle,
            notifier=notifier or LoggingNotifier(),
            event_bus=event_bus,
        )

    return build


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_stores_draft(self, service, memory_store, draft, received):
        record = await service.create(draft, OWNER_ID)

        assert record.id is not None
        assert record.status is InvoiceStatus.DRAFT
        assert await memory_store.get(record.id) == record
        assert [type(e) for e in received] == [InvoiceCreatedEvent]
        assert received[0].invoice_id == record.id

    @pytest.mark.asyncio
    async def test_numbers_unique_per_owner(self, service, draft, clock):
        numbers = set()
        for _ in range(25):
            clock.advance(seconds=1)
            numbers.add((await service.create(draft, OWNER_ID)).invoice_number)

        assert len(numbers) == 25

    @pytest.mark.asyncio
    async def test_number_taken_concurrently_is_drawn_again(self, build_service, clock, draft):
        lifecycle = InvoiceLifecycle(clock=clock, rng=SequenceRng(1234, 1234, 5678))
        service = build_service(store=StaleNumbersStore(), lifecycle_=lifecycle)

        first = await service.create(draft, OWNER_ID)
        second = await service.create(draft, OWNER_ID)

        assert first.invoice_number == "INV-2026-1234"
        assert second.invoice_number == "INV-2026-5678"

    @pytest.mark.asyncio
    async def test_number_conflicts_exhaust_attempts(self, build_service, clock, draft):
        lifecycle = InvoiceLifecycle(clock=clock, rng=SequenceRng(1234), max_number_attempts=3)
        service = build_service(store=StaleNumbersStore(), lifecycle_=lifecycle)
        await service.create(draft, OWNER_ID)

        with pytest.raises(GenerationExhausted):
            await service.create(draft, OWNER_ID)


class TestReads:
    @pytest.mark.asyncio
    async def test_get_requires_owner(self, service, draft):
        record = await service.create(draft, OWNER_ID)

        assert (await service.get(record.id, OWNER_ID)).id == record.id
        with pytest.raises(PermissionDenied):
            await service.get(record.id, OTHER_ID)

    @pytest.mark.asyncio
    async def test_get_unknown(self, service):
        with pytest.raises(RecordNotFoundError):
            await service.get("missing", OWNER_ID)

    @pytest.mark.asyncio
    async def test_list_newest_first_with_limit(self, service, draft, clock):
        created = []
        for _ in range(4):
            clock.advance(minutes=1)
            created.append(await service.create(draft, OWNER_ID))
        await service.create(draft, OTHER_ID)

        listed = await service.list_for_owner(OWNER_ID, limit=3)

        assert [r.id for r in listed] == [r.id for r in reversed(created)][:3]

    @pytest.mark.asyncio
    async def test_list_default_limit(self, service, draft, clock, test_settings):
        for _ in range(test_settings.default_list_limit + 2):
            clock.advance(seconds=1)
            await service.create(draft, OWNER_ID)

        listed = await service.list_for_owner(OWNER_ID)

        assert len(listed) == test_settings.default_list_limit

    @pytest.mark.asyncio
    async def test_signing_link(self, service, draft):
        record = await service.create(draft, OWNER_ID)

        assert service.signing_link(record) == f"https://sign.example.com/sign-invoice/{record.id}"


class TestDispatch:
    @pytest.mark.asyncio
    async def test_dispatch_publishes_link(self, service, draft, received):
        record = await service.create(draft, OWNER_ID)

        pending = await service.dispatch(record.id, OWNER_ID)

        assert pending.status is InvoiceStatus.PENDING
        assert [type(e) for e in received[-2:]] == [InvoiceDispatchedEvent, RecipientNotifiedEvent]
        event = received[-2]
        assert event.signing_link.endswith(f"/sign-invoice/{record.id}")
        assert event.recipient_email == "bob@example.com"
        assert received[-1].resend is False

    @pytest.mark.asyncio
    async def test_dispatch_embedded_link(self, service, draft, received):
        record = await service.create(draft, OWNER_ID)

        await service.dispatch(record.id, OWNER_ID, embed_record=True)

        dispatched = next(e for e in received if isinstance(e, InvoiceDispatchedEvent))
        assert "?data=" in dispatched.signing_link

    @pytest.mark.asyncio
    async def test_dispatch_twice(self, service, draft):
        record = await service.create(draft, OWNER_ID)
        await service.dispatch(record.id, OWNER_ID)

        with pytest.raises(InvalidTransition):
            await service.dispatch(record.id, OWNER_ID)

    @pytest.mark.asyncio
    async def test_stranger_cannot_dispatch(self, service, memory_store, draft, received):
        record = await service.create(draft, OWNER_ID)
        received.clear()

        with pytest.raises(PermissionDenied):
            await service.dispatch(record.id, OTHER_ID)

        assert (await memory_store.get(record.id)).status is InvoiceStatus.DRAFT
        assert received == []


class TestNotify:
    @pytest.mark.asyncio
    async def test_dispatch_sends_signing_request(self, service, notifier, draft):
        record = await service.create(draft, OWNER_ID)

        pending = await service.dispatch(record.id, OWNER_ID)

        [request] = notifier.sent
        assert request["to_email"] == "bob@example.com"
        assert request["invoice_link"] == service.signing_link(pending)

    @pytest.mark.asyncio
    async def test_failed_delivery_reaches_caller_and_can_be_retried(
        self, build_service, memory_store, draft, received
    ):
        notifier = FlakyNotifier(failures=1)
        service = build_service(store=memory_store, notifier=notifier)
        record = await service.create(draft, OWNER_ID)

        with pytest.raises(NotificationError):
            await service.dispatch(record.id, OWNER_ID)

        assert (await memory_store.get(record.id)).status is InvoiceStatus.PENDING
        assert not any(isinstance(e, RecipientNotifiedEvent) for e in received)

        resent = await service.notify(record.id, OWNER_ID)

        assert resent.status is InvoiceStatus.PENDING
        [request] = notifier.sent
        assert request["invoice_link"].endswith(f"/sign-invoice/{record.id}")
        assert isinstance(received[-1], RecipientNotifiedEvent)
        assert received[-1].resend is True

    @pytest.mark.asyncio
    async def test_unexpected_notifier_error_is_wrapped(self, build_service, draft):
        notifier = FlakyNotifier(failures=1, error=ConnectionError("refused"))
        service = build_service(notifier=notifier)
        record = await service.create(draft, OWNER_ID)

        with pytest.raises(NotificationError) as exc_info:
            await service.dispatch(record.id, OWNER_ID)

        assert isinstance(exc_info.value.original_error, ConnectionError)

    @pytest.mark.asyncio
    async def test_notify_only_while_pending(self, service, notifier, draft, typed):
        record = await service.create(draft, OWNER_ID)
        with pytest.raises(InvalidTransition):
            await service.notify(record.id, OWNER_ID)

        await service.dispatch(record.id, OWNER_ID)
        await service.sign(record.id, typed)
        with pytest.raises(InvalidTransition):
            await service.notify(record.id, OWNER_ID)

        assert len(notifier.sent) == 1

    @pytest.mark.asyncio
    async def test_stranger_cannot_notify(self, service, notifier, draft):
        record = await service.create(draft, OWNER_ID)
        await service.dispatch(record.id, OWNER_ID)

        with pytest.raises(PermissionDenied):
            await service.notify(record.id, OTHER_ID)

        assert len(notifier.sent) == 1


class TestSign:
    @pytest.mark.asyncio
    async def test_sign_pending(self, service, draft, typed, received):
        record = await service.create(draft, OWNER_ID)
        await service.dispatch(record.id, OWNER_ID)

        signed = await service.sign(record.id, typed, via_link=True)

        assert signed.status is InvoiceStatus.SIGNED
        event = received[-1]
        assert isinstance(event, InvoiceSignedEvent)
        assert event.signature_kind == "typed"
        assert event.via_link is True

    @pytest.mark.asyncio
    async def test_sign_draft_rejected(self, service, draft, typed):
        record = await service.create(draft, OWNER_ID)

        with pytest.raises(InvalidTransition):
            await service.sign(record.id, typed)

    @pytest.mark.asyncio
    async def test_empty_signature_leaves_record_pending(self, service, memory_store, draft):
        record = await service.create(draft, OWNER_ID)
        await service.dispatch(record.id, OWNER_ID)

        with pytest.raises(ValidationError):
            await service.sign(record.id, None)

        assert (await memory_store.get(record.id)).status is InvoiceStatus.PENDING

    @pytest.mark.asyncio
    async def test_concurrent_signs_exactly_one_wins(self, service, memory_store, draft, typed, drawn_signature):
        record = await service.create(draft, OWNER_ID)
        await service.dispatch(record.id, OWNER_ID)

        results = await asyncio.gather(
            service.sign(record.id, typed),
            service.sign(record.id, drawn_signature),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, Exception)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert isinstance(losers[0], AlreadySigned)
        assert (await memory_store.get(record.id)).signature == winners[0].signature

    @pytest.mark.asyncio
    async def test_record_locks_are_dropped_when_idle(self, service, draft, typed):
        record = await service.create(draft, OWNER_ID)
        await service.dispatch(record.id, OWNER_ID)
        await service.sign(record.id, typed)

        gc.collect()

        assert len(service._locks) == 0

    @pytest.mark.asyncio
    async def test_stale_write_reported_as_already_signed(
        self, service, memory_store, lifecycle, draft, typed
    ):
        """A write racing past the lock still loses the compare-and-set."""
        record = await service.create(draft, OWNER_ID)
        pending = await service.dispatch(record.id, OWNER_ID)
        await memory_store.put(lifecycle.sign(pending, typed), expected_status=InvoiceStatus.PENDING)

        with pytest.raises(AlreadySigned):
            await service._commit(
                lifecycle.sign(pending, typed), InvoiceStatus.PENDING, "sign"
            )

    @pytest.mark.asyncio
    async def test_store_failure_publishes_nothing(
        self, test_settings, lifecycle, event_bus, received, draft, typed
    ):
        store = FailingWritesStore()
        service = InvoiceService(
            store, settings=test_settings, lifecycle=lifecycle, event_bus=event_bus
        )
        record = await service.create(draft, OWNER_ID)
        received.clear()

        with pytest.raises(PersistenceError):
            await service.dispatch(record.id, OWNER_ID)

        assert received == []
        assert (await store.get(record.id)).status is InvoiceStatus.DRAFT


class TestSignFromLink:
    @pytest.mark.asyncio
    async def test_sign_through_link(self, service, memory_store, draft, typed):
        record = await service.create(draft, OWNER_ID)
        pending = await service.dispatch(record.id, OWNER_ID)

        signed = await service.sign_from_link(service.signing_link(pending), typed)

        assert signed.is_signed
        assert (await memory_store.get(record.id)).is_signed

    @pytest.mark.asyncio
    async def test_embedded_record_signed_without_store(
        self, service, memory_store, pending_record, typed, received
    ):
        link = service.signing_link(pending_record, embed=True)

        signed = await service.sign_from_link(link, typed)

        assert signed.is_signed
        assert signed.id == pending_record.id
        assert len(memory_store) == 0
        assert received == []

    @pytest.mark.asyncio
    async def test_unknown_plain_link(self, service, pending_record, typed):
        with pytest.raises(RecordNotFoundError):
            await service.sign_from_link(service.signing_link(pending_record), typed)

    @pytest.mark.asyncio
    async def test_malformed_link(self, service, typed):
        with pytest.raises(ValidationError) as exc_info:
            await service.sign_from_link("https://sign.example.com/elsewhere", typed)

        assert exc_info.value.fields == ["link"]


class TestRender:
    @pytest.mark.asyncio
    async def test_render_writes_pdf(self, service, draft, tmp_path, received):
        record = await service.create(draft, OWNER_ID)

        path = await service.render(record.id, OWNER_ID, tmp_path)

        assert path.parent == tmp_path
        assert path.name == f"invoice_{record.invoice_number}.pdf"
        assert path.read_bytes().startswith(b"%PDF")
        event = received[-1]
        assert isinstance(event, InvoiceRenderedEvent)
        assert event.signed is False
        assert event.page_count == 1

    @pytest.mark.asyncio
    async def test_render_defaults_to_documents_dir(self, service, draft, test_settings):
        record = await service.create(draft, OWNER_ID)

        path = await service.render(record.id, OWNER_ID)

        assert path.parent == test_settings.documents_dir

    @pytest.mark.asyncio
    async def test_stranger_cannot_render(self, service, draft, tmp_path):
        record = await service.create(draft, OWNER_ID)

        with pytest.raises(PermissionDenied):
            await service.render(record.id, OTHER_ID, tmp_path)

        assert list(tmp_path.iterdir()) == []
