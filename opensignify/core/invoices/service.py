"""Invoice application service.

Orchestrates the lifecycle engine, the store, the composer, the notifier and
the event bus. At most one transition runs per record at a time: each
transition takes the record's lock, re-reads the record inside it and writes
back with a compare-and-set on the status it read. Events are published only
after the store has acknowledged the write.

Dispatch hands the signing request to the notifier after the pending status is
stored. A delivery failure is raised to the caller as ``NotificationError``;
the record stays pending and ``notify`` sends the request again.
"""

from __future__ import annotations

import asyncio
import weakref
from pathlib import Path

from opensignify.core.access import AccessGuard, Action
from opensignify.core.events.base import EventBus, get_global_event_bus
from opensignify.core.events.invoice_events import (
    InvoiceCreatedEvent,
    InvoiceDispatchedEvent,
    InvoiceRenderedEvent,
    InvoiceSignedEvent,
    RecipientNotifiedEvent,
)
from opensignify.domain.enums import InvoiceStatus
from opensignify.domain.models import InvoiceDraft, InvoiceRecord, Signature
from opensignify.exceptions import (
    AlreadySigned,
    GenerationExhausted,
    InvalidTransition,
    NotificationError,
    NumberConflictError,
    RecordNotFoundError,
    StaleRecordError,
)
from opensignify.notifications.links import build_signing_link, parse_signing_link
from opensignify.notifications.notifier import Notifier, create_notifier
from opensignify.notifications.params import build_notification_params
from opensignify.services.pdf.composer import InvoiceComposer
from opensignify.storage.repository import InvoiceStore
from opensignify.utils.config import Settings, get_settings
from opensignify.utils.logging import get_logger

from .lifecycle import InvoiceLifecycle

logger = get_logger(__name__)


class InvoiceService:
    """Async entry point for every invoice operation.

    Args:
        store: Where records live
        settings: Application settings (default: ``get_settings()``)
        lifecycle: State machine (default built from settings)
        composer: PDF composer (default built from settings)
        notifier: Delivers signing requests (default: ``create_notifier(settings)``)
        event_bus: Bus receiving domain events (default: global bus)
    """

    def __init__(
        self,
        store: InvoiceStore,
        *,
        settings: Settings | None = None,
        lifecycle: InvoiceLifecycle | None = None,
        composer: InvoiceComposer | None = None,
        notifier: Notifier | None = None,
        event_bus: EventBus | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or get_settings()
        self.lifecycle = lifecycle or InvoiceLifecycle(
            max_number_attempts=self.settings.max_number_attempts
        )
        self.guard: AccessGuard = self.lifecycle.guard
        self.composer = composer or InvoiceComposer(
            font_path=self.settings.pdf_font_path,
            bold_font_path=self.settings.pdf_bold_font_path,
        )
        self.notifier = notifier or create_notifier(self.settings)
        self.event_bus = event_bus or get_global_event_bus()
        # Entries disappear once no transition holds or awaits the lock.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, record_id: str) -> asyncio.Lock:
        lock = self._locks.get(record_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[record_id] = lock
        return lock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, record_id: str, actor_id: str | None) -> InvoiceRecord:
        """Fetch a record the caller owns.

        Raises:
            RecordNotFoundError: If the id is unknown
            PermissionDenied: If the caller is not the owner
        """
        record = await self.store.get(record_id)
        return self.lifecycle.view(record, actor_id)

    async def list_for_owner(self, actor_id: str, limit: int | None = None) -> list[InvoiceRecord]:
        """The caller's most recent invoices, newest first."""
        limit = limit or self.settings.default_list_limit
        records = await self.store.query_by_owner(actor_id, limit)
        return self.guard.owned(records, actor_id)

    def signing_link(self, record: InvoiceRecord, *, embed: bool = False) -> str:
        return build_signing_link(self.settings.base_url, record, embed=embed)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def create(self, draft: InvoiceDraft, actor_id: str) -> InvoiceRecord:
        """Store a new draft owned by ``actor_id``.

        A number taken concurrently by another insert is drawn again, within
        the lifecycle's ``max_number_attempts``.

        Raises:
            ValidationError: If the draft or owner is invalid
            GenerationExhausted: When no free invoice number was found
        """
        existing = set(await self.store.invoice_numbers(actor_id))
        for _ in range(self.lifecycle.max_number_attempts):
            record = self.lifecycle.create(draft, actor_id, existing)
            try:
                stored = await self.store.put(record)
                break
            except NumberConflictError:
                logger.warning(
                    "invoice_number_conflict",
                    invoice_number=record.invoice_number,
                    sender_id=actor_id,
                )
                existing.add(record.invoice_number)
        else:
            raise GenerationExhausted(
                "Could not allocate a free invoice number",
                attempts=self.lifecycle.max_number_attempts,
            )

        logger.info(
            "invoice_created",
            invoice_id=stored.id,
            invoice_number=stored.invoice_number,
            sender_id=actor_id,
        )
        await self.event_bus.publish_async(
            InvoiceCreatedEvent(
                invoice_id=stored.id or "",
                invoice_number=stored.invoice_number,
                sender_id=stored.sender_id,
                amount=stored.amount,
                currency=stored.currency,
            )
        )
        return stored

    async def dispatch(
        self, record_id: str, actor_id: str | None, *, embed_record: bool = False
    ) -> InvoiceRecord:
        """Move a draft to pending and send the signing request to the recipient.

        Raises:
            PermissionDenied: If the caller is not the owner
            InvalidTransition: If the record is not a draft
            NotificationError: If delivery failed; the record is pending and
                ``notify`` may be retried
        """
        async with self._lock_for(record_id):
            record = await self.store.get(record_id)
            pending = self.lifecycle.dispatch(record, actor_id)
            stored = await self._commit(pending, record.status, "dispatch")

        link = self.signing_link(stored, embed=embed_record)
        logger.info("invoice_dispatched", invoice_id=stored.id, invoice_number=stored.invoice_number)
        await self.event_bus.publish_async(
            InvoiceDispatchedEvent(
                invoice_id=record_id,
                invoice_number=stored.invoice_number,
                sender_id=stored.sender_id,
                recipient_email=stored.recipient_email,
                signing_link=link,
            )
        )
        await self._notify(stored, link, resend=False)
        return stored

    async def notify(
        self, record_id: str, actor_id: str | None, *, embed_record: bool = False
    ) -> InvoiceRecord:
        """Send the signing request for a pending record again.

        Raises:
            PermissionDenied: If the caller is not the owner
            InvalidTransition: If the record is not pending
            NotificationError: If delivery failed again
        """
        record = await self.store.get(record_id)
        self.lifecycle.check_notifiable(record, actor_id)
        await self._notify(record, self.signing_link(record, embed=embed_record), resend=True)
        return record

    async def _notify(self, record: InvoiceRecord, link: str, *, resend: bool) -> None:
        params = build_notification_params(record, link)
        try:
            await self.notifier.send(params)
        except Exception as e:
            logger.error(
                "recipient_notification_failed",
                invoice_id=record.id,
                invoice_number=record.invoice_number,
                error=str(e),
                error_type=type(e).__name__,
            )
            if isinstance(e, NotificationError):
                raise
            raise NotificationError(
                f"Could not notify the recipient of invoice {record.invoice_number}",
                context={"invoice_id": record.id},
                original_error=e,
            ) from e

        logger.info(
            "recipient_notified",
            invoice_id=record.id,
            invoice_number=record.invoice_number,
            resend=resend,
        )
        await self.event_bus.publish_async(
            RecipientNotifiedEvent(
                invoice_id=record.id or "",
                invoice_number=record.invoice_number,
                recipient_email=record.recipient_email,
                resend=resend,
            )
        )

    async def sign(
        self,
        record_id: str,
        signature: Signature | None,
        actor_id: str | None = None,
        *,
        blank_baseline: str | None = None,
        via_link: bool = False,
    ) -> InvoiceRecord:
        """Attach the recipient's signature to a pending record.

        Raises:
            AlreadySigned: If the record is (or concurrently became) signed
            InvalidTransition: If the record has not been dispatched
            ValidationError: If the signature is null, empty or blank
        """
        async with self._lock_for(record_id):
            record = await self.store.get(record_id)
            signed = self.lifecycle.sign(record, signature, actor_id, blank_baseline=blank_baseline)
            stored = await self._commit(signed, record.status, "sign")

        logger.info(
            "invoice_signed",
            invoice_id=stored.id,
            invoice_number=stored.invoice_number,
            signature_kind=str(stored.signature.kind) if stored.signature else None,
            via_link=via_link,
        )
        await self.event_bus.publish_async(
            InvoiceSignedEvent(
                invoice_id=record_id,
                invoice_number=stored.invoice_number,
                sender_id=stored.sender_id,
                signature_kind=str(stored.signature.kind) if stored.signature else "",
                signed_at=stored.signed_at,  # type: ignore[arg-type]
                via_link=via_link,
            )
        )
        return stored

    async def sign_from_link(
        self,
        link: str,
        signature: Signature | None,
        *,
        blank_baseline: str | None = None,
    ) -> InvoiceRecord:
        """Sign through a shareable link; holding the link is the authorization.

        When the link embeds the record and the store does not know it, the
        embedded record is signed and returned without being stored.
        """
        parsed = parse_signing_link(link)
        try:
            return await self.sign(
                parsed.record_id, signature, None, blank_baseline=blank_baseline, via_link=True
            )
        except RecordNotFoundError:
            if parsed.record is None:
                raise
        signed = self.lifecycle.sign(parsed.record, signature, None, blank_baseline=blank_baseline)
        logger.info(
            "invoice_signed_without_store",
            invoice_id=signed.id,
            invoice_number=signed.invoice_number,
        )
        return signed

    async def _commit(
        self, record: InvoiceRecord, expected: InvoiceStatus, action: str
    ) -> InvoiceRecord:
        try:
            return await self.store.put(record, expected_status=expected)
        except StaleRecordError as e:
            if e.stored_status == InvoiceStatus.SIGNED.value:
                raise AlreadySigned(
                    "Invoice has already been signed",
                    current_status=e.stored_status,
                    attempted_action=action,
                ) from e
            raise InvalidTransition(
                "Invoice changed while the transition was in progress",
                current_status=e.stored_status,
                attempted_action=action,
            ) from e

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    async def render(
        self, record_id: str, actor_id: str | None, output_dir: Path | None = None
    ) -> Path:
        """Render the caller's invoice to PDF at its current lifecycle stage."""
        record = await self.store.get(record_id)
        self.guard.check(record, actor_id, Action.RENDER)
        output_dir = output_dir or self.settings.documents_dir

        path = await asyncio.to_thread(self.composer.render, record, output_dir)
        page_count = self.composer.layout(record).page_count

        await self.event_bus.publish_async(
            InvoiceRenderedEvent(
                invoice_id=record_id,
                invoice_number=record.invoice_number,
                output_path=str(path),
                page_count=page_count,
                signed=record.is_signed,
            )
        )
        return path
