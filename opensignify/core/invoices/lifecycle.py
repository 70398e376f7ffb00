"""Invoice lifecycle state machine.

    draft --dispatch--> pending --sign--> signed

Transitions are pure: each returns a new ``InvoiceRecord`` and leaves its
input untouched. A transition that was already taken is rejected, never
ignored. The engine does not persist, notify or log record contents; the
invoice service does the I/O around it.
"""

from __future__ import annotations

import random
from collections.abc import Callable, Collection, Mapping
from datetime import datetime
from typing import Any

import pydantic

from opensignify.core.access import AccessGuard, Action
from opensignify.domain.enums import InvoiceStatus
from opensignify.domain.models import InvoiceDraft, InvoiceRecord, Signature, to_validation_error
from opensignify.exceptions import (
    AlreadySigned,
    GenerationExhausted,
    InvalidTransition,
    ValidationError,
)
from opensignify.signature.artifact import ensure_signable
from opensignify.utils.datetime import utc_now

DEFAULT_MAX_NUMBER_ATTEMPTS = 10


class InvoiceLifecycle:
    """Validates and stamps lifecycle transitions.

    Args:
        clock: Returns the current (timezone-aware) time
        rng: Random source for invoice numbers
        max_number_attempts: Number regenerations before ``GenerationExhausted``
        guard: Access checks for owner-only transitions
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = utc_now,
        rng: random.Random | None = None,
        max_number_attempts: int = DEFAULT_MAX_NUMBER_ATTEMPTS,
        guard: AccessGuard | None = None,
    ) -> None:
        if max_number_attempts < 1:
            raise ValueError("max_number_attempts must be >= 1")
        self.clock = clock
        self.rng = rng or random.Random()
        self.max_number_attempts = max_number_attempts
        self.guard = guard or AccessGuard()

    def generate_invoice_number(self, year: int) -> str:
        """``INV-<year>-<1000..9999>``."""
        return f"INV-{year}-{self.rng.randint(1000, 9999)}"

    def allocate_number(self, year: int, existing_numbers: Collection[str]) -> str:
        """Draw numbers until one is not in ``existing_numbers``.

        Raises:
            GenerationExhausted: After ``max_number_attempts`` collisions
        """
        for _ in range(self.max_number_attempts):
            number = self.generate_invoice_number(year)
            if number not in existing_numbers:
                return number
        raise GenerationExhausted(
            "Could not allocate a free invoice number",
            attempts=self.max_number_attempts,
        )

    def create(
        self,
        fields: InvoiceDraft | Mapping[str, Any],
        owner_id: str,
        existing_numbers: Collection[str] = (),
    ) -> InvoiceRecord:
        """Build a draft record owned by ``owner_id``.

        Raises:
            ValidationError: Listing every invalid field
            GenerationExhausted: When no free invoice number was found
        """
        if not owner_id or not owner_id.strip():
            raise ValidationError("An owner is required", field="sender_id")
        draft = fields if isinstance(fields, InvoiceDraft) else InvoiceDraft.parse(dict(fields))

        now = self.clock()
        number = self.allocate_number(now.year, existing_numbers)
        return _build(
            {
                **draft.model_dump(),
                "currency": draft.currency.value,
                "invoice_number": number,
                "sender_id": owner_id,
                "status": InvoiceStatus.DRAFT,
                "created_at": now,
            }
        )

    def dispatch(self, record: InvoiceRecord, actor_id: str | None) -> InvoiceRecord:
        """draft -> pending. Owner only.

        Raises:
            PermissionDenied: If ``actor_id`` is not the owner
            InvalidTransition: If the record is not a draft
        """
        self.guard.check(record, actor_id, Action.DISPATCH)
        if record.status is not InvoiceStatus.DRAFT:
            raise InvalidTransition(
                f"Cannot dispatch an invoice that is {record.status}",
                current_status=str(record.status),
                attempted_action="dispatch",
            )
        return _advance(record, status=InvoiceStatus.PENDING, dispatched_at=self.clock())

    def sign(
        self,
        record: InvoiceRecord,
        signature: Signature | None,
        actor_id: str | None = None,
        *,
        blank_baseline: str | None = None,
    ) -> InvoiceRecord:
        """pending -> signed, attaching the signature artifact.

        ``actor_id`` is accepted for auditing only; whoever holds the signing
        link may sign.

        Raises:
            AlreadySigned: If the record is already signed
            InvalidTransition: If the record has not been dispatched
            ValidationError: If the artifact is null, empty or blank
        """
        self.guard.check(record, actor_id, Action.SIGN)
        if record.status is InvoiceStatus.SIGNED:
            raise AlreadySigned(
                "Invoice has already been signed",
                current_status=str(record.status),
                attempted_action="sign",
            )
        if record.status is not InvoiceStatus.PENDING:
            raise InvalidTransition(
                f"Cannot sign an invoice that is {record.status}",
                current_status=str(record.status),
                attempted_action="sign",
            )
        artifact = ensure_signable(signature, blank_baseline=blank_baseline)
        return _advance(
            record,
            status=InvoiceStatus.SIGNED,
            signed_at=self.clock(),
            signature=artifact,
        )

    def check_notifiable(self, record: InvoiceRecord, actor_id: str | None) -> None:
        """Only the owner may (re)send the signing request, and only while pending.

        Raises:
            PermissionDenied: If ``actor_id`` is not the owner
            InvalidTransition: If the record is a draft or already signed
        """
        self.guard.check(record, actor_id, Action.NOTIFY)
        if record.status is not InvoiceStatus.PENDING:
            raise InvalidTransition(
                f"Cannot notify the recipient of an invoice that is {record.status}",
                current_status=str(record.status),
                attempted_action="notify",
            )

    def view(self, record: InvoiceRecord, actor_id: str | None) -> InvoiceRecord:
        """Return the record if ``actor_id`` owns it."""
        self.guard.check(record, actor_id, Action.VIEW)
        return record


def _build(data: dict[str, Any]) -> InvoiceRecord:
    try:
        return InvoiceRecord.model_validate(data)
    except pydantic.ValidationError as e:
        raise to_validation_error(e, "Invoice is invalid") from e


def _advance(record: InvoiceRecord, **changes: Any) -> InvoiceRecord:
    # Revalidate so the lifecycle consistency rules hold for the new record.
    return _build({**record.model_dump(), **changes})
