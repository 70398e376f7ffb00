"""Single-owner access checks.

Reading, dispatching, re-notifying and rendering a record require ``actor_id ==
record.sender_id``. Signing is reachable without identity: the shareable
link is the token. Denials never reveal anything about the record.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from opensignify.domain.models import InvoiceRecord
from opensignify.exceptions import PermissionDenied
from opensignify.utils.logging import get_logger

logger = get_logger(__name__)


class Action(str, Enum):
    VIEW = "view"
    DISPATCH = "dispatch"
    NOTIFY = "notify"
    RENDER = "render"
    SIGN = "sign"

    def __str__(self) -> str:
        return self.value


OWNER_ACTIONS = frozenset({Action.VIEW, Action.DISPATCH, Action.NOTIFY, Action.RENDER})


class AccessGuard:
    """Mediates every read and transition against an explicit caller id."""

    def is_allowed(self, record: InvoiceRecord, actor_id: str | None, action: Action) -> bool:
        if action not in OWNER_ACTIONS:
            return True
        return actor_id is not None and actor_id == record.sender_id

    def check(self, record: InvoiceRecord, actor_id: str | None, action: Action) -> None:
        """Raise ``PermissionDenied`` unless the caller may perform ``action``."""
        if self.is_allowed(record, actor_id, action):
            return
        logger.warning("access_denied", action=str(action), actor_id=actor_id)
        raise PermissionDenied(f"Not allowed to {action} this invoice", action=str(action))

    def owned(self, records: Iterable[InvoiceRecord], actor_id: str) -> list[InvoiceRecord]:
        """Keep only the caller's records."""
        return [record for record in records if record.sender_id == actor_id]
