"""Description suggestions drawn from the owner's own invoices."""

from __future__ import annotations

from opensignify.domain.models import InvoiceRecord
from opensignify.exceptions import ValidationError
from opensignify.storage.repository import InvoiceStore
from opensignify.suggestions.providers import SuggestionProvider, create_provider
from opensignify.utils.config import Settings, get_settings
from opensignify.utils.logging import get_logger

logger = get_logger(__name__)

MAX_SUGGESTIONS = 20


def collect_history(records: list[InvoiceRecord]) -> list[str]:
    """Invoice and line item descriptions, newest first, without duplicates.

    Duplicates are matched ignoring case and surrounding whitespace; the first
    spelling seen wins.
    """
    seen: set[str] = set()
    history: list[str] = []
    for record in records:
        for description in (record.description, *(item.description for item in record.items)):
            key = description.strip().casefold()
            if key and key not in seen:
                seen.add(key)
                history.append(description.strip())
    return history


class SuggestionService:
    """Suggests descriptions to an owner while drafting an invoice.

    Only records returned by ``query_by_owner`` for the caller are read, so one
    owner never sees another's descriptions.
    """

    def __init__(
        self,
        store: InvoiceStore,
        *,
        settings: Settings | None = None,
        provider: SuggestionProvider | None = None,
    ) -> None:
        self.store = store
        self.settings = settings or get_settings()
        self.provider = provider or create_provider(settings=self.settings)

    async def suggest(self, actor_id: str, current_input: str = "", limit: int = 5) -> list[str]:
        if not 1 <= limit <= MAX_SUGGESTIONS:
            raise ValidationError(
                f"limit must be between 1 and {MAX_SUGGESTIONS}", field="limit"
            )

        records = await self.store.query_by_owner(actor_id, self.settings.suggest_history_size)
        history = collect_history(records)
        suggestions = await self.provider.suggest(current_input, history, limit)

        unique: list[str] = []
        seen: set[str] = set()
        for suggestion in suggestions:
            key = suggestion.strip().casefold()
            if key and key not in seen:
                seen.add(key)
                unique.append(suggestion.strip())

        logger.info(
            "descriptions_suggested",
            actor_id=actor_id,
            provider=self.provider.provider_name,
            history=len(history),
            suggestions=len(unique),
        )
        return unique[:limit]
