"""Tests for the description suggestion service."""

import pytest
import pytest_asyncio

from opensignify.domain.models import LineItem
from opensignify.exceptions import ValidationError
from opensignify.suggestions import HistoryProvider, SuggestionService, collect_history

from conftest import OTHER_ID, OWNER_ID


class RecordingProvider:
    """Returns canned suggestions and remembers what it was given."""

    def __init__(self, suggestions):
        self.suggestions = suggestions
        self.calls = []

    @property
    def provider_name(self):
        return "recording"

    async def suggest(self, current_input, history, limit):
        self.calls.append((current_input, history, limit))
        return self.suggestions


def _nth(record, n, clock, description, items=()):
    return record.model_copy(
        update={
            "id": f"inv-{n}",
            "invoice_number": f"INV-2026-{1000 + n}",
            "created_at": clock.advance(minutes=1),
            "description": description,
            "items": items,
        }
    )


@pytest_asyncio.fixture
async def history_store(memory_store, draft_record, clock):
    await memory_store.put(_nth(draft_record, 1, clock, "Website redesign"))
    await memory_store.put(
        _nth(
            draft_record,
            2,
            clock,
            "Hosting for October",
            items=(LineItem(description="Server rental", unit_price="40"),),
        )
    )
    await memory_store.put(_nth(draft_record, 3, clock, "website redesign "))
    await memory_store.put(
        _nth(draft_record, 4, clock, "Secret project").model_copy(update={"sender_id": OTHER_ID})
    )
    return memory_store


def test_collect_history_dedupes_ignoring_case(draft_record, clock):
    records = [
        _nth(draft_record, 2, clock, "Design", items=(LineItem(description="design", unit_price="1"),)),
        _nth(draft_record, 1, clock, "Hosting"),
    ]

    assert collect_history(records) == ["Design", "Hosting"]


@pytest.mark.asyncio
async def test_history_comes_from_own_records_newest_first(history_store, test_settings):
    provider = RecordingProvider([])
    service = SuggestionService(history_store, settings=test_settings, provider=provider)

    await service.suggest(OWNER_ID, "web", 3)

    [(current_input, history, limit)] = provider.calls
    assert current_input == "web"
    assert limit == 3
    assert history == ["website redesign", "Hosting for October", "Server rental"]


@pytest.mark.asyncio
async def test_history_size_is_bounded(history_store, test_settings):
    provider = RecordingProvider([])
    settings = test_settings.model_copy(update={"suggest_history_size": 1})
    service = SuggestionService(history_store, settings=settings, provider=provider)

    await service.suggest(OWNER_ID)

    assert provider.calls[0][1] == ["website redesign"]


@pytest.mark.asyncio
async def test_provider_output_is_deduplicated_and_capped(history_store, test_settings):
    provider = RecordingProvider(["Design", " design", "", "Hosting", "Support"])
    service = SuggestionService(history_store, settings=test_settings, provider=provider)

    assert await service.suggest(OWNER_ID, "", 2) == ["Design", "Hosting"]


@pytest.mark.asyncio
async def test_history_provider_end_to_end(history_store, test_settings):
    service = SuggestionService(history_store, settings=test_settings, provider=HistoryProvider())

    assert await service.suggest(OWNER_ID, "host") == ["Hosting for October"]
    assert await service.suggest(OTHER_ID, "web") == []


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [0, 21])
async def test_limit_out_of_range(memory_store, test_settings, limit):
    service = SuggestionService(
        memory_store, settings=test_settings, provider=RecordingProvider([])
    )

    with pytest.raises(ValidationError) as exc_info:
        await service.suggest(OWNER_ID, "web", limit)

    assert exc_info.value.fields == ["limit"]
