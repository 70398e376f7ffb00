"""Description suggestions for new invoices."""

from .providers import (
    HistoryProvider,
    OllamaProvider,
    ProviderError,
    SuggestionProvider,
    create_provider,
)
from .service import SuggestionService, collect_history

__all__ = [
    "HistoryProvider",
    "OllamaProvider",
    "ProviderError",
    "SuggestionProvider",
    "SuggestionService",
    "collect_history",
    "create_provider",
]
