"""Suggestion providers."""

from .base import ProviderError, ProviderTimeoutError, ProviderUnavailableError, SuggestionProvider
from .factory import create_provider
from .history import HistoryProvider
from .ollama import OllamaProvider

__all__ = [
    "HistoryProvider",
    "OllamaProvider",
    "ProviderError",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "SuggestionProvider",
    "create_provider",
]
