"""Factory for suggestion providers."""

from __future__ import annotations

from typing import Any, Literal

from opensignify.suggestions.providers.base import ProviderError, SuggestionProvider
from opensignify.suggestions.providers.history import HistoryProvider
from opensignify.suggestions.providers.ollama import OllamaProvider
from opensignify.utils.config import Settings, get_settings
from opensignify.utils.logging import get_logger

logger = get_logger(__name__)


def create_provider(
    provider_type: Literal["history", "ollama"] | None = None,
    settings: Settings | None = None,
    **kwargs: Any,
) -> SuggestionProvider:
    """Create the configured suggestion provider.

    Args:
        provider_type: Provider type (if None, uses ``settings.suggest_provider``)
        settings: Settings (if None, uses global settings)
        **kwargs: Overrides passed to the provider constructor

    Raises:
        ProviderError: If the provider type is unknown
    """
    if settings is None:
        settings = get_settings()

    provider = provider_type or settings.suggest_provider
    logger.info("creating_suggestion_provider", provider=provider)

    if provider == "history":
        return HistoryProvider(**kwargs)

    if provider == "ollama":
        config: dict[str, Any] = {
            "base_url": settings.ollama_base_url,
            "model": settings.ollama_model,
            "timeout": settings.ollama_timeout,
        }
        config.update(kwargs)
        return OllamaProvider(**config)

    raise ProviderError(
        f"Unknown provider: {provider}. Supported: history, ollama",
        provider=str(provider),
    )
