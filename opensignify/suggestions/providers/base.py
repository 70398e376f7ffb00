"""Provider interface for description suggestions."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from opensignify.exceptions import OpenSignifyError


class ProviderError(OpenSignifyError):
    """Raised when a suggestion provider cannot produce suggestions."""

    def __init__(self, message: str, *, provider: str | None = None, **kwargs: Any) -> None:
        self.provider = provider
        context = kwargs.get("context", {})
        if provider:
            context["provider"] = provider
        kwargs["context"] = context
        super().__init__(message, **kwargs)


class ProviderTimeoutError(ProviderError):
    """Raised when the provider did not answer in time."""


class ProviderUnavailableError(ProviderError):
    """Raised when the provider cannot be reached."""


@runtime_checkable
class SuggestionProvider(Protocol):
    """Turns the owner's past descriptions into ranked suggestions."""

    @property
    def provider_name(self) -> str: ...

    async def suggest(self, current_input: str, history: list[str], limit: int) -> list[str]:
        """Up to ``limit`` descriptions for ``current_input``, best first."""
        ...
