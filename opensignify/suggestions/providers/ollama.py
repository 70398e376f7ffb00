"""Ollama provider for suggestions from a local LLM."""

from __future__ import annotations

import re

import httpx

from opensignify.suggestions.providers.base import (
    ProviderError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)
from opensignify.utils.logging import get_logger

logger = get_logger(__name__)

_LIST_MARKER = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")


class OllamaProvider:
    """Asks a model served by Ollama for invoice descriptions.

    The owner's past descriptions are sent as examples. No API key is needed;
    the model must already be pulled on the server.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "llama3",
        timeout: int = 60,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url
        self.model = model
        self.timeout = timeout
        self._http_client = http_client

    @property
    def provider_name(self) -> str:
        return "ollama"

    def build_prompt(self, current_input: str, history: list[str], limit: int) -> str:
        lines = [
            f"Suggest up to {limit} short invoice descriptions, one per line, "
            "with no numbering or commentary.",
        ]
        if history:
            lines.append("Descriptions used on previous invoices:")
            lines.extend(f"- {description}" for description in history)
        if current_input.strip():
            lines.append(f"The user has started typing: {current_input.strip()}")
        return "\n".join(lines)

    @staticmethod
    def parse_suggestions(content: str, limit: int) -> list[str]:
        suggestions = []
        for line in content.splitlines():
            text = _LIST_MARKER.sub("", line).strip().strip('"')
            if text:
                suggestions.append(text)
        return suggestions[:limit]

    async def suggest(self, current_input: str, history: list[str], limit: int) -> list[str]:
        prompt = self.build_prompt(current_input, history, limit)
        logger.info("ollama_request_started", model=self.model, prompt_length=len(prompt))

        try:
            if self._http_client is not None:
                response = await self._post(self._http_client, prompt)
            else:
                async with httpx.AsyncClient(
                    base_url=self.base_url, timeout=self.timeout
                ) as client:
                    response = await self._post(client, prompt)
            response.raise_for_status()
            data = response.json()

        except httpx.TimeoutException as e:
            logger.error("ollama_timeout", error=str(e))
            raise ProviderTimeoutError(
                f"Ollama request timeout after {self.timeout}s",
                provider=self.provider_name,
                original_error=e,
            ) from e

        except httpx.ConnectError as e:
            logger.error("ollama_connection_error", error=str(e), base_url=self.base_url)
            raise ProviderUnavailableError(
                f"Cannot connect to Ollama at {self.base_url}. "
                "Make sure Ollama is running (ollama serve)",
                provider=self.provider_name,
                original_error=e,
            ) from e

        except httpx.HTTPStatusError as e:
            logger.error("ollama_http_error", error=str(e), status=e.response.status_code)
            if e.response.status_code == 404:
                raise ProviderError(
                    f"Model '{self.model}' not found. Pull it with: ollama pull {self.model}",
                    provider=self.provider_name,
                    original_error=e,
                ) from e
            raise ProviderError(
                f"Ollama HTTP error: {e}",
                provider=self.provider_name,
                original_error=e,
            ) from e

        except ValueError as e:
            logger.error("ollama_bad_response", error=str(e))
            raise ProviderError(
                "Ollama returned a response that is not JSON",
                provider=self.provider_name,
                original_error=e,
            ) from e

        suggestions = self.parse_suggestions(str(data.get("response", "")), limit)
        logger.info("ollama_request_completed", model=self.model, suggestions=len(suggestions))
        return suggestions

    async def _post(self, client: httpx.AsyncClient, prompt: str) -> httpx.Response:
        return await client.post(
            "/api/generate",
            json={"model": self.model, "prompt": prompt, "stream": False},
        )
