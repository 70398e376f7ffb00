"""Local provider that ranks past descriptions by fuzzy similarity."""

from __future__ import annotations

from rapidfuzz import fuzz

from opensignify.utils.logging import get_logger

logger = get_logger(__name__)


class HistoryProvider:
    """Suggests the owner's own past descriptions.

    With no input the history is returned as given (newest first). Otherwise
    candidates are scored with ``fuzz.partial_ratio`` against the input and
    those below ``min_score`` are dropped.
    """

    def __init__(self, min_score: float = 60.0) -> None:
        self.min_score = min_score

    @property
    def provider_name(self) -> str:
        return "history"

    async def suggest(self, current_input: str, history: list[str], limit: int) -> list[str]:
        query = current_input.strip().lower()
        if not query:
            return history[:limit]

        scored = []
        for position, candidate in enumerate(history):
            score = fuzz.partial_ratio(query, candidate.lower())
            if score >= self.min_score:
                # Ties keep history order
                scored.append((-score, position, candidate))
        scored.sort()

        logger.debug(
            "history_suggestions_ranked",
            candidates=len(history),
            matches=len(scored),
        )
        return [candidate for _, _, candidate in scored[:limit]]
