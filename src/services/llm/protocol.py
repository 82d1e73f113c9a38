"""LLM service protocol."""

from __future__ import annotations

from typing import Protocol


class JSONGenerator(Protocol):
    """Anything that can turn chat messages into a JSON object string."""

    @property
    def model(self) -> str: ...

    async def generate_json(
        self,
        messages: list[dict],
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        """Return the raw JSON text produced for ``messages``."""
        ...
