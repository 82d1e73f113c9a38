"""Groq text-generation client for structured (JSON mode) completions."""

from __future__ import annotations

from typing import Any

import groq
from groq import AsyncGroq

from src.config import Settings, get_settings
from src.logging_config import get_logger
from src.services.llm.exceptions import (
    LLMAuthenticationError,
    LLMConnectionError,
    LLMRateLimitError,
    LLMServiceError,
)

logger: Any = get_logger(__name__)


class GroqService:
    """Groq chat completions in JSON response mode."""

    def __init__(
        self,
        settings: Settings | None = None,
        model: str | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._model = model or self._settings.evaluation_model
        self._client: AsyncGroq | None = None

    @property
    def model(self) -> str:
        return self._model

    @property
    def client(self) -> AsyncGroq:
        """Lazy initialization of AsyncGroq client."""
        if self._client is None:
            api_key = self._settings.groq_api_key
            if api_key is None:
                raise LLMAuthenticationError("Groq API key is not configured")
            self._client = AsyncGroq(
                api_key=api_key.get_secret_value(),
                timeout=60.0,
                max_retries=2,
            )
        return self._client

    async def generate_json(
        self,
        messages: list[dict],
        *,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> str:
        """Request a JSON object completion.

        Uses Groq's JSON response format; the caller parses and validates
        the returned text.

        Args:
            messages: List of message dicts with role/content
            max_tokens: Maximum response tokens (settings default)
            temperature: Sampling temperature (settings default)

        Returns:
            Raw JSON text from the model

        Raises:
            LLMRateLimitError: When rate limit exceeded
            LLMConnectionError: When API unreachable
            LLMAuthenticationError: When API key invalid
            LLMServiceError: For other API errors or an empty response
        """
        try:
            response = await self.client.chat.completions.create(  # type: ignore[call-overload]
                messages=messages,
                model=self._model,
                temperature=(
                    self._settings.evaluation_temperature if temperature is None else temperature
                ),
                max_tokens=max_tokens or self._settings.evaluation_max_tokens,
                response_format={"type": "json_object"},
            )
        except groq.RateLimitError as e:
            logger.warning(f"Groq rate limit hit during generation: {e}")
            raise LLMRateLimitError(
                "Rate limit exceeded",
                retry_after=_retry_after_seconds(e),
            ) from e

        except groq.APIConnectionError as e:
            logger.error(f"Groq connection error during generation: {e.__cause__}")
            raise LLMConnectionError("Failed to connect to Groq API") from e

        except groq.AuthenticationError as e:
            logger.error("Groq authentication failed during generation")
            raise LLMAuthenticationError("Invalid Groq API key") from e

        except groq.APIStatusError as e:
            logger.error(f"Groq API error during generation: {e.status_code} - {e.message}")
            raise LLMServiceError(
                f"Groq API error: {e.status_code}", status_code=e.status_code
            ) from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise LLMServiceError("Empty response from Groq")
        if response.usage:
            logger.debug(f"Groq generation used {response.usage.total_tokens} tokens")
        return content

    async def close(self) -> None:
        """Close the client connection."""
        if self._client:
            await self._client.close()
            self._client = None


def _retry_after_seconds(error: groq.RateLimitError, default: float = 60.0) -> float:
    header = error.response.headers.get("retry-after") if error.response else None
    try:
        return float(header) if header else default
    except ValueError:
        return default
