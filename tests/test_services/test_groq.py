"""Tests for the Groq JSON generation client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import groq
import httpx
import pytest

from src.services.llm.exceptions import (
    LLMAuthenticationError,
    LLMConnectionError,
    LLMRateLimitError,
    LLMServiceError,
)
from src.services.llm.groq import GroqService

_REQUEST = httpx.Request("POST", "https://api.groq.com/openai/v1/chat/completions")


def _completion(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(total_tokens=42),
    )


@pytest.fixture
def service(settings) -> GroqService:
    svc = GroqService(settings=settings)
    client = MagicMock()
    client.chat.completions.create = AsyncMock(return_value=_completion('{"ok": true}'))
    client.close = AsyncMock()
    svc._client = client
    return svc


class TestGroqService:
    """Test suite for GroqService."""

    def test_model_defaults_to_settings(self, settings) -> None:
        assert GroqService(settings=settings).model == "llama-3.3-70b-versatile"
        assert GroqService(settings=settings, model="other").model == "other"

    def test_missing_key_raises_on_first_use(self, settings_factory) -> None:
        svc = GroqService(settings=settings_factory(groq_api_key=None))

        with pytest.raises(LLMAuthenticationError):
            _ = svc.client

    @pytest.mark.asyncio
    async def test_generate_json_uses_json_mode(self, service) -> None:
        result = await service.generate_json([{"role": "user", "content": "hi"}])

        assert result == '{"ok": true}'
        kwargs = service._client.chat.completions.create.await_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["model"] == "llama-3.3-70b-versatile"
        assert kwargs["max_tokens"] == 4096
        assert kwargs["temperature"] == 0.7

    @pytest.mark.asyncio
    async def test_generate_json_overrides(self, service) -> None:
        await service.generate_json([], max_tokens=100, temperature=0.0)

        kwargs = service._client.chat.completions.create.await_args.kwargs
        assert kwargs["max_tokens"] == 100
        assert kwargs["temperature"] == 0.0

    @pytest.mark.asyncio
    async def test_empty_response(self, service) -> None:
        service._client.chat.completions.create.return_value = _completion("")

        with pytest.raises(LLMServiceError):
            await service.generate_json([])

    @pytest.mark.asyncio
    async def test_connection_error(self, service) -> None:
        service._client.chat.completions.create.side_effect = groq.APIConnectionError(
            request=_REQUEST
        )

        with pytest.raises(LLMConnectionError):
            await service.generate_json([])

    @pytest.mark.asyncio
    async def test_rate_limit_reads_retry_after(self, service) -> None:
        response = httpx.Response(429, request=_REQUEST, headers={"retry-after": "7"})
        service._client.chat.completions.create.side_effect = groq.RateLimitError(
            "slow down", response=response, body=None
        )

        with pytest.raises(LLMRateLimitError) as exc_info:
            await service.generate_json([])

        assert exc_info.value.retry_after == 7.0

    @pytest.mark.asyncio
    async def test_status_error(self, service) -> None:
        response = httpx.Response(500, request=_REQUEST)
        service._client.chat.completions.create.side_effect = groq.InternalServerError(
            "boom", response=response, body=None
        )

        with pytest.raises(LLMServiceError, match="500") as exc_info:
            await service.generate_json([])

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_close(self, service) -> None:
        client = service._client

        await service.close()

        client.close.assert_awaited_once()
        assert service._client is None
