"""Tests for the real-time speech broker."""

from __future__ import annotations

import httpx
import pytest

from src.core.exceptions import (
    BrokerUnavailableError,
    InvalidRequestError,
    SignalingExchangeError,
)
from src.services.realtime.voices import DEFAULT_VOICE_CATALOG, ResolutionLevel, VoiceCatalog


def _ok(secret: str = "ek_1") -> httpx.Response:
    return httpx.Response(
        200,
        json={"id": "sess_1", "client_secret": {"value": secret, "expires_at": 1_700_000_060}},
    )


def _voice_rejected() -> httpx.Response:
    return httpx.Response(
        400,
        json={
            "error": {
                "message": "Invalid value: 'echo'. Supported values are: 'alloy', ...",
                "param": "voice",
            }
        },
    )


class TestVoiceResolution:
    """Tests for voice and language lookup."""

    def test_gender_and_tone(self, broker) -> None:
        assert broker.resolve_voice_with_level("warm", "female") == (
            "shimmer",
            ResolutionLevel.gender_tone,
        )

    def test_gender_with_unknown_tone_uses_gender_professional(self, broker) -> None:
        assert broker.resolve_voice_with_level("whimsical", "male") == (
            "alloy",
            ResolutionLevel.gender_tone,
        )

    def test_tone_only(self, broker) -> None:
        assert broker.resolve_voice_with_level("direct") == ("echo", ResolutionLevel.tone)
        assert broker.resolve_voice_with_level("direct", "nonbinary") == (
            "echo",
            ResolutionLevel.tone,
        )

    def test_unknown_tone_falls_back_to_default(self, broker) -> None:
        assert broker.resolve_voice_with_level("whimsical") == ("alloy", ResolutionLevel.default)

    def test_missing_tone_is_professional(self, broker) -> None:
        assert broker.resolve_voice(None) == "alloy"

    def test_invalid_configured_voice_falls_back(self, broker_factory, transport) -> None:
        catalog = VoiceCatalog(
            tone_voices={"warm": "robot"},
            default_voice="alloy",
            valid_voices=frozenset({"alloy"}),
        )
        broker = broker_factory(transport, catalog=catalog)

        assert broker.resolve_voice_with_level("warm") == ("alloy", ResolutionLevel.default)

    def test_catalog_is_read_only(self) -> None:
        with pytest.raises(TypeError):
            DEFAULT_VOICE_CATALOG.tone_voices["warm"] = "echo"  # type: ignore[index]

    @pytest.mark.parametrize(
        ("language", "code"),
        [("English", "en"), ("spanish", "es"), (" Japanese ", "ja"), ("Klingon", "en"), (None, "en")],
    )
    def test_language_codes(self, broker, language, code) -> None:
        assert broker.resolve_language_code(language) == code


class TestRequestCredential:
    """Tests for VoiceChannelBroker.request_credential."""

    @pytest.mark.asyncio
    async def test_payload_and_grant(self, broker_factory, make_transport) -> None:
        handler = make_transport(_ok())
        broker = broker_factory(handler)

        grant = await broker.request_credential("Be helpful", "echo", "fr")

        assert grant.credential == "ek_1"
        assert grant.external_session_id == "sess_1"
        assert grant.expires_at_ms == 1_700_000_060_000
        assert grant.voice == "echo"

        request = handler.requests[0]
        assert request.url == httpx.URL("https://api.openai.com/v1/realtime/sessions")
        assert request.headers["Authorization"] == "Bearer test-openai-key"
        payload = handler.json_bodies()[0]
        assert payload["model"] == "gpt-4o-realtime-preview"
        assert payload["instructions"] == "Be helpful"
        assert payload["input_audio_transcription"] == {"model": "whisper-1", "language": "fr"}
        assert payload["turn_detection"] == {
            "type": "server_vad",
            "threshold": 0.5,
            "prefix_padding_ms": 300,
            "silence_duration_ms": 500,
        }

    @pytest.mark.asyncio
    async def test_rejected_voice_is_retried_with_default(
        self, broker_factory, make_transport
    ) -> None:
        handler = make_transport(_voice_rejected(), _ok())
        broker = broker_factory(handler)

        grant = await broker.request_credential("Be helpful", "echo", "en")

        assert grant.voice == "alloy"
        assert [body["voice"] for body in handler.json_bodies()] == ["echo", "alloy"]

    @pytest.mark.asyncio
    async def test_default_voice_is_not_retried(self, broker_factory, make_transport) -> None:
        handler = make_transport(_voice_rejected())
        broker = broker_factory(handler)

        with pytest.raises(BrokerUnavailableError):
            await broker.request_credential("Be helpful", "alloy", "en")

        assert len(handler.requests) == 1

    @pytest.mark.asyncio
    async def test_retry_happens_once(self, broker_factory, make_transport) -> None:
        handler = make_transport(_voice_rejected(), _voice_rejected())
        broker = broker_factory(handler)

        with pytest.raises(BrokerUnavailableError):
            await broker.request_credential("Be helpful", "echo", "en")

        assert len(handler.requests) == 2

    @pytest.mark.asyncio
    async def test_server_error(self, broker_factory, make_transport) -> None:
        handler = make_transport(httpx.Response(503, text="overloaded"))
        broker = broker_factory(handler)

        with pytest.raises(BrokerUnavailableError):
            await broker.request_credential("Be helpful", "echo", "en")

        assert len(handler.requests) == 1

    @pytest.mark.asyncio
    async def test_network_error(self, broker_factory, make_transport) -> None:
        handler = make_transport(httpx.ConnectError("refused"))
        broker = broker_factory(handler)

        with pytest.raises(BrokerUnavailableError):
            await broker.request_credential("Be helpful", "echo", "en")

    @pytest.mark.asyncio
    async def test_malformed_response(self, broker_factory, make_transport) -> None:
        handler = make_transport(httpx.Response(200, json={"id": "sess_1"}))
        broker = broker_factory(handler)

        with pytest.raises(BrokerUnavailableError):
            await broker.request_credential("Be helpful", "echo", "en")

    @pytest.mark.asyncio
    async def test_missing_api_key(self, settings_factory, transport) -> None:
        from src.services.realtime.broker import VoiceChannelBroker

        broker = VoiceChannelBroker(
            settings_factory(openai_api_key=None),
            client=httpx.AsyncClient(transport=httpx.MockTransport(transport)),
        )

        with pytest.raises(BrokerUnavailableError):
            await broker.request_credential("Be helpful", "echo", "en")

        assert transport.requests == []


class TestExchangeSignaling:
    """Tests for VoiceChannelBroker.exchange_signaling."""

    @pytest.mark.asyncio
    async def test_forwards_offer(self, broker_factory, make_transport) -> None:
        handler = make_transport(httpx.Response(201, text="v=0 answer"))
        broker = broker_factory(handler)

        answer = await broker.exchange_signaling("v=0 offer", "ek_1")

        assert answer == "v=0 answer"
        request = handler.requests[0]
        assert str(request.url) == broker.signaling_url
        assert request.headers["Authorization"] == "Bearer ek_1"
        assert request.headers["Content-Type"] == "application/sdp"
        assert request.content == b"v=0 offer"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("offer", "credential"), [("", "ek_1"), ("  ", "ek_1"), ("v=0", "")])
    async def test_rejects_empty_input(self, broker, transport, offer, credential) -> None:
        with pytest.raises(InvalidRequestError):
            await broker.exchange_signaling(offer, credential)

        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_upstream_rejection(self, broker_factory, make_transport) -> None:
        handler = make_transport(httpx.Response(401, text="expired"))
        broker = broker_factory(handler)

        with pytest.raises(SignalingExchangeError):
            await broker.exchange_signaling("v=0 offer", "ek_1")

    @pytest.mark.asyncio
    async def test_network_error(self, broker_factory, make_transport) -> None:
        handler = make_transport(httpx.ReadTimeout("slow"))
        broker = broker_factory(handler)

        with pytest.raises(SignalingExchangeError):
            await broker.exchange_signaling("v=0 offer", "ek_1")
