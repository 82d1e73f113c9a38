"""Broker for the third-party real-time speech API.

Negotiates ephemeral session credentials and proxies the SDP offer/answer
handshake. The audio itself never passes through this service.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx

from src.config import Settings, get_settings
from src.core.exceptions import (
    BrokerUnavailableError,
    InvalidRequestError,
    SignalingExchangeError,
)
from src.logging_config import get_logger, preview
from src.observability.metrics import BROKER_FAILURES, VOICE_FALLBACK_RETRIES, VOICE_RESOLUTION
from src.services.realtime.voices import DEFAULT_VOICE_CATALOG, ResolutionLevel, VoiceCatalog

logger: Any = get_logger(__name__)

# Server-side voice activity detection
VAD_THRESHOLD = 0.5
VAD_PREFIX_PADDING_MS = 300
VAD_SILENCE_DURATION_MS = 500

# Upstream error bodies are truncated before logging
MAX_LOGGED_BODY = 500


@dataclass(frozen=True, slots=True)
class CredentialGrant:
    """Ephemeral credential issued for one speech session."""

    external_session_id: str | None
    credential: str
    expires_at_ms: int
    voice: str


class VoiceChannelBroker:
    """Real-time speech API client.

    Args:
        settings: Application settings (API key, base URL, model)
        catalog: Voice/language tables; defaults to DEFAULT_VOICE_CATALOG
        client: Optional pre-built httpx client (tests pass a MockTransport)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        catalog: VoiceCatalog = DEFAULT_VOICE_CATALOG,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._catalog = catalog
        self._client = client
        self._base_url = self._settings.realtime_base_url.rstrip("/")

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy initialization of the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.realtime_timeout_seconds)
        return self._client

    @property
    def catalog(self) -> VoiceCatalog:
        return self._catalog

    @property
    def signaling_url(self) -> str:
        """URL the client would post its SDP offer to directly."""
        return f"{self._base_url}/realtime?model={self._settings.realtime_model}"

    # =========================================================================
    # Voice and language resolution
    # =========================================================================

    def resolve_voice_with_level(
        self, tone: str | None, avatar_gender: str | None = None
    ) -> tuple[str, ResolutionLevel]:
        """Look up a voice by (gender, tone), then tone alone, then the default."""
        tone_key = (tone or "professional").lower()
        gender_key = (avatar_gender or "").lower()

        voice: str | None = None
        level = ResolutionLevel.default
        gender_table = self._catalog.gender_tone_voices.get(gender_key) if gender_key else None
        if gender_table:
            # Unknown tones use the gender's professional voice
            voice = gender_table.get(tone_key) or gender_table.get("professional")
            level = ResolutionLevel.gender_tone
        if voice is None and tone_key in self._catalog.tone_voices:
            voice, level = self._catalog.tone_voices[tone_key], ResolutionLevel.tone

        if voice is None or not self._catalog.is_valid(voice):
            if voice is not None:
                logger.warning(f"Configured voice '{voice}' is not valid, using default")
            voice, level = self._catalog.default_voice, ResolutionLevel.default
        return voice, level

    def resolve_voice(self, tone: str | None, avatar_gender: str | None = None) -> str:
        voice, level = self.resolve_voice_with_level(tone, avatar_gender)
        VOICE_RESOLUTION.labels(level=level.value).inc()
        logger.debug(
            f"Resolved voice '{voice}' via {level.value} "
            f"(tone={tone}, gender={avatar_gender})"
        )
        return voice

    def resolve_language_code(self, language_name: str | None) -> str:
        if not language_name:
            return self._catalog.fallback_language
        return self._catalog.language_codes.get(
            language_name.strip().lower(), self._catalog.fallback_language
        )

    # =========================================================================
    # Credential negotiation
    # =========================================================================

    def _auth_headers(self) -> dict[str, str]:
        api_key = self._settings.openai_api_key
        if api_key is None:
            raise BrokerUnavailableError("Voice service is not configured")
        return {"Authorization": f"Bearer {api_key.get_secret_value()}"}

    def _session_payload(self, instructions: str, voice: str, language_code: str) -> dict:
        return {
            "model": self._settings.realtime_model,
            "voice": voice,
            "instructions": instructions,
            "input_audio_format": "pcm16",
            "output_audio_format": "pcm16",
            "input_audio_transcription": {
                "model": self._settings.realtime_transcription_model,
                "language": language_code,
            },
            "turn_detection": {
                "type": "server_vad",
                "threshold": VAD_THRESHOLD,
                "prefix_padding_ms": VAD_PREFIX_PADDING_MS,
                "silence_duration_ms": VAD_SILENCE_DURATION_MS,
            },
        }

    async def _post_session(self, payload: dict) -> httpx.Response:
        try:
            return await self.client.post(
                f"{self._base_url}/realtime/sessions",
                json=payload,
                headers=self._auth_headers(),
            )
        except httpx.HTTPError as e:
            BROKER_FAILURES.labels(operation="credential").inc()
            logger.error(f"Speech service unreachable: {type(e).__name__}: {e}")
            raise BrokerUnavailableError("Voice service unavailable") from e

    @staticmethod
    def _is_voice_rejection(response: httpx.Response) -> bool:
        if not 400 <= response.status_code < 500:
            return False
        body = response.text
        if "Invalid value" in body:
            return True
        try:
            payload = response.json()
        except ValueError:
            return False
        error = payload.get("error") if isinstance(payload, dict) else None
        return isinstance(error, dict) and error.get("param") == "voice"

    async def request_credential(
        self, instructions: str, voice: str, language_code: str
    ) -> CredentialGrant:
        """Create a speech session and return its ephemeral credential.

        A rejected voice is retried once with the catalog default.

        Raises:
            BrokerUnavailableError: On any upstream failure
        """
        logger.debug(f"Requesting speech session: {preview(instructions)}")
        response = await self._post_session(self._session_payload(instructions, voice, language_code))

        default_voice = self._catalog.default_voice
        if (
            not response.is_success
            and voice != default_voice
            and self._is_voice_rejection(response)
        ):
            VOICE_FALLBACK_RETRIES.inc()
            logger.warning(f"Voice '{voice}' rejected upstream, retrying with '{default_voice}'")
            voice = default_voice
            response = await self._post_session(
                self._session_payload(instructions, voice, language_code)
            )

        if not response.is_success:
            BROKER_FAILURES.labels(operation="credential").inc()
            logger.error(
                f"Speech session request failed: {response.status_code} "
                f"{response.text[:MAX_LOGGED_BODY]}"
            )
            raise BrokerUnavailableError("Voice service unavailable")

        try:
            data = response.json()
            secret = data["client_secret"]
            grant = CredentialGrant(
                external_session_id=data.get("id"),
                credential=secret["value"],
                expires_at_ms=int(secret["expires_at"]) * 1000,
                voice=voice,
            )
        except (ValueError, KeyError, TypeError) as e:
            BROKER_FAILURES.labels(operation="credential").inc()
            logger.error(f"Unexpected speech session response shape: {e}")
            raise BrokerUnavailableError("Voice service unavailable") from e

        logger.info(
            f"Speech session created: {grant.external_session_id} "
            f"(voice={voice}, language={language_code})"
        )
        return grant

    # =========================================================================
    # Signaling
    # =========================================================================

    async def exchange_signaling(self, offer_sdp: str, credential: str) -> str:
        """Forward an SDP offer with the ephemeral credential; return the answer.

        Raises:
            InvalidRequestError: Empty offer or credential
            SignalingExchangeError: Upstream unreachable or non-2xx
        """
        if not offer_sdp or not offer_sdp.strip():
            raise InvalidRequestError("SDP offer is required")
        if not credential:
            raise InvalidRequestError("Ephemeral credential is required")

        try:
            response = await self.client.post(
                self.signaling_url,
                content=offer_sdp.encode("utf-8"),
                headers={
                    "Authorization": f"Bearer {credential}",
                    "Content-Type": "application/sdp",
                },
            )
        except httpx.HTTPError as e:
            BROKER_FAILURES.labels(operation="signaling").inc()
            logger.error(f"Signaling exchange unreachable: {type(e).__name__}: {e}")
            raise SignalingExchangeError("SDP exchange failed") from e

        if not response.is_success:
            BROKER_FAILURES.labels(operation="signaling").inc()
            logger.error(
                f"Signaling exchange rejected: {response.status_code} "
                f"{response.text[:MAX_LOGGED_BODY]}"
            )
            raise SignalingExchangeError("SDP exchange failed")

        return response.text

    async def close(self) -> None:
        """Close the client connection."""
        if self._client:
            await self._client.aclose()
            self._client = None
