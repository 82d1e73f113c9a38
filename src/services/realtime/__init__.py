"""Real-time speech service broker (credentials and SDP signaling)."""

from src.services.realtime.broker import CredentialGrant, VoiceChannelBroker
from src.services.realtime.voices import (
    DEFAULT_VOICE_CATALOG,
    ResolutionLevel,
    VoiceCatalog,
)

__all__ = [
    "VoiceChannelBroker",
    "CredentialGrant",
    "VoiceCatalog",
    "ResolutionLevel",
    "DEFAULT_VOICE_CATALOG",
]
