"""Voice and language lookup tables for the real-time speech service.

``VoiceCatalog`` is immutable and handed to the broker at construction;
``DEFAULT_VOICE_CATALOG`` holds the production tables.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType


class ResolutionLevel(str, Enum):
    """Which lookup produced a voice."""

    gender_tone = "gender_tone"
    tone = "tone"
    default = "default"


def _freeze(table: Mapping) -> Mapping:
    return MappingProxyType(
        {
            key: _freeze(value) if isinstance(value, Mapping) else value
            for key, value in table.items()
        }
    )


@dataclass(frozen=True)
class VoiceCatalog:
    """Immutable voice/language configuration.

    Attributes:
        gender_tone_voices: avatar gender -> tone -> voice id
        tone_voices: tone -> voice id, used when gender is unknown
        default_voice: last-resort voice, also the retry voice
        valid_voices: voice ids the upstream accepts
        language_codes: lowercase language name -> ISO-639-1 code
        fallback_language: code used for unknown language names
    """

    gender_tone_voices: Mapping[str, Mapping[str, str]] = field(default_factory=dict)
    tone_voices: Mapping[str, str] = field(default_factory=dict)
    default_voice: str = "alloy"
    valid_voices: frozenset[str] = frozenset()
    language_codes: Mapping[str, str] = field(default_factory=dict)
    fallback_language: str = "en"

    def __post_init__(self) -> None:
        object.__setattr__(self, "gender_tone_voices", _freeze(self.gender_tone_voices))
        object.__setattr__(self, "tone_voices", _freeze(self.tone_voices))
        object.__setattr__(
            self,
            "language_codes",
            _freeze({name.lower(): code for name, code in self.language_codes.items()}),
        )
        object.__setattr__(self, "valid_voices", frozenset(self.valid_voices))

    def is_valid(self, voice: str) -> bool:
        # An empty allow-list accepts anything
        return not self.valid_voices or voice in self.valid_voices


DEFAULT_VOICE_CATALOG = VoiceCatalog(
    gender_tone_voices={
        "female": {
            "professional": "shimmer",
            "warm": "shimmer",
            "direct": "coral",
            "casual": "coral",
            "challenging": "coral",
        },
        "male": {
            "professional": "alloy",
            "warm": "echo",
            "direct": "echo",
            "casual": "coral",
            "challenging": "ash",
        },
    },
    tone_voices={
        "professional": "alloy",
        "warm": "shimmer",
        "direct": "echo",
        "casual": "coral",
        "challenging": "ash",
    },
    default_voice="alloy",
    valid_voices=frozenset(
        {"alloy", "ash", "ballad", "coral", "echo", "sage", "shimmer", "verse", "marin", "cedar"}
    ),
    language_codes={
        "English": "en",
        "Spanish": "es",
        "French": "fr",
        "German": "de",
        "Italian": "it",
        "Portuguese": "pt",
        "Japanese": "ja",
        "Korean": "ko",
    },
    fallback_language="en",
)
