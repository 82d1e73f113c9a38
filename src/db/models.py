"""SQLModel database models.

Tables for the voice-session core:
- voice_sessions / transcripts / transcript_speakers / transcript_utterances
- session_evaluations (collections stored as JSON text)
- coaches / coach_shares / user_profiles backing the default collaborators

Uniqueness that the core depends on lives in the schema itself:
one transcript per session, one evaluation per session, and one
utterance per (transcript, client entry id).
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import Index, UniqueConstraint, text
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(UTC)


def isoformat_utc(value: datetime) -> str:
    """ISO-8601 with an explicit offset; SQLite returns naive UTC values."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.isoformat()


# =============================================================================
# Enums (shared across models)
# =============================================================================


class SessionStatus(str, Enum):
    """Lifecycle state of a voice session."""

    active = "active"
    paused = "paused"
    ended = "ended"
    error = "error"
    abandoned = "abandoned"


class SessionType(str, Enum):
    """Kind of conversation held in a session."""

    regular = "regular"
    onboarding = "onboarding"


class SpeakerRole(str, Enum):
    """Who a transcript speaker is."""

    user = "user"
    coach = "coach"


class EvaluationStatus(str, Enum):
    """Status of a post-session evaluation."""

    pending = "pending"
    generating = "generating"
    completed = "completed"
    failed = "failed"


class CoachTone(str, Enum):
    """Conversational tone of a coach persona."""

    professional = "professional"
    warm = "warm"
    direct = "direct"
    casual = "casual"
    challenging = "challenging"


class ShareStatus(str, Enum):
    """State of a coach share invitation."""

    pending = "pending"
    accepted = "accepted"
    declined = "declined"
    revoked = "revoked"


class SharePermission(str, Enum):
    """What a share grants, in increasing order."""

    view = "view"
    use = "use"
    edit = "edit"


TERMINAL_STATUSES = frozenset({SessionStatus.ended, SessionStatus.abandoned})
LIVE_STATUSES = frozenset({SessionStatus.active, SessionStatus.paused})
_LIVE_STATUS_CLAUSE = "status IN ('active', 'paused')"


# =============================================================================
# Voice sessions and transcripts
# =============================================================================


class VoiceSession(SQLModel, table=True):
    """One conversational encounter between a user and a coach."""

    __tablename__ = "voice_sessions"
    __table_args__ = (
        # At most one active or paused session per user
        Index(
            "uq_voice_sessions_live_user",
            "user_id",
            unique=True,
            sqlite_where=text(_LIVE_STATUS_CLAUSE),
            postgresql_where=text(_LIVE_STATUS_CLAUSE),
        ),
    )

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
        description="Unique identifier",
    )
    user_id: str = Field(index=True, description="Owning user")
    coach_id: str = Field(index=True, description="Coach persona used")
    session_type: SessionType = Field(default=SessionType.regular)
    status: SessionStatus = Field(default=SessionStatus.active, index=True)
    external_session_id: str | None = Field(
        default=None, description="Session id issued by the speech service"
    )
    started_at: datetime = Field(default_factory=utcnow)
    ended_at: datetime | None = Field(default=None)
    duration_ms: int = Field(default=0, ge=0, description="Client-reported wall-clock length")
    title: str | None = Field(default=None, max_length=200)
    summary: str | None = Field(default=None, max_length=2000)
    created_at: datetime = Field(default_factory=utcnow, index=True)
    updated_at: datetime = Field(default_factory=utcnow)


class Transcript(SQLModel, table=True):
    """Append-only utterance log for a session (metadata row)."""

    __tablename__ = "transcripts"

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
    )
    session_id: str = Field(
        foreign_key="voice_sessions.id",
        sa_column_kwargs={"unique": True},
        index=True,
    )
    user_id: str = Field(index=True)
    coach_id: str = Field(index=True)
    language: str = Field(default="en", max_length=8, description="ISO-639-1 code")
    total_utterances: int = Field(default=0, ge=0)
    last_synced_at: datetime | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class TranscriptSpeaker(SQLModel, table=True):
    """Participant descriptor; first write wins for a given speaker id."""

    __tablename__ = "transcript_speakers"
    __table_args__ = (
        UniqueConstraint("transcript_id", "speaker_id", name="uq_transcript_speaker"),
    )

    id: int | None = Field(default=None, primary_key=True)
    transcript_id: str = Field(foreign_key="transcripts.id", index=True)
    speaker_id: str = Field(max_length=64)
    name: str = Field(max_length=100)
    role: SpeakerRole = Field(default=SpeakerRole.user)


class TranscriptUtterance(SQLModel, table=True):
    """One spoken turn. The integer id preserves arrival order."""

    __tablename__ = "transcript_utterances"
    __table_args__ = (
        UniqueConstraint("transcript_id", "entry_id", name="uq_transcript_entry"),
    )

    id: int | None = Field(default=None, primary_key=True)
    transcript_id: str = Field(foreign_key="transcripts.id", index=True)
    entry_id: str = Field(max_length=128, description="Client-generated dedup key")
    speaker_id: str = Field(max_length=64)
    content: str
    start_offset_ms: int = Field(default=0, ge=0)
    end_offset_ms: int = Field(default=0, ge=0)
    timestamp: datetime = Field(default_factory=utcnow)
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)


# =============================================================================
# Evaluations
# =============================================================================


class SessionEvaluation(SQLModel, table=True):
    """AI-derived evaluation of an ended session."""

    __tablename__ = "session_evaluations"

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
    )
    session_id: str = Field(
        foreign_key="voice_sessions.id",
        sa_column_kwargs={"unique": True},
        index=True,
    )
    user_id: str = Field(index=True)
    coach_id: str = Field(index=True)
    status: EvaluationStatus = Field(default=EvaluationStatus.pending, index=True)
    overall_summary: str | None = Field(default=None)
    insights_json: str | None = Field(default=None, description="JSON array of insights")
    commitments_json: str | None = Field(
        default=None, description="JSON array of action commitments"
    )
    scores_json: str | None = Field(
        default=None, description="JSON array of performance scores"
    )
    tips_json: str | None = Field(default=None, description="JSON array of tips")
    resources_json: str | None = Field(
        default=None, description="JSON array of resource recommendations"
    )
    model_used: str | None = Field(default=None, max_length=100)
    generation_time_ms: int | None = Field(default=None, ge=0)
    error_message: str | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def load_collection(self, name: str) -> list[dict[str, Any]]:
        """Decode one of the *_json collection columns."""
        raw = getattr(self, f"{name}_json")
        if not raw:
            return []
        return json.loads(raw)


# =============================================================================
# Collaborator tables (coach catalog, profiles)
# =============================================================================


class Coach(SQLModel, table=True):
    """Coach persona. owner_user_id is NULL for system coaches."""

    __tablename__ = "coaches"

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
    )
    name: str = Field(max_length=100)
    avatar: str | None = Field(default=None, max_length=500)
    avatar_gender: str | None = Field(default=None, max_length=16)
    specialty: str = Field(default="General", max_length=100)
    category: str = Field(default="custom", max_length=50)
    system_prompt: str = Field(default="")
    tone: CoachTone = Field(default=CoachTone.professional)
    coaching_style_json: str | None = Field(
        default=None, description="JSON array of style descriptors"
    )
    methodology: str | None = Field(default=None, max_length=200)
    language: str = Field(default="English", max_length=50)
    owner_user_id: str | None = Field(default=None, index=True)
    is_published: bool = Field(default=False, index=True)
    is_onboarding: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class CoachShare(SQLModel, table=True):
    """A user-owned coach shared with another user."""

    __tablename__ = "coach_shares"
    __table_args__ = (
        UniqueConstraint("coach_id", "shared_with_user_id", name="uq_coach_share"),
    )

    id: str = Field(
        default_factory=lambda: str(uuid4()),
        primary_key=True,
    )
    coach_id: str = Field(foreign_key="coaches.id", index=True)
    shared_with_user_id: str = Field(index=True)
    status: ShareStatus = Field(default=ShareStatus.pending)
    permission: SharePermission = Field(default=SharePermission.use)
    created_at: datetime = Field(default_factory=utcnow)


class UserProfile(SQLModel, table=True):
    """User context used to personalise sessions."""

    __tablename__ = "user_profiles"

    user_id: str = Field(primary_key=True)
    display_name: str = Field(default="User", max_length=100)
    personal_context: str | None = Field(default=None, max_length=4000)
    preferred_language: str = Field(default="English", max_length=50)
    primary_goals: str | None = Field(default=None, max_length=2000)
    challenges_json: str | None = Field(default=None, description="JSON array of strings")
    is_pro: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
