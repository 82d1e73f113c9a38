"""Voice session lifecycle.

State machine::

    active  -> paused | ended | abandoned
    paused  -> active | ended | abandoned
    error   -> ended
    ended, abandoned: terminal

A user holds at most one active or paused session. Starting a new one
abandons the previous session in a single UPDATE.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import Settings, get_settings
from src.core.collaborators import (
    CoachCatalog,
    CoachProfile,
    SqlCoachCatalog,
    SqlSubscriptionGate,
    SqlUserProfileStore,
    SubscriptionGate,
    UserProfileStore,
)
from src.core.continuity import ContinuityComposer
from src.core.exceptions import (
    BrokerUnavailableError,
    InvalidRequestError,
    InvalidSessionStateError,
    SessionLimitExceededError,
    SessionNotFoundError,
    SessionStartConflictError,
)
from src.core.transcript_sync import (
    MergeResult,
    SpeakerDescriptor,
    TranscriptSynchronizer,
    UtteranceInput,
)
from src.core.validation import require_id, require_user
from src.db.models import (
    LIVE_STATUSES,
    TERMINAL_STATUSES,
    SessionStatus,
    SessionType,
    SpeakerRole,
    Transcript,
    TranscriptSpeaker,
    TranscriptUtterance,
    VoiceSession,
)
from src.db.repositories import AsyncTranscriptRepository, AsyncVoiceSessionRepository
from src.logging_config import get_logger
from src.observability.metrics import record_session_ended, record_session_transition
from src.prompts.session_instructions import build_session_instructions

if TYPE_CHECKING:
    from src.services.realtime.broker import VoiceChannelBroker

logger: Any = get_logger(__name__)

TITLE_TOPIC_CHARS = 40
USER_SPEAKER_ID = "user"
COACH_SPEAKER_ID = "coach"
HISTORY_STATUSES = (SessionStatus.ended, SessionStatus.abandoned)
ENDABLE_STATUSES = (SessionStatus.active, SessionStatus.paused, SessionStatus.error)


# =============================================================================
# Results
# =============================================================================


@dataclass
class SessionGrant:
    """What a client needs to connect to the speech service."""

    session_id: str
    credential: str
    credential_expiry_ms: int
    signaling_url: str
    coach: dict[str, Any]
    speakers: list[SpeakerDescriptor]


@dataclass
class SessionRecord:
    """A session plus the coach summary shown alongside it."""

    session: VoiceSession
    coach: dict[str, Any] | None = None


@dataclass
class SessionDetail(SessionRecord):
    transcript: Transcript | None = None
    speakers: list[TranscriptSpeaker] = field(default_factory=list)
    utterances: list[TranscriptUtterance] = field(default_factory=list)


@dataclass
class SessionPage:
    items: list[SessionRecord]
    total: int
    limit: int
    offset: int


def build_title(coach_name: str, first_user_utterance: str | None) -> str:
    if not first_user_utterance or not first_user_utterance.strip():
        return f"Session with {coach_name}"
    content = first_user_utterance.strip()
    topic = content[:TITLE_TOPIC_CHARS]
    if len(content) > TITLE_TOPIC_CHARS:
        topic += "..."
    return f"{coach_name}: {topic}"


# =============================================================================
# Manager
# =============================================================================


class SessionLifecycleManager:
    """Owns VoiceSession state transitions for one request.

    Args:
        session: Request-scoped database session
        broker: Real-time speech broker
        catalog: Coach lookup; SQL-backed by default
        profiles: User profile lookup; SQL-backed by default
        gate: Subscription check; SQL-backed free-tier quota by default
        settings: Used for the default gate's quota
    """

    def __init__(
        self,
        session: AsyncSession,
        broker: VoiceChannelBroker,
        *,
        catalog: CoachCatalog | None = None,
        profiles: UserProfileStore | None = None,
        gate: SubscriptionGate | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.db = session
        self.broker = broker
        self.catalog = catalog or SqlCoachCatalog(session)
        self.profiles = profiles or SqlUserProfileStore(session)
        self.gate = gate or SqlSubscriptionGate(
            session, free_tier_limit=settings.free_tier_session_limit
        )
        self.sessions = AsyncVoiceSessionRepository(session)
        self.transcripts = AsyncTranscriptRepository(session)
        self.synchronizer = TranscriptSynchronizer(session)
        self.continuity = ContinuityComposer(session)

    # -------------------------------------------------------------------------
    # Start / resume
    # -------------------------------------------------------------------------

    async def start(self, user_id: str, coach_id: str) -> SessionGrant:
        """Open a new session and negotiate its credential.

        The session and its transcript are committed before the broker is
        called. If the broker fails, the session stays active without a
        credential and the raised BrokerUnavailableError carries its id so
        the client can resume it.

        Raises:
            InvalidRequestError: Malformed coach id
            CoachNotFoundError: Unknown or inaccessible coach
            SessionLimitExceededError: Subscription gate refused
            SessionStartConflictError: A concurrent start for the user won
            BrokerUnavailableError: Credential negotiation failed
        """
        user_id = require_user(user_id)
        coach_id = require_id(coach_id, "coach id")

        coach = await self.catalog.get_accessible_coach(coach_id, user_id)
        profile = await self.profiles.get(user_id)

        if not coach.is_onboarding and not await self.gate.can_start_session(user_id):
            logger.info(f"Session limit reached for user {user_id}")
            raise SessionLimitExceededError("Session limit reached for your plan")

        abandoned = await self.sessions.abandon_live_sessions(user_id)
        if abandoned:
            logger.info(f"Abandoned {abandoned} live session(s) for user {user_id}")

        history = "" if coach.is_onboarding else await self.continuity.build_history(
            user_id, coach.id
        )
        instructions = build_session_instructions(coach, profile, history)
        voice = self.broker.resolve_voice(coach.tone, coach.avatar_gender)
        language_code = self.broker.resolve_language_code(profile.preferred_language)

        speakers = [
            SpeakerDescriptor(id=USER_SPEAKER_ID, name=profile.display_name, role=SpeakerRole.user),
            SpeakerDescriptor(id=COACH_SPEAKER_ID, name=coach.name, role=SpeakerRole.coach),
        ]
        try:
            voice_session = await self.sessions.create(
                VoiceSession(
                    user_id=user_id,
                    coach_id=coach.id,
                    session_type=(
                        SessionType.onboarding if coach.is_onboarding else SessionType.regular
                    ),
                    status=SessionStatus.active,
                )
            )
            await self.synchronizer.create_transcript(
                voice_session.id,
                user_id=user_id,
                coach_id=coach.id,
                language=language_code,
                speakers=speakers,
            )
            await self.db.commit()
        except IntegrityError as e:
            # A concurrent start for this user holds the live-session slot
            await self.db.rollback()
            logger.warning(f"Concurrent session start rejected for user {user_id}")
            raise SessionStartConflictError(
                "Another session is being started, please retry"
            ) from e
        record_session_transition("abandoned", abandoned)
        record_session_transition("started")
        logger.info(f"Voice session started: {voice_session.id} (user={user_id}, coach={coach.id})")

        try:
            grant = await self.broker.request_credential(instructions, voice, language_code)
        except BrokerUnavailableError as e:
            e.session_id = voice_session.id
            logger.warning(f"Session {voice_session.id} left active without a credential")
            raise

        await self.sessions.set_fields(
            voice_session.id, external_session_id=grant.external_session_id
        )
        await self.db.commit()

        return SessionGrant(
            session_id=voice_session.id,
            credential=grant.credential,
            credential_expiry_ms=grant.expires_at_ms,
            signaling_url=self.broker.signaling_url,
            coach={"id": coach.id, "name": coach.name, "avatar": coach.avatar},
            speakers=speakers,
        )

    async def resume(self, session_id: str, user_id: str) -> SessionGrant:
        """Re-negotiate a credential for an active or paused session."""
        voice_session = await self._get_owned(session_id, user_id)
        if voice_session.status not in LIVE_STATUSES:
            raise InvalidSessionStateError(
                f"Cannot resume a session that is {voice_session.status.value}"
            )

        coach = await self.catalog.get_accessible_coach(voice_session.coach_id, user_id)
        profile = await self.profiles.get(user_id)

        history = (
            ""
            if voice_session.session_type == SessionType.onboarding
            else await self.continuity.build_history(user_id, coach.id)
        )
        instructions = build_session_instructions(coach, profile, history)
        voice = self.broker.resolve_voice(coach.tone, coach.avatar_gender)
        language_code = self.broker.resolve_language_code(profile.preferred_language)

        grant = await self.broker.request_credential(instructions, voice, language_code)

        resumed = await self.sessions.transition(
            voice_session.id,
            user_id,
            from_statuses=LIVE_STATUSES,
            status=SessionStatus.active,
            external_session_id=grant.external_session_id,
        )
        if not resumed:
            raise InvalidSessionStateError("Session is no longer resumable")
        await self.db.commit()
        record_session_transition("resumed")
        logger.info(f"Voice session resumed: {voice_session.id} by user {user_id}")

        speakers = await self._speakers_for(voice_session.id, profile.display_name, coach.name)
        return SessionGrant(
            session_id=voice_session.id,
            credential=grant.credential,
            credential_expiry_ms=grant.expires_at_ms,
            signaling_url=self.broker.signaling_url,
            coach={"id": coach.id, "name": coach.name, "avatar": coach.avatar},
            speakers=speakers,
        )

    # -------------------------------------------------------------------------
    # Pause / end
    # -------------------------------------------------------------------------

    async def pause(self, session_id: str, user_id: str) -> SessionRecord:
        voice_session = await self._get_owned(session_id, user_id)
        paused = await self.sessions.transition(
            voice_session.id,
            user_id,
            from_statuses=(SessionStatus.active,),
            status=SessionStatus.paused,
        )
        if not paused:
            raise InvalidSessionStateError(
                f"Cannot pause a session that is {voice_session.status.value}"
            )
        await self.db.commit()
        record_session_transition("paused")
        logger.info(f"Voice session paused: {voice_session.id} by user {user_id}")
        return await self._record(voice_session.id)

    async def end(
        self,
        session_id: str,
        user_id: str,
        duration_ms: int | None,
        final_utterances: list[UtteranceInput] | None = None,
        speakers: list[SpeakerDescriptor] | None = None,
    ) -> SessionRecord:
        """End a session, merging any final utterances first.

        Raises:
            InvalidRequestError: Missing or negative duration
            SessionNotFoundError: Unknown or foreign session
            InvalidSessionStateError: Session already ended or abandoned
        """
        if duration_ms is None or isinstance(duration_ms, bool) or duration_ms < 0:
            raise InvalidRequestError("durationMs is required")

        voice_session = await self._get_owned(session_id, user_id)
        if voice_session.status in TERMINAL_STATUSES:
            raise InvalidSessionStateError(
                f"Cannot end a session that is {voice_session.status.value}"
            )

        merged: MergeResult | None = None
        if final_utterances:
            merged = await self.synchronizer.merge(
                voice_session.id,
                user_id,
                speakers or [],
                final_utterances,
                commit=False,
            )

        ended = await self.sessions.transition(
            voice_session.id,
            user_id,
            from_statuses=ENDABLE_STATUSES,
            status=SessionStatus.ended,
            ended_at=datetime.now(UTC),
            duration_ms=duration_ms,
        )
        if not ended:
            raise InvalidSessionStateError("Session is no longer active")

        if not voice_session.title:
            title = await self._derive_title(voice_session)
            await self.sessions.set_fields(voice_session.id, title=title)

        await self.db.commit()
        record_session_ended(duration_ms)
        logger.info(
            f"Voice session ended: {voice_session.id} by user {user_id}, "
            f"duration: {duration_ms}ms"
            + (f", final utterances saved: {merged.saved}" if merged else "")
        )
        return await self._record(voice_session.id)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_session(self, session_id: str, user_id: str) -> SessionDetail:
        """Session with its coach summary and full transcript."""
        voice_session = await self._get_owned(session_id, user_id)
        coach = await self.catalog.get_coach(voice_session.coach_id)
        detail = SessionDetail(
            session=voice_session,
            coach=coach.summary() if coach else None,
        )
        transcript = await self.transcripts.get_for_session(voice_session.id)
        if transcript is not None:
            detail.transcript = transcript
            detail.speakers = await self.transcripts.list_speakers(transcript.id)
            detail.utterances = await self.transcripts.list_utterances(transcript.id)
        return detail

    async def history(
        self,
        user_id: str,
        *,
        coach_id: str | None = None,
        status: SessionStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> SessionPage:
        """Past sessions, newest first. Defaults to ended and abandoned."""
        user_id = require_user(user_id)
        if coach_id:
            coach_id = require_id(coach_id, "coach id")
        limit = max(1, min(limit, 100))
        offset = max(0, offset)

        statuses = (status,) if status else HISTORY_STATUSES
        rows, total = await self.sessions.list_history(
            user_id, statuses=statuses, coach_id=coach_id, limit=limit, offset=offset
        )

        coaches: dict[str, CoachProfile | None] = {}
        items = []
        for row in rows:
            if row.coach_id not in coaches:
                coaches[row.coach_id] = await self.catalog.get_coach(row.coach_id)
            coach = coaches[row.coach_id]
            items.append(SessionRecord(session=row, coach=coach.summary() if coach else None))
        return SessionPage(items=items, total=total, limit=limit, offset=offset)

    async def get_active(self, user_id: str) -> SessionRecord | None:
        voice_session = await self.sessions.get_live(require_user(user_id))
        if voice_session is None:
            return None
        coach = await self.catalog.get_coach(voice_session.coach_id)
        return SessionRecord(session=voice_session, coach=coach.summary() if coach else None)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _get_owned(self, session_id: str, user_id: str) -> VoiceSession:
        session_id = require_id(session_id, "session id")
        user_id = require_user(user_id)
        voice_session = await self.sessions.get_owned(session_id, user_id)
        if voice_session is None:
            raise SessionNotFoundError("Session not found")
        return voice_session

    async def _record(self, session_id: str) -> SessionRecord:
        voice_session = await self.sessions.get_by_id(session_id)
        if voice_session is None:
            raise SessionNotFoundError("Session not found")
        coach = await self.catalog.get_coach(voice_session.coach_id)
        return SessionRecord(session=voice_session, coach=coach.summary() if coach else None)

    async def _derive_title(self, voice_session: VoiceSession) -> str:
        coach = await self.catalog.get_coach(voice_session.coach_id)
        coach_name = coach.name if coach else "Coach"

        first_user_utterance: str | None = None
        transcript = await self.transcripts.get_for_session(voice_session.id)
        if transcript is not None:
            speaker_ids = await self.transcripts.user_speaker_ids(transcript.id) or [
                USER_SPEAKER_ID
            ]
            first = await self.transcripts.list_utterances(
                transcript.id, speaker_ids=speaker_ids, limit=1
            )
            if first:
                first_user_utterance = first[0].content
        return build_title(coach_name, first_user_utterance)

    async def _speakers_for(
        self, session_id: str, user_name: str, coach_name: str
    ) -> list[SpeakerDescriptor]:
        transcript = await self.transcripts.get_for_session(session_id)
        if transcript is not None:
            stored = await self.transcripts.list_speakers(transcript.id)
            if stored:
                return [
                    SpeakerDescriptor(id=s.speaker_id, name=s.name, role=SpeakerRole(s.role))
                    for s in stored
                ]
        return [
            SpeakerDescriptor(id=USER_SPEAKER_ID, name=user_name, role=SpeakerRole.user),
            SpeakerDescriptor(id=COACH_SPEAKER_ID, name=coach_name, role=SpeakerRole.coach),
        ]
