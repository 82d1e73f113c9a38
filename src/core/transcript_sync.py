"""Transcript synchronization.

Clients upload utterances in repeated, possibly overlapping batches. Each
utterance carries a client-generated entry id, which is the only
deduplication key: re-sending an entry id is a no-op, whatever its content.
Stored order is arrival order.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import InvalidRequestError, SessionNotFoundError
from src.core.validation import require_id, require_user
from src.db.models import SpeakerRole, Transcript
from src.db.repositories import AsyncTranscriptRepository, AsyncVoiceSessionRepository
from src.logging_config import get_logger
from src.observability.metrics import record_merge

logger: Any = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class SpeakerDescriptor:
    """A transcript participant, keyed by a short id such as "user"."""

    id: str
    name: str
    role: SpeakerRole


@dataclass(frozen=True, slots=True)
class UtteranceInput:
    """One utterance as uploaded by the client."""

    entry_id: str
    speaker_id: str
    content: str
    timestamp_ms: int
    start_offset_ms: int = 0
    end_offset_ms: int = 0
    confidence: float | None = None


@dataclass(frozen=True, slots=True)
class MergeResult:
    saved: int
    duplicates: int


def _speaker_row(speaker: SpeakerDescriptor) -> dict[str, Any]:
    if not speaker.id:
        raise InvalidRequestError("Speaker id is required")
    return {
        "speaker_id": speaker.id,
        "name": (speaker.name or speaker.id)[:100],
        "role": SpeakerRole(speaker.role),
    }


def _utterance_row(utterance: UtteranceInput) -> dict[str, Any]:
    if not utterance.entry_id:
        raise InvalidRequestError("Utterance entryId is required")
    if not utterance.speaker_id:
        raise InvalidRequestError("Utterance speakerId is required")
    try:
        timestamp = datetime.fromtimestamp(utterance.timestamp_ms / 1000, UTC)
    except (OverflowError, OSError, ValueError) as e:
        raise InvalidRequestError(f"Invalid timestamp for {utterance.entry_id}") from e
    return {
        "entry_id": utterance.entry_id,
        "speaker_id": utterance.speaker_id,
        "content": utterance.content,
        "start_offset_ms": max(utterance.start_offset_ms, 0),
        "end_offset_ms": max(utterance.end_offset_ms, 0),
        "timestamp": timestamp,
        "confidence": utterance.confidence,
    }


class TranscriptSynchronizer:
    """Merges client utterance batches into a session's transcript exactly once."""

    def __init__(self, session: AsyncSession):
        self.db = session
        self.sessions = AsyncVoiceSessionRepository(session)
        self.transcripts = AsyncTranscriptRepository(session)

    async def create_transcript(
        self,
        session_id: str,
        *,
        user_id: str,
        coach_id: str,
        language: str,
        speakers: Sequence[SpeakerDescriptor],
    ) -> Transcript:
        """Create the (empty) transcript for a new session. Caller commits."""
        transcript = await self.transcripts.ensure_for_session(
            session_id, user_id=user_id, coach_id=coach_id, language=language
        )
        if transcript is None:
            raise SessionNotFoundError("Session not found")
        await self.transcripts.add_speakers(transcript.id, [_speaker_row(s) for s in speakers])
        return transcript

    async def merge(
        self,
        session_id: str,
        user_id: str,
        speakers: Sequence[SpeakerDescriptor],
        utterances: Sequence[UtteranceInput],
        *,
        commit: bool = True,
    ) -> MergeResult:
        """Merge a batch of utterances.

        New speakers are added (existing ids keep their first name). Entry
        ids already stored, or repeated earlier in the same batch, are
        counted as duplicates and dropped.

        Raises:
            InvalidRequestError: Malformed id or utterance
            SessionNotFoundError: Unknown session or owned by someone else
        """
        session_id = require_id(session_id, "session id")
        user_id = require_user(user_id)

        voice_session = await self.sessions.get_owned(session_id, user_id)
        if voice_session is None:
            raise SessionNotFoundError("Session not found")

        if not utterances:
            return MergeResult(saved=0, duplicates=0)

        speaker_rows = [_speaker_row(s) for s in speakers]
        rows = [_utterance_row(u) for u in utterances]

        # Within one batch the first occurrence of an entry id wins
        unique_rows: dict[str, dict[str, Any]] = {}
        for row in rows:
            unique_rows.setdefault(row["entry_id"], row)

        transcript = await self.transcripts.ensure_for_session(
            session_id,
            user_id=voice_session.user_id,
            coach_id=voice_session.coach_id,
        )
        if transcript is None:
            raise SessionNotFoundError("Session not found")
        existing = await self.transcripts.existing_entry_ids(
            transcript.id, list(unique_rows.keys())
        )
        new_rows = [row for entry_id, row in unique_rows.items() if entry_id not in existing]

        await self.transcripts.add_speakers(transcript.id, speaker_rows)
        # Entries written by a concurrent merge since the check are skipped here too
        written = await self.transcripts.append_utterances(transcript.id, new_rows)
        await self.transcripts.refresh_counters(transcript.id)
        if commit:
            await self.db.commit()

        result = MergeResult(saved=len(written), duplicates=len(rows) - len(written))
        record_merge(result.saved, result.duplicates)
        logger.info(
            f"Merged transcript for session {session_id}: "
            f"{result.saved} saved, {result.duplicates} duplicates"
        )
        return result
