"""Continuity memory: a bounded digest of past sessions with a coach."""

from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models import VoiceSession
from src.db.repositories import AsyncTranscriptRepository, AsyncVoiceSessionRepository
from src.logging_config import get_logger

logger: Any = get_logger(__name__)

MAX_HISTORY_SESSIONS = 5
MAX_QUOTED_UTTERANCES = 3
MAX_HISTORY_CHARS = 1500
TRUNCATION_MARKER = "\n[...earlier sessions truncated]"
HISTORY_HEADING = "# Previous Sessions"


class ContinuityComposer:
    """Builds the "previous sessions" block injected into instructions."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        max_sessions: int = MAX_HISTORY_SESSIONS,
        max_chars: int = MAX_HISTORY_CHARS,
    ):
        self.sessions = AsyncVoiceSessionRepository(session)
        self.transcripts = AsyncTranscriptRepository(session)
        self.max_sessions = max_sessions
        self.max_chars = max_chars

    async def build_history(self, user_id: str, coach_id: str) -> str:
        """Markdown digest of recent ended sessions, newest first.

        Each session gets a dated heading followed by its summary, or by the
        first few user utterances when no summary was stored. The result is
        cut at ``max_chars`` with a truncation marker. Empty when the user
        has no ended session with this coach.
        """
        recent = await self.sessions.list_recent_ended(
            user_id, coach_id, limit=self.max_sessions
        )
        if not recent:
            return ""

        blocks = [HISTORY_HEADING]
        for past in recent:
            body = await self._describe(past)
            if body:
                blocks.append(f"## {_session_heading(past)}\n{body}")

        if len(blocks) == 1:
            return ""

        history = "\n\n".join(blocks)
        if len(history) > self.max_chars:
            logger.debug(
                f"Continuity for user {user_id} truncated from {len(history)} chars"
            )
            history = history[: self.max_chars] + TRUNCATION_MARKER
        return history

    async def _describe(self, past: VoiceSession) -> str:
        if past.summary:
            return past.summary.strip()

        transcript = await self.transcripts.get_for_session(past.id)
        if transcript is None:
            return ""
        speaker_ids = await self.transcripts.user_speaker_ids(transcript.id) or ["user"]
        utterances = await self.transcripts.list_utterances(
            transcript.id,
            speaker_ids=speaker_ids,
            limit=MAX_QUOTED_UTTERANCES,
        )
        return "\n".join(f'- "{u.content.strip()}"' for u in utterances if u.content.strip())


def _session_heading(past: VoiceSession) -> str:
    when = past.ended_at or past.started_at
    label = f"Session on {when:%B} {when.day}, {when.year}"
    if past.title:
        label += f": {past.title}"
    return label
