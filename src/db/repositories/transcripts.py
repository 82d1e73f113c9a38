"""Transcript repository.

Writes go through INSERT ... ON CONFLICT DO NOTHING so that the unique
constraints on (transcript_id, speaker_id) and (transcript_id, entry_id)
decide what lands, even when several merges for one session run at once.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models import (
    SpeakerRole,
    Transcript,
    TranscriptSpeaker,
    TranscriptUtterance,
)


def _insert_for(session: AsyncSession, table: Any):
    """Dialect-specific INSERT that supports ON CONFLICT."""
    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    elif dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        raise NotImplementedError(f"Conflict-free inserts not supported on {dialect}")
    return insert(table)


class AsyncTranscriptRepository:
    """Async repository for transcripts, speakers and utterances."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_for_session(self, session_id: str) -> Transcript | None:
        query = (
            select(Transcript)
            .where(Transcript.session_id == session_id)  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalars().first()

    async def ensure_for_session(
        self,
        session_id: str,
        *,
        user_id: str,
        coach_id: str,
        language: str = "en",
    ) -> Transcript | None:
        """Return the session's transcript, creating it if missing; None if unreadable."""
        now = datetime.now(UTC)
        stmt = (
            _insert_for(self.session, Transcript.__table__)
            .values(
                id=str(uuid4()),
                session_id=session_id,
                user_id=user_id,
                coach_id=coach_id,
                language=language,
                total_utterances=0,
                created_at=now,
                updated_at=now,
            )
            .on_conflict_do_nothing(index_elements=["session_id"])
        )
        await self.session.execute(stmt)
        return await self.get_for_session(session_id)

    async def add_speakers(
        self, transcript_id: str, speakers: Sequence[dict[str, Any]]
    ) -> int:
        """Insert speakers whose id is not yet present. Returns rows inserted."""
        if not speakers:
            return 0
        rows = [{"transcript_id": transcript_id, **speaker} for speaker in speakers]
        stmt = (
            _insert_for(self.session, TranscriptSpeaker.__table__)
            .values(rows)
            .on_conflict_do_nothing(index_elements=["transcript_id", "speaker_id"])
            .returning(TranscriptSpeaker.__table__.c.speaker_id)
        )
        result = await self.session.execute(stmt)
        return len(result.all())

    async def existing_entry_ids(self, transcript_id: str, entry_ids: Sequence[str]) -> set[str]:
        if not entry_ids:
            return set()
        query = select(TranscriptUtterance.entry_id).where(
            TranscriptUtterance.transcript_id == transcript_id,  # type: ignore[arg-type]
            TranscriptUtterance.entry_id.in_(list(entry_ids)),  # type: ignore[attr-defined]
        )
        result = await self.session.execute(query)
        return set(result.scalars().all())

    async def append_utterances(
        self, transcript_id: str, utterances: Sequence[dict[str, Any]]
    ) -> list[str]:
        """Append utterances; rows whose entry id already exists are skipped.

        Returns the entry ids that were actually written.
        """
        if not utterances:
            return []
        rows = [{"transcript_id": transcript_id, **utterance} for utterance in utterances]
        stmt = (
            _insert_for(self.session, TranscriptUtterance.__table__)
            .values(rows)
            .on_conflict_do_nothing(index_elements=["transcript_id", "entry_id"])
            .returning(TranscriptUtterance.__table__.c.entry_id)
        )
        result = await self.session.execute(stmt)
        return [row[0] for row in result.all()]

    async def refresh_counters(self, transcript_id: str) -> None:
        """Recount utterances and stamp the sync time in one UPDATE."""
        now = datetime.now(UTC)
        count_query = (
            select(func.count())
            .select_from(TranscriptUtterance)
            .where(TranscriptUtterance.transcript_id == transcript_id)  # type: ignore[arg-type]
            .scalar_subquery()
        )
        stmt = (
            update(Transcript)
            .where(Transcript.id == transcript_id)  # type: ignore[arg-type]
            .values(total_utterances=count_query, last_synced_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def list_speakers(self, transcript_id: str) -> list[TranscriptSpeaker]:
        query = (
            select(TranscriptSpeaker)
            .where(TranscriptSpeaker.transcript_id == transcript_id)  # type: ignore[arg-type]
            .order_by(TranscriptSpeaker.id)  # type: ignore[arg-type]
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_utterances(
        self,
        transcript_id: str,
        *,
        speaker_ids: Sequence[str] | None = None,
        limit: int | None = None,
    ) -> list[TranscriptUtterance]:
        """Utterances in arrival order, optionally filtered by speaker."""
        query = select(TranscriptUtterance).where(
            TranscriptUtterance.transcript_id == transcript_id  # type: ignore[arg-type]
        )
        if speaker_ids is not None:
            query = query.where(
                TranscriptUtterance.speaker_id.in_(list(speaker_ids))  # type: ignore[attr-defined]
            )
        query = query.order_by(TranscriptUtterance.id)  # type: ignore[arg-type]
        if limit is not None:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def user_speaker_ids(self, transcript_id: str) -> list[str]:
        query = select(TranscriptSpeaker.speaker_id).where(
            TranscriptSpeaker.transcript_id == transcript_id,  # type: ignore[arg-type]
            TranscriptSpeaker.role == SpeakerRole.user,  # type: ignore[arg-type]
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())
