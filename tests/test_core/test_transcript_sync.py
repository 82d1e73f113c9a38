"""Tests for transcript synchronization."""

from __future__ import annotations

from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from src.core.exceptions import InvalidRequestError, SessionNotFoundError
from src.core.transcript_sync import (
    MergeResult,
    SpeakerDescriptor,
    TranscriptSynchronizer,
    UtteranceInput,
)
from src.db.models import SessionStatus, SpeakerRole
from src.db.repositories import AsyncTranscriptRepository

USER_ID = "user-1"


def _utterance(entry_id: str, content: str = "hello", speaker_id: str = "user") -> UtteranceInput:
    return UtteranceInput(
        entry_id=entry_id,
        speaker_id=speaker_id,
        content=content,
        timestamp_ms=1_700_000_000_000,
        start_offset_ms=100,
        end_offset_ms=900,
        confidence=0.9,
    )


SPEAKERS = [
    SpeakerDescriptor(id="user", name="Sam", role=SpeakerRole.user),
    SpeakerDescriptor(id="coach", name="Maya", role=SpeakerRole.coach),
]


async def _stored(async_session, session_id: str) -> tuple[int, list[str]]:
    repo = AsyncTranscriptRepository(async_session)
    transcript = await repo.get_for_session(session_id)
    utterances = await repo.list_utterances(transcript.id)
    return transcript.total_utterances, [u.entry_id for u in utterances]


class TestMerge:
    """Tests for TranscriptSynchronizer.merge."""

    @pytest.mark.asyncio
    async def test_merge_saves_new_utterances(self, async_session, seed) -> None:
        coach = await seed["coach"](async_session)
        voice_session = await seed["session"](async_session, coach.id)
        sync = TranscriptSynchronizer(async_session)

        result = await sync.merge(
            voice_session.id, USER_ID, SPEAKERS, [_utterance("e1"), _utterance("e2")]
        )

        assert result == MergeResult(saved=2, duplicates=0)
        total, entry_ids = await _stored(async_session, voice_session.id)
        assert total == 2
        assert entry_ids == ["e1", "e2"]

    @pytest.mark.asyncio
    async def test_repeating_a_batch_is_a_no_op(self, async_session, seed) -> None:
        coach = await seed["coach"](async_session)
        voice_session = await seed["session"](async_session, coach.id)
        sync = TranscriptSynchronizer(async_session)
        batch = [_utterance("e1"), _utterance("e2")]

        await sync.merge(voice_session.id, USER_ID, SPEAKERS, batch)
        result = await sync.merge(voice_session.id, USER_ID, SPEAKERS, batch)

        assert result == MergeResult(saved=0, duplicates=2)
        total, _ = await _stored(async_session, voice_session.id)
        assert total == 2

    @pytest.mark.asyncio
    async def test_overlapping_batches(self, async_session, seed) -> None:
        """Two uploads sharing e2 store e1, e2, e3 exactly once."""
        coach = await seed["coach"](async_session)
        voice_session = await seed["session"](async_session, coach.id)
        sync = TranscriptSynchronizer(async_session)

        first = await sync.merge(
            voice_session.id, USER_ID, SPEAKERS, [_utterance("e1"), _utterance("e2")]
        )
        second = await sync.merge(
            voice_session.id,
            USER_ID,
            SPEAKERS,
            [_utterance("e2", content="edited"), _utterance("e3")],
        )

        assert first == MergeResult(saved=2, duplicates=0)
        assert second == MergeResult(saved=1, duplicates=1)

        repo = AsyncTranscriptRepository(async_session)
        transcript = await repo.get_for_session(voice_session.id)
        utterances = await repo.list_utterances(transcript.id)
        assert [u.entry_id for u in utterances] == ["e1", "e2", "e3"]
        # Re-sent entries keep their original content
        assert utterances[1].content == "hello"
        assert transcript.total_utterances == 3
        assert transcript.last_synced_at is not None

    @pytest.mark.asyncio
    async def test_duplicates_within_one_batch_keep_first(self, async_session, seed) -> None:
        coach = await seed["coach"](async_session)
        voice_session = await seed["session"](async_session, coach.id)
        sync = TranscriptSynchronizer(async_session)

        result = await sync.merge(
            voice_session.id,
            USER_ID,
            SPEAKERS,
            [_utterance("e1", "first"), _utterance("e1", "second")],
        )

        assert result == MergeResult(saved=1, duplicates=1)
        repo = AsyncTranscriptRepository(async_session)
        transcript = await repo.get_for_session(voice_session.id)
        utterances = await repo.list_utterances(transcript.id)
        assert [u.content for u in utterances] == ["first"]

    @pytest.mark.asyncio
    async def test_split_batch_equals_whole_batch(self, async_session, seed) -> None:
        coach = await seed["coach"](async_session)
        split = await seed["session"](async_session, coach.id)
        whole = await seed["session"](async_session, coach.id, status=SessionStatus.ended)
        sync = TranscriptSynchronizer(async_session)
        batch = [_utterance(f"e{i}") for i in range(5)]

        await sync.merge(split.id, USER_ID, SPEAKERS, batch[:2])
        await sync.merge(split.id, USER_ID, SPEAKERS, batch[2:])
        await sync.merge(whole.id, USER_ID, SPEAKERS, batch)

        assert await _stored(async_session, split.id) == await _stored(async_session, whole.id)

    @pytest.mark.asyncio
    async def test_empty_batch(self, async_session, seed) -> None:
        coach = await seed["coach"](async_session)
        voice_session = await seed["session"](async_session, coach.id)

        result = await TranscriptSynchronizer(async_session).merge(
            voice_session.id, USER_ID, SPEAKERS, []
        )

        assert result == MergeResult(saved=0, duplicates=0)

    @pytest.mark.asyncio
    async def test_speakers_keep_first_name(self, async_session, seed) -> None:
        coach = await seed["coach"](async_session)
        voice_session = await seed["session"](async_session, coach.id)
        sync = TranscriptSynchronizer(async_session)

        await sync.merge(voice_session.id, USER_ID, SPEAKERS, [_utterance("e1")])
        await sync.merge(
            voice_session.id,
            USER_ID,
            [SpeakerDescriptor(id="user", name="Renamed", role=SpeakerRole.user)],
            [_utterance("e2")],
        )

        repo = AsyncTranscriptRepository(async_session)
        transcript = await repo.get_for_session(voice_session.id)
        speakers = await repo.list_speakers(transcript.id)
        assert [(s.speaker_id, s.name) for s in speakers] == [("user", "Sam"), ("coach", "Maya")]

    @pytest.mark.asyncio
    async def test_foreign_session_is_not_found(self, async_session, seed) -> None:
        coach = await seed["coach"](async_session)
        voice_session = await seed["session"](async_session, coach.id, user_id="someone-else")

        with pytest.raises(SessionNotFoundError):
            await TranscriptSynchronizer(async_session).merge(
                voice_session.id, USER_ID, SPEAKERS, [_utterance("e1")]
            )

    @pytest.mark.asyncio
    async def test_unknown_session_is_not_found(self, async_session) -> None:
        with pytest.raises(SessionNotFoundError):
            await TranscriptSynchronizer(async_session).merge(
                str(uuid4()), USER_ID, SPEAKERS, [_utterance("e1")]
            )

    @pytest.mark.asyncio
    async def test_unreadable_transcript_is_not_found(
        self, async_session, seed, monkeypatch
    ) -> None:
        coach = await seed["coach"](async_session)
        voice_session = await seed["session"](async_session, coach.id)
        sync = TranscriptSynchronizer(async_session)
        monkeypatch.setattr(sync.transcripts, "get_for_session", AsyncMock(return_value=None))

        with pytest.raises(SessionNotFoundError):
            await sync.merge(voice_session.id, USER_ID, SPEAKERS, [_utterance("e1")])

    @pytest.mark.asyncio
    async def test_malformed_session_id(self, async_session) -> None:
        with pytest.raises(InvalidRequestError):
            await TranscriptSynchronizer(async_session).merge(
                "abc", USER_ID, SPEAKERS, [_utterance("e1")]
            )

    @pytest.mark.asyncio
    async def test_missing_entry_id(self, async_session, seed) -> None:
        coach = await seed["coach"](async_session)
        voice_session = await seed["session"](async_session, coach.id)

        with pytest.raises(InvalidRequestError):
            await TranscriptSynchronizer(async_session).merge(
                voice_session.id, USER_ID, SPEAKERS, [_utterance("")]
            )
