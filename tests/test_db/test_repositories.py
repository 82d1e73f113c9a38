"""Tests for database repositories."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from sqlalchemy.exc import IntegrityError

from src.db.models import EvaluationStatus, SessionStatus, SpeakerRole
from src.db.repositories import (
    AsyncEvaluationRepository,
    AsyncTranscriptRepository,
    AsyncVoiceSessionRepository,
)

USER_ID = "user-1"


class TestAsyncVoiceSessionRepository:
    """Tests for AsyncVoiceSessionRepository."""

    @pytest.mark.asyncio
    async def test_abandon_live_sessions_only_touches_live(self, async_session, seed) -> None:
        coach = await seed["coach"](async_session)
        ended = await seed["session"](async_session, coach.id, status=SessionStatus.ended)
        active = await seed["session"](async_session, coach.id)
        other = await seed["session"](async_session, coach.id, user_id="someone-else")
        repo = AsyncVoiceSessionRepository(async_session)

        assert await repo.abandon_live_sessions(USER_ID) == 1

        assert (await repo.get_by_id(active.id)).status == SessionStatus.abandoned
        assert (await repo.get_by_id(ended.id)).status == SessionStatus.ended
        assert (await repo.get_by_id(other.id)).status == SessionStatus.active

    @pytest.mark.asyncio
    async def test_abandon_live_sessions_covers_paused(self, async_session, seed) -> None:
        coach = await seed["coach"](async_session)
        paused = await seed["session"](async_session, coach.id, status=SessionStatus.paused)
        repo = AsyncVoiceSessionRepository(async_session)

        assert await repo.abandon_live_sessions(USER_ID) == 1
        assert (await repo.get_by_id(paused.id)).status == SessionStatus.abandoned

    @pytest.mark.asyncio
    async def test_second_live_session_for_user_is_rejected(self, async_session, seed) -> None:
        coach = await seed["coach"](async_session)
        await seed["session"](async_session, coach.id)

        with pytest.raises(IntegrityError):
            await seed["session"](async_session, coach.id, status=SessionStatus.paused)
        await async_session.rollback()

    @pytest.mark.asyncio
    async def test_live_session_slot_is_per_user(self, async_session, seed) -> None:
        coach = await seed["coach"](async_session)
        await seed["session"](async_session, coach.id)
        await seed["session"](async_session, coach.id, status=SessionStatus.ended)
        await seed["session"](async_session, coach.id, status=SessionStatus.abandoned)
        other = await seed["session"](async_session, coach.id, user_id="someone-else")

        repo = AsyncVoiceSessionRepository(async_session)
        assert (await repo.get_by_id(other.id)).status == SessionStatus.active

    @pytest.mark.asyncio
    async def test_transition_is_conditional(self, async_session, seed) -> None:
        coach = await seed["coach"](async_session)
        voice_session = await seed["session"](async_session, coach.id)
        repo = AsyncVoiceSessionRepository(async_session)

        assert await repo.transition(
            voice_session.id,
            USER_ID,
            from_statuses=(SessionStatus.active,),
            status=SessionStatus.paused,
        )
        assert not await repo.transition(
            voice_session.id,
            USER_ID,
            from_statuses=(SessionStatus.active,),
            status=SessionStatus.paused,
        )
        assert not await repo.transition(
            voice_session.id,
            "someone-else",
            from_statuses=(SessionStatus.paused,),
            status=SessionStatus.active,
        )

    @pytest.mark.asyncio
    async def test_get_owned(self, async_session, seed) -> None:
        coach = await seed["coach"](async_session)
        voice_session = await seed["session"](async_session, coach.id)
        repo = AsyncVoiceSessionRepository(async_session)

        assert (await repo.get_owned(voice_session.id, USER_ID)).id == voice_session.id
        assert await repo.get_owned(voice_session.id, "someone-else") is None

    @pytest.mark.asyncio
    async def test_count_for_user(self, async_session, seed) -> None:
        coach = await seed["coach"](async_session)
        await seed["session"](async_session, coach.id, status=SessionStatus.ended)
        await seed["session"](async_session, coach.id, status=SessionStatus.abandoned)
        repo = AsyncVoiceSessionRepository(async_session)

        assert await repo.count_for_user(USER_ID, (SessionStatus.ended,)) == 1
        assert (
            await repo.count_for_user(USER_ID, (SessionStatus.ended, SessionStatus.abandoned))
            == 2
        )


class TestAsyncTranscriptRepository:
    """Tests for AsyncTranscriptRepository."""

    @pytest.mark.asyncio
    async def test_ensure_for_session_is_idempotent(self, async_session, seed) -> None:
        coach = await seed["coach"](async_session)
        voice_session = await seed["session"](async_session, coach.id)
        repo = AsyncTranscriptRepository(async_session)

        first = await repo.ensure_for_session(
            voice_session.id, user_id=USER_ID, coach_id=coach.id, language="de"
        )
        second = await repo.ensure_for_session(
            voice_session.id, user_id=USER_ID, coach_id=coach.id
        )

        assert first.id == second.id
        assert second.language == "de"

    @pytest.mark.asyncio
    async def test_append_skips_existing_entries(self, async_session, seed) -> None:
        coach = await seed["coach"](async_session)
        voice_session = await seed["session"](async_session, coach.id)
        repo = AsyncTranscriptRepository(async_session)
        transcript = await repo.ensure_for_session(
            voice_session.id, user_id=USER_ID, coach_id=coach.id
        )
        row = {
            "speaker_id": "user",
            "content": "hi",
            "start_offset_ms": 0,
            "end_offset_ms": 0,
            "timestamp": datetime.now(UTC),
        }

        written = await repo.append_utterances(transcript.id, [{"entry_id": "a", **row}])
        again = await repo.append_utterances(
            transcript.id, [{"entry_id": "a", **row}, {"entry_id": "b", **row}]
        )
        await repo.refresh_counters(transcript.id)

        assert written == ["a"]
        assert again == ["b"]
        assert await repo.existing_entry_ids(transcript.id, ["a", "b", "c"]) == {"a", "b"}
        assert (await repo.get_for_session(voice_session.id)).total_utterances == 2

    @pytest.mark.asyncio
    async def test_speakers_and_user_ids(self, async_session, seed) -> None:
        coach = await seed["coach"](async_session)
        voice_session = await seed["session"](async_session, coach.id)
        repo = AsyncTranscriptRepository(async_session)
        transcript = await repo.ensure_for_session(
            voice_session.id, user_id=USER_ID, coach_id=coach.id
        )

        added = await repo.add_speakers(
            transcript.id,
            [
                {"speaker_id": "user", "name": "Sam", "role": SpeakerRole.user},
                {"speaker_id": "coach", "name": "Maya", "role": SpeakerRole.coach},
            ],
        )
        again = await repo.add_speakers(
            transcript.id, [{"speaker_id": "user", "name": "Other", "role": SpeakerRole.user}]
        )

        assert added == 2
        assert again == 0
        assert await repo.user_speaker_ids(transcript.id) == ["user"]


class TestAsyncEvaluationRepository:
    """Tests for AsyncEvaluationRepository."""

    @pytest.mark.asyncio
    async def test_create_update_delete(self, async_session, seed) -> None:
        coach = await seed["coach"](async_session)
        voice_session = await seed["session"](async_session, coach.id, status=SessionStatus.ended)
        repo = AsyncEvaluationRepository(async_session)

        evaluation = await repo.create_pending(
            session_id=voice_session.id, user_id=USER_ID, coach_id=coach.id, model_used="m"
        )
        await repo.update(evaluation.id, status=EvaluationStatus.failed, error_message="boom")

        stored = await repo.get_for_session(voice_session.id)
        assert stored.status == EvaluationStatus.failed
        assert stored.error_message == "boom"
        assert stored.load_collection("insights") == []

        assert await repo.delete(evaluation.id) == 1
        assert await repo.get_for_session(voice_session.id) is None
