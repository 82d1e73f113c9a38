"""Post-session evaluation pipeline.

State machine::

    pending -> generating -> completed | failed
    failed  -> (retry: delete, then generate again) -> pending -> ...

A record is never edited back into an earlier state. Retrying deletes the
failed row and starts from scratch, so a completed record never carries
collections from an earlier attempt.
"""

from __future__ import annotations

import json
import time
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.collaborators import (
    CoachCatalog,
    SqlCoachCatalog,
    SqlUserProfileStore,
    UserProfileStore,
)
from src.core.evaluation_schema import (
    CommitmentStatus,
    EvaluationContent,
    EvaluationParseError,
    EvaluationSchemaError,
    parse_evaluation,
)
from src.core.exceptions import (
    EvaluationExistsError,
    EvaluationNotFailedError,
    EvaluationNotFoundError,
    EvaluationSupersededError,
    GenerationFailedError,
    InvalidRequestError,
    PreconditionError,
    SessionNotEndedError,
    SessionNotFoundError,
    TranscriptEmptyError,
)
from src.core.validation import require_id, require_user
from src.db.models import (
    EvaluationStatus,
    SessionEvaluation,
    SessionStatus,
    TranscriptSpeaker,
    TranscriptUtterance,
    VoiceSession,
    isoformat_utc,
)
from src.db.repositories import (
    AsyncEvaluationRepository,
    AsyncTranscriptRepository,
    AsyncVoiceSessionRepository,
)
from src.logging_config import get_logger
from src.observability.metrics import EVALUATIONS_IN_FLIGHT, record_evaluation
from src.prompts.evaluation import EVALUATION_SYSTEM_PROMPT, build_evaluation_user_prompt
from src.services.llm.exceptions import LLMServiceError

if TYPE_CHECKING:
    from src.services.llm.protocol import JSONGenerator

logger: Any = get_logger(__name__)

MAX_ERROR_MESSAGE = 1000


def format_transcript(
    speakers: list[TranscriptSpeaker], utterances: list[TranscriptUtterance]
) -> str:
    """Render utterances as ``[Speaker]: content`` lines."""
    names = {s.speaker_id: s.name for s in speakers}
    return "\n".join(
        f"[{names.get(u.speaker_id, u.speaker_id)}]: {u.content}" for u in utterances
    )


def serialize_evaluation(evaluation: SessionEvaluation) -> dict[str, Any]:
    """JSON-ready camelCase view of an evaluation."""
    return {
        "id": evaluation.id,
        "sessionId": evaluation.session_id,
        "userId": evaluation.user_id,
        "coachId": evaluation.coach_id,
        "status": EvaluationStatus(evaluation.status).value,
        "overallSummary": evaluation.overall_summary,
        "insights": evaluation.load_collection("insights"),
        "actionCommitments": evaluation.load_collection("commitments"),
        "performanceScores": evaluation.load_collection("scores"),
        "tips": evaluation.load_collection("tips"),
        "resources": evaluation.load_collection("resources"),
        "modelUsed": evaluation.model_used,
        "generationTimeMs": evaluation.generation_time_ms,
        "errorMessage": evaluation.error_message,
        "createdAt": isoformat_utc(evaluation.created_at),
        "updatedAt": isoformat_utc(evaluation.updated_at),
    }


def _content_columns(content: EvaluationContent) -> dict[str, Any]:
    dumped = content.model_dump(mode="json", by_alias=True)
    # Progress is tracked by the user, never taken from the model
    for commitment in dumped["actionCommitments"]:
        commitment["status"] = CommitmentStatus.pending.value
        commitment["completedAt"] = None
    return {
        "overall_summary": dumped["overallSummary"],
        "insights_json": json.dumps(dumped["insights"]),
        "commitments_json": json.dumps(dumped["actionCommitments"]),
        "scores_json": json.dumps(dumped["performanceScores"]),
        "tips_json": json.dumps(dumped["tips"]),
        "resources_json": json.dumps(dumped["resources"]),
    }


class EvaluationPipeline:
    """Generates, stores and retries session evaluations.

    Args:
        session: Request-scoped database session
        generator: JSON-mode text generation client (GroqService)
        catalog: Coach lookup for prompt context
        profiles: User profile lookup for goals and challenges
    """

    def __init__(
        self,
        session: AsyncSession,
        generator: JSONGenerator,
        *,
        catalog: CoachCatalog | None = None,
        profiles: UserProfileStore | None = None,
    ) -> None:
        self.db = session
        self.generator = generator
        self.catalog = catalog or SqlCoachCatalog(session)
        self.profiles = profiles or SqlUserProfileStore(session)
        self.sessions = AsyncVoiceSessionRepository(session)
        self.transcripts = AsyncTranscriptRepository(session)
        self.evaluations = AsyncEvaluationRepository(session)

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def generate(self, session_id: str, user_id: str) -> dict[str, Any]:
        """Generate the evaluation for an ended session.

        Raises:
            SessionNotFoundError: Unknown or foreign session
            SessionNotEndedError: Session is not ended
            EvaluationExistsError: A completed evaluation already exists
            TranscriptEmptyError: No utterances to evaluate
            GenerationFailedError: Generation, parsing or validation failed;
                the evaluation is stored as failed
            EvaluationSupersededError: A concurrent call replaced this attempt
        """
        voice_session = await self._get_owned(session_id, user_id)
        if voice_session.status != SessionStatus.ended:
            raise SessionNotEndedError("Session must be ended before evaluation")

        existing = await self.evaluations.get_for_session(voice_session.id)
        if existing is not None and existing.status == EvaluationStatus.completed:
            raise EvaluationExistsError("Evaluation already exists for this session")

        speakers, utterances = await self._load_transcript(voice_session.id)
        if not utterances:
            raise TranscriptEmptyError("Transcript is empty, nothing to evaluate")

        if existing is not None:
            # Stale pending/generating/failed attempt; replace it whole
            await self.evaluations.delete(existing.id)

        try:
            evaluation = await self.evaluations.create_pending(
                session_id=voice_session.id,
                user_id=voice_session.user_id,
                coach_id=voice_session.coach_id,
                model_used=self.generator.model,
            )
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise EvaluationExistsError("Evaluation already in progress") from e

        return await self._run(evaluation, voice_session, speakers, utterances)

    async def retry(self, session_id: str, user_id: str) -> dict[str, Any]:
        """Delete a failed evaluation and generate it again from scratch."""
        voice_session = await self._get_owned(session_id, user_id)
        existing = await self.evaluations.get_for_session(voice_session.id)
        if existing is None:
            raise EvaluationNotFoundError("Evaluation not found")
        if existing.status != EvaluationStatus.failed:
            raise EvaluationNotFailedError("Only failed evaluations can be retried")

        await self.evaluations.delete(existing.id)
        await self.db.commit()
        logger.info(f"Retrying evaluation for session {voice_session.id}")
        return await self.generate(voice_session.id, user_id)

    async def get(self, session_id: str, user_id: str) -> dict[str, Any]:
        voice_session = await self._get_owned(session_id, user_id)
        evaluation = await self.evaluations.get_for_session(voice_session.id)
        if evaluation is None:
            raise EvaluationNotFoundError("Evaluation not found")
        return serialize_evaluation(evaluation)

    async def update_commitment(
        self,
        session_id: str,
        user_id: str,
        index: int,
        status: CommitmentStatus,
    ) -> dict[str, Any]:
        """Track progress on one action commitment of a completed evaluation."""
        voice_session = await self._get_owned(session_id, user_id)
        evaluation = await self.evaluations.get_for_session(voice_session.id)
        if evaluation is None:
            raise EvaluationNotFoundError("Evaluation not found")
        if evaluation.status != EvaluationStatus.completed:
            raise PreconditionError("Evaluation is not completed")

        commitments = evaluation.load_collection("commitments")
        if not 0 <= index < len(commitments):
            raise InvalidRequestError("Commitment index out of range")

        status = CommitmentStatus(status)
        commitments[index]["status"] = status.value
        commitments[index]["completedAt"] = (
            datetime.now(UTC).isoformat() if status == CommitmentStatus.completed else None
        )
        await self.evaluations.update(evaluation.id, commitments_json=json.dumps(commitments))
        await self.db.commit()

        refreshed = await self.evaluations.get_for_session(voice_session.id)
        if refreshed is None:
            raise EvaluationNotFoundError("Evaluation not found")
        return serialize_evaluation(refreshed)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    async def _run(
        self,
        evaluation: SessionEvaluation,
        voice_session: VoiceSession,
        speakers: list[TranscriptSpeaker],
        utterances: list[TranscriptUtterance],
    ) -> dict[str, Any]:
        messages = [
            {"role": "system", "content": EVALUATION_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": await self._user_prompt(voice_session, speakers, utterances),
            },
        ]

        await self._store(evaluation, status=EvaluationStatus.generating)

        started = time.perf_counter()
        failure_reason: str | None = None
        error_message = ""
        content: EvaluationContent | None = None

        EVALUATIONS_IN_FLIGHT.inc()
        try:
            raw = await self.generator.generate_json(messages)
            content = parse_evaluation(raw)
        except LLMServiceError as e:
            failure_reason, error_message = "network", f"{type(e).__name__}: {e}"
        except EvaluationParseError as e:
            failure_reason, error_message = "parse", str(e)
        except EvaluationSchemaError as e:
            failure_reason, error_message = "schema", str(e)
        except Exception as e:
            logger.exception(f"Unexpected error generating evaluation for {voice_session.id}")
            failure_reason, error_message = "unexpected", f"{type(e).__name__}: {e}"
        finally:
            EVALUATIONS_IN_FLIGHT.dec()
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        if content is None:
            await self._store(
                evaluation,
                status=EvaluationStatus.failed,
                error_message=error_message[:MAX_ERROR_MESSAGE],
                generation_time_ms=elapsed_ms,
            )
            record_evaluation("failed", elapsed_ms, reason=failure_reason)
            logger.error(
                f"Evaluation failed for session {voice_session.id} "
                f"({failure_reason}): {error_message}"
            )
            raise GenerationFailedError("Evaluation generation failed, please retry")

        await self._store(
            evaluation,
            status=EvaluationStatus.completed,
            generation_time_ms=elapsed_ms,
            error_message=None,
            **_content_columns(content),
        )
        record_evaluation("completed", elapsed_ms)
        logger.info(f"Evaluation completed for session {voice_session.id} in {elapsed_ms}ms")

        completed = await self.evaluations.get_for_session(voice_session.id)
        if completed is None or completed.id != evaluation.id:
            raise EvaluationSupersededError("Evaluation was replaced by a newer request")
        return serialize_evaluation(completed)

    async def _store(self, evaluation: SessionEvaluation, **fields: Any) -> None:
        """Write and commit one attempt's fields.

        A concurrent generate call may have deleted this attempt's row; the
        result is then dropped rather than reported as its own.
        """
        updated = await self.evaluations.update(evaluation.id, **fields)
        await self.db.commit()
        if not updated:
            logger.warning(
                f"Evaluation {evaluation.id} for session {evaluation.session_id} "
                "was replaced by a newer request; dropping its result"
            )
            raise EvaluationSupersededError("Evaluation was replaced by a newer request")

    async def _user_prompt(
        self,
        voice_session: VoiceSession,
        speakers: list[TranscriptSpeaker],
        utterances: list[TranscriptUtterance],
    ) -> str:
        coach = await self.catalog.get_coach(voice_session.coach_id)
        profile = await self.profiles.get(voice_session.user_id)
        return build_evaluation_user_prompt(
            format_transcript(speakers, utterances),
            coach_name=coach.name if coach else "Coach",
            coach_specialty=coach.specialty if coach else "General",
            coach_category=coach.category if coach else "custom",
            user_goals=profile.goals,
            user_challenges=profile.challenges,
        )

    async def _load_transcript(
        self, session_id: str
    ) -> tuple[list[TranscriptSpeaker], list[TranscriptUtterance]]:
        transcript = await self.transcripts.get_for_session(session_id)
        if transcript is None:
            return [], []
        speakers = await self.transcripts.list_speakers(transcript.id)
        utterances = await self.transcripts.list_utterances(transcript.id)
        return speakers, utterances

    async def _get_owned(self, session_id: str, user_id: str) -> VoiceSession:
        session_id = require_id(session_id, "session id")
        user_id = require_user(user_id)
        voice_session = await self.sessions.get_owned(session_id, user_id)
        if voice_session is None:
            raise SessionNotFoundError("Session not found")
        return voice_session
