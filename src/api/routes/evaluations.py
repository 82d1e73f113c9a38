"""API endpoints for post-session evaluations."""

from typing import Any

from fastapi import APIRouter, Depends, Path
from pydantic import BaseModel

from src.api.auth import RequireUser
from src.api.dependencies import get_evaluation_pipeline
from src.core.evaluation import EvaluationPipeline
from src.core.evaluation_schema import CommitmentStatus

router = APIRouter(prefix="/sessions/{session_id}/evaluation", tags=["Evaluations"])


class CommitmentUpdate(BaseModel):
    status: CommitmentStatus


@router.post("", status_code=201)
async def generate_evaluation(
    session_id: str,
    user_id: RequireUser,
    pipeline: EvaluationPipeline = Depends(get_evaluation_pipeline),
) -> dict[str, Any]:
    """Generate the evaluation for an ended session.

    Runs synchronously; the response is the completed evaluation. A failed
    generation is stored and reported as 503 so the client can retry.
    """
    return {"evaluation": await pipeline.generate(session_id, user_id)}


@router.get("")
async def get_evaluation(
    session_id: str,
    user_id: RequireUser,
    pipeline: EvaluationPipeline = Depends(get_evaluation_pipeline),
) -> dict[str, Any]:
    return {"evaluation": await pipeline.get(session_id, user_id)}


@router.post("/retry", status_code=201)
async def retry_evaluation(
    session_id: str,
    user_id: RequireUser,
    pipeline: EvaluationPipeline = Depends(get_evaluation_pipeline),
) -> dict[str, Any]:
    """Discard a failed evaluation and generate it again."""
    return {"evaluation": await pipeline.retry(session_id, user_id)}


@router.patch("/commitments/{index}")
async def update_commitment(
    session_id: str,
    body: CommitmentUpdate,
    user_id: RequireUser,
    index: int = Path(..., ge=0),
    pipeline: EvaluationPipeline = Depends(get_evaluation_pipeline),
) -> dict[str, Any]:
    return {
        "evaluation": await pipeline.update_commitment(session_id, user_id, index, body.status)
    }
