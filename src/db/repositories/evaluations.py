"""Session evaluation repository."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models import EvaluationStatus, SessionEvaluation


class AsyncEvaluationRepository:
    """Async repository for the evaluation state machine."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_for_session(self, session_id: str) -> SessionEvaluation | None:
        query = (
            select(SessionEvaluation)
            .where(SessionEvaluation.session_id == session_id)  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalars().first()

    async def create_pending(
        self,
        *,
        session_id: str,
        user_id: str,
        coach_id: str,
        model_used: str | None,
    ) -> SessionEvaluation:
        evaluation = SessionEvaluation(
            session_id=session_id,
            user_id=user_id,
            coach_id=coach_id,
            status=EvaluationStatus.pending,
            model_used=model_used,
        )
        self.session.add(evaluation)
        await self.session.flush()
        return evaluation

    async def update(self, evaluation_id: str, **fields: Any) -> int:
        """Update one evaluation; returns 0 when the row no longer exists."""
        fields.setdefault("updated_at", datetime.now(UTC))
        stmt = (
            update(SessionEvaluation)
            .where(SessionEvaluation.id == evaluation_id)  # type: ignore[arg-type]
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def delete(self, evaluation_id: str) -> int:
        stmt = (
            delete(SessionEvaluation)
            .where(SessionEvaluation.id == evaluation_id)  # type: ignore[arg-type]
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0
