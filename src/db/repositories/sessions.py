"""Voice session repository."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models import LIVE_STATUSES, SessionStatus, SessionType, VoiceSession


class AsyncVoiceSessionRepository:
    """Async repository for the session lifecycle."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, voice_session: VoiceSession) -> VoiceSession:
        self.session.add(voice_session)
        await self.session.flush()
        return voice_session

    async def get_by_id(self, session_id: str) -> VoiceSession | None:
        return await self.session.get(VoiceSession, session_id, populate_existing=True)

    async def get_owned(self, session_id: str, user_id: str) -> VoiceSession | None:
        query = (
            select(VoiceSession)
            .where(
                VoiceSession.id == session_id,  # type: ignore[arg-type]
                VoiceSession.user_id == user_id,  # type: ignore[arg-type]
            )
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalars().first()

    async def get_live(self, user_id: str) -> VoiceSession | None:
        query = (
            select(VoiceSession)
            .where(
                VoiceSession.user_id == user_id,  # type: ignore[arg-type]
                VoiceSession.status.in_(LIVE_STATUSES),  # type: ignore[attr-defined]
            )
            .order_by(desc(VoiceSession.started_at))  # type: ignore[arg-type]
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalars().first()

    async def abandon_live_sessions(self, user_id: str) -> int:
        """Demote every active/paused session of a user in one statement."""
        now = datetime.now(UTC)
        stmt = (
            update(VoiceSession)
            .where(
                VoiceSession.user_id == user_id,  # type: ignore[arg-type]
                VoiceSession.status.in_(LIVE_STATUSES),  # type: ignore[attr-defined]
            )
            .values(status=SessionStatus.abandoned, ended_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def transition(
        self,
        session_id: str,
        user_id: str,
        *,
        from_statuses: Iterable[SessionStatus],
        **fields: Any,
    ) -> bool:
        """Conditionally update a session; False when its status did not allow it."""
        fields.setdefault("updated_at", datetime.now(UTC))
        stmt = (
            update(VoiceSession)
            .where(
                VoiceSession.id == session_id,  # type: ignore[arg-type]
                VoiceSession.user_id == user_id,  # type: ignore[arg-type]
                VoiceSession.status.in_(list(from_statuses)),  # type: ignore[attr-defined]
            )
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        return (result.rowcount or 0) == 1

    async def set_fields(self, session_id: str, **fields: Any) -> None:
        fields.setdefault("updated_at", datetime.now(UTC))
        stmt = (
            update(VoiceSession)
            .where(VoiceSession.id == session_id)  # type: ignore[arg-type]
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        await self.session.execute(stmt)

    async def list_recent_ended(
        self,
        user_id: str,
        coach_id: str,
        *,
        limit: int = 5,
    ) -> list[VoiceSession]:
        """Most recently ended non-onboarding sessions with one coach, newest first."""
        query = (
            select(VoiceSession)
            .where(
                VoiceSession.user_id == user_id,  # type: ignore[arg-type]
                VoiceSession.coach_id == coach_id,  # type: ignore[arg-type]
                VoiceSession.status == SessionStatus.ended,  # type: ignore[arg-type]
                VoiceSession.session_type != SessionType.onboarding,  # type: ignore[arg-type]
            )
            .order_by(desc(VoiceSession.ended_at), desc(VoiceSession.created_at))  # type: ignore[arg-type]
            .limit(limit)
        )
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_history(
        self,
        user_id: str,
        *,
        statuses: Iterable[SessionStatus],
        coach_id: str | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[VoiceSession], int]:
        conditions = [
            VoiceSession.user_id == user_id,
            VoiceSession.status.in_(list(statuses)),  # type: ignore[attr-defined]
        ]
        if coach_id:
            conditions.append(VoiceSession.coach_id == coach_id)

        query = (
            select(VoiceSession)
            .where(*conditions)  # type: ignore[arg-type]
            .order_by(desc(VoiceSession.started_at))  # type: ignore[arg-type]
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(query)
        total = await self.session.scalar(
            select(func.count()).select_from(VoiceSession).where(*conditions)  # type: ignore[arg-type]
        )
        return list(result.scalars().all()), int(total or 0)

    async def count_for_user(self, user_id: str, statuses: Iterable[SessionStatus]) -> int:
        total = await self.session.scalar(
            select(func.count())
            .select_from(VoiceSession)
            .where(
                VoiceSession.user_id == user_id,  # type: ignore[arg-type]
                VoiceSession.status.in_(list(statuses)),  # type: ignore[attr-defined]
            )
        )
        return int(total or 0)
