"""Coach catalog and user profile repositories."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.db.models import Coach, CoachShare, UserProfile


class AsyncCoachRepository:
    """Read access to coaches and their shares."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, coach_id: str) -> Coach | None:
        return await self.session.get(Coach, coach_id)

    async def get_share(self, coach_id: str, user_id: str) -> CoachShare | None:
        query = select(CoachShare).where(
            CoachShare.coach_id == coach_id,  # type: ignore[arg-type]
            CoachShare.shared_with_user_id == user_id,  # type: ignore[arg-type]
        )
        result = await self.session.execute(query)
        return result.scalars().first()


class AsyncUserProfileRepository:
    """Read access to user profiles."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: str) -> UserProfile | None:
        return await self.session.get(UserProfile, user_id)
