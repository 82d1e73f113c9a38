"""Collaborator interfaces consumed by the core, with SQL-backed defaults.

The coach catalog, user profiles and subscription checks belong to the
surrounding product. The core only sees these protocols; the Sql*
implementations read the tables in ``src.db.models``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import CoachAccessDeniedError, CoachNotFoundError
from src.db.models import Coach, SessionStatus, SharePermission, ShareStatus
from src.db.repositories import (
    AsyncCoachRepository,
    AsyncUserProfileRepository,
    AsyncVoiceSessionRepository,
)
from src.logging_config import get_logger

logger: Any = get_logger(__name__)

# Sessions that count against a free-tier quota
QUOTA_STATUSES = (SessionStatus.ended, SessionStatus.active, SessionStatus.paused)

_PERMISSION_RANK = {
    SharePermission.view: 0,
    SharePermission.use: 1,
    SharePermission.edit: 2,
}


# =============================================================================
# Owner variant
# =============================================================================


@dataclass(frozen=True, slots=True)
class SystemOwner:
    """Coach shipped with the product."""


@dataclass(frozen=True, slots=True)
class UserOwner:
    """Coach created by a user."""

    user_id: str


Owner = SystemOwner | UserOwner


# =============================================================================
# Data types
# =============================================================================


@dataclass(frozen=True, slots=True)
class CoachProfile:
    """What the core needs to know about a coach persona."""

    id: str
    name: str
    owner: Owner
    system_prompt: str = ""
    tone: str = "professional"
    specialty: str = "General"
    category: str = "custom"
    avatar: str | None = None
    avatar_gender: str | None = None
    coaching_style: tuple[str, ...] = ()
    methodology: str | None = None
    language: str = "English"
    is_onboarding: bool = False

    @property
    def is_system(self) -> bool:
        return isinstance(self.owner, SystemOwner)

    def summary(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "avatar": self.avatar,
            "specialty": self.specialty,
            "category": self.category,
        }


@dataclass(frozen=True, slots=True)
class UserContext:
    """User profile fields used to personalise a session."""

    user_id: str
    display_name: str = "User"
    personal_context: str | None = None
    preferred_language: str = "English"
    goals: str | None = None
    challenges: tuple[str, ...] = field(default_factory=tuple)
    is_pro: bool = False


# =============================================================================
# Protocols
# =============================================================================


class SubscriptionGate(Protocol):
    """Decides whether a user may open another session."""

    async def can_start_session(self, user_id: str) -> bool: ...


class CoachCatalog(Protocol):
    """Looks up coaches a user is allowed to talk to."""

    async def get_accessible_coach(self, coach_id: str, user_id: str) -> CoachProfile:
        """Return the coach or raise CoachNotFoundError / CoachAccessDeniedError."""
        ...

    async def get_coach(self, coach_id: str) -> CoachProfile | None:
        """Return the coach for display purposes, without an access check."""
        ...


class UserProfileStore(Protocol):
    """Loads the user's profile; never fails for unknown users."""

    async def get(self, user_id: str) -> UserContext: ...


# =============================================================================
# SQL-backed defaults
# =============================================================================


def _decode_list(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("Ignoring malformed JSON list column")
        return ()
    if not isinstance(data, list):
        return ()
    return tuple(str(item) for item in data)


def coach_to_profile(coach: Coach) -> CoachProfile:
    owner: Owner = (
        SystemOwner() if coach.owner_user_id is None else UserOwner(coach.owner_user_id)
    )
    tone = coach.tone.value if hasattr(coach.tone, "value") else str(coach.tone)
    return CoachProfile(
        id=coach.id,
        name=coach.name,
        owner=owner,
        system_prompt=coach.system_prompt,
        tone=tone,
        specialty=coach.specialty,
        category=coach.category,
        avatar=coach.avatar,
        avatar_gender=coach.avatar_gender,
        coaching_style=_decode_list(coach.coaching_style_json),
        methodology=coach.methodology,
        language=coach.language,
        is_onboarding=coach.is_onboarding,
    )


class SqlCoachCatalog:
    """Coach access rules over the coaches / coach_shares tables.

    System coaches are usable once published. User coaches are usable by
    their owner, or by anyone holding an accepted share that grants at
    least ``use``.
    """

    def __init__(self, session: AsyncSession):
        self.repo = AsyncCoachRepository(session)

    async def get_coach(self, coach_id: str) -> CoachProfile | None:
        coach = await self.repo.get_by_id(coach_id)
        return coach_to_profile(coach) if coach else None

    async def get_accessible_coach(self, coach_id: str, user_id: str) -> CoachProfile:
        coach = await self.repo.get_by_id(coach_id)
        if coach is None:
            raise CoachNotFoundError("Coach not found")

        profile = coach_to_profile(coach)
        owner = profile.owner
        if isinstance(owner, SystemOwner):
            if coach.is_published:
                return profile
        elif isinstance(owner, UserOwner):
            if owner.user_id == user_id:
                return profile
            share = await self.repo.get_share(coach_id, user_id)
            if (
                share is not None
                and share.status == ShareStatus.accepted
                and _PERMISSION_RANK[share.permission] >= _PERMISSION_RANK[SharePermission.use]
            ):
                return profile

        logger.info(f"Coach {coach_id} not accessible to user {user_id}")
        raise CoachAccessDeniedError("Coach not found")


class SqlUserProfileStore:
    """Profiles from the user_profiles table, defaulting when absent."""

    def __init__(self, session: AsyncSession):
        self.repo = AsyncUserProfileRepository(session)

    async def get(self, user_id: str) -> UserContext:
        profile = await self.repo.get(user_id)
        if profile is None:
            return UserContext(user_id=user_id)
        return UserContext(
            user_id=user_id,
            display_name=profile.display_name or "User",
            personal_context=profile.personal_context,
            preferred_language=profile.preferred_language or "English",
            goals=profile.primary_goals,
            challenges=_decode_list(profile.challenges_json),
            is_pro=profile.is_pro,
        )


class SqlSubscriptionGate:
    """Free-tier quota: pro users pass, others are capped by session count."""

    def __init__(self, session: AsyncSession, *, free_tier_limit: int):
        self.sessions = AsyncVoiceSessionRepository(session)
        self.profiles = SqlUserProfileStore(session)
        self.free_tier_limit = free_tier_limit

    async def can_start_session(self, user_id: str) -> bool:
        profile = await self.profiles.get(user_id)
        if profile.is_pro:
            return True
        used = await self.sessions.count_for_user(user_id, QUOTA_STATUSES)
        return used < self.free_tier_limit
