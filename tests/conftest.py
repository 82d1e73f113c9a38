"""Shared pytest fixtures for MentorVoice tests."""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator, Callable, Generator
from unittest.mock import AsyncMock
from uuid import uuid4

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from src.config import Settings
from src.db.models import (
    Coach,
    CoachTone,
    SessionStatus,
    SessionType,
    UserProfile,
    VoiceSession,
)
from src.services.realtime.broker import VoiceChannelBroker

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


def build_settings(**overrides) -> Settings:
    """Create a Settings object with safe test defaults."""
    base = {
        "openai_api_key": "test-openai-key",
        "groq_api_key": "test-groq-key",
        "jwt_secret": "test-jwt-secret",
        "jwt_verify": True,
        "database_url": "sqlite+aiosqlite:///:memory:",
        "environment": "test",
        "free_tier_session_limit": 3,
    }
    base.update(overrides)
    return Settings(**base)


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    """Return a factory to build Settings with overrides."""
    return build_settings


@pytest.fixture
def settings(settings_factory: Callable[..., Settings]) -> Settings:
    """Default Settings fixture."""
    return settings_factory()


# =============================================================================
# Database Fixtures
# =============================================================================


def _create_engine():
    from src.db import models  # noqa: F401

    return create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


@pytest_asyncio.fixture
async def async_engine():
    """Create an in-memory async SQLite engine for testing."""
    engine = _create_engine()

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def async_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create an async database session for testing."""
    factory = async_sessionmaker(async_engine, expire_on_commit=False, autoflush=False)
    async with factory() as session:
        yield session


# =============================================================================
# Seed helpers
# =============================================================================


async def add_coach(session: AsyncSession, **fields) -> Coach:
    base = {
        "id": str(uuid4()),
        "name": "Maya",
        "specialty": "Leadership",
        "category": "career",
        "system_prompt": "You are Maya, a leadership coach.",
        "tone": CoachTone.direct,
        "is_published": True,
    }
    base.update(fields)
    coach = Coach(**base)
    session.add(coach)
    await session.commit()
    return coach


async def add_profile(session: AsyncSession, user_id: str = USER_ID, **fields) -> UserProfile:
    profile = UserProfile(user_id=user_id, display_name="Sam", **fields)
    session.add(profile)
    await session.commit()
    return profile


async def add_session(
    session: AsyncSession,
    coach_id: str,
    user_id: str = USER_ID,
    **fields,
) -> VoiceSession:
    base = {
        "user_id": user_id,
        "coach_id": coach_id,
        "status": SessionStatus.active,
        "session_type": SessionType.regular,
    }
    base.update(fields)
    voice_session = VoiceSession(**base)
    session.add(voice_session)
    await session.commit()
    return voice_session


@pytest.fixture
def seed() -> dict[str, Callable]:
    """Seed helpers, so tests need not import from conftest."""
    return {"coach": add_coach, "profile": add_profile, "session": add_session}


# =============================================================================
# Upstream fakes
# =============================================================================


def credential_response(
    session_id: str = "sess_ext_1", secret: str = "ek_test", expires_at: int = 1_700_000_000
) -> httpx.Response:
    return httpx.Response(
        200,
        json={"id": session_id, "client_secret": {"value": secret, "expires_at": expires_at}},
    )


class RecordingTransport:
    """httpx handler that replays queued responses and keeps the requests."""

    def __init__(self, *responses: httpx.Response | Exception):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            return credential_response()
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def json_bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def make_transport() -> type[RecordingTransport]:
    return RecordingTransport


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def broker_factory(settings) -> Callable[..., VoiceChannelBroker]:
    def _build(handler: RecordingTransport, **overrides) -> VoiceChannelBroker:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return VoiceChannelBroker(settings, client=client, **overrides)

    return _build


@pytest.fixture
def broker(broker_factory, transport) -> VoiceChannelBroker:
    return broker_factory(transport)


def valid_evaluation_payload() -> dict:
    """Smallest evaluation that passes the schema."""
    return {
        "overallSummary": "A focused session about delegating work.",
        "insights": [
            {
                "title": f"Insight {i}",
                "description": "You take on tasks others could own.",
                "impactLevel": "high",
                "evidence": "I end up doing it myself.",
            }
            for i in range(3)
        ],
        "actionCommitments": [
            {
                "title": f"Commitment {i}",
                "description": "Delegate one task this week.",
                "specifics": ["Pick the task", "Brief the owner"],
                "difficulty": "moderate",
                "impactLevel": "medium",
            }
            for i in range(3)
        ],
        "performanceScores": [
            {
                "category": category,
                "name": category.replace("_", " ").title(),
                "score": 6.5,
                "description": "Solid.",
                "nextLevelAdvice": "Ask one more question.",
            }
            for category in ("self_awareness", "goal_clarity", "openness", "action_orientation")
        ],
        "tips": [
            {
                "title": f"Tip {i}",
                "doAdvice": "Name the outcome first.",
                "dontAdvice": "Do not micromanage.",
                "evidence": "You mentioned checking in hourly.",
            }
            for i in range(3)
        ],
        "resources": [
            {
                "type": "book",
                "title": f"Book {i}",
                "author": "A. Author",
                "matchScore": 80,
                "reasoning": "Covers delegation.",
            }
            for i in range(3)
        ],
    }


@pytest.fixture
def evaluation_payload() -> dict:
    return valid_evaluation_payload()


@pytest.fixture
def generator() -> AsyncMock:
    """JSON generator double returning a valid evaluation."""
    mock = AsyncMock()
    mock.model = "test-model"
    mock.generate_json.return_value = json.dumps(valid_evaluation_payload())
    return mock


# =============================================================================
# FastAPI Test Client Fixtures
# =============================================================================


@pytest.fixture
def auth_headers(settings) -> Callable[[str], dict[str, str]]:
    import jwt

    def _headers(user_id: str = USER_ID) -> dict[str, str]:
        token = jwt.encode(
            {"sub": user_id}, settings.jwt_secret.get_secret_value(), algorithm="HS256"
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def api_env(settings, monkeypatch, transport, generator) -> Generator:
    """App wired to an in-memory database, a mocked broker and generator.

    Yields ``(client, factory)``; the session factory lets tests seed rows
    directly through ``client.portal``.
    """
    import src.main
    from fastapi.testclient import TestClient

    from src.api.dependencies import get_broker, get_generator
    from src.config import get_settings
    from src.db.session import get_session

    engine = _create_engine()
    factory = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)

    async def mock_init_db():
        async with engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    async def mock_close_db():
        await engine.dispose()

    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        async with factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    monkeypatch.setattr("src.config.get_settings", lambda: settings)
    monkeypatch.setattr(src.main, "get_settings", lambda: settings)
    monkeypatch.setattr(src.main, "init_db", mock_init_db)
    monkeypatch.setattr(src.main, "close_db", mock_close_db)

    broker = VoiceChannelBroker(
        settings, client=httpx.AsyncClient(transport=httpx.MockTransport(transport))
    )

    app = src.main.create_app()
    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_broker] = lambda: broker
    app.dependency_overrides[get_generator] = lambda: generator

    with TestClient(app) as client:
        yield client, factory
