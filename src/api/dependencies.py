"""FastAPI dependencies wiring the core services per request."""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import Settings, get_settings
from src.core.evaluation import EvaluationPipeline
from src.core.lifecycle import SessionLifecycleManager
from src.core.transcript_sync import TranscriptSynchronizer
from src.db.session import get_session
from src.services.llm.protocol import JSONGenerator
from src.services.realtime.broker import VoiceChannelBroker


def get_broker(request: Request) -> VoiceChannelBroker:
    """Broker created at startup (see ``src.main.lifespan``)."""
    return request.app.state.broker


def get_generator(request: Request) -> JSONGenerator:
    return request.app.state.generator


def get_lifecycle(
    session: AsyncSession = Depends(get_session),
    broker: VoiceChannelBroker = Depends(get_broker),
    settings: Settings = Depends(get_settings),
) -> SessionLifecycleManager:
    return SessionLifecycleManager(session, broker, settings=settings)


def get_synchronizer(
    session: AsyncSession = Depends(get_session),
) -> TranscriptSynchronizer:
    return TranscriptSynchronizer(session)


def get_evaluation_pipeline(
    session: AsyncSession = Depends(get_session),
    generator: JSONGenerator = Depends(get_generator),
) -> EvaluationPipeline:
    return EvaluationPipeline(session, generator)
