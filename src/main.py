"""FastAPI application entry point.

MentorVoice - real-time voice coaching sessions with post-session evaluations.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.errors import register_error_handlers
from src.api.routes import evaluations, health, metrics, sessions
from src.config import get_settings
from src.db.session import close_db, init_db
from src.logging_config import setup_logging
from src.services.llm.groq import GroqService
from src.services.realtime.broker import VoiceChannelBroker


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    Startup:
    - Initialize logging
    - Initialize database
    - Create the speech broker and evaluation generator

    Shutdown:
    - Close HTTP clients
    - Close database connections
    """
    settings = get_settings()

    # Startup
    setup_logging(level=settings.log_level, serialize=settings.is_production)

    # Only auto-create tables in development
    # Production should use: alembic upgrade head
    if not settings.is_production:
        await init_db()

    app.state.broker = VoiceChannelBroker(settings)
    app.state.generator = GroqService(settings)

    yield

    # Shutdown
    await app.state.broker.close()
    await app.state.generator.close()
    await close_db()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="MentorVoice API",
        description="Real-time voice coaching sessions and evaluations",
        version="0.1.0",
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    # Health check routes
    app.include_router(health.router, tags=["Health"])

    # Metrics endpoint for Prometheus scraping
    app.include_router(metrics.router, tags=["Observability"])

    # Voice sessions, transcripts and evaluations
    app.include_router(sessions.router, prefix="/api")
    app.include_router(evaluations.router, prefix="/api")

    return app


# Application instance
app = create_app()
