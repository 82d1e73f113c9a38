"""Repository pattern implementations for data access."""

from src.db.repositories.coaches import (
    AsyncCoachRepository,
    AsyncUserProfileRepository,
)
from src.db.repositories.evaluations import AsyncEvaluationRepository
from src.db.repositories.sessions import AsyncVoiceSessionRepository
from src.db.repositories.transcripts import AsyncTranscriptRepository

__all__ = [
    # Session repositories
    "AsyncVoiceSessionRepository",
    "AsyncTranscriptRepository",
    # Evaluation repositories
    "AsyncEvaluationRepository",
    # Collaborator repositories
    "AsyncCoachRepository",
    "AsyncUserProfileRepository",
]
