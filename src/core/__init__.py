"""Voice-session orchestration core.

This module provides:
- SessionLifecycleManager: start / resume / pause / end of voice sessions
- TranscriptSynchronizer: exactly-once merge of uploaded utterances
- ContinuityComposer: bounded memory of past sessions with a coach
- EvaluationPipeline: post-session evaluation with retry
"""

from src.core.continuity import ContinuityComposer
from src.core.evaluation import EvaluationPipeline
from src.core.lifecycle import (
    SessionDetail,
    SessionGrant,
    SessionLifecycleManager,
    SessionPage,
    SessionRecord,
)
from src.core.transcript_sync import (
    MergeResult,
    SpeakerDescriptor,
    TranscriptSynchronizer,
    UtteranceInput,
)

__all__ = [
    # Lifecycle
    "SessionLifecycleManager",
    "SessionGrant",
    "SessionRecord",
    "SessionDetail",
    "SessionPage",
    # Transcripts
    "TranscriptSynchronizer",
    "SpeakerDescriptor",
    "UtteranceInput",
    "MergeResult",
    # Continuity
    "ContinuityComposer",
    # Evaluation
    "EvaluationPipeline",
]
