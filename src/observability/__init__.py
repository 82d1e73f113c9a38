"""Observability module for metrics."""

from src.observability.metrics import (
    BROKER_FAILURES,
    EVALUATION_TOTAL,
    SESSION_TRANSITIONS,
    VOICE_RESOLUTION,
    record_evaluation,
    record_merge,
    record_session_ended,
    record_session_transition,
)

__all__ = [
    "SESSION_TRANSITIONS",
    "VOICE_RESOLUTION",
    "BROKER_FAILURES",
    "EVALUATION_TOTAL",
    "record_session_transition",
    "record_session_ended",
    "record_merge",
    "record_evaluation",
]
