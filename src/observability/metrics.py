"""Prometheus metrics for the voice-session core.

Covers session lifecycle, voice resolution, transcript merges and
evaluation generation.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST

# =============================================================================
# Counters
# =============================================================================

SESSION_TRANSITIONS = Counter(
    "mentorvoice_session_transitions_total",
    "Voice session state transitions",
    ["transition"],
)

VOICE_RESOLUTION = Counter(
    "mentorvoice_voice_resolution_total",
    "Voice picks by the lookup level that produced them",
    ["level"],
)

VOICE_FALLBACK_RETRIES = Counter(
    "mentorvoice_voice_fallback_retries_total",
    "Credential requests retried with the default voice after a rejection",
)

BROKER_FAILURES = Counter(
    "mentorvoice_broker_failures_total",
    "Failed calls to the real-time speech service",
    ["operation"],
)

TRANSCRIPT_UTTERANCES = Counter(
    "mentorvoice_transcript_utterances_total",
    "Utterances received by transcript merges",
    ["result"],
)

EVALUATION_TOTAL = Counter(
    "mentorvoice_evaluation_total",
    "Evaluation generation outcomes",
    ["status"],
)

EVALUATION_FAILURES = Counter(
    "mentorvoice_evaluation_failures_total",
    "Evaluation failures by cause",
    ["reason"],
)

# =============================================================================
# Gauges
# =============================================================================

EVALUATIONS_IN_FLIGHT = Gauge(
    "mentorvoice_evaluations_in_flight",
    "Evaluations currently waiting on the generation API",
)

# =============================================================================
# Histograms
# =============================================================================

SESSION_DURATION = Histogram(
    "mentorvoice_session_duration_seconds",
    "Client-reported session length",
    buckets=[30, 60, 120, 300, 600, 900, 1800, 3600],
)

EVALUATION_LATENCY = Histogram(
    "mentorvoice_evaluation_latency_seconds",
    "Wall-clock time spent generating an evaluation",
    buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0],
)

# =============================================================================
# Helper Functions
# =============================================================================


def record_session_transition(transition: str, count: int = 1) -> None:
    """Record a lifecycle transition (started, resumed, paused, ended, abandoned)."""
    if count > 0:
        SESSION_TRANSITIONS.labels(transition=transition).inc(count)


def record_session_ended(duration_ms: int) -> None:
    record_session_transition("ended")
    SESSION_DURATION.observe(duration_ms / 1000)


def record_merge(saved: int, duplicates: int) -> None:
    """Record the outcome of one transcript merge."""
    if saved:
        TRANSCRIPT_UTTERANCES.labels(result="saved").inc(saved)
    if duplicates:
        TRANSCRIPT_UTTERANCES.labels(result="duplicate").inc(duplicates)


def record_evaluation(status: str, generation_time_ms: int, *, reason: str | None = None) -> None:
    """Record a finished evaluation attempt.

    Args:
        status: completed or failed
        generation_time_ms: Time spent on the generation call and validation
        reason: Failure cause (network, parse, schema) when status is failed
    """
    EVALUATION_TOTAL.labels(status=status).inc()
    EVALUATION_LATENCY.observe(generation_time_ms / 1000)
    if reason:
        EVALUATION_FAILURES.labels(reason=reason).inc()


def get_metrics() -> bytes:
    """Generate Prometheus metrics output.

    Returns:
        Metrics in Prometheus text exposition format.
    """
    return generate_latest()


def get_content_type() -> str:
    """Get the content type for Prometheus metrics.

    Returns:
        Content-Type header value for Prometheus metrics.
    """
    return CONTENT_TYPE_LATEST
