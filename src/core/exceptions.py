"""Domain exceptions for the voice-session core.

Every error raised across the core is a CoachingError. The API layer maps
the class to an HTTP status; ``code`` is the machine-readable tag returned
to clients.
"""


class CoachingError(Exception):
    """Base exception for voice-session core errors."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


# =============================================================================
# Validation
# =============================================================================


class InvalidRequestError(CoachingError):
    """Raised for malformed identifiers or payloads."""

    code = "VALIDATION_ERROR"


# =============================================================================
# Not found
# =============================================================================


class NotFoundError(CoachingError):
    """Raised when a resource is unknown or not owned by the caller."""

    code = "NOT_FOUND"


class SessionNotFoundError(NotFoundError):
    """Raised when a session is unknown or belongs to another user."""

    code = "SESSION_NOT_FOUND"


class CoachNotFoundError(NotFoundError):
    """Raised when a coach does not exist."""

    code = "COACH_NOT_FOUND"


class CoachAccessDeniedError(NotFoundError):
    """Raised when a coach exists but the user may not use it."""

    code = "COACH_NOT_FOUND"


class EvaluationNotFoundError(NotFoundError):
    """Raised when no evaluation exists for a session."""

    code = "EVALUATION_NOT_FOUND"


# =============================================================================
# Conflict
# =============================================================================


class ConflictError(CoachingError):
    """Raised when an operation collides with existing state."""

    code = "CONFLICT"


class EvaluationExistsError(ConflictError):
    """Raised when a completed evaluation already exists."""

    code = "EVALUATION_EXISTS"


class EvaluationSupersededError(ConflictError):
    """Raised when a newer generate call replaced this attempt's record."""

    code = "EVALUATION_SUPERSEDED"


class SessionLimitExceededError(ConflictError):
    """Raised when the subscription gate refuses a new session."""

    code = "SESSION_LIMIT_EXCEEDED"


class SessionStartConflictError(ConflictError):
    """Raised when another start for the same user committed first."""

    code = "SESSION_START_CONFLICT"


# =============================================================================
# Precondition
# =============================================================================


class PreconditionError(CoachingError):
    """Raised when the target is in the wrong state for the operation."""

    code = "PRECONDITION_FAILED"


class InvalidSessionStateError(PreconditionError):
    """Raised on a lifecycle transition the session's status does not allow."""

    code = "INVALID_SESSION_STATE"


class SessionNotEndedError(PreconditionError):
    """Raised when evaluating a session that has not ended."""

    code = "SESSION_NOT_ENDED"


class EvaluationNotFailedError(PreconditionError):
    """Raised when retrying an evaluation that did not fail."""

    code = "EVALUATION_NOT_FAILED"


class TranscriptEmptyError(PreconditionError):
    """Raised when a session has no utterances to evaluate."""

    code = "TRANSCRIPT_EMPTY"


# =============================================================================
# Upstream
# =============================================================================


class UpstreamError(CoachingError):
    """Base for failures of third-party services."""

    code = "UPSTREAM_ERROR"


class BrokerUnavailableError(UpstreamError):
    """Raised when the speech service will not issue a credential."""

    code = "SERVICE_UNAVAILABLE"

    def __init__(self, message: str, session_id: str | None = None):
        super().__init__(message)
        self.session_id = session_id


class SignalingExchangeError(UpstreamError):
    """Raised when the speech service rejects an SDP offer."""

    code = "SIGNALING_FAILED"


class GenerationFailedError(UpstreamError):
    """Raised when an evaluation could not be generated or validated."""

    code = "GENERATION_FAILED"
