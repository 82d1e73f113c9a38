"""Errors raised by the evaluation text generator.

The evaluation pipeline treats every subclass the same way (the evaluation
is stored as failed and can be retried); ``status_code`` is kept for logs.
"""


class LLMServiceError(Exception):
    """Generation request failed or returned nothing usable."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class LLMRateLimitError(LLMServiceError):
    """Provider quota exhausted; ``retry_after`` is in seconds."""

    def __init__(self, message: str, retry_after: float = 60.0):
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class LLMConnectionError(LLMServiceError):
    """Provider unreachable or timed out."""


class LLMAuthenticationError(LLMServiceError):
    """API key missing or rejected."""
