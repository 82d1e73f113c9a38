"""LLM services (Groq)."""

from src.services.llm.exceptions import (
    LLMAuthenticationError,
    LLMConnectionError,
    LLMRateLimitError,
    LLMServiceError,
)
from src.services.llm.groq import GroqService
from src.services.llm.protocol import JSONGenerator

__all__ = [
    # Protocol
    "JSONGenerator",
    # Implementation
    "GroqService",
    # Exceptions
    "LLMServiceError",
    "LLMRateLimitError",
    "LLMConnectionError",
    "LLMAuthenticationError",
]
