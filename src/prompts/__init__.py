"""Prompt templates and builders for LLM interactions."""

from src.prompts.evaluation import (
    EVALUATION_SYSTEM_PROMPT,
    SCORE_CATEGORIES,
    build_evaluation_user_prompt,
)
from src.prompts.session_instructions import build_session_instructions

__all__ = [
    "EVALUATION_SYSTEM_PROMPT",
    "SCORE_CATEGORIES",
    "build_evaluation_user_prompt",
    "build_session_instructions",
]
