"""Structural schema for generated evaluations.

The generation API returns camelCase JSON; models accept it through
aliases and dump back to camelCase for storage and responses. Validation
runs in strict JSON mode, so a quoted number or a boolean score fails
instead of being coerced. Keys the model is not asked for are dropped.
"""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel


class ImpactLevel(str, Enum):
    high = "high"
    medium = "medium"
    low = "low"


class Difficulty(str, Enum):
    easy = "easy"
    moderate = "moderate"
    hard = "hard"


class CommitmentStatus(str, Enum):
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"


class ResourceType(str, Enum):
    book = "book"
    article = "article"
    podcast = "podcast"
    video = "video"
    course = "course"
    exercise = "exercise"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Insight(_CamelModel):
    title: str
    description: str
    impact_level: ImpactLevel
    evidence: str


class ActionCommitment(_CamelModel):
    title: str
    description: str
    specifics: list[str]
    difficulty: Difficulty
    impact_level: ImpactLevel


class PerformanceScore(_CamelModel):
    category: str
    name: str
    score: float = Field(ge=0, le=10)
    description: str
    next_level_advice: str


class Tip(_CamelModel):
    title: str
    do_advice: str
    dont_advice: str
    evidence: str


class ResourceRecommendation(_CamelModel):
    type: ResourceType
    title: str
    author: str
    match_score: float = Field(ge=0, le=100)
    reasoning: str
    url: str | None = None


class EvaluationContent(_CamelModel):
    """A complete, validated evaluation as produced by the model."""

    overall_summary: str
    insights: list[Insight] = Field(min_length=3)
    action_commitments: list[ActionCommitment] = Field(min_length=3)
    performance_scores: list[PerformanceScore] = Field(min_length=4)
    tips: list[Tip] = Field(min_length=3)
    resources: list[ResourceRecommendation] = Field(min_length=3)


class EvaluationParseError(Exception):
    """Raised when the response is not JSON."""

    pass


class EvaluationSchemaError(Exception):
    """Raised when the response JSON does not match EvaluationContent."""

    pass


def _summarize_errors(error: ValidationError, limit: int = 5) -> str:
    parts = []
    for item in error.errors()[:limit]:
        location = ".".join(str(p) for p in item["loc"]) or "<root>"
        parts.append(f"{location}: {item['msg']}")
    extra = error.error_count() - limit
    if extra > 0:
        parts.append(f"(+{extra} more)")
    return "; ".join(parts)


def parse_evaluation(raw: str) -> EvaluationContent:
    """Parse and validate raw model output.

    Raises:
        EvaluationParseError: Output is not a JSON object
        EvaluationSchemaError: Output is missing fields or breaks a bound
    """
    try:
        data: Any = json.loads(raw)
    except json.JSONDecodeError as e:
        raise EvaluationParseError(f"Invalid JSON in evaluation response: {e}") from e
    if not isinstance(data, dict):
        raise EvaluationParseError("Evaluation response is not a JSON object")

    try:
        return EvaluationContent.model_validate_json(raw, strict=True)
    except ValidationError as e:
        raise EvaluationSchemaError(
            f"Evaluation response failed validation: {_summarize_errors(e)}"
        ) from e
