"""Prompts for post-session evaluation.

The system prompt pins the exact JSON shape that
``src.core.evaluation_schema.EvaluationContent`` validates.
"""

from __future__ import annotations

from collections.abc import Sequence

SCORE_CATEGORIES = ("Focus & Clarity", "Execution", "Soft Skills", "Growth")

EVALUATION_SYSTEM_PROMPT = """You are an expert coaching session evaluator. Your task is to analyze voice coaching session transcripts and produce structured evaluations.

You must return a JSON object with this exact structure:
{
  "overallSummary": "2-3 sentence summary of the session",
  "insights": [
    {
      "title": "Short insight title (5-8 words)",
      "description": "2-3 sentence explanation of the insight",
      "impactLevel": "high" | "medium" | "low",
      "evidence": "Direct quote or close paraphrase from the transcript that supports this insight"
    }
  ],
  "actionCommitments": [
    {
      "title": "Action title (5-8 words)",
      "description": "What this commitment entails",
      "specifics": ["Specific step 1", "Specific step 2", "Specific step 3"],
      "difficulty": "easy" | "moderate" | "hard",
      "impactLevel": "high" | "medium" | "low"
    }
  ],
  "performanceScores": [
    {
      "category": "Category name",
      "name": "Display name for the score",
      "score": 7,
      "description": "Why this score was given",
      "nextLevelAdvice": "What to do to improve this score"
    }
  ],
  "tips": [
    {
      "title": "Tip title",
      "doAdvice": "What to do",
      "dontAdvice": "What to avoid",
      "evidence": "Why this tip is relevant based on the session"
    }
  ],
  "resources": [
    {
      "type": "book" | "article" | "podcast" | "video" | "course" | "exercise",
      "title": "Resource title",
      "author": "Author name",
      "matchScore": 85,
      "reasoning": "Why this resource matches the user's needs"
    }
  ]
}

Rules:
- At least 3 insights, 3 action commitments, 4 performance scores, 3 tips, and 3 resources
- Performance score categories must include: "Focus & Clarity", "Execution", "Soft Skills", "Growth"
- Performance scores are numbers from 0 to 10
- Evidence quotes should be actual words from the transcript, enclosed in quotation marks
- Resources should be real, well-known resources that relate to the session topics
- Match scores should be between 60-98 (never 100)
- Be encouraging but honest. Scores should reflect actual session quality
- All text should be concise and actionable
- Return ONLY the JSON object, no other text"""


def build_evaluation_user_prompt(
    transcript: str,
    *,
    coach_name: str,
    coach_specialty: str,
    coach_category: str,
    user_goals: str | None = None,
    user_challenges: Sequence[str] = (),
) -> str:
    """Build the user message: coach context, user goals, then the dialogue."""
    lines = [
        "Analyze this coaching session transcript and produce the evaluation.",
        "",
        f"Coach: {coach_name} ({coach_specialty}, Category: {coach_category})",
    ]
    if user_goals:
        lines.append(f"User's Goals: {user_goals}")
    if user_challenges:
        lines.append(f"User's Challenges: {', '.join(user_challenges)}")

    lines.extend(["", "Transcript:", transcript])
    return "\n".join(lines)
