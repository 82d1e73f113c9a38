"""System instructions sent to the real-time speech model for each session.

The language directive always comes first, ahead of the persona.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from src.core.collaborators import CoachProfile, UserContext

CONTINUITY_GUIDELINES = """# Continuity Guidelines
- Reference things the user mentioned in past sessions when relevant
- Note progress on previously discussed goals or challenges
- Use phrases like "Last time you mentioned..." or "How did X go since we last talked?"
- If the user brings up a new topic, pivot naturally"""

VOICE_GUIDELINES = """# Voice Guidelines
- Keep responses to 2-3 sentences for natural conversation flow
- Ask clarifying questions to understand the user's situation
- End responses with a question to maintain dialogue when appropriate
- Reference user's goals when relevant
- Be encouraging but honest"""


def language_directive(language: str) -> str:
    return (
        "# CRITICAL - Language Requirement\n"
        f"You MUST respond ONLY in {language}. This is non-negotiable.\n"
        f"- Speak exclusively in {language}\n"
        "- Never switch to any other language under any circumstances\n"
        f"- If unsure, default to {language}"
    )


def build_session_instructions(
    coach: CoachProfile,
    user: UserContext,
    session_history: str = "",
) -> str:
    """Assemble persona, user context, continuity memory and voice rules.

    Args:
        coach: Coach persona (system prompt, tone, style, methodology)
        user: User profile; ``preferred_language`` drives the directive
        session_history: Output of ContinuityComposer, may be empty

    Returns:
        Instruction text for the speech session
    """
    language = user.preferred_language or "English"

    style_lines = [
        f"- Tone: {coach.tone or 'professional'}",
        f"- Style: {', '.join(coach.coaching_style) or 'Supportive'}",
    ]
    if coach.methodology:
        style_lines.append(f"- Methodology: {coach.methodology}")

    sections = [
        language_directive(language),
        f"# Your Identity\n{coach.system_prompt}",
        "# Communication Style\n" + "\n".join(style_lines),
    ]

    if user.personal_context:
        sections.append(f"# User Context\n{user.personal_context}")

    if session_history:
        sections.append(session_history)
        sections.append(CONTINUITY_GUIDELINES)

    sections.append(VOICE_GUIDELINES)
    return "\n\n".join(section.strip() for section in sections if section.strip())
