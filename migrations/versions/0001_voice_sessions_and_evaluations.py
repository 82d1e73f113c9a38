"""Create voice session, transcript, evaluation and coach tables

Revision ID: 0001a7c3e9f2
Revises:
Create Date: 2026-10-18

Adds:
- voice_sessions: One row per coaching conversation
- transcripts / transcript_speakers / transcript_utterances: Append-only
  utterance log, deduplicated per (transcript, entry id)
- session_evaluations: One evaluation per session
- coaches / coach_shares / user_profiles: Coach catalog and user context
"""

from typing import Sequence, Union

import sqlalchemy as sa
import sqlmodel
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001a7c3e9f2"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_STR = sqlmodel.sql.sqltypes.AutoString


def upgrade() -> None:
    """Create all tables."""
    op.create_table(
        "voice_sessions",
        sa.Column("id", _STR(), nullable=False),
        sa.Column("user_id", _STR(), nullable=False),
        sa.Column("coach_id", _STR(), nullable=False),
        sa.Column(
            "session_type",
            sa.Enum("regular", "onboarding", name="sessiontype"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum("active", "paused", "ended", "error", "abandoned", name="sessionstatus"),
            nullable=False,
        ),
        sa.Column("external_session_id", _STR(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("ended_at", sa.DateTime(), nullable=True),
        sa.Column("duration_ms", sa.Integer(), nullable=False),
        sa.Column("title", _STR(length=200), nullable=True),
        sa.Column("summary", _STR(length=2000), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_voice_sessions_user_id"), "voice_sessions", ["user_id"])
    op.create_index(op.f("ix_voice_sessions_coach_id"), "voice_sessions", ["coach_id"])
    op.create_index(op.f("ix_voice_sessions_status"), "voice_sessions", ["status"])
    op.create_index(op.f("ix_voice_sessions_created_at"), "voice_sessions", ["created_at"])
    op.create_index(
        "uq_voice_sessions_live_user",
        "voice_sessions",
        ["user_id"],
        unique=True,
        sqlite_where=sa.text("status IN ('active', 'paused')"),
        postgresql_where=sa.text("status IN ('active', 'paused')"),
    )

    op.create_table(
        "transcripts",
        sa.Column("id", _STR(), nullable=False),
        sa.Column("session_id", _STR(), nullable=False),
        sa.Column("user_id", _STR(), nullable=False),
        sa.Column("coach_id", _STR(), nullable=False),
        sa.Column("language", _STR(length=8), nullable=False),
        sa.Column("total_utterances", sa.Integer(), nullable=False),
        sa.Column("last_synced_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["session_id"], ["voice_sessions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("session_id"),
    )
    op.create_index(op.f("ix_transcripts_session_id"), "transcripts", ["session_id"])
    op.create_index(op.f("ix_transcripts_user_id"), "transcripts", ["user_id"])
    op.create_index(op.f("ix_transcripts_coach_id"), "transcripts", ["coach_id"])

    op.create_table(
        "transcript_speakers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("transcript_id", _STR(), nullable=False),
        sa.Column("speaker_id", _STR(length=64), nullable=False),
        sa.Column("name", _STR(length=100), nullable=False),
        sa.Column("role", sa.Enum("user", "coach", name="speakerrole"), nullable=False),
        sa.ForeignKeyConstraint(["transcript_id"], ["transcripts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("transcript_id", "speaker_id", name="uq_transcript_speaker"),
    )
    op.create_index(
        op.f("ix_transcript_speakers_transcript_id"), "transcript_speakers", ["transcript_id"]
    )

    op.create_table(
        "transcript_utterances",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("transcript_id", _STR(), nullable=False),
        sa.Column("entry_id", _STR(length=128), nullable=False),
        sa.Column("speaker_id", _STR(length=64), nullable=False),
        sa.Column("content", _STR(), nullable=False),
        sa.Column("start_offset_ms", sa.Integer(), nullable=False),
        sa.Column("end_offset_ms", sa.Integer(), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("confidence", sa.Float(), nullable=True),
        sa.ForeignKeyConstraint(["transcript_id"], ["transcripts.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("transcript_id", "entry_id", name="uq_transcript_entry"),
    )
    op.create_index(
        op.f("ix_transcript_utterances_transcript_id"),
        "transcript_utterances",
        ["transcript_id"],
    )

    op.create_table(
        "session_evaluations",
        sa.Column("id", _STR(), nullable=False),
        sa.Column("session_id", _STR(), nullable=False),
        sa.Column("user_id", _STR(), nullable=False),
        sa.Column("coach_id", _STR(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "generating", "completed", "failed", name="evaluationstatus"),
            nullable=False,
        ),
        sa.Column("overall_summary", _STR(), nullable=True),
        sa.Column("insights_json", _STR(), nullable=True),
        sa.Column("commitments_json", _STR(), nullable=True),
        sa.Column("scores_json", _STR(), nullable=True),
        sa.Column("tips_json", _STR(), nullable=True),
        sa.Column("resources_json", _STR(), nullable=True),
        sa.Column("model_used", _STR(length=100), nullable=True),
        sa.Column("generation_time_ms", sa.Integer(), nullable=True),
        sa.Column("error_message", _STR(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["session_id"], ["voice_sessions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("session_id"),
    )
    op.create_index(
        op.f("ix_session_evaluations_session_id"), "session_evaluations", ["session_id"]
    )
    op.create_index(op.f("ix_session_evaluations_user_id"), "session_evaluations", ["user_id"])
    op.create_index(
        op.f("ix_session_evaluations_coach_id"), "session_evaluations", ["coach_id"]
    )
    op.create_index(op.f("ix_session_evaluations_status"), "session_evaluations", ["status"])

    op.create_table(
        "coaches",
        sa.Column("id", _STR(), nullable=False),
        sa.Column("name", _STR(length=100), nullable=False),
        sa.Column("avatar", _STR(length=500), nullable=True),
        sa.Column("avatar_gender", _STR(length=16), nullable=True),
        sa.Column("specialty", _STR(length=100), nullable=False),
        sa.Column("category", _STR(length=50), nullable=False),
        sa.Column("system_prompt", _STR(), nullable=False),
        sa.Column(
            "tone",
            sa.Enum(
                "professional", "warm", "direct", "casual", "challenging", name="coachtone"
            ),
            nullable=False,
        ),
        sa.Column("coaching_style_json", _STR(), nullable=True),
        sa.Column("methodology", _STR(length=200), nullable=True),
        sa.Column("language", _STR(length=50), nullable=False),
        sa.Column("owner_user_id", _STR(), nullable=True),
        sa.Column("is_published", sa.Boolean(), nullable=False),
        sa.Column("is_onboarding", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_coaches_owner_user_id"), "coaches", ["owner_user_id"])
    op.create_index(op.f("ix_coaches_is_published"), "coaches", ["is_published"])

    op.create_table(
        "coach_shares",
        sa.Column("id", _STR(), nullable=False),
        sa.Column("coach_id", _STR(), nullable=False),
        sa.Column("shared_with_user_id", _STR(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("pending", "accepted", "declined", "revoked", name="sharestatus"),
            nullable=False,
        ),
        sa.Column(
            "permission",
            sa.Enum("view", "use", "edit", name="sharepermission"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["coach_id"], ["coaches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("coach_id", "shared_with_user_id", name="uq_coach_share"),
    )
    op.create_index(op.f("ix_coach_shares_coach_id"), "coach_shares", ["coach_id"])
    op.create_index(
        op.f("ix_coach_shares_shared_with_user_id"), "coach_shares", ["shared_with_user_id"]
    )

    op.create_table(
        "user_profiles",
        sa.Column("user_id", _STR(), nullable=False),
        sa.Column("display_name", _STR(length=100), nullable=False),
        sa.Column("personal_context", _STR(length=4000), nullable=True),
        sa.Column("preferred_language", _STR(length=50), nullable=False),
        sa.Column("primary_goals", _STR(length=2000), nullable=True),
        sa.Column("challenges_json", _STR(), nullable=True),
        sa.Column("is_pro", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("user_id"),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("user_profiles")
    op.drop_index(op.f("ix_coach_shares_shared_with_user_id"), table_name="coach_shares")
    op.drop_index(op.f("ix_coach_shares_coach_id"), table_name="coach_shares")
    op.drop_table("coach_shares")
    op.drop_index(op.f("ix_coaches_is_published"), table_name="coaches")
    op.drop_index(op.f("ix_coaches_owner_user_id"), table_name="coaches")
    op.drop_table("coaches")
    op.drop_table("session_evaluations")
    op.drop_table("transcript_utterances")
    op.drop_table("transcript_speakers")
    op.drop_table("transcripts")
    op.drop_index("uq_voice_sessions_live_user", table_name="voice_sessions")
    op.drop_table("voice_sessions")
