"""Initial schema: users, auth sessions, conversations, messages, study-a-thons, Q&A.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_ID = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
_TS = sa.DateTime(timezone=True)


def upgrade() -> None:
    """Create all tables."""
    # --- Users and sessions ---
    op.create_table(
        "users",
        sa.Column("id", _ID, primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("username", sa.String(32), nullable=True, unique=True),
        sa.Column("password_hash", sa.String(256), nullable=False),
        sa.Column("created_at", _TS, nullable=False),
    )

    op.create_table(
        "auth_sessions",
        sa.Column("id", _ID, primary_key=True, autoincrement=True),
        sa.Column("user_id", _ID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("refresh_token_hash", sa.String(64), nullable=False, unique=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("created_at", _TS, nullable=False),
        sa.Column("expires_at", _TS, nullable=False),
        sa.Column("revoked_at", _TS, nullable=True),
    )
    op.create_index("ix_auth_sessions_user_id", "auth_sessions", ["user_id"])

    # --- Conversations ---
    op.create_table(
        "conversations",
        sa.Column("id", _ID, primary_key=True, autoincrement=True),
        sa.Column("kind", sa.String(8), nullable=False),
        sa.Column("title", sa.String(160), nullable=True),
        sa.Column("created_by", _ID, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("created_at", _TS, nullable=False),
        sa.Column("dm_key", sa.String(64), nullable=True, unique=True),
        sa.CheckConstraint("kind IN ('dm', 'group')", name="ck_conversations_kind"),
    )

    op.create_table(
        "conversation_members",
        sa.Column("id", _ID, primary_key=True, autoincrement=True),
        sa.Column(
            "conversation_id", _ID, sa.ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("user_id", _ID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.String(8), nullable=False),
        sa.Column("joined_at", _TS, nullable=False),
        sa.UniqueConstraint("conversation_id", "user_id", name="uq_conversation_members_conversation_user"),
        sa.CheckConstraint("role IN ('admin', 'member')", name="ck_conversation_members_role"),
    )
    op.create_index("ix_conversation_members_user_id", "conversation_members", ["user_id"])

    op.create_table(
        "messages",
        sa.Column("id", _ID, primary_key=True, autoincrement=True),
        sa.Column(
            "conversation_id", _ID, sa.ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("sender_id", _ID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("created_at", _TS, nullable=False),
    )
    op.create_index("ix_messages_conversation_created", "messages", ["conversation_id", "created_at", "id"])

    # --- Study-a-thons ---
    op.create_table(
        "studyathons",
        sa.Column("id", _ID, primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(120), nullable=True),
        sa.Column("starts_at", _TS, nullable=False),
        sa.Column("ends_at", _TS, nullable=True),
        sa.Column("created_by", _ID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "conversation_id",
            _ID,
            sa.ForeignKey("conversations.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("created_at", _TS, nullable=False),
    )
    op.create_index("ix_studyathons_starts_at", "studyathons", ["starts_at"])

    op.create_table(
        "studyathon_participants",
        sa.Column("id", _ID, primary_key=True, autoincrement=True),
        sa.Column("studyathon_id", _ID, sa.ForeignKey("studyathons.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", _ID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("joined_at", _TS, nullable=False),
        sa.UniqueConstraint("studyathon_id", "user_id", name="uq_studyathon_participants_studyathon_user"),
    )

    # --- Q&A ---
    op.create_table(
        "questions",
        sa.Column("id", _ID, primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(140), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("created_by", _ID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", _TS, nullable=False),
        sa.Column("tags", sa.JSON().with_variant(postgresql.JSONB(), "postgresql"), nullable=True),
    )
    op.create_index("ix_questions_created_at", "questions", ["created_at"])

    op.create_table(
        "answers",
        sa.Column("id", _ID, primary_key=True, autoincrement=True),
        sa.Column("question_id", _ID, sa.ForeignKey("questions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("created_by", _ID, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("created_at", _TS, nullable=False),
    )
    op.create_index("ix_answers_question_created", "answers", ["question_id", "created_at"])


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    op.drop_table("answers")
    op.drop_table("questions")
    op.drop_table("studyathon_participants")
    op.drop_table("studyathons")
    op.drop_table("messages")
    op.drop_table("conversation_members")
    op.drop_table("conversations")
    op.drop_table("auth_sessions")
    op.drop_table("users")
