"""Initial progress schema: user_progress, event_log, tasks

Revision ID: 0a1e7c3b9d52
Revises:
Create Date: 2026-10-17 09:12:41.208311

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '0a1e7c3b9d52'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create user_progress, event_log and tasks."""

    # --- user_progress ---
    op.create_table(
        "user_progress",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("total_xp", sa.Integer, nullable=False, server_default="0"),
        sa.Column("level", sa.Integer, nullable=False, server_default="1"),
        sa.Column("category_xp", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column("pending_achievements", postgresql.JSONB, nullable=False, server_default="[]"),
        sa.Column("claimed_achievements", postgresql.JSONB, nullable=False, server_default="[]"),
        sa.Column("action_counts", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- event_log ---
    op.create_table(
        "event_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("token", sa.String(128), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("source", sa.String(30), nullable=False),
        sa.Column("subject_id", sa.String(100), nullable=True),
        sa.Column("contract_data", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column("reversal_data", postgresql.JSONB, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="completed"),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column(
            "timestamp",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("reversed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reversed_by_token", sa.String(128), nullable=True),
    )
    # Idempotency guard: one ledger entry per token
    op.create_index("ix_event_log_token", "event_log", ["token"], unique=True)
    op.create_index("ix_event_log_user_time", "event_log", ["user_id", "timestamp"])
    op.create_index("ix_event_log_user_status", "event_log", ["user_id", "status"])
    op.create_index("ix_event_log_status_time", "event_log", ["status", "timestamp"])
    op.create_index("ix_event_log_subject", "event_log", ["user_id", "source", "subject_id"])

    # --- tasks ---
    op.create_table(
        "tasks",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("recurrence_pattern", sa.String(10), nullable=False, server_default="daily"),
        sa.Column("custom_days", postgresql.JSONB, nullable=False, server_default="[]"),
        sa.Column("created_on", sa.Date, nullable=False),
        sa.Column("completion_history", postgresql.JSONB, nullable=False, server_default="[]"),
        sa.Column("current_streak", sa.Integer, nullable=False, server_default="0"),
        sa.Column("best_streak", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_completions", sa.Integer, nullable=False, server_default="0"),
        sa.Column("difficulty", sa.String(10), nullable=False, server_default="medium"),
        sa.Column("category", sa.String(10), nullable=False, server_default="core"),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_tasks_user_id", "tasks", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_tasks_user_id", table_name="tasks")
    op.drop_table("tasks")
    op.drop_index("ix_event_log_subject", table_name="event_log")
    op.drop_index("ix_event_log_status_time", table_name="event_log")
    op.drop_index("ix_event_log_user_status", table_name="event_log")
    op.drop_index("ix_event_log_user_time", table_name="event_log")
    op.drop_index("ix_event_log_token", table_name="event_log")
    op.drop_table("event_log")
    op.drop_table("user_progress")
