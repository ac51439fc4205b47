"""
arete.database.models — SQLAlchemy 2.0 Data Models
===================================================

Tables:
- user_progress:  Per-user cumulative XP, level, category XP, achievements
- event_log:      Append-only ledger of processed events + undo instructions
- tasks:          Recurring trackable items (counters and completion history)

The ``event_log.token`` unique index is the idempotency guard: a duplicate
submission is rejected by the database, not by a check-then-write.
``user_progress.version`` is an optimistic lock so concurrent writers for
the same user cannot lose each other's updates.
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import (
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Arete ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class EventSource(enum.StrEnum):
    """Origin of an action event.  ``REVERSAL`` is only written by the coordinator."""
    TASK_COMPLETED = "task_completed"
    TASK_UNCOMPLETED = "task_uncompleted"
    FOOD_LOGGED = "food_logged"
    FOOD_DELETED = "food_deleted"
    WEIGHT_LOGGED = "weight_logged"
    WEIGHT_DELETED = "weight_deleted"
    REVERSAL = "reversal"


class EventStatus(enum.StrEnum):
    COMPLETED = "completed"
    FAILED = "failed"
    REVERSED = "reversed"


class RecurrencePattern(enum.StrEnum):
    ONCE = "once"
    DAILY = "daily"
    CUSTOM = "custom"


class Difficulty(enum.StrEnum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class ProgressCategory(enum.StrEnum):
    CORE = "core"
    PUSH = "push"
    PULL = "pull"
    LEGS = "legs"


class MilestoneDimension(enum.StrEnum):
    """Counters that can independently cross milestone thresholds."""
    TOTAL = "total"
    STREAK = "streak"
    STREAK_BEST = "streak_best"
    CROSS_DOMAIN = "cross_domain"
    MACRO_PROGRESS = "macro_progress"
    WEIGHT_LOSS = "weight_loss"
    WEIGHT_GAIN = "weight_gain"


# ---------------------------------------------------------------------------
# UserProgress
# ---------------------------------------------------------------------------
class UserProgress(Base):
    __tablename__ = "user_progress"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    total_xp: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    category_xp: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    pending_achievements: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    claimed_achievements: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    action_counts: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<UserProgress user={self.user_id} xp={self.total_xp} lvl={self.level}>"


# ---------------------------------------------------------------------------
# EventLog: append-only ledger
# ---------------------------------------------------------------------------
class EventLog(Base):
    __tablename__ = "event_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    token: Mapped[str] = mapped_column(String(128), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    source: Mapped[str] = mapped_column(String(30), nullable=False)
    subject_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    contract_data: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
    reversal_data: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EventStatus.COMPLETED
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    reversed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    reversed_by_token: Mapped[str | None] = mapped_column(String(128), nullable=True)

    __table_args__ = (
        Index("ix_event_log_token", "token", unique=True),
        Index("ix_event_log_user_time", "user_id", "timestamp"),
        Index("ix_event_log_user_status", "user_id", "status"),
        Index("ix_event_log_status_time", "status", "timestamp"),
        Index("ix_event_log_subject", "user_id", "source", "subject_id"),
    )

    @property
    def is_reversible(self) -> bool:
        return (
            self.status == EventStatus.COMPLETED
            and self.reversed_at is None
            and self.source != EventSource.REVERSAL
        )

    def __repr__(self) -> str:
        return f"<EventLog token={self.token} user={self.user_id} status={self.status}>"


# ---------------------------------------------------------------------------
# Task: recurring trackable item
# ---------------------------------------------------------------------------
class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    recurrence_pattern: Mapped[str] = mapped_column(
        String(10), nullable=False, default=RecurrencePattern.DAILY
    )
    custom_days: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    created_on: Mapped[date] = mapped_column(Date, nullable=False)
    completion_history: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    best_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_completions: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    difficulty: Mapped[str] = mapped_column(
        String(10), nullable=False, default=Difficulty.MEDIUM
    )
    category: Mapped[str] = mapped_column(
        String(10), nullable=False, default=ProgressCategory.CORE
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<Task id={self.id} user={self.user_id} name={self.name!r}>"
