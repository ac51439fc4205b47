"""
arete.services.repositories — Persistence Contracts & SQLAlchemy Stores
=======================================================================

The coordinator depends only on the narrow protocols below
(:class:`ProgressRepository`, :class:`EventLogRepository`,
:class:`TaskRepository`) gathered in a :class:`UnitOfWork` that commits
them together.  :class:`SqlUnitOfWork` is the production implementation;
everything in one unit of work shares a single SQLAlchemy session, so the
progress mutation, task update and ledger write are one transaction.

Guarantees enforced by the database, not by check-then-write:

* ``event_log.token`` is unique; a racing duplicate fails with
  :class:`~arete.errors.DuplicateTokenError`.
* ``user_progress.version`` is an optimistic lock; a concurrent writer
  fails the flush with ``StaleDataError``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import date, datetime
from typing import Protocol

from sqlalchemy import Engine, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from arete.constants import PROGRESS_CATEGORIES
from arete.database.models import EventLog, EventSource, EventStatus, Task, UserProgress
from arete.engine.progress import ProgressSnapshot
from arete.errors import DuplicateTokenError, PersistenceError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------
class ProgressRepository(Protocol):
    def get(self, user_id: str) -> ProgressSnapshot: ...

    def save(self, snapshot: ProgressSnapshot) -> ProgressSnapshot: ...


class EventLogRepository(Protocol):
    def get(self, token: str) -> EventLog | None: ...

    def add(self, entry: EventLog) -> None: ...

    def mark_reversed(self, entry: EventLog, reversed_at: datetime, reversed_by_token: str) -> None: ...

    def list_for_user(
        self,
        user_id: str,
        since: datetime | None = None,
        until: datetime | None = None,
        status: EventStatus | None = None,
        limit: int = 50,
    ) -> Sequence[EventLog]: ...

    def list_by_status(self, status: EventStatus, limit: int = 100) -> Sequence[EventLog]: ...

    def find_reversible(self, user_id: str, limit: int = 100) -> Sequence[EventLog]: ...

    def find_latest_reversible(
        self,
        user_id: str,
        source: EventSource,
        subject_id: str,
        on_day: date | None = None,
        since: datetime | None = None,
    ) -> EventLog | None: ...


class TaskRepository(Protocol):
    def get(self, task_id: str, user_id: str) -> Task | None: ...

    def update(self, task: Task, fields: dict) -> None: ...


class UnitOfWork(Protocol):
    progress: ProgressRepository
    event_log: EventLogRepository
    tasks: TaskRepository

    def __enter__(self) -> UnitOfWork: ...

    def __exit__(self, *exc) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def snapshot_from_row(row: UserProgress) -> ProgressSnapshot:
    categories = {c: 0 for c in PROGRESS_CATEGORIES}
    categories.update({k: int(v) for k, v in (row.category_xp or {}).items()})
    return ProgressSnapshot(
        user_id=row.user_id,
        total_xp=row.total_xp,
        level=row.level,
        category_xp=categories,
        pending_achievements=frozenset(row.pending_achievements or ()),
        claimed_achievements=frozenset(row.claimed_achievements or ()),
        action_counts={k: int(v) for k, v in (row.action_counts or {}).items() if v},
        version=row.version,
    )


def task_state(task: Task) -> dict:
    """The task fields the coordinator may change, as stored in undo data."""
    return {
        "task_id": task.id,
        "completion_history": list(task.completion_history or []),
        "current_streak": task.current_streak,
        "best_streak": task.best_streak,
        "total_completions": task.total_completions,
    }


# ---------------------------------------------------------------------------
# SQLAlchemy implementations
# ---------------------------------------------------------------------------
class SqlProgressRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: str) -> ProgressSnapshot:
        """Current progress for *user_id*; an unsaved zero snapshot if none exists.

        On PostgreSQL the row is locked ``FOR UPDATE`` for the rest of the
        transaction.
        """
        row = self.session.get(UserProgress, user_id, with_for_update=True)
        if row is None:
            return ProgressSnapshot(user_id=user_id)
        return snapshot_from_row(row)

    def save(self, snapshot: ProgressSnapshot) -> ProgressSnapshot:
        """Persist *snapshot*; its ``version`` must match the stored row."""
        row = self.session.get(UserProgress, snapshot.user_id)
        if row is None:
            if snapshot.version is not None:
                raise PersistenceError(
                    f"Progress for {snapshot.user_id} disappeared during the update"
                )
            row = UserProgress(user_id=snapshot.user_id)
            self.session.add(row)
        elif row.version != snapshot.version:
            raise PersistenceError(
                f"Progress for {snapshot.user_id} changed concurrently "
                f"(expected version {snapshot.version}, found {row.version})"
            )

        state = snapshot.to_state_dict()
        row.total_xp = state["total_xp"]
        row.level = state["level"]
        row.category_xp = state["category_xp"]
        row.pending_achievements = state["pending_achievements"]
        row.claimed_achievements = state["claimed_achievements"]
        row.action_counts = state["action_counts"]
        self.session.flush()
        return snapshot_from_row(row)


class SqlEventLogRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, token: str) -> EventLog | None:
        return self.session.scalar(select(EventLog).where(EventLog.token == token))

    def add(self, entry: EventLog) -> None:
        """Insert *entry* inside a SAVEPOINT.

        Raises
        ------
        DuplicateTokenError
            If the token index rejects the row.  The outer transaction
            stays usable.
        """
        try:
            with self.session.begin_nested():   # SAVEPOINT
                self.session.add(entry)
                self.session.flush()
        except IntegrityError:
            raise DuplicateTokenError(entry.token) from None

    def mark_reversed(self, entry: EventLog, reversed_at: datetime, reversed_by_token: str) -> None:
        entry.status = EventStatus.REVERSED
        entry.reversed_at = reversed_at
        entry.reversed_by_token = reversed_by_token
        self.session.flush()

    def list_for_user(
        self,
        user_id: str,
        since: datetime | None = None,
        until: datetime | None = None,
        status: EventStatus | None = None,
        limit: int = 50,
    ) -> Sequence[EventLog]:
        stmt = select(EventLog).where(EventLog.user_id == user_id)
        if since is not None:
            stmt = stmt.where(EventLog.timestamp >= since)
        if until is not None:
            stmt = stmt.where(EventLog.timestamp < until)
        if status is not None:
            stmt = stmt.where(EventLog.status == status)
        stmt = stmt.order_by(EventLog.timestamp.desc(), EventLog.id.desc()).limit(limit)
        return self.session.scalars(stmt).all()

    def list_by_status(self, status: EventStatus, limit: int = 100) -> Sequence[EventLog]:
        stmt = (
            select(EventLog)
            .where(EventLog.status == status)
            .order_by(EventLog.timestamp.desc(), EventLog.id.desc())
            .limit(limit)
        )
        return self.session.scalars(stmt).all()

    def find_reversible(self, user_id: str, limit: int = 100) -> Sequence[EventLog]:
        stmt = (
            select(EventLog)
            .where(
                EventLog.user_id == user_id,
                EventLog.status == EventStatus.COMPLETED,
                EventLog.reversed_at.is_(None),
                EventLog.source != EventSource.REVERSAL,
            )
            .order_by(EventLog.timestamp.desc(), EventLog.id.desc())
            .limit(limit)
        )
        return self.session.scalars(stmt).all()

    def find_latest_reversible(
        self,
        user_id: str,
        source: EventSource,
        subject_id: str,
        on_day: date | None = None,
        since: datetime | None = None,
    ) -> EventLog | None:
        """Most recent reversible *source* event for *subject_id*.

        When *on_day* is given, only events whose contract recorded that
        subject day match.
        """
        stmt = select(EventLog).where(
            EventLog.user_id == user_id,
            EventLog.source == source,
            EventLog.subject_id == subject_id,
            EventLog.status == EventStatus.COMPLETED,
            EventLog.reversed_at.is_(None),
        )
        if since is not None:
            stmt = stmt.where(EventLog.timestamp >= since)
        stmt = stmt.order_by(EventLog.timestamp.desc(), EventLog.id.desc())
        for entry in self.session.scalars(stmt):
            if on_day is None or entry.contract_data.get("subject_day") == on_day.isoformat():
                return entry
        return None


class SqlTaskRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, task_id: str, user_id: str) -> Task | None:
        task = self.session.get(Task, task_id)
        if task is None or task.user_id != user_id:
            return None
        return task

    def update(self, task: Task, fields: dict) -> None:
        for key in ("completion_history", "current_streak", "best_streak", "total_completions"):
            if key in fields:
                value = fields[key]
                setattr(task, key, list(value) if key == "completion_history" else value)
        self.session.flush()


class SqlUnitOfWork:
    """One SQLAlchemy session shared by the three repositories.

    Usage::

        with SqlUnitOfWork(engine) as uow:
            snapshot = uow.progress.get(user_id)
            ...
            uow.commit()

    Leaving the block without :meth:`commit` rolls back.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.session: Session | None = None

    def __enter__(self) -> SqlUnitOfWork:
        self.session = Session(self.engine, expire_on_commit=False)
        self.progress = SqlProgressRepository(self.session)
        self.event_log = SqlEventLogRepository(self.session)
        self.tasks = SqlTaskRepository(self.session)
        return self

    def _active_session(self) -> Session:
        if self.session is None:
            raise RuntimeError("SqlUnitOfWork used outside its with-block")
        return self.session

    def __exit__(self, *exc) -> None:
        session = self._active_session()
        try:
            session.rollback()
        finally:
            session.close()
            self.session = None

    def commit(self) -> None:
        self._active_session().commit()

    def rollback(self) -> None:
        self._active_session().rollback()


__all__ = [
    "EventLogRepository",
    "ProgressRepository",
    "SqlEventLogRepository",
    "SqlProgressRepository",
    "SqlTaskRepository",
    "SqlUnitOfWork",
    "TaskRepository",
    "UnitOfWork",
    "snapshot_from_row",
    "task_state",
]
