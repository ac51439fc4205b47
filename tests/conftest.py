"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest
from sqlalchemy import Engine, create_engine, event

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# SQLite doesn't support JSONB natively, but SQLAlchemy's JSON type works.
# We register a custom type compiler so SQLite renders JSONB as TEXT.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB
from sqlalchemy.orm import Session

from arete.database.models import Base, Task
from arete.services.coordinator import EventCoordinator
from arete.services.repositories import SqlUnitOfWork

_jsonb_sqlite_registered = False

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=UTC)


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent)."""
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Arete tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in the async routes).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    # pysqlite emits BEGIN lazily, which breaks SAVEPOINT semantics; let
    # SQLAlchemy control the transaction boundaries instead.
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def coordinator(db_engine: Engine) -> EventCoordinator:
    """Coordinator on the SQLite engine with a frozen clock."""
    return EventCoordinator(lambda: SqlUnitOfWork(db_engine), clock=lambda: NOW)


@pytest.fixture
def make_task(db_engine: Engine):
    """Factory inserting a task row directly (task CRUD lives outside the coordinator)."""

    def _make(task_id: str = "task-1", user_id: str = "user-1", **fields) -> None:
        with Session(db_engine) as session:
            session.add(Task(
                id=task_id,
                user_id=user_id,
                name=fields.pop("name", "Meditate"),
                created_on=fields.pop("created_on", date(2026, 1, 1)),
                **fields,
            ))
            session.commit()

    return _make


@pytest.fixture
def client(db_engine: Engine, coordinator: EventCoordinator):
    """FastAPI TestClient wired to the in-memory engine."""
    from fastapi.testclient import TestClient

    from arete.api.deps import get_coordinator, get_engine
    from arete.api.main import app

    app.dependency_overrides[get_engine] = lambda: db_engine
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
