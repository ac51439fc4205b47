"""
alembic/env.py — Migration Environment for the Arete Schema
============================================================

The database URL comes from ``DATABASE_URL`` (via ``.env``), never from
alembic.ini.  Online migrations reuse :func:`arete.database.engine.create_db_engine`
so a missing URL fails with the same message as the application.
"""

from __future__ import annotations

import logging
import os
from logging.config import fileConfig

from dotenv import load_dotenv

from alembic import context
from arete.database.engine import create_db_engine
from arete.database.models import Base

load_dotenv()

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

target_metadata = Base.metadata

# Autogenerate also diffs column types and server defaults.
COMPARE_OPTIONS = {"compare_type": True, "compare_server_default": True}


def _database_url() -> str:
    url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError("DATABASE_URL is not set; cannot run migrations.")
    return url


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of connecting."""
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **COMPARE_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_db_engine(_database_url())
    logger.info("Migrating %s", engine.url.render_as_string(hide_password=True))
    try:
        with engine.connect() as connection:
            context.configure(
                connection=connection,
                target_metadata=target_metadata,
                **COMPARE_OPTIONS,
            )
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
