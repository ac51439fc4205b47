"""
arete.api.deps — FastAPI dependency injection
==============================================
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy import Engine

from arete.config import AreteConfig, load_config
from arete.database.engine import create_db_engine
from arete.services.coordinator import EventCoordinator


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> AreteConfig:
    return load_config(os.getenv("ARETE_CONFIG", "config.yaml"))


def get_coordinator(
    engine: Annotated[Engine, Depends(get_engine)],
    cfg: Annotated[AreteConfig, Depends(get_config)],
) -> EventCoordinator:
    return EventCoordinator.from_engine(engine, cfg)
