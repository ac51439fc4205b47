"""
arete.api.main — FastAPI application entry point
=================================================

Run with::

    uvicorn arete.api.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

load_dotenv()

from arete.api.deps import get_engine  # noqa: E402
from arete.api.routes.events import router as events_router  # noqa: E402
from arete.api.routes.progress import router as progress_router  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle: warm the DB engine."""
    engine = app.dependency_overrides.get(get_engine, get_engine)()
    logger.info("Arete API started, engine ready (%s)", engine.url.database)
    yield
    logger.info("Arete API shutting down")


app = FastAPI(
    title="Arete Progress API",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(events_router, prefix="/api")
app.include_router(progress_router, prefix="/api")


@app.get("/api/health")
def health():
    return {"status": "ok"}
