"""
arete.api.routes.events — Event processing, reversal & ledger history
======================================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from arete.api.deps import get_coordinator
from arete.database.engine import run_db
from arete.database.models import EventStatus
from arete.errors import ErrorKind
from arete.services.coordinator import EventCoordinator

router = APIRouter(prefix="/events", tags=["events"])

ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.DUPLICATE_TOKEN: status.HTTP_409_CONFLICT,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.ALREADY_REVERSED: status.HTTP_409_CONFLICT,
    ErrorKind.NOT_REVERSIBLE: status.HTTP_409_CONFLICT,
    ErrorKind.PERSISTENCE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ActionEventIn(BaseModel):
    token: str
    user_id: str
    source: str
    occurred_at: datetime | None = None
    payload: dict[str, Any] = Field(default_factory=dict)


class ReverseIn(BaseModel):
    user_id: str
    reversal_token: str | None = None
    reason: str = ""


def _raise_for(result) -> None:
    if not result.success:
        code = ERROR_STATUS.get(result.error, status.HTTP_400_BAD_REQUEST)
        raise HTTPException(code, detail=result.to_dict())


# ---------------------------------------------------------------------------
# POST /events
# ---------------------------------------------------------------------------
@router.post("")
async def process_event(
    body: ActionEventIn,
    coordinator: EventCoordinator = Depends(get_coordinator),
):
    """Process one action event; a repeated token returns the cached result."""
    result = await run_db(coordinator.process, body.model_dump(exclude_none=True))
    _raise_for(result)
    return result.to_dict()


# ---------------------------------------------------------------------------
# POST /events/{token}/reverse
# ---------------------------------------------------------------------------
@router.post("/{token}/reverse")
async def reverse_event(
    token: str,
    body: ReverseIn,
    coordinator: EventCoordinator = Depends(get_coordinator),
):
    result = await run_db(
        coordinator.reverse,
        token,
        user_id=body.user_id,
        reversal_token=body.reversal_token,
        reason=body.reason,
    )
    _raise_for(result)
    return result.to_dict()


# ---------------------------------------------------------------------------
# GET /events (ledger history)
# ---------------------------------------------------------------------------
@router.get("")
def list_events(
    user_id: str,
    since: datetime | None = None,
    until: datetime | None = None,
    status_filter: EventStatus | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    coordinator: EventCoordinator = Depends(get_coordinator),
):
    """Ledger entries for a user, newest first."""
    return {
        "items": coordinator.history(
            user_id, since=since, until=until, status=status_filter, limit=limit
        ),
    }


@router.get("/reversible")
def list_reversible(
    user_id: str,
    limit: int = Query(100, ge=1, le=500),
    coordinator: EventCoordinator = Depends(get_coordinator),
):
    return {"items": coordinator.reversible_events(user_id, limit=limit)}


@router.get("/{token}")
def get_event(token: str, coordinator: EventCoordinator = Depends(get_coordinator)):
    entry = coordinator.get_event(token)
    if entry is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Event not found")
    return entry
