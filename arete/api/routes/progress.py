"""
arete.api.routes.progress — User progress & achievement claims
===============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import Engine

from arete.api.deps import get_engine
from arete.services import progress_service

router = APIRouter(prefix="/progress", tags=["progress"])


@router.get("/{user_id}")
def get_progress(user_id: str, engine: Engine = Depends(get_engine)):
    """Level, XP to next level, category XP and achievement sets."""
    progress = progress_service.get_progress(engine, user_id)
    if progress is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "User progress not found")
    return progress


@router.post("/{user_id}/achievements/{achievement_id}/claim")
def claim_achievement(user_id: str, achievement_id: str, engine: Engine = Depends(get_engine)):
    ok, message = progress_service.claim_achievement(engine, user_id, achievement_id)
    if not ok:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, message)
    return {"claimed": True, "message": message}
