"""
arete.services.progress_service — Progress Read Model & Achievement Claims
==========================================================================

Read side for dashboards (level, XP to next level, category XP) and the
one user-driven progress mutation outside event processing: claiming a
pending achievement.  Claiming moves the id from pending to claimed; the
bonus XP was already paid when the milestone unlocked it.
"""

from __future__ import annotations

import logging

from sqlalchemy import Engine
from sqlalchemy.orm.exc import StaleDataError

from arete.constants import level_progress, xp_for_next_level
from arete.database.engine import get_session
from arete.database.models import UserProgress
from arete.services.repositories import snapshot_from_row

logger = logging.getLogger(__name__)


def get_progress(engine: Engine, user_id: str) -> dict | None:
    """Level info and achievement sets for *user_id*, or None if unknown."""
    with get_session(engine) as session:
        row = session.get(UserProgress, user_id)
        if row is None:
            return None
        snap = snapshot_from_row(row)
        return {
            "user_id": snap.user_id,
            "total_xp": snap.total_xp,
            "level": snap.level,
            "xp_for_next_level": xp_for_next_level(snap.level),
            "progress": level_progress(snap.total_xp),
            "category_xp": dict(snap.category_xp),
            "pending_achievements": sorted(snap.pending_achievements),
            "claimed_achievements": sorted(snap.claimed_achievements),
            "action_counts": dict(snap.action_counts),
        }


def claim_achievement(engine: Engine, user_id: str, achievement_id: str) -> tuple[bool, str]:
    """Move *achievement_id* from the user's pending set to claimed.

    Returns (success, message).  The claim commits when the session
    closes; a concurrent progress write makes the version check fail and
    rolls the claim back.
    """
    try:
        with get_session(engine) as session:
            row = session.get(UserProgress, user_id, with_for_update=True)
            if row is None:
                return False, "User progress not found."

            claimed = set(row.claimed_achievements or [])
            pending = set(row.pending_achievements or [])
            if achievement_id in claimed:
                return False, "Achievement already claimed."
            if achievement_id not in pending:
                return False, "Achievement is not available for claiming."

            row.pending_achievements = sorted(pending - {achievement_id})
            row.claimed_achievements = sorted(claimed | {achievement_id})
    except StaleDataError:
        logger.warning("Concurrent update while %s claimed %s", user_id, achievement_id)
        return False, "Progress changed concurrently; try again."

    logger.info("User %s claimed achievement %s", user_id, achievement_id)
    return True, "Achievement claimed."
