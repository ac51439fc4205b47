"""
tests/test_progress_service.py — Progress Read Model & Claims
=============================================================
"""

from __future__ import annotations

import pytest
from sqlalchemy.orm import Session

from arete.database.models import UserProgress
from arete.services.progress_service import claim_achievement, get_progress

USER = "user-1"


def _seed(engine, **fields) -> None:
    with Session(engine) as session:
        session.add(UserProgress(user_id=USER, **fields))
        session.commit()


class TestGetProgress:
    def test_unknown_user(self, db_engine):
        assert get_progress(db_engine, USER) is None

    def test_level_fields(self, db_engine):
        _seed(db_engine, total_xp=150, level=2, category_xp={"core": 150})
        data = get_progress(db_engine, USER)

        assert data["level"] == 2
        assert data["xp_for_next_level"] == 238
        assert data["category_xp"] == {"core": 150, "push": 0, "pull": 0, "legs": 0}
        assert 0.0 <= data["progress"] <= 1.0

    def test_progress_measured_from_level_floor(self, db_engine):
        _seed(db_engine, total_xp=169, level=2)
        data = get_progress(db_engine, USER)

        # Level 2 spans 100..238 XP.
        assert data["level"] == 2
        assert data["progress"] == pytest.approx(0.5)


class TestClaimAchievement:
    def test_claim_moves_to_claimed(self, db_engine):
        _seed(db_engine, total_xp=90, pending_achievements=["discipline_streak_3"])

        ok, message = claim_achievement(db_engine, USER, "discipline_streak_3")
        assert ok, message

        data = get_progress(db_engine, USER)
        assert data["pending_achievements"] == []
        assert data["claimed_achievements"] == ["discipline_streak_3"]
        assert data["total_xp"] == 90

    def test_claim_unknown_user(self, db_engine):
        assert claim_achievement(db_engine, USER, "x") == (False, "User progress not found.")

    def test_claim_not_pending(self, db_engine):
        _seed(db_engine)
        ok, message = claim_achievement(db_engine, USER, "discipline_streak_3")
        assert not ok
        assert message == "Achievement is not available for claiming."

    def test_claim_twice(self, db_engine):
        _seed(db_engine, claimed_achievements=["discipline_streak_3"])
        assert claim_achievement(db_engine, USER, "discipline_streak_3") == (
            False, "Achievement already claimed."
        )
