"""
tests/test_progress.py — Progress Snapshots, Deltas & Undo Instructions
========================================================================
"""

from __future__ import annotations

import pytest

from arete.constants import level_for_xp, level_progress, xp_for_level, xp_for_next_level
from arete.engine.progress import (
    ProgressDelta,
    ProgressSnapshot,
    UndoInstructions,
    apply_delta,
)


def _snapshot(**overrides) -> ProgressSnapshot:
    fields = {
        "user_id": "user-1",
        "total_xp": 120,
        "level": level_for_xp(120),
        "category_xp": {"core": 100, "push": 20, "pull": 0, "legs": 0},
        "pending_achievements": frozenset({"discipline_streak_3"}),
        "claimed_achievements": frozenset({"meals_logged_100"}),
        "action_counts": {"food_logged": 100, "task_completed": 3},
    }
    fields.update(overrides)
    return ProgressSnapshot(**fields)


DELTA = ProgressDelta(
    xp=80,
    category_xp={"core": 80},
    unlock_achievements=("discipline_streak_7",),
    action_counts={"task_completed": 1},
)


class TestLevelFormula:
    def test_known_levels(self):
        assert level_for_xp(0) == 1
        assert level_for_xp(99) == 1
        assert level_for_xp(100) == 2
        assert level_for_xp(-50) == 1

    def test_next_level_target(self):
        assert xp_for_next_level(1) == 100
        assert xp_for_next_level(2) == 238

    def test_progress_fraction(self):
        assert level_progress(0) == 0.0
        assert level_progress(50) == 0.5

    def test_progress_starts_at_level_floor(self):
        assert xp_for_level(1) == 0
        assert xp_for_level(2) == 100
        assert xp_for_level(3) == 238
        assert level_for_xp(169) == 2
        assert level_progress(100) == 0.0
        assert level_progress(169) == pytest.approx(0.5)
        assert level_progress(238) == 0.0


class TestApplyDelta:
    def test_apply(self):
        after = apply_delta(_snapshot(), DELTA)
        assert after.total_xp == 200
        assert after.level == level_for_xp(200)
        assert after.category_xp["core"] == 180
        assert "discipline_streak_7" in after.pending_achievements
        assert after.action_counts["task_completed"] == 4

    def test_inverse_restores_state(self):
        before = _snapshot()
        restored = apply_delta(apply_delta(before, DELTA), DELTA.inverse())
        assert restored.to_state_dict() == before.to_state_dict()

    def test_first_action_round_trip_drops_zero_count(self):
        before = _snapshot(action_counts={})
        after = apply_delta(before, DELTA)
        assert after.action_counts == {"task_completed": 1}
        restored = apply_delta(after, DELTA.inverse())
        assert restored.action_counts == {}
        assert restored.category_xp == {"core": 100, "push": 20, "pull": 0, "legs": 0}

    def test_lock_removes_claimed(self):
        after = apply_delta(_snapshot(), ProgressDelta(lock_achievements=("meals_logged_100",)))
        assert "meals_logged_100" not in after.claimed_achievements
        assert "meals_logged_100" not in after.pending_achievements

    def test_unlock_already_claimed_stays_claimed(self):
        after = apply_delta(_snapshot(), ProgressDelta(unlock_achievements=("meals_logged_100",)))
        assert "meals_logged_100" in after.claimed_achievements
        assert "meals_logged_100" not in after.pending_achievements

    def test_level_is_derived(self):
        stale = _snapshot(level=42)
        assert apply_delta(stale, ProgressDelta()).level == level_for_xp(120)


class TestUndoInstructions:
    def test_for_delta(self):
        before = _snapshot()
        undo = UndoInstructions.for_delta(DELTA, before)
        assert undo.subtract_xp == -80
        assert undo.lock_achievements == ("discipline_streak_7",)
        assert undo.revert_level == before.level
        assert undo.domain_specific["action_counts"] == {"task_completed": -1}

    def test_stored_form_reapplies(self):
        before = _snapshot()
        after = apply_delta(before, DELTA)
        stored = UndoInstructions.for_delta(DELTA, before).to_dict()
        restored = apply_delta(after, UndoInstructions.from_dict(stored).as_delta())
        assert restored.to_state_dict() == before.to_state_dict()

    def test_state_dict_is_sorted(self):
        state = _snapshot(pending_achievements=frozenset({"b", "a"})).to_state_dict()
        assert state["pending_achievements"] == ["a", "b"]
