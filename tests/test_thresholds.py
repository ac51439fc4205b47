"""
tests/test_thresholds.py — Threshold Detection & Milestone Resolution
======================================================================
"""

from __future__ import annotations

from arete.database.models import EventSource, MilestoneDimension
from arete.engine.milestones import (
    CounterChange,
    Milestone,
    default_milestones,
    resolve_milestones,
)
from arete.engine.thresholds import detect_crossings

TASK = EventSource.TASK_COMPLETED


# ===========================================================================
# detect_crossings
# ===========================================================================
class TestDetectCrossings:
    def test_boundary(self):
        """2 → 5 over [3, 5, 10] crosses 3 and 5, not 10."""
        crossings = detect_crossings(2, 5, [3, 5, 10])
        assert [c.threshold for c in crossings] == [3, 5]
        assert all(c.just_crossed for c in crossings)

    def test_previous_at_threshold_not_reported(self):
        assert detect_crossings(3, 4, [3]) == []

    def test_unchanged_or_decreasing(self):
        assert detect_crossings(5, 5, [5]) == []
        assert detect_crossings(7, 2, [3, 5]) == []

    def test_unsorted_thresholds(self):
        crossings = detect_crossings(0, 100, [50, 10, 1000])
        assert [c.threshold for c in crossings] == [10, 50]

    def test_dimension_propagated(self):
        (crossing,) = detect_crossings(6, 7, [7, 14], MilestoneDimension.STREAK)
        assert crossing.type == MilestoneDimension.STREAK
        assert crossing.current_value == 7
        assert crossing.to_dict()["type"] == "streak"


# ===========================================================================
# resolve_milestones
# ===========================================================================
class TestResolveMilestones:
    TABLE = (
        Milestone(TASK, MilestoneDimension.STREAK, 7, "streak_7", 70),
        Milestone(TASK, MilestoneDimension.STREAK, 14, "streak_14", 140),
        Milestone(TASK, MilestoneDimension.STREAK_BEST, 7, None, 10),
        Milestone(None, MilestoneDimension.CROSS_DOMAIN, 50, "cross_domain_50", 50),
        Milestone(EventSource.FOOD_LOGGED, MilestoneDimension.TOTAL, 100, "meals_logged_100", 50),
    )

    def test_achievement_and_bonus(self):
        awards = resolve_milestones(
            TASK, [CounterChange(MilestoneDimension.STREAK, 6, 7)], self.TABLE, frozenset()
        )
        assert [(a.achievement_id, a.bonus_xp) for a in awards] == [("streak_7", 70)]

    def test_already_earned_skipped(self):
        awards = resolve_milestones(
            TASK, [CounterChange(MilestoneDimension.STREAK, 6, 7)], self.TABLE, {"streak_7"}
        )
        assert awards == []

    def test_bonus_only_always_pays(self):
        awards = resolve_milestones(
            TASK, [CounterChange(MilestoneDimension.STREAK_BEST, 6, 7)], self.TABLE, {"streak_7"}
        )
        assert [(a.achievement_id, a.bonus_xp) for a in awards] == [(None, 10)]

    def test_source_scoping(self):
        change = [CounterChange(MilestoneDimension.TOTAL, 99, 100)]
        assert resolve_milestones(TASK, change, self.TABLE, frozenset()) == []
        food = resolve_milestones(EventSource.FOOD_LOGGED, change, self.TABLE, frozenset())
        assert [a.achievement_id for a in food] == ["meals_logged_100"]

    def test_any_source_rows(self):
        change = [CounterChange(MilestoneDimension.CROSS_DOMAIN, 49, 50)]
        for source in (TASK, EventSource.FOOD_LOGGED):
            awards = resolve_milestones(source, change, self.TABLE, frozenset())
            assert [a.achievement_id for a in awards] == ["cross_domain_50"]

    def test_multiple_dimensions(self):
        awards = resolve_milestones(
            TASK,
            [
                CounterChange(MilestoneDimension.STREAK, 6, 14),
                CounterChange(MilestoneDimension.STREAK_BEST, 6, 14),
            ],
            self.TABLE,
            frozenset(),
        )
        assert sum(a.bonus_xp for a in awards) == 70 + 140 + 10


class TestDefaultMilestones:
    def test_contains_expected_rows(self):
        ids = {m.achievement_id for m in default_milestones() if m.achievement_id}
        assert {"discipline_streak_7", "discipline_completion_10", "meals_logged_100"} <= ids

    def test_macro_rows_are_bonus_only(self):
        macro = [m for m in default_milestones() if m.dimension == MilestoneDimension.MACRO_PROGRESS]
        assert [(m.threshold, m.bonus_xp, m.achievement_id) for m in macro] == [
            (80, 15, None),
            (100, 25, None),
        ]

    def test_weight_rows_scoped_to_weight_logged(self):
        weight = [m for m in default_milestones() if m.source == EventSource.WEIGHT_LOGGED]
        ids = {m.achievement_id for m in weight}
        assert {"weight_entries_10", "weight_entries_5000", "weight_loss_10kg", "weight_gain_5kg"} <= ids
        assert "weight_gain_10kg" not in ids
        assert {m.bonus_xp for m in weight} == {15}

    def test_weight_loss_crosses_every_passed_threshold(self):
        changes = [CounterChange(MilestoneDimension.WEIGHT_LOSS, 0, 5.5)]
        awards = resolve_milestones(
            EventSource.WEIGHT_LOGGED, changes, default_milestones(), frozenset()
        )
        assert [a.achievement_id for a in awards] == ["weight_loss_2kg", "weight_loss_5kg"]
