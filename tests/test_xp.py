"""
tests/test_xp.py — Unit Tests for XP Calculation
=================================================
"""

from __future__ import annotations

import pytest

from arete.database.models import Difficulty, EventSource
from arete.engine.xp import XpBreakdown, XpRules, calculate_xp, streak_multiplier


class TestCalculateXp:
    def test_deterministic(self):
        """Same inputs always give the same breakdown."""
        first = calculate_xp(10, 3, "medium", "core")
        second = calculate_xp(10, 3, "medium", "core")
        assert first == second
        assert first.to_dict() == second.to_dict()

    def test_breakdown_fields(self):
        result = calculate_xp(10, 3, Difficulty.MEDIUM, "core")
        assert isinstance(result, XpBreakdown)
        assert result.base_xp == 10
        assert result.streak_multiplier == pytest.approx(1.3)
        assert result.difficulty_multiplier == 1.0
        assert result.category_bonus == 0
        assert result.milestone_bonus == 0
        assert result.total_xp == 13

    def test_difficulty_multiplier(self):
        assert calculate_xp(50, 0, Difficulty.EASY).total_xp == 40
        assert calculate_xp(50, 0, Difficulty.HARD).total_xp == 65

    def test_milestone_bonus_added_after_multipliers(self):
        result = calculate_xp(50, 7, "medium", "core", milestone_bonus=70)
        assert result.total_xp == 85 + 70

    def test_category_bonus_from_rules(self):
        rules = XpRules(category_bonus={"legs": 5})
        assert calculate_xp(10, 0, "medium", "legs", rules=rules).category_bonus == 5
        assert calculate_xp(10, 0, "medium", "core", rules=rules).category_bonus == 0

    def test_zero_award_is_valid(self):
        assert calculate_xp(0, 0).total_xp == 0

    def test_negative_input_rejected(self):
        with pytest.raises(ValueError):
            calculate_xp(-5, 0)
        with pytest.raises(ValueError):
            calculate_xp(5, -1)

    def test_unknown_difficulty_rejected(self):
        with pytest.raises(ValueError):
            calculate_xp(10, 0, "legendary")


class TestStreakMultiplier:
    def test_monotonic_and_capped(self):
        rules = XpRules()
        values = [streak_multiplier(s, rules) for s in range(40)]
        assert values == sorted(values)
        assert max(values) == rules.streak_cap
        assert streak_multiplier(1000, rules) == rules.streak_cap

    def test_custom_cap(self):
        rules = XpRules(streak_step=0.5, streak_cap=1.5)
        assert streak_multiplier(0, rules) == 1.0
        assert streak_multiplier(10, rules) == 1.5


class TestXpRules:
    def test_base_for_source(self):
        rules = XpRules()
        assert rules.base_for(EventSource.TASK_COMPLETED) == 50
        assert rules.base_for("food_logged") == 5
        assert rules.base_for(EventSource.REVERSAL) == 0
