"""
arete.engine.xp — XP Calculation
=================================

Pure calculation: base XP × streak multiplier × difficulty multiplier,
plus an additive category bonus and the externally supplied milestone
bonus.

    total = round(base * streak_mult * difficulty_mult + category_bonus + milestone_bonus)

Same inputs always give the same :class:`XpBreakdown`; the coordinator
stores the breakdown so a later reversal can negate exactly what was
awarded.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from arete.database.models import Difficulty, EventSource

DEFAULT_DIFFICULTY_MULTIPLIERS: dict[str, float] = {
    Difficulty.EASY: 0.8,
    Difficulty.MEDIUM: 1.0,
    Difficulty.HARD: 1.3,
}

DEFAULT_BASE_XP: dict[str, int] = {
    EventSource.TASK_COMPLETED: 50,
    EventSource.FOOD_LOGGED: 5,
    EventSource.WEIGHT_LOGGED: 5,
}


@dataclass(frozen=True, slots=True)
class XpRules:
    """Tunable XP parameters.  Loaded from the ``xp`` section of config.yaml."""

    streak_step: float = 0.1
    streak_cap: float = 2.0
    difficulty_multipliers: Mapping[str, float] = field(
        default_factory=lambda: dict(DEFAULT_DIFFICULTY_MULTIPLIERS)
    )
    category_bonus: Mapping[str, int] = field(default_factory=dict)
    base_xp: Mapping[str, int] = field(default_factory=lambda: dict(DEFAULT_BASE_XP))
    daily_meal_cap: int = 5

    def base_for(self, source: str) -> int:
        return int(self.base_xp.get(str(source), 0))


@dataclass(frozen=True, slots=True)
class XpBreakdown:
    base_xp: int
    streak_multiplier: float
    milestone_bonus: int
    difficulty_multiplier: float
    category_bonus: int
    total_xp: int

    def to_dict(self) -> dict:
        return {
            "base_xp": self.base_xp,
            "streak_multiplier": self.streak_multiplier,
            "milestone_bonus": self.milestone_bonus,
            "difficulty_multiplier": self.difficulty_multiplier,
            "category_bonus": self.category_bonus,
            "total_xp": self.total_xp,
        }


def streak_multiplier(streak: int, rules: XpRules) -> float:
    """``min(1 + streak * step, cap)``, monotonic and saturating."""
    return min(1.0 + streak * rules.streak_step, rules.streak_cap)


def calculate_xp(
    base: int,
    streak: int,
    difficulty: Difficulty | str = Difficulty.MEDIUM,
    category: str | None = None,
    *,
    milestone_bonus: int = 0,
    rules: XpRules | None = None,
) -> XpBreakdown:
    """Compute the XP award for one action.

    Parameters
    ----------
    base:
        Base XP for the action (non-negative).
    streak:
        Current streak length (non-negative).
    difficulty:
        Difficulty tier; must exist in ``rules.difficulty_multipliers``.
    category:
        Progress category used for the additive bonus lookup.
    milestone_bonus:
        Bonus XP from newly crossed milestones.
    rules:
        Tuning parameters.  Defaults to :class:`XpRules()`.

    Raises
    ------
    ValueError
        For negative inputs or an unknown difficulty tier.
    """
    rules = rules or XpRules()
    if base < 0 or streak < 0 or milestone_bonus < 0:
        raise ValueError(
            f"XP inputs must be non-negative (base={base}, streak={streak}, "
            f"milestone_bonus={milestone_bonus})"
        )
    try:
        diff_mult = float(rules.difficulty_multipliers[str(difficulty)])
    except KeyError:
        raise ValueError(f"Unknown difficulty tier: {difficulty!r}") from None

    s_mult = streak_multiplier(streak, rules)
    cat_bonus = int(rules.category_bonus.get(str(category), 0)) if category else 0
    total = round(base * s_mult * diff_mult + cat_bonus + milestone_bonus)

    return XpBreakdown(
        base_xp=base,
        streak_multiplier=s_mult,
        milestone_bonus=milestone_bonus,
        difficulty_multiplier=diff_mult,
        category_bonus=cat_bonus,
        total_xp=max(total, 0),
    )


__all__ = ["XpBreakdown", "XpRules", "calculate_xp", "streak_multiplier"]
