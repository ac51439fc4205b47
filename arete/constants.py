"""
arete.constants — Shared Constants & Helpers
=============================================

Single source of truth for the leveling formula and the default milestone
thresholds.  Import from here instead of duplicating in services and routes.
"""

from __future__ import annotations

import math

# ---------------------------------------------------------------------------
# Leveling formula (the single canonical implementation)
# ---------------------------------------------------------------------------
LEVEL_XP_DIVISOR = 100
LEVEL_EXPONENT = 0.8
NEXT_LEVEL_EXPONENT = 1.25


def level_for_xp(total_xp: int) -> int:
    """Level reached with *total_xp* experience points.

    Uses the sub-linear curve::

        level = floor(1 + (total_xp / 100) ** 0.8)

    Negative totals are treated as zero, so the minimum level is 1.
    """
    xp = max(total_xp, 0)
    return int(math.floor(1 + (xp / LEVEL_XP_DIVISOR) ** LEVEL_EXPONENT))


def xp_for_next_level(level: int) -> int:
    """XP at which a user at *level* reaches ``level + 1``."""
    return int(math.ceil(max(level, 1) ** NEXT_LEVEL_EXPONENT * LEVEL_XP_DIVISOR))


def xp_for_level(level: int) -> int:
    """Smallest XP total that reaches *level* (0 for level 1)."""
    if level <= 1:
        return 0
    return xp_for_next_level(level - 1)


def level_progress(total_xp: int) -> float:
    """Fraction (0.0–1.0) of the way from the current level's floor to the next level."""
    xp = max(total_xp, 0)
    level = level_for_xp(xp)
    floor = xp_for_level(level)
    span = xp_for_next_level(level) - floor
    return min(max((xp - floor) / max(span, 1), 0.0), 1.0)


# ---------------------------------------------------------------------------
# Progress categories
# ---------------------------------------------------------------------------
PROGRESS_CATEGORIES: tuple[str, ...] = ("core", "push", "pull", "legs")


# ---------------------------------------------------------------------------
# Milestone thresholds (used to build the default milestone table)
# ---------------------------------------------------------------------------
STREAK_THRESHOLDS: tuple[int, ...] = (3, 7, 14, 30, 50, 100)
COMPLETION_THRESHOLDS: tuple[int, ...] = (10, 25, 50, 100, 250, 500, 1000)
BEST_STREAK_THRESHOLDS: tuple[int, ...] = (7, 30, 100)
MEALS_LOGGED_THRESHOLDS: dict[int, int] = {100: 50, 500: 150, 1000: 300}
MACRO_PROGRESS_THRESHOLDS: dict[int, int] = {80: 15, 100: 25}
CROSS_DOMAIN_THRESHOLDS: dict[int, int] = {50: 50, 250: 150, 1000: 500}

WEIGHT_ENTRY_THRESHOLDS: tuple[int, ...] = (10, 25, 50, 100, 250, 500, 1000, 2500, 5000)
# Kilograms changed since the previous weigh-in.
WEIGHT_LOSS_THRESHOLDS: tuple[int, ...] = (2, 5, 10)
WEIGHT_GAIN_THRESHOLDS: tuple[int, ...] = (2, 5)
WEIGHT_MILESTONE_BONUS = 15

STREAK_MILESTONE_BONUS = 25
COMPLETION_MILESTONE_BONUS = 50
BEST_STREAK_BONUS = 10

# Backward walk bound for the current streak.
MAX_STREAK_LOOKBACK_DAYS = 365

# Uncompletion / deletion lookup window for the originating event.
REVERSAL_LOOKBACK_DAYS = 7
