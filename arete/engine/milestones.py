"""
arete.engine.milestones — Milestone Table & Award Resolution
=============================================================

Maps threshold crossings to achievement unlocks and bonus XP.

Each :class:`Milestone` row says: when *dimension* (for events from
*source*, or any source when ``None``) crosses *threshold*, unlock
*achievement_id* (optional) and award *bonus_xp*.

This module is pure calculation with no database I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from arete.constants import (
    BEST_STREAK_BONUS,
    BEST_STREAK_THRESHOLDS,
    COMPLETION_MILESTONE_BONUS,
    COMPLETION_THRESHOLDS,
    CROSS_DOMAIN_THRESHOLDS,
    MACRO_PROGRESS_THRESHOLDS,
    MEALS_LOGGED_THRESHOLDS,
    STREAK_MILESTONE_BONUS,
    STREAK_THRESHOLDS,
    WEIGHT_ENTRY_THRESHOLDS,
    WEIGHT_GAIN_THRESHOLDS,
    WEIGHT_LOSS_THRESHOLDS,
    WEIGHT_MILESTONE_BONUS,
)
from arete.database.models import EventSource, MilestoneDimension
from arete.engine.thresholds import ThresholdCrossing, detect_crossings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Milestone:
    source: EventSource | None
    dimension: MilestoneDimension
    threshold: float
    achievement_id: str | None = None
    bonus_xp: int = 0

    def applies_to(self, source: str, dimension: MilestoneDimension) -> bool:
        return self.dimension == dimension and (self.source is None or self.source == source)

    @classmethod
    def from_dict(cls, raw: dict) -> Milestone:
        source = raw.get("source")
        return cls(
            source=EventSource(source) if source else None,
            dimension=MilestoneDimension(raw["dimension"]),
            threshold=raw["threshold"],
            achievement_id=raw.get("achievement_id"),
            bonus_xp=int(raw.get("bonus_xp", 0)),
        )


@dataclass(frozen=True, slots=True)
class CounterChange:
    """One counter dimension moving from *previous* to *new* during an event."""

    dimension: MilestoneDimension
    previous: float
    new: float


@dataclass(frozen=True, slots=True)
class MilestoneAward:
    crossing: ThresholdCrossing
    achievement_id: str | None
    bonus_xp: int

    def to_dict(self) -> dict:
        return {
            **self.crossing.to_dict(),
            "achievement_id": self.achievement_id,
            "bonus_xp": self.bonus_xp,
        }


# ---------------------------------------------------------------------------
# Default table
# ---------------------------------------------------------------------------
def default_milestones() -> tuple[Milestone, ...]:
    task = EventSource.TASK_COMPLETED
    food = EventSource.FOOD_LOGGED
    weight = EventSource.WEIGHT_LOGGED
    rows: list[Milestone] = []
    rows += [
        Milestone(task, MilestoneDimension.STREAK, n, f"discipline_streak_{n}", STREAK_MILESTONE_BONUS)
        for n in STREAK_THRESHOLDS
    ]
    rows += [
        Milestone(task, MilestoneDimension.TOTAL, n, f"discipline_completion_{n}", COMPLETION_MILESTONE_BONUS)
        for n in COMPLETION_THRESHOLDS
    ]
    rows += [
        Milestone(task, MilestoneDimension.STREAK_BEST, n, None, BEST_STREAK_BONUS)
        for n in BEST_STREAK_THRESHOLDS
    ]
    rows += [
        Milestone(food, MilestoneDimension.TOTAL, n, f"meals_logged_{n}", bonus)
        for n, bonus in MEALS_LOGGED_THRESHOLDS.items()
    ]
    rows += [
        Milestone(food, MilestoneDimension.MACRO_PROGRESS, n, None, bonus)
        for n, bonus in MACRO_PROGRESS_THRESHOLDS.items()
    ]
    rows += [
        Milestone(weight, MilestoneDimension.TOTAL, n, f"weight_entries_{n}", WEIGHT_MILESTONE_BONUS)
        for n in WEIGHT_ENTRY_THRESHOLDS
    ]
    rows += [
        Milestone(weight, MilestoneDimension.WEIGHT_LOSS, n, f"weight_loss_{n}kg", WEIGHT_MILESTONE_BONUS)
        for n in WEIGHT_LOSS_THRESHOLDS
    ]
    rows += [
        Milestone(weight, MilestoneDimension.WEIGHT_GAIN, n, f"weight_gain_{n}kg", WEIGHT_MILESTONE_BONUS)
        for n in WEIGHT_GAIN_THRESHOLDS
    ]
    rows += [
        Milestone(None, MilestoneDimension.CROSS_DOMAIN, n, f"cross_domain_{n}", bonus)
        for n, bonus in CROSS_DOMAIN_THRESHOLDS.items()
    ]
    return tuple(rows)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------
def resolve_milestones(
    source: str,
    changes: Iterable[CounterChange],
    milestones: Sequence[Milestone],
    already_earned: set[str] | frozenset[str],
) -> list[MilestoneAward]:
    """Detect crossings for every counter change and map them to awards.

    Achievements in *already_earned* (pending or claimed) are not unlocked
    again, and their bonus is not re-awarded.  Bonus-only milestones always
    pay out when crossed.
    """
    awards: list[MilestoneAward] = []
    unlocked: set[str] = set()

    for change in changes:
        rows = [m for m in milestones if m.applies_to(source, change.dimension)]
        if not rows:
            continue
        crossings = detect_crossings(
            change.previous, change.new, (m.threshold for m in rows), change.dimension
        )
        for crossing in crossings:
            for m in rows:
                if m.threshold != crossing.threshold:
                    continue
                if m.achievement_id is not None:
                    if m.achievement_id in already_earned or m.achievement_id in unlocked:
                        logger.debug("Milestone %s already earned", m.achievement_id)
                        continue
                    unlocked.add(m.achievement_id)
                awards.append(MilestoneAward(crossing, m.achievement_id, m.bonus_xp))

    return awards


__all__ = [
    "CounterChange",
    "Milestone",
    "MilestoneAward",
    "default_milestones",
    "resolve_milestones",
]
