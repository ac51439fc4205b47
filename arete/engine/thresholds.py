"""
arete.engine.thresholds — Threshold Crossing Detection
=======================================================

A threshold is *crossed* by an update when ``previous < threshold <= new``.
Thresholds already behind the previous value, or still ahead of the new
one, are not reported.  Call once per counter dimension.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from arete.database.models import MilestoneDimension


@dataclass(frozen=True, slots=True)
class ThresholdCrossing:
    type: MilestoneDimension
    threshold: float
    current_value: float
    just_crossed: bool = True

    def to_dict(self) -> dict:
        return {
            "type": str(self.type),
            "threshold": self.threshold,
            "current_value": self.current_value,
            "just_crossed": self.just_crossed,
        }


def detect_crossings(
    previous_value: float,
    new_value: float,
    thresholds: Iterable[float],
    dimension: MilestoneDimension = MilestoneDimension.TOTAL,
) -> list[ThresholdCrossing]:
    """Return the thresholds newly crossed moving from *previous_value* to *new_value*.

    A decreasing or unchanged counter crosses nothing.  Output is in
    ascending threshold order.
    """
    if new_value <= previous_value:
        return []
    return [
        ThresholdCrossing(type=dimension, threshold=t, current_value=new_value)
        for t in sorted(set(thresholds))
        if previous_value < t <= new_value
    ]


__all__ = ["ThresholdCrossing", "detect_crossings"]
