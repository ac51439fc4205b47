"""
arete.engine.progress — Progress Snapshots & Deltas
====================================================

Both directions of the ledger go through :func:`apply_delta`: processing
an event applies the computed delta, reversing it applies the stored
undo delta.  Level is always re-derived from total XP with
:func:`arete.constants.level_for_xp`, never stored independently.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from arete.constants import PROGRESS_CATEGORIES, level_for_xp


def _empty_categories() -> dict[str, int]:
    return {c: 0 for c in PROGRESS_CATEGORIES}


@dataclass(frozen=True, slots=True)
class ProgressSnapshot:
    """Immutable view of one user's progress at a point in time."""

    user_id: str
    total_xp: int = 0
    level: int = 1
    category_xp: Mapping[str, int] = field(default_factory=_empty_categories)
    pending_achievements: frozenset[str] = frozenset()
    claimed_achievements: frozenset[str] = frozenset()
    action_counts: Mapping[str, int] = field(default_factory=dict)
    version: int | None = None

    @property
    def earned_achievements(self) -> frozenset[str]:
        return self.pending_achievements | self.claimed_achievements

    @property
    def cross_domain_total(self) -> int:
        return sum(self.action_counts.values())

    def count_for(self, source: str) -> int:
        return int(self.action_counts.get(str(source), 0))

    def to_state_dict(self) -> dict:
        """JSON-serializable snapshot, as stored in the reversal data."""
        return {
            "total_xp": self.total_xp,
            "level": self.level,
            "category_xp": dict(sorted(self.category_xp.items())),
            "pending_achievements": sorted(self.pending_achievements),
            "claimed_achievements": sorted(self.claimed_achievements),
            "action_counts": dict(sorted(self.action_counts.items())),
        }


@dataclass(frozen=True, slots=True)
class ProgressDelta:
    """Changes one event makes to a user's progress."""

    xp: int = 0
    category_xp: Mapping[str, int] = field(default_factory=dict)
    unlock_achievements: tuple[str, ...] = ()
    lock_achievements: tuple[str, ...] = ()
    action_counts: Mapping[str, int] = field(default_factory=dict)

    def inverse(self) -> ProgressDelta:
        return ProgressDelta(
            xp=-self.xp,
            category_xp={k: -v for k, v in self.category_xp.items()},
            unlock_achievements=self.lock_achievements,
            lock_achievements=self.unlock_achievements,
            action_counts={k: -v for k, v in self.action_counts.items()},
        )


def _merge_counts(base: Mapping[str, int], delta: Mapping[str, int], *, keep_zero: bool) -> dict[str, int]:
    merged = dict(base)
    for key, value in delta.items():
        merged[key] = merged.get(key, 0) + value
    if keep_zero:
        return merged
    return {k: v for k, v in merged.items() if v != 0}


def apply_delta(snapshot: ProgressSnapshot, delta: ProgressDelta) -> ProgressSnapshot:
    """Return the snapshot that results from applying *delta* to *snapshot*.

    Locked achievements are removed from both the pending and claimed sets;
    unlocked achievements land in pending unless already claimed.
    """
    total_xp = snapshot.total_xp + delta.xp
    locked = frozenset(delta.lock_achievements)
    claimed = snapshot.claimed_achievements - locked
    pending = (snapshot.pending_achievements - locked) | (
        frozenset(delta.unlock_achievements) - claimed
    )
    return ProgressSnapshot(
        user_id=snapshot.user_id,
        total_xp=total_xp,
        level=level_for_xp(total_xp),
        category_xp=_merge_counts(snapshot.category_xp, delta.category_xp, keep_zero=True),
        pending_achievements=pending,
        claimed_achievements=claimed,
        action_counts=_merge_counts(snapshot.action_counts, delta.action_counts, keep_zero=False),
        version=snapshot.version,
    )


# ---------------------------------------------------------------------------
# Undo instructions
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class UndoInstructions:
    """Everything needed to restore the pre-event state without recomputation."""

    subtract_xp: int
    lock_achievements: tuple[str, ...] = ()
    revert_level: int = 1
    undo_task_updates: tuple[dict, ...] = ()
    domain_specific: Mapping[str, dict] = field(default_factory=dict)

    @classmethod
    def for_delta(
        cls,
        delta: ProgressDelta,
        previous: ProgressSnapshot,
        task_updates: tuple[dict, ...] = (),
    ) -> UndoInstructions:
        inverse = delta.inverse()
        return cls(
            subtract_xp=inverse.xp,
            lock_achievements=inverse.lock_achievements,
            revert_level=previous.level,
            undo_task_updates=task_updates,
            domain_specific={
                "category_xp": dict(inverse.category_xp),
                "action_counts": dict(inverse.action_counts),
            },
        )

    def as_delta(self) -> ProgressDelta:
        return ProgressDelta(
            xp=self.subtract_xp,
            category_xp=dict(self.domain_specific.get("category_xp", {})),
            lock_achievements=tuple(self.lock_achievements),
            action_counts=dict(self.domain_specific.get("action_counts", {})),
        )

    def to_dict(self) -> dict:
        return {
            "subtract_xp": self.subtract_xp,
            "lock_achievements": list(self.lock_achievements),
            "revert_level": self.revert_level,
            "undo_task_updates": list(self.undo_task_updates),
            "domain_specific": {k: dict(v) for k, v in self.domain_specific.items()},
        }

    @classmethod
    def from_dict(cls, raw: dict) -> UndoInstructions:
        return cls(
            subtract_xp=int(raw.get("subtract_xp", 0)),
            lock_achievements=tuple(raw.get("lock_achievements", ())),
            revert_level=int(raw.get("revert_level", 1)),
            undo_task_updates=tuple(raw.get("undo_task_updates", ())),
            domain_specific=dict(raw.get("domain_specific", {})),
        )
