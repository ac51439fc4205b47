"""
arete.engine.streaks — Recurrence-Aware Streak Calculation
===========================================================

Pure functions: no database, no clock unless the caller omits ``as_of``.

A *completion history* is a set of calendar days.  A *recurrence rule*
says on which days the item is due:

* ``once``:   due only on its creation day; any completion is a streak of 1.
* ``daily``:  due every day on/after creation.
* ``custom``: due on the listed weekdays (0 = Sunday … 6 = Saturday)
  on/after creation.

Current streak walks backward from ``as_of`` (bounded lookback).  Best
streak scans the whole history chronologically.  Presence in the history
always counts, even on a day the rule says is not due.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

from arete.constants import MAX_STREAK_LOOKBACK_DAYS
from arete.database.models import RecurrencePattern
from arete.errors import ValidationError

_ONE_DAY = timedelta(days=1)


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RecurrenceRule:
    """When a trackable item is due.  Construction validates the rule."""

    pattern: RecurrencePattern
    custom_days: frozenset[int] = frozenset()

    def __post_init__(self) -> None:
        try:
            pattern = RecurrencePattern(self.pattern)
        except ValueError:
            raise ValidationError(
                f"Unknown recurrence pattern: {self.pattern!r}", field="recurrence.pattern"
            ) from None
        object.__setattr__(self, "pattern", pattern)
        object.__setattr__(self, "custom_days", frozenset(self.custom_days))

        if pattern == RecurrencePattern.CUSTOM and not self.custom_days:
            raise ValidationError(
                "Custom recurrence requires at least one day", field="recurrence.custom_days"
            )
        for day in self.custom_days:
            if not isinstance(day, int) or isinstance(day, bool) or not 0 <= day <= 6:
                raise ValidationError(
                    f"Custom days must be integers 0-6, got {day!r}",
                    field="recurrence.custom_days",
                )

    @classmethod
    def from_dict(cls, raw: dict) -> RecurrenceRule:
        if not isinstance(raw, dict) or "pattern" not in raw:
            raise ValidationError("Recurrence rule requires a pattern", field="recurrence")
        return cls(
            pattern=raw["pattern"],
            custom_days=frozenset(raw.get("custom_days") or ()),
        )

    def to_dict(self) -> dict:
        return {"pattern": str(self.pattern), "custom_days": sorted(self.custom_days)}


@dataclass(frozen=True, slots=True)
class StreakResult:
    current_streak: int = 0
    best_streak: int = 0

    def to_dict(self) -> dict:
        return {"current_streak": self.current_streak, "best_streak": self.best_streak}


# ---------------------------------------------------------------------------
# Day helpers
# ---------------------------------------------------------------------------
def normalize_day(value: date | datetime | str) -> date:
    """Reduce *value* to a UTC calendar day.

    Naive datetimes are taken to be UTC already.  Strings are parsed as
    ISO-8601 dates or datetimes.
    """
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value) if "T" in value else date.fromisoformat(value)
        except ValueError:
            raise ValidationError(f"Invalid date: {value!r}") from None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value.date()
    if isinstance(value, date):
        return value
    raise ValidationError(f"Invalid date: {value!r}")


def normalize_history(days: Iterable[date | datetime | str]) -> tuple[date, ...]:
    """Sorted, de-duplicated tuple of calendar days."""
    return tuple(sorted({normalize_day(d) for d in days}))


def weekday_number(day: date) -> int:
    """Weekday with Sunday = 0 … Saturday = 6."""
    return (day.weekday() + 1) % 7


def is_due(rule: RecurrenceRule, day: date, created_on: date) -> bool:
    """Whether the rule expects a completion on *day*."""
    if rule.pattern == RecurrencePattern.ONCE:
        return day == created_on
    if day < created_on:
        return False
    if rule.pattern == RecurrencePattern.DAILY:
        return True
    return weekday_number(day) in rule.custom_days


def _missed_due_day_between(
    rule: RecurrenceRule, earlier: date, later: date, created_on: date
) -> bool:
    """True if some day strictly between *earlier* and *later* was due.

    Any seven consecutive days contain every weekday, so at most seven
    candidates need checking.
    """
    day = max(earlier + _ONE_DAY, created_on)
    checked = 0
    while day < later and checked < 7:
        if is_due(rule, day, created_on):
            return True
        day += _ONE_DAY
        checked += 1
    return False


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def current_streak(
    history: Iterable[date],
    rule: RecurrenceRule,
    created_on: date,
    as_of: date,
    max_lookback_days: int = MAX_STREAK_LOOKBACK_DAYS,
) -> int:
    """Length of the run ending at *as_of*, walking backward.

    Due-and-present days extend the run, due-and-absent days end it,
    days that are not due are skipped.
    """
    completed = set(history)
    if not completed:
        return 0
    if rule.pattern == RecurrencePattern.ONCE:
        return 1

    earliest = min(min(completed), created_on)
    streak = 0
    day = as_of
    for _ in range(max_lookback_days):
        if day < earliest:
            break
        if day in completed:
            streak += 1
        elif is_due(rule, day, created_on):
            break
        day -= _ONE_DAY
    return streak


def best_streak(history: Iterable[date], rule: RecurrenceRule, created_on: date) -> int:
    """Longest run anywhere in the history (full chronological scan)."""
    days = sorted(set(history))
    if not days:
        return 0
    if rule.pattern == RecurrencePattern.ONCE:
        return 1

    best = running = 1
    for earlier, later in zip(days, days[1:]):
        if _missed_due_day_between(rule, earlier, later, created_on):
            running = 1
        else:
            running += 1
        best = max(best, running)
    return best


def calculate_streak(
    history: Iterable[date | datetime | str],
    rule: RecurrenceRule,
    created_on: date | datetime | str,
    as_of: date | datetime | str | None = None,
) -> StreakResult:
    """Compute current and best streak for one trackable item.

    Parameters
    ----------
    history:
        Completion days (any order, duplicates allowed).
    rule:
        The item's recurrence rule.
    created_on:
        Creation day; nothing is due before it.
    as_of:
        Day to measure the current streak at.  Defaults to today (UTC).

    Returns
    -------
    StreakResult
        ``best_streak >= current_streak`` always holds.
    """
    days = normalize_history(history)
    if not days:
        return StreakResult(0, 0)

    created = normalize_day(created_on)
    if rule.pattern == RecurrencePattern.ONCE:
        return StreakResult(1, 1)

    end = normalize_day(as_of) if as_of is not None else datetime.now(UTC).date()
    current = current_streak(days, rule, created, end)
    best = max(best_streak(days, rule, created), current)
    return StreakResult(current_streak=current, best_streak=best)


__all__ = [
    "RecurrenceRule",
    "StreakResult",
    "best_streak",
    "calculate_streak",
    "current_streak",
    "is_due",
    "normalize_day",
    "normalize_history",
    "weekday_number",
]
