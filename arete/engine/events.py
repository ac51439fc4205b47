"""
arete.engine.events — ActionEvent and Payload Variants
=======================================================

The event envelope every caller hands to the coordinator.  ``payload`` is
a tagged union: one frozen dataclass per :class:`EventSource`, each
carrying only the fields that source needs.  :data:`PAYLOAD_TYPES` is the
registry from source tag to variant.

Parsing from JSON raises :class:`~arete.errors.ValidationError`; the
coordinator turns that into a failed result without touching state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any

from arete.database.models import Difficulty, EventSource, ProgressCategory
from arete.engine.streaks import RecurrenceRule, normalize_day, normalize_history
from arete.errors import ValidationError

__all__ = [
    "ActionEvent",
    "FoodDeletedPayload",
    "FoodLoggedPayload",
    "PAYLOAD_TYPES",
    "Payload",
    "TaskCompletedPayload",
    "TaskUncompletedPayload",
    "WeightDeletedPayload",
    "WeightLoggedPayload",
]


# ---------------------------------------------------------------------------
# Field parsing helpers
# ---------------------------------------------------------------------------
def _require(raw: dict, key: str) -> Any:
    value = raw.get(key)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"Missing required field: {key}", field=key)
    return value


def _day(raw: dict, key: str) -> date:
    try:
        return normalize_day(_require(raw, key))
    except ValidationError as exc:
        raise ValidationError(exc.message, field=key) from None


def _non_negative_int(raw: dict, key: str, default: int = 0) -> int:
    value = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{key} must be a non-negative integer", field=key)
    return value


def _percent(raw: dict, key: str) -> float:
    value = raw.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, int | float) or value < 0:
        raise ValidationError(f"{key} must be a non-negative number", field=key)
    return float(value)


def _positive_number(raw: dict, key: str) -> float:
    value = _require(raw, key)
    if isinstance(value, bool) or not isinstance(value, int | float) or value <= 0:
        raise ValidationError(f"{key} must be a positive number", field=key)
    return float(value)


def _enum(enum_cls, raw: dict, key: str, default):
    value = raw.get(key) or default
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Invalid {key}: {value!r}", field=key) from None


def _optional_str(raw: dict, key: str) -> str | None:
    value = raw.get(key)
    return str(value) if value else None


# ---------------------------------------------------------------------------
# Payload variants
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class TaskCompletedPayload:
    """A recurring task was checked off on ``completed_on``.

    ``completion_history`` holds the days completed *before* this event.
    """

    task_id: str
    task_name: str
    completed_on: date
    created_on: date
    recurrence: RecurrenceRule
    completion_history: tuple[date, ...] = ()
    difficulty: Difficulty = Difficulty.MEDIUM
    category: ProgressCategory = ProgressCategory.CORE

    @property
    def subject_id(self) -> str:
        return self.task_id

    @classmethod
    def from_dict(cls, raw: dict) -> TaskCompletedPayload:
        completed_on = _day(raw, "completed_on")
        created_on = _day(raw, "created_on")
        try:
            history = normalize_history(raw.get("completion_history") or ())
        except ValidationError as exc:
            raise ValidationError(exc.message, field="completion_history") from None

        if completed_on < created_on:
            raise ValidationError(
                "Task cannot be completed before it was created", field="completed_on"
            )
        if completed_on in history:
            raise ValidationError(
                f"Task already completed on {completed_on.isoformat()}", field="completed_on"
            )
        return cls(
            task_id=str(_require(raw, "task_id")),
            task_name=str(raw.get("task_name") or ""),
            completed_on=completed_on,
            created_on=created_on,
            recurrence=RecurrenceRule.from_dict(_require(raw, "recurrence")),
            completion_history=history,
            difficulty=_enum(Difficulty, raw, "difficulty", Difficulty.MEDIUM),
            category=_enum(ProgressCategory, raw, "category", ProgressCategory.CORE),
        )

    def to_dict(self) -> dict:
        return {
            "task_id": self.task_id,
            "task_name": self.task_name,
            "completed_on": self.completed_on.isoformat(),
            "created_on": self.created_on.isoformat(),
            "recurrence": self.recurrence.to_dict(),
            "completion_history": [d.isoformat() for d in self.completion_history],
            "difficulty": str(self.difficulty),
            "category": str(self.category),
        }


@dataclass(frozen=True, slots=True)
class TaskUncompletedPayload:
    """A completion was undone.  Resolves to a reversal of the completion event."""

    task_id: str
    uncompleted_on: date
    completion_token: str | None = None

    @property
    def subject_id(self) -> str:
        return self.task_id

    @classmethod
    def from_dict(cls, raw: dict) -> TaskUncompletedPayload:
        return cls(
            task_id=str(_require(raw, "task_id")),
            uncompleted_on=_day(raw, "uncompleted_on"),
            completion_token=_optional_str(raw, "completion_token"),
        )

    def to_dict(self) -> dict:
        return {
            "task_id": self.task_id,
            "uncompleted_on": self.uncompleted_on.isoformat(),
            "completion_token": self.completion_token,
        }


@dataclass(frozen=True, slots=True)
class FoodLoggedPayload:
    """A food entry was logged.

    ``daily_meal_count`` is the ordinal of this entry within its day
    (1 for the first).  Macro progress values are percentages of the
    user's daily target before and after this entry.
    """

    entry_id: str
    food_name: str
    logged_on: date
    daily_meal_count: int = 1
    previous_macro_progress: float = 0.0
    macro_progress: float = 0.0
    category: ProgressCategory = ProgressCategory.PUSH

    @property
    def subject_id(self) -> str:
        return self.entry_id

    @classmethod
    def from_dict(cls, raw: dict) -> FoodLoggedPayload:
        count = _non_negative_int(raw, "daily_meal_count", 1)
        if count == 0:
            raise ValidationError("daily_meal_count starts at 1", field="daily_meal_count")
        return cls(
            entry_id=str(_require(raw, "entry_id")),
            food_name=str(raw.get("food_name") or ""),
            logged_on=_day(raw, "logged_on"),
            daily_meal_count=count,
            previous_macro_progress=_percent(raw, "previous_macro_progress"),
            macro_progress=_percent(raw, "macro_progress"),
            category=_enum(ProgressCategory, raw, "category", ProgressCategory.PUSH),
        )

    def to_dict(self) -> dict:
        return {
            "entry_id": self.entry_id,
            "food_name": self.food_name,
            "logged_on": self.logged_on.isoformat(),
            "daily_meal_count": self.daily_meal_count,
            "previous_macro_progress": self.previous_macro_progress,
            "macro_progress": self.macro_progress,
            "category": str(self.category),
        }


@dataclass(frozen=True, slots=True)
class FoodDeletedPayload:
    """A food entry was deleted.  Resolves to a reversal of its log event."""

    entry_id: str
    logged_token: str | None = None

    @property
    def subject_id(self) -> str:
        return self.entry_id

    @classmethod
    def from_dict(cls, raw: dict) -> FoodDeletedPayload:
        return cls(
            entry_id=str(_require(raw, "entry_id")),
            logged_token=_optional_str(raw, "logged_token"),
        )

    def to_dict(self) -> dict:
        return {"entry_id": self.entry_id, "logged_token": self.logged_token}


@dataclass(frozen=True, slots=True)
class WeightLoggedPayload:
    """A weigh-in was recorded.

    ``total_entries`` counts the user's weigh-ins including this one.
    ``previous_weight`` is the prior weigh-in in the same unit (kg), if any.
    """

    entry_id: str
    logged_on: date
    weight: float
    previous_weight: float | None = None
    total_entries: int = 1
    category: ProgressCategory = ProgressCategory.CORE

    @property
    def subject_id(self) -> str:
        return self.entry_id

    @property
    def weight_change(self) -> float | None:
        """Signed change since the previous weigh-in (negative is a loss)."""
        if self.previous_weight is None:
            return None
        return round(self.weight - self.previous_weight, 3)

    @classmethod
    def from_dict(cls, raw: dict) -> WeightLoggedPayload:
        weight = _positive_number(raw, "weight")
        previous = None
        if raw.get("previous_weight") is not None:
            previous = _positive_number(raw, "previous_weight")
        total = _non_negative_int(raw, "total_entries", 1)
        if total == 0:
            raise ValidationError("total_entries starts at 1", field="total_entries")
        return cls(
            entry_id=str(_require(raw, "entry_id")),
            logged_on=_day(raw, "logged_on"),
            weight=weight,
            previous_weight=previous,
            total_entries=total,
            category=_enum(ProgressCategory, raw, "category", ProgressCategory.CORE),
        )

    def to_dict(self) -> dict:
        return {
            "entry_id": self.entry_id,
            "logged_on": self.logged_on.isoformat(),
            "weight": self.weight,
            "previous_weight": self.previous_weight,
            "total_entries": self.total_entries,
            "category": str(self.category),
        }


@dataclass(frozen=True, slots=True)
class WeightDeletedPayload:
    """A weigh-in was deleted.  Resolves to a reversal of its log event."""

    entry_id: str
    logged_token: str | None = None

    @property
    def subject_id(self) -> str:
        return self.entry_id

    @classmethod
    def from_dict(cls, raw: dict) -> WeightDeletedPayload:
        return cls(
            entry_id=str(_require(raw, "entry_id")),
            logged_token=_optional_str(raw, "logged_token"),
        )

    def to_dict(self) -> dict:
        return {"entry_id": self.entry_id, "logged_token": self.logged_token}


Payload = (
    TaskCompletedPayload
    | TaskUncompletedPayload
    | FoodLoggedPayload
    | FoodDeletedPayload
    | WeightLoggedPayload
    | WeightDeletedPayload
)

PAYLOAD_TYPES: dict[EventSource, type] = {
    EventSource.TASK_COMPLETED: TaskCompletedPayload,
    EventSource.TASK_UNCOMPLETED: TaskUncompletedPayload,
    EventSource.FOOD_LOGGED: FoodLoggedPayload,
    EventSource.FOOD_DELETED: FoodDeletedPayload,
    EventSource.WEIGHT_LOGGED: WeightLoggedPayload,
    EventSource.WEIGHT_DELETED: WeightDeletedPayload,
}


# ---------------------------------------------------------------------------
# ActionEvent envelope
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ActionEvent:
    """One logical user action, identified by a caller-supplied token."""

    token: str
    user_id: str
    source: EventSource
    payload: Payload
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        if not self.token or not str(self.token).strip():
            raise ValidationError("Event token is required", field="token")
        if not self.user_id or not str(self.user_id).strip():
            raise ValidationError("User id is required", field="user_id")
        expected = PAYLOAD_TYPES.get(self.source)
        if expected is None:
            raise ValidationError(f"Unsupported event source: {self.source!r}", field="source")
        if not isinstance(self.payload, expected):
            raise ValidationError(
                f"Payload for {self.source} must be {expected.__name__}", field="payload"
            )

    @property
    def subject_id(self) -> str:
        return self.payload.subject_id

    @classmethod
    def from_dict(cls, raw: Any) -> ActionEvent:
        """Parse a JSON-shaped mapping into an event.

        Raises
        ------
        ValidationError
            On any missing or malformed field.
        """
        if not isinstance(raw, dict):
            raise ValidationError("Event must be an object")
        token = _require(raw, "token")
        user_id = _require(raw, "user_id")
        try:
            source = EventSource(raw.get("source"))
        except ValueError:
            raise ValidationError(
                f"Unknown event source: {raw.get('source')!r}", field="source"
            ) from None
        payload_type = PAYLOAD_TYPES.get(source)
        if payload_type is None:
            raise ValidationError(f"Unsupported event source: {source}", field="source")
        payload_raw = raw.get("payload")
        if not isinstance(payload_raw, dict):
            raise ValidationError("Payload must be an object", field="payload")

        occurred_raw = raw.get("occurred_at")
        if occurred_raw is None:
            occurred_at = datetime.now(UTC)
        elif isinstance(occurred_raw, datetime):
            occurred_at = occurred_raw
        else:
            try:
                occurred_at = datetime.fromisoformat(str(occurred_raw))
            except ValueError:
                raise ValidationError(
                    f"Invalid occurred_at: {occurred_raw!r}", field="occurred_at"
                ) from None

        return cls(
            token=str(token),
            user_id=str(user_id),
            source=source,
            payload=payload_type.from_dict(payload_raw),
            occurred_at=occurred_at,
        )

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "user_id": self.user_id,
            "source": str(self.source),
            "occurred_at": self.occurred_at.isoformat(),
            "payload": self.payload.to_dict(),
        }
