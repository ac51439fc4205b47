"""
tests/test_events.py — ActionEvent Parsing & Validation
========================================================
"""

from __future__ import annotations

from datetime import UTC, date, datetime

import pytest

from arete.database.models import Difficulty, EventSource, ProgressCategory
from arete.engine.events import (
    ActionEvent,
    FoodDeletedPayload,
    FoodLoggedPayload,
    TaskCompletedPayload,
    TaskUncompletedPayload,
    WeightDeletedPayload,
    WeightLoggedPayload,
)
from arete.errors import ErrorKind, ValidationError


def _task_event(**payload_overrides) -> dict:
    payload = {
        "task_id": "task-1",
        "task_name": "Meditate",
        "completed_on": "2026-03-10",
        "created_on": "2026-01-01",
        "recurrence": {"pattern": "daily"},
        "completion_history": ["2026-03-09"],
    }
    payload.update(payload_overrides)
    return {
        "token": "tok-1",
        "user_id": "user-1",
        "source": "task_completed",
        "payload": payload,
        "occurred_at": "2026-03-10T12:00:00+00:00",
    }


class TestParseTaskCompleted:
    def test_parse_success(self):
        event = ActionEvent.from_dict(_task_event(difficulty="hard", category="legs"))
        assert event.source == EventSource.TASK_COMPLETED
        assert isinstance(event.payload, TaskCompletedPayload)
        assert event.payload.completed_on == date(2026, 3, 10)
        assert event.payload.completion_history == (date(2026, 3, 9),)
        assert event.payload.difficulty == Difficulty.HARD
        assert event.payload.category == ProgressCategory.LEGS
        assert event.subject_id == "task-1"
        assert event.occurred_at == datetime(2026, 3, 10, 12, 0, tzinfo=UTC)

    def test_defaults(self):
        payload = ActionEvent.from_dict(_task_event()).payload
        assert payload.difficulty == Difficulty.MEDIUM
        assert payload.category == ProgressCategory.CORE

    def test_completed_before_created(self):
        with pytest.raises(ValidationError) as exc_info:
            ActionEvent.from_dict(_task_event(completed_on="2025-12-31"))
        assert exc_info.value.details["field"] == "completed_on"
        assert exc_info.value.kind == ErrorKind.VALIDATION

    def test_day_already_in_history(self):
        with pytest.raises(ValidationError):
            ActionEvent.from_dict(_task_event(completion_history=["2026-03-10"]))

    def test_bad_recurrence(self):
        with pytest.raises(ValidationError):
            ActionEvent.from_dict(_task_event(recurrence={"pattern": "custom", "custom_days": []}))

    def test_unknown_difficulty(self):
        with pytest.raises(ValidationError) as exc_info:
            ActionEvent.from_dict(_task_event(difficulty="legendary"))
        assert exc_info.value.details["field"] == "difficulty"

    def test_malformed_date(self):
        with pytest.raises(ValidationError) as exc_info:
            ActionEvent.from_dict(_task_event(completed_on="yesterday"))
        assert exc_info.value.details["field"] == "completed_on"


class TestEnvelope:
    def test_missing_token(self):
        raw = _task_event()
        raw["token"] = "  "
        with pytest.raises(ValidationError):
            ActionEvent.from_dict(raw)

    def test_missing_user(self):
        raw = _task_event()
        del raw["user_id"]
        with pytest.raises(ValidationError):
            ActionEvent.from_dict(raw)

    @pytest.mark.parametrize("source", ["reversal", "workout_logged", None])
    def test_unsupported_source(self, source):
        raw = _task_event()
        raw["source"] = source
        with pytest.raises(ValidationError):
            ActionEvent.from_dict(raw)

    def test_payload_must_be_object(self):
        raw = _task_event()
        raw["payload"] = ["not", "an", "object"]
        with pytest.raises(ValidationError):
            ActionEvent.from_dict(raw)

    def test_not_a_mapping(self):
        with pytest.raises(ValidationError):
            ActionEvent.from_dict("task_completed")

    def test_payload_type_mismatch(self):
        with pytest.raises(ValidationError):
            ActionEvent(
                token="tok-1",
                user_id="user-1",
                source=EventSource.FOOD_LOGGED,
                payload=FoodDeletedPayload(entry_id="meal-1"),
            )

    def test_to_dict_parses_back(self):
        event = ActionEvent.from_dict(_task_event())
        assert ActionEvent.from_dict(event.to_dict()) == event


class TestOtherPayloads:
    def test_food_logged(self):
        event = ActionEvent.from_dict({
            "token": "meal-tok",
            "user_id": "user-1",
            "source": "food_logged",
            "payload": {
                "entry_id": "meal-1",
                "food_name": "Oats",
                "logged_on": "2026-03-10",
                "daily_meal_count": 2,
                "previous_macro_progress": 40,
                "macro_progress": 85.5,
            },
        })
        assert isinstance(event.payload, FoodLoggedPayload)
        assert event.payload.macro_progress == 85.5
        assert event.payload.category == ProgressCategory.PUSH

    @pytest.mark.parametrize("count", [0, -1, "two", True])
    def test_food_logged_bad_meal_count(self, count):
        with pytest.raises(ValidationError):
            FoodLoggedPayload.from_dict({
                "entry_id": "meal-1",
                "logged_on": "2026-03-10",
                "daily_meal_count": count,
            })

    def test_food_logged_negative_macro(self):
        with pytest.raises(ValidationError):
            FoodLoggedPayload.from_dict({
                "entry_id": "meal-1",
                "logged_on": "2026-03-10",
                "macro_progress": -5,
            })

    def test_task_uncompleted_optional_token(self):
        payload = TaskUncompletedPayload.from_dict(
            {"task_id": "task-1", "uncompleted_on": "2026-03-10"}
        )
        assert payload.completion_token is None
        with_token = TaskUncompletedPayload.from_dict(
            {"task_id": "task-1", "uncompleted_on": "2026-03-10", "completion_token": "tok-1"}
        )
        assert with_token.completion_token == "tok-1"

    def test_food_deleted_requires_entry(self):
        with pytest.raises(ValidationError):
            FoodDeletedPayload.from_dict({"logged_token": "meal-tok"})

    def test_weight_logged(self):
        event = ActionEvent.from_dict({
            "token": "weigh-tok",
            "user_id": "user-1",
            "source": "weight_logged",
            "payload": {
                "entry_id": "weigh-1",
                "logged_on": "2026-03-10",
                "weight": 80,
                "previous_weight": 82.5,
                "total_entries": 12,
            },
        })
        assert isinstance(event.payload, WeightLoggedPayload)
        assert event.payload.weight == 80.0
        assert event.payload.weight_change == -2.5
        assert event.payload.category == ProgressCategory.CORE
        assert event.subject_id == "weigh-1"

    def test_first_weigh_in_has_no_change(self):
        payload = WeightLoggedPayload.from_dict(
            {"entry_id": "weigh-1", "logged_on": "2026-03-10", "weight": 80}
        )
        assert payload.previous_weight is None
        assert payload.weight_change is None
        assert payload.total_entries == 1

    @pytest.mark.parametrize(
        "overrides",
        [{"weight": 0}, {"weight": "heavy"}, {"previous_weight": -1}, {"total_entries": 0}],
    )
    def test_weight_logged_rejects_bad_values(self, overrides):
        raw = {"entry_id": "weigh-1", "logged_on": "2026-03-10", "weight": 80}
        raw.update(overrides)
        with pytest.raises(ValidationError):
            WeightLoggedPayload.from_dict(raw)

    def test_weight_deleted(self):
        payload = WeightDeletedPayload.from_dict({"entry_id": "weigh-1", "logged_token": "weigh-tok"})
        assert payload.subject_id == "weigh-1"
        assert payload.logged_token == "weigh-tok"
