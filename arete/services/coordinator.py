"""
arete.services.coordinator — Event Processing & Reversal
=========================================================

:class:`EventCoordinator` is the only writer of user progress during event
processing.  One call to :meth:`~EventCoordinator.process`:

1. parses/validates the :class:`~arete.engine.events.ActionEvent`,
2. returns the cached result if the token is already in the ledger,
3. snapshots the user's progress,
4. computes streak → milestone crossings → XP (pure engine code),
5. builds undo instructions from the computed delta,
6. writes the ledger entry, task counters and new progress in ONE commit.

:meth:`~EventCoordinator.reverse` applies the stored undo instructions
directly (no recomputation under today's rules), marks the original entry
reversed and logs the reversal itself under its own token.

Expected failures come back as result values with an
:class:`~arete.errors.ErrorKind`; nothing is partially applied.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from arete.constants import REVERSAL_LOOKBACK_DAYS
from arete.database.models import (
    Difficulty,
    EventLog,
    EventSource,
    EventStatus,
    MilestoneDimension,
    Task,
)
from arete.engine.events import (
    ActionEvent,
    FoodDeletedPayload,
    FoodLoggedPayload,
    TaskCompletedPayload,
    TaskUncompletedPayload,
    WeightDeletedPayload,
    WeightLoggedPayload,
)
from arete.engine.milestones import (
    CounterChange,
    Milestone,
    MilestoneAward,
    default_milestones,
    resolve_milestones,
)
from arete.engine.progress import ProgressDelta, ProgressSnapshot, UndoInstructions, apply_delta
from arete.engine.streaks import (
    RecurrenceRule,
    StreakResult,
    calculate_streak,
    normalize_day,
    normalize_history,
)
from arete.engine.xp import XpBreakdown, XpRules, calculate_xp
from arete.errors import (
    AlreadyReversedError,
    AreteError,
    DuplicateTokenError,
    ErrorKind,
    NotFoundError,
    NotReversibleError,
    PersistenceError,
    ValidationError,
)
from arete.services.repositories import SqlUnitOfWork, UnitOfWork, task_state

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from arete.config import AreteConfig

logger = logging.getLogger(__name__)

_ONE_DAY = timedelta(days=1)

# Undo-style events and the source of the event they cancel.
UNDO_TARGETS: dict[EventSource, EventSource] = {
    EventSource.TASK_UNCOMPLETED: EventSource.TASK_COMPLETED,
    EventSource.FOOD_DELETED: EventSource.FOOD_LOGGED,
    EventSource.WEIGHT_DELETED: EventSource.WEIGHT_LOGGED,
}


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
@dataclass
class ProcessResult:
    """Outcome of :meth:`EventCoordinator.process`."""

    success: bool
    token: str
    xp_awarded: int = 0
    new_level: int = 0
    leveled_up: bool = False
    achievements_unlocked: list[str] = field(default_factory=list)
    duplicate: bool = False
    error: ErrorKind | None = None
    error_message: str | None = None

    @classmethod
    def failure(cls, token: str, exc: AreteError) -> ProcessResult:
        return cls(success=False, token=token, error=exc.kind, error_message=exc.message)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], *, duplicate: bool = False) -> ProcessResult:
        error = raw.get("error")
        return cls(
            success=bool(raw["success"]),
            token=raw["token"],
            xp_awarded=int(raw.get("xp_awarded", 0)),
            new_level=int(raw.get("new_level", 0)),
            leveled_up=bool(raw.get("leveled_up", False)),
            achievements_unlocked=list(raw.get("achievements_unlocked", [])),
            duplicate=duplicate,
            error=ErrorKind(error) if error else None,
            error_message=raw.get("error_message"),
        )

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "token": self.token,
            "xp_awarded": self.xp_awarded,
            "new_level": self.new_level,
            "leveled_up": self.leveled_up,
            "achievements_unlocked": list(self.achievements_unlocked),
            "duplicate": self.duplicate,
            "error": str(self.error) if self.error else None,
            "error_message": self.error_message,
        }


@dataclass
class ReverseResult:
    """Outcome of :meth:`EventCoordinator.reverse`."""

    success: bool
    token: str
    reversal_token: str | None = None
    xp_reversed: int = 0
    new_level: int = 0
    achievements_locked: list[str] = field(default_factory=list)
    duplicate: bool = False
    error: ErrorKind | None = None
    error_message: str | None = None

    @classmethod
    def failure(cls, token: str, exc: AreteError) -> ReverseResult:
        return cls(success=False, token=token, error=exc.kind, error_message=exc.message)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any], *, duplicate: bool = False) -> ReverseResult:
        return cls(
            success=bool(raw["success"]),
            token=raw["token"],
            reversal_token=raw.get("reversal_token"),
            xp_reversed=int(raw.get("xp_reversed", 0)),
            new_level=int(raw.get("new_level", 0)),
            achievements_locked=list(raw.get("achievements_locked", [])),
            duplicate=duplicate,
        )

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "token": self.token,
            "reversal_token": self.reversal_token,
            "xp_reversed": self.xp_reversed,
            "new_level": self.new_level,
            "achievements_locked": list(self.achievements_locked),
            "duplicate": self.duplicate,
            "error": str(self.error) if self.error else None,
            "error_message": self.error_message,
        }


# ---------------------------------------------------------------------------
# Planning: pure computation per payload variant
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class EventPlan:
    """Everything one event will change, computed before any write."""

    subject_day: date
    breakdown: XpBreakdown
    awards: list[MilestoneAward]
    delta: ProgressDelta
    streak: StreakResult | None = None
    history: tuple[date, ...] = ()

    @property
    def unlocked(self) -> list[str]:
        return [a.achievement_id for a in self.awards if a.achievement_id]


def _cross_domain_change(previous: ProgressSnapshot) -> CounterChange:
    total = previous.cross_domain_total
    return CounterChange(MilestoneDimension.CROSS_DOMAIN, total, total + 1)


def plan_task_completed(
    event: ActionEvent,
    previous: ProgressSnapshot,
    rules: XpRules,
    milestones: Sequence[Milestone],
) -> EventPlan:
    """Streak before/after this completion drives the streak milestones.

    The "before" streak is measured on the previous day, so a completion
    that extends a run of six into seven crosses the 7 threshold only.
    """
    p: TaskCompletedPayload = event.payload
    prior = p.completion_history
    history = normalize_history((*prior, p.completed_on))
    before = calculate_streak(prior, p.recurrence, p.created_on, as_of=p.completed_on - _ONE_DAY)
    after = calculate_streak(history, p.recurrence, p.created_on, as_of=p.completed_on)

    changes = [
        CounterChange(MilestoneDimension.STREAK, before.current_streak, after.current_streak),
        CounterChange(MilestoneDimension.STREAK_BEST, before.best_streak, after.best_streak),
        CounterChange(MilestoneDimension.TOTAL, len(prior), len(history)),
        _cross_domain_change(previous),
    ]
    awards = resolve_milestones(event.source, changes, milestones, previous.earned_achievements)
    breakdown = calculate_xp(
        rules.base_for(event.source),
        after.current_streak,
        p.difficulty,
        p.category,
        milestone_bonus=sum(a.bonus_xp for a in awards),
        rules=rules,
    )
    delta = ProgressDelta(
        xp=breakdown.total_xp,
        category_xp={str(p.category): breakdown.total_xp},
        unlock_achievements=tuple(a.achievement_id for a in awards if a.achievement_id),
        action_counts={str(event.source): 1},
    )
    return EventPlan(p.completed_on, breakdown, awards, delta, streak=after, history=history)


def plan_food_logged(
    event: ActionEvent,
    previous: ProgressSnapshot,
    rules: XpRules,
    milestones: Sequence[Milestone],
) -> EventPlan:
    """Only the first ``daily_meal_cap`` meals of a day earn base XP."""
    p: FoodLoggedPayload = event.payload
    logged = previous.count_for(event.source)
    changes = [
        CounterChange(MilestoneDimension.TOTAL, logged, logged + 1),
        CounterChange(
            MilestoneDimension.MACRO_PROGRESS, p.previous_macro_progress, p.macro_progress
        ),
        _cross_domain_change(previous),
    ]
    awards = resolve_milestones(event.source, changes, milestones, previous.earned_achievements)
    base = rules.base_for(event.source) if p.daily_meal_count <= rules.daily_meal_cap else 0
    breakdown = calculate_xp(
        base,
        0,
        Difficulty.MEDIUM,
        p.category,
        milestone_bonus=sum(a.bonus_xp for a in awards),
        rules=rules,
    )
    delta = ProgressDelta(
        xp=breakdown.total_xp,
        category_xp={str(p.category): breakdown.total_xp},
        unlock_achievements=tuple(a.achievement_id for a in awards if a.achievement_id),
        action_counts={str(event.source): 1},
    )
    return EventPlan(p.logged_on, breakdown, awards, delta)


def plan_weight_logged(
    event: ActionEvent,
    previous: ProgressSnapshot,
    rules: XpRules,
    milestones: Sequence[Milestone],
) -> EventPlan:
    """Entry-count milestones plus loss/gain milestones on the change since the last weigh-in."""
    p: WeightLoggedPayload = event.payload
    changes = [
        CounterChange(MilestoneDimension.TOTAL, p.total_entries - 1, p.total_entries),
        _cross_domain_change(previous),
    ]
    if p.weight_change is not None:
        changes.append(CounterChange(MilestoneDimension.WEIGHT_LOSS, 0, max(-p.weight_change, 0)))
        changes.append(CounterChange(MilestoneDimension.WEIGHT_GAIN, 0, max(p.weight_change, 0)))
    awards = resolve_milestones(event.source, changes, milestones, previous.earned_achievements)
    breakdown = calculate_xp(
        rules.base_for(event.source),
        0,
        Difficulty.MEDIUM,
        p.category,
        milestone_bonus=sum(a.bonus_xp for a in awards),
        rules=rules,
    )
    delta = ProgressDelta(
        xp=breakdown.total_xp,
        category_xp={str(p.category): breakdown.total_xp},
        unlock_achievements=tuple(a.achievement_id for a in awards if a.achievement_id),
        action_counts={str(event.source): 1},
    )
    return EventPlan(p.logged_on, breakdown, awards, delta)


PLANNERS: dict[EventSource, Callable[..., EventPlan]] = {
    EventSource.TASK_COMPLETED: plan_task_completed,
    EventSource.FOOD_LOGGED: plan_food_logged,
    EventSource.WEIGHT_LOGGED: plan_weight_logged,
}


# ---------------------------------------------------------------------------
# Task counter updates
# ---------------------------------------------------------------------------
def _task_fields(task: Task, plan: EventPlan) -> dict:
    if plan.streak is None:
        raise ValueError(f"Task {task.id} update needs a plan with a streak result")
    return {
        "task_id": task.id,
        "completion_history": [d.isoformat() for d in plan.history],
        "current_streak": plan.streak.current_streak,
        "best_streak": max(plan.streak.best_streak, task.best_streak),
        "total_completions": len(plan.history),
    }


def _undo_task_fields(task: Task, undo: dict) -> dict:
    """Fields that undo one completion on *task*.

    If the task is still exactly as the completion left it, the recorded
    prior state is restored.  Otherwise only that day is removed and the
    counters are recomputed from the remaining history.
    """
    if task_state(task) == undo["applied"]:
        return undo["revert_to"]

    day = undo["completed_day"]
    history = [d for d in task.completion_history or [] if d != day]
    rule = RecurrenceRule.from_dict(undo["recurrence"])
    as_of = max(normalize_day(d) for d in history) if history else normalize_day(day)
    streak = calculate_streak(history, rule, undo["created_on"], as_of=as_of)
    logger.info("Task %s changed since %s was completed; recomputing counters", task.id, day)
    return {
        "task_id": task.id,
        "completion_history": history,
        "current_streak": streak.current_streak,
        "best_streak": streak.best_streak,
        "total_completions": len(history),
    }


def _with_stored_history(event: ActionEvent, task: Task) -> ActionEvent:
    """Fold the task row's recorded completions into the event's prior history.

    Raises
    ------
    ValidationError
        If the row already records a completion on ``completed_on``.
    """
    p: TaskCompletedPayload = event.payload
    stored = normalize_history(task.completion_history or ())
    if p.completed_on in stored:
        raise ValidationError(
            f"Task already completed on {p.completed_on.isoformat()}", field="completed_on"
        )
    merged = normalize_history((*p.completion_history, *stored))
    if merged == p.completion_history:
        return event
    return replace(event, payload=replace(p, completion_history=merged))


# ---------------------------------------------------------------------------
# Ledger serialization
# ---------------------------------------------------------------------------
def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def log_entry_to_dict(entry: EventLog) -> dict:
    """JSON-friendly view of a ledger entry for history listings."""
    return {
        "token": entry.token,
        "user_id": entry.user_id,
        "source": entry.source,
        "subject_id": entry.subject_id,
        "status": entry.status,
        "timestamp": _iso(entry.timestamp),
        "reversed_at": _iso(entry.reversed_at),
        "reversed_by_token": entry.reversed_by_token,
        "error_message": entry.error_message,
        "contract": entry.contract_data,
        "reversible": entry.is_reversible,
    }


def _undo_process_result(token: str, reversed_: ReverseResult, *, duplicate: bool = False) -> ProcessResult:
    """Result of an undo-style event, in the shape :meth:`EventCoordinator.process` returns."""
    return ProcessResult(
        success=reversed_.success,
        token=token,
        xp_awarded=-reversed_.xp_reversed,
        new_level=reversed_.new_level,
        duplicate=duplicate,
    )


def _cached_process_result(entry: EventLog) -> ProcessResult:
    contract = entry.contract_data or {}
    if "process_result" in contract:
        return ProcessResult.from_dict(contract["process_result"], duplicate=True)
    cached = contract.get("result")
    if cached is None:
        return ProcessResult(
            success=False,
            token=entry.token,
            duplicate=True,
            error=ErrorKind.DUPLICATE_TOKEN,
            error_message=f"Token {entry.token!r} is already used by another event.",
        )
    if "reverses" in contract:
        return _undo_process_result(entry.token, ReverseResult.from_dict(cached), duplicate=True)
    return ProcessResult.from_dict(cached, duplicate=True)


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------
class EventCoordinator:
    """Processes and reverses action events against injected repositories.

    Parameters
    ----------
    unit_of_work:
        Zero-argument factory returning a fresh :class:`UnitOfWork`.
    rules:
        XP tuning.  Defaults to :class:`XpRules()`.
    milestones:
        Milestone table.  Defaults to :func:`default_milestones`.
    clock:
        Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        unit_of_work: Callable[[], UnitOfWork],
        *,
        rules: XpRules | None = None,
        milestones: Sequence[Milestone] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._unit_of_work = unit_of_work
        self.rules = rules or XpRules()
        self.milestones = tuple(milestones) if milestones is not None else default_milestones()
        self._clock = clock or (lambda: datetime.now(UTC))

    @classmethod
    def from_engine(cls, engine: Engine, config: AreteConfig | None = None, **kwargs) -> EventCoordinator:
        if config is not None:
            kwargs.setdefault("rules", config.xp)
            kwargs.setdefault("milestones", config.milestones)
        return cls(lambda: SqlUnitOfWork(engine), **kwargs)

    # ------------------------------------------------------------------
    # process
    # ------------------------------------------------------------------
    def process(self, event: ActionEvent | Mapping[str, Any]) -> ProcessResult:
        """Apply one action event exactly once.

        Accepts an :class:`ActionEvent` or its JSON-shaped mapping.
        Re-submitting a token returns the cached result with
        ``duplicate=True``.
        """
        if not isinstance(event, ActionEvent):
            raw_token = event.get("token") if isinstance(event, Mapping) else None
            try:
                event = ActionEvent.from_dict(dict(event) if isinstance(event, Mapping) else event)
            except ValidationError as exc:
                logger.warning("Rejected event %s: %s", raw_token, exc.message)
                return ProcessResult.failure(str(raw_token or ""), exc)

        if event.source in UNDO_TARGETS:
            return self._process_undo_event(event)

        try:
            with self._unit_of_work() as uow:
                existing = uow.event_log.get(event.token)
                if existing is not None:
                    logger.debug("Duplicate token %s, returning cached result", event.token)
                    return _cached_process_result(existing)

                result = self._apply_event(uow, event)
                uow.commit()
        except DuplicateTokenError:
            # Lost a race with a concurrent submission of the same token.
            return self._cached_after_race(event.token)
        except AreteError as exc:
            logger.warning("Event %s failed: %s", event.token, exc.message)
            return ProcessResult.failure(event.token, exc)
        except SQLAlchemyError as exc:
            logger.exception("Persistence failure processing event %s", event.token)
            return ProcessResult.failure(event.token, PersistenceError(str(exc)))

        logger.info(
            "Event %s (%s) for %s: +%d XP, level %d%s",
            event.token, event.source, event.user_id, result.xp_awarded, result.new_level,
            f", unlocked {', '.join(result.achievements_unlocked)}" if result.achievements_unlocked else "",
        )
        return result

    def _apply_event(self, uow: UnitOfWork, event: ActionEvent) -> ProcessResult:
        previous = uow.progress.get(event.user_id)
        task = None
        if isinstance(event.payload, TaskCompletedPayload):
            task = uow.tasks.get(event.payload.task_id, event.user_id)
            if task is not None:
                event = _with_stored_history(event, task)

        plan = PLANNERS[event.source](event, previous, self.rules, self.milestones)
        final = apply_delta(previous, plan.delta)

        task_undo: list[dict] = []
        task_fields: dict | None = None
        if task is not None:
            task_fields = _task_fields(task, plan)
            task_undo.append({
                "task_id": task.id,
                "revert_to": task_state(task),
                "applied": task_fields,
                "completed_day": plan.subject_day.isoformat(),
                "recurrence": event.payload.recurrence.to_dict(),
                "created_on": event.payload.created_on.isoformat(),
            })

        undo = UndoInstructions.for_delta(plan.delta, previous, tuple(task_undo))
        result = ProcessResult(
            success=True,
            token=event.token,
            xp_awarded=plan.breakdown.total_xp,
            new_level=final.level,
            leveled_up=final.level > previous.level,
            achievements_unlocked=plan.unlocked,
        )
        entry = EventLog(
            token=event.token,
            user_id=event.user_id,
            source=str(event.source),
            subject_id=event.subject_id,
            contract_data={
                "event": event.to_dict(),
                "subject_day": plan.subject_day.isoformat(),
                "xp": plan.breakdown.to_dict(),
                "streak": plan.streak.to_dict() if plan.streak else None,
                "milestones": [a.to_dict() for a in plan.awards],
                "task_updates": [task_fields] if task_fields else [],
                "result": result.to_dict(),
            },
            reversal_data={
                "undo_instructions": undo.to_dict(),
                "previous_user_state": previous.to_state_dict(),
                "final_user_state": final.to_state_dict(),
            },
            status=EventStatus.COMPLETED,
            timestamp=self._clock(),
        )

        uow.event_log.add(entry)
        if task is not None and task_fields is not None:
            uow.tasks.update(task, task_fields)
        uow.progress.save(final)
        return result

    def _cached_after_race(self, token: str) -> ProcessResult:
        try:
            with self._unit_of_work() as uow:
                existing = uow.event_log.get(token)
                if existing is not None:
                    return _cached_process_result(existing)
        except SQLAlchemyError as exc:
            logger.exception("Persistence failure reading cached result for %s", token)
            return ProcessResult.failure(token, PersistenceError(str(exc)))
        return ProcessResult.failure(token, DuplicateTokenError(token))

    # ------------------------------------------------------------------
    # Undo-style events (task_uncompleted, food_deleted, weight_deleted)
    # ------------------------------------------------------------------
    def _process_undo_event(self, event: ActionEvent) -> ProcessResult:
        """Resolve the originating event and reverse it under this event's token."""
        try:
            with self._unit_of_work() as uow:
                existing = uow.event_log.get(event.token)
                if existing is not None:
                    logger.debug("Duplicate token %s, returning cached result", event.token)
                    return _cached_process_result(existing)

                target = self._find_undo_target(uow, event)
                reversed_ = self._apply_reversal(
                    uow, target, event.token, reason=str(event.source), undo_event=event
                )
                result = _undo_process_result(event.token, reversed_)
                uow.commit()
        except DuplicateTokenError:
            return self._cached_after_race(event.token)
        except (NotFoundError, AlreadyReversedError, NotReversibleError) as exc:
            logger.warning("Event %s failed: %s", event.token, exc.message)
            return self._record_failure(event, exc)
        except AreteError as exc:
            return ProcessResult.failure(event.token, exc)
        except SQLAlchemyError as exc:
            logger.exception("Persistence failure processing event %s", event.token)
            return ProcessResult.failure(event.token, PersistenceError(str(exc)))

        logger.info(
            "Event %s (%s) for %s reversed %d XP", event.token, event.source,
            event.user_id, -result.xp_awarded,
        )
        return result

    def _find_undo_target(self, uow: UnitOfWork, event: ActionEvent) -> EventLog:
        payload = event.payload
        explicit: str | None = None
        on_day: date | None = None
        if isinstance(payload, TaskUncompletedPayload):
            explicit, on_day = payload.completion_token, payload.uncompleted_on
        elif isinstance(payload, FoodDeletedPayload | WeightDeletedPayload):
            explicit = payload.logged_token

        if explicit:
            target = uow.event_log.get(explicit)
            if target is None or target.user_id != event.user_id:
                raise NotFoundError(explicit)
            return target

        target = uow.event_log.find_latest_reversible(
            event.user_id,
            UNDO_TARGETS[event.source],
            event.subject_id,
            on_day=on_day,
            since=self._clock() - timedelta(days=REVERSAL_LOOKBACK_DAYS),
        )
        if target is None:
            raise NotFoundError(
                None,
                f"No reversible {UNDO_TARGETS[event.source]} event found for {event.subject_id}",
            )
        return target

    def _record_failure(self, event: ActionEvent, exc: AreteError) -> ProcessResult:
        """Write a ``failed`` ledger entry so the token keeps its answer."""
        result = ProcessResult.failure(event.token, exc)
        entry = EventLog(
            token=event.token,
            user_id=event.user_id,
            source=str(event.source),
            subject_id=event.subject_id,
            contract_data={"event": event.to_dict(), "result": result.to_dict()},
            reversal_data=None,
            status=EventStatus.FAILED,
            error_message=exc.message,
            timestamp=self._clock(),
        )
        try:
            with self._unit_of_work() as uow:
                uow.event_log.add(entry)
                uow.commit()
        except DuplicateTokenError:
            return self._cached_after_race(event.token)
        except SQLAlchemyError:
            logger.exception("Could not record failure for event %s", event.token)
        return result

    # ------------------------------------------------------------------
    # reverse
    # ------------------------------------------------------------------
    def reverse(
        self,
        token: str,
        *,
        user_id: str | None = None,
        reversal_token: str | None = None,
        reason: str = "",
    ) -> ReverseResult:
        """Undo the event logged under *token* using its stored instructions.

        Parameters
        ----------
        token:
            Token of the event to undo.
        user_id:
            When given, the event must belong to this user (otherwise
            reported as ``not_found``).
        reversal_token:
            Token for the reversal's own ledger entry.  Generated when
            omitted; re-submitting it returns the cached result.
        reason:
            Free text stored in the reversal entry.
        """
        reversal_token = reversal_token or uuid4().hex
        try:
            with self._unit_of_work() as uow:
                existing = uow.event_log.get(reversal_token)
                if existing is not None:
                    if existing.contract_data.get("reverses") == token and "result" in existing.contract_data:
                        return ReverseResult.from_dict(existing.contract_data["result"], duplicate=True)
                    raise DuplicateTokenError(reversal_token)

                target = uow.event_log.get(token)
                if target is None or (user_id is not None and target.user_id != user_id):
                    raise NotFoundError(token)

                result = self._apply_reversal(uow, target, reversal_token, reason=reason)
                uow.commit()
        except AreteError as exc:
            logger.warning("Reversal of %s failed: %s", token, exc.message)
            return ReverseResult.failure(token, exc)
        except SQLAlchemyError as exc:
            logger.exception("Persistence failure reversing event %s", token)
            return ReverseResult.failure(token, PersistenceError(str(exc)))

        logger.info("Event %s reversed by %s: -%d XP", token, reversal_token, result.xp_reversed)
        return result

    def _apply_reversal(
        self,
        uow: UnitOfWork,
        target: EventLog,
        reversal_token: str,
        *,
        reason: str,
        undo_event: ActionEvent | None = None,
    ) -> ReverseResult:
        """Apply *target*'s undo instructions and log the reversal under *reversal_token*.

        When *undo_event* (a task_uncompleted / food_deleted / weight_deleted
        event) triggered the reversal, its own result is stored with the
        entry so a resubmitted token returns it unchanged.
        """
        if target.status == EventStatus.REVERSED or target.reversed_at is not None:
            raise AlreadyReversedError(target.token)
        if target.status == EventStatus.FAILED:
            raise NotReversibleError(target.token, "the event failed")
        if target.source == EventSource.REVERSAL or not target.reversal_data:
            raise NotReversibleError(target.token, "reversal entries are final")

        undo = UndoInstructions.from_dict(target.reversal_data["undo_instructions"])
        previous = uow.progress.get(target.user_id)
        final = apply_delta(previous, undo.as_delta())
        if final.level != undo.revert_level:
            logger.info(
                "Reversing %s leaves %s at level %d (level before the event was %d)",
                target.token, target.user_id, final.level, undo.revert_level,
            )

        for task_undo in undo.undo_task_updates:
            task = uow.tasks.get(task_undo["task_id"], target.user_id)
            if task is not None:
                uow.tasks.update(task, _undo_task_fields(task, task_undo))

        now = self._clock()
        result = ReverseResult(
            success=True,
            token=target.token,
            reversal_token=reversal_token,
            xp_reversed=-undo.subtract_xp,
            new_level=final.level,
            achievements_locked=list(undo.lock_achievements),
        )
        contract = {
            "reverses": target.token,
            "action": f"reverse_{target.source}",
            "reason": reason,
            "result": result.to_dict(),
        }
        if undo_event is not None:
            contract["event"] = undo_event.to_dict()
            contract["process_result"] = _undo_process_result(undo_event.token, result).to_dict()
        uow.event_log.add(EventLog(
            token=reversal_token,
            user_id=target.user_id,
            source=EventSource.REVERSAL,
            subject_id=target.subject_id,
            contract_data=contract,
            reversal_data={
                "previous_user_state": previous.to_state_dict(),
                "final_user_state": final.to_state_dict(),
            },
            status=EventStatus.COMPLETED,
            timestamp=now,
        ))
        uow.event_log.mark_reversed(target, now, reversal_token)
        uow.progress.save(final)
        return result

    # ------------------------------------------------------------------
    # Ledger queries
    # ------------------------------------------------------------------
    def can_reverse(self, token: str, user_id: str) -> bool:
        with self._unit_of_work() as uow:
            entry = uow.event_log.get(token)
            return entry is not None and entry.user_id == user_id and entry.is_reversible

    def get_event(self, token: str) -> dict | None:
        with self._unit_of_work() as uow:
            entry = uow.event_log.get(token)
            return log_entry_to_dict(entry) if entry is not None else None

    def history(
        self,
        user_id: str,
        *,
        since: datetime | None = None,
        until: datetime | None = None,
        status: EventStatus | None = None,
        limit: int = 50,
    ) -> list[dict]:
        """Ledger entries for *user_id*, newest first."""
        with self._unit_of_work() as uow:
            entries = uow.event_log.list_for_user(
                user_id, since=since, until=until, status=status, limit=limit
            )
            return [log_entry_to_dict(e) for e in entries]

    def reversible_events(self, user_id: str, limit: int = 100) -> list[dict]:
        with self._unit_of_work() as uow:
            return [log_entry_to_dict(e) for e in uow.event_log.find_reversible(user_id, limit)]


__all__ = [
    "EventCoordinator",
    "EventPlan",
    "PLANNERS",
    "ProcessResult",
    "ReverseResult",
    "UNDO_TARGETS",
    "log_entry_to_dict",
    "plan_food_logged",
    "plan_task_completed",
    "plan_weight_logged",
]
