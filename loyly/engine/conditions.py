"""Condition evaluators — turn game signals into daily task progress.

Each evaluator is a pure function of (condition, previous condition state,
signal) returning the new raw progress and the new condition state.  Condition
state is plain tagged data so it serializes as-is.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

from loyly.data.daily_tasks import (
    CounterCondition,
    DeltaThresholdCondition,
    SequenceCondition,
    StreakCondition,
    StreakRateCondition,
    TaskCondition,
    ThresholdCondition,
    UptimeCondition,
)
from loyly.engine.game_state import DailyTaskMetrics

SAME_TYPE_EVENT = "building_bought_same_type"


@dataclass(frozen=True)
class DailyTaskContext:
    """Snapshot of the player numbers the daily engine looks at."""

    population: float = 0.0
    total_population: float = 0.0
    prestige_mult: float = 1.0
    tier_level: int = 1
    prestige_unlocked: bool = False

    def has_feature(self, feature: str | None) -> bool:
        if feature is None:
            return True
        if feature == "prestige":
            return self.prestige_unlocked
        return True


def snapshot_metrics(context: DailyTaskContext) -> dict[str, float]:
    """Metric values recorded as baselines when a rotation is rolled."""
    return {
        "temperature": context.population,
        "total_population": context.total_population,
        "prestige_multiplier": context.prestige_mult,
        "population_earned_today": 0.0,
    }


def resolve_metric_value(metric: str, context: DailyTaskContext, metrics: DailyTaskMetrics) -> float:
    if metric == "temperature":
        return context.population
    if metric == "total_population":
        return context.total_population
    if metric == "prestige_multiplier":
        return context.prestige_mult
    if metric == "population_earned_today":
        start = metrics.baselines.get("total_population", context.total_population)
        return max(0.0, context.total_population - start)
    return metrics.current.get(metric, 0.0)


def condition_target(condition: TaskCondition) -> float:
    if isinstance(condition, (CounterCondition, ThresholdCondition, DeltaThresholdCondition)):
        return condition.target
    if isinstance(condition, StreakCondition):
        return condition.window_s
    if isinstance(condition, StreakRateCondition):
        return condition.count
    if isinstance(condition, SequenceCondition):
        return float(len(condition.events))
    if isinstance(condition, UptimeCondition):
        return condition.target_s
    return 0.0


def initial_condition_state(condition: TaskCondition) -> dict[str, Any] | None:
    if isinstance(condition, CounterCondition):
        return {"type": "counter", "count": 0, "byKey": {}}
    if isinstance(condition, StreakCondition):
        return {"type": "streak", "events": [], "streakStartAt": None}
    if isinstance(condition, StreakRateCondition):
        return {"type": "streak_rate", "count": 0, "lastTimestamp": None}
    if isinstance(condition, SequenceCondition):
        return {"type": "sequence", "index": 0, "lastEventTime": None}
    return None


def matches_event(condition: TaskCondition, event: str) -> bool:
    if isinstance(condition, SequenceCondition):
        return event in condition.events
    if isinstance(condition, (CounterCondition, StreakCondition, StreakRateCondition)):
        return condition.event == event
    return False


# ── Event-driven evaluators ───────────────────────────────────────


def apply_counter_event(
    condition: CounterCondition,
    state: dict[str, Any] | None,
    payload: dict[str, Any] | None = None,
) -> tuple[float, dict[str, Any]]:
    """Count matching events; same-type purchases count per building."""
    prev = state if state and state.get("type") == "counter" else initial_condition_state(condition)
    by_key = dict(prev.get("byKey") or {})
    if condition.event == SAME_TYPE_EVENT:
        key = (payload or {}).get("building_id") or "default"
        by_key[key] = by_key.get(key, 0) + 1
        count = max(by_key.values())
    else:
        count = prev.get("count", 0) + 1
    return float(count), {"type": "counter", "count": count, "byKey": by_key}


def apply_streak_event(
    condition: StreakCondition,
    state: dict[str, Any] | None,
    now: float,
) -> tuple[float, dict[str, Any]]:
    prev = state if state and state.get("type") == "streak" else initial_condition_state(condition)
    window_ms = condition.window_s * 1000.0
    max_gap_ms = condition.max_gap_s * 1000.0

    events = [*prev.get("events", []), now]
    while events and now - events[0] > window_ms:
        events.pop(0)
    for i in range(len(events) - 1, 0, -1):
        if events[i] - events[i - 1] > max_gap_ms:
            events = events[i:]
            break

    progress = (events[-1] - events[0]) / 1000.0 if len(events) >= 2 else 0.0
    return progress, {"type": "streak", "events": events, "streakStartAt": events[0]}


def apply_streak_rate_event(
    condition: StreakRateCondition,
    state: dict[str, Any] | None,
    now: float,
) -> tuple[float, dict[str, Any]]:
    prev = state if state and state.get("type") == "streak_rate" else initial_condition_state(condition)
    last = prev.get("lastTimestamp")
    if last is not None and now - last <= condition.max_interval_s * 1000.0:
        count = prev.get("count", 0) + 1
    else:
        count = 1
    return float(count), {"type": "streak_rate", "count": count, "lastTimestamp": now}


def apply_sequence_event(
    condition: SequenceCondition,
    state: dict[str, Any] | None,
    event: str,
    now: float,
) -> tuple[float, dict[str, Any]]:
    prev = state if state and state.get("type") == "sequence" else initial_condition_state(condition)
    steps = condition.events
    index = prev.get("index", 0)
    started = prev.get("lastEventTime")

    if index >= len(steps):
        return float(len(steps)), dict(prev)

    if condition.window_s is not None and started is not None and now - started > condition.window_s * 1000.0:
        index, started = 0, None

    if event == steps[index]:
        if index == 0:
            started = now
        index += 1
    elif event == steps[0]:
        index, started = 1, now

    index = min(index, len(steps))
    return float(index), {"type": "sequence", "index": index, "lastEventTime": started}


def evaluate_event(
    condition: TaskCondition,
    state: dict[str, Any] | None,
    event: str,
    now: float,
    payload: dict[str, Any] | None = None,
) -> tuple[float, dict[str, Any]] | None:
    """Dispatch an event to its evaluator; None when the condition ignores it."""
    if not matches_event(condition, event):
        return None
    if isinstance(condition, CounterCondition):
        return apply_counter_event(condition, state, payload)
    if isinstance(condition, StreakCondition):
        return apply_streak_event(condition, state, now)
    if isinstance(condition, StreakRateCondition):
        return apply_streak_rate_event(condition, state, now)
    if isinstance(condition, SequenceCondition):
        return apply_sequence_event(condition, state, event, now)
    return None


# ── Metric-driven evaluators ──────────────────────────────────────


def evaluate_metric(
    condition: TaskCondition,
    context: DailyTaskContext,
    metrics: DailyTaskMetrics,
) -> tuple[float, DailyTaskMetrics] | None:
    """Progress of a metric condition; a missing delta baseline is captured now."""
    if isinstance(condition, ThresholdCondition):
        return max(0.0, resolve_metric_value(condition.metric, context, metrics)), metrics
    if isinstance(condition, DeltaThresholdCondition):
        value = resolve_metric_value(condition.metric, context, metrics)
        if condition.metric not in metrics.baselines:
            baselines = {**metrics.baselines, condition.metric: value}
            return 0.0, replace(metrics, baselines=baselines)
        return max(0.0, value - metrics.baselines[condition.metric]), metrics
    if isinstance(condition, UptimeCondition):
        return metrics.uptime_seconds, metrics
    return None
