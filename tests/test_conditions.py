"""Tests for the condition evaluators."""

from conftest import NOW

from loyly.data.daily_tasks import (
    CounterCondition,
    DeltaThresholdCondition,
    SequenceCondition,
    StreakCondition,
    StreakRateCondition,
    ThresholdCondition,
    UptimeCondition,
)
from loyly.engine.conditions import (
    DailyTaskContext,
    apply_counter_event,
    apply_sequence_event,
    apply_streak_event,
    apply_streak_rate_event,
    condition_target,
    evaluate_event,
    evaluate_metric,
    initial_condition_state,
    matches_event,
)
from loyly.engine.game_state import DailyTaskMetrics


def _at(seconds: float) -> float:
    return NOW + seconds * 1000.0


# ── Counter ──────────────────────────────────────────────────────────────────

def test_counter_counts_each_event():
    cond = CounterCondition(event="loyly_throw", target=3)
    progress, state = apply_counter_event(cond, None)
    progress, state = apply_counter_event(cond, state)
    assert progress == 2
    assert state["count"] == 2


def test_same_type_counter_tracks_the_biggest_bucket():
    cond = CounterCondition(event="building_bought_same_type", target=5)
    state = None
    for bid in ("sauna", "sauna", "kylakauppa", "sauna"):
        progress, state = apply_counter_event(cond, state, {"building_id": bid})
    assert progress == 3
    assert state["byKey"] == {"sauna": 3, "kylakauppa": 1}


def test_counter_ignores_foreign_state():
    cond = CounterCondition(event="click", target=1)
    progress, state = apply_counter_event(cond, {"type": "streak", "events": [1, 2]})
    assert progress == 1
    assert state["type"] == "counter"


# ── Streak ───────────────────────────────────────────────────────────────────

def test_streak_restarts_after_long_gap_and_completes():
    cond = StreakCondition(event="loyly_throw", window_s=30, max_gap_s=10)
    state = None
    progress = 0.0
    for offset in (0, 5, 40):
        progress, state = apply_streak_event(cond, state, _at(offset))
    assert state["streakStartAt"] == _at(40)
    assert progress == 0

    for offset in (46, 52, 58, 64):
        progress, state = apply_streak_event(cond, state, _at(offset))
    assert progress == 24

    progress, state = apply_streak_event(cond, state, _at(70))
    assert progress >= 30


def test_streak_single_event_has_no_duration():
    cond = StreakCondition(event="loyly_throw", window_s=10, max_gap_s=5)
    progress, state = apply_streak_event(cond, None, NOW)
    assert progress == 0
    assert state["events"] == [NOW]


def test_streak_keeps_events_within_window():
    cond = StreakCondition(event="loyly_throw", window_s=10, max_gap_s=5)
    state = None
    for offset in range(0, 30, 2):
        _, state = apply_streak_event(cond, state, _at(offset))
    assert all(_at(28) - e <= 10_000 for e in state["events"])
    assert state["streakStartAt"] == _at(18)


def test_streak_drops_timestamps_older_than_window():
    cond = StreakCondition(event="loyly_throw", window_s=30, max_gap_s=10)
    state = None
    for offset in (0, 8, 16, 24, 32):
        progress, state = apply_streak_event(cond, state, _at(offset))
    assert state["events"] == [_at(8), _at(16), _at(24), _at(32)]
    assert progress == 24


# ── Streak rate ──────────────────────────────────────────────────────────────

def test_streak_rate_resets_on_slow_event():
    cond = StreakRateCondition(event="loyly_throw", count=3, max_interval_s=5)
    state = None
    counts = []
    for offset in (0, 2, 9, 13, 17):
        progress, state = apply_streak_rate_event(cond, state, _at(offset))
        counts.append(progress)
    assert counts == [1, 2, 1, 2, 3]
    assert progress >= cond.count


def test_streak_rate_interval_boundary_is_inclusive():
    cond = StreakRateCondition(event="loyly_throw", count=2, max_interval_s=5)
    _, state = apply_streak_rate_event(cond, None, _at(0))
    progress, _ = apply_streak_rate_event(cond, state, _at(5))
    assert progress == 2


# ── Sequence ─────────────────────────────────────────────────────────────────

def test_sequence_advances_in_order_only():
    cond = SequenceCondition(events=("building_bought", "technology_bought", "tier_unlocked"), window_s=600)
    progress, state = apply_sequence_event(cond, None, "building_bought", _at(0))
    assert progress == 1
    progress, state = apply_sequence_event(cond, state, "tier_unlocked", _at(1))
    assert progress == 1
    progress, state = apply_sequence_event(cond, state, "technology_bought", _at(2))
    progress, state = apply_sequence_event(cond, state, "tier_unlocked", _at(3))
    assert progress == 3


def test_sequence_window_expiry_restarts():
    cond = SequenceCondition(events=("building_bought", "technology_bought"), window_s=60)
    _, state = apply_sequence_event(cond, None, "building_bought", _at(0))
    progress, state = apply_sequence_event(cond, state, "technology_bought", _at(61))
    assert progress == 0
    assert state["index"] == 0


def test_sequence_first_step_restarts_progress():
    cond = SequenceCondition(events=("building_bought", "technology_bought", "tier_unlocked"))
    _, state = apply_sequence_event(cond, None, "building_bought", _at(0))
    _, state = apply_sequence_event(cond, state, "technology_bought", _at(1))
    progress, state = apply_sequence_event(cond, state, "building_bought", _at(2))
    assert progress == 1
    assert state["lastEventTime"] == _at(2)


def test_completed_sequence_stays_complete():
    cond = SequenceCondition(events=("click",))
    _, state = apply_sequence_event(cond, None, "click", _at(0))
    progress, again = apply_sequence_event(cond, state, "click", _at(1))
    assert progress == 1
    assert again == state


# ── Dispatch ─────────────────────────────────────────────────────────────────

def test_evaluate_event_ignores_unrelated_events():
    cond = CounterCondition(event="loyly_throw", target=1)
    assert evaluate_event(cond, None, "click", NOW) is None
    assert not matches_event(ThresholdCondition(), "loyly_throw")


def test_targets_and_initial_state():
    assert condition_target(StreakCondition(window_s=30)) == 30
    assert condition_target(SequenceCondition(events=("a", "b"))) == 2
    assert condition_target(UptimeCondition(target_s=900)) == 900
    assert initial_condition_state(ThresholdCondition()) is None
    assert initial_condition_state(StreakRateCondition())["count"] == 0


# ── Metrics ──────────────────────────────────────────────────────────────────

def test_threshold_reads_current_population():
    ctx = DailyTaskContext(population=1234)
    progress, _ = evaluate_metric(ThresholdCondition(metric="temperature", target=1000), ctx, DailyTaskMetrics())
    assert progress == 1234


def test_delta_threshold_captures_missing_baseline():
    cond = DeltaThresholdCondition(metric="temperature", target=100)
    ctx = DailyTaskContext(population=50)
    progress, metrics = evaluate_metric(cond, ctx, DailyTaskMetrics())
    assert progress == 0
    assert metrics.baselines["temperature"] == 50

    progress, _ = evaluate_metric(cond, DailyTaskContext(population=120), metrics)
    assert progress == 70


def test_population_earned_today_is_relative_to_roll():
    cond = ThresholdCondition(metric="population_earned_today", target=1000)
    metrics = DailyTaskMetrics(baselines={"total_population": 500})
    progress, _ = evaluate_metric(cond, DailyTaskContext(total_population=1700), metrics)
    assert progress == 1200


def test_uptime_reads_accumulated_seconds():
    progress, _ = evaluate_metric(UptimeCondition(target_s=60), DailyTaskContext(), DailyTaskMetrics(uptime_seconds=42))
    assert progress == 42
