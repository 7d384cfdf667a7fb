"""Tests for the daily task engine: rotation, progress, claims and buffs."""

from collections import Counter

from conftest import NOW, build_config, task

from loyly.engine.conditions import DailyTaskContext
from loyly.engine.daily_tasks import (
    apply_uptime_progress,
    claim_daily_task_reward,
    claimable_task_ids,
    create_initial_daily_tasks_state,
    ensure_daily_tasks_for_today,
    get_temperature_gain_multiplier,
    handle_daily_task_event,
    prune_expired_buffs,
    reroll_daily_tasks,
    rotation_seed,
    update_daily_task_metrics,
)
from loyly.engine.telemetry import NOTIFY_COMPLETE

DAY_MS = 86_400_000
CTX = DailyTaskContext()

THROW_ONCE = task("throw_once", {"type": "counter", "event": "loyly_throw", "target": 1})


def _rolled(config, ctx=CTX, now=NOW, hooks=None):
    return ensure_daily_tasks_for_today(create_initial_daily_tasks_state(), ctx, now, config=config, hooks=hooks)


def _wide_catalog():
    """Twelve tasks over four categories with mixed tier gates."""
    tasks = []
    for i in range(12):
        tasks.append(
            task(
                f"t{i}",
                {"type": "counter", "event": "click", "target": 5},
                category=f"cat{i % 4}",
                min_tier=i % 3,
                weight=1 + i % 2,
            )
        )
    tasks.append(
        task("gated", {"type": "counter", "event": "click", "target": 1}, category="cat9", requires_feature="prestige")
    )
    return tasks


# ── Rotation ─────────────────────────────────────────────────────────────────

def test_rotation_is_deterministic():
    config = build_config(_wide_catalog(), tasks_per_day=3)
    first = _rolled(config)
    second = _rolled(config)
    assert first.task_order == second.task_order
    assert len(first.task_order) == 3


def test_rotation_seed_format():
    ctx = DailyTaskContext(tier_level=4, prestige_mult=1.2345)
    assert rotation_seed("2026-03-10", 1, ctx) == "2026-03-10:1:4:1234"


def test_rotation_respects_category_cap():
    config = build_config(_wide_catalog(), tasks_per_day=3)
    for day in range(20):
        for tier in (1, 2, 3, 5):
            state = _rolled(config, DailyTaskContext(tier_level=tier), NOW + day * DAY_MS)
            categories = Counter(config.get_task(t).category for t in state.task_order)
            assert max(categories.values()) <= 1


def test_rotation_respects_tier_and_feature_gates():
    config = build_config(_wide_catalog(), tasks_per_day=3)
    for day in range(20):
        for tier in (1, 2, 3):
            ctx = DailyTaskContext(tier_level=tier)
            state = _rolled(config, ctx, NOW + day * DAY_MS)
            for task_id in state.task_order:
                definition = config.get_task(task_id)
                assert definition.min_tier <= tier - 1
                assert definition.requires_feature is None


def test_feature_gated_task_rolls_once_unlocked():
    config = build_config([task("gated", {"type": "counter", "event": "click"}, requires_feature="prestige")])
    assert _rolled(config).task_order == ()
    unlocked = _rolled(config, DailyTaskContext(prestige_unlocked=True))
    assert unlocked.task_order == ("gated",)


def test_same_day_keeps_rotation_and_new_day_rolls():
    config = build_config(_wide_catalog(), tasks_per_day=3)
    state = _rolled(config)
    later = ensure_daily_tasks_for_today(state, CTX, NOW + 3_600_000, config=config)
    assert later is state

    tomorrow = ensure_daily_tasks_for_today(state, CTX, NOW + DAY_MS, config=config)
    assert tomorrow.rolled_date == "2026-03-11"
    assert tomorrow.rerolls_used == 0


def test_roll_emits_telemetry(hooks, telemetry):
    config = build_config([THROW_ONCE])
    _rolled(config, hooks=hooks)
    name, payload = telemetry.events[0]
    assert name == "daily_task_roll"
    assert payload["taskIds"] == ["throw_once"]
    assert payload["rerollIndex"] == 0


def test_reroll_replaces_tasks_until_limit():
    config = build_config(_wide_catalog(), tasks_per_day=2, reroll_limit_per_day=1)
    ctx = DailyTaskContext(tier_level=3)
    state = _rolled(config, ctx)
    rerolled = reroll_daily_tasks(state, ctx, NOW, config=config)
    assert rerolled.rerolls_used == 1
    assert not set(rerolled.task_order) & set(state.task_order)

    again = reroll_daily_tasks(rerolled, ctx, NOW, config=config)
    assert again is rerolled


def test_reroll_recaptures_baselines():
    config = build_config([task("delta", {"type": "delta_threshold", "metric": "temperature", "target": 10})])
    state = _rolled(config, DailyTaskContext(population=5))
    rerolled = reroll_daily_tasks(state, DailyTaskContext(population=500), NOW, config=config)
    assert rerolled.metrics.baselines["temperature"] == 500


# ── Progress ─────────────────────────────────────────────────────────────────

def test_event_progress_and_completion(hooks):
    config = build_config([task("throw_two", {"type": "counter", "event": "loyly_throw", "target": 2})])
    completed = []
    hooks.notifier.on(NOTIFY_COMPLETE, completed.append)

    state = _rolled(config)
    state = handle_daily_task_event(state, "loyly_throw", CTX, NOW, config=config, hooks=hooks)
    assert state.tasks["throw_two"].progress == 1
    state = handle_daily_task_event(state, "loyly_throw", CTX, NOW + 1, config=config, hooks=hooks)
    state = handle_daily_task_event(state, "loyly_throw", CTX, NOW + 2, config=config, hooks=hooks)

    instance = state.tasks["throw_two"]
    assert instance.progress == 2
    assert instance.completed_at == NOW + 1
    assert [p["taskId"] for p in completed] == ["throw_two"]


def test_unrelated_event_returns_same_state():
    config = build_config([THROW_ONCE])
    state = _rolled(config)
    assert handle_daily_task_event(state, "click", CTX, NOW, config=config) is state


def test_streak_task_restart_and_completion():
    config = build_config(
        [task("combo", {"type": "streak", "event": "loyly_throw", "window_s": 30, "max_gap_s": 10})]
    )
    state = _rolled(config)
    for offset in (0, 5, 40):
        state = handle_daily_task_event(state, "loyly_throw", CTX, NOW + offset * 1000, config=config)
    assert state.tasks["combo"].condition_state["streakStartAt"] == NOW + 40_000

    for offset in (46, 52, 58, 64):
        state = handle_daily_task_event(state, "loyly_throw", CTX, NOW + offset * 1000, config=config)
    assert state.tasks["combo"].completed_at is None

    state = handle_daily_task_event(state, "loyly_throw", CTX, NOW + 70_000, config=config)
    assert state.tasks["combo"].progress >= 30
    assert state.tasks["combo"].completed_at == NOW + 70_000


def test_streak_rate_task_completes():
    config = build_config(
        [task("rytmi", {"type": "streak_rate", "event": "loyly_throw", "count": 3, "max_interval_s": 5})]
    )
    state = _rolled(config)
    for offset in (0, 2, 9, 13, 17):
        state = handle_daily_task_event(state, "loyly_throw", CTX, NOW + offset * 1000, config=config)
    instance = state.tasks["rytmi"]
    assert instance.condition_state["count"] == 3
    assert instance.completed_at == NOW + 17_000


def test_delta_threshold_measures_growth_since_roll():
    config = build_config([task("grow", {"type": "delta_threshold", "metric": "temperature", "delta": 100})])
    state = _rolled(config, DailyTaskContext(population=50))
    state = update_daily_task_metrics(state, DailyTaskContext(population=120), NOW, config=config)
    assert state.tasks["grow"].progress == 70
    state = update_daily_task_metrics(state, DailyTaskContext(population=160), NOW, config=config)
    assert state.tasks["grow"].completed_at == NOW


def test_population_earned_today_threshold():
    config = build_config(
        [task("earn", {"type": "threshold", "metric": "population_earned_today", "target": 1000})]
    )
    state = _rolled(config, DailyTaskContext(total_population=500))
    state = update_daily_task_metrics(state, DailyTaskContext(total_population=1700), NOW, config=config)
    assert state.tasks["earn"].progress == 1000
    assert state.metrics.current["population_earned_today"] == 1200


def test_malformed_target_never_completes():
    config = build_config(
        [
            task("broken_threshold", {"type": "threshold", "metric": "temperature", "target": "garbage"}),
            task("broken_uptime", {"type": "uptime", "target_s": -5}),
        ]
    )
    state = _rolled(config)
    state = apply_uptime_progress(state, CTX, 30, NOW, config=config)
    for task_id in ("broken_threshold", "broken_uptime"):
        assert state.tasks[task_id].completed_at is None
        assert state.tasks[task_id].progress == 0
    assert claimable_task_ids(state) == []


def test_uptime_accrues_only_online():
    config = build_config([task("uptime", {"type": "uptime", "target_s": 60})])
    state = _rolled(config)
    state = apply_uptime_progress(state, CTX, 45, NOW, config=config)
    assert state.tasks["uptime"].progress == 45

    offline = apply_uptime_progress(state, CTX, 3600, NOW, offline=True, config=config)
    assert offline.metrics.uptime_seconds == 45

    state = apply_uptime_progress(state, CTX, 20, NOW + 20_000, config=config)
    assert state.tasks["uptime"].completed_at == NOW + 20_000


# ── Claims & buffs ───────────────────────────────────────────────────────────

def test_claim_is_idempotent(hooks, telemetry):
    config = build_config([THROW_ONCE])
    state = _rolled(config)
    state = handle_daily_task_event(state, "loyly_throw", CTX, NOW, config=config)
    assert claimable_task_ids(state) == ["throw_once"]

    claimed, buff = claim_daily_task_reward(state, "throw_once", NOW + 10, config=config, hooks=hooks)
    assert buff is not None
    assert buff.value == 0.25
    assert buff.ends_at == NOW + 10 + 600_000
    assert claimed.tasks["throw_once"].claimed_at == NOW + 10

    again, none = claim_daily_task_reward(claimed, "throw_once", NOW + 20, config=config, hooks=hooks)
    assert again is claimed
    assert none is None
    assert len(again.active_buffs) == 1
    assert telemetry.names().count("daily_task_claim") == 1


def test_claim_before_completion_is_noop():
    config = build_config([THROW_ONCE])
    state = _rolled(config)
    same, buff = claim_daily_task_reward(state, "throw_once", NOW, config=config)
    assert same is state
    assert buff is None


def test_gain_multiplier_and_expiry(hooks, telemetry):
    config = build_config([THROW_ONCE])
    state = _rolled(config)
    state = handle_daily_task_event(state, "loyly_throw", CTX, NOW, config=config)
    state, buff = claim_daily_task_reward(state, "throw_once", NOW, config=config)

    assert get_temperature_gain_multiplier(state, NOW) == 1.25
    assert get_temperature_gain_multiplier(state, buff.ends_at) == 1.0

    pruned = prune_expired_buffs(state, buff.ends_at, config=config, hooks=hooks)
    assert pruned.active_buffs == ()
    assert "daily_task_buff_end" in telemetry.names()
    assert prune_expired_buffs(pruned, buff.ends_at, config=config) is pruned
