"""Daily task engine — rotation, progress tracking, claims and buffs.

All functions take a DailyTasksState snapshot and return a new one; when
nothing changes the very same object is returned so callers can compare by
identity.  Expiry of buffs and of the daily rotation is evaluated against the
`now` passed in, there are no timers.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Any, Callable

from loyly.data.daily_tasks import (
    DAILY_TASKS,
    METRIC_CONDITION_TYPES,
    DailyTaskDefinition,
    DailyTasksConfig,
)
from loyly.engine.clock import date_key, next_reset_at
from loyly.engine.conditions import (
    DailyTaskContext,
    condition_target,
    evaluate_event,
    evaluate_metric,
    initial_condition_state,
    snapshot_metrics,
)
from loyly.engine.game_state import (
    DailyTaskBuff,
    DailyTaskInstance,
    DailyTaskMetrics,
    DailyTasksState,
)
from loyly.engine.rng import RngFactory, default_rng_factory
from loyly.engine.telemetry import (
    NOTIFY_BUFF_EXPIRED,
    NOTIFY_BUFF_STARTED,
    NOTIFY_CLAIM,
    NOTIFY_COMPLETE,
    Hooks,
)

_LOGGER = logging.getLogger(__name__)

_SILENT = Hooks()


def create_initial_daily_tasks_state() -> DailyTasksState:
    return DailyTasksState()


def build_metrics(context: DailyTaskContext, now: float) -> DailyTaskMetrics:
    values = snapshot_metrics(context)
    return DailyTaskMetrics(
        baselines=dict(values),
        current=dict(values),
        uptime_seconds=0.0,
        last_uptime_update=now,
    )


# ── Rotation ──────────────────────────────────────────────────────


def rotation_seed(day: str, reroll_index: int, context: DailyTaskContext) -> str:
    bucket = math.floor(context.prestige_mult * 1000) if math.isfinite(context.prestige_mult) else 0
    return f"{day}:{reroll_index}:{context.tier_level}:{bucket}"


def is_eligible(task: DailyTaskDefinition, context: DailyTaskContext, config: DailyTasksConfig) -> bool:
    """Tier and feature gate; tier 1 corresponds to min_tier 0."""
    tier_index = max(0, math.floor(context.tier_level) - 1)
    if task.weight <= 0:
        return False
    if task.min_tier > tier_index or task.min_tier < config.rotation.selection.min_tier:
        return False
    return context.has_feature(task.requires_feature)


def pick_tasks(
    config: DailyTasksConfig,
    context: DailyTaskContext,
    rng: Callable[[], float],
    exclude: tuple[str, ...] = (),
) -> list[DailyTaskDefinition]:
    """Weighted draw without replacement under the per-category cap."""
    rotation = config.rotation
    cap = rotation.selection.max_active_per_category
    pool = [t for t in config.tasks if t.id not in exclude and is_eligible(t, context, config)]

    chosen: list[DailyTaskDefinition] = []
    per_category: dict[str, int] = {}
    while len(chosen) < rotation.tasks_per_day and pool:
        pool = [t for t in pool if per_category.get(t.category, 0) < cap]
        if not pool:
            break
        weights = [t.weight if rotation.selection.use_weights else 1.0 for t in pool]
        roll = rng() * sum(weights)
        pick = pool[-1]
        for task, weight in zip(pool, weights):
            if roll < weight:
                pick = task
                break
            roll -= weight
        chosen.append(pick)
        per_category[pick.category] = per_category.get(pick.category, 0) + 1
        pool = [t for t in pool if t.id != pick.id]
    return chosen


def _roll(
    state: DailyTasksState,
    context: DailyTaskContext,
    now: float,
    day: str,
    reroll_index: int,
    config: DailyTasksConfig,
    rng_factory: RngFactory,
    hooks: Hooks,
    exclude: tuple[str, ...] = (),
) -> DailyTasksState:
    seed = rotation_seed(day, reroll_index, context)
    picked = pick_tasks(config, context, rng_factory(seed), exclude)
    tasks = {
        t.id: DailyTaskInstance(id=t.id, rolled_at=day, condition_state=initial_condition_state(t.condition))
        for t in picked
    }
    order = tuple(t.id for t in picked)
    _LOGGER.debug("Rolled daily tasks %s with seed %s", order, seed)
    if config.telemetry.log_task_rolls:
        hooks.track(
            "daily_task_roll",
            {"date": day, "taskIds": list(order), "rolledAt": now, "rerollIndex": reroll_index},
        )
    return replace(
        state,
        rolled_date=day,
        task_order=order,
        tasks=tasks,
        metrics=build_metrics(context, now),
        next_reset_at=next_reset_at(now, config.reset_timezone),
        rerolls_used=reroll_index,
    )


def ensure_daily_tasks_for_today(
    state: DailyTasksState,
    context: DailyTaskContext,
    now: float,
    *,
    config: DailyTasksConfig = DAILY_TASKS,
    rng_factory: RngFactory = default_rng_factory,
    hooks: Hooks | None = None,
) -> DailyTasksState:
    """Roll a fresh rotation when the calendar day in the reset zone changed."""
    hooks = hooks or _SILENT
    state = prune_expired_buffs(state, now, config=config, hooks=hooks)
    day = date_key(now, config.reset_timezone)
    if state.rolled_date == day:
        reset_at = next_reset_at(now, config.reset_timezone)
        if state.next_reset_at != reset_at:
            state = replace(state, next_reset_at=reset_at)
        return state
    return _roll(state, context, now, day, 0, config, rng_factory, hooks)


def can_reroll(state: DailyTasksState, config: DailyTasksConfig = DAILY_TASKS) -> bool:
    return state.rolled_date is not None and state.rerolls_used < config.rotation.reroll_limit_per_day


def reroll_daily_tasks(
    state: DailyTasksState,
    context: DailyTaskContext,
    now: float,
    *,
    config: DailyTasksConfig = DAILY_TASKS,
    rng_factory: RngFactory = default_rng_factory,
    hooks: Hooks | None = None,
) -> DailyTasksState:
    """Replace today's tasks; beyond the daily limit this is a no-op."""
    if not can_reroll(state, config):
        return state
    exclude = () if config.rotation.allow_duplicates_same_day else state.task_order
    return _roll(
        state,
        context,
        now,
        state.rolled_date,
        state.rerolls_used + 1,
        config,
        rng_factory,
        hooks or _SILENT,
        exclude,
    )


# ── Progress ──────────────────────────────────────────────────────


def _apply_progress(
    task: DailyTaskInstance,
    definition: DailyTaskDefinition,
    raw: float,
    now: float,
    condition_state: dict[str, Any] | None,
    config: DailyTasksConfig,
    hooks: Hooks,
) -> DailyTaskInstance:
    target = condition_target(definition.condition)
    # A zero target comes from malformed content and never completes
    progress = min(max(0.0, raw), target) if target > 0 else 0.0
    completed_at = task.completed_at
    if completed_at is None and target > 0 and raw >= target:
        completed_at = now
        _LOGGER.debug("Daily task %s completed", task.id)
        hooks.notify(NOTIFY_COMPLETE, {"taskId": task.id, "title": definition.title})
        if config.telemetry.log_completions:
            hooks.track(
                "daily_task_complete",
                {"taskId": task.id, "completedAt": now, "date": task.rolled_at},
            )
    if (
        progress == task.progress
        and completed_at == task.completed_at
        and condition_state == task.condition_state
    ):
        return task
    return replace(task, progress=progress, completed_at=completed_at, condition_state=condition_state)


def handle_daily_task_event(
    state: DailyTasksState,
    event: str,
    context: DailyTaskContext,
    now: float,
    *,
    payload: dict[str, Any] | None = None,
    config: DailyTasksConfig = DAILY_TASKS,
    hooks: Hooks | None = None,
) -> DailyTasksState:
    """Feed one game event to every active task listening for it."""
    if not state.task_order:
        return state
    hooks = hooks or _SILENT

    tasks = state.tasks
    for task_id in state.task_order:
        task = tasks.get(task_id)
        definition = config.get_task(task_id)
        if task is None or definition is None or task.completed_at is not None:
            continue
        result = evaluate_event(definition.condition, task.condition_state, event, now, payload)
        if result is None:
            continue
        raw, condition_state = result
        updated = _apply_progress(task, definition, raw, now, condition_state, config, hooks)
        if updated is not task:
            if tasks is state.tasks:
                tasks = dict(tasks)
            tasks[task_id] = updated

    if tasks is state.tasks:
        return state
    return update_daily_task_metrics(replace(state, tasks=tasks), context, now, config=config, hooks=hooks)


def update_daily_task_metrics(
    state: DailyTasksState,
    context: DailyTaskContext,
    now: float,
    *,
    config: DailyTasksConfig = DAILY_TASKS,
    hooks: Hooks | None = None,
) -> DailyTasksState:
    """Re-evaluate threshold, delta and uptime tasks against the snapshot."""
    if not state.task_order:
        return state
    hooks = hooks or _SILENT

    metrics = state.metrics
    current = {**metrics.current, **snapshot_metrics(context)}
    current["population_earned_today"] = max(
        0.0, context.total_population - metrics.baselines.get("total_population", context.total_population)
    )
    if current != metrics.current:
        metrics = replace(metrics, current=current)

    tasks = state.tasks
    for task_id in state.task_order:
        task = tasks.get(task_id)
        definition = config.get_task(task_id)
        if task is None or definition is None or definition.condition.type not in METRIC_CONDITION_TYPES:
            continue
        if task.completed_at is not None:
            continue
        raw, metrics = evaluate_metric(definition.condition, context, metrics)
        updated = _apply_progress(task, definition, raw, now, task.condition_state, config, hooks)
        if updated is not task:
            if tasks is state.tasks:
                tasks = dict(tasks)
            tasks[task_id] = updated

    if tasks is state.tasks and metrics is state.metrics:
        return state
    return replace(state, tasks=tasks, metrics=metrics)


def apply_uptime_progress(
    state: DailyTasksState,
    context: DailyTaskContext,
    delta_s: float,
    now: float,
    *,
    offline: bool = False,
    config: DailyTasksConfig = DAILY_TASKS,
    hooks: Hooks | None = None,
) -> DailyTasksState:
    """Accrue active-session seconds; offline catch-up only re-evaluates."""
    if not state.task_order:
        return state
    if not offline and delta_s > 0 and math.isfinite(delta_s):
        metrics = replace(
            state.metrics,
            uptime_seconds=state.metrics.uptime_seconds + delta_s,
            last_uptime_update=now,
        )
        state = replace(state, metrics=metrics)
    return update_daily_task_metrics(state, context, now, config=config, hooks=hooks)


def sync_daily_tasks_state(
    state: DailyTasksState,
    context: DailyTaskContext,
    now: float,
    *,
    config: DailyTasksConfig = DAILY_TASKS,
    rng_factory: RngFactory = default_rng_factory,
    hooks: Hooks | None = None,
) -> DailyTasksState:
    """Rotation check followed by a metric sync."""
    state = ensure_daily_tasks_for_today(state, context, now, config=config, rng_factory=rng_factory, hooks=hooks)
    return update_daily_task_metrics(state, context, now, config=config, hooks=hooks)


# ── Buffs & claims ────────────────────────────────────────────────


def prune_expired_buffs(
    state: DailyTasksState,
    now: float,
    *,
    config: DailyTasksConfig = DAILY_TASKS,
    hooks: Hooks | None = None,
) -> DailyTasksState:
    expired = [b for b in state.active_buffs if b.ends_at <= now]
    if not expired:
        return state
    hooks = hooks or _SILENT
    for buff in expired:
        _LOGGER.debug("Buff from %s expired", buff.task_id)
        hooks.notify(NOTIFY_BUFF_EXPIRED, {"taskId": buff.task_id, "rewardId": buff.reward_id})
        if config.telemetry.log_buff_start_end:
            hooks.track(
                "daily_task_buff_end",
                {"taskId": buff.task_id, "rewardId": buff.reward_id, "endedAt": now},
            )
    return replace(state, active_buffs=tuple(b for b in state.active_buffs if b.ends_at > now))


def get_temperature_gain_multiplier(state: DailyTasksState, now: float | None = None) -> float:
    """Product of (1 + value) over buffs still running at `now`."""
    mult = 1.0
    for buff in state.active_buffs:
        if buff.type != "temp_gain_mult" or (now is not None and buff.ends_at <= now):
            continue
        factor = 1.0 + buff.value
        if math.isfinite(factor) and factor > 0:
            mult *= factor
    return mult


def claim_daily_task_reward(
    state: DailyTasksState,
    task_id: str,
    now: float,
    *,
    config: DailyTasksConfig = DAILY_TASKS,
    hooks: Hooks | None = None,
) -> tuple[DailyTasksState, DailyTaskBuff | None]:
    """Claim a completed task; a repeated claim returns the state untouched."""
    task = state.tasks.get(task_id)
    if task is None or task.completed_at is None or task.claimed_at is not None:
        return state, None
    hooks = hooks or _SILENT

    tasks = {**state.tasks, task_id: replace(task, claimed_at=now)}
    definition = config.get_task(task_id)
    reward = config.reward_templates.get(definition.reward) if definition else None

    buff = None
    buffs = state.active_buffs
    if reward is not None and reward.type == "temp_gain_mult":
        buff = DailyTaskBuff(
            task_id=task_id,
            reward_id=reward.id,
            value=reward.value,
            ends_at=now + reward.duration_s * 1000.0,
        )
        buffs = (*(b for b in buffs if b.task_id != task_id), buff)
        hooks.notify(NOTIFY_BUFF_STARTED, {"taskId": task_id, "value": buff.value, "endsAt": buff.ends_at})
        if config.telemetry.log_buff_start_end:
            hooks.track(
                "daily_task_buff_start",
                {
                    "taskId": task_id,
                    "rewardId": reward.id,
                    "value": reward.value,
                    "duration_s": reward.duration_s,
                    "startedAt": now,
                },
            )

    reward_id = reward.id if reward else None
    _LOGGER.debug("Claimed daily task %s (reward %s)", task_id, reward_id)
    hooks.notify(NOTIFY_CLAIM, {"taskId": task_id, "rewardId": reward_id})
    if config.telemetry.log_claims:
        hooks.track("daily_task_claim", {"taskId": task_id, "rewardId": reward_id, "claimedAt": now})
    return replace(state, tasks=tasks, active_buffs=buffs), buff


def add_permanent_buff(state: DailyTasksState, buff_id: str, reward_id: str, value: float, ends_at: float) -> DailyTasksState:
    """Install or replace a buff keyed by `buff_id` (used by the Maailma shop)."""
    buff = DailyTaskBuff(task_id=buff_id, reward_id=reward_id, value=value, ends_at=ends_at)
    buffs = (*(b for b in state.active_buffs if b.task_id != buff_id), buff)
    return replace(state, active_buffs=buffs)


def claimable_task_ids(state: DailyTasksState) -> list[str]:
    return [
        task_id
        for task_id in state.task_order
        if (task := state.tasks.get(task_id)) is not None
        and task.completed_at is not None
        and task.claimed_at is None
    ]
