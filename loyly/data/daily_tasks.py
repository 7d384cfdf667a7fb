"""Daily task catalog — task definitions, reward templates and rotation rules.

The catalog document is externally editable, so everything read from it goes
through a normalizer: malformed entries fall back to safe defaults or are
dropped, never raised.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, ClassVar, Union

_LOGGER = logging.getLogger(__name__)

CATALOG_FILE = Path(__file__).parent / "daily_tasks.json"


def parse_number(value: Any, fallback: float = 0.0) -> float:
    """Read a finite number from content, accepting strings such as "5e10"."""
    if isinstance(value, bool):
        return fallback
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else fallback
    if isinstance(value, str) and value.strip():
        try:
            parsed = float(value.strip())
        except ValueError:
            return fallback
        return parsed if math.isfinite(parsed) else fallback
    return fallback


def _non_negative(value: Any, fallback: float) -> float:
    return max(0.0, parse_number(value, fallback))


# ── Conditions ────────────────────────────────────────────────────


@dataclass(frozen=True)
class CounterCondition:
    type: ClassVar[str] = "counter"
    event: str = "noop"
    target: float = 1.0


@dataclass(frozen=True)
class ThresholdCondition:
    type: ClassVar[str] = "threshold"
    metric: str = "temperature"
    target: float = 0.0


@dataclass(frozen=True)
class DeltaThresholdCondition:
    type: ClassVar[str] = "delta_threshold"
    metric: str = "temperature"
    target: float = 0.0


@dataclass(frozen=True)
class StreakCondition:
    type: ClassVar[str] = "streak"
    event: str = "noop"
    window_s: float = 1.0
    max_gap_s: float = 1.0


@dataclass(frozen=True)
class StreakRateCondition:
    type: ClassVar[str] = "streak_rate"
    event: str = "noop"
    count: float = 1.0
    max_interval_s: float = 1.0


@dataclass(frozen=True)
class SequenceCondition:
    type: ClassVar[str] = "sequence"
    events: tuple[str, ...] = ()
    window_s: float | None = None


@dataclass(frozen=True)
class UptimeCondition:
    type: ClassVar[str] = "uptime"
    target_s: float = 0.0


TaskCondition = Union[
    CounterCondition,
    ThresholdCondition,
    DeltaThresholdCondition,
    StreakCondition,
    StreakRateCondition,
    SequenceCondition,
    UptimeCondition,
]

# Condition types that react to discrete game events
EVENT_CONDITION_TYPES = frozenset({"counter", "streak", "streak_rate", "sequence"})
# Condition types re-evaluated on every metric snapshot
METRIC_CONDITION_TYPES = frozenset({"threshold", "delta_threshold", "uptime"})


def _event_name(raw: dict) -> str:
    event = raw.get("event")
    return event if isinstance(event, str) and event else "noop"


def normalize_condition(raw: Any) -> TaskCondition:
    if not isinstance(raw, dict):
        return CounterCondition()

    kind = raw.get("type")
    if kind == "counter":
        return CounterCondition(event=_event_name(raw), target=_non_negative(raw.get("target"), 1.0))
    if kind in ("threshold", "delta_threshold"):
        metric = raw.get("metric")
        metric = metric if isinstance(metric, str) and metric else "temperature"
        target = raw.get("target", raw.get("delta"))
        if kind == "threshold":
            return ThresholdCondition(metric=metric, target=_non_negative(target, 0.0))
        return DeltaThresholdCondition(metric=metric, target=_non_negative(target, 0.0))
    if kind == "streak":
        window_s = _non_negative(raw.get("window_s"), 1.0)
        return StreakCondition(
            event=_event_name(raw),
            window_s=window_s,
            max_gap_s=_non_negative(raw.get("max_gap_s"), window_s),
        )
    if kind == "streak_rate":
        return StreakRateCondition(
            event=_event_name(raw),
            count=_non_negative(raw.get("count"), 1.0),
            max_interval_s=_non_negative(raw.get("max_interval_s"), 1.0),
        )
    if kind == "sequence":
        events = raw.get("events")
        steps = tuple(e for e in events if isinstance(e, str) and e) if isinstance(events, list) else ()
        window_s = parse_number(raw.get("window_s"), 0.0)
        return SequenceCondition(events=steps, window_s=window_s if window_s > 0 else None)
    if kind == "uptime":
        return UptimeCondition(target_s=_non_negative(raw.get("target_s"), 0.0))
    return CounterCondition()


# ── Definitions ───────────────────────────────────────────────────


@dataclass(frozen=True)
class RewardTemplate:
    id: str
    type: str = "temp_gain_mult"
    value: float = 0.0
    duration_s: float = 0.0
    cooldown_s: float = 0.0


@dataclass(frozen=True)
class DailyTaskDefinition:
    id: str
    title: str
    description: str = ""
    category: str = "general"
    condition: TaskCondition = field(default_factory=CounterCondition)
    reward: str = ""
    weight: float = 1.0
    min_tier: int = 0
    max_per_day: int = 1
    requires_feature: str | None = None


@dataclass(frozen=True)
class SelectionConfig:
    use_weights: bool = True
    min_tier: int = 0
    max_active_per_category: int = 1


@dataclass(frozen=True)
class RotationConfig:
    tasks_per_day: int = 3
    allow_duplicates_same_day: bool = False
    reroll_cost_population: float = 0.0
    reroll_limit_per_day: int = 0
    selection: SelectionConfig = field(default_factory=SelectionConfig)


@dataclass(frozen=True)
class TelemetryFlags:
    log_task_rolls: bool = True
    log_completions: bool = True
    log_claims: bool = True
    log_buff_start_end: bool = True


@dataclass(frozen=True)
class DailyTasksConfig:
    """Normalized daily task catalog."""

    reset_timezone: str = "UTC"
    rotation: RotationConfig = field(default_factory=RotationConfig)
    reward_templates: dict[str, RewardTemplate] = field(default_factory=dict)
    tasks: tuple[DailyTaskDefinition, ...] = ()
    telemetry: TelemetryFlags = field(default_factory=TelemetryFlags)
    ui_texts: dict[str, str] = field(default_factory=dict)

    def get_task(self, task_id: str) -> DailyTaskDefinition | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def category_title(self, category: str) -> str:
        return self.ui_texts.get(category, category)


def normalize_reward(reward_id: str, raw: Any) -> RewardTemplate | None:
    if not isinstance(raw, dict) or raw.get("type") != "temp_gain_mult":
        return None
    return RewardTemplate(
        id=reward_id,
        value=parse_number(raw.get("value"), 0.0),
        duration_s=_non_negative(raw.get("duration_s"), 0.0),
        cooldown_s=_non_negative(raw.get("cooldown_s"), 0.0),
    )


def normalize_task(raw: Any) -> DailyTaskDefinition | None:
    """Build a task definition, or None when the entry lacks id or title."""
    if not isinstance(raw, dict):
        return None
    task_id = raw.get("id")
    title = raw.get("title")
    if not isinstance(task_id, str) or not task_id or not isinstance(title, str) or not title:
        return None

    description = raw.get("description")
    category = raw.get("category")
    reward = raw.get("reward")
    feature = raw.get("requires_feature")
    return DailyTaskDefinition(
        id=task_id,
        title=title,
        description=description if isinstance(description, str) else "",
        category=category if isinstance(category, str) and category else "general",
        condition=normalize_condition(raw.get("condition")),
        reward=reward if isinstance(reward, str) else "",
        weight=_non_negative(raw.get("weight"), 1.0),
        min_tier=max(0, math.floor(parse_number(raw.get("min_tier"), 0.0))),
        max_per_day=max(1, math.floor(parse_number(raw.get("max_per_day"), 1.0))),
        requires_feature=feature if isinstance(feature, str) and feature else None,
    )


def _flag(raw: dict, key: str, default: bool) -> bool:
    value = raw.get(key, default)
    return value if isinstance(value, bool) else default


def load_daily_tasks_config(raw: Any) -> DailyTasksConfig:
    """Normalize a raw catalog document into a DailyTasksConfig."""
    if not isinstance(raw, dict):
        return DailyTasksConfig()

    tz = raw.get("reset_timezone")
    rotation_raw = raw.get("daily_rotation") if isinstance(raw.get("daily_rotation"), dict) else {}
    selection_raw = rotation_raw.get("selection") if isinstance(rotation_raw.get("selection"), dict) else {}
    telemetry_raw = raw.get("telemetry") if isinstance(raw.get("telemetry"), dict) else {}

    selection = SelectionConfig(
        use_weights=_flag(selection_raw, "use_weights", True),
        min_tier=max(0, math.floor(parse_number(selection_raw.get("min_tier"), 0.0))),
        max_active_per_category=max(
            1, math.floor(parse_number(selection_raw.get("max_active_per_category"), 1.0))
        ),
    )
    rotation = RotationConfig(
        tasks_per_day=max(1, math.floor(parse_number(rotation_raw.get("tasks_per_day"), 3.0))),
        allow_duplicates_same_day=_flag(rotation_raw, "allow_duplicates_same_day", False),
        reroll_cost_population=_non_negative(rotation_raw.get("reroll_cost_population"), 0.0),
        reroll_limit_per_day=max(0, math.floor(parse_number(rotation_raw.get("reroll_limit_per_day"), 0.0))),
        selection=selection,
    )

    rewards: dict[str, RewardTemplate] = {}
    rewards_raw = raw.get("reward_templates")
    if isinstance(rewards_raw, dict):
        for reward_id, reward_raw in rewards_raw.items():
            reward = normalize_reward(reward_id, reward_raw)
            if reward is not None:
                rewards[reward_id] = reward

    tasks: list[DailyTaskDefinition] = []
    seen: set[str] = set()
    tasks_raw = raw.get("tasks")
    for task_raw in tasks_raw if isinstance(tasks_raw, list) else []:
        task = normalize_task(task_raw)
        if task is None or task.id in seen:
            _LOGGER.debug("Skipping malformed or duplicate task entry: %r", task_raw)
            continue
        seen.add(task.id)
        tasks.append(task)

    ui_raw = raw.get("ui_texts")
    ui_texts = {k: v for k, v in ui_raw.items() if isinstance(v, str)} if isinstance(ui_raw, dict) else {}

    return DailyTasksConfig(
        reset_timezone=tz if isinstance(tz, str) and tz else "UTC",
        rotation=rotation,
        reward_templates=rewards,
        tasks=tuple(tasks),
        telemetry=TelemetryFlags(
            log_task_rolls=_flag(telemetry_raw, "log_task_rolls", True),
            log_completions=_flag(telemetry_raw, "log_completions", True),
            log_claims=_flag(telemetry_raw, "log_claims", True),
            log_buff_start_end=_flag(telemetry_raw, "log_buff_start_end", True),
        ),
        ui_texts=ui_texts,
    )


def load_catalog_file(path: Path = CATALOG_FILE) -> DailyTasksConfig:
    """Read the catalog document shipped with the game."""
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        _LOGGER.warning("Daily task catalog %s unreadable, no tasks will roll", path)
        return DailyTasksConfig()
    return load_daily_tasks_config(raw)


DAILY_TASKS = load_catalog_file()
