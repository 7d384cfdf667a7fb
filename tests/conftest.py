"""Shared fixtures: a small deterministic task catalog and a telemetry recorder."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from loyly.data.daily_tasks import load_daily_tasks_config
from loyly.engine.telemetry import Hooks

# 2026-03-10 12:00 UTC
NOW = datetime(2026, 3, 10, 12, tzinfo=timezone.utc).timestamp() * 1000.0


class RecordingTelemetry:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict]] = []

    def emit(self, event: str, payload: dict) -> None:
        self.events.append((event, payload))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


def task(task_id: str, condition: dict, *, category: str | None = None, **extra) -> dict:
    return {
        "id": task_id,
        "title": task_id.replace("_", " ").title(),
        "category": category or task_id,
        "condition": condition,
        "reward": "boost",
        **extra,
    }


def build_config(tasks: list[dict], **rotation):
    """Catalog where every listed task rolls unless rotation says otherwise."""
    return load_daily_tasks_config(
        {
            "reset_timezone": "UTC",
            "daily_rotation": {
                "tasks_per_day": rotation.pop("tasks_per_day", len(tasks)),
                "reroll_cost_population": rotation.pop("reroll_cost_population", 0),
                "reroll_limit_per_day": rotation.pop("reroll_limit_per_day", 1),
                "allow_duplicates_same_day": rotation.pop("allow_duplicates_same_day", False),
                "selection": {"use_weights": True, "min_tier": 0, "max_active_per_category": 1, **rotation},
            },
            "reward_templates": {
                "boost": {"type": "temp_gain_mult", "value": 0.25, "duration_s": 600},
            },
            "tasks": tasks,
        }
    )


@pytest.fixture
def telemetry() -> RecordingTelemetry:
    return RecordingTelemetry()


@pytest.fixture
def hooks(telemetry: RecordingTelemetry) -> Hooks:
    return Hooks(telemetry=telemetry)
