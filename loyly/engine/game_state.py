"""Game state — immutable snapshots of the whole save.

Every reducer returns a new snapshot built with dataclasses.replace; nothing
here is mutated in place once handed to the store.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from loyly.data.balance import BALANCE


@dataclass(frozen=True)
class DailyTaskBuff:
    """A running temporary (or endless) production multiplier."""

    task_id: str
    reward_id: str
    value: float
    ends_at: float
    type: str = "temp_gain_mult"


@dataclass(frozen=True)
class DailyTaskMetrics:
    baselines: dict[str, float] = field(default_factory=dict)
    current: dict[str, float] = field(default_factory=dict)
    uptime_seconds: float = 0.0
    last_uptime_update: float | None = None


@dataclass(frozen=True)
class DailyTaskInstance:
    """Progress of one task in today's rotation."""

    id: str
    rolled_at: str
    progress: float = 0.0
    completed_at: float | None = None
    claimed_at: float | None = None
    # Tagged plain-data state, e.g. {"type": "streak", "events": [...]}
    condition_state: dict[str, Any] | None = None


@dataclass(frozen=True)
class DailyTasksState:
    rolled_date: str | None = None
    task_order: tuple[str, ...] = ()
    tasks: dict[str, DailyTaskInstance] = field(default_factory=dict)
    active_buffs: tuple[DailyTaskBuff, ...] = ()
    metrics: DailyTaskMetrics = field(default_factory=DailyTaskMetrics)
    next_reset_at: float | None = None
    rerolls_used: int = 0


@dataclass(frozen=True)
class MaailmaState:
    """Meta-currency balance and the leveled shop ledger."""

    # Decimal strings, always whole numbers
    tuhka: str = "0"
    total_tuhka_earned: str = "0"
    # item id → level
    purchases: dict[str, int] = field(default_factory=dict)
    total_resets: int = 0


def _default_multipliers() -> dict[str, float]:
    return {"population_cps": 1.0}


@dataclass(frozen=True)
class GameState:
    """Complete state of one save."""

    # ── Core resources ───────────────────────────────────
    population: float = 0.0
    total_population: float = 0.0
    tier_level: int = 1

    # ── Ownership ────────────────────────────────────────
    buildings: dict[str, int] = field(default_factory=dict)
    tech_counts: dict[str, int] = field(default_factory=dict)

    # ── Derived rates (see economy.recompute) ────────────
    multipliers: dict[str, float] = field(default_factory=_default_multipliers)
    cps: float = 0.0
    click_power: float = 1.0
    lampotila_rate: float = 1.0

    # ── Sauna prestige ───────────────────────────────────
    prestige_points: int = 0
    prestige_mult: float = 1.0

    # ── Era bookkeeping ──────────────────────────────────
    era_mult: float = 1.0
    last_major_version: int = BALANCE.storage.major_version
    era_prompt_acknowledged: bool = True

    last_save: float = 0.0  # ms

    maailma: MaailmaState = field(default_factory=MaailmaState)
    daily_tasks: DailyTasksState = field(default_factory=DailyTasksState)

    @property
    def population_cps_mult(self) -> float:
        return self.multipliers.get("population_cps", 1.0)
