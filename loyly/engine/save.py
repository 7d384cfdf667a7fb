"""Save/load — namespaced persistence, schema migrations and the era prompt."""

from __future__ import annotations

import copy
import json
import logging
import math
import os
from pathlib import Path
from typing import Any, Callable, Protocol
from urllib.parse import quote

from loyly.data.balance import BALANCE
from loyly.engine.bonuses import normalize_purchases
from loyly.engine.game_state import (
    DailyTaskBuff,
    DailyTaskInstance,
    DailyTaskMetrics,
    DailyTasksState,
    GameState,
    MaailmaState,
)
from loyly.engine.maailma import repair_removed_purchases

_LOGGER = logging.getLogger(__name__)

SAVE_VERSION = BALANCE.storage.save_version
MAJOR_VERSION = BALANCE.storage.major_version


# ── Serialisation helpers ────────────────────────────────────────


def _task_to_dict(task: DailyTaskInstance) -> dict:
    return {
        "id": task.id,
        "rolledAt": task.rolled_at,
        "progress": task.progress,
        "completedAt": task.completed_at,
        "claimedAt": task.claimed_at,
        "conditionState": copy.deepcopy(task.condition_state),
    }


def _daily_tasks_to_dict(d: DailyTasksState) -> dict:
    return {
        "rolledDate": d.rolled_date,
        "taskOrder": list(d.task_order),
        "tasks": {tid: _task_to_dict(t) for tid, t in d.tasks.items()},
        "activeBuffs": [
            {"taskId": b.task_id, "rewardId": b.reward_id, "type": b.type, "value": b.value, "endsAt": b.ends_at}
            for b in d.active_buffs
        ],
        "metrics": {
            "baselines": dict(d.metrics.baselines),
            "current": dict(d.metrics.current),
            "uptimeSeconds": d.metrics.uptime_seconds,
            "lastUptimeUpdate": d.metrics.last_uptime_update,
        },
        "nextResetAt": d.next_reset_at,
        "rerollsUsed": d.rerolls_used,
    }


def state_to_dict(state: GameState) -> dict:
    s = state
    return {
        "population": s.population,
        "totalPopulation": s.total_population,
        "tierLevel": s.tier_level,
        "buildings": dict(s.buildings),
        "techCounts": dict(s.tech_counts),
        "multipliers": dict(s.multipliers),
        "cps": s.cps,
        "clickPower": s.click_power,
        "prestigePoints": s.prestige_points,
        "prestigeMult": s.prestige_mult,
        "eraMult": s.era_mult,
        "lastSave": s.last_save,
        "lastMajorVersion": s.last_major_version,
        "eraPromptAcknowledged": s.era_prompt_acknowledged,
        "maailma": {
            "tuhka": s.maailma.tuhka,
            "totalTuhkaEarned": s.maailma.total_tuhka_earned,
            "purchases": {k: {"id": k, "level": v} for k, v in s.maailma.purchases.items()},
            "totalResets": s.maailma.total_resets,
        },
        "dailyTasks": _daily_tasks_to_dict(s.daily_tasks),
    }


def _num(d: dict, key: str, default: float) -> float:
    value = d.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return default
    return float(value)


def _opt_num(d: dict, key: str) -> float | None:
    value = d.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        return None
    return float(value)


def _int_map(value: Any) -> dict[str, int]:
    if not isinstance(value, dict):
        return {}
    out: dict[str, int] = {}
    for k, v in value.items():
        if isinstance(k, str) and isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v):
            if v > 0:
                out[k] = int(v)
    return out


def _float_map(value: Any) -> dict[str, float]:
    if not isinstance(value, dict):
        return {}
    return {
        k: float(v)
        for k, v in value.items()
        if isinstance(k, str) and isinstance(v, (int, float)) and not isinstance(v, bool) and math.isfinite(v)
    }


def _dict_to_task(task_id: str, d: Any) -> DailyTaskInstance | None:
    if not isinstance(d, dict):
        return None
    rolled_at = d.get("rolledAt")
    condition_state = d.get("conditionState")
    return DailyTaskInstance(
        id=task_id,
        rolled_at=rolled_at if isinstance(rolled_at, str) else "",
        progress=max(0.0, _num(d, "progress", 0.0)),
        completed_at=_opt_num(d, "completedAt"),
        claimed_at=_opt_num(d, "claimedAt"),
        condition_state=copy.deepcopy(condition_state) if isinstance(condition_state, dict) else None,
    )


def _dict_to_daily_tasks(d: Any) -> DailyTasksState:
    if not isinstance(d, dict):
        return DailyTasksState()
    tasks: dict[str, DailyTaskInstance] = {}
    raw_tasks = d.get("tasks")
    for tid, raw in (raw_tasks.items() if isinstance(raw_tasks, dict) else ()):
        task = _dict_to_task(tid, raw)
        if task is not None:
            tasks[tid] = task
    order = d.get("taskOrder")
    task_order = tuple(t for t in order if isinstance(t, str) and t in tasks) if isinstance(order, list) else ()

    buffs: list[DailyTaskBuff] = []
    raw_buffs = d.get("activeBuffs")
    for raw in raw_buffs if isinstance(raw_buffs, list) else []:
        if not isinstance(raw, dict) or not isinstance(raw.get("taskId"), str):
            continue
        ends_at = _opt_num(raw, "endsAt")
        if ends_at is None:
            continue
        reward_id = raw.get("rewardId")
        buffs.append(
            DailyTaskBuff(
                task_id=raw["taskId"],
                reward_id=reward_id if isinstance(reward_id, str) else "",
                value=_num(raw, "value", 0.0),
                ends_at=ends_at,
                type=raw.get("type") if isinstance(raw.get("type"), str) else "temp_gain_mult",
            )
        )

    m = d.get("metrics") if isinstance(d.get("metrics"), dict) else {}
    rolled_date = d.get("rolledDate")
    return DailyTasksState(
        rolled_date=rolled_date if isinstance(rolled_date, str) else None,
        task_order=task_order,
        tasks=tasks,
        active_buffs=tuple(buffs),
        metrics=DailyTaskMetrics(
            baselines=_float_map(m.get("baselines")),
            current=_float_map(m.get("current")),
            uptime_seconds=max(0.0, _num(m, "uptimeSeconds", 0.0)),
            last_uptime_update=_opt_num(m, "lastUptimeUpdate"),
        ),
        next_reset_at=_opt_num(d, "nextResetAt"),
        rerolls_used=max(0, int(_num(d, "rerollsUsed", 0))),
    )


def _dict_to_maailma(d: Any) -> MaailmaState:
    if not isinstance(d, dict):
        return MaailmaState()
    tuhka = d.get("tuhka", "0")
    total = d.get("totalTuhkaEarned", tuhka)
    maailma = MaailmaState(
        tuhka=str(tuhka) if isinstance(tuhka, (str, int, float)) and not isinstance(tuhka, bool) else "0",
        total_tuhka_earned=str(total) if isinstance(total, (str, int, float)) and not isinstance(total, bool) else "0",
        purchases=normalize_purchases(d.get("purchases")),
        total_resets=max(0, int(_num(d, "totalResets", 0))),
    )
    return repair_removed_purchases(maailma)


def dict_to_state(d: dict) -> GameState:
    multipliers = _float_map(d.get("multipliers"))
    multipliers.setdefault("population_cps", 1.0)
    return GameState(
        population=max(0.0, _num(d, "population", 0.0)),
        total_population=max(0.0, _num(d, "totalPopulation", 0.0)),
        tier_level=max(1, int(_num(d, "tierLevel", 1))),
        buildings=_int_map(d.get("buildings")),
        tech_counts=_int_map(d.get("techCounts")),
        multipliers=multipliers,
        cps=max(0.0, _num(d, "cps", 0.0)),
        click_power=max(1.0, _num(d, "clickPower", 1.0)),
        prestige_points=max(0, int(_num(d, "prestigePoints", 0))),
        prestige_mult=max(1.0, _num(d, "prestigeMult", 1.0)),
        era_mult=max(1.0, _num(d, "eraMult", 1.0)),
        last_save=max(0.0, _num(d, "lastSave", 0.0)),
        last_major_version=int(_num(d, "lastMajorVersion", 0)),
        era_prompt_acknowledged=d.get("eraPromptAcknowledged") is True,
        maailma=_dict_to_maailma(d.get("maailma")),
        daily_tasks=_dict_to_daily_tasks(d.get("dailyTasks")),
    )


# ── Migrations ───────────────────────────────────────────────────
#
# Each step bridges exactly one version gap and works on the raw dict.


def _default_state_dict(keep_maailma: Any = None) -> dict:
    d = state_to_dict(GameState(last_major_version=0, era_prompt_acknowledged=False))
    if isinstance(keep_maailma, dict):
        d["maailma"] = keep_maailma
    return d


def _v1_to_v2(d: dict) -> dict:
    # v1 stored the tier as `tier`
    if "tierLevel" not in d and "tier" in d:
        d["tierLevel"] = d.pop("tier")
    return d


def _v2_to_v3(d: dict) -> dict:
    owned = d.pop("techOwned", None)
    if isinstance(owned, (list, tuple)):
        ids = [t for t in owned if isinstance(t, str)]
        if len(ids) != len(set(ids)):
            _LOGGER.warning("Legacy save lists a technology twice; discarding the save")
            return _default_state_dict(d.get("maailma"))
        d["techCounts"] = {t: 1 for t in ids}
    d.setdefault("techCounts", {})
    # Rebuilt from techCounts on load
    d["multipliers"] = {"population_cps": 1.0}
    return d


def _v3_to_v4(d: dict) -> dict:
    population = d.get("population", 0)
    d.setdefault("totalPopulation", population if isinstance(population, (int, float)) else 0)
    d.setdefault("prestigePoints", 0)
    d.setdefault("prestigeMult", 1.0)
    return d


def _v4_to_v5(d: dict) -> dict:
    maailma = d.get("maailma")
    if not isinstance(maailma, dict):
        maailma = {}
    maailma.setdefault("tuhka", "0")
    maailma.setdefault("totalTuhkaEarned", maailma["tuhka"])
    maailma["purchases"] = normalize_purchases(maailma.get("purchases"))
    d["maailma"] = maailma
    return d


def _v5_to_v6(d: dict) -> dict:
    # Production was rebalanced: keep the era, drop resume-time caches so
    # nothing earned under the old formulas is back-filled.
    d["eraMult"] = d.get("eraMult", 1.0)
    d["cps"] = 0.0
    d["clickPower"] = 1.0
    d["lastSave"] = 0
    d["eraPromptAcknowledged"] = False
    return d


def _v6_to_v7(d: dict) -> dict:
    if not isinstance(d.get("dailyTasks"), dict):
        d["dailyTasks"] = _daily_tasks_to_dict(DailyTasksState())
    maailma = d.get("maailma")
    if isinstance(maailma, dict):
        maailma.setdefault("totalResets", 0)
    return d


MIGRATIONS: dict[int, Callable[[dict], dict]] = {
    1: _v1_to_v2,
    2: _v2_to_v3,
    3: _v3_to_v4,
    4: _v4_to_v5,
    5: _v5_to_v6,
    6: _v6_to_v7,
}


def migrate_payload(payload: Any) -> GameState:
    """Upgrade any persisted payload to the current GameState."""
    if not isinstance(payload, dict):
        return GameState()
    version = payload.get("version", 1)
    version = int(version) if isinstance(version, (int, float)) and not isinstance(version, bool) else 1
    raw = payload.get("state", payload)
    d = copy.deepcopy(raw) if isinstance(raw, dict) else {}

    for step in range(max(1, version), SAVE_VERSION):
        migrate = MIGRATIONS.get(step)
        if migrate is not None:
            _LOGGER.debug("Migrating save v%s → v%s", step, step + 1)
            d = migrate(d)
    return dict_to_state(d)


def build_payload(state: GameState) -> dict:
    return {"version": SAVE_VERSION, "state": state_to_dict(state)}


def needs_era_prompt(state: GameState) -> bool:
    return state.last_major_version < MAJOR_VERSION or not state.era_prompt_acknowledged


# ── Storage ──────────────────────────────────────────────────────


class Storage(Protocol):
    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStorage:
    """Key/value storage held in memory."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self.data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove_item(self, key: str) -> None:
        self.data.pop(key, None)


class FileStorage:
    """One JSON file per key inside a directory."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}.json"

    def get_item(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(value, encoding="utf-8")
        tmp.replace(path)

    def remove_item(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def resolve_namespace(namespace: str | None = None) -> str:
    """Deployment slot from the argument, the environment, or the default."""
    bal = BALANCE.storage
    raw = namespace or os.environ.get(bal.namespace_env_var) or bal.default_namespace
    # Kept verbatim; storage media encode the key themselves
    return raw


def storage_key(namespace: str | None = None) -> str:
    return f"{BALANCE.storage.key_prefix}:{resolve_namespace(namespace)}"


def default_save_dir() -> Path:
    return Path.home() / BALANCE.storage.save_dir_name


class SaveSlot:
    """The persisted game of one namespace inside a storage medium."""

    def __init__(self, storage: Storage, namespace: str | None = None) -> None:
        self.storage = storage
        self.key = storage_key(namespace)

    def save(self, state: GameState) -> bool:
        try:
            self.storage.set_item(self.key, json.dumps(build_payload(state)))
        except OSError:
            _LOGGER.warning("Could not write save %s", self.key, exc_info=True)
            return False
        return True

    def load(self) -> GameState | None:
        """Load and migrate the slot.  Returns None if no usable save exists."""
        try:
            raw = self.storage.get_item(self.key)
        except OSError:
            _LOGGER.warning("Could not read save %s", self.key, exc_info=True)
            return None
        except UnicodeDecodeError:
            _LOGGER.warning("Save %s is not valid UTF-8, starting fresh", self.key)
            return None
        if raw is None:
            return None
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            _LOGGER.warning("Save %s is not valid JSON, starting fresh", self.key)
            return None
        return migrate_payload(payload)

    def delete(self) -> None:
        try:
            self.storage.remove_item(self.key)
        except OSError:
            _LOGGER.warning("Could not delete save %s", self.key, exc_info=True)


def default_slot(namespace: str | None = None) -> SaveSlot:
    return SaveSlot(FileStorage(default_save_dir()), namespace)
