"""Maailma shop — permanent upgrades bought with tuhka.

Effects persist across every Maailma reset.  Each item has a per-level cost
table; the engine trusts that tables are non-decreasing.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from loyly.data.daily_tasks import parse_number

_LOGGER = logging.getLogger(__name__)

CATALOG_FILE = Path(__file__).parent / "maailma_shop.json"


class MaailmaEffect(str, Enum):
    TECH_MULT_BONUS_ADD = "tech_mult_bonus_add"                  # tech multipliers × (1 + bonus)
    BASE_PROD_MULT = "base_prod_mult"                            # all base production
    SAUNA_PRESTIGE_MIN = "sauna_prestige_base_multiplier_min"    # prestigeMult floor
    TIER_UNLOCK_OFFSET = "tier_unlock_offset"                    # building unlock tier shift
    BUILDING_COST_MULT_DELTA = "building_cost_mult_delta"        # cost growth delta
    OFFLINE_PROD_MULT = "offline_prod_mult"                      # offline gain factor
    PER_TIER_GLOBAL_CPS_ADD = "per_tier_global_cps_add"          # +cps per unlocked tier
    LAMPOTILA_RATE_MULT = "lampotila_rate_mult"                  # löyly throw strength
    KEEP_TECH_ON_SAUNA_RESET = "keep_tech_on_sauna_reset"
    GLOBAL_CPS_ADD_PER_TUHKA_SPENT = "global_cps_add_per_tuhka_spent"
    TEMPERATURE_MULT_INSTANT = "temperature_mult_instant"        # one-shot on purchase
    PERMANENT_GAIN_BUFF = "permanent_gain_buff"                  # endless gain buff


@dataclass(frozen=True)
class EffectDef:
    # Raw type string; unknown types are kept and ignored by the aggregator
    type: str
    value_per_level: float = 0.0
    stack_mode: str = "additive"
    cap: float | None = None
    floor: float | None = None
    from_tier_inclusive: int = 1
    value_per_tuhka: float = 0.0

    @property
    def multiplicative(self) -> bool:
        return self.stack_mode == "multiplicative"


@dataclass(frozen=True)
class MaailmaItem:
    id: str
    name: str
    description: str
    effect: EffectDef
    max_level: int
    costs: tuple[float, ...]

    def cost_at_level(self, current_level: int) -> float | None:
        """Tuhka cost of the *next* level, None when maxed or unpriced."""
        if current_level >= self.max_level or current_level >= len(self.costs):
            return None
        return self.costs[max(0, current_level)]


def _optional_number(value: Any) -> float | None:
    parsed = parse_number(value, math.nan)
    return None if math.isnan(parsed) else parsed


def normalize_effect(raw: Any) -> EffectDef:
    if not isinstance(raw, dict) or not isinstance(raw.get("type"), str):
        return EffectDef(type="unknown")
    per_level = raw.get("value_per_level", raw.get("value_per_tier_per_level", raw.get("value")))
    return EffectDef(
        type=raw["type"],
        value_per_level=parse_number(per_level, 0.0),
        stack_mode="multiplicative" if raw.get("stack_mode") == "multiplicative" else "additive",
        cap=_optional_number(raw.get("cap")),
        floor=_optional_number(raw.get("floor")),
        from_tier_inclusive=max(1, math.floor(parse_number(raw.get("from_tier_inclusive"), 1.0))),
        value_per_tuhka=parse_number(raw.get("value_per_tuhka"), 0.0),
    )


def normalize_item(raw: Any) -> MaailmaItem | None:
    if not isinstance(raw, dict) or not isinstance(raw.get("id"), str) or not raw["id"]:
        return None
    costs_raw = raw.get("costs")
    costs = tuple(max(0.0, parse_number(c, 0.0)) for c in costs_raw) if isinstance(costs_raw, list) else ()
    name = raw.get("name")
    description = raw.get("description")
    return MaailmaItem(
        id=raw["id"],
        name=name if isinstance(name, str) and name else raw["id"],
        description=description if isinstance(description, str) else "",
        effect=normalize_effect(raw.get("effect")),
        max_level=max(0, math.floor(parse_number(raw.get("max_level"), float(len(costs))))),
        costs=costs,
    )


def load_maailma_shop(raw: Any) -> dict[str, MaailmaItem]:
    """Normalize a shop document into an ordered id → item mapping."""
    items_raw = raw.get("items") if isinstance(raw, dict) else None
    items: dict[str, MaailmaItem] = {}
    for entry in items_raw if isinstance(items_raw, list) else []:
        item = normalize_item(entry)
        if item is None or item.id in items:
            _LOGGER.debug("Skipping malformed or duplicate shop entry: %r", entry)
            continue
        items[item.id] = item
    return items


def load_catalog_file(path: Path = CATALOG_FILE) -> dict[str, MaailmaItem]:
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        _LOGGER.warning("Maailma shop catalog %s unreadable, shop is empty", path)
        return {}
    return load_maailma_shop(raw)


MAAILMA_SHOP: dict[str, MaailmaItem] = load_catalog_file()
