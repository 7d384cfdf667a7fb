"""Permanent bonus aggregator — folds Maailma purchases into one record."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Mapping

from loyly.data.buildings import min_building_cost_mult
from loyly.data.daily_tasks import parse_number
from loyly.data.maailma_shop import MAAILMA_SHOP, EffectDef, MaailmaEffect, MaailmaItem


@dataclass(frozen=True)
class BuildingCostMultiplier:
    delta: float = 0.0
    floor: float | None = None


@dataclass(frozen=True)
class PermanentBonuses:
    """Standing effects of every owned Maailma upgrade."""

    tech_multiplier_bonus_add: float = 0.0
    base_prod_mult: float = 1.0
    offline_prod_mult: float = 1.0
    lampotila_rate_mult: float = 1.0
    tier_unlock_offset: int = 0
    building_cost_multiplier: BuildingCostMultiplier = field(default_factory=BuildingCostMultiplier)
    sauna_prestige_base_multiplier_min: float = 1.0
    keep_tech_on_sauna_reset: bool = False
    # str(from_tier_inclusive) → bonus per unlocked tier
    per_tier_global_cps_add: dict[str, float] = field(default_factory=dict)
    global_cps_add_per_tuhka_spent: float = 0.0
    total_tuhka_spent: float = 0.0
    global_cps_add_from_tuhka_spent: float = 0.0


def _level(value: Any) -> int:
    if isinstance(value, dict):
        value = value.get("level")
    return max(0, math.floor(parse_number(value, 0.0)))


def normalize_purchases(raw: Any) -> dict[str, int]:
    """Accept {id: level}, {id: {id, level}} or a legacy list of ids."""
    purchases: dict[str, int] = {}
    if isinstance(raw, list):
        for item_id in raw:
            if isinstance(item_id, str) and item_id:
                purchases[item_id] = purchases.get(item_id, 0) + 1
    elif isinstance(raw, Mapping):
        for item_id, entry in raw.items():
            level = _level(entry)
            if isinstance(item_id, str) and item_id and level > 0:
                purchases[item_id] = level
    return purchases


def _clamp_cap(value: float, cap: float | None, negative: bool = False) -> float:
    if cap is None:
        return value
    return max(value, cap) if negative else min(value, cap)


def _finite(value: float, identity: float) -> float:
    return value if math.isfinite(value) else identity


def _stack(acc: float, effect: EffectDef, level: int) -> float:
    """Fold one item into a factor that starts at 1."""
    if effect.multiplicative:
        return acc * effect.value_per_level**level
    return acc + effect.value_per_level * level


def _stack_bonus(acc: float, effect: EffectDef, level: int) -> float:
    """Fold one item into a bonus that starts at 0 (compounds when multiplicative)."""
    if effect.multiplicative:
        return (1 + acc) * (1 + (effect.value_per_level**level - 1)) - 1
    return acc + effect.value_per_level * level


def total_tuhka_spent(purchases: Mapping[str, int], catalog: Mapping[str, MaailmaItem] = MAAILMA_SHOP) -> float:
    """Sum of the first `level` cost-table entries of every owned item."""
    spent = 0.0
    for item in catalog.values():
        level = min(purchases.get(item.id, 0), item.max_level)
        spent += sum(item.costs[:level])
    return spent


def apply_permanent_bonuses(
    purchases: Any,
    catalog: Mapping[str, MaailmaItem] = MAAILMA_SHOP,
) -> PermanentBonuses:
    """Derive a fresh PermanentBonuses snapshot from the purchase ledger."""
    owned = normalize_purchases(purchases)

    tech_bonus = 0.0
    base_prod = 1.0
    offline = 1.0
    lampotila = 1.0
    tier_offset = 0.0
    cost_delta = 0.0
    cost_floor: float | None = None
    prestige_min = 1.0
    keep_tech = False
    per_tier: dict[str, float] = {}
    spend_rate = 0.0
    spend_cap: float | None = None

    for item in catalog.values():
        level = min(owned.get(item.id, 0), item.max_level)
        if level <= 0:
            continue
        effect = item.effect
        kind = effect.type

        if kind == MaailmaEffect.TECH_MULT_BONUS_ADD:
            tech_bonus = _clamp_cap(_stack_bonus(tech_bonus, effect, level), effect.cap)
        elif kind == MaailmaEffect.BASE_PROD_MULT:
            base_prod = _clamp_cap(_stack(base_prod, effect, level), effect.cap)
        elif kind == MaailmaEffect.OFFLINE_PROD_MULT:
            offline = _clamp_cap(_stack(offline, effect, level), effect.cap)
        elif kind == MaailmaEffect.LAMPOTILA_RATE_MULT:
            lampotila = _clamp_cap(_stack(lampotila, effect, level), effect.cap)
        elif kind == MaailmaEffect.SAUNA_PRESTIGE_MIN:
            candidate = effect.value_per_level**level if effect.multiplicative else effect.value_per_level * level
            prestige_min = max(prestige_min, candidate)
        elif kind == MaailmaEffect.TIER_UNLOCK_OFFSET:
            tier_offset += effect.value_per_level * level
            tier_offset = _clamp_cap(tier_offset, effect.cap, negative=effect.value_per_level < 0)
        elif kind == MaailmaEffect.BUILDING_COST_MULT_DELTA:
            cost_delta += effect.value_per_level * level
            if effect.floor is not None:
                cost_floor = effect.floor if cost_floor is None else max(cost_floor, effect.floor)
        elif kind == MaailmaEffect.PER_TIER_GLOBAL_CPS_ADD:
            key = str(effect.from_tier_inclusive)
            per_tier[key] = _clamp_cap(_stack_bonus(per_tier.get(key, 0.0), effect, level), effect.cap)
        elif kind == MaailmaEffect.KEEP_TECH_ON_SAUNA_RESET:
            keep_tech = True
        elif kind == MaailmaEffect.GLOBAL_CPS_ADD_PER_TUHKA_SPENT:
            spend_rate += effect.value_per_tuhka * level
            if effect.cap is not None:
                spend_cap = effect.cap if spend_cap is None else max(spend_cap, effect.cap)
        # temperature_mult_instant and permanent_gain_buff act at purchase time

    if cost_floor is not None:
        minimal_delta = cost_floor - min_building_cost_mult()
        if cost_delta < minimal_delta:
            cost_delta = minimal_delta

    spent = total_tuhka_spent(owned, catalog)
    spend_bonus = _clamp_cap(spend_rate * spent, spend_cap)

    return PermanentBonuses(
        tech_multiplier_bonus_add=max(0.0, _finite(tech_bonus, 0.0)),
        base_prod_mult=max(0.0, _finite(base_prod, 1.0)),
        offline_prod_mult=max(0.0, _finite(offline, 1.0)),
        lampotila_rate_mult=max(0.0, _finite(lampotila, 1.0)),
        tier_unlock_offset=int(_finite(tier_offset, 0.0)),
        building_cost_multiplier=BuildingCostMultiplier(delta=_finite(cost_delta, 0.0), floor=cost_floor),
        sauna_prestige_base_multiplier_min=_finite(prestige_min, 1.0),
        keep_tech_on_sauna_reset=keep_tech,
        per_tier_global_cps_add={k: _finite(v, 0.0) for k, v in per_tier.items()},
        global_cps_add_per_tuhka_spent=_finite(spend_rate, 0.0),
        total_tuhka_spent=spent,
        global_cps_add_from_tuhka_spent=_finite(spend_bonus, 0.0),
    )
