"""Economy engine — löyly production, purchases, offline gain and formatting."""

from __future__ import annotations

import logging
import math
from dataclasses import replace

from loyly.data.balance import BALANCE
from loyly.data.buildings import BUILDINGS, TECHS, TIER_CPS_BONUS
from loyly.engine.bonuses import PermanentBonuses, apply_permanent_bonuses
from loyly.engine.game_state import GameState

_LOGGER = logging.getLogger(__name__)


def bonuses_for(state: GameState) -> PermanentBonuses:
    return apply_permanent_bonuses(state.maailma.purchases)


# ── Production formula ────────────────────────────────────────────


def tech_multiplier(tech_counts: dict[str, int]) -> float:
    mult = 1.0
    for tech_id, count in tech_counts.items():
        tdef = TECHS.get(tech_id)
        if tdef is not None and count > 0:
            mult *= tdef.multiplier ** min(count, tdef.max_count)
    return mult


def population_cps_multiplier(tech_counts: dict[str, int], bonuses: PermanentBonuses) -> float:
    """Tech multipliers combined with the standing Maailma production bonuses."""
    return (
        tech_multiplier(tech_counts)
        * (1.0 + bonuses.tech_multiplier_bonus_add)
        * bonuses.base_prod_mult
        * (1.0 + bonuses.global_cps_add_from_tuhka_spent)
    )


def tier_bonus_multiplier(tier_level: int) -> float:
    return 1.0 + TIER_CPS_BONUS * max(0, tier_level - 1)


def per_tier_bonus(tier_level: int, per_tier: dict[str, float]) -> float:
    """Sum of per-tier adds for every unlocked tier at or above each threshold."""
    total = 0.0
    for key, value in per_tier.items():
        try:
            from_tier = int(key)
        except ValueError:
            continue
        total += value * max(0, tier_level - from_tier + 1)
    return total


def base_production(buildings: dict[str, int]) -> float:
    return sum(BUILDINGS[bid].base_prod * count for bid, count in buildings.items() if bid in BUILDINGS)


def compute_cps(state: GameState, bonuses: PermanentBonuses) -> float:
    """Löyly per second; shared by the live tick and offline catch-up."""
    cps = (
        base_production(state.buildings)
        * state.prestige_mult
        * state.population_cps_mult
        * state.era_mult
        * tier_bonus_multiplier(state.tier_level)
        * (1.0 + per_tier_bonus(state.tier_level, bonuses.per_tier_global_cps_add))
    )
    return cps if math.isfinite(cps) and cps > 0 else 0.0


def recompute(state: GameState, bonuses: PermanentBonuses | None = None) -> GameState:
    """Refresh every derived rate from ownership and permanent bonuses."""
    bonuses = bonuses or bonuses_for(state)
    state = replace(
        state,
        multipliers={**state.multipliers, "population_cps": population_cps_multiplier(state.tech_counts, bonuses)},
        prestige_mult=max(state.prestige_mult, bonuses.sauna_prestige_base_multiplier_min),
        lampotila_rate=bonuses.lampotila_rate_mult,
    )
    cps = compute_cps(state, bonuses)
    click = max(BALANCE.economy.base_click_power, round(cps / BALANCE.economy.click_power_divisor))
    return replace(state, cps=cps, click_power=click)


# ── Gains ─────────────────────────────────────────────────────────


def _add_population(state: GameState, gain: float) -> GameState:
    if not math.isfinite(gain) or gain <= 0:
        return state
    return replace(state, population=state.population + gain, total_population=state.total_population + gain)


def tick_production(state: GameState, delta_s: float, gain_mult: float = 1.0) -> GameState:
    """Live tick: cps × seconds × active buff multiplier."""
    return _add_population(state, state.cps * max(0.0, delta_s) * gain_mult)


def throw_gain(state: GameState, gain_mult: float = 1.0) -> float:
    return state.click_power * state.lampotila_rate * gain_mult


def throw_loyly(state: GameState, gain_mult: float = 1.0) -> GameState:
    return _add_population(state, throw_gain(state, gain_mult))


def compute_offline_gain(state: GameState, elapsed_s: float, bonuses: PermanentBonuses) -> float:
    return compute_cps(state, bonuses) * elapsed_s * bonuses.offline_prod_mult


def apply_offline_progress(
    state: GameState,
    now: float,
    bonuses: PermanentBonuses | None = None,
) -> tuple[GameState, float]:
    """Back-fill production since lastSave, then stamp lastSave = now.

    Elapsed time is counted in whole seconds.  Because lastSave moves to
    `now`, an immediate second call grants nothing.
    """
    bonuses = bonuses or bonuses_for(state)
    gain = 0.0
    if state.last_save and now > state.last_save:
        elapsed_s = math.floor((now - state.last_save) / 1000.0)
        gain = compute_offline_gain(state, elapsed_s, bonuses)
        state = _add_population(state, gain)
        _LOGGER.debug("Offline catch-up: %ss → %s löyly", elapsed_s, gain)
    return replace(state, last_save=now), gain


# ── Buildings & technologies ──────────────────────────────────────


def building_cost_multiplier(building_id: str, bonuses: PermanentBonuses) -> float:
    bdef = BUILDINGS[building_id]
    mult = bdef.cost_mult + bonuses.building_cost_multiplier.delta
    if bonuses.building_cost_multiplier.floor is not None:
        mult = max(mult, bonuses.building_cost_multiplier.floor)
    return max(mult, BALANCE.economy.min_cost_multiplier)


def get_building_cost(state: GameState, building_id: str, bonuses: PermanentBonuses | None = None) -> float:
    bonuses = bonuses or bonuses_for(state)
    owned = state.buildings.get(building_id, 0)
    return BUILDINGS[building_id].base_cost * building_cost_multiplier(building_id, bonuses) ** owned


def is_building_unlocked(state: GameState, building_id: str, bonuses: PermanentBonuses | None = None) -> bool:
    bdef = BUILDINGS.get(building_id)
    if bdef is None:
        return False
    bonuses = bonuses or bonuses_for(state)
    return state.tier_level >= bdef.unlock_tier + bonuses.tier_unlock_offset


def purchase_building(state: GameState, building_id: str, bonuses: PermanentBonuses | None = None) -> GameState:
    """Buy one building; returns the same state when not possible."""
    bonuses = bonuses or bonuses_for(state)
    if not is_building_unlocked(state, building_id, bonuses):
        return state
    cost = get_building_cost(state, building_id, bonuses)
    if state.population < cost:
        return state
    buildings = {**state.buildings, building_id: state.buildings.get(building_id, 0) + 1}
    return recompute(replace(state, population=state.population - cost, buildings=buildings), bonuses)


def can_purchase_tech(state: GameState, tech_id: str) -> bool:
    tdef = TECHS.get(tech_id)
    if tdef is None or state.tier_level < tdef.unlock_tier:
        return False
    if state.tech_counts.get(tech_id, 0) >= tdef.max_count:
        return False
    return state.population >= tdef.cost


def purchase_tech(state: GameState, tech_id: str, bonuses: PermanentBonuses | None = None) -> GameState:
    if not can_purchase_tech(state, tech_id):
        return state
    tdef = TECHS[tech_id]
    tech_counts = {**state.tech_counts, tech_id: state.tech_counts.get(tech_id, 0) + 1}
    return recompute(replace(state, population=state.population - tdef.cost, tech_counts=tech_counts), bonuses)


# ── Formatting ────────────────────────────────────────────────────


def format_number(n: float) -> str:
    """Format a number with suffixes for readability."""
    if not math.isfinite(n):
        return "∞" if n > 0 else "0"
    if n < 0:
        return f"-{format_number(-n)}"

    for threshold, suffix in reversed(BALANCE.economy.suffixes):
        if n >= threshold:
            value = n / threshold
            if value >= 100:
                return f"{value:.0f}{suffix}"
            elif value >= 10:
                return f"{value:.1f}{suffix}"
            else:
                return f"{value:.2f}{suffix}"

    if n >= 100:
        return f"{n:.0f}"
    elif n >= 10:
        return f"{n:.1f}"
    elif n == int(n):
        return str(int(n))
    else:
        return f"{n:.1f}"
