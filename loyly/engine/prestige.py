"""First-order progression — tier advance, sauna prestige and era change."""

from __future__ import annotations

import math
from dataclasses import replace

from loyly.data.balance import BALANCE
from loyly.data.buildings import MAX_TIER, get_tier
from loyly.engine.bonuses import PermanentBonuses
from loyly.engine.economy import bonuses_for, recompute
from loyly.engine.game_state import GameState


def can_advance_tier(state: GameState) -> bool:
    """True if a next tier exists and lifetime löyly reached its threshold."""
    if state.tier_level >= MAX_TIER:
        return False
    nxt = get_tier(state.tier_level + 1)
    return nxt is not None and state.total_population >= nxt.threshold


def advance_tier(state: GameState, bonuses: PermanentBonuses | None = None) -> GameState:
    if not can_advance_tier(state):
        return state
    return recompute(replace(state, tier_level=state.tier_level + 1), bonuses)


def compute_prestige_points(total_population: float) -> int:
    """floor(sqrt(totalPopulation / divisor)) prestige points for a run."""
    if not math.isfinite(total_population) or total_population <= 0:
        return 0
    return math.floor(math.sqrt(total_population / BALANCE.prestige.points_divisor))


def prestige_mult_for(points: int) -> float:
    bal = BALANCE.prestige
    return bal.base_mult + points * bal.mult_per_point


def can_prestige(state: GameState) -> bool:
    if state.total_population < BALANCE.prestige.min_population:
        return False
    return compute_prestige_points(state.total_population) > state.prestige_points


def prestige(state: GameState, bonuses: PermanentBonuses | None = None) -> GameState:
    """Sauna prestige: restart the run for a higher prestige multiplier.

    totalPopulation, eraMult and the Maailma ledger are kept; technologies
    survive only with the keep-tech Maailma upgrade.
    """
    if not can_prestige(state):
        return state
    bonuses = bonuses or bonuses_for(state)
    points = compute_prestige_points(state.total_population)
    state = replace(
        state,
        population=0.0,
        tier_level=1,
        buildings={},
        tech_counts=dict(state.tech_counts) if bonuses.keep_tech_on_sauna_reset else {},
        multipliers={"population_cps": 1.0},
        prestige_points=points,
        prestige_mult=prestige_mult_for(points),
    )
    return recompute(state, bonuses)


def change_era(state: GameState, bonuses: PermanentBonuses | None = None) -> GameState:
    """Accepting a new major version: full reset, eraMult + 1."""
    fresh = GameState(
        era_mult=state.era_mult + 1,
        last_major_version=BALANCE.storage.major_version,
        era_prompt_acknowledged=True,
        last_save=state.last_save,
        maailma=state.maailma,
        daily_tasks=state.daily_tasks,
    )
    return recompute(fresh, bonuses)
