"""Tests for the economy engine."""

import pytest

from loyly.data.balance import BALANCE
from loyly.engine.bonuses import apply_permanent_bonuses
from loyly.engine.economy import (
    apply_offline_progress,
    compute_cps,
    format_number,
    get_building_cost,
    is_building_unlocked,
    per_tier_bonus,
    purchase_building,
    purchase_tech,
    recompute,
    throw_loyly,
    tick_production,
)
from loyly.engine.game_state import GameState, MaailmaState


def test_format_number_small():
    assert format_number(0) == "0"
    assert format_number(5) == "5"
    assert format_number(99.5) == "99.5"


def test_format_number_thousands():
    result = format_number(1500)
    assert "K" in result
    assert "1.5" in result


def test_format_number_millions():
    result = format_number(2_300_000)
    assert "M" in result


def test_base_click_power():
    state = recompute(GameState())
    assert state.click_power == BALANCE.economy.base_click_power
    assert state.cps == 0


def test_cps_from_buildings():
    state = recompute(GameState(buildings={"sauna": 3, "kylakauppa": 2}))
    assert state.cps == pytest.approx(13)


def test_click_power_follows_cps():
    state = recompute(GameState(buildings={"kylakauppa": 100}))
    assert state.click_power == 5


def test_tier_bonus_raises_cps():
    state = recompute(GameState(buildings={"sauna": 10}, tier_level=3))
    assert state.cps == pytest.approx(10 * 1.1)


def test_per_tier_bonus_counts_unlocked_tiers():
    assert per_tier_bonus(6, {"7": 0.1}) == 0
    assert per_tier_bonus(9, {"7": 0.1}) == pytest.approx(0.3)


def test_tick_adds_population():
    state = recompute(GameState(buildings={"sauna": 4}))
    state = tick_production(state, 2.5, gain_mult=2.0)
    assert state.population == pytest.approx(20)
    assert state.total_population == pytest.approx(20)


def test_throw_uses_lampotila_rate():
    state = recompute(GameState(maailma=MaailmaState(purchases={"alkulampo": 10})))
    state = throw_loyly(state)
    assert state.population == pytest.approx(1.5)


def test_building_cost_scales():
    state = GameState()
    assert get_building_cost(state, "sauna") == 10
    state = GameState(buildings={"sauna": 1})
    assert get_building_cost(state, "sauna") == pytest.approx(11.5)


def test_purchase_building():
    state = recompute(GameState(population=100))
    bought = purchase_building(state, "sauna")
    assert bought.buildings == {"sauna": 1}
    assert bought.population == 90
    assert bought.cps == 1


def test_purchase_building_not_affordable_returns_same_state():
    state = GameState(population=5)
    assert purchase_building(state, "sauna") is state


def test_locked_building_needs_tier():
    state = GameState(population=1e6)
    assert not is_building_unlocked(state, "ensiapu")
    assert purchase_building(state, "ensiapu") is state

    bonuses = apply_permanent_bonuses({"maailmankivi": 1})
    assert is_building_unlocked(state, "ensiapu", bonuses)


def test_purchase_tech_multiplies_production():
    state = recompute(GameState(population=600, buildings={"sauna": 2}))
    state = purchase_tech(state, "vihta")
    assert state.tech_counts == {"vihta": 1}
    assert state.population_cps_mult == pytest.approx(1.5)
    assert state.cps == pytest.approx(3)
    assert purchase_tech(state, "vihta") is state


def test_permanent_bonuses_flow_into_cps():
    maailma = MaailmaState(purchases={"ikuiset_hiillokset": 1, "tuhkan_viisaus": 2})
    state = recompute(GameState(buildings={"sauna": 10}, tech_counts={"vihta": 1}, maailma=maailma))
    # 10 × vihta 1.5 × (1 + 1.0) × 1.2
    assert state.cps == pytest.approx(36)
    assert compute_cps(state, apply_permanent_bonuses(maailma.purchases)) == pytest.approx(36)


# ── Offline catch-up ─────────────────────────────────────────────────────────

def test_offline_gain_is_exact():
    now = 1_000_000_000.0
    state = recompute(GameState(buildings={"kylakauppa": 2}, last_save=now - 5_000))
    state, gain = apply_offline_progress(state, now)
    assert gain == pytest.approx(5 * (5 * 2))
    assert state.population == pytest.approx(50)
    assert state.total_population == pytest.approx(50)
    assert state.last_save == now

    again, gain = apply_offline_progress(state, now)
    assert gain == 0
    assert again.population == state.population


def test_offline_counts_whole_seconds():
    now = 1_000_000_000.0
    state = recompute(GameState(buildings={"sauna": 1}, last_save=now - 2_999))
    _, gain = apply_offline_progress(state, now)
    assert gain == 2


def test_offline_multiplier_from_shop():
    now = 1_000_000_000.0
    maailma = MaailmaState(purchases={"kosminen_karsivallisyys": 2})
    state = recompute(GameState(buildings={"sauna": 1}, last_save=now - 10_000, maailma=maailma))
    _, gain = apply_offline_progress(state, now)
    assert gain == pytest.approx(20)


def test_no_offline_gain_without_previous_save():
    state = recompute(GameState(buildings={"sauna": 1}))
    state, gain = apply_offline_progress(state, 5_000.0)
    assert gain == 0
    assert state.last_save == 5_000.0
