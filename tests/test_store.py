"""Tests for the game store: action dispatch, rehydrate and the era prompt."""

import pytest
from conftest import NOW, build_config, task

from loyly.data.balance import BALANCE
from loyly.engine.game_state import GameState, MaailmaState
from loyly.engine.save import MemoryStorage, SaveSlot
from loyly.engine.store import GameStore, is_interactive_session

CONFIG = build_config(
    [
        task("throws", {"type": "counter", "event": "loyly_throw", "target": 2}),
        task("warm", {"type": "threshold", "metric": "temperature", "target": 2}),
        task("builder", {"type": "counter", "event": "building_bought_same_type", "target": 2}),
    ]
)


def _store(state=None, slot=None, hooks=None, now=NOW):
    return GameStore(state, slot=slot, hooks=hooks, config=CONFIG, clock=lambda: now)


def _slot() -> SaveSlot:
    return SaveSlot(MemoryStorage(), "test")


# ── Dispatch ─────────────────────────────────────────────────────────────────

def test_throw_feeds_events_then_metrics():
    store = _store()
    store.throw_loyly()
    tasks = store.state.daily_tasks
    assert set(tasks.task_order) == {"throws", "warm", "builder"}
    assert tasks.tasks["throws"].progress == 1
    assert tasks.tasks["warm"].progress == 1

    store.throw_loyly()
    tasks = store.state.daily_tasks
    assert tasks.tasks["throws"].completed_at == NOW
    # The threshold sees the population of the same dispatch
    assert tasks.tasks["warm"].completed_at == NOW
    assert store.state.population == 2


def test_building_purchase_counts_per_type():
    store = _store(GameState(population=1_000))
    assert store.buy_building("sauna")
    assert store.buy_building("kylakauppa")
    assert store.buy_building("sauna")
    assert store.state.daily_tasks.tasks["builder"].completed_at == NOW


def test_failed_purchase_does_not_count():
    store = _store(GameState(population=5))
    assert not store.buy_building("sauna")
    assert not store.buy_tech("vihta")
    assert store.state.daily_tasks.tasks["builder"].progress == 0


def test_tick_produces_and_accrues_uptime():
    store = _store(GameState(buildings={"sauna": 2}))
    store.tick(3.0)
    assert store.state.population == pytest.approx(6)
    assert store.state.daily_tasks.metrics.uptime_seconds == 3.0


def test_claim_applies_gain_multiplier():
    store = _store()
    store.throw_loyly()
    store.throw_loyly()
    buff = store.claim_daily_task("throws")
    assert buff is not None
    assert store.gain_multiplier() == pytest.approx(1.25)
    assert store.claim_daily_task("throws") is None

    before = store.state.population
    store.throw_loyly()
    assert store.state.population - before == pytest.approx(1.25)


def test_reroll_charges_population():
    config = build_config(
        [task(f"t{i}", {"type": "counter", "event": "click"}) for i in range(4)],
        tasks_per_day=2,
        reroll_cost_population=100,
    )
    store = GameStore(GameState(population=150), config=config, clock=lambda: NOW)
    assert store.reroll_daily_tasks()
    assert store.state.population == 50
    assert store.state.daily_tasks.rerolls_used == 1
    assert not store.reroll_daily_tasks()


def test_advance_tier_and_prestige_through_store():
    store = _store(GameState(total_population=2e5))
    assert store.advance_tier()
    assert store.state.tier_level == 2
    assert store.prestige()
    assert store.state.prestige_points == 1
    assert not store.prestige()


# ── Maailma shop ─────────────────────────────────────────────────────────────

def test_instant_temperature_upgrade():
    store = _store(GameState(population=100, maailma=MaailmaState(tuhka="3")))
    assert store.buy_maailma_upgrade("loylyn_siunaus")
    assert store.state.population == 200
    assert store.state.maailma.tuhka == "0"


def test_permanent_gain_buff_never_expires():
    store = _store(GameState(maailma=MaailmaState(tuhka="25")))
    assert store.buy_maailma_upgrade("ikuinen_loyly")
    assert store.buy_maailma_upgrade("ikuinen_loyly")
    buffs = store.state.daily_tasks.active_buffs
    assert len(buffs) == 1
    assert buffs[0].ends_at == BALANCE.maailma.infinite_buff_ends_at
    assert store.gain_multiplier(NOW + 10**12) == pytest.approx(1.2)


def test_shop_purchase_recomputes_rates():
    store = _store(GameState(buildings={"sauna": 10}, maailma=MaailmaState(tuhka="6")))
    assert store.buy_maailma_upgrade("ikuiset_hiillokset")
    assert store.state.cps == pytest.approx(12)
    assert not store.buy_maailma_upgrade("ikuiset_hiillokset")


def test_polta_maailma_through_store():
    store = _store(GameState(tier_level=13, prestige_mult=1.2e24, population=1e20))
    assert store.polta_maailma()
    assert store.state.maailma.tuhka == "27"
    assert store.state.population == 0


# ── Rehydrate ────────────────────────────────────────────────────────────────

def test_rehydrate_grants_offline_gain_once():
    slot = _slot()
    slot.save(GameState(buildings={"kylakauppa": 2}, last_save=NOW - 5_000))

    store = _store(slot=slot)
    gain = store.rehydrate()
    assert gain == pytest.approx(50)
    assert store.state.population == pytest.approx(50)
    assert store.state.total_population == pytest.approx(50)

    assert store.rehydrate() == 0
    assert store.state.population == pytest.approx(50)


def test_rehydrate_without_save_starts_fresh():
    store = _store(slot=_slot())
    assert store.rehydrate() == 0
    assert store.state.daily_tasks.rolled_date == "2026-03-10"


def test_rehydrate_headless_acknowledges_era():
    slot = _slot()
    slot.save(GameState(last_major_version=6, era_prompt_acknowledged=False, population=10))
    store = _store(slot=slot)
    store.rehydrate(interactive=False)
    assert not store.pending_era_prompt
    assert store.state.last_major_version == 7
    assert store.state.era_prompt_acknowledged
    assert store.state.population == 10


def test_interactive_era_prompt_can_start_new_era():
    slot = _slot()
    slot.save(GameState(last_major_version=6, era_prompt_acknowledged=False, population=10))
    store = _store(slot=slot)
    store.rehydrate(interactive=True)
    assert store.pending_era_prompt

    store.resolve_era_prompt(True)
    assert not store.pending_era_prompt
    assert store.state.era_mult == 2
    assert store.state.population == 0
    assert store.state.era_prompt_acknowledged


def test_save_stamps_last_save():
    slot = _slot()
    store = _store(slot=slot)
    assert store.save()
    assert slot.load().last_save == NOW


def test_tests_are_never_interactive():
    assert not is_interactive_session()
