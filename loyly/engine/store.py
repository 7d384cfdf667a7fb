"""Game store — holds the current GameState and routes every action.

Within one dispatch the daily rotation is checked first, then discrete events
are fed to the daily engine, and the metric sync runs last so threshold and
delta tasks see the post-event numbers.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import replace
from typing import Any, Callable

from loyly.data.balance import BALANCE
from loyly.data.daily_tasks import DAILY_TASKS, DailyTasksConfig
from loyly.data.maailma_shop import MAAILMA_SHOP, MaailmaEffect
from loyly.engine import daily_tasks as daily
from loyly.engine import economy, maailma
from loyly.engine import prestige as progression
from loyly.engine.bonuses import PermanentBonuses, apply_permanent_bonuses
from loyly.engine.clock import now_ms
from loyly.engine.conditions import DailyTaskContext
from loyly.engine.game_state import DailyTaskBuff, GameState
from loyly.engine.rng import RngFactory, default_rng_factory
from loyly.engine.save import SaveSlot, needs_era_prompt
from loyly.engine.telemetry import Hooks

_LOGGER = logging.getLogger(__name__)

GameEvent = tuple[str, dict[str, Any] | None]


def is_interactive_session() -> bool:
    """True only for a real terminal session, never under a test runner."""
    if "PYTEST_CURRENT_TEST" in os.environ:
        return False
    return sys.stdin is not None and sys.stdin.isatty()


class GameStore:
    """Single owner of the game snapshot."""

    def __init__(
        self,
        state: GameState | None = None,
        *,
        slot: SaveSlot | None = None,
        hooks: Hooks | None = None,
        config: DailyTasksConfig = DAILY_TASKS,
        rng_factory: RngFactory = default_rng_factory,
        clock: Callable[[], float] = now_ms,
    ) -> None:
        self.slot = slot
        self.hooks = hooks or Hooks()
        self.config = config
        self.rng_factory = rng_factory
        self.clock = clock
        self.pending_era_prompt = False
        self._state = economy.recompute(state if state is not None else GameState(last_save=clock()))

    # ── Snapshot access ──────────────────────────────────────────

    @property
    def state(self) -> GameState:
        return self._state

    @property
    def bonuses(self) -> PermanentBonuses:
        return apply_permanent_bonuses(self._state.maailma.purchases)

    def context(self, state: GameState | None = None) -> DailyTaskContext:
        s = state or self._state
        return DailyTaskContext(
            population=s.population,
            total_population=s.total_population,
            prestige_mult=s.prestige_mult,
            tier_level=s.tier_level,
            prestige_unlocked=s.prestige_points > 0 or s.maailma.total_resets > 0,
        )

    def gain_multiplier(self, now: float | None = None) -> float:
        now = self.clock() if now is None else now
        return daily.get_temperature_gain_multiplier(self._state.daily_tasks, now)

    # ── Dispatch ─────────────────────────────────────────────────

    def _ensure_rotation(self, state: GameState, now: float) -> GameState:
        tasks = daily.ensure_daily_tasks_for_today(
            state.daily_tasks,
            self.context(state),
            now,
            config=self.config,
            rng_factory=self.rng_factory,
            hooks=self.hooks,
        )
        return state if tasks is state.daily_tasks else replace(state, daily_tasks=tasks)

    def _feed(self, state: GameState, events: list[GameEvent], now: float, uptime_s: float = 0.0) -> GameState:
        ctx = self.context(state)
        tasks = state.daily_tasks
        for event, payload in events:
            tasks = daily.handle_daily_task_event(
                tasks, event, ctx, now, payload=payload, config=self.config, hooks=self.hooks
            )
        tasks = daily.apply_uptime_progress(tasks, ctx, uptime_s, now, config=self.config, hooks=self.hooks)
        return state if tasks is state.daily_tasks else replace(state, daily_tasks=tasks)

    def _commit(self, state: GameState, events: list[GameEvent], now: float, uptime_s: float = 0.0) -> None:
        self._state = self._feed(state, events, now, uptime_s)

    # ── Actions ──────────────────────────────────────────────────

    def tick(self, delta_s: float, now: float | None = None) -> None:
        now = self.clock() if now is None else now
        state = self._ensure_rotation(self._state, now)
        mult = daily.get_temperature_gain_multiplier(state.daily_tasks, now)
        before = state.population
        state = economy.tick_production(state, delta_s, mult)
        events: list[GameEvent] = []
        if state.population > before:
            events.append(("population_gain", {"amount": state.population - before}))
        self._commit(state, events, now, uptime_s=delta_s)

    def throw_loyly(self, now: float | None = None) -> float:
        now = self.clock() if now is None else now
        state = self._ensure_rotation(self._state, now)
        mult = daily.get_temperature_gain_multiplier(state.daily_tasks, now)
        gain = economy.throw_gain(state, mult)
        state = economy.throw_loyly(state, mult)
        self._commit(state, [("loyly_throw", None), ("click", None), ("population_gain", {"amount": gain})], now)
        return gain

    def buy_building(self, building_id: str, now: float | None = None) -> bool:
        now = self.clock() if now is None else now
        state = self._ensure_rotation(self._state, now)
        bought = economy.purchase_building(state, building_id, self.bonuses)
        if bought is state:
            self._state = state
            return False
        payload = {"building_id": building_id}
        self._commit(bought, [("building_bought", payload), ("building_bought_same_type", payload)], now)
        return True

    def buy_tech(self, tech_id: str, now: float | None = None) -> bool:
        now = self.clock() if now is None else now
        state = self._ensure_rotation(self._state, now)
        bought = economy.purchase_tech(state, tech_id, self.bonuses)
        if bought is state:
            self._state = state
            return False
        self._commit(bought, [("technology_bought", {"tech_id": tech_id})], now)
        return True

    def advance_tier(self, now: float | None = None) -> bool:
        now = self.clock() if now is None else now
        state = self._ensure_rotation(self._state, now)
        advanced = progression.advance_tier(state, self.bonuses)
        if advanced is state:
            self._state = state
            return False
        self._commit(advanced, [("tier_unlocked", {"tier": advanced.tier_level})], now)
        return True

    def prestige(self, now: float | None = None) -> bool:
        now = self.clock() if now is None else now
        state = self._ensure_rotation(self._state, now)
        reset = progression.prestige(state, self.bonuses)
        if reset is state:
            self._state = state
            return False
        _LOGGER.info("Sauna prestige: %s points, x%s", reset.prestige_points, reset.prestige_mult)
        self._commit(reset, [("prestige", {"points": reset.prestige_points})], now)
        return True

    def polta_maailma(self, now: float | None = None) -> bool:
        now = self.clock() if now is None else now
        state = self._ensure_rotation(self._state, now)
        burned = maailma.polta_maailma_confirm(state, hooks=self.hooks)
        if burned is state:
            self._state = state
            return False
        self._commit(burned, [("polta_maailma", None)], now)
        return True

    def buy_maailma_upgrade(self, item_id: str, now: float | None = None) -> bool:
        now = self.clock() if now is None else now
        state = self._ensure_rotation(self._state, now)
        ledger = maailma.purchase(state.maailma, item_id, hooks=self.hooks)
        if ledger is state.maailma:
            self._state = state
            return False

        state = replace(state, maailma=ledger)
        item = MAAILMA_SHOP[item_id]
        level = ledger.purchases[item_id]
        if item.effect.type == MaailmaEffect.TEMPERATURE_MULT_INSTANT and item.effect.value_per_level > 1:
            gain = state.population * (item.effect.value_per_level - 1)
            state = replace(state, population=state.population + gain, total_population=state.total_population + gain)
        elif item.effect.type == MaailmaEffect.PERMANENT_GAIN_BUFF:
            tasks = daily.add_permanent_buff(
                state.daily_tasks,
                item_id,
                f"maailma:{item_id}",
                item.effect.value_per_level * level,
                BALANCE.maailma.infinite_buff_ends_at,
            )
            state = replace(state, daily_tasks=tasks)

        state = economy.recompute(state, apply_permanent_bonuses(ledger.purchases))
        self._commit(state, [("maailma_purchase", {"item_id": item_id, "level": level})], now)
        return True

    def claim_daily_task(self, task_id: str, now: float | None = None) -> DailyTaskBuff | None:
        now = self.clock() if now is None else now
        state = self._ensure_rotation(self._state, now)
        tasks, buff = daily.claim_daily_task_reward(
            state.daily_tasks, task_id, now, config=self.config, hooks=self.hooks
        )
        if tasks is not state.daily_tasks:
            state = replace(state, daily_tasks=tasks)
        self._state = state
        return buff

    def reroll_daily_tasks(self, now: float | None = None) -> bool:
        now = self.clock() if now is None else now
        state = self._ensure_rotation(self._state, now)
        cost = self.config.rotation.reroll_cost_population
        if state.population < cost:
            self._state = state
            return False
        tasks = daily.reroll_daily_tasks(
            state.daily_tasks,
            self.context(state),
            now,
            config=self.config,
            rng_factory=self.rng_factory,
            hooks=self.hooks,
        )
        if tasks is state.daily_tasks:
            self._state = state
            return False
        self._commit(replace(state, population=state.population - cost, daily_tasks=tasks), [], now)
        return True

    # ── Persistence ──────────────────────────────────────────────

    def save(self, now: float | None = None) -> bool:
        now = self.clock() if now is None else now
        self._state = replace(self._state, last_save=now)
        if self.slot is None:
            return False
        return self.slot.save(self._state)

    def rehydrate(self, now: float | None = None, *, interactive: bool | None = None) -> float:
        """Load the slot, back-fill offline production, resume.

        Returns the offline gain.  The stamped state is written straight back
        so an immediate second rehydrate finds nothing to back-fill.
        """
        now = self.clock() if now is None else now
        if self.slot is not None:
            loaded = self.slot.load()
            if loaded is not None:
                self._state = loaded

        bonuses = self.bonuses
        state = economy.recompute(self._state, bonuses)
        state, gain = economy.apply_offline_progress(state, now, bonuses)
        if gain > 0:
            _LOGGER.info("Offline progress granted %s löyly", economy.format_number(gain))

        if needs_era_prompt(state):
            interactive = is_interactive_session() if interactive is None else interactive
            if interactive:
                self.pending_era_prompt = True
            else:
                state = replace(state, last_major_version=BALANCE.storage.major_version, era_prompt_acknowledged=True)

        state = self._ensure_rotation(state, now)
        tasks = daily.apply_uptime_progress(
            state.daily_tasks, self.context(state), 0.0, now, offline=True, config=self.config, hooks=self.hooks
        )
        self._state = replace(state, daily_tasks=tasks)
        if self.slot is not None:
            self.slot.save(self._state)
        return gain

    def resolve_era_prompt(self, accept: bool) -> None:
        """Player answered the era prompt; accepting starts a new era."""
        state = self._state
        if accept:
            state = progression.change_era(state, self.bonuses)
            _LOGGER.info("Started era x%s", state.era_mult)
        self._state = replace(state, last_major_version=BALANCE.storage.major_version, era_prompt_acknowledged=True)
        self.pending_era_prompt = False
