"""Löyly — Main Textual Application.

Wires the game store into a playable terminal idle game.
"""

from __future__ import annotations

import logging
import time

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.timer import Timer
from textual.widgets import Footer, Header

from loyly.data.balance import BALANCE
from loyly.data.daily_tasks import DAILY_TASKS
from loyly.engine import daily_tasks as daily
from loyly.engine.economy import format_number
from loyly.engine.save import SaveSlot, default_slot
from loyly.engine.store import GameStore
from loyly.engine.telemetry import (
    NOTIFY_BUFF_EXPIRED,
    NOTIFY_COMPLETE,
    Hooks,
    LoggingTelemetry,
)
from loyly.ui.daily_panel import DailyTasksPanel
from loyly.ui.hud import HUD
from loyly.ui.maailma_screen import EraPromptScreen, MaailmaScreen
from loyly.ui.upgrade_panel import BUILDING_KEYS, UpgradePanel, next_tech, visible_buildings

_LOGGER = logging.getLogger(__name__)


class LoylyApp(App):
    """The Löyly TUI game application."""

    TITLE = "Löyly — Saunan idle-peli"
    SUB_TITLE = "Heitä. Rakenna. Polta maailma."

    BINDINGS = [
        Binding("space", "throw", "Heitä löylyä", show=True, priority=True),
        Binding("a", "advance_tier", "Advance tier", show=True),
        Binding("p", "prestige", "Prestige", show=True),
        Binding("m", "polta_maailma", "Polta maailma", show=True),
        Binding("s", "open_shop", "Maailma shop", show=True),
        Binding("c", "claim_tasks", "Claim", show=True),
        Binding("r", "reroll_tasks", "Reroll", show=False),
        Binding("t", "buy_tech", "Research", show=False),
        *[Binding(k, f"buy_building({i})", f"Buy #{k}", show=False) for i, k in enumerate(BUILDING_KEYS)],
        Binding("q", "quit_game", "Quit", show=True),
    ]

    def __init__(self, slot: SaveSlot | None = None) -> None:
        super().__init__()
        self._hooks = Hooks(telemetry=LoggingTelemetry())
        self._store = GameStore(slot=slot or default_slot(), hooks=self._hooks)
        self._last_tick: float = time.time()
        self._last_autosave: float = time.time()
        self._burn_armed: bool = False
        self._tick_timer: Timer | None = None

        self._hooks.notifier.on(NOTIFY_COMPLETE, self._on_task_complete)
        self._hooks.notifier.on(NOTIFY_BUFF_EXPIRED, self._on_buff_expired)

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal(id="game-container"):
            yield HUD(id="hud-panel")
            with Vertical(id="center-panel"):
                yield DailyTasksPanel(id="daily-panel")
            yield UpgradePanel(id="upgrade-panel")
        yield Footer()

    def on_mount(self) -> None:
        """Resume the save and start the game loop timer."""
        gain = self._store.rehydrate(interactive=True)
        if gain > 0:
            self.notify(f"While you were away: +{format_number(gain)} löyly", timeout=4)
        if self._store.pending_era_prompt:
            self.push_screen(EraPromptScreen(self._store.state.era_mult), self._on_era_answer)

        interval = 1.0 / BALANCE.tick_rate_hz
        self._tick_timer = self.set_interval(interval, self._game_tick)
        self._last_tick = time.time()
        self._sync_ui()

    def _game_tick(self) -> None:
        """Main game loop — called BALANCE.tick_rate_hz times per second."""
        now = time.time()
        dt = now - self._last_tick
        self._last_tick = now

        self._store.tick(dt)

        if now - self._last_autosave >= BALANCE.autosave_interval_s:
            self._store.save()
            self._last_autosave = now

        self._sync_ui()

    def _sync_ui(self) -> None:
        state = self._store.state
        now = self._store.clock()
        self.query_one("#hud-panel", HUD).update_from_state(state, self._store.gain_multiplier(now))
        self.query_one("#daily-panel", DailyTasksPanel).update_from_state(state.daily_tasks, now)
        self.query_one("#upgrade-panel", UpgradePanel).update_from_state(state, self._store.bonuses)

    # ── Notifications ────────────────────────────────────────────

    def _on_task_complete(self, payload: dict) -> None:
        self.notify(f"✓ Tehtävä valmis: {payload.get('title', '')}  [C] claim", timeout=3)

    def _on_buff_expired(self, payload: dict) -> None:
        self.notify("A löyly buff wore off.", severity="information", timeout=2)

    def _on_era_answer(self, accept: bool | None) -> None:
        self._store.resolve_era_prompt(bool(accept))
        self._store.save()
        self._sync_ui()

    # ── Actions ──────────────────────────────────────────────────

    def action_throw(self) -> None:
        self._store.throw_loyly()
        self._burn_armed = False
        self._sync_ui()

    def action_buy_building(self, index: int) -> None:
        options = visible_buildings(self._store.state, self._store.bonuses)
        if index >= len(options):
            return
        if not self._store.buy_building(options[index]):
            self.notify("Not enough löyly.", severity="error", timeout=1)
        self._sync_ui()

    def action_buy_tech(self) -> None:
        tech_id = next_tech(self._store.state)
        if tech_id is None or not self._store.buy_tech(tech_id):
            self.notify("Can't research that yet.", severity="error", timeout=1)
        self._sync_ui()

    def action_advance_tier(self) -> None:
        if self._store.advance_tier():
            self.notify(f"Tier {self._store.state.tier_level} unlocked!", severity="warning", timeout=3)
        else:
            self.notify("Earn more löyly to advance.", severity="error", timeout=1)
        self._sync_ui()

    def action_prestige(self) -> None:
        if self._store.prestige():
            self.notify(f"Sauna prestige! x{self._store.state.prestige_mult:.2f}", severity="warning", timeout=3)
            self._store.save()
        else:
            self.notify("Prestige not available yet.", severity="error", timeout=1)
        self._sync_ui()

    def action_polta_maailma(self) -> None:
        """Press twice to burn the world."""
        if not self._burn_armed:
            self._burn_armed = True
            self.notify("Press [M] again to burn the world.", severity="warning", timeout=3)
            return
        self._burn_armed = False
        if self._store.polta_maailma():
            self.notify(f"Maailma burned. Tuhka: {self._store.state.maailma.tuhka}", severity="warning", timeout=4)
            self._store.save()
        else:
            self.notify("Nothing to gain from burning yet.", severity="error", timeout=2)
        self._sync_ui()

    def action_open_shop(self) -> None:
        self.push_screen(MaailmaScreen(self._store), lambda _: self._sync_ui())

    def action_claim_tasks(self) -> None:
        claimable = daily.claimable_task_ids(self._store.state.daily_tasks)
        if not claimable:
            self.notify("No finished tasks to claim.", severity="error", timeout=1)
            return
        for task_id in claimable:
            buff = self._store.claim_daily_task(task_id)
            definition = DAILY_TASKS.get_task(task_id)
            if buff is not None and definition is not None:
                self.notify(f"{definition.title}: +{buff.value * 100:.0f}% löyly", timeout=2)
        self._sync_ui()

    def action_reroll_tasks(self) -> None:
        if not self._store.reroll_daily_tasks():
            self.notify("No rerolls left (or not enough löyly).", severity="error", timeout=1)
        self._sync_ui()

    def action_quit_game(self) -> None:
        """Save and quit."""
        self._store.save()
        self.exit()
