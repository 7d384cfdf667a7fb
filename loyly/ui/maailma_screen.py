"""Maailma screen — the permanent upgrade shop and the era prompt."""

from __future__ import annotations

from rich.text import Text
from textual.binding import Binding
from textual.containers import Vertical
from textual.screen import ModalScreen, Screen
from textual.widgets import Footer, Static

from loyly.data.maailma_shop import MAAILMA_SHOP
from loyly.engine.maailma import can_purchase, get_next_cost
from loyly.engine.store import GameStore

_KEYS = "abcdefghijkl"   # one key per shop item


class MaailmaScreen(Screen[None]):
    """Full-screen shop spending tuhka on permanent upgrades."""

    BINDINGS = [
        Binding("escape", "close", "Back"),
        *[Binding(k, f"buy('{k}')", f"Buy {k}", show=False) for k in _KEYS],
    ]

    DEFAULT_CSS = """
    MaailmaScreen {
        background: $surface;
        align: center top;
        padding: 2 4;
    }

    #shop-list {
        width: 100%;
        height: auto;
        padding: 0 2;
    }
    """

    def __init__(self, store: GameStore, **kwargs) -> None:
        super().__init__(**kwargs)
        self._store = store

    def compose(self):
        with Vertical():
            yield Static(id="shop-list")
        yield Footer()

    def on_mount(self) -> None:
        self._refresh_display()

    def action_close(self) -> None:
        self.dismiss(None)

    def action_buy(self, key: str) -> None:
        items = list(MAAILMA_SHOP)
        index = _KEYS.index(key)
        if index >= len(items):
            return
        item_id = items[index]
        if self._store.buy_maailma_upgrade(item_id):
            self.notify(f"Bought {MAAILMA_SHOP[item_id].name}!", severity="information", timeout=1)
        else:
            self.notify("Not enough tuhka.", severity="error", timeout=1)
        self._refresh_display()

    def _refresh_display(self) -> None:
        ledger = self._store.state.maailma
        text = Text()
        text.append("  ─── Maailma ───\n", style="bold red")
        text.append(f"  Tuhka: {ledger.tuhka}   (earned {ledger.total_tuhka_earned},", style="red")
        text.append(f" resets {ledger.total_resets})\n\n", style="red")

        for key, item in zip(_KEYS, MAAILMA_SHOP.values()):
            level = ledger.purchases.get(item.id, 0)
            cost = get_next_cost(ledger, item.id)
            style = "bold white" if can_purchase(ledger, item.id) else "dim"
            text.append(f"  [{key.upper()}] {item.name} ", style=style)
            text.append(f"{level}/{item.max_level}  ", style="cyan")
            text.append("MAX\n" if cost is None else f"{cost} tuhka\n", style=style)
            text.append(f"      {item.description}\n", style="dim")
        self.query_one("#shop-list", Static).update(text)


class EraPromptScreen(ModalScreen[bool]):
    """Asks whether to start a fresh era after a major update."""

    BINDINGS = [
        Binding("y", "answer(True)", "New era"),
        Binding("n", "answer(False)", "Keep progress"),
    ]

    DEFAULT_CSS = """
    EraPromptScreen {
        align: center middle;
    }

    #era-box {
        width: 60;
        height: auto;
        padding: 1 2;
        border: heavy $warning;
        background: $surface;
    }
    """

    def __init__(self, era_mult: float, **kwargs) -> None:
        super().__init__(**kwargs)
        self._era_mult = era_mult

    def compose(self):
        text = Text()
        text.append("A new major version of the sauna has arrived.\n\n", style="bold yellow")
        text.append(f"[Y] Start a new era: progress resets, era bonus x{self._era_mult + 1:.0f}.\n")
        text.append("[N] Keep the current progress.\n", style="dim")
        yield Static(text, id="era-box")

    def action_answer(self, accept: bool) -> None:
        self.dismiss(accept)
