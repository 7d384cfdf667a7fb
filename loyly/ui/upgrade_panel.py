"""Building panel — producers and research available this tier."""

from __future__ import annotations

from rich.text import Text
from textual.widget import Widget

from loyly.data.buildings import BUILDINGS, TECHS
from loyly.engine.bonuses import PermanentBonuses
from loyly.engine.economy import can_purchase_tech, format_number, get_building_cost, is_building_unlocked
from loyly.engine.game_state import GameState

BUILDING_KEYS = "123456789"


def visible_buildings(state: GameState, bonuses: PermanentBonuses) -> list[str]:
    return [bid for bid in BUILDINGS if is_building_unlocked(state, bid, bonuses)][: len(BUILDING_KEYS)]


def next_tech(state: GameState) -> str | None:
    """Cheapest research not yet owned at the current tier."""
    options = [
        t for t in TECHS.values()
        if t.unlock_tier <= state.tier_level and state.tech_counts.get(t.id, 0) < t.max_count
    ]
    return min(options, key=lambda t: t.cost).id if options else None


class UpgradePanel(Widget):
    DEFAULT_CSS = """
    UpgradePanel {
        width: 100%;
        height: 100%;
        padding: 1;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._state: GameState | None = None
        self._bonuses: PermanentBonuses | None = None

    def render(self) -> Text:
        text = Text()
        if self._state is None or self._bonuses is None:
            return text
        s = self._state

        text.append("  ─── Rakennukset ───\n", style="bold yellow")
        for key, bid in zip(BUILDING_KEYS, visible_buildings(s, self._bonuses)):
            bdef = BUILDINGS[bid]
            cost = get_building_cost(s, bid, self._bonuses)
            style = "white" if s.population >= cost else "dim"
            text.append(f"  [{key}] {bdef.name:<14}", style=style)
            text.append(f"x{s.buildings.get(bid, 0):<4}", style="cyan")
            text.append(f"{format_number(cost)}\n", style=style)

        text.append("\n  ─── Tutkimus ───\n", style="bold yellow")
        tech_id = next_tech(s)
        if tech_id is None:
            text.append("  Nothing to research.\n", style="dim")
        else:
            tdef = TECHS[tech_id]
            style = "white" if can_purchase_tech(s, tech_id) else "dim"
            text.append(f"  [T] {tdef.name}  {format_number(tdef.cost)}\n", style=style)
            text.append(f"      {tdef.description}\n", style="dim")
        return text

    def update_from_state(self, state: GameState, bonuses: PermanentBonuses) -> None:
        self._state = state
        self._bonuses = bonuses
        self.refresh()
