"""HUD widget — löyly counter, rates, tier, prestige and tuhka."""

from __future__ import annotations

from rich.text import Text
from textual.widget import Widget

from loyly.data.buildings import get_tier
from loyly.engine.economy import format_number
from loyly.engine.game_state import GameState
from loyly.engine.maailma import get_tuhka_award_preview
from loyly.engine.prestige import can_advance_tier, can_prestige, compute_prestige_points


class HUD(Widget):
    """Heads-up display showing core game stats."""

    DEFAULT_CSS = """
    HUD {
        width: 100%;
        height: 100%;
        padding: 1;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._state: GameState | None = None
        self._gain_mult: float = 1.0

    def render(self) -> Text:
        text = Text()
        if self._state is None:
            return text
        s = self._state

        tier = get_tier(s.tier_level)
        text.append(f"  === {tier.name if tier else s.tier_level} ===\n\n", style="bold yellow")

        text.append("  Löyly: ", style="dim")
        text.append(f"{format_number(s.population)}\n", style="bold green")
        text.append("  Per second: ", style="dim")
        text.append(f"{format_number(s.cps * self._gain_mult)}\n", style="green")
        text.append("  Per throw: ", style="dim")
        text.append(f"{format_number(s.click_power * s.lampotila_rate * self._gain_mult)}\n", style="green")
        if self._gain_mult > 1.0:
            text.append("  Buffs: ", style="dim")
            text.append(f"x{self._gain_mult:.2f}\n", style="bold magenta")

        text.append("\n")
        text.append("  Prestige: ", style="dim")
        text.append(f"x{s.prestige_mult:.2f}", style="bold cyan")
        text.append(f"  ({s.prestige_points} pts)\n", style="cyan")
        if s.era_mult > 1.0:
            text.append("  Era: ", style="dim")
            text.append(f"x{s.era_mult:.0f}\n", style="cyan")

        text.append("  Tuhka: ", style="dim")
        text.append(f"{s.maailma.tuhka}\n", style="bold red")

        text.append("\n")
        if can_advance_tier(s):
            text.append("  [A] Advance to the next tier!\n", style="bold yellow")
        if can_prestige(s):
            points = compute_prestige_points(s.total_population)
            text.append(f"  [P] Sauna prestige → {points} pts\n", style="bold cyan")
        award = get_tuhka_award_preview(s)
        if award > 0:
            text.append(f"  [M] Polta maailma → +{award} tuhka\n", style="bold red")

        return text

    def update_from_state(self, state: GameState, gain_mult: float = 1.0) -> None:
        self._state = state
        self._gain_mult = gain_mult
        self.refresh()
