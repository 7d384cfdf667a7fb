"""Daily task panel — today's rotation, progress and active buffs."""

from __future__ import annotations

from rich.text import Text
from textual.widget import Widget

from loyly.data.balance import BALANCE
from loyly.data.daily_tasks import DAILY_TASKS
from loyly.engine.conditions import condition_target
from loyly.engine.economy import format_number
from loyly.engine.game_state import DailyTasksState

_BAR_WIDTH = 16


def _bar(progress: float, target: float) -> str:
    ratio = 1.0 if target <= 0 else min(1.0, progress / target)
    filled = int(ratio * _BAR_WIDTH)
    return "█" * filled + "░" * (_BAR_WIDTH - filled)


class DailyTasksPanel(Widget):
    """Lists today's tasks; [C] claims every finished one."""

    DEFAULT_CSS = """
    DailyTasksPanel {
        width: 100%;
        height: auto;
        min-height: 8;
        padding: 1;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._tasks: DailyTasksState | None = None
        self._now: float = 0.0

    def render(self) -> Text:
        text = Text()
        text.append("  ─── Päivän tehtävät ───\n", style="bold yellow")
        tasks = self._tasks
        if tasks is None or not tasks.task_order:
            text.append("  No tasks rolled yet.\n", style="dim")
            return text

        for task_id in tasks.task_order:
            task = tasks.tasks.get(task_id)
            definition = DAILY_TASKS.get_task(task_id)
            if task is None or definition is None:
                continue
            target = condition_target(definition.condition)
            if task.claimed_at is not None:
                style, mark = "dim", "✓"
            elif task.completed_at is not None:
                style, mark = "bold green", "!"
            else:
                style, mark = "white", " "
            text.append(f"  [{mark}] {definition.title}", style=style)
            text.append(f"  ({DAILY_TASKS.category_title(definition.category)})\n", style="dim")
            text.append(
                f"      {_bar(task.progress, target)} {format_number(task.progress)}/{format_number(target)}\n",
                style=style,
            )

        rerolls_left = DAILY_TASKS.rotation.reroll_limit_per_day - tasks.rerolls_used
        text.append(f"\n  [R] Reroll ({max(0, rerolls_left)} left)", style="dim")
        text.append("   [C] Claim finished\n", style="dim")

        running = [b for b in tasks.active_buffs if b.ends_at > self._now]
        for buff in running:
            if buff.ends_at >= BALANCE.maailma.infinite_buff_ends_at:
                remaining = "∞"
            else:
                remaining = f"{int((buff.ends_at - self._now) / 1000)}s"
            text.append(f"  +{buff.value * 100:.0f}% löyly  {remaining}\n", style="magenta")
        return text

    def update_from_state(self, tasks: DailyTasksState, now: float) -> None:
        self._tasks = tasks
        self._now = now
        self.refresh()
