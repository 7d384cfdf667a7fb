"""Maailma — burn the world for tuhka, spend tuhka on permanent upgrades.

Tuhka balances are decimal strings and are floored to whole numbers after
every operation, so repeated resets never accumulate binary float drift.
"""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Context, Decimal, InvalidOperation
from typing import Mapping

from loyly.data.balance import BALANCE
from loyly.data.maailma_shop import MAAILMA_SHOP, MaailmaItem
from loyly.engine.bonuses import apply_permanent_bonuses
from loyly.engine.economy import recompute
from loyly.engine.game_state import GameState, MaailmaState
from loyly.engine.telemetry import Hooks

_LOGGER = logging.getLogger(__name__)

_SILENT = Hooks()
_CTX = Context(prec=80)
ZERO = Decimal(0)


# ── Decimal helpers ───────────────────────────────────────────────


def to_decimal(value: object) -> Decimal:
    """Parse a stored balance; anything unusable reads as 0."""
    if isinstance(value, bool):
        return ZERO
    if isinstance(value, float):
        value = repr(value)
    try:
        number = Decimal(value)  # type: ignore[arg-type]
    except (InvalidOperation, TypeError, ValueError):
        return ZERO
    return number if number.is_finite() else ZERO


def floor_decimal(value: Decimal) -> Decimal:
    return value.to_integral_value(rounding=ROUND_FLOOR)


def decimal_str(value: Decimal) -> str:
    return format(floor_decimal(value), "f")


def is_valid_balance(value: object) -> bool:
    if not isinstance(value, str):
        return False
    try:
        return Decimal(value).is_finite()
    except InvalidOperation:
        return False


# ── Award ─────────────────────────────────────────────────────────


def get_tuhka_award_preview(state: GameState) -> Decimal:
    """Tuhka a Maailma reset would grant right now.

    sqrt(tierLevel * ln(prestigeMult + 1)) rounded half-up to a whole tuhka,
    and 0 while the prestige multiplier shows no growth (≤ 1).  Rounding
    rather than flooring is intended: tier 13 at x1.2e24 pays 27, and a
    shallow run just past x1 can already pay 1.
    """
    tier = state.tier_level
    mult = state.prestige_mult
    if tier <= 0 or not math.isfinite(mult) or mult <= 1:
        return ZERO
    log_term = _CTX.ln(to_decimal(mult) + 1)
    if not log_term.is_finite() or log_term <= 0:
        return ZERO
    award = _CTX.sqrt(_CTX.multiply(Decimal(tier), log_term))
    return award.to_integral_value(rounding=ROUND_HALF_UP)


# ── Reset ─────────────────────────────────────────────────────────


def hard_reset_run(state: GameState) -> GameState:
    """Zero the active run including the prestige layer; keep the ledgers."""
    return replace(
        state,
        population=0.0,
        total_population=0.0,
        tier_level=1,
        buildings={},
        tech_counts={},
        multipliers={"population_cps": 1.0},
        cps=0.0,
        click_power=BALANCE.economy.base_click_power,
        prestige_points=0,
        prestige_mult=1.0,
        era_mult=1.0,
        maailma=replace(state.maailma, purchases=dict(state.maailma.purchases)),
    )


def polta_maailma_confirm(
    state: GameState,
    *,
    catalog: Mapping[str, MaailmaItem] = MAAILMA_SHOP,
    hooks: Hooks | None = None,
) -> GameState:
    """Burn the world: reset the run and pay out the tuhka award."""
    award = get_tuhka_award_preview(state)
    if award <= 0:
        return state
    hooks = hooks or _SILENT
    highest_tier = state.tier_level

    reset = hard_reset_run(state)
    reset = recompute(reset, apply_permanent_bonuses(reset.maailma.purchases, catalog))

    maailma = reset.maailma
    maailma = replace(
        maailma,
        tuhka=decimal_str(to_decimal(maailma.tuhka) + award),
        total_tuhka_earned=decimal_str(to_decimal(maailma.total_tuhka_earned) + award),
        total_resets=maailma.total_resets + 1,
    )
    _LOGGER.info("Maailma burned at tier %s for %s tuhka", highest_tier, award)
    hooks.track(
        "polta_maailma",
        {
            "highestTier": highest_tier,
            "saunaMultiplier": reset.prestige_mult,
            "tuhkaAward": decimal_str(award),
            "purchases": dict(maailma.purchases),
            "totalResets": maailma.total_resets,
        },
    )
    return replace(reset, maailma=maailma)


# ── Purchase ledger ───────────────────────────────────────────────


def get_next_cost(
    maailma: MaailmaState,
    item_id: str,
    catalog: Mapping[str, MaailmaItem] = MAAILMA_SHOP,
) -> Decimal | None:
    item = catalog.get(item_id)
    if item is None:
        return None
    cost = item.cost_at_level(maailma.purchases.get(item_id, 0))
    return None if cost is None else to_decimal(cost)


def can_purchase(
    maailma: MaailmaState,
    item_id: str,
    catalog: Mapping[str, MaailmaItem] = MAAILMA_SHOP,
) -> bool:
    cost = get_next_cost(maailma, item_id, catalog)
    return cost is not None and to_decimal(maailma.tuhka) >= cost


def purchase(
    maailma: MaailmaState,
    item_id: str,
    *,
    catalog: Mapping[str, MaailmaItem] = MAAILMA_SHOP,
    hooks: Hooks | None = None,
) -> MaailmaState:
    """Buy exactly one level; an impossible purchase returns `maailma` itself."""
    cost = get_next_cost(maailma, item_id, catalog)
    if cost is None or to_decimal(maailma.tuhka) < cost:
        return maailma
    level = maailma.purchases.get(item_id, 0) + 1
    remaining = decimal_str(to_decimal(maailma.tuhka) - cost)
    updated = replace(maailma, tuhka=remaining, purchases={**maailma.purchases, item_id: level})
    (hooks or _SILENT).track(
        "maailma_purchase",
        {"itemId": item_id, "level": level, "cost": decimal_str(cost), "remainingTuhka": remaining},
    )
    return updated


def repair_removed_purchases(
    maailma: MaailmaState,
    refunds: Mapping[str, int] | None = None,
) -> MaailmaState:
    """Refund and drop levels of items no longer sold, fix unreadable balances."""
    refunds = dict(BALANCE.maailma.removed_item_refunds) if refunds is None else refunds
    removed = {k: v for k, v in maailma.purchases.items() if k in refunds}
    if not removed and is_valid_balance(maailma.tuhka) and is_valid_balance(maailma.total_tuhka_earned):
        return maailma

    refund = sum(Decimal(refunds[k]) * level for k, level in removed.items())
    tuhka = to_decimal(maailma.tuhka) + refund
    total = max(to_decimal(maailma.total_tuhka_earned) + refund, tuhka)
    if removed:
        _LOGGER.info("Refunded %s tuhka for retired shop items %s", refund, sorted(removed))
    return replace(
        maailma,
        tuhka=decimal_str(tuhka),
        total_tuhka_earned=decimal_str(total),
        purchases={k: v for k, v in maailma.purchases.items() if k not in refunds},
    )
