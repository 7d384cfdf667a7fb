"""Building, technology and tier definitions for the sauna village."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BuildingDef:
    """A producer the player buys with löyly."""

    id: str
    name: str
    base_prod: float       # löyly per second per owned building
    base_cost: float
    cost_mult: float       # cost growth per owned building
    unlock_tier: int = 1


@dataclass(frozen=True)
class TechDef:
    """A one-off research that multiplies all production."""

    id: str
    name: str
    description: str
    multiplier: float
    cost: float
    unlock_tier: int = 1
    max_count: int = 1


@dataclass(frozen=True)
class TierDef:
    level: int
    name: str
    # totalPopulation needed to advance into this tier
    threshold: float


# ── Buildings ─────────────────────────────────────────────────────

BUILDINGS: dict[str, BuildingDef] = {
    b.id: b
    for b in (
        BuildingDef("sauna", "Sauna", base_prod=1.0, base_cost=10, cost_mult=1.15),
        BuildingDef("kylakauppa", "Kyläkauppa", base_prod=5.0, base_cost=100, cost_mult=1.15),
        BuildingDef("ensiapu", "Ensiapu", base_prod=20.0, base_cost=1_100, cost_mult=1.15, unlock_tier=2),
        BuildingDef("puusee", "Puusee", base_prod=80.0, base_cost=12_000, cost_mult=1.16, unlock_tier=3),
        BuildingDef("kirjasto", "Kirjasto", base_prod=300.0, base_cost=130_000, cost_mult=1.17, unlock_tier=4),
        BuildingDef("lampolaitos", "Lämpölaitos", base_prod=1_500.0, base_cost=1.4e6, cost_mult=1.18, unlock_tier=5),
        BuildingDef("tehdas", "Tehdas", base_prod=8_000.0, base_cost=2e7, cost_mult=1.2, unlock_tier=6),
        BuildingDef("satama", "Satama", base_prod=45_000.0, base_cost=3.3e8, cost_mult=1.2, unlock_tier=7),
        BuildingDef("avaruusasema", "Avaruusasema", base_prod=300_000.0, base_cost=5e9, cost_mult=1.22, unlock_tier=8),
    )
}


# ── Technologies ──────────────────────────────────────────────────

TECHS: dict[str, TechDef] = {
    t.id: t
    for t in (
        TechDef("vihta", "Vihta", "Birch whisks. x1.5 production.", 1.5, 500),
        TechDef("kiuaskivet", "Kiuaskivet", "Better stones. x2 production.", 2.0, 5_000, unlock_tier=2),
        TechDef("savusauna", "Savusauna", "Smoke sauna. x2 production.", 2.0, 75_000, unlock_tier=3),
        TechDef("hoyrykattila", "Höyrykattila", "Steam boiler. x3 production.", 3.0, 1e6, unlock_tier=5),
        TechDef("digikiuas", "Digikiuas", "Networked stove. x5 production.", 5.0, 5e7, unlock_tier=7),
    )
}


# ── Tiers ─────────────────────────────────────────────────────────

TIERS: tuple[TierDef, ...] = (
    TierDef(1, "Kota", 0),
    TierDef(2, "Kylä", 1e3),
    TierDef(3, "Pitäjä", 5e4),
    TierDef(4, "Kaupunki", 1e6),
    TierDef(5, "Maakunta", 2.5e7),
    TierDef(6, "Valtakunta", 5e8),
    TierDef(7, "Pohjola", 1e10),
    TierDef(8, "Manner", 2.5e11),
    TierDef(9, "Maapallo", 5e12),
    TierDef(10, "Aurinkokunta", 1e14),
    TierDef(11, "Linnunrata", 1e16),
    TierDef(12, "Galaksijoukko", 1e19),
    TierDef(13, "Maailmankaikkeus", 1e22),
)

MAX_TIER = TIERS[-1].level

# Each unlocked tier above the first adds this much to production
TIER_CPS_BONUS = 0.05


def get_tier(level: int) -> TierDef | None:
    for tier in TIERS:
        if tier.level == level:
            return tier
    return None


def min_building_cost_mult() -> float:
    """Smallest cost growth factor across the building catalog."""
    return min(b.cost_mult for b in BUILDINGS.values())
