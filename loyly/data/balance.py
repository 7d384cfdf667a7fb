"""Balance constants — all tuning knobs in one place.

Tweak these to adjust pacing of the run, the first-order prestige loop and
persistence behaviour.  Building costs follow:
base_cost * ((cost_mult + permanent delta) ^ times_purchased)
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class EconomyBalance:
    """Tuning for löyly generation and spending."""

    # Löyly per throw before clickPower scaling kicks in
    base_click_power: float = 1.0
    # clickPower = max(base, round(cps / click_power_divisor))
    click_power_divisor: float = 100.0

    # Lower clamp for a building cost multiplier after permanent deltas
    min_cost_multiplier: float = 0.0001

    # Large number formatting thresholds
    suffixes: tuple[tuple[float, str], ...] = (
        (1e3, "K"),
        (1e6, "M"),
        (1e9, "B"),
        (1e12, "T"),
        (1e15, "Qa"),
        (1e18, "Qi"),
        (1e21, "Sx"),
        (1e24, "Sp"),
    )


@dataclass(frozen=True)
class PrestigeBalance:
    """Tuning for the first-order sauna prestige."""

    # prestigePoints = floor(sqrt(totalPopulation / points_divisor))
    points_divisor: float = 100_000.0
    # prestigeMult = base_mult + points * mult_per_point
    base_mult: float = 1.0
    mult_per_point: float = 0.1
    # totalPopulation required before prestige is offered
    min_population: float = 100_000.0


@dataclass(frozen=True)
class MaailmaBalance:
    """Tuning for the Maailma shop data repair."""

    # Items that left the shop catalog: tuhka refunded per owned level
    removed_item_refunds: tuple[tuple[str, int], ...] = (
        ("tuhkakivi", 60),
    )
    # Buff end timestamp used for buffs that never expire
    infinite_buff_ends_at: int = 2**53 - 1


@dataclass(frozen=True)
class StorageBalance:
    """Persistence layout and versioning."""

    # Storage schema version written into every payload
    save_version: int = 7
    # Major game version; a newer major version offers an era change
    major_version: int = 7

    key_prefix: str = "loyly"
    default_namespace: str = "main"
    namespace_env_var: str = "LOYLY_NAMESPACE"
    save_dir_name: str = ".loyly"


@dataclass(frozen=True)
class GameBalance:
    """Top-level container for all balance constants."""

    economy: EconomyBalance = field(default_factory=EconomyBalance)
    prestige: PrestigeBalance = field(default_factory=PrestigeBalance)
    maailma: MaailmaBalance = field(default_factory=MaailmaBalance)
    storage: StorageBalance = field(default_factory=StorageBalance)

    # Run timing
    tick_rate_hz: float = 10.0  # game loop ticks per second
    autosave_interval_s: float = 15.0


# Singleton, import this everywhere
BALANCE = GameBalance()
