"""Seeded 32-bit PRNG used for daily rotations.

Selection must be reproducible from the seed string alone, so nothing here
touches the platform random source.
"""

from __future__ import annotations

from typing import Callable

_MASK = 0xFFFFFFFF
_FNV_OFFSET = 0x811C9DC5
_FNV_PRIME = 0x01000193


def _imul(a: int, b: int) -> int:
    return (a * b) & _MASK


def hash_seed(seed: str) -> int:
    """FNV-1a hash of the seed string, as an unsigned 32-bit integer."""
    h = _FNV_OFFSET
    # UTF-16 code units, so astral characters hash as surrogate pairs
    data = seed.encode("utf-16-le")
    for i in range(0, len(data), 2):
        h ^= data[i] | (data[i + 1] << 8)
        h = _imul(h, _FNV_PRIME)
    return h


class SeededRng:
    """mulberry32 generator; call the instance for a float in [0, 1)."""

    def __init__(self, seed: str | int) -> None:
        self._state = hash_seed(seed) if isinstance(seed, str) else seed & _MASK

    def __call__(self) -> float:
        self._state = (self._state + 0x6D2B79F5) & _MASK
        t = self._state
        t = _imul(t ^ (t >> 15), t | 1)
        t ^= (t + _imul(t ^ (t >> 7), t | 61)) & _MASK
        return ((t ^ (t >> 14)) & _MASK) / 4294967296


RngFactory = Callable[[str], Callable[[], float]]


def default_rng_factory(seed: str) -> Callable[[], float]:
    return SeededRng(seed)
