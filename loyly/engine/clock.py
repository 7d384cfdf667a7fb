"""Wall clock helpers — millisecond timestamps and the daily reset boundary."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from datetime import time as dt_time
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_LOGGER = logging.getLogger(__name__)


def now_ms() -> float:
    return time.time() * 1000.0


@lru_cache(maxsize=16)
def resolve_timezone(name: str) -> ZoneInfo | timezone:
    """IANA zone by name, falling back to UTC for unknown names."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        _LOGGER.warning("Unknown reset timezone %r, using UTC", name)
        return timezone.utc


def _local(now: float, tz_name: str) -> datetime:
    return datetime.fromtimestamp(now / 1000.0, tz=resolve_timezone(tz_name))


def date_key(now: float, tz_name: str) -> str:
    """Calendar date (YYYY-MM-DD) of `now` in the reset timezone."""
    return _local(now, tz_name).date().isoformat()


def next_reset_at(now: float, tz_name: str) -> float:
    """UTC milliseconds of the next local midnight after `now`."""
    local = _local(now, tz_name)
    midnight = datetime.combine(local.date() + timedelta(days=1), dt_time(0), tzinfo=local.tzinfo)
    return midnight.timestamp() * 1000.0
