"""Outward hooks — telemetry sink and notification source.

Engine functions never reach for globals; callers hand them a Hooks bundle.
Failures inside a sink or a subscriber are logged and dropped so they cannot
disturb the simulation.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

_LOGGER = logging.getLogger(__name__)

# Notification kinds raised by the daily task engine
NOTIFY_COMPLETE = "complete"
NOTIFY_CLAIM = "claim"
NOTIFY_BUFF_STARTED = "buff_started"
NOTIFY_BUFF_EXPIRED = "buff_expired"

Handler = Callable[[dict[str, Any]], None]


class Telemetry(Protocol):
    def emit(self, event: str, payload: dict[str, Any]) -> None: ...


class NullTelemetry:
    """Sink that discards everything."""

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        return None


class LoggingTelemetry:
    """Sink that writes each event to the debug log."""

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        _LOGGER.debug("telemetry %s %s", event, payload)


def safe_emit(telemetry: Telemetry, event: str, payload: dict[str, Any]) -> None:
    try:
        telemetry.emit(event, payload)
    except Exception:
        _LOGGER.debug("Telemetry sink failed for %s", event, exc_info=True)


class Notifier:
    """Minimal publish/subscribe channel for UI notifications."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def on(self, kind: str, handler: Handler) -> Callable[[], None]:
        """Subscribe; returns a callable that unsubscribes again."""
        self._handlers[kind].append(handler)
        return lambda: self.off(kind, handler)

    def once(self, kind: str, handler: Handler) -> Callable[[], None]:
        def wrapper(payload: dict[str, Any]) -> None:
            self.off(kind, wrapper)
            handler(payload)

        return self.on(kind, wrapper)

    def off(self, kind: str, handler: Handler) -> None:
        handlers = self._handlers.get(kind)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def emit(self, kind: str, payload: dict[str, Any]) -> None:
        # Copy so handlers may unsubscribe while we iterate
        for handler in list(self._handlers.get(kind, ())):
            try:
                handler(payload)
            except Exception:
                _LOGGER.debug("Notification handler failed for %s", kind, exc_info=True)

    def clear(self, kind: str | None = None) -> None:
        if kind is None:
            self._handlers.clear()
        else:
            self._handlers.pop(kind, None)


@dataclass
class Hooks:
    """Collaborators threaded through engine calls."""

    telemetry: Telemetry = field(default_factory=NullTelemetry)
    notifier: Notifier = field(default_factory=Notifier)

    def track(self, event: str, payload: dict[str, Any]) -> None:
        safe_emit(self.telemetry, event, payload)

    def notify(self, kind: str, payload: dict[str, Any]) -> None:
        self.notifier.emit(kind, payload)
