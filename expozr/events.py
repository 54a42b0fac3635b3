"""
Navigator event bus.

Synchronous fan-out to listeners in registration order. A listener
that raises is logged and skipped; the remaining listeners still run.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

logger = logging.getLogger("expozr.events")

Listener = Callable[[Dict[str, Any]], Any]


class NavigatorEvent(str, Enum):
    SOURCE_LOADED = "source:loaded"
    CARGO_LOADING = "cargo:loading"
    CARGO_LOADED = "cargo:loaded"
    CARGO_ERROR = "cargo:error"
    CACHE_HIT = "cache:hit"
    CACHE_MISS = "cache:miss"
    NAVIGATOR_RESET = "navigator:reset"


EventName = Union[NavigatorEvent, str]


def _key(event: EventName) -> str:
    return event.value if isinstance(event, NavigatorEvent) else str(event)


class EventBus:
    """
    Listener registry keyed by event name.

    Example:
        ```python
        bus = EventBus()
        bus.on(NavigatorEvent.CARGO_LOADED, lambda data: print(data["cargo"]))
        bus.emit(NavigatorEvent.CARGO_LOADED, {"source": "remote", "cargo": "math"})
        ```
    """

    def __init__(self):
        self._listeners: Dict[str, List[Listener]] = {}

    def on(self, event: EventName, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unregisters it."""
        self._listeners.setdefault(_key(event), []).append(listener)
        return lambda: self.off(event, listener)

    def off(self, event: EventName, listener: Listener) -> bool:
        listeners = self._listeners.get(_key(event))
        if not listeners:
            return False
        for i, registered in enumerate(listeners):
            if registered is listener or getattr(registered, "__wrapped__", None) is listener:
                del listeners[i]
                return True
        return False

    def once(self, event: EventName, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for the next emission only."""

        def wrapper(data: Dict[str, Any]) -> Any:
            self.off(event, wrapper)
            return listener(data)

        wrapper.__wrapped__ = listener
        return self.on(event, wrapper)

    def emit(self, event: EventName, data: Optional[Dict[str, Any]] = None) -> int:
        """Call every listener of ``event``; returns how many were called."""
        payload = data if data is not None else {}
        called = 0
        for listener in list(self._listeners.get(_key(event), [])):
            called += 1
            try:
                listener(payload)
            except Exception as exc:
                logger.error("Listener for '%s' failed: %s", _key(event), exc)
        return called

    def listener_count(self, event: Optional[EventName] = None) -> int:
        if event is None:
            return sum(len(v) for v in self._listeners.values())
        return len(self._listeners.get(_key(event), []))

    def clear(self, event: Optional[EventName] = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(_key(event), None)
