from __future__ import annotations

import logging
from threading import Lock
from typing import Any, Callable

logger = logging.getLogger("livecoach.events.bus")

EventHandler = Callable[[Any], None]
Unsubscribe = Callable[[], None]


class EventBus:
    """
    In-process observer registry keyed by event class.

    Handlers run synchronously in publish order. A failing handler is logged
    and skipped; the remaining handlers still receive the event.
    """

    def __init__(self, name: str = "bus"):
        self.name = str(name or "bus")
        self._lock = Lock()
        self._handlers: dict[type, list[EventHandler]] = {}

    def subscribe(self, event_type: type, handler: EventHandler) -> Unsubscribe:
        if not callable(handler):
            raise ValueError("handler must be callable")

        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

        def _unsubscribe() -> None:
            self.unsubscribe(event_type, handler)

        return _unsubscribe

    def unsubscribe(self, event_type: type, handler: EventHandler) -> bool:
        with self._lock:
            handlers = self._handlers.get(event_type)
            if not handlers or handler not in handlers:
                return False
            handlers.remove(handler)
            if not handlers:
                self._handlers.pop(event_type, None)
            return True

    def publish(self, event: object) -> int:
        # iterate over a copy so handlers may (un)subscribe mid-dispatch
        with self._lock:
            handlers = list(self._handlers.get(type(event), []))

        delivered = 0
        for handler in handlers:
            with self._lock:
                still_subscribed = handler in self._handlers.get(type(event), [])
            if not still_subscribed:
                continue
            try:
                handler(event)
                delivered += 1
            except Exception:
                logger.exception(
                    "[%s] handler failed | event=%s handler=%s",
                    self.name,
                    type(event).__name__,
                    getattr(handler, "__qualname__", repr(handler)),
                )
        return delivered

    def listener_count(self, event_type: type | None = None) -> int:
        with self._lock:
            if event_type is not None:
                return len(self._handlers.get(event_type, []))
            return sum(len(handlers) for handlers in self._handlers.values())

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()
