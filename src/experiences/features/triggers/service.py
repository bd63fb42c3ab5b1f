from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from experiences.core.logging import get_logger

SignalHandler = Callable[[str, Mapping[str, Any]], None]


class TriggerBus:
    """
    Synchronous publish/subscribe keyed by trigger name.

    publish() delivers to every handler before returning, in subscription
    order: handlers for the specific name first, then catch-all handlers.
    There is no debouncing; N publishes produce N deliveries, in order.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[SignalHandler]] = {}
        self._catch_all: list[SignalHandler] = []
        self._closed = False
        self._logger = get_logger(__name__)

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, name: str, handler: SignalHandler) -> Callable[[], None]:
        handlers = self._handlers.setdefault(name, [])
        handlers.append(handler)

        def unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def subscribe_all(self, handler: SignalHandler) -> Callable[[], None]:
        self._catch_all.append(handler)

        def unsubscribe() -> None:
            if handler in self._catch_all:
                self._catch_all.remove(handler)

        return unsubscribe

    def publish(self, name: str, payload: Mapping[str, Any] | None = None) -> bool:
        if self._closed:
            self._logger.debug(
                "signal dropped; bus closed", extra={"feature": "trigger_bus", "trigger": name}
            )
            return False

        payload = dict(payload or {})
        for handler in [*self._handlers.get(name, []), *self._catch_all]:
            handler(name, payload)
        return True

    def close(self) -> None:
        self._closed = True
        self._handlers.clear()
        self._catch_all.clear()
