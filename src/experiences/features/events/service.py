from __future__ import annotations

from collections.abc import Callable
from typing import Any

from experiences.core.logging import get_logger

from .schema import ALLOWED_EVENT_NAMES, is_allowed

Handler = Callable[[Any], None]


class EventEmitter:
    """
    Synchronous observer channel for runtime events.

    Contracts enforced:
    - emitted names must be known runtime events or trigger:<name>
    - a failing handler is logged and does not stop delivery to the others
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}
        self._logger = get_logger(__name__)

    def on(self, event_name: str, handler: Handler) -> Callable[[], None]:
        self._handlers.setdefault(event_name, []).append(handler)

        def unsubscribe() -> None:
            self.off(event_name, handler)

        return unsubscribe

    def off(self, event_name: str, handler: Handler) -> None:
        handlers = self._handlers.get(event_name)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def emit(self, event_name: str, payload: Any = None) -> None:
        if not is_allowed(event_name):
            raise ValueError(
                f"Unsupported event_name={event_name!r}. "
                f"Allowed={sorted(ALLOWED_EVENT_NAMES)} or 'trigger:<name>'"
            )

        for handler in list(self._handlers.get(event_name, [])):
            try:
                handler(payload)
            except Exception:  # noqa: BLE001
                self._logger.exception(
                    "event handler failed", extra={"feature": "events", "event": event_name}
                )

    def handler_count(self, event_name: str) -> int:
        return len(self._handlers.get(event_name, []))

    def clear(self) -> None:
        self._handlers.clear()
