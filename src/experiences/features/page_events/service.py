from __future__ import annotations

from collections.abc import Callable
from typing import Any

from experiences.core.logging import get_logger

from .types import PAGE_EVENT_TYPES

Listener = Callable[[Any], None]


class PageEventSource:
    """
    Listener registry standing in for the browser document/window.

    Trigger sources attach here; hosts (or tests) call dispatch() to feed
    pointer, scroll, resize and visibility events in.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {t: [] for t in PAGE_EVENT_TYPES}
        self._logger = get_logger(__name__)

    def add_listener(self, event_type: str, listener: Listener) -> None:
        if event_type not in PAGE_EVENT_TYPES:
            raise ValueError(
                f"Unsupported page event_type={event_type!r}. Allowed={sorted(PAGE_EVENT_TYPES)}"
            )
        if listener not in self._listeners[event_type]:
            self._listeners[event_type].append(listener)

    def remove_listener(self, event_type: str, listener: Listener) -> None:
        listeners = self._listeners.get(event_type)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event_type: str | None = None) -> int:
        if event_type is None:
            return sum(len(v) for v in self._listeners.values())
        return len(self._listeners.get(event_type, []))

    def dispatch(self, event_type: str, event: Any) -> None:
        # copy: a listener may detach itself while handling
        for listener in list(self._listeners.get(event_type, [])):
            listener(event)

    def clear(self) -> None:
        for listeners in self._listeners.values():
            listeners.clear()
