from __future__ import annotations

from collections.abc import Callable
from typing import Any

from experiences.core.logging import get_logger
from experiences.features.events import schema as ev
from experiences.features.events.service import EventEmitter


class DebugObserver:
    """
    Logs every runtime event at INFO. Attached when runtime.debug is set.
    """

    def __init__(self, events: EventEmitter) -> None:
        self.events = events
        self._logger = get_logger(__name__)
        self._unsubscribers: list[Callable[[], None]] = []

    def attach(self) -> None:
        if self._unsubscribers:
            return
        for name in sorted(ev.ALLOWED_EVENT_NAMES):
            self._unsubscribers.append(self.events.on(name, self._handler(name)))

    def detach(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

    def _handler(self, event_name: str) -> Callable[[Any], None]:
        def log(payload: Any) -> None:
            extra: dict[str, Any] = {"feature": "debug", "event": event_name}
            if isinstance(payload, dict):
                decision = payload.get("decision")
                experience_id = (
                    getattr(decision, "experience_id", None)
                    or payload.get("experience_id")
                    or payload.get("id")
                )
                if experience_id is not None:
                    extra["experience_id"] = experience_id
                if decision is not None:
                    extra["reason"] = "; ".join(decision.reasons)
            self._logger.info(event_name, extra=extra)

        return log
