from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol

from experiences.core.logging import get_logger
from experiences.features.persistence.service import KeyValueStore, StorageBackends
from experiences.features.targeting.types import FREQUENCY_WINDOWS, FrequencyWindow

from .types import DAY_MS, RETENTION_MS, WEEK_MS, FrequencyRecord

DEFAULT_NAMESPACE = "experiences:frequency"


class EventsLike(Protocol):
    def emit(self, event_name: str, payload: Any = None) -> None: ...


def window_ms(per: FrequencyWindow) -> float:
    if per == "session":
        return float("inf")
    if per == "day":
        return float(DAY_MS)
    if per == "week":
        return float(WEEK_MS)
    raise ValueError(f"Unsupported frequency window={per!r}. Allowed={list(FREQUENCY_WINDOWS)}")


class FrequencyLedger:
    """
    Impression counter/timestamp log per experience.

    - session window: lifetime count of the session-scoped record
    - day/week window: impressions inside the trailing 24h/7d of the
      local-scoped record
    Records are namespaced ``<namespace>:<window>:<experience_id>``; an empty
    experience id is a valid, distinct key.
    """

    def __init__(
        self,
        *,
        storage: StorageBackends,
        now_ms: Callable[[], int],
        namespace: str = DEFAULT_NAMESPACE,
        enabled: bool = True,
        events: EventsLike | None = None,
    ) -> None:
        self.storage = storage
        self.namespace = namespace
        self.enabled = enabled
        self._now_ms = now_ms
        self._events = events
        self._windows: dict[str, FrequencyWindow] = {}
        self._logger = get_logger(__name__)

    # ----------------------------
    # Public API
    # ----------------------------
    def register_experience(self, experience_id: str, per: FrequencyWindow) -> None:
        window_ms(per)
        self._windows[experience_id] = per

    def forget_experience(self, experience_id: str) -> None:
        self._windows.pop(experience_id, None)

    def window_for(self, experience_id: str) -> FrequencyWindow:
        return self._windows.get(experience_id, "session")

    def get_record(self, experience_id: str, per: FrequencyWindow = "session") -> FrequencyRecord:
        raw = self._store(per).get(self._key(experience_id, per))
        return FrequencyRecord.from_stored(raw)

    def get_impression_count(self, experience_id: str, per: FrequencyWindow = "session") -> int:
        if not self.enabled:
            return 0
        record = self.get_record(experience_id, per)
        if per == "session":
            return record.count
        return self._count_within(record, window_ms(per))

    def has_reached_cap(self, experience_id: str, max_impressions: int, per: FrequencyWindow) -> bool:
        if not self.enabled:
            return False
        return self.get_impression_count(experience_id, per) >= int(max_impressions)

    def record_impression(
        self, experience_id: str, per: FrequencyWindow | None = None
    ) -> FrequencyRecord | None:
        if not self.enabled:
            return None

        per = per or self.window_for(experience_id)
        now = self._now_ms()
        record = self.get_record(experience_id, per)

        record.count += 1
        record.last_impression = now
        record.impressions.append(now)
        horizon = now - RETENTION_MS
        record.impressions = [ts for ts in record.impressions if ts > horizon]

        self._store(per).set(self._key(experience_id, per), record.as_dict())

        self._logger.debug(
            "impression recorded",
            extra={"feature": "frequency", "experience_id": experience_id, "event": per},
        )
        if self._events is not None:
            self._events.emit(
                "experiences:impression-recorded",
                {"experience_id": experience_id, "count": record.count, "timestamp": now},
            )
        return record

    # ----------------------------
    # Internal helpers
    # ----------------------------
    def _key(self, experience_id: str, per: FrequencyWindow) -> str:
        return f"{self.namespace}:{per}:{experience_id}"

    def _store(self, per: FrequencyWindow) -> KeyValueStore:
        window_ms(per)
        return self.storage.session if per == "session" else self.storage.local

    def _count_within(self, record: FrequencyRecord, span_ms: float) -> int:
        now = self._now_ms()
        return sum(1 for ts in record.impressions if now - ts < span_ms)
