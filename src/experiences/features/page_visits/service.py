from __future__ import annotations

from typing import Any

from experiences.core.clock import Clock
from experiences.core.logging import get_logger
from experiences.features.page_events.types import PageEnvironment
from experiences.features.persistence.service import KeyValueStore
from experiences.features.triggers.service import TriggerBus
from experiences.features.triggers.types import PAGE_VISITS, SourceState

from .types import PageVisitsConfig, PageVisitsState, VisitTotals


class PageVisitsSource:
    """
    Counts page loads in two independently stored counters:
    - session: in the session store, plain integer
    - total: in the local store, {count, first, last}, optionally with a TTL

    first_visit is true iff the total was 0 (or absent) before this increment.
    """

    name = PAGE_VISITS

    def __init__(
        self,
        *,
        bus: TriggerBus,
        clock: Clock,
        environment: PageEnvironment,
        session_store: KeyValueStore,
        local_store: KeyValueStore,
        cfg: PageVisitsConfig,
    ) -> None:
        self.bus = bus
        self.clock = clock
        self.environment = environment
        self.session_store = session_store
        self.local_store = local_store
        self.cfg = cfg

        self._state = SourceState.IDLE
        self._first_visit = False
        self._logger = get_logger(__name__)

    @property
    def state(self) -> SourceState:
        return self._state

    @property
    def disabled_reason(self) -> str | None:
        if not self.cfg.enabled:
            return "config"
        if self.cfg.respect_dnt and self.environment.do_not_track:
            return "dnt"
        return None

    # ----------------------------
    # Getters
    # ----------------------------
    def get_session_count(self) -> int:
        raw = self.session_store.get(self.cfg.session_key)
        try:
            return max(0, int(raw or 0))
        except (TypeError, ValueError):
            return 0

    def get_total_count(self) -> int:
        return self._totals().count

    def is_first_visit(self) -> bool:
        return self._first_visit

    def get_state(self) -> PageVisitsState:
        totals = self._totals()
        return PageVisitsState(
            session_count=self.get_session_count(),
            total_count=totals.count,
            first_visit=self._first_visit,
            first_visit_time=totals.first,
            last_visit_time=totals.last,
            disabled_reason=self.disabled_reason,
        )

    # ----------------------------
    # Lifecycle
    # ----------------------------
    def start(self) -> None:
        if self._state is not SourceState.IDLE:
            return
        reason = self.disabled_reason
        if reason is not None:
            self._logger.info(
                "page visits disabled", extra={"feature": "page_visits", "reason": reason}
            )
            return

        self._state = SourceState.ARMED
        if self.cfg.auto_increment:
            self.increment()

    def increment(self) -> dict[str, Any] | None:
        """
        Records one page load and publishes the visit signal.
        Returns the published payload, or None when tracking is disabled.
        """
        if self.disabled_reason is not None:
            return None

        now = self.clock.now_ms()

        session_count = self.get_session_count() + 1
        self.session_store.set(self.cfg.session_key, session_count)

        totals = self._totals()
        self._first_visit = totals.count == 0
        totals.count += 1
        if totals.first is None:
            totals.first = now
        totals.last = now
        self.local_store.set(self.cfg.total_key, totals.as_dict(), self.cfg.ttl_s)

        self._state = SourceState.FIRED
        payload: dict[str, Any] = {
            "triggered": True,
            "timestamp": now,
            "first_visit": self._first_visit,
            "total_visits": totals.count,
            "session_visits": session_count,
            "first_visit_time": totals.first,
            "last_visit_time": totals.last,
        }
        self.bus.publish(self.name, payload)
        return payload

    def reset(self) -> None:
        """Clears both counters."""
        self.session_store.remove(self.cfg.session_key)
        self.local_store.remove(self.cfg.total_key)
        self._first_visit = False
        self._state = SourceState.IDLE

    def destroy(self) -> None:
        # no listeners or timers to release
        return None

    def _totals(self) -> VisitTotals:
        return VisitTotals.from_stored(self.local_store.get(self.cfg.total_key))
