from __future__ import annotations

from typing import Any

from experiences.core.clock import Clock, Timer
from experiences.core.logging import get_logger
from experiences.features.page_events.service import PageEventSource
from experiences.features.page_events.types import (
    VISIBILITY_CHANGE,
    PageEnvironment,
    VisibilityChange,
)
from experiences.features.triggers.service import TriggerBus
from experiences.features.triggers.types import TIME_DELAY, SourceState

from .types import TimeDelayConfig


class TimeDelaySource:
    """
    One timer from start(). With pause_when_hidden, hidden time does not
    count: the timer is cancelled on hide and rescheduled for the remaining
    active time on show.
    """

    name = TIME_DELAY

    def __init__(
        self,
        *,
        bus: TriggerBus,
        clock: Clock,
        page: PageEventSource,
        environment: PageEnvironment,
        cfg: TimeDelayConfig,
    ) -> None:
        self.bus = bus
        self.clock = clock
        self.page = page
        self.environment = environment
        self.cfg = cfg

        self._state = SourceState.IDLE
        self._timer: Timer | None = None
        self._logger = get_logger(__name__)
        self._reset_tracking()

    def _reset_tracking(self) -> None:
        self._start_ms: int | None = None
        self._paused_at: int | None = None
        self._paused_total = 0
        self._was_paused = False
        self._visibility_changes = 0

    @property
    def state(self) -> SourceState:
        return self._state

    @property
    def delay_ms(self) -> float:
        return max(0.0, float(self.cfg.delay_ms))

    # ----------------------------
    # Getters
    # ----------------------------
    def is_triggered(self) -> bool:
        return self._state is SourceState.FIRED

    def is_paused(self) -> bool:
        return self._paused_at is not None

    def get_elapsed(self) -> int:
        if self._start_ms is None:
            return 0
        return self.clock.now_ms() - self._start_ms

    def get_active_elapsed(self) -> int:
        if self._start_ms is None:
            return 0
        paused = self._paused_total
        if self._paused_at is not None:
            paused += self.clock.now_ms() - self._paused_at
        return self.get_elapsed() - paused

    def get_remaining(self) -> float:
        if self._start_ms is None or self.is_triggered():
            return 0.0
        return max(0.0, self.delay_ms - self.get_active_elapsed())

    # ----------------------------
    # Lifecycle
    # ----------------------------
    def start(self) -> None:
        if self._state is not SourceState.IDLE or not self.cfg.enabled:
            return
        if self.delay_ms <= 0:
            self._logger.debug(
                "time delay disabled", extra={"feature": "time_delay", "reason": "delay_ms=0"}
            )
            return

        self._start_ms = self.clock.now_ms()
        self._state = SourceState.ARMED

        if self.cfg.pause_when_hidden:
            self.page.add_listener(VISIBILITY_CHANGE, self._on_visibility_change)
            if self.environment.hidden_at_load:
                self._paused_at = self._start_ms
                self._was_paused = True
                return

        self._schedule(self.delay_ms)

    def reset(self) -> None:
        self.destroy()
        self._reset_tracking()
        self._state = SourceState.IDLE
        self.start()

    def destroy(self) -> None:
        self._cancel_timer()
        self.page.remove_listener(VISIBILITY_CHANGE, self._on_visibility_change)

    # ----------------------------
    # Internal helpers
    # ----------------------------
    def _schedule(self, delay_ms: float) -> None:
        self._cancel_timer()
        self._timer = self.clock.call_later(delay_ms, self._fire)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_visibility_change(self, event: VisibilityChange) -> None:
        if self._state is not SourceState.ARMED:
            return

        now = self.clock.now_ms()
        if event.hidden and self._paused_at is None:
            self._visibility_changes += 1
            self._paused_at = now
            self._was_paused = True
            self._cancel_timer()
        elif not event.hidden and self._paused_at is not None:
            self._visibility_changes += 1
            self._paused_total += now - self._paused_at
            self._paused_at = None
            remaining = self.get_remaining()
            if remaining <= 0:
                self._fire()
            else:
                self._schedule(remaining)

    def _fire(self) -> None:
        if self._state is not SourceState.ARMED:
            return

        self._timer = None
        self._state = SourceState.FIRED
        self.page.remove_listener(VISIBILITY_CHANGE, self._on_visibility_change)

        payload: dict[str, Any] = {
            "triggered": True,
            "timestamp": self.clock.now_ms(),
            "elapsed": self.get_elapsed(),
            "active_elapsed": self.get_active_elapsed(),
            "was_paused": self._was_paused,
            "visibility_changes": self._visibility_changes,
        }
        self.bus.publish(self.name, payload)
