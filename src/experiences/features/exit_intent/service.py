from __future__ import annotations

from collections import deque
from collections.abc import Sequence

from experiences.core.clock import Clock, Timer
from experiences.core.logging import get_logger
from experiences.features.page_events.service import PageEventSource
from experiences.features.page_events.types import (
    POINTER_LEAVE,
    POINTER_MOVE,
    PageEnvironment,
    PointerLeave,
    PointerMove,
)
from experiences.features.persistence.service import KeyValueStore
from experiences.features.triggers.service import TriggerBus
from experiences.features.triggers.types import EXIT_INTENT, SourceState

from .types import ExitIntentCheck, ExitIntentConfig, Position

SESSION_KEY = "xp:exit_intent:triggered"


def has_min_time_elapsed(page_load_ms: int, min_time_ms: float, now_ms: int) -> bool:
    return now_ms - page_load_ms >= min_time_ms


def calculate_velocity(last_y: float, previous_y: float) -> float:
    return abs(last_y - previous_y)


def should_trigger_exit_intent(
    positions: Sequence[Position], sensitivity: float, leave: PointerLeave
) -> ExitIntentCheck:
    """
    Pure. Fires only for an upward last movement that ends near the top,
    when the pointer leaves onto the document root or out of the window.
    """
    if len(positions) < 2:
        return ExitIntentCheck(should_trigger=False)

    if not leave.leaves_document:
        return ExitIntentCheck(should_trigger=False)

    last_y = positions[-1].y
    previous_y = positions[-2].y
    velocity = calculate_velocity(last_y, previous_y)

    is_moving_up = last_y < previous_y
    is_near_top = last_y - velocity <= sensitivity

    return ExitIntentCheck(
        should_trigger=is_moving_up and is_near_top,
        last_y=last_y,
        previous_y=previous_y,
        velocity=velocity,
    )


class ExitIntentSource:
    """
    idle -> armed (listening to pointer events) -> fired (listeners detached).

    The fired flag is kept in session storage so the signal is not raised
    twice in one session.
    """

    name = EXIT_INTENT

    def __init__(
        self,
        *,
        bus: TriggerBus,
        clock: Clock,
        page: PageEventSource,
        environment: PageEnvironment,
        session_store: KeyValueStore,
        cfg: ExitIntentConfig,
    ) -> None:
        self.bus = bus
        self.clock = clock
        self.page = page
        self.environment = environment
        self.session_store = session_store
        self.cfg = cfg

        self._state = SourceState.IDLE
        self._positions: deque[Position] = deque(maxlen=max(2, int(cfg.position_history_size)))
        self._page_load_ms = clock.now_ms()
        self._pending: Timer | None = None
        self._logger = get_logger(__name__)

    @property
    def state(self) -> SourceState:
        return self._state

    def is_triggered(self) -> bool:
        return self._state is SourceState.FIRED

    def get_positions(self) -> list[Position]:
        return list(self._positions)

    def start(self) -> None:
        if self._state is not SourceState.IDLE or not self.cfg.enabled:
            return
        if self.cfg.disable_on_mobile and self.environment.is_mobile():
            self._logger.info(
                "exit intent disabled on mobile", extra={"feature": "exit_intent", "reason": "mobile"}
            )
            return

        if self.session_store.get(SESSION_KEY) is not None:
            # already fired earlier in this session
            self._state = SourceState.FIRED
            return

        self.page.add_listener(POINTER_MOVE, self._on_pointer_move)
        self.page.add_listener(POINTER_LEAVE, self._on_pointer_leave)
        self._state = SourceState.ARMED

    def reset(self) -> None:
        self._detach()
        self._cancel_pending()
        self._positions.clear()
        self.session_store.remove(SESSION_KEY)
        self._page_load_ms = self.clock.now_ms()
        self._state = SourceState.IDLE
        self.start()

    def destroy(self) -> None:
        self._detach()
        self._cancel_pending()

    # ----------------------------
    # Event handlers
    # ----------------------------
    def _on_pointer_move(self, event: PointerMove) -> None:
        self._positions.append(Position(x=float(event.x), y=float(event.y)))

    def _on_pointer_leave(self, event: PointerLeave) -> None:
        if self._state is not SourceState.ARMED:
            return

        now = self.clock.now_ms()
        if not has_min_time_elapsed(self._page_load_ms, self.cfg.min_time_on_page_ms, now):
            return

        check = should_trigger_exit_intent(list(self._positions), self.cfg.sensitivity, event)
        if not check.should_trigger:
            return

        self._state = SourceState.FIRED
        self._detach()
        self.session_store.set(SESSION_KEY, now)

        payload = {
            "triggered": True,
            "timestamp": now,
            "last_y": check.last_y,
            "previous_y": check.previous_y,
            "velocity": check.velocity,
            "time_on_page": now - self._page_load_ms,
        }
        self._logger.debug("exit intent detected", extra={"feature": "exit_intent", "trigger": self.name})

        if self.cfg.delay_ms > 0:
            self._pending = self.clock.call_later(
                self.cfg.delay_ms, lambda: self.bus.publish(self.name, payload)
            )
        else:
            self.bus.publish(self.name, payload)

    # ----------------------------
    # Internal helpers
    # ----------------------------
    def _detach(self) -> None:
        self.page.remove_listener(POINTER_MOVE, self._on_pointer_move)
        self.page.remove_listener(POINTER_LEAVE, self._on_pointer_leave)

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
