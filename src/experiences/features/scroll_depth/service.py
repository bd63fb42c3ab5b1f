from __future__ import annotations

from collections import deque
from typing import Any

from experiences.core.clock import Clock, throttle
from experiences.core.logging import get_logger
from experiences.features.page_events.service import PageEventSource
from experiences.features.page_events.types import (
    RESIZE,
    SCROLL,
    PageEnvironment,
    ScrollMetrics,
)
from experiences.features.triggers.service import TriggerBus
from experiences.features.triggers.types import SCROLL_DEPTH, SourceState

from .types import ScrollDepthConfig, ScrollSample


def calculate_scroll_percent(metrics: ScrollMetrics, include_viewport_height: bool) -> float:
    scroll_top = float(metrics.scroll_top)
    scroll_height = float(metrics.scroll_height)
    client_height = float(metrics.client_height)

    # content shorter than the viewport counts as fully scrolled
    if scroll_height <= client_height:
        return 100.0

    if include_viewport_height:
        return min((scroll_top + client_height) / scroll_height * 100.0, 100.0)

    return min(scroll_top / (scroll_height - client_height) * 100.0, 100.0)


def calculate_engagement_score(
    velocity: float,
    fast_scroll_threshold: float,
    direction_changes: int,
    time_scrolling_up: float,
    total_time: float,
) -> float:
    """
    0..100, higher = more engaged. Fast scrolling, frequent direction
    changes and time spent scrolling back up all lower the score.
    """
    velocity_score = min(velocity / fast_scroll_threshold * 50.0, 50.0) if fast_scroll_threshold > 0 else 50.0
    direction_score = min(direction_changes / 5.0 * 30.0, 30.0)
    seeking_score = min(time_scrolling_up / total_time * 20.0, 20.0) if total_time > 0 else 0.0
    return max(0.0, 100.0 - (velocity_score + direction_score + seeking_score))


class ScrollDepthSource:
    """
    Progressive trigger: each newly crossed threshold publishes its own
    signal exactly once. The crossed set only grows. The source is FIRED
    once every threshold has been crossed, at which point it detaches.
    """

    name = SCROLL_DEPTH

    def __init__(
        self,
        *,
        bus: TriggerBus,
        clock: Clock,
        page: PageEventSource,
        environment: PageEnvironment,
        cfg: ScrollDepthConfig,
    ) -> None:
        self.bus = bus
        self.clock = clock
        self.page = page
        self.environment = environment
        self.cfg = cfg
        self.device = environment.device()

        self._state = SourceState.IDLE
        self._thresholds = sorted({float(t) for t in cfg.thresholds})
        self._handler = throttle(clock, cfg.throttle_ms, self._handle_scroll)
        self._logger = get_logger(__name__)
        self._reset_tracking()

    def _reset_tracking(self) -> None:
        self._max_percent = 0.0
        self._current_percent = 0.0
        self._crossed: set[float] = set()
        self._page_load_ms = self.clock.now_ms()
        self._samples: deque[ScrollSample] = deque(maxlen=max(2, int(self.cfg.velocity_window)))
        self._last_direction: str | None = None
        self._direction_changes = 0
        self._time_scrolling_up = 0.0
        self._threshold_times: dict[float, int] = {}

    @property
    def state(self) -> SourceState:
        return self._state

    def get_max_percent(self) -> float:
        return self._max_percent

    def get_current_percent(self) -> float:
        return self._current_percent

    def get_thresholds_crossed(self) -> list[float]:
        return sorted(self._crossed)

    def get_advanced_metrics(self) -> dict[str, Any] | None:
        if not self.cfg.track_advanced_metrics:
            return None
        return {
            "time_on_page": self.clock.now_ms() - self._page_load_ms,
            "direction_changes": self._direction_changes,
            "time_scrolling_up": self._time_scrolling_up,
            "threshold_times": dict(self._threshold_times),
        }

    def start(self) -> None:
        if self._state is not SourceState.IDLE or not self.cfg.enabled:
            return
        if self.cfg.disable_on_mobile and self.device == "mobile":
            self._logger.info(
                "scroll depth disabled on mobile", extra={"feature": "scroll_depth", "reason": "mobile"}
            )
            return
        # the initial position is not checked; wait for the first scroll
        self.page.add_listener(SCROLL, self._handler)
        if self.cfg.recalculate_on_resize:
            self.page.add_listener(RESIZE, self._handler)
        self._state = SourceState.ARMED

    def reset(self) -> None:
        self.destroy()
        self._reset_tracking()
        self._state = SourceState.IDLE
        self.start()

    def destroy(self) -> None:
        self._handler.cancel()
        self.page.remove_listener(SCROLL, self._handler)
        self.page.remove_listener(RESIZE, self._handler)

    # ----------------------------
    # Event handling
    # ----------------------------
    def _handle_scroll(self, metrics: ScrollMetrics) -> None:
        if self._state is not SourceState.ARMED:
            return

        now = self.clock.now_ms()
        percent = calculate_scroll_percent(metrics, self.cfg.include_viewport_height)
        velocity = 0.0
        if self.cfg.track_advanced_metrics:
            velocity = self._track_motion(now, float(metrics.scroll_top))

        self._current_percent = percent
        self._max_percent = max(self._max_percent, percent)

        for threshold in self._thresholds:
            if percent < threshold or threshold in self._crossed:
                continue
            self._crossed.add(threshold)
            self.bus.publish(self.name, self._payload(now, percent, threshold, velocity))

        if len(self._crossed) == len(self._thresholds):
            self._state = SourceState.FIRED
            self.destroy()

    def _payload(self, now: int, percent: float, threshold: float, velocity: float) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "triggered": True,
            "timestamp": now,
            "percent": round(percent, 2),
            "max_percent": round(self._max_percent, 2),
            "threshold": threshold,
            "thresholds_crossed": sorted(self._crossed),
            "device": self.device,
        }

        if self.cfg.track_advanced_metrics:
            time_on_page = now - self._page_load_ms
            self._threshold_times[threshold] = time_on_page
            fast = float(self.cfg.fast_scroll_velocity_threshold or 3.0)
            score = calculate_engagement_score(
                velocity, fast, self._direction_changes, self._time_scrolling_up, time_on_page
            )
            payload["advanced"] = {
                "time_to_threshold": time_on_page,
                "velocity": round(velocity, 3),
                "is_fast_scrolling": velocity > fast,
                "direction_changes": self._direction_changes,
                "time_scrolling_up": self._time_scrolling_up,
                "engagement_score": round(score),
            }
            # direction changes are counted per threshold
            self._direction_changes = 0

        return payload

    def _track_motion(self, now: int, position: float) -> float:
        previous = self._samples[-1] if self._samples else ScrollSample(self._page_load_ms, 0.0)
        self._samples.append(ScrollSample(at_ms=now, position=position))

        delta = position - previous.position
        dt = now - previous.at_ms
        direction = "down" if delta > 0 else "up" if delta < 0 else self._last_direction
        if direction and self._last_direction and direction != self._last_direction:
            self._direction_changes += 1
        if direction == "up" and dt > 0:
            self._time_scrolling_up += dt
        self._last_direction = direction

        # velocity over the trailing window
        oldest = self._samples[0] if len(self._samples) > 1 else previous
        span = now - oldest.at_ms
        if span <= 0:
            return 0.0
        return abs(position - oldest.position) / span
