from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ScrollDepthConfig:
    """
    include_viewport_height:
      - True  -> (scroll_top + client_height) / scroll_height
                 100% when the bottom of the viewport reaches the end
      - False -> scroll_top / (scroll_height - client_height)
                 100% when the top of the viewport reaches the scrollable end
    velocity_window: trailing scroll samples used for velocity (px/ms)
    """

    enabled: bool = True
    thresholds: tuple[float, ...] = (25.0, 50.0, 75.0, 100.0)
    throttle_ms: float = 100.0
    include_viewport_height: bool = True
    recalculate_on_resize: bool = True
    track_advanced_metrics: bool = False
    fast_scroll_velocity_threshold: float = 3.0
    disable_on_mobile: bool = False
    velocity_window: int = 5


@dataclass(frozen=True, slots=True)
class ScrollSample:
    at_ms: int
    position: float
