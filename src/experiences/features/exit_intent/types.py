from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ExitIntentConfig:
    """
    sensitivity: max Y (px) at which an upward exit can fire
    min_time_on_page_ms: guard against firing right after load
    delay_ms: wait between detection and publishing the signal
    position_history_size: cursor samples kept in the ring buffer
    """

    enabled: bool = True
    sensitivity: float = 50.0
    min_time_on_page_ms: float = 2000.0
    delay_ms: float = 0.0
    position_history_size: int = 30
    disable_on_mobile: bool = True


@dataclass(frozen=True, slots=True)
class Position:
    x: float
    y: float


@dataclass(frozen=True, slots=True)
class ExitIntentCheck:
    should_trigger: bool
    last_y: float = 0.0
    previous_y: float = 0.0
    velocity: float = 0.0
