from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TimeDelayConfig:
    # 0 disables the source
    delay_ms: float = 0.0
    pause_when_hidden: bool = True
    enabled: bool = True
