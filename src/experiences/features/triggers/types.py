from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Protocol

EXIT_INTENT = "exit_intent"
SCROLL_DEPTH = "scroll_depth"
TIME_DELAY = "time_delay"
PAGE_VISITS = "page_visits"

BUILTIN_TRIGGERS: tuple[str, ...] = (EXIT_INTENT, SCROLL_DEPTH, TIME_DELAY, PAGE_VISITS)

# fields whose values accumulate as a set union instead of being replaced
_GROWING_FIELDS = ("thresholds_crossed",)


class SourceState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    FIRED = "fired"


def _freeze(data: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(copy.deepcopy(dict(data)))


@dataclass(frozen=True, slots=True)
class TriggerSignal:
    """
    Accumulated state of one named trigger.

    triggered never goes back to False once set, and growing fields
    (thresholds_crossed) only gain members across merges.
    """

    name: str
    triggered: bool = False
    timestamp: int | None = None
    data: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def merged(self, payload: Mapping[str, Any]) -> TriggerSignal:
        data = dict(self.data)
        for key, value in payload.items():
            if key in ("triggered", "timestamp", "name"):
                continue
            if key in _GROWING_FIELDS:
                data[key] = sorted(set(data.get(key) or []) | set(value or []))
                continue
            data[key] = value

        return TriggerSignal(
            name=self.name,
            triggered=self.triggered or bool(payload.get("triggered", True)),
            timestamp=payload.get("timestamp", self.timestamp),
            data=_freeze(data),
        )

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"triggered": self.triggered, "timestamp": self.timestamp}
        out.update(copy.deepcopy(dict(self.data)))
        return out


class TriggerSource(Protocol):
    """
    A behavioral signal source. Sources only publish onto the trigger bus;
    they never evaluate rules or touch the frequency ledger.
    """

    name: str

    @property
    def state(self) -> SourceState: ...

    def start(self) -> None: ...
    def reset(self) -> None: ...
    def destroy(self) -> None: ...
