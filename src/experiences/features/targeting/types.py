from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Literal

from experiences.features.context.types import Context

FrequencyWindow = Literal["session", "day", "week"]
FREQUENCY_WINDOWS: tuple[str, ...] = ("session", "day", "week")

CustomPredicate = Callable[[Context], bool]


class ExperienceKind(str, Enum):
    """
    Which rendering observer an experience is addressed to.
    Never affects targeting or frequency semantics.
    """

    BANNER = "banner"
    MODAL = "modal"
    TOOLTIP = "tooltip"
    INLINE = "inline"


@dataclass(frozen=True, slots=True)
class UrlRule:
    """
    When several properties are set, precedence is equals > contains > matches.
    No properties set matches every url.
    """

    equals: str | None = None
    contains: str | None = None
    # str patterns are compiled lazily; malformed ones never match
    matches: str | re.Pattern[str] | None = None

    def is_empty(self) -> bool:
        return self.equals is None and self.contains is None and self.matches is None

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.equals is not None:
            out["equals"] = self.equals
        if self.contains is not None:
            out["contains"] = self.contains
        if self.matches is not None:
            out["matches"] = getattr(self.matches, "pattern", self.matches)
        return out


@dataclass(frozen=True, slots=True)
class DisplayTrigger:
    """
    Requires context.triggers[name] to have fired. With a threshold, the
    signal's most recent threshold must equal it exactly.
    """

    name: str
    threshold: float | None = None

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name}
        if self.threshold is not None:
            out["threshold"] = self.threshold
        return out


@dataclass(frozen=True, slots=True)
class Targeting:
    url: UrlRule | None = None
    custom: CustomPredicate | None = None
    trigger: DisplayTrigger | None = None


@dataclass(frozen=True, slots=True)
class FrequencyConfig:
    max: int
    per: FrequencyWindow = "session"

    def __post_init__(self) -> None:
        if self.per not in FREQUENCY_WINDOWS:
            raise ValueError(f"frequency.per must be one of {FREQUENCY_WINDOWS}, got {self.per!r}")
        if int(self.max) < 0:
            raise ValueError("frequency.max must be >= 0")

    def as_dict(self) -> dict[str, Any]:
        return {"max": self.max, "per": self.per}


@dataclass(frozen=True, slots=True)
class Experience:
    id: str
    kind: ExperienceKind
    targeting: Targeting = field(default_factory=Targeting)
    # opaque to the decision engine
    content: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    frequency: FrequencyConfig | None = None
    priority: int = 0
