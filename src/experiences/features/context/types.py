from __future__ import annotations

import copy
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, TypedDict

from experiences.features.triggers.types import TriggerSignal


class PartialContext(TypedDict, total=False):
    url: str
    timestamp: int
    user: Mapping[str, Any]
    custom: Mapping[str, Any]
    triggers: Mapping[str, TriggerSignal | Mapping[str, Any]]


@dataclass(frozen=True, slots=True)
class Context:
    """
    Immutable evaluation snapshot. Built fresh for every evaluation.
    """

    url: str
    timestamp: int
    user: Mapping[str, Any] | None = None
    custom: Mapping[str, Any] | None = None
    triggers: Mapping[str, TriggerSignal] = field(default_factory=lambda: MappingProxyType({}))

    def trigger(self, name: str) -> TriggerSignal | None:
        return self.triggers.get(name)

    def as_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "timestamp": self.timestamp,
            "user": None if self.user is None else copy.deepcopy(dict(self.user)),
            "custom": None if self.custom is None else copy.deepcopy(dict(self.custom)),
            "triggers": {name: sig.as_dict() for name, sig in self.triggers.items()},
        }
