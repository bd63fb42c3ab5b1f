from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from experiences.core.config import ExperiencesConfig
from experiences.features.decisions.types import Decision
from experiences.features.targeting.types import Experience


class Lifecycle(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    DESTROYED = "destroyed"


@dataclass(frozen=True)
class RuntimeState:
    """
    Inspection snapshot. Containers are copies; mutating them does not
    affect the runtime.
    """

    initialized: bool
    experiences: dict[str, Experience] = field(default_factory=dict)
    decisions: list[Decision] = field(default_factory=list)
    config: ExperiencesConfig = field(default_factory=ExperiencesConfig)
    triggers: dict[str, dict[str, Any]] = field(default_factory=dict)
