from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any

from .types import (
    DisplayTrigger,
    Experience,
    ExperienceKind,
    FrequencyConfig,
    Targeting,
    UrlRule,
)


@dataclass(frozen=True)
class ExperienceFactory:
    """
    Builds Experience objects from the YAML/dict structure:

    experiences:
      welcome-banner:
        kind: banner
        priority: 5
        targeting:
          url: {contains: "/products"}
          trigger: {name: scroll_depth, threshold: 50}
        content: {title: "Hi"}
        frequency: {max: 1, per: session}

    Python callers may also pass ``targeting.custom`` as a callable and
    ``targeting.url.matches`` as a compiled pattern.
    """

    def build(self, cfg_experiences: Mapping[str, Any] | None) -> list[Experience]:
        cfg = cfg_experiences or {}
        if not isinstance(cfg, Mapping):
            raise TypeError("experiences must be a mapping/dict of id -> definition")
        return [self.parse(exp_id, definition) for exp_id, definition in cfg.items()]

    def parse(self, experience_id: str, definition: Mapping[str, Any] | Experience) -> Experience:
        if not isinstance(experience_id, str):
            raise TypeError("experience id must be a string")

        if isinstance(definition, Experience):
            return replace(definition, id=experience_id)

        path = f"experiences.{experience_id}"
        if not isinstance(definition, Mapping):
            raise TypeError(f"{path} must be a mapping/dict")

        kind_raw = definition.get("kind", definition.get("type"))
        if kind_raw is None:
            raise ValueError(f"{path}.kind is required")
        try:
            kind = ExperienceKind(str(kind_raw).strip().lower())
        except ValueError as e:
            allowed = sorted(k.value for k in ExperienceKind)
            raise ValueError(f"{path}.kind must be one of {allowed}, got {kind_raw!r}") from e

        content = definition.get("content") or {}
        if not isinstance(content, Mapping):
            raise TypeError(f"{path}.content must be a mapping/dict")

        priority_raw = definition.get("priority", 0)
        try:
            priority = int(priority_raw)
        except (TypeError, ValueError) as e:
            raise TypeError(f"{path}.priority must be an integer") from e

        return Experience(
            id=experience_id,
            kind=kind,
            targeting=self._parse_targeting(path, definition.get("targeting")),
            content=MappingProxyType(dict(content)),
            frequency=self._parse_frequency(path, definition.get("frequency")),
            priority=priority,
        )

    @staticmethod
    def _parse_targeting(path: str, raw: Any) -> Targeting:
        if raw is None:
            return Targeting()
        if isinstance(raw, Targeting):
            return raw
        if not isinstance(raw, Mapping):
            raise TypeError(f"{path}.targeting must be a mapping/dict")

        url: UrlRule | None = None
        url_raw = raw.get("url")
        if isinstance(url_raw, UrlRule):
            url = url_raw
        elif url_raw is not None:
            if not isinstance(url_raw, Mapping):
                raise TypeError(f"{path}.targeting.url must be a mapping/dict")
            unknown = set(url_raw) - {"equals", "contains", "matches"}
            if unknown:
                raise ValueError(f"{path}.targeting.url has unknown keys {sorted(unknown)}")
            matches = url_raw.get("matches")
            if matches is not None and not isinstance(matches, str | re.Pattern):
                raise TypeError(f"{path}.targeting.url.matches must be a string or pattern")
            url = UrlRule(
                equals=None if url_raw.get("equals") is None else str(url_raw["equals"]),
                contains=None if url_raw.get("contains") is None else str(url_raw["contains"]),
                matches=matches,
            )

        custom = raw.get("custom")
        if custom is not None and not callable(custom):
            raise TypeError(f"{path}.targeting.custom must be callable")

        trigger: DisplayTrigger | None = None
        trigger_raw = raw.get("trigger")
        if isinstance(trigger_raw, DisplayTrigger):
            trigger = trigger_raw
        elif isinstance(trigger_raw, str):
            trigger = DisplayTrigger(name=trigger_raw)
        elif trigger_raw is not None:
            if not isinstance(trigger_raw, Mapping) or not trigger_raw.get("name"):
                raise TypeError(f"{path}.targeting.trigger must be a name or {{name, threshold}}")
            threshold = trigger_raw.get("threshold")
            try:
                threshold_f = None if threshold is None else float(threshold)
            except (TypeError, ValueError) as e:
                raise TypeError(f"{path}.targeting.trigger.threshold must be numeric") from e
            trigger = DisplayTrigger(name=str(trigger_raw["name"]), threshold=threshold_f)

        return Targeting(url=url, custom=custom, trigger=trigger)

    @staticmethod
    def _parse_frequency(path: str, raw: Any) -> FrequencyConfig | None:
        if raw is None:
            return None
        if isinstance(raw, FrequencyConfig):
            return raw
        if not isinstance(raw, Mapping) or "max" not in raw:
            raise TypeError(f"{path}.frequency must be a mapping with 'max' and 'per'")
        try:
            max_n = int(raw["max"])
        except (TypeError, ValueError) as e:
            raise TypeError(f"{path}.frequency.max must be an integer") from e
        per = str(raw.get("per", "session")).strip().lower()
        try:
            return FrequencyConfig(max=max_n, per=per)  # type: ignore[arg-type]
        except ValueError as e:
            raise ValueError(f"{path}.{e}") from e
