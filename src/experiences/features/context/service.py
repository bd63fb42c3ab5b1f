from __future__ import annotations

import copy
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from experiences.features.triggers.types import TriggerSignal

from .types import Context, PartialContext


def _frozen_bag(bag: Mapping[str, Any] | None) -> Mapping[str, Any] | None:
    if bag is None:
        return None
    return MappingProxyType(copy.deepcopy(dict(bag)))


def _as_signal(name: str, value: TriggerSignal | Mapping[str, Any]) -> TriggerSignal:
    if isinstance(value, TriggerSignal):
        return value
    data = dict(value)
    triggered = bool(data.pop("triggered", False))
    return TriggerSignal(name=name).merged({**data, "triggered": triggered})


def build_context(
    partial: PartialContext | Mapping[str, Any] | None = None,
    *,
    now_ms: int,
    default_url: str = "",
    triggers: Mapping[str, TriggerSignal] | None = None,
) -> Context:
    """
    Assembles an immutable Context from partial input.

    Defaults: url -> default_url (the current page), timestamp -> now_ms,
    triggers -> the caller's cumulative trigger map (copied, not shared).
    No side effects.
    """
    partial = partial or {}

    url = partial.get("url")
    timestamp = partial.get("timestamp")

    source = partial.get("triggers")
    if source is None:
        source = triggers or {}
    snapshot = {name: _as_signal(name, value) for name, value in source.items()}

    return Context(
        url=default_url if url is None else str(url),
        timestamp=now_ms if timestamp is None else int(timestamp),
        user=_frozen_bag(partial.get("user")),
        custom=_frozen_bag(partial.get("custom")),
        triggers=MappingProxyType(snapshot),
    )
