from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

from experiences.core.config import ExperiencesConfig, parse_config
from experiences.features.decisions.types import Decision
from experiences.features.runtime.service import ExperienceRuntime
from experiences.features.runtime.types import RuntimeState
from experiences.features.targeting.types import Experience


def create_instance(
    config: ExperiencesConfig | Mapping[str, Any] | None = None, **kwargs: Any
) -> ExperienceRuntime:
    """
    Isolated runtime. kwargs are passed through (clock, page, environment, storage).
    """
    if config is not None and not isinstance(config, ExperiencesConfig):
        config = parse_config(dict(config))
    return ExperienceRuntime(config, **kwargs)


_default: ExperienceRuntime | None = None


def default_instance() -> ExperienceRuntime:
    global _default
    if _default is None:
        _default = create_instance()
    return _default


def init(config: ExperiencesConfig | Mapping[str, Any] | None = None) -> ExperienceRuntime:
    """
    Initializes the default runtime. A config replaces the default runtime
    unless it is already initialized.
    """
    global _default
    if config is not None and (_default is None or not _default.initialized):
        _default = create_instance(config)
    runtime = default_instance()
    runtime.init()
    return runtime


def register(experience_id: str, definition: Mapping[str, Any] | Experience) -> Experience:
    return default_instance().register(experience_id, definition)


def evaluate(context: Mapping[str, Any] | None = None) -> Decision:
    return default_instance().evaluate(context)


def evaluate_all(context: Mapping[str, Any] | None = None) -> list[Decision]:
    return default_instance().evaluate_all(context)


def explain(experience_id: str) -> Decision | None:
    return default_instance().explain(experience_id)


def get_state() -> RuntimeState:
    return default_instance().get_state()


def on(event_name: str, handler: Callable[[Any], None]) -> Callable[[], None]:
    return default_instance().on(event_name, handler)


def destroy() -> None:
    default_instance().destroy()
