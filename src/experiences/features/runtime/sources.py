from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from experiences.core.clock import Clock
from experiences.core.config import ExperiencesConfig
from experiences.features.exit_intent.service import ExitIntentSource
from experiences.features.exit_intent.types import ExitIntentConfig
from experiences.features.frequency.types import FrequencySettings
from experiences.features.page_events.service import PageEventSource
from experiences.features.page_events.types import PageEnvironment
from experiences.features.page_visits.service import PageVisitsSource
from experiences.features.page_visits.types import PageVisitsConfig
from experiences.features.persistence.service import StorageBackends
from experiences.features.scroll_depth.service import ScrollDepthSource
from experiences.features.scroll_depth.types import ScrollDepthConfig
from experiences.features.time_delay.service import TimeDelaySource
from experiences.features.time_delay.types import TimeDelayConfig
from experiences.features.triggers.service import TriggerBus
from experiences.features.triggers.types import TriggerSource

# Each section is optional; an absent section yields the dataclass defaults.


def _check_keys(name: str, raw: Mapping[str, Any], allowed: set[str]) -> None:
    unknown = set(raw) - allowed
    if unknown:
        raise ValueError(f"{name} has unknown keys {sorted(unknown)}. Allowed={sorted(allowed)}")


def parse_frequency_settings(raw: Mapping[str, Any] | None) -> FrequencySettings:
    raw = raw or {}
    _check_keys("frequency", raw, {"enabled", "namespace"})
    d = FrequencySettings()
    return FrequencySettings(
        enabled=bool(raw.get("enabled", d.enabled)),
        namespace=str(raw.get("namespace", d.namespace)),
    )


def parse_exit_intent(raw: Mapping[str, Any] | None) -> ExitIntentConfig:
    raw = raw or {}
    d = ExitIntentConfig()
    _check_keys(
        "exit_intent",
        raw,
        {
            "enabled",
            "sensitivity",
            "min_time_on_page_ms",
            "delay_ms",
            "position_history_size",
            "disable_on_mobile",
        },
    )
    history = int(raw.get("position_history_size", d.position_history_size))
    if history < 2:
        raise ValueError("exit_intent.position_history_size must be >= 2")
    return ExitIntentConfig(
        enabled=bool(raw.get("enabled", d.enabled)),
        sensitivity=float(raw.get("sensitivity", d.sensitivity)),
        min_time_on_page_ms=float(raw.get("min_time_on_page_ms", d.min_time_on_page_ms)),
        delay_ms=float(raw.get("delay_ms", d.delay_ms)),
        position_history_size=history,
        disable_on_mobile=bool(raw.get("disable_on_mobile", d.disable_on_mobile)),
    )


def parse_scroll_depth(raw: Mapping[str, Any] | None) -> ScrollDepthConfig:
    raw = raw or {}
    d = ScrollDepthConfig()
    _check_keys(
        "scroll_depth",
        raw,
        {
            "enabled",
            "thresholds",
            "throttle_ms",
            "include_viewport_height",
            "recalculate_on_resize",
            "track_advanced_metrics",
            "fast_scroll_velocity_threshold",
            "disable_on_mobile",
            "velocity_window",
        },
    )
    thresholds = tuple(float(t) for t in raw.get("thresholds", d.thresholds))
    if not thresholds or any(t < 0 or t > 100 for t in thresholds):
        raise ValueError("scroll_depth.thresholds must be a non-empty list of percentages 0..100")
    return ScrollDepthConfig(
        enabled=bool(raw.get("enabled", d.enabled)),
        thresholds=thresholds,
        throttle_ms=float(raw.get("throttle_ms", d.throttle_ms)),
        include_viewport_height=bool(raw.get("include_viewport_height", d.include_viewport_height)),
        recalculate_on_resize=bool(raw.get("recalculate_on_resize", d.recalculate_on_resize)),
        track_advanced_metrics=bool(raw.get("track_advanced_metrics", d.track_advanced_metrics)),
        fast_scroll_velocity_threshold=float(
            raw.get("fast_scroll_velocity_threshold", d.fast_scroll_velocity_threshold)
        ),
        disable_on_mobile=bool(raw.get("disable_on_mobile", d.disable_on_mobile)),
        velocity_window=int(raw.get("velocity_window", d.velocity_window)),
    )


def parse_time_delay(raw: Mapping[str, Any] | None) -> TimeDelayConfig:
    raw = raw or {}
    d = TimeDelayConfig()
    _check_keys("time_delay", raw, {"enabled", "delay_ms", "pause_when_hidden"})
    delay_ms = float(raw.get("delay_ms", d.delay_ms))
    if delay_ms < 0:
        raise ValueError("time_delay.delay_ms must be >= 0")
    return TimeDelayConfig(
        enabled=bool(raw.get("enabled", d.enabled)),
        delay_ms=delay_ms,
        pause_when_hidden=bool(raw.get("pause_when_hidden", d.pause_when_hidden)),
    )


def parse_page_visits(raw: Mapping[str, Any] | None) -> PageVisitsConfig:
    raw = raw or {}
    d = PageVisitsConfig()
    _check_keys(
        "page_visits",
        raw,
        {"enabled", "respect_dnt", "session_key", "total_key", "ttl_s", "auto_increment"},
    )
    ttl_s = raw.get("ttl_s", d.ttl_s)
    return PageVisitsConfig(
        enabled=bool(raw.get("enabled", d.enabled)),
        respect_dnt=bool(raw.get("respect_dnt", d.respect_dnt)),
        session_key=str(raw.get("session_key", d.session_key)),
        total_key=str(raw.get("total_key", d.total_key)),
        ttl_s=None if ttl_s is None else float(ttl_s),
        auto_increment=bool(raw.get("auto_increment", d.auto_increment)),
    )


def build_sources(
    *,
    config: ExperiencesConfig,
    bus: TriggerBus,
    clock: Clock,
    page: PageEventSource,
    environment: PageEnvironment,
    storage: StorageBackends,
) -> list[TriggerSource]:
    """
    Builds the four built-in trigger sources (not started). Sources whose
    config sets enabled: false are left out.
    """
    exit_cfg = parse_exit_intent(config.section("exit_intent"))
    scroll_cfg = parse_scroll_depth(config.section("scroll_depth"))
    delay_cfg = parse_time_delay(config.section("time_delay"))
    visits_cfg = parse_page_visits(config.section("page_visits"))

    sources: list[TriggerSource] = []
    if exit_cfg.enabled:
        sources.append(
            ExitIntentSource(
                bus=bus,
                clock=clock,
                page=page,
                environment=environment,
                session_store=storage.session,
                cfg=exit_cfg,
            )
        )
    if scroll_cfg.enabled:
        sources.append(
            ScrollDepthSource(bus=bus, clock=clock, page=page, environment=environment, cfg=scroll_cfg)
        )
    if delay_cfg.enabled:
        sources.append(
            TimeDelaySource(bus=bus, clock=clock, page=page, environment=environment, cfg=delay_cfg)
        )
    if visits_cfg.enabled:
        sources.append(
            PageVisitsSource(
                bus=bus,
                clock=clock,
                environment=environment,
                session_store=storage.session,
                local_store=storage.local,
                cfg=visits_cfg,
            )
        )
    return sources
