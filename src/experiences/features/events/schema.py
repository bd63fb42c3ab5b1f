from __future__ import annotations

READY = "experiences:ready"
REGISTERED = "experiences:registered"
EVALUATED = "experiences:evaluated"
DECISION_RECORDED = "experiences:decision-recorded"
IMPRESSION_RECORDED = "experiences:impression-recorded"
DESTROYED = "experiences:destroyed"

ALLOWED_EVENT_NAMES: set[str] = {
    READY,
    REGISTERED,
    EVALUATED,
    DECISION_RECORDED,
    IMPRESSION_RECORDED,
    DESTROYED,
}

# trigger:<name> is re-emitted for every merged trigger signal
TRIGGER_EVENT_PREFIX = "trigger:"


def is_allowed(event_name: str) -> bool:
    if event_name in ALLOWED_EVENT_NAMES:
        return True
    return event_name.startswith(TRIGGER_EVENT_PREFIX) and len(event_name) > len(
        TRIGGER_EVENT_PREFIX
    )


def trigger_event(name: str) -> str:
    return f"{TRIGGER_EVENT_PREFIX}{name}"
