from __future__ import annotations

import pytest


def test_emit_delivers_payload_and_unsubscribe_works():
    from experiences.features.events import schema as ev
    from experiences.features.events.service import EventEmitter

    emitter = EventEmitter()
    seen: list[dict] = []

    unsubscribe = emitter.on(ev.REGISTERED, seen.append)
    emitter.emit(ev.REGISTERED, {"id": "a"})
    unsubscribe()
    emitter.emit(ev.REGISTERED, {"id": "b"})

    assert seen == [{"id": "a"}]
    assert emitter.handler_count(ev.REGISTERED) == 0


def test_unknown_event_name_raises():
    from experiences.features.events.service import EventEmitter

    emitter = EventEmitter()
    with pytest.raises(ValueError):
        emitter.emit("experiences:unknown")
    with pytest.raises(ValueError):
        emitter.emit("trigger:")


def test_trigger_events_are_allowed():
    from experiences.features.events.schema import is_allowed, trigger_event

    assert trigger_event("exit_intent") == "trigger:exit_intent"
    assert is_allowed("trigger:exit_intent")
    assert is_allowed("experiences:ready")
    assert not is_allowed("ready")


def test_failing_handler_does_not_stop_delivery():
    from experiences.features.events import schema as ev
    from experiences.features.events.service import EventEmitter

    emitter = EventEmitter()
    seen: list[str] = []

    def broken(payload):
        raise RuntimeError("observer bug")

    emitter.on(ev.EVALUATED, broken)
    emitter.on(ev.EVALUATED, lambda p: seen.append("ok"))

    emitter.emit(ev.EVALUATED, {})
    assert seen == ["ok"]


def test_clear_removes_all_handlers():
    from experiences.features.events import schema as ev
    from experiences.features.events.service import EventEmitter

    emitter = EventEmitter()
    emitter.on(ev.READY, lambda p: None)
    emitter.on(ev.DESTROYED, lambda p: None)
    emitter.clear()

    assert emitter.handler_count(ev.READY) == 0
    assert emitter.handler_count(ev.DESTROYED) == 0
