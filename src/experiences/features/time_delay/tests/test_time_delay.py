from __future__ import annotations


class Collector:
    def __init__(self) -> None:
        self.signals: list[dict] = []

    def __call__(self, name, payload) -> None:
        self.signals.append(dict(payload))


def _source(*, hidden_at_load: bool = False, **cfg):
    from experiences.core.clock import Clock
    from experiences.features.page_events.service import PageEventSource
    from experiences.features.page_events.types import PageEnvironment
    from experiences.features.time_delay.service import TimeDelaySource
    from experiences.features.time_delay.types import TimeDelayConfig
    from experiences.features.triggers.service import TriggerBus

    clock = Clock.simulated(start_ms=0)
    bus = TriggerBus()
    collector = Collector()
    bus.subscribe("time_delay", collector)
    page = PageEventSource()
    src = TimeDelaySource(
        bus=bus,
        clock=clock,
        page=page,
        environment=PageEnvironment(hidden_at_load=hidden_at_load),
        cfg=TimeDelayConfig(**cfg),
    )
    return clock, page, src, collector


def _visibility(page, hidden: bool) -> None:
    from experiences.features.page_events.types import VISIBILITY_CHANGE, VisibilityChange

    page.dispatch(VISIBILITY_CHANGE, VisibilityChange(hidden=hidden))


def test_fires_once_after_delay():
    clock, page, src, collector = _source(delay_ms=1_000)
    src.start()

    clock.advance(999)
    assert collector.signals == []
    assert src.get_remaining() == 1

    clock.advance(1)
    assert src.is_triggered()
    assert collector.signals == [
        {
            "triggered": True,
            "timestamp": 1_000,
            "elapsed": 1_000,
            "active_elapsed": 1_000,
            "was_paused": False,
            "visibility_changes": 0,
        }
    ]
    assert src.get_remaining() == 0

    clock.advance(5_000)
    assert len(collector.signals) == 1


def test_zero_delay_is_disabled():
    clock, page, src, collector = _source(delay_ms=0)
    src.start()

    clock.advance(10_000)
    assert src.state.value == "idle"
    assert collector.signals == []


def test_hidden_time_does_not_count():
    clock, page, src, collector = _source(delay_ms=1_000)
    src.start()

    clock.advance(400)
    _visibility(page, hidden=True)
    assert src.is_paused()

    clock.advance(5_000)
    assert collector.signals == []
    assert src.get_elapsed() == 5_400
    assert src.get_active_elapsed() == 400
    assert src.get_remaining() == 600

    _visibility(page, hidden=False)
    assert not src.is_paused()
    clock.advance(599)
    assert collector.signals == []

    clock.advance(1)
    payload = collector.signals[0]
    assert payload["elapsed"] == 6_000
    assert payload["active_elapsed"] == 1_000
    assert payload["was_paused"] is True
    assert payload["visibility_changes"] == 2


def test_pause_disabled_counts_wall_time():
    clock, page, src, collector = _source(delay_ms=1_000, pause_when_hidden=False)
    src.start()

    _visibility(page, hidden=True)
    clock.advance(1_000)
    assert src.is_triggered()


def test_starting_hidden_starts_paused():
    clock, page, src, collector = _source(delay_ms=1_000, hidden_at_load=True)
    src.start()
    assert src.is_paused()

    clock.advance(3_000)
    assert collector.signals == []

    _visibility(page, hidden=False)
    clock.advance(1_000)
    assert collector.signals[0]["active_elapsed"] == 1_000
    assert collector.signals[0]["elapsed"] == 4_000


def test_destroy_cancels_timer_and_listener():
    clock, page, src, collector = _source(delay_ms=1_000)
    src.start()
    src.destroy()

    clock.advance(2_000)
    assert collector.signals == []
    assert page.listener_count() == 0


def test_reset_restarts_the_timer():
    clock, page, src, collector = _source(delay_ms=1_000)
    src.start()

    clock.advance(1_000)
    assert src.is_triggered()

    src.reset()
    assert src.state.value == "armed"
    assert src.get_elapsed() == 0

    clock.advance(1_000)
    assert len(collector.signals) == 2
