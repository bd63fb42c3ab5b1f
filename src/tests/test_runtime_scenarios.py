from __future__ import annotations

import pytest


def _runtime(cfg=None, **kwargs):
    from experiences.core.clock import Clock
    from experiences.core.config import parse_config
    from experiences.features.runtime.service import ExperienceRuntime

    return ExperienceRuntime(
        parse_config(cfg), clock=Clock.simulated(start_ms=1_767_225_600_000), **kwargs
    )


def test_products_banner_is_capped_per_session():
    rt = _runtime()
    rt.register(
        "products-banner",
        {
            "kind": "banner",
            "targeting": {"url": {"contains": "/products"}},
            "content": {"title": "Free shipping"},
            "frequency": {"max": 1, "per": "session"},
        },
    )
    ctx = {"url": "https://shop.test/products/9"}

    first = rt.evaluate(ctx)
    assert first.show
    assert first.experience_id == "products-banner"
    assert rt.ledger.get_impression_count("products-banner", "session") == 1

    second = rt.evaluate(ctx)
    assert not second.show
    assert second.experience_id is None
    assert any(r.startswith("Frequency cap reached") for r in second.reasons)
    assert rt.ledger.get_impression_count("products-banner", "session") == 1


def test_evaluate_all_orders_by_priority_stably():
    rt = _runtime()
    rt.register("A", {"kind": "banner", "priority": 5})
    rt.register("B", {"kind": "banner", "priority": 1})
    rt.register("C", {"kind": "banner", "priority": 5})

    assert [d.experience_id for d in rt.evaluate_all()] == ["A", "C", "B"]


@pytest.mark.parametrize("k", [1, 2, 5])
def test_day_window_cap_boundary(k):
    rt = _runtime()
    for _ in range(k):
        rt.ledger.record_impression("exp", "day")
        rt.clock.advance(60 * 60 * 1000)

    assert rt.ledger.has_reached_cap("exp", k, "day")
    assert not rt.ledger.has_reached_cap("exp", k + 1, "day")


def test_explain_never_mutates_history_or_counts():
    rt = _runtime()
    rt.register("a", {"kind": "banner", "frequency": {"max": 3, "per": "session"}})
    rt.evaluate()

    before_history = len(rt.get_state().decisions)
    before_count = rt.ledger.get_impression_count("a", "session")

    for _ in range(3):
        assert rt.explain("a") is not None

    assert len(rt.get_state().decisions) == before_history
    assert rt.ledger.get_impression_count("a", "session") == before_count


def test_scroll_to_73_percent_shows_only_the_50_threshold_experience():
    from experiences.features.page_events.types import SCROLL, ScrollMetrics

    rt = _runtime({"page_visits": {"enabled": False}, "scroll_depth": {"throttle_ms": 0}})
    rt.register(
        "at-50", {"kind": "tooltip", "targeting": {"trigger": {"name": "scroll_depth", "threshold": 50}}}
    )
    rt.register(
        "at-75", {"kind": "tooltip", "targeting": {"trigger": {"name": "scroll_depth", "threshold": 75}}}
    )
    fired: list[float] = []
    rt.on("trigger:scroll_depth", lambda p: fired.append(p["threshold"]))
    rt.init()

    rt.page.dispatch(SCROLL, ScrollMetrics(scroll_top=530, scroll_height=1000, client_height=200))

    assert fired == [25.0, 50.0]
    signal = rt.get_triggers()["scroll_depth"]
    assert signal.get("thresholds_crossed") == [25.0, 50.0]

    shown = [d.experience_id for d in rt.get_state().decisions if d.show]
    assert shown == ["at-50"]

    # one re-evaluation pass per published signal
    assert len(rt.get_state().decisions) == 4


def test_exit_intent_flow_and_downward_exit():
    from experiences.features.page_events.types import (
        POINTER_LEAVE,
        POINTER_MOVE,
        PointerLeave,
        PointerMove,
    )

    rt = _runtime({"page_visits": {"enabled": False}})
    rt.register(
        "exit-modal",
        {
            "kind": "modal",
            "targeting": {"url": {"contains": "/pricing"}, "trigger": "exit_intent"},
            "frequency": {"max": 1, "per": "session"},
        },
    )
    rt.init()

    page = rt.page
    rt.clock.advance(3_000)

    # moving down toward the bottom then leaving: never fires
    for y in (100, 300, 500):
        page.dispatch(POINTER_MOVE, PointerMove(x=10, y=y))
    page.dispatch(POINTER_LEAVE, PointerLeave())
    assert rt.get_state().decisions == []
    assert rt.explain("exit-modal", {"url": "https://shop.test/pricing"}).reasons[-1] == (
        "Waiting for trigger: exit_intent"
    )

    for y in (400, 120, 20):
        page.dispatch(POINTER_MOVE, PointerMove(x=10, y=y))
    page.dispatch(POINTER_LEAVE, PointerLeave())

    # the re-evaluation pass uses the page url; pricing is not the current page
    decisions = rt.get_state().decisions
    assert len(decisions) == 1
    assert not decisions[0].show

    # explicit evaluation on the pricing page sees the cumulative trigger
    decision = rt.evaluate({"url": "https://shop.test/pricing"})
    assert decision.show
    assert decision.context.trigger("exit_intent").get("velocity") == 100
    assert not rt.evaluate({"url": "https://shop.test/pricing"}).show


def test_burst_of_signals_yields_one_pass_each_in_order():
    rt = _runtime({"page_visits": {"enabled": False}})
    rt.register("a", {"kind": "banner", "targeting": {"trigger": "custom"}})
    rt.init()

    seen: list[int] = []
    rt.on("trigger:custom", lambda p: seen.append(p["n"]))
    for n in range(3):
        rt.bus.publish("custom", {"n": n})

    assert seen == [0, 1, 2]
    decisions = rt.get_state().decisions
    assert len(decisions) == 3
    assert [d.context.trigger("custom").get("n") for d in decisions] == [0, 1, 2]


def test_signals_after_destroy_never_reach_the_runtime():
    rt = _runtime({"page_visits": {"enabled": False}, "time_delay": {"delay_ms": 1_000}})
    rt.register("a", {"kind": "banner", "targeting": {"trigger": "time_delay"}})
    rt.init()
    bus = rt.bus

    rt.destroy()
    rt.clock.advance(5_000)

    assert bus.publish("time_delay", {}) is False
    assert rt.get_state().decisions == []
