from __future__ import annotations


def test_defaults_come_from_caller():
    from experiences.features.context.service import build_context
    from experiences.features.triggers.types import TriggerSignal

    triggers = {"exit_intent": TriggerSignal(name="exit_intent", triggered=True, timestamp=5)}
    ctx = build_context(None, now_ms=1_000, default_url="https://shop.test/", triggers=triggers)

    assert ctx.url == "https://shop.test/"
    assert ctx.timestamp == 1_000
    assert ctx.user is None
    assert ctx.trigger("exit_intent").triggered

    # the snapshot is a copy of the cumulative map
    triggers["time_delay"] = TriggerSignal(name="time_delay", triggered=True)
    assert ctx.trigger("time_delay") is None


def test_partial_values_override_defaults():
    from experiences.features.context.service import build_context
    from experiences.features.triggers.types import TriggerSignal

    cumulative = {"exit_intent": TriggerSignal(name="exit_intent", triggered=True)}
    ctx = build_context(
        {
            "url": "https://shop.test/products/9",
            "timestamp": 42,
            "user": {"plan": "pro"},
            "triggers": {"scroll_depth": {"triggered": True, "threshold": 50}},
        },
        now_ms=1_000,
        triggers=cumulative,
    )

    assert ctx.url == "https://shop.test/products/9"
    assert ctx.timestamp == 42
    assert ctx.user["plan"] == "pro"
    # supplied triggers replace the cumulative map
    assert ctx.trigger("exit_intent") is None
    assert ctx.trigger("scroll_depth").get("threshold") == 50


def test_bags_are_frozen_copies():
    from experiences.features.context.service import build_context

    user = {"tags": ["a"]}
    ctx = build_context({"user": user}, now_ms=0)
    user["tags"].append("b")

    assert ctx.user["tags"] == ["a"]
    assert ctx.as_dict()["user"] == {"tags": ["a"]}
