from __future__ import annotations

import pytest


def test_build_from_yaml_structure():
    from experiences.features.targeting.factory import ExperienceFactory
    from experiences.features.targeting.types import ExperienceKind

    exps = ExperienceFactory().build(
        {
            "welcome": {
                "kind": "banner",
                "priority": 5,
                "targeting": {
                    "url": {"contains": "/products"},
                    "trigger": {"name": "scroll_depth", "threshold": 50},
                },
                "content": {"title": "Hi"},
                "frequency": {"max": 2, "per": "day"},
            },
            "exit": {"type": "modal", "targeting": {"trigger": "exit_intent"}},
        }
    )

    assert [e.id for e in exps] == ["welcome", "exit"]
    welcome, exit_ = exps

    assert welcome.kind is ExperienceKind.BANNER
    assert welcome.priority == 5
    assert welcome.targeting.url.contains == "/products"
    assert welcome.targeting.trigger.threshold == 50.0
    assert welcome.frequency.max == 2
    assert welcome.frequency.per == "day"
    assert welcome.content["title"] == "Hi"

    assert exit_.kind is ExperienceKind.MODAL
    assert exit_.priority == 0
    assert exit_.frequency is None
    assert exit_.targeting.trigger.name == "exit_intent"
    assert exit_.targeting.trigger.threshold is None


def test_parse_accepts_callable_custom_predicate():
    from experiences.features.targeting.factory import ExperienceFactory

    def is_pro(ctx):
        return (ctx.user or {}).get("plan") == "pro"

    exp = ExperienceFactory().parse("pro", {"kind": "inline", "targeting": {"custom": is_pro}})
    assert exp.targeting.custom is is_pro


def test_errors_carry_dotted_paths():
    from experiences.features.targeting.factory import ExperienceFactory

    factory = ExperienceFactory()

    with pytest.raises(ValueError, match=r"experiences\.a\.kind"):
        factory.parse("a", {"kind": "popup"})

    with pytest.raises(ValueError, match=r"experiences\.b\.kind is required"):
        factory.parse("b", {})

    with pytest.raises(ValueError, match=r"experiences\.c\.frequency"):
        factory.parse("c", {"kind": "banner", "frequency": {"max": 1, "per": "month"}})

    with pytest.raises(ValueError, match=r"experiences\.d\.targeting\.url"):
        factory.parse("d", {"kind": "banner", "targeting": {"url": {"startsWith": "/"}}})

    with pytest.raises(TypeError, match=r"experiences\.e\.targeting\.custom"):
        factory.parse("e", {"kind": "banner", "targeting": {"custom": "not callable"}})


def test_non_mapping_root_raises():
    from experiences.features.targeting.factory import ExperienceFactory

    with pytest.raises(TypeError):
        ExperienceFactory().build(["a", "b"])
    assert ExperienceFactory().build(None) == []
