from __future__ import annotations

import pytest


def test_dispatch_reaches_listeners_in_order():
    from experiences.features.page_events.service import PageEventSource
    from experiences.features.page_events.types import SCROLL, ScrollMetrics

    page = PageEventSource()
    seen: list[tuple[str, float]] = []

    page.add_listener(SCROLL, lambda e: seen.append(("a", e.scroll_top)))
    page.add_listener(SCROLL, lambda e: seen.append(("b", e.scroll_top)))

    page.dispatch(SCROLL, ScrollMetrics(scroll_top=10, scroll_height=1000, client_height=500))
    assert seen == [("a", 10), ("b", 10)]


def test_unknown_event_type_raises():
    from experiences.features.page_events.service import PageEventSource

    page = PageEventSource()
    with pytest.raises(ValueError):
        page.add_listener("click", lambda e: None)


def test_remove_listener_is_idempotent_and_no_duplicates():
    from experiences.features.page_events.service import PageEventSource
    from experiences.features.page_events.types import RESIZE

    page = PageEventSource()
    calls: list[object] = []

    page.add_listener(RESIZE, calls.append)
    page.add_listener(RESIZE, calls.append)
    assert page.listener_count(RESIZE) == 1

    page.remove_listener(RESIZE, calls.append)
    page.remove_listener(RESIZE, calls.append)
    assert page.listener_count() == 0


def test_listener_may_detach_itself_while_dispatching():
    from experiences.features.page_events.service import PageEventSource
    from experiences.features.page_events.types import POINTER_LEAVE, PointerLeave

    page = PageEventSource()
    seen: list[str] = []

    def once(event):
        seen.append("once")
        page.remove_listener(POINTER_LEAVE, once)

    page.add_listener(POINTER_LEAVE, once)
    page.add_listener(POINTER_LEAVE, lambda e: seen.append("always"))

    page.dispatch(POINTER_LEAVE, PointerLeave())
    page.dispatch(POINTER_LEAVE, PointerLeave())
    assert seen == ["once", "always", "always"]


def test_pointer_leave_document_targets():
    from experiences.features.page_events.types import PointerLeave

    assert PointerLeave(None).leaves_document
    assert PointerLeave("html").leaves_document
    assert PointerLeave("HTML").leaves_document
    assert not PointerLeave("DIV").leaves_document


def test_device_detection():
    from experiences.features.page_events.types import PageEnvironment

    iphone = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X)"
    ipad = "Mozilla/5.0 (iPad; CPU OS 17_0 like Mac OS X)"

    assert PageEnvironment(viewport_width=375).device() == "mobile"
    assert PageEnvironment(viewport_width=800).device() == "tablet"
    assert PageEnvironment(viewport_width=1440).device() == "desktop"
    assert PageEnvironment(viewport_width=1440, user_agent=iphone).device() == "mobile"
    assert PageEnvironment(viewport_width=1440, user_agent=ipad).device() == "tablet"

    assert PageEnvironment(user_agent=iphone).is_mobile()
    assert not PageEnvironment(user_agent="Mozilla/5.0 (X11; Linux x86_64)").is_mobile()
