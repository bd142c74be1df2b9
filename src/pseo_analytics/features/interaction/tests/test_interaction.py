from __future__ import annotations

import pytest
import simpy

from pseo_analytics.core.types import PageContext
from pseo_analytics.features.interaction.service import (
    PAGE_VIEW_EVENT,
    ContentAnalytics,
    PageTracker,
    QuestionCard,
    ViewOnceState,
    track_page_view,
)
from pseo_analytics.features.platform.service import SimPlatform
from pseo_analytics.features.timing.service import Debouncer
from pseo_analytics.features.transport.schema import AnalyticsContext
from pseo_analytics.features.transport.service import EventTransport

CTX = AnalyticsContext(industry_slug="healthcare", stage_slug="seed")
PAGE = PageContext(industry="healthcare", stage="seed")


def setup(**kw) -> tuple[simpy.Environment, SimPlatform, ContentAnalytics]:
    env = simpy.Environment()
    host = SimPlatform(env=env, pathname=PAGE.path, **kw)
    analytics = ContentAnalytics(CTX, EventTransport(platform=host))
    return env, host, analytics


def sent_types(host: SimPlatform) -> list[str]:
    return [payload["eventType"] for _, payload in host.beacons]


def card(host: SimPlatform, analytics: ContentAnalytics, **kw) -> QuestionCard:
    return QuestionCard(
        category="Unit Economics",
        question="What is your CAC payback?",
        answer="Eleven months on blended spend.",
        analytics=analytics,
        platform=host,
        **kw,
    )


@pytest.mark.parametrize("value", [0, 6, -1, 5.5, 4.5, 3.0, "4", True])
def test_invalid_ratings_never_reach_transport(value) -> None:
    _, host, analytics = setup()
    assert analytics.track_rating(value) is False
    assert host.beacons == []


def test_view_once_guard_is_owned_by_caller() -> None:
    _, host, analytics = setup()
    state = ViewOnceState()

    assert analytics.track_view_once(state, "Team")
    assert not analytics.track_view_once(state, "Team")
    # a different owner/state sends again
    assert analytics.track_view_once(ViewOnceState(), "Team")

    assert sent_types(host) == ["view", "view"]


def test_expansion_and_copy_events_carry_category() -> None:
    _, host, analytics = setup()
    analytics.track_expansion("Market")
    analytics.track_copy("Market")
    assert sent_types(host) == ["expansion", "copy"]
    assert all(p["category"] == "Market" for _, p in host.beacons)


def test_standalone_page_view() -> None:
    _, host, _ = setup()
    assert track_page_view(EventTransport(platform=host), "healthcare", "seed", "General")
    assert host.beacons[0][1]["category"] == "General"


def test_page_tracker_fires_collector_and_tag_once_per_state() -> None:
    _, host, analytics = setup()
    state = ViewOnceState()
    tracker = PageTracker(platform=host, page=PAGE, analytics=analytics)

    assert tracker.mount(state)
    assert not tracker.mount(state)  # remount under the same owner

    assert sent_types(host) == ["view"]
    views = [e for e in host.data_layer if e["event"] == PAGE_VIEW_EVENT]
    assert len(views) == 1
    assert views[0]["label"] == "page_view"
    assert views[0]["industry"] == "healthcare"
    assert views[0]["location"] == PAGE.path


@pytest.mark.parametrize("value", [1, 5])
def test_rating_submits_exactly_once(value: int) -> None:
    _, host, analytics = setup()
    qc = card(host, analytics)

    assert qc.rate(value)
    assert not qc.rate(value)

    assert sent_types(host) == ["rating"]
    assert host.beacons[0][1]["ratingValue"] == value


def test_invalid_rating_does_not_consume_the_guard() -> None:
    _, host, analytics = setup()
    qc = card(host, analytics)

    assert not qc.rate(6)
    assert qc.rated is None
    assert not qc.rate(4.5)
    assert qc.rated is None
    assert qc.rate(5)
    assert sent_types(host) == ["rating"]


def test_copy_writes_clipboard_and_resets_flag() -> None:
    env, host, analytics = setup()
    qc = card(host, analytics)

    assert qc.copy()
    assert host.clipboard == "What is your CAC payback?\n\nEleven months on blended spend."
    assert qc.copied
    assert sent_types(host) == ["copy"]

    env.run(until=2.5)
    assert not qc.copied


def test_copy_without_clipboard_is_silent() -> None:
    _, host, analytics = setup(clipboard_available=False)
    qc = card(host, analytics)
    assert qc.copy() is False
    assert host.beacons == []


def test_injected_debouncer_limits_copy_events() -> None:
    env, host, analytics = setup()
    debouncer = Debouncer(clock=host.now, window_ms=2000)
    qc = card(host, analytics, debouncer=debouncer)

    qc.copy()
    qc.copy()
    env.run(until=3)
    qc.copy()

    assert sent_types(host) == ["copy", "copy"]


def test_toggle_tracks_only_on_expand() -> None:
    _, host, analytics = setup()
    qc = card(host, analytics)
    assert qc.toggle() is True
    assert qc.toggle() is False
    assert qc.toggle() is True
    assert sent_types(host) == ["expansion", "expansion"]
