from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

import httpx
import simpy

from pseo_analytics.features.platform.service import SimPlatform
from pseo_analytics.features.platform.storage import BlockedStorage
from pseo_analytics.features.transport.schema import AnalyticsContext, TrackOptions
from pseo_analytics.features.transport.service import (
    EventTransport,
    HttpxPoster,
    track_tag_event,
)

CTX = AnalyticsContext(industry_slug="saas", stage_slug="seed")


class RecordingPoster:
    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def post(self, url: str, payload: Mapping[str, Any]) -> None:
        self.calls.append((url, dict(payload)))


class ExplodingPoster:
    def post(self, url: str, payload: Mapping[str, Any]) -> None:
        raise httpx.ConnectError("offline")


def test_beacon_preferred_and_payload_shape() -> None:
    host = SimPlatform(env=simpy.Environment())
    poster = RecordingPoster()
    transport = EventTransport(platform=host, poster=poster)

    assert transport.send_event("rating", CTX, TrackOptions(category="Traction", rating_value=5))

    assert poster.calls == []
    url, payload = host.beacons[0]
    assert url == "/api/analytics/event"
    assert payload["eventType"] == "rating"
    assert payload["industrySlug"] == "saas"
    assert payload["stageSlug"] == "seed"
    assert payload["category"] == "Traction"
    assert payload["ratingValue"] == 5
    assert len(payload["sessionId"]) == 32
    assert "searchTerm" not in payload


def test_falls_back_to_post_without_beacon() -> None:
    host = SimPlatform(env=simpy.Environment(), beacon_supported=False)
    poster = RecordingPoster()
    transport = EventTransport(platform=host, poster=poster)

    assert transport.send_event("view", CTX)

    url, payload = poster.calls[0]
    assert url == "https://pitchchat.ai/api/analytics/event"
    assert payload["eventType"] == "view"


def test_no_session_storage_means_no_send() -> None:
    host = SimPlatform(env=simpy.Environment(), session_storage=BlockedStorage())
    transport = EventTransport(platform=host, poster=RecordingPoster())
    assert transport.send_event("view", CTX) is False
    assert host.beacons == []


def test_network_failure_is_swallowed() -> None:
    host = SimPlatform(env=simpy.Environment(), beacon_supported=False)
    transport = EventTransport(platform=host, poster=ExplodingPoster())
    assert transport.send_event("copy", CTX) is False


def test_unknown_event_type_dropped() -> None:
    host = SimPlatform(env=simpy.Environment())
    transport = EventTransport(platform=host)
    assert transport.send_event("purchase", CTX) is False
    assert host.beacons == []


def test_httpx_poster_posts_json_in_background() -> None:
    seen: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"success": True})

    client = httpx.Client(transport=httpx.MockTransport(handler))
    with HttpxPoster(client=client) as poster:
        poster.post("https://pitchchat.ai/api/analytics/event", {"eventType": "view"})

    assert seen == [{"eventType": "view"}]


def test_default_transport_builds_httpx_poster_when_beacon_missing() -> None:
    seen: list[tuple[str, dict[str, Any]]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((str(request.url), json.loads(request.content)))
        return httpx.Response(200, json={"success": True})

    built: list[HttpxPoster] = []

    def factory() -> HttpxPoster:
        poster = HttpxPoster(client=httpx.Client(transport=httpx.MockTransport(handler)))
        built.append(poster)
        return poster

    host = SimPlatform(env=simpy.Environment(), beacon_supported=False)
    transport = EventTransport(platform=host, poster_factory=factory)

    assert transport.send_event("view", CTX)
    assert transport.send_event("copy", CTX)
    transport.close()

    assert len(built) == 1
    assert [p["eventType"] for _, p in seen] == ["view", "copy"]
    assert seen[0][0] == "https://pitchchat.ai/api/analytics/event"


def test_beacon_host_never_builds_a_poster() -> None:
    def factory() -> HttpxPoster:
        raise AssertionError("poster should not be needed")

    host = SimPlatform(env=simpy.Environment())
    transport = EventTransport(platform=host, poster_factory=factory)
    assert transport.send_event("view", CTX)
    assert len(host.beacons) == 1


def test_httpx_poster_swallows_transport_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    poster = HttpxPoster(client=httpx.Client(transport=httpx.MockTransport(handler)))
    poster.post("https://pitchchat.ai/api/analytics/event", {"eventType": "view"})
    poster.close()
    # after close, posts are dropped quietly
    poster.post("https://pitchchat.ai/api/analytics/event", {"eventType": "view"})


def test_tag_event_adds_location() -> None:
    host = SimPlatform(env=simpy.Environment(), pathname="/investor-questions/saas/seed/questions")
    track_tag_event(host, "pseo_page_view", {"label": "page_view"})
    assert host.data_layer == [
        {
            "event": "pseo_page_view",
            "label": "page_view",
            "location": "/investor-questions/saas/seed/questions",
        }
    ]
    track_tag_event(None, "ignored", {})
