from __future__ import annotations

from collections.abc import Callable, Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from types import TracebackType
from typing import Any, Protocol
from urllib.parse import urljoin

import httpx

from pseo_analytics.core.config import DEFAULT_COLLECTOR_URL
from pseo_analytics.core.logging import get_logger
from pseo_analytics.features.platform.types import Platform
from pseo_analytics.features.session_identity.service import SessionIdentity

from .schema import (
    ALLOWED_EVENT_TYPES,
    AnalyticsContext,
    AnalyticsEvent,
    TrackOptions,
    json_dumps,
)

CONTENT_TYPE = "application/json"

_logger = get_logger(__name__)


class HttpPoster(Protocol):
    """Fire-and-forget JSON POST. Must not raise and must not block the caller."""

    def post(self, url: str, payload: Mapping[str, Any]) -> None: ...


class HttpxPoster:
    """
    Sends POSTs on a single background worker with httpx.

    The response body is never read; failures are logged at DEBUG and the
    event is dropped. close() waits for in-flight sends, which stands in for
    fetch's keepalive flag on page teardown.
    """

    def __init__(
        self,
        *,
        timeout: float = 2.0,
        client: httpx.Client | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        base_headers = {"Content-Type": CONTENT_TYPE}
        if headers:
            base_headers.update(headers)
        self._client = client or httpx.Client(timeout=timeout, headers=base_headers)
        self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="pseo-analytics")
        self._closed = False

    def post(self, url: str, payload: Mapping[str, Any]) -> None:
        if self._closed:
            _logger.debug("poster closed, dropping event", extra={"feature": "transport"})
            return
        future = self._pool.submit(self._send, url, dict(payload))
        future.add_done_callback(self._on_done)

    def _send(self, url: str, payload: dict[str, Any]) -> int:
        response = self._client.post(url, json=payload)
        return response.status_code

    @staticmethod
    def _on_done(future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            _logger.debug(
                "analytics post failed: %s", exc, extra={"feature": "transport"}
            )

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._pool.shutdown(wait=True)
        self._client.close()

    def __enter__(self) -> HttpxPoster:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


class EventTransport:
    """
    Delivers collector events, preferring the unload-safe beacon.

    Order:
      1. platform.send_beacon when the host supports it and accepts the body
      2. otherwise the HttpPoster (keepalive-style POST). Without an injected
         poster one is built from poster_factory the first time it is needed.

    Nothing here raises. Event loss is acceptable; there is no retry.
    """

    def __init__(
        self,
        *,
        platform: Platform | None,
        session: SessionIdentity | None = None,
        poster: HttpPoster | None = None,
        collector_url: str = DEFAULT_COLLECTOR_URL,
        poster_factory: Callable[[], HttpPoster] = HttpxPoster,
    ) -> None:
        self._platform = platform
        self._session = session or SessionIdentity(platform)
        self._poster = poster
        self._poster_factory = poster_factory
        self._owns_poster = False
        self._collector_url = collector_url

    def send_event(
        self,
        event_type: str,
        context: AnalyticsContext,
        options: TrackOptions | None = None,
    ) -> bool:
        """Returns True when the event was handed off, False when it was dropped."""
        if self._platform is None:
            return False
        if event_type not in ALLOWED_EVENT_TYPES:
            _logger.warning(
                "dropping unsupported event type",
                extra={"feature": "transport", "event_type": event_type},
            )
            return False

        session_id = self._session.get_session_id()
        if not session_id:
            return False

        event = AnalyticsEvent.build(event_type, context, session_id, options)
        payload = event.as_payload()

        try:
            return self._deliver(payload)
        except Exception:
            _logger.debug(
                "analytics send failed",
                exc_info=True,
                extra={"feature": "transport", "event_type": event_type},
            )
            return False

    def _deliver(self, payload: dict[str, Any]) -> bool:
        platform = self._platform
        assert platform is not None

        if platform.beacon_supported:
            body = (json_dumps(payload) or "{}").encode("utf-8")
            if platform.send_beacon(self._collector_url, body, CONTENT_TYPE):
                return True

        if self._poster is None:
            self._poster = self._poster_factory()
            self._owns_poster = True
        url = urljoin(platform.location().origin + "/", self._collector_url)
        self._poster.post(url, payload)
        return True

    def close(self) -> None:
        """Closes a poster this transport built itself; injected ones are left alone."""
        if not self._owns_poster or self._poster is None:
            return
        close = getattr(self._poster, "close", None)
        if close is not None:
            close()
        self._poster = None
        self._owns_poster = False


def track_tag_event(platform: Platform | None, event_name: str, params: Mapping[str, Any]) -> None:
    """
    Secondary, lower-cardinality path (the tag manager's dataLayer).
    Used for page views, CTA impressions/clicks and milestone events.
    """
    if platform is None:
        return
    try:
        payload = dict(params)
        if payload.get("location") is None:
            payload["location"] = platform.location().pathname
        platform.tag(event_name, payload)
    except Exception:
        _logger.debug(
            "tag event failed",
            exc_info=True,
            extra={"feature": "transport", "event_type": event_name},
        )
