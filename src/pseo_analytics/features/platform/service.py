from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any, Protocol

import simpy

from .storage import InMemoryStorage
from .types import (
    BEFORE_UNLOAD,
    HIDDEN,
    SCROLL,
    VISIBILITY_CHANGE,
    VISIBLE,
    Callback,
    ClipboardUnavailableError,
    Location,
    ScrollMetrics,
    Storage,
)

FRAME_MS = 1000.0 / 60.0


class BeaconSink(Protocol):
    """
    Receives whatever a simulated host sends out.
    channel is "collector" for beacons/POSTs and "tag" for tag-manager calls.
    """

    def record(
        self,
        *,
        channel: str,
        event_type: str,
        payload: Mapping[str, Any],
        host: SimPlatform,
    ) -> None: ...


class SimPlatform:
    """
    Platform backed by a SimPy environment.

    Timers are SimPy processes, so trackers run under env.run() exactly as they
    would on a page's main thread: callbacks interleave cooperatively and never
    overlap. Drivers (tests, the visitor simulation) move the document with
    scroll_to / set_visibility / navigate / unload.
    """

    def __init__(
        self,
        *,
        env: simpy.Environment,
        start_dt: datetime | None = None,
        origin: str = "https://pitchchat.ai",
        pathname: str = "/",
        search: str = "",
        session_storage: Storage | None = None,
        local_storage: Storage | None = None,
        beacon_supported: bool = True,
        document_height: float = 800.0,
        viewport_height: float = 800.0,
        clipboard_available: bool = True,
        sink: BeaconSink | None = None,
    ) -> None:
        self.env = env
        self.start_dt = start_dt or datetime(2026, 1, 1, tzinfo=UTC)
        self.session_storage = session_storage if session_storage is not None else InMemoryStorage()
        self.local_storage = local_storage if local_storage is not None else InMemoryStorage()
        self.beacon_supported = beacon_supported
        self.clipboard_available = clipboard_available
        self.sink = sink

        self._location = Location(origin=origin, pathname=pathname, search=search)
        self._visibility = VISIBLE
        self._scroll_top = 0.0
        self._document_height = float(document_height)
        self._viewport_height = float(viewport_height)

        self._listeners: dict[str, list[Callback]] = {}
        self._active_timers: set[int] = set()
        self._next_timer = 0

        # what left the "page"
        self.beacons: list[tuple[str, dict[str, Any]]] = []
        self.data_layer: list[dict[str, Any]] = []
        self.clipboard: str | None = None

    # ----------------------------
    # Platform protocol
    # ----------------------------

    def now(self) -> float:
        return self.start_dt.timestamp() * 1000.0 + float(self.env.now) * 1000.0

    def current_time(self) -> datetime:
        return datetime.fromtimestamp(self.now() / 1000.0, tz=UTC)

    def visibility_state(self) -> str:
        return self._visibility

    def location(self) -> Location:
        return self._location

    def scroll_metrics(self) -> ScrollMetrics:
        return ScrollMetrics(
            scroll_top=self._scroll_top,
            document_height=self._document_height,
            viewport_height=self._viewport_height,
        )

    def send_beacon(self, url: str, body: bytes, content_type: str) -> bool:
        if not self.beacon_supported:
            return False
        payload = json.loads(body.decode("utf-8"))
        self.beacons.append((url, payload))
        if self.sink is not None:
            self.sink.record(
                channel="collector",
                event_type=str(payload.get("eventType")),
                payload=payload,
                host=self,
            )
        return True

    def tag(self, event_name: str, params: Mapping[str, Any]) -> None:
        entry = {"event": event_name, **dict(params)}
        self.data_layer.append(entry)
        if self.sink is not None:
            self.sink.record(channel="tag", event_type=event_name, payload=dict(params), host=self)

    def write_clipboard(self, text: str) -> None:
        if not self.clipboard_available:
            raise ClipboardUnavailableError("clipboard API not available")
        self.clipboard = text

    def add_listener(self, event: str, cb: Callback) -> None:
        self._listeners.setdefault(event, []).append(cb)

    def remove_listener(self, event: str, cb: Callback) -> None:
        cbs = self._listeners.get(event, [])
        if cb in cbs:
            cbs.remove(cb)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    def set_interval(self, cb: Callback, ms: float) -> int:
        if ms <= 0:
            raise ValueError("interval must be > 0 ms")
        handle = self._new_timer()
        self.env.process(self._interval_proc(handle, cb, ms / 1000.0))
        return handle

    def set_timeout(self, cb: Callback, ms: float) -> int:
        handle = self._new_timer()
        self.env.process(self._timeout_proc(handle, cb, max(0.0, ms) / 1000.0))
        return handle

    def clear_timer(self, handle: int) -> None:
        self._active_timers.discard(handle)

    def request_animation_frame(self, cb: Callback) -> int:
        return self.set_timeout(cb, FRAME_MS)

    @property
    def active_timers(self) -> int:
        return len(self._active_timers)

    # ----------------------------
    # Driver API
    # ----------------------------

    def scroll_to(self, top: float) -> None:
        max_top = max(0.0, self._document_height - self._viewport_height)
        self._scroll_top = min(max(0.0, float(top)), max_top)
        self._dispatch(SCROLL)

    def scroll_to_percent(self, percent: float) -> None:
        max_top = max(0.0, self._document_height - self._viewport_height)
        self.scroll_to(max_top * float(percent) / 100.0)

    def set_visibility(self, state: str) -> None:
        if state not in (VISIBLE, HIDDEN):
            raise ValueError(f"Unsupported visibility state: {state!r}")
        if state == self._visibility:
            return
        self._visibility = state
        self._dispatch(VISIBILITY_CHANGE)

    def set_document_height(self, height: float) -> None:
        self._document_height = float(height)

    def navigate(self, pathname: str, search: str = "") -> None:
        self._location = Location(origin=self._location.origin, pathname=pathname, search=search)
        self._scroll_top = 0.0

    def unload(self) -> None:
        self._dispatch(BEFORE_UNLOAD)

    # ----------------------------
    # Internals
    # ----------------------------

    def _dispatch(self, event: str) -> None:
        for cb in list(self._listeners.get(event, [])):
            cb()

    def _new_timer(self) -> int:
        self._next_timer += 1
        self._active_timers.add(self._next_timer)
        return self._next_timer

    def _interval_proc(self, handle: int, cb: Callback, seconds: float):
        while True:
            yield self.env.timeout(seconds)
            if handle not in self._active_timers:
                return
            cb()

    def _timeout_proc(self, handle: int, cb: Callback, seconds: float):
        yield self.env.timeout(seconds)
        if handle not in self._active_timers:
            return
        self._active_timers.discard(handle)
        cb()
