from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

Callback = Callable[[], None]

VISIBLE = "visible"
HIDDEN = "hidden"

# Event names understood by add_listener/remove_listener
SCROLL = "scroll"
VISIBILITY_CHANGE = "visibilitychange"
BEFORE_UNLOAD = "beforeunload"


class StorageUnavailableError(RuntimeError):
    """Storage is blocked (private browsing), over quota, or otherwise unusable."""


class ClipboardUnavailableError(RuntimeError):
    """The host has no clipboard or refused the write."""


@dataclass(frozen=True)
class Location:
    origin: str
    pathname: str = "/"
    search: str = ""
    hash: str = ""

    @property
    def href(self) -> str:
        return f"{self.origin}{self.pathname}{self.search}{self.hash}"


@dataclass(frozen=True)
class ScrollMetrics:
    scroll_top: float
    document_height: float
    viewport_height: float


class Storage(Protocol):
    """
    Key/value store with Web Storage semantics.
    Any method may raise StorageUnavailableError.
    """

    def get_item(self, key: str) -> str | None: ...
    def set_item(self, key: str, value: str) -> None: ...
    def remove_item(self, key: str) -> None: ...


class Platform(Protocol):
    """
    Everything the trackers need from their host.

    session_storage is tab scoped, local_storage outlives the tab. Either may be
    None when the code runs outside a browser-like host.
    """

    session_storage: Storage | None
    local_storage: Storage | None
    beacon_supported: bool

    def now(self) -> float: ...  # epoch milliseconds
    def visibility_state(self) -> str: ...
    def location(self) -> Location: ...
    def scroll_metrics(self) -> ScrollMetrics: ...

    def send_beacon(self, url: str, body: bytes, content_type: str) -> bool: ...
    def tag(self, event_name: str, params: Mapping[str, Any]) -> None: ...
    def write_clipboard(self, text: str) -> None: ...

    def add_listener(self, event: str, cb: Callback) -> None: ...
    def remove_listener(self, event: str, cb: Callback) -> None: ...

    def set_interval(self, cb: Callback, ms: float) -> int: ...
    def set_timeout(self, cb: Callback, ms: float) -> int: ...
    def clear_timer(self, handle: int) -> None: ...
    def request_animation_frame(self, cb: Callback) -> int: ...
