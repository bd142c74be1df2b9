from __future__ import annotations

from collections.abc import Sequence

from pseo_analytics.core.config import TrackingConfig
from pseo_analytics.features.platform.types import SCROLL, Platform
from pseo_analytics.features.timing.service import Throttle
from pseo_analytics.features.transport.service import track_tag_event

SCROLL_DEPTH_EVENT = "scroll_depth"


def scroll_percent(scroll_top: float, document_height: float, viewport_height: float) -> int | None:
    """Rounded percentage scrolled, or None when the page cannot scroll."""
    scrollable = document_height - viewport_height
    if scrollable <= 0:
        return None
    # JS Math.round: halves go up
    return int((scroll_top / scrollable) * 100 + 0.5)


class ScrollTracker:
    """
    Emits scroll_depth once per milestone per mount.

    Scroll events go through a leading-edge throttle, then get coalesced into
    one animation frame so the layout is read at most once per frame.
    """

    def __init__(
        self,
        platform: Platform,
        *,
        milestones: Sequence[int] | None = None,
        throttle_ms: float | None = None,
    ) -> None:
        defaults = TrackingConfig()
        self._platform = platform
        self.milestones: tuple[int, ...] = tuple(sorted(milestones or defaults.scroll_milestones))
        self._throttle_ms = defaults.scroll_throttle_ms if throttle_ms is None else throttle_ms

        self.fired: set[int] = set()
        self._ticking = False
        self._frame: int | None = None
        self._handler: Throttle | None = None

    def mount(self) -> None:
        if self._handler is not None:
            return
        self._handler = Throttle(self._platform, self._on_scroll, self._throttle_ms)
        # catch pages restored already scrolled (back navigation)
        self.check()
        self._platform.add_listener(SCROLL, self._handler)

    def unmount(self) -> None:
        if self._handler is None:
            return
        self._platform.remove_listener(SCROLL, self._handler)
        self._handler.cancel()
        self._handler = None
        if self._frame is not None:
            self._platform.clear_timer(self._frame)
            self._frame = None
        self._ticking = False

    def _on_scroll(self) -> None:
        if self._ticking:
            return
        self._ticking = True
        self._frame = self._platform.request_animation_frame(self._on_frame)

    def _on_frame(self) -> None:
        self._frame = None
        self.check()
        self._ticking = False

    def check(self) -> list[int]:
        """Evaluate the current position; returns milestones newly fired."""
        m = self._platform.scroll_metrics()
        percent = scroll_percent(m.scroll_top, m.document_height, m.viewport_height)
        if percent is None:
            return []

        page_path = self._platform.location().pathname
        newly: list[int] = []
        for milestone in self.milestones:
            if percent >= milestone and milestone not in self.fired:
                self.fired.add(milestone)
                newly.append(milestone)
                track_tag_event(
                    self._platform,
                    SCROLL_DEPTH_EVENT,
                    {"depth": milestone, "page_path": page_path},
                )
        return newly
