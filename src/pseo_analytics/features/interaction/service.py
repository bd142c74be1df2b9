from __future__ import annotations

from dataclasses import dataclass

from pseo_analytics.core.logging import get_logger
from pseo_analytics.core.types import PageContext
from pseo_analytics.features.platform.types import Platform
from pseo_analytics.features.timing.service import Debouncer
from pseo_analytics.features.transport.schema import (
    MAX_RATING,
    MIN_RATING,
    AnalyticsContext,
    TrackOptions,
)
from pseo_analytics.features.transport.service import EventTransport, track_tag_event

PAGE_VIEW_EVENT = "pseo_page_view"
COPIED_RESET_MS = 2000.0

_logger = get_logger(__name__)


def is_valid_rating(value: object) -> bool:
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return MIN_RATING <= value <= MAX_RATING


@dataclass
class ViewOnceState:
    """
    "Has the view been sent" for one mounted page, held by whoever owns the
    page. A remount with the same state object does not send again.
    """

    fired: bool = False


class ContentAnalytics:
    """Collector events for one industry/stage page."""

    def __init__(self, context: AnalyticsContext, transport: EventTransport) -> None:
        self.context = context
        self._transport = transport

    def track_view(self, category: str | None = None) -> bool:
        return self._transport.send_event("view", self.context, TrackOptions(category=category))

    def track_view_once(self, state: ViewOnceState, category: str | None = None) -> bool:
        if state.fired:
            return False
        state.fired = True
        return self.track_view(category)

    def track_expansion(self, category: str | None = None) -> bool:
        return self._transport.send_event("expansion", self.context, TrackOptions(category=category))

    def track_copy(self, category: str | None = None) -> bool:
        return self._transport.send_event("copy", self.context, TrackOptions(category=category))

    def track_rating(self, rating_value: int, category: str | None = None) -> bool:
        # out-of-range ratings are dropped without a network call
        if not is_valid_rating(rating_value):
            return False
        return self._transport.send_event(
            "rating",
            self.context,
            TrackOptions(category=category, rating_value=int(rating_value)),
        )


def track_page_view(
    transport: EventTransport,
    industry_slug: str,
    stage_slug: str,
    category: str | None = None,
) -> bool:
    """Standalone view event for callers outside a mounted page."""
    context = AnalyticsContext(industry_slug=industry_slug, stage_slug=stage_slug)
    return transport.send_event("view", context, TrackOptions(category=category))


class PageTracker:
    """
    Page view on mount: one collector "view" plus one tag-manager
    pseo_page_view, both guarded by the owner's ViewOnceState.
    """

    def __init__(
        self,
        *,
        platform: Platform,
        page: PageContext,
        analytics: ContentAnalytics | None = None,
        category: str | None = None,
    ) -> None:
        self._platform = platform
        self.page = page
        self._analytics = analytics
        self.category = category

    def mount(self, state: ViewOnceState) -> bool:
        if state.fired:
            return False
        state.fired = True

        if self._analytics is not None:
            self._analytics.track_view(self.category)
        params = {**self.page.as_params(), "label": "page_view"}
        if self.category is not None:
            params["category"] = self.category
        track_tag_event(self._platform, PAGE_VIEW_EVENT, params)
        return True


class QuestionCard:
    """
    One question/answer block: copy to clipboard, expand, and a one-shot
    helpfulness rating. The rating guard is local only.
    """

    def __init__(
        self,
        *,
        category: str,
        question: str,
        answer: str,
        analytics: ContentAnalytics,
        platform: Platform,
        debouncer: Debouncer | None = None,
    ) -> None:
        self.category = category
        self.question = question
        self.answer = answer
        self._analytics = analytics
        self._platform = platform
        self._debouncer = debouncer

        self.copied = False
        self.expanded = False
        self.rated: int | None = None
        self._copied_timer: int | None = None

    def copy(self) -> bool:
        try:
            self._platform.write_clipboard(f"{self.question}\n\n{self.answer}")
        except Exception:
            _logger.debug("clipboard write failed", exc_info=True, extra={"feature": "interaction"})
            return False

        self.copied = True
        if self._copied_timer is not None:
            self._platform.clear_timer(self._copied_timer)
        self._copied_timer = self._platform.set_timeout(self._clear_copied, COPIED_RESET_MS)

        if self._debouncer is not None and not self._debouncer.should_fire(f"copy:{self.category}"):
            return True
        self._analytics.track_copy(self.category)
        return True

    def _clear_copied(self) -> None:
        self.copied = False
        self._copied_timer = None

    def toggle(self) -> bool:
        self.expanded = not self.expanded
        if self.expanded:
            self._analytics.track_expansion(self.category)
        return self.expanded

    def rate(self, value: int) -> bool:
        if self.rated is not None:
            return False
        if not is_valid_rating(value):
            return False
        self.rated = int(value)
        return self._analytics.track_rating(self.rated, self.category)
