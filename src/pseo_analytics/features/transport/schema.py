from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

# Event types the collector accepts on /api/analytics/event
ALLOWED_EVENT_TYPES: set[str] = {
    "view",
    "rating",
    "expansion",
    "copy",
}

MIN_RATING = 1
MAX_RATING = 5


@dataclass(frozen=True, slots=True)
class AnalyticsContext:
    industry_slug: str
    stage_slug: str


@dataclass(frozen=True, slots=True)
class TrackOptions:
    category: str | None = None
    rating_value: int | None = None
    search_term: str | None = None


@dataclass(frozen=True, slots=True)
class AnalyticsEvent:
    """
    One tracked interaction. Built when it happens, sent once, then dropped.
    """

    event_type: str
    industry_slug: str
    stage_slug: str
    session_id: str

    category: str | None = None
    rating_value: int | None = None
    search_term: str | None = None

    @classmethod
    def build(
        cls,
        event_type: str,
        context: AnalyticsContext,
        session_id: str,
        options: TrackOptions | None = None,
    ) -> AnalyticsEvent:
        opts = options or TrackOptions()
        return cls(
            event_type=event_type,
            industry_slug=context.industry_slug,
            stage_slug=context.stage_slug,
            session_id=session_id,
            category=opts.category,
            rating_value=opts.rating_value,
            search_term=opts.search_term,
        )

    def as_payload(self) -> dict[str, Any]:
        """
        Collector wire shape. Absent optionals are left out, not sent as null.
        """
        payload: dict[str, Any] = {
            "eventType": self.event_type,
            "industrySlug": self.industry_slug,
            "stageSlug": self.stage_slug,
            "sessionId": self.session_id,
        }
        if self.category is not None:
            payload["category"] = self.category
        if self.rating_value is not None:
            payload["ratingValue"] = self.rating_value
        if self.search_term is not None:
            payload["searchTerm"] = self.search_term
        return payload


def json_dumps(payload: dict[str, Any] | None) -> str | None:
    if payload is None:
        return None
    # Stable JSON for deterministic outputs/diffs
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
