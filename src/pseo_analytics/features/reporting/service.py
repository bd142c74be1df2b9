from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from pseo_analytics.features.experiment.service import CTA_CLICK_EVENT, CTA_VIEW_EVENT
from pseo_analytics.features.persistence.schema import EVENTS_TABLE_NAME
from pseo_analytics.features.scroll_tracker.service import SCROLL_DEPTH_EVENT
from pseo_analytics.features.time_tracker.service import TIME_ON_PAGE_EVENT

UNKNOWN = "unknown"


@dataclass(frozen=True)
class CtaTotals:
    views: int
    clicks: int

    @property
    def ctr(self) -> float:
        return self.clicks / self.views if self.views > 0 else 0.0

    def as_dict(self) -> dict[str, Any]:
        return {"views": self.views, "clicks": self.clicks, "ctr": self.ctr}


@dataclass(frozen=True)
class CtaSegment:
    industry: str
    stage: str
    page_type: str
    variant: str
    views: int
    clicks: int

    @property
    def ctr(self) -> float:
        return self.clicks / self.views if self.views > 0 else 0.0

    def as_dict(self) -> dict[str, Any]:
        return {**asdict(self), "ctr": self.ctr}


@dataclass(frozen=True)
class CtaReport:
    """
    CTA impressions/clicks per (industry, stage, page type, variant).

    filtered_segments keeps only segments with at least min_views views;
    by_segment has everything, sorted by views descending.
    """

    totals: CtaTotals
    by_variant: dict[str, CtaTotals]
    by_segment: list[CtaSegment]
    min_views: int
    filtered_segments: list[CtaSegment] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "totals": self.totals.as_dict(),
            "byVariant": {k: v.as_dict() for k, v in self.by_variant.items()},
            "minViews": self.min_views,
            "filteredSegments": [s.as_dict() for s in self.filtered_segments],
            "bySegment": [s.as_dict() for s in self.by_segment],
        }


@dataclass(frozen=True)
class MilestoneReach:
    event_type: str
    threshold: int
    visitors: int


def _run_filter(run_id: str | None) -> tuple[str, list[Any]]:
    if run_id is None:
        return "", []
    return " AND run_id = ?", [run_id]


def cta_report(conn, *, run_id: str | None = None, min_views: int = 10) -> CtaReport:
    where, params = _run_filter(run_id)
    rows = conn.execute(
        f"""
        SELECT
            COALESCE(industry_slug, '{UNKNOWN}') AS industry,
            COALESCE(stage_slug, '{UNKNOWN}') AS stage,
            COALESCE(page_type, '{UNKNOWN}') AS page_type,
            COALESCE(variant, '{UNKNOWN}') AS variant,
            COUNT(*) FILTER (WHERE event_type = ?) AS views,
            COUNT(*) FILTER (WHERE event_type = ?) AS clicks
        FROM {EVENTS_TABLE_NAME}
        WHERE channel = 'tag' AND event_type IN (?, ?){where}
        GROUP BY 1, 2, 3, 4
        """,
        [CTA_VIEW_EVENT, CTA_CLICK_EVENT, CTA_VIEW_EVENT, CTA_CLICK_EVENT, *params],
    ).fetchall()

    segments = sorted(
        (
            CtaSegment(
                industry=str(r[0]),
                stage=str(r[1]),
                page_type=str(r[2]),
                variant=str(r[3]),
                views=int(r[4]),
                clicks=int(r[5]),
            )
            for r in rows
        ),
        key=lambda s: (-s.views, s.industry, s.stage, s.page_type, s.variant),
    )

    by_variant: dict[str, CtaTotals] = {}
    for s in segments:
        prev = by_variant.get(s.variant, CtaTotals(views=0, clicks=0))
        by_variant[s.variant] = CtaTotals(views=prev.views + s.views, clicks=prev.clicks + s.clicks)

    totals = CtaTotals(
        views=sum(s.views for s in segments),
        clicks=sum(s.clicks for s in segments),
    )
    return CtaReport(
        totals=totals,
        by_variant=dict(sorted(by_variant.items())),
        by_segment=segments,
        min_views=int(min_views),
        filtered_segments=[s for s in segments if s.views >= min_views],
    )


def milestone_reach(conn, *, run_id: str | None = None) -> list[MilestoneReach]:
    """Distinct visitors reaching each scroll/time milestone."""
    where, params = _run_filter(run_id)
    rows = conn.execute(
        f"""
        SELECT event_type, CAST(value_num AS INTEGER) AS threshold,
               COUNT(DISTINCT visitor_id) AS visitors
        FROM {EVENTS_TABLE_NAME}
        WHERE event_type IN (?, ?) AND value_num IS NOT NULL{where}
        GROUP BY 1, 2
        ORDER BY 1, 2
        """,
        [SCROLL_DEPTH_EVENT, TIME_ON_PAGE_EVENT, *params],
    ).fetchall()
    return [MilestoneReach(event_type=str(r[0]), threshold=int(r[1]), visitors=int(r[2])) for r in rows]
