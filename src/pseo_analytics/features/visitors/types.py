from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pseo_analytics.core.types import PageContext
from pseo_analytics.features.platform.storage import InMemoryStorage


@dataclass(frozen=True)
class PageProfile:
    industry: str
    stage: str
    page_type: str = "investor-questions"
    document_height: float = 4000.0
    viewport_height: float = 900.0
    questions: int = 5

    @property
    def context(self) -> PageContext:
        return PageContext(industry=self.industry, stage=self.stage, page_type=self.page_type)


@dataclass(frozen=True)
class VisitorsConfig:
    """
    Visitor behaviour. Times in seconds, probabilities per visit unless noted.

    cta_click_rate is keyed by variant, so the two arms can be given
    different true click-through rates.
    """

    arrival_mean_seconds: float = 60.0
    returning_share: float = 0.3
    dwell_mean_seconds: float = 120.0
    scroll_step_seconds: float = 4.0
    hide_probability: float = 0.2
    hide_mean_seconds: float = 45.0
    beacon_share: float = 0.95
    cta_label: str = "Get investor-ready with PitchChat"
    cta_click_rate: dict[str, float] = field(default_factory=lambda: {"A": 0.05, "B": 0.07})
    # per scroll step
    expand_probability: float = 0.05
    copy_probability: float = 0.02
    rate_probability: float = 0.03


@dataclass
class Visitor:
    visitor_id: str
    # durable store; survives between this visitor's visits
    local_storage: InMemoryStorage = field(default_factory=InMemoryStorage)
    visits: int = 0


def _prob(value: Any, name: str) -> float:
    p = float(value)
    if not (0.0 <= p <= 1.0):
        raise ValueError(f"visitors.{name} must be in [0, 1]")
    return p


def parse_visitors_config(raw: dict[str, Any] | None) -> VisitorsConfig:
    v = raw or {}
    d = VisitorsConfig()
    click = v.get("cta_click_rate") or d.cta_click_rate
    return VisitorsConfig(
        arrival_mean_seconds=float(v.get("arrival_mean_seconds", d.arrival_mean_seconds)),
        returning_share=_prob(v.get("returning_share", d.returning_share), "returning_share"),
        dwell_mean_seconds=float(v.get("dwell_mean_seconds", d.dwell_mean_seconds)),
        scroll_step_seconds=float(v.get("scroll_step_seconds", d.scroll_step_seconds)),
        hide_probability=_prob(v.get("hide_probability", d.hide_probability), "hide_probability"),
        hide_mean_seconds=float(v.get("hide_mean_seconds", d.hide_mean_seconds)),
        beacon_share=_prob(v.get("beacon_share", d.beacon_share), "beacon_share"),
        cta_label=str(v.get("cta_label", d.cta_label)),
        cta_click_rate={
            str(k).upper(): _prob(p, "cta_click_rate") for k, p in dict(click).items()
        },
        expand_probability=_prob(v.get("expand_probability", d.expand_probability), "expand_probability"),
        copy_probability=_prob(v.get("copy_probability", d.copy_probability), "copy_probability"),
        rate_probability=_prob(v.get("rate_probability", d.rate_probability), "rate_probability"),
    )


def parse_pages(raw: list[dict[str, Any]] | None) -> list[PageProfile]:
    if not raw:
        return [PageProfile(industry="saas", stage="seed")]
    pages: list[PageProfile] = []
    for item in raw:
        if "industry" not in item or "stage" not in item:
            raise ValueError("each pages entry needs 'industry' and 'stage'")
        pages.append(
            PageProfile(
                industry=str(item["industry"]),
                stage=str(item["stage"]),
                page_type=str(item.get("page_type", "investor-questions")),
                document_height=float(item.get("document_height", 4000.0)),
                viewport_height=float(item.get("viewport_height", 900.0)),
                questions=int(item.get("questions", 5)),
            )
        )
    return pages
