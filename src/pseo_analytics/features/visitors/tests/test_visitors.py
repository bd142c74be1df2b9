from __future__ import annotations

from datetime import UTC, datetime

import pytest
import simpy

from pseo_analytics.core.ids import IdsService
from pseo_analytics.core.rng import RNG
from pseo_analytics.features.experiment.service import (
    CTA_CLICK_EVENT,
    CTA_VIEW_EVENT,
    VARIANT_STORAGE_KEY,
)
from pseo_analytics.features.interaction.service import PAGE_VIEW_EVENT
from pseo_analytics.features.persistence.service import RecordedEvent
from pseo_analytics.features.scroll_tracker.service import SCROLL_DEPTH_EVENT
from pseo_analytics.features.visitors.service import VisitorsService
from pseo_analytics.features.visitors.types import (
    PageProfile,
    Visitor,
    VisitorsConfig,
    parse_pages,
    parse_visitors_config,
)

START = datetime(2026, 1, 1, tzinfo=UTC)
PAGE = PageProfile(industry="saas", stage="seed", questions=3)


class ListSink:
    def __init__(self) -> None:
        self.events: list[RecordedEvent] = []

    def emit(self, e: RecordedEvent) -> None:
        self.events.append(e)

    def types(self, channel: str | None = None) -> list[str]:
        return [e.event_type for e in self.events if channel is None or e.channel == channel]


def make_service(cfg: VisitorsConfig, *, seed: int = 7) -> tuple[simpy.Environment, VisitorsService, ListSink]:
    env = simpy.Environment()
    sink = ListSink()
    svc = VisitorsService(
        env=env,
        rng=RNG(seed),
        ids=IdsService(run_id="r1"),
        sink=sink,
        run_id="r1",
        start_dt=START,
        pages=[PAGE],
        cfg=cfg,
    )
    return env, svc, sink


def test_single_visit_records_view_cta_and_scroll() -> None:
    cfg = VisitorsConfig(
        dwell_mean_seconds=200.0,
        hide_probability=0.0,
        beacon_share=1.0,
        cta_click_rate={"A": 1.0, "B": 1.0},
    )
    env, svc, sink = make_service(cfg)
    svc.spawn(Visitor(visitor_id="v1"))
    env.run()

    tags = sink.types("tag")
    assert tags[0] == PAGE_VIEW_EVENT
    assert tags.count(CTA_VIEW_EVENT) == 1
    assert tags.count(CTA_CLICK_EVENT) == 1
    assert sink.types("collector")[0] == "view"
    assert all(e.visitor_id == "v1" for e in sink.events)
    assert svc.visits_finished == 1

    cta_view = next(e for e in sink.events if e.event_type == CTA_VIEW_EVENT)
    assert cta_view.variant in ("A", "B")
    assert cta_view.industry_slug == "saas"
    assert cta_view.page_path == PAGE.context.path


def test_scroll_milestones_are_increasing_and_unique_per_visit() -> None:
    cfg = VisitorsConfig(dwell_mean_seconds=300.0, hide_probability=0.0)
    env, svc, sink = make_service(cfg, seed=3)
    svc.spawn(Visitor(visitor_id="v1"))
    env.run()

    depths = [e.value_num for e in sink.events if e.event_type == SCROLL_DEPTH_EVENT]
    assert depths == sorted(depths)
    assert len(depths) == len(set(depths))


def test_returning_visitor_keeps_variant() -> None:
    cfg = VisitorsConfig(dwell_mean_seconds=10.0, hide_probability=0.0)
    env, svc, sink = make_service(cfg, seed=11)
    v = Visitor(visitor_id="v1")
    svc.spawn(v)
    env.run()
    first = v.local_storage.get_item(VARIANT_STORAGE_KEY)

    for _ in range(5):
        svc.spawn(v)
        env.run()

    variants = {e.variant for e in sink.events if e.event_type == CTA_VIEW_EVENT}
    assert variants == {first}
    assert v.visits == 6


def test_without_beacon_collector_events_still_arrive() -> None:
    cfg = VisitorsConfig(dwell_mean_seconds=5.0, hide_probability=0.0, beacon_share=0.0)
    env, svc, sink = make_service(cfg)
    svc.spawn(Visitor(visitor_id="v1"))
    env.run()

    assert "view" in sink.types("collector")


def test_arrivals_spawn_requested_visits() -> None:
    cfg = VisitorsConfig(arrival_mean_seconds=5.0, dwell_mean_seconds=20.0, returning_share=0.5)
    env, svc, sink = make_service(cfg)
    svc.start(20)
    env.run()

    assert svc.visits_started == 20
    assert svc.visits_finished == 20
    assert 0 < len(svc.visitors) <= 20
    assert sink.types("tag").count(CTA_VIEW_EVENT) == 20


def test_same_seed_same_events() -> None:
    cfg = VisitorsConfig(arrival_mean_seconds=5.0, dwell_mean_seconds=30.0)

    def run() -> list[tuple[str, str | None, float]]:
        env, svc, sink = make_service(cfg, seed=42)
        svc.start(10)
        env.run()
        return [(e.event_type, e.visitor_id, e.sim_time_s) for e in sink.events]

    assert run() == run()


def test_parse_helpers() -> None:
    cfg = parse_visitors_config({"returning_share": 0.4, "cta_click_rate": {"a": 0.1, "b": 0.2}})
    assert cfg.returning_share == 0.4
    assert cfg.cta_click_rate == {"A": 0.1, "B": 0.2}

    with pytest.raises(ValueError):
        parse_visitors_config({"hide_probability": 1.5})

    pages = parse_pages([{"industry": "fintech", "stage": "series-a", "questions": 2}])
    assert pages[0].context.path == "/investor-questions/fintech/series-a/investor-questions"
    assert pages[0].questions == 2
    assert parse_pages(None)[0].industry == "saas"

    with pytest.raises(ValueError):
        parse_pages([{"industry": "x"}])
