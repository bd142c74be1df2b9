from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any, Protocol

import simpy

from pseo_analytics.core.config import ExperimentConfig, TrackingConfig, TransportConfig
from pseo_analytics.core.logging import get_logger
from pseo_analytics.features.experiment.service import CtaButton, VariantAssigner
from pseo_analytics.features.interaction.service import (
    ContentAnalytics,
    PageTracker,
    QuestionCard,
    ViewOnceState,
)
from pseo_analytics.features.persistence.service import EventSinkLike, HostEventRecorder
from pseo_analytics.features.platform.service import SimPlatform
from pseo_analytics.features.platform.storage import InMemoryStorage
from pseo_analytics.features.platform.types import HIDDEN, VISIBLE
from pseo_analytics.features.scroll_tracker.service import ScrollTracker
from pseo_analytics.features.time_tracker.service import TimeTracker
from pseo_analytics.features.timing.service import Debouncer
from pseo_analytics.features.transport.schema import AnalyticsContext
from pseo_analytics.features.transport.service import EventTransport

from .types import PageProfile, Visitor, VisitorsConfig

COPY_DEBOUNCE_MS = 1000.0

QUESTION_CATEGORIES = ("market", "traction", "team", "financials", "product")


class RNGLike(Protocol):
    def random(self) -> float: ...
    def uniform(self, a: float, b: float) -> float: ...
    def expovariate(self, lambd: float) -> float: ...
    def choice(self, seq: Sequence[Any]) -> Any: ...


class IdsLike(Protocol):
    def next_id(self, prefix: str) -> str: ...


class RecordingPoster:
    """
    HttpPoster for hosts without sendBeacon: the keepalive POST lands in the
    same recorder, tagged with the host it came from.
    """

    def __init__(self, recorder: HostEventRecorder, host: SimPlatform) -> None:
        self._recorder = recorder
        self._host = host

    def post(self, url: str, payload: Mapping[str, Any]) -> None:
        self._recorder.record(
            channel="collector",
            event_type=str(payload.get("eventType")),
            payload=payload,
            host=self._host,
        )


class VisitorsService:
    """
    Spawns one SimPy process per visit. Each visit mounts the real trackers on
    a SimPlatform and drives it like a reader would: scroll, maybe switch tabs,
    poke at question cards, maybe click the CTA, then leave.

    Returning visitors keep their local storage, so they see the CTA arm they
    were first assigned.
    """

    def __init__(
        self,
        *,
        env: simpy.Environment,
        rng: RNGLike,
        ids: IdsLike,
        sink: EventSinkLike,
        run_id: str,
        start_dt: datetime,
        pages: Sequence[PageProfile],
        cfg: VisitorsConfig | None = None,
        tracking: TrackingConfig | None = None,
        experiment: ExperimentConfig | None = None,
        transport: TransportConfig | None = None,
    ) -> None:
        if not pages:
            raise ValueError("VisitorsService needs at least one page")
        self.env = env
        self.rng = rng
        self.ids = ids
        self.sink = sink
        self.run_id = run_id
        self.start_dt = start_dt
        self.pages = list(pages)
        self.cfg = cfg or VisitorsConfig()
        self.tracking = tracking or TrackingConfig()
        self.experiment = experiment or ExperimentConfig()
        self.transport = transport or TransportConfig()

        self.visitors: list[Visitor] = []
        self.visits_started = 0
        self.visits_finished = 0
        self._logger = get_logger(__name__)

    # ----------------------------
    # Arrivals
    # ----------------------------

    def start(self, num_visits: int) -> simpy.Process:
        return self.env.process(self._arrivals(int(num_visits)))

    def _arrivals(self, num_visits: int):
        mean = float(self.cfg.arrival_mean_seconds)
        for _ in range(num_visits):
            if mean > 0:
                yield self.env.timeout(self.rng.expovariate(1.0 / mean))
            self.spawn(self._pick_visitor())

    def _pick_visitor(self) -> Visitor:
        if self.visitors and self.rng.random() < self.cfg.returning_share:
            return self.rng.choice(self.visitors)
        v = Visitor(visitor_id=self.ids.next_id("vis"))
        self.visitors.append(v)
        return v

    def spawn(self, visitor: Visitor, page: PageProfile | None = None) -> simpy.Process:
        self.visits_started += 1
        visitor.visits += 1
        return self.env.process(self._visit(visitor, page or self.rng.choice(self.pages)))

    # ----------------------------
    # One visit
    # ----------------------------

    def _visit(self, visitor: Visitor, page: PageProfile):
        cfg = self.cfg
        rng = self.rng

        recorder = HostEventRecorder(
            sink=self.sink, ids=self.ids, run_id=self.run_id, visitor_id=visitor.visitor_id
        )
        host = SimPlatform(
            env=self.env,
            start_dt=self.start_dt,
            pathname=page.context.path,
            session_storage=InMemoryStorage(),
            local_storage=visitor.local_storage,
            beacon_supported=rng.random() < cfg.beacon_share,
            document_height=page.document_height,
            viewport_height=page.viewport_height,
            sink=recorder,
        )
        transport = EventTransport(
            platform=host,
            poster=RecordingPoster(recorder, host),
            collector_url=self.transport.collector_url,
        )
        analytics = ContentAnalytics(AnalyticsContext(page.industry, page.stage), transport)

        PageTracker(platform=host, page=page.context, analytics=analytics).mount(ViewOnceState())
        scroll = ScrollTracker(
            host,
            milestones=self.tracking.scroll_milestones,
            throttle_ms=self.tracking.scroll_throttle_ms,
        )
        timer = TimeTracker(
            host,
            milestones=self.tracking.time_milestones,
            interval_ms=self.tracking.tick_interval_ms,
        )
        cta = CtaButton(
            label=cfg.cta_label,
            context=page.context,
            platform=host,
            assigner=VariantAssigner(host, rng),
            config=self.experiment,
        )
        debouncer = Debouncer(clock=host.now, window_ms=COPY_DEBOUNCE_MS)
        cards = [
            QuestionCard(
                category=QUESTION_CATEGORIES[i % len(QUESTION_CATEGORIES)],
                question=f"Question {i + 1}",
                answer=f"Answer {i + 1}",
                analytics=analytics,
                platform=host,
                debouncer=debouncer,
            )
            for i in range(page.questions)
        ]

        scroll.mount()
        timer.mount()
        variant = cta.mount()

        dwell_s = rng.expovariate(1.0 / cfg.dwell_mean_seconds) if cfg.dwell_mean_seconds > 0 else 0.0
        target_depth = rng.uniform(0.0, 100.0)
        hide_at = rng.uniform(0.0, dwell_s) if rng.random() < cfg.hide_probability else None

        depth = 0.0
        elapsed = 0.0
        step_s = max(0.001, float(cfg.scroll_step_seconds))
        while elapsed < dwell_s:
            step = min(step_s, dwell_s - elapsed)
            yield self.env.timeout(step)
            elapsed += step

            if depth < target_depth:
                depth = min(target_depth, depth + rng.uniform(5.0, 20.0))
                host.scroll_to_percent(depth)

            if hide_at is not None and elapsed >= hide_at:
                hide_at = None
                host.set_visibility(HIDDEN)
                away = rng.expovariate(1.0 / cfg.hide_mean_seconds) if cfg.hide_mean_seconds > 0 else 0.0
                yield self.env.timeout(away)
                host.set_visibility(VISIBLE)

            if cards:
                self._interact(rng.choice(cards))

        if rng.random() < cfg.cta_click_rate.get(variant, 0.0):
            cta.click()

        host.unload()
        timer.unmount()
        scroll.unmount()

        self.visits_finished += 1
        self._logger.debug(
            "visit finished",
            extra={
                "feature": "visitors",
                "run_id": self.run_id,
                "page_path": page.context.path,
            },
        )

    def _interact(self, card: QuestionCard) -> None:
        rng = self.rng
        if rng.random() < self.cfg.expand_probability:
            card.toggle()
        if rng.random() < self.cfg.copy_probability:
            card.copy()
        if rng.random() < self.cfg.rate_probability:
            card.rate(1 if rng.random() < 0.2 else 5)
