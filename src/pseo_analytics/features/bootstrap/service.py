from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import simpy

from pseo_analytics.core.config import AnalyticsConfig
from pseo_analytics.core.ids import IdsService, deterministic_run_id_from_config
from pseo_analytics.core.logging import get_logger
from pseo_analytics.core.rng import RNG
from pseo_analytics.core.types import RunContext
from pseo_analytics.features.persistence.duckdb_adapter import DuckDBAdapter
from pseo_analytics.features.persistence.service import PersistenceService, RecordedEvent
from pseo_analytics.features.visitors.service import VisitorsService
from pseo_analytics.features.visitors.types import parse_pages, parse_visitors_config

RUN_STARTED = "run_started"
RUN_FINISHED = "run_finished"


@dataclass(frozen=True)
class BootstrapResult:
    ctx: RunContext
    duckdb_path: str
    visits: int = 0


def bootstrap_run(cfg: AnalyticsConfig, config_path: str | None = None) -> BootstrapResult:
    raw: dict[str, Any] = cfg.raw if isinstance(cfg.raw, dict) else {}

    # ----- run identity -----
    run_id = deterministic_run_id_from_config(raw) if cfg.run.run_id == "auto" else cfg.run.run_id
    logger = get_logger("pseo_analytics", cfg.logging.level)

    rng = RNG(cfg.run.seed)
    ids = IdsService(run_id=run_id)

    start_dt_utc = datetime.fromisoformat(cfg.run.start_date).replace(tzinfo=UTC)
    ctx = RunContext(run_id=run_id, seed=cfg.run.seed, start_dt_utc=start_dt_utc)

    env = simpy.Environment()

    # ----- cold storage -----
    adapter = DuckDBAdapter(path=cfg.storage.duckdb_path, clean_slate=cfg.storage.clean_slate)
    persistence = PersistenceService(
        adapter=adapter,
        every_n_events=cfg.storage.flush.every_n_events,
        or_every_seconds=cfg.storage.flush.or_every_seconds,
    )
    persistence.open()
    persistence.start_periodic_flush(env)

    # ----- visitors -----
    visitors = VisitorsService(
        env=env,
        rng=rng,
        ids=ids,
        sink=persistence,
        run_id=ctx.run_id,
        start_dt=start_dt_utc,
        pages=parse_pages(raw.get("pages")),
        cfg=parse_visitors_config(raw.get("visitors")),
        tracking=cfg.tracking,
        experiment=cfg.experiment,
        transport=cfg.transport,
    )
    visitors.start(cfg.run.num_visitors)

    # ----- run lifecycle -----
    try:
        persistence.emit(
            RecordedEvent(
                run_id=ctx.run_id,
                event_id=ids.next_id("evt"),
                ts_utc=start_dt_utc,
                sim_time_s=float(env.now),
                channel="run",
                event_type=RUN_STARTED,
                payload={"config_path": config_path} if config_path else None,
            )
        )

        horizon_s = float(cfg.run.horizon_hours) * 3600.0
        logger.info(
            "starting simulation",
            extra={"run_id": ctx.run_id, "until_s": horizon_s, "num_visitors": cfg.run.num_visitors},
        )
        env.run(until=horizon_s)

        persistence.emit(
            RecordedEvent(
                run_id=ctx.run_id,
                event_id=ids.next_id("evt"),
                ts_utc=start_dt_utc + timedelta(seconds=horizon_s),
                sim_time_s=float(env.now),
                channel="run",
                event_type=RUN_FINISHED,
                payload={
                    "visits_started": visitors.visits_started,
                    "visits_finished": visitors.visits_finished,
                },
            )
        )
        persistence.flush(reason="bootstrap_finish")
        logger.info(
            "simulation finished",
            extra={"run_id": ctx.run_id, "visits_finished": visitors.visits_finished},
        )
    finally:
        persistence.close()

    return BootstrapResult(
        ctx=ctx, duckdb_path=cfg.storage.duckdb_path, visits=visitors.visits_started
    )
