from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_SIGNUP_URL = "/auth"
DEFAULT_COLLECTOR_URL = "/api/analytics/event"


@dataclass(frozen=True)
class RunConfig:
    run_id: str
    seed: int
    start_date: str
    num_visitors: int
    horizon_hours: float = 24.0


@dataclass(frozen=True)
class FlushConfig:
    every_n_events: int = 5000
    or_every_seconds: float = 30.0


@dataclass(frozen=True)
class StorageConfig:
    duckdb_path: str
    clean_slate: bool = True
    flush: FlushConfig = FlushConfig()


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class TrackingConfig:
    scroll_milestones: tuple[int, ...] = (25, 50, 75, 100)
    scroll_throttle_ms: float = 100.0
    time_milestones: tuple[int, ...] = (30, 60, 120, 300)
    tick_interval_ms: float = 1000.0


@dataclass(frozen=True)
class ExperimentConfig:
    """
    CTA experiment defaults.

    signup_url is the CTA target when the caller supplies none. The
    PSEO_SIGNUP_URL environment variable wins over the YAML value.
    """

    signup_url: str = DEFAULT_SIGNUP_URL
    alt_label: str = "Start your PitchChat room"
    utm_source: str = "pseo"
    utm_medium: str = "cta"
    utm_campaign: str = "investor-questions"

    @classmethod
    def from_env(cls, *, signup_url: str | None = None) -> ExperimentConfig:
        resolved = (os.getenv("PSEO_SIGNUP_URL") or signup_url or DEFAULT_SIGNUP_URL).strip()
        return cls(signup_url=resolved)


@dataclass(frozen=True)
class TransportConfig:
    collector_url: str = DEFAULT_COLLECTOR_URL
    timeout_s: float = 2.0


@dataclass(frozen=True)
class AnalyticsConfig:
    run: RunConfig
    storage: StorageConfig
    logging: LoggingConfig
    tracking: TrackingConfig = TrackingConfig()
    experiment: ExperimentConfig = ExperimentConfig()
    transport: TransportConfig = TransportConfig()
    raw: dict[str, Any] = field(default_factory=dict)  # original parsed YAML (for hashing / debugging)


def load_yaml(path: str | Path) -> dict[str, Any]:
    p = Path(path)
    data = yaml.safe_load(p.read_text())
    if not isinstance(data, dict):
        raise ValueError("Config YAML must parse to a dict at the top level.")
    return data


def _milestones(values: Any, default: tuple[int, ...], name: str) -> tuple[int, ...]:
    if values is None:
        return default
    out = tuple(sorted({int(v) for v in values}))
    if not out or out[0] <= 0:
        raise ValueError(f"tracking.{name} must be a non-empty list of positive ints")
    return out


def parse_config(data: dict[str, Any]) -> AnalyticsConfig:
    for key in ["run", "storage", "logging"]:
        if key not in data:
            raise ValueError(f"Missing required top-level config section: '{key}'")

    run = data.get("run") or {}
    storage = data.get("storage") or {}
    logging_cfg = data.get("logging") or {}
    tracking = data.get("tracking") or {}
    experiment = data.get("experiment") or {}
    transport = data.get("transport") or {}
    flush = storage.get("flush") or {}

    run_cfg = RunConfig(
        run_id=str(run.get("run_id", "auto")),
        seed=int(run["seed"]),
        start_date=str(run["start_date"]),
        num_visitors=int(run["num_visitors"]),
        horizon_hours=float(run.get("horizon_hours", 24.0)),
    )
    if run_cfg.num_visitors < 0:
        raise ValueError("run.num_visitors must be >= 0")

    storage_cfg = StorageConfig(
        duckdb_path=str(storage["duckdb_path"]),
        clean_slate=bool(storage.get("clean_slate", True)),
        flush=FlushConfig(
            every_n_events=int(flush.get("every_n_events", 5000)),
            or_every_seconds=float(flush.get("or_every_seconds", 30.0)),
        ),
    )

    log_cfg = LoggingConfig(level=str(logging_cfg.get("level", "INFO")).upper())

    defaults = TrackingConfig()
    tracking_cfg = TrackingConfig(
        scroll_milestones=_milestones(
            tracking.get("scroll_milestones"), defaults.scroll_milestones, "scroll_milestones"
        ),
        scroll_throttle_ms=float(tracking.get("scroll_throttle_ms", defaults.scroll_throttle_ms)),
        time_milestones=_milestones(
            tracking.get("time_milestones"), defaults.time_milestones, "time_milestones"
        ),
        tick_interval_ms=float(tracking.get("tick_interval_ms", defaults.tick_interval_ms)),
    )
    if tracking_cfg.tick_interval_ms <= 0:
        raise ValueError("tracking.tick_interval_ms must be > 0")

    exp_defaults = ExperimentConfig()
    experiment_cfg = ExperimentConfig(
        signup_url=(
            os.getenv("PSEO_SIGNUP_URL")
            or str(experiment.get("signup_url", exp_defaults.signup_url))
        ).strip(),
        alt_label=str(experiment.get("alt_label", exp_defaults.alt_label)),
        utm_source=str(experiment.get("utm_source", exp_defaults.utm_source)),
        utm_medium=str(experiment.get("utm_medium", exp_defaults.utm_medium)),
        utm_campaign=str(experiment.get("utm_campaign", exp_defaults.utm_campaign)),
    )

    transport_cfg = TransportConfig(
        collector_url=(
            os.getenv("PSEO_COLLECTOR_URL")
            or str(transport.get("collector_url", DEFAULT_COLLECTOR_URL))
        ).strip(),
        timeout_s=float(transport.get("timeout_s", 2.0)),
    )

    return AnalyticsConfig(
        run=run_cfg,
        storage=storage_cfg,
        logging=log_cfg,
        tracking=tracking_cfg,
        experiment=experiment_cfg,
        transport=transport_cfg,
        raw=data,
    )


def load_config(path: str | Path) -> AnalyticsConfig:
    data = load_yaml(path)
    return parse_config(data)
