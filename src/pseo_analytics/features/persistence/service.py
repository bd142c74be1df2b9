from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from pseo_analytics.core.logging import get_logger

from .duckdb_adapter import DuckDBAdapter

# tag-manager params that carry the numeric value of an event
_VALUE_KEYS = ("depth", "seconds", "ratingValue")


@dataclass(frozen=True)
class RecordedEvent:
    """
    One event as it left a simulated page, on either channel.
    """

    run_id: str
    event_id: str
    ts_utc: datetime
    sim_time_s: float

    channel: str
    event_type: str

    visitor_id: str | None = None
    session_id: str | None = None
    page_path: str | None = None
    industry_slug: str | None = None
    stage_slug: str | None = None
    page_type: str | None = None
    variant: str | None = None
    category: str | None = None

    value_num: float | None = None
    payload: dict[str, Any] | None = None


class PersistenceService:
    """
    Buffered event sink + flush policy.
    - Hot: buffer in memory
    - Cold: DuckDB
    """

    def __init__(
        self,
        *,
        adapter: DuckDBAdapter,
        every_n_events: int,
        or_every_seconds: float,
    ) -> None:
        self.adapter = adapter
        self.every_n_events = int(every_n_events)
        self.or_every_seconds = float(or_every_seconds)

        self._buf: list[RecordedEvent] = []
        self._logger = get_logger(__name__)

        self._is_open = False
        self._periodic_proc_started = False

    def open(self) -> None:
        if self._is_open:
            return
        self.adapter.open()
        self._is_open = True

    def emit(self, e: RecordedEvent) -> None:
        if not self._is_open:
            raise RuntimeError("PersistenceService not open. Call open() during bootstrap.")

        self._buf.append(e)

        if self.every_n_events > 0 and len(self._buf) >= self.every_n_events:
            self.flush(reason="count")

    def flush(self, *, reason: str) -> None:
        if not self._buf:
            return

        rows = [self._event_to_row(e) for e in self._buf]
        self._buf.clear()

        result = self.adapter.write_events(rows)

        # Structured log (no wall-clock timestamps for determinism; duration is ok)
        self._logger.info(
            "flush",
            extra={
                "feature": "persistence",
                "reason": reason,
                "num_events": result.num_events,
                "duration_ms": result.duration_ms,
            },
        )

    def close(self) -> None:
        if not self._is_open:
            return
        # final flush
        self.flush(reason="shutdown")
        self.adapter.close()
        self._is_open = False

    def start_periodic_flush(self, env) -> None:
        """
        Start a SimPy process that flushes every `or_every_seconds`.
        Call once during bootstrap after env is created.
        """
        if self._periodic_proc_started:
            return
        self._periodic_proc_started = True
        env.process(self._periodic_flush_proc(env))

    def _periodic_flush_proc(self, env):
        while True:
            yield env.timeout(self.or_every_seconds)
            self.flush(reason="timer")

    @staticmethod
    def _event_to_row(e: RecordedEvent) -> tuple:
        payload_json = (
            json.dumps(e.payload, sort_keys=True, separators=(",", ":")) if e.payload else None
        )
        return (
            e.run_id,
            e.event_id,
            e.ts_utc,
            float(e.sim_time_s),
            e.visitor_id,
            e.session_id,
            e.channel,
            e.event_type,
            e.page_path,
            e.industry_slug,
            e.stage_slug,
            e.page_type,
            e.variant,
            e.category,
            e.value_num,
            payload_json,
        )


class EventSinkLike(Protocol):
    def emit(self, e: RecordedEvent) -> None: ...


class IdsLike(Protocol):
    def next_id(self, prefix: str) -> str: ...


class HostLike(Protocol):
    env: Any

    def current_time(self) -> datetime: ...
    def location(self) -> Any: ...


def _value_of(payload: Mapping[str, Any]) -> float | None:
    for key in _VALUE_KEYS:
        value = payload.get(key)
        if isinstance(value, int | float) and not isinstance(value, bool):
            return float(value)
    return None


class HostEventRecorder:
    """
    BeaconSink for one simulated visitor: turns whatever their page sends
    (collector beacons and tag-manager calls) into RecordedEvent rows.
    """

    def __init__(
        self,
        *,
        sink: EventSinkLike,
        ids: IdsLike,
        run_id: str,
        visitor_id: str,
    ) -> None:
        self._sink = sink
        self._ids = ids
        self._run_id = run_id
        self.visitor_id = visitor_id

    def record(
        self,
        *,
        channel: str,
        event_type: str,
        payload: Mapping[str, Any],
        host: HostLike,
    ) -> None:
        data = dict(payload)
        page_path = data.get("page_path") or data.get("location") or host.location().pathname
        self._sink.emit(
            RecordedEvent(
                run_id=self._run_id,
                event_id=self._ids.next_id("evt"),
                ts_utc=host.current_time(),
                sim_time_s=float(host.env.now),
                channel=channel,
                event_type=event_type,
                visitor_id=self.visitor_id,
                session_id=data.get("sessionId"),
                page_path=str(page_path) if page_path is not None else None,
                industry_slug=data.get("industrySlug") or data.get("industry"),
                stage_slug=data.get("stageSlug") or data.get("stage"),
                page_type=data.get("pageType"),
                variant=data.get("variant"),
                category=data.get("category"),
                value_num=_value_of(data),
                payload=data,
            )
        )
