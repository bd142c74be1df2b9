from __future__ import annotations

import json
import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from pseo_analytics.core.config import TrackingConfig
from pseo_analytics.core.logging import get_logger
from pseo_analytics.features.platform.storage import read_storage, remove_storage, write_storage
from pseo_analytics.features.platform.types import (
    BEFORE_UNLOAD,
    VISIBILITY_CHANGE,
    VISIBLE,
    Platform,
)
from pseo_analytics.features.transport.service import track_tag_event

TIME_ON_PAGE_EVENT = "time_on_page"
TIME_STORAGE_KEY = "pseo_time_tracker"

_logger = get_logger(__name__)


@dataclass(frozen=True)
class TimeTrackerState:
    """What survives a reload in the same tab."""

    path: str
    elapsed: float
    tracked_milestones: tuple[int, ...]

    def to_json(self) -> str:
        return json.dumps(
            {
                "path": self.path,
                "elapsed": self.elapsed,
                "trackedMilestones": list(self.tracked_milestones),
            },
            separators=(",", ":"),
        )

    @classmethod
    def from_json(cls, raw: str) -> TimeTrackerState:
        data: Any = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("time tracker state must be an object")
        elapsed = float(data["elapsed"])
        if not math.isfinite(elapsed) or elapsed < 0:
            raise ValueError("time tracker elapsed must be a finite, non-negative number")
        return cls(
            path=str(data["path"]),
            elapsed=elapsed,
            tracked_milestones=tuple(int(m) for m in data["trackedMilestones"]),
        )


class TimeTracker:
    """
    Active time-on-page milestones.

    Time only accrues while the document is visible. A hidden tab still moves
    the last-tick mark forward so nothing is credited for the time away.
    State is mirrored to session storage (same path only) on every milestone,
    on hide, on beforeunload and on unmount, so a reload resumes instead of
    restarting and never re-fires a milestone.
    """

    def __init__(
        self,
        platform: Platform,
        *,
        milestones: Sequence[int] | None = None,
        interval_ms: float | None = None,
    ) -> None:
        defaults = TrackingConfig()
        self._platform = platform
        self.milestones: tuple[int, ...] = tuple(sorted(milestones or defaults.time_milestones))
        self._interval_ms = defaults.tick_interval_ms if interval_ms is None else interval_ms

        self.fired: set[int] = set()
        self.active_seconds = 0.0
        self._last_tick_ms = platform.now()
        self._visible = True
        self._interval: int | None = None

    @property
    def page_path(self) -> str:
        return self._platform.location().pathname

    # ----------------------------
    # Lifecycle
    # ----------------------------

    def mount(self) -> None:
        if self._interval is not None:
            return
        self.restore()
        self._visible = self._platform.visibility_state() == VISIBLE

        self._platform.add_listener(VISIBILITY_CHANGE, self._on_visibility_change)
        self._platform.add_listener(BEFORE_UNLOAD, self.persist)

        self._last_tick_ms = self._platform.now()
        self._interval = self._platform.set_interval(self.tick, self._interval_ms)

    def unmount(self) -> None:
        if self._interval is None:
            return
        self._platform.remove_listener(VISIBILITY_CHANGE, self._on_visibility_change)
        self._platform.remove_listener(BEFORE_UNLOAD, self.persist)
        self._platform.clear_timer(self._interval)
        self._interval = None
        self.persist()

    # ----------------------------
    # Callbacks
    # ----------------------------

    def tick(self) -> None:
        now = self._platform.now()
        if not self._visible:
            self._last_tick_ms = now
            return

        self.active_seconds += (now - self._last_tick_ms) / 1000.0
        self._last_tick_ms = now

        elapsed = math.floor(self.active_seconds)
        for milestone in self.milestones:
            if elapsed >= milestone and milestone not in self.fired:
                self.fired.add(milestone)
                track_tag_event(
                    self._platform,
                    TIME_ON_PAGE_EVENT,
                    {"seconds": milestone, "page_path": self.page_path, "was_visible": True},
                )
                self.persist()

    def _on_visibility_change(self) -> None:
        self._visible = self._platform.visibility_state() == VISIBLE
        if self._visible:
            self._last_tick_ms = self._platform.now()
        else:
            self.persist()

    # ----------------------------
    # Session storage
    # ----------------------------

    def state(self) -> TimeTrackerState:
        return TimeTrackerState(
            path=self.page_path,
            elapsed=self.active_seconds,
            tracked_milestones=tuple(sorted(self.fired)),
        )

    def persist(self) -> None:
        write_storage(self._platform.session_storage, TIME_STORAGE_KEY, self.state().to_json())

    def restore(self) -> bool:
        storage = self._platform.session_storage
        raw = read_storage(storage, TIME_STORAGE_KEY)
        if not raw:
            return False
        try:
            saved = TimeTrackerState.from_json(raw)
        except (ValueError, KeyError, TypeError):
            _logger.debug("discarding corrupt time tracker state", extra={"feature": "time_tracker"})
            remove_storage(storage, TIME_STORAGE_KEY)
            return False

        if saved.path != self.page_path:
            remove_storage(storage, TIME_STORAGE_KEY)
            return False

        self.active_seconds = saved.elapsed
        self.fired.update(saved.tracked_milestones)
        return True
