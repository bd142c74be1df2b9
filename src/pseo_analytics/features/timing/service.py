from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from pseo_analytics.features.platform.types import Callback, Platform


class Throttle:
    """
    Leading-edge throttle: the first call runs immediately, further calls are
    dropped until limit_ms has passed on the platform clock.
    """

    def __init__(self, platform: Platform, fn: Callback, limit_ms: float) -> None:
        self._platform = platform
        self._fn = fn
        self._limit_ms = float(limit_ms)
        self._in_throttle = False
        self._timer: int | None = None

    def __call__(self) -> None:
        if self._in_throttle:
            return
        self._fn()
        self._in_throttle = True
        self._timer = self._platform.set_timeout(self._release, self._limit_ms)

    def _release(self) -> None:
        self._in_throttle = False
        self._timer = None

    def cancel(self) -> None:
        if self._timer is not None:
            self._platform.clear_timer(self._timer)
        self._release()


@dataclass
class Debouncer:
    """
    Per-key "fired recently" guard with an explicit owner.

    should_fire(key) is True at most once per window_ms for each key.
    """

    clock: Callable[[], float]
    window_ms: float
    _last_fired: dict[str, float] = field(default_factory=dict, init=False, repr=False)

    def should_fire(self, key: str) -> bool:
        now = float(self.clock())
        last = self._last_fired.get(key)
        if last is not None and now - last < self.window_ms:
            return False
        self._last_fired[key] = now
        return True

    def reset(self, key: str | None = None) -> None:
        if key is None:
            self._last_fired.clear()
        else:
            self._last_fired.pop(key, None)

    def __len__(self) -> int:
        return len(self._last_fired)
