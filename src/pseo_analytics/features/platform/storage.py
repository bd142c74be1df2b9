from __future__ import annotations

from pseo_analytics.core.logging import get_logger

from .types import Storage, StorageUnavailableError

_logger = get_logger(__name__)


class InMemoryStorage:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._items)


class BlockedStorage:
    """Storage that refuses every access, like Safari private mode or a full quota."""

    def get_item(self, key: str) -> str | None:
        raise StorageUnavailableError(f"storage blocked (get {key!r})")

    def set_item(self, key: str, value: str) -> None:
        raise StorageUnavailableError(f"storage blocked (set {key!r})")

    def remove_item(self, key: str) -> None:
        raise StorageUnavailableError(f"storage blocked (remove {key!r})")


# ----------------------------
# Never-raising accessors
# ----------------------------


def read_storage(storage: Storage | None, key: str) -> str | None:
    if storage is None:
        return None
    try:
        return storage.get_item(key)
    except StorageUnavailableError:
        _logger.debug("storage read failed", exc_info=True, extra={"feature": "storage"})
        return None


def write_storage(storage: Storage | None, key: str, value: str) -> bool:
    if storage is None:
        return False
    try:
        storage.set_item(key, value)
        return True
    except StorageUnavailableError:
        _logger.debug("storage write failed", exc_info=True, extra={"feature": "storage"})
        return False


def remove_storage(storage: Storage | None, key: str) -> None:
    if storage is None:
        return
    try:
        storage.remove_item(key)
    except StorageUnavailableError:
        _logger.debug("storage remove failed", exc_info=True, extra={"feature": "storage"})
