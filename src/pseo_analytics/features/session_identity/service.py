from __future__ import annotations

from pseo_analytics.core.ids import random_session_token
from pseo_analytics.features.platform.storage import read_storage, write_storage
from pseo_analytics.features.platform.types import Platform, StorageUnavailableError

SESSION_STORAGE_KEY = "pseo_analytics_session"


class SessionIdentity:
    """
    Pseudonymous per-tab session id.

    Generated once per tab and cached in session storage, so it never outlives
    the tab. The collector hashes it server-side.

    Returns "" when there is no usable session storage; callers treat that as
    "do not send" rather than an error.
    """

    def __init__(self, platform: Platform | None) -> None:
        self._platform = platform

    def get_session_id(self) -> str:
        storage = self._platform.session_storage if self._platform is not None else None
        if storage is None:
            return ""

        # Probe first so a blocked store yields the sentinel instead of a fresh
        # id on every call.
        try:
            existing = storage.get_item(SESSION_STORAGE_KEY)
        except StorageUnavailableError:
            return ""
        if existing:
            return existing

        session_id = random_session_token()
        if not write_storage(storage, SESSION_STORAGE_KEY, session_id):
            return ""
        return read_storage(storage, SESSION_STORAGE_KEY) or session_id
