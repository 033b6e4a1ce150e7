"""In-process cache for tracker GET responses."""

import threading
import time
from typing import Any, Callable

DAY_IN_SECONDS = 24 * 60 * 60


class ResponseCache:
    """Expiring map from request URL to decoded JSON payload.

    Keys never include credentials; adapters send those in headers. Shared
    between server threads, so access is serialized.
    """

    def __init__(
        self,
        ttl: float = DAY_IN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    def put(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = (self._clock() + self.ttl, value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
