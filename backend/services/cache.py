"""Injectable key/value cache with per-entry expiry."""

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Protocol


class TTLCache(Protocol):
    """Minimal cache interface the services depend on."""

    def get(self, key: str) -> Any | None:
        ...

    def set(self, key: str, value: Any, ttl: timedelta) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class InMemoryTTLCache:
    """Process-local TTLCache implementation.

    Entries expire lazily on read. ``clock`` is injectable for tests.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._data: dict[str, tuple[Any, datetime]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            value, expires_at = item
            if self._clock() >= expires_at:
                del self._data[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: timedelta) -> None:
        with self._lock:
            self._data[key] = (value, self._clock() + ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


def namespaced_key(namespace: str, provider: str, key: str) -> str:
    """Build a cache key scoped by namespace and provider."""
    return f"{namespace}/{provider}/{key}"
