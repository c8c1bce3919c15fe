"""Small time-bounded cache for tracker lookups."""

import time
from typing import Any, Callable, Optional


class TTLCache:
    """In-memory key/value cache whose entries expire after ``ttl_seconds``.

    The clock is injectable so tests can move time forward without sleeping.
    Concurrent writers for the same key are harmless: the values are
    deterministic for a given key, so last write wins.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries = {}

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None

        value, written_at = entry
        if self._clock() - written_at >= self.ttl_seconds:
            self._entries.pop(key, None)
            return None

        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (value, self._clock())

    def evict(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self):
        return len(self._entries)
