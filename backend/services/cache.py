"""Simple in-memory TTL cache. No Redis needed.

TTL belongs to the cache instance, not to entries: each upstream operation
family gets its own cache with its own TTL constant. Entries expire lazily
on read. An optional ``max_entries`` cap evicts the least recently used
entry so long-running processes don't grow without bound on high key
cardinality (e.g. many distinct search terms).

Note: each uvicorn worker has its own caches. With --workers 2, data may be
fetched twice (once per worker).
"""

import time
from collections import OrderedDict
from typing import Any, Callable
from urllib.parse import quote

FIRST_PAGE = "first"


class TTLCache:
    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries or None
        self._clock = clock
        self._store: OrderedDict[str, tuple[float, Any]] = OrderedDict()

    def get(self, key: str) -> Any | None:
        if key in self._store:
            inserted_at, value = self._store[key]
            if self._clock() - inserted_at <= self.ttl_seconds:
                self._store.move_to_end(key)
                return value
            del self._store[key]
        return None

    def set(self, key: str, value: Any) -> None:
        self._store[key] = (self._clock(), value)
        self._store.move_to_end(key)
        if self.max_entries is not None:
            while len(self._store) > self.max_entries:
                self._store.popitem(last=False)

    def clear(self) -> None:
        self._store.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._store

    def __len__(self) -> int:
        return len(self._store)


def cache_key(operation: str, *args: str | None) -> str:
    """Build a cache key from an operation name and its arguments.

    A missing pagination cursor becomes ``"first"`` so the first page and
    later pages never collide. Each argument is percent-encoded, so a ``:``
    inside an argument can't shift the boundary between parts. Values are
    used as given: callers normalize once and send the same values upstream.
    """
    parts = [operation]
    for arg in args:
        parts.append(FIRST_PAGE if arg is None or arg == "" else quote(str(arg), safe=""))
    return ":".join(parts)
