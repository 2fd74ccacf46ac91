"""Tag-aware in-memory cache.

Entries expire by TTL and carry tags so related entries (everything of one
service, everything fed by one cluster) can be dropped together. The
wildcard tag ``*`` matches every entry.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Protocol

WILDCARD_TAG = "*"
SERVICE_TAG_PREFIX = "service:"
CLUSTER_TAG_PREFIX = "cluster:"


def service_tag(service_name: str) -> str:
    return SERVICE_TAG_PREFIX + service_name


def cluster_tag(cluster_id: str) -> str:
    return CLUSTER_TAG_PREFIX + cluster_id


@dataclass(frozen=True)
class CacheEntry:
    """A cached value. ``value`` is None for a remembered failure."""

    value: Any
    expires_at: float
    tags: frozenset[str] = field(default_factory=frozenset)


class TagCache(Protocol):
    def get(self, key: str) -> CacheEntry | None: ...

    def set(self, key: str, value: Any, ttl: float, tags: Iterable[str] = ()) -> None: ...

    def remove(self, key: str) -> None: ...

    def remove_by_tag(self, tag: str) -> int: ...


class MemoryTagCache:
    """Thread-safe ``TagCache`` backed by a dict.

    ``get`` returns the entry rather than the value so a cached failure
    (value None) is distinguishable from a miss.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[key]
                return None
            return entry

    def set(self, key: str, value: Any, ttl: float, tags: Iterable[str] = ()) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        entry = CacheEntry(value=value, expires_at=self._clock() + ttl, tags=frozenset(tags))
        with self._lock:
            self._entries[key] = entry

    def remove(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def remove_by_tag(self, tag: str) -> int:
        """Drop every entry carrying ``tag`` and return how many were dropped."""
        with self._lock:
            if tag == WILDCARD_TAG:
                count = len(self._entries)
                self._entries.clear()
                return count
            doomed = [key for key, entry in self._entries.items() if tag in entry.tags]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
