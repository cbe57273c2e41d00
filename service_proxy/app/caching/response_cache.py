"""
In-memory response cache for the proxy.

Entries are keyed by request fingerprint and live for a fixed TTL measured
from insertion. Reads never take the lock; writers serialize on it. A stale
entry behaves as absent and is reclaimed when an insert needs room or on
``purge_expired``.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from shared.logging import get_logger


DEFAULT_TTL_SECONDS = 10
DEFAULT_MAX_ENTRIES = 10_000


@dataclass(frozen=True)
class CachedResponse:
    """Complete upstream response body plus the status it arrived with."""

    body: bytes
    status_code: int
    inserted_at: float

    def age(self, now: float) -> float:
        return now - self.inserted_at


class ResponseCache:
    """Bounded TTL cache mapping request fingerprints to upstream responses."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")

        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.logger = get_logger("proxy.cache")
        self._clock = clock
        # Insertion-ordered: the first key is always the oldest insertion.
        self._entries: Dict[str, CachedResponse] = {}
        self._write_lock = threading.Lock()

        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def _is_fresh(self, entry: CachedResponse, now: float) -> bool:
        return entry.age(now) <= self.ttl_seconds

    def lookup(self, key: str) -> Optional[CachedResponse]:
        """Return the cached response for *key* if a fresh entry exists."""
        entry = self._entries.get(key)
        if entry is not None and self._is_fresh(entry, self._clock()):
            self._hits += 1
            return entry

        self._misses += 1
        return None

    def insert(self, key: str, body: bytes, status_code: int = 200) -> CachedResponse:
        """Store or replace the entry for *key*, resetting its age to zero."""
        with self._write_lock:
            now = self._clock()
            entry = CachedResponse(body=bytes(body), status_code=status_code, inserted_at=now)

            # Re-inserting moves the key to the young end of the order.
            self._entries.pop(key, None)
            if len(self._entries) >= self.max_entries:
                self._make_room(now)
            self._entries[key] = entry
            return entry

    def _make_room(self, now: float) -> None:
        """Evict until one slot is free. Caller holds the write lock."""
        self._purge_expired_locked(now)

        while len(self._entries) >= self.max_entries:
            oldest_key = next(iter(self._entries))
            del self._entries[oldest_key]
            self._evictions += 1

    def _purge_expired_locked(self, now: float) -> int:
        # Insertion order matches age order, so expired entries form a prefix.
        removed = 0
        while self._entries:
            oldest_key = next(iter(self._entries))
            if self._is_fresh(self._entries[oldest_key], now):
                break
            del self._entries[oldest_key]
            removed += 1
        self._evictions += removed
        return removed

    def purge_expired(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        with self._write_lock:
            removed = self._purge_expired_locked(self._clock())

        if removed:
            self.logger.debug("Purged expired cache entries", removed=removed)
        return removed

    def clear(self) -> None:
        """Drop all entries."""
        with self._write_lock:
            self._entries.clear()

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        lookups = self._hits + self._misses
        return {
            "entries": len(self._entries),
            "max_entries": self.max_entries,
            "ttl_seconds": self.ttl_seconds,
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
            "hit_ratio": round(self._hits / lookups, 4) if lookups else 0.0,
        }
