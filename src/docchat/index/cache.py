"""Time-bounded memoisation of similarity searches."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from docchat.models import SearchOptions, SearchResult

LOGGER = logging.getLogger(__name__)

DEFAULT_TTL = 300.0


@dataclass(frozen=True, slots=True)
class CacheEntry:
    key: str
    results: Tuple[SearchResult, ...]
    created_at: float


class RetrievalCache:
    """TTL cache of search results keyed by query text and search options.

    Entries are replaced whole under a lock, so readers never see a partial
    result set. Expired entries are swept lazily on every write. Uploads and
    deletions do not invalidate entries: results may be stale for up to
    ``ttl`` seconds.
    """

    def __init__(self, ttl: float = DEFAULT_TTL, *, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    @staticmethod
    def make_key(query: str, options: Optional[SearchOptions] = None) -> str:
        return (options or SearchOptions()).cache_key(query)

    def get(self, key: str) -> Optional[List[SearchResult]]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.created_at >= self.ttl:
                return None
            return list(entry.results)

    def set(self, key: str, results: List[SearchResult]) -> None:
        entry = CacheEntry(key=key, results=tuple(results), created_at=self._clock())
        with self._lock:
            self._entries[key] = entry
            self._sweep_locked()

    def get_or_compute(
        self,
        query: str,
        options: Optional[SearchOptions],
        compute: Callable[[], List[SearchResult]],
    ) -> Tuple[List[SearchResult], bool]:
        """Return ``(results, hit)``; on a miss ``compute`` runs without the lock held."""
        key = self.make_key(query, options)
        cached = self.get(key)
        if cached is not None:
            LOGGER.info("Cache hit for query (%d chunks)", len(cached))
            return cached, True
        results = compute()
        self.set(key, results)
        return list(results), False

    def sweep(self) -> int:
        with self._lock:
            return self._sweep_locked()

    def _sweep_locked(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now - entry.created_at >= self.ttl]
        for key in expired:
            del self._entries[key]
        if expired:
            LOGGER.debug("Swept %d expired cache entries", len(expired))
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        LOGGER.info("Retrieval cache cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
