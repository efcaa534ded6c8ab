"""
Per-namespace entry storage with bounded size.
"""
import heapq
import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

from .core import CacheEntry

logger = logging.getLogger("cache.store")

DEFAULT_EVICTION_FRACTION = 0.1

EntryPredicate = Callable[[str, CacheEntry], bool]


class EntryStore:
    """
    Key -> CacheEntry mapping for a single namespace.

    No freshness policy lives here; the store only enforces its size cap.
    Every operation takes the store's own lock, so namespaces never contend
    with each other.

    Eviction removes the oldest entries by `created_at` (ties broken by lowest
    `hit_count`). When full, a batch of `max(1, max_entries * eviction_fraction)`
    entries is freed at once.
    """

    def __init__(
        self,
        namespace: str,
        max_entries: int,
        eviction_fraction: float = DEFAULT_EVICTION_FRACTION,
    ):
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1 (got {max_entries})")
        if not 0 <= eviction_fraction <= 1:
            raise ValueError(f"eviction_fraction must be in [0, 1] (got {eviction_fraction})")
        self.namespace = namespace
        self.max_entries = max_entries
        self._batch_size = max(1, int(max_entries * eviction_fraction))
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._evictions = 0

    def read(self, key: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def write(self, key: str, entry: CacheEntry) -> int:
        """
        Insert or replace an entry.

        Returns:
            Number of entries evicted to make room
        """
        with self._lock:
            evicted = 0
            if key not in self._entries and len(self._entries) >= self.max_entries:
                evicted = self._evict_locked()
            self._entries[key] = entry
        return evicted

    def record_hit(self, key: str, expected: CacheEntry) -> Optional[CacheEntry]:
        """
        Bump the hit counter of `key` if it still holds the write `expected`
        came from.

        Concurrent readers each replace the entry with a bumped copy, so the
        match is on the write (same value and `created_at`), not on the object.

        Returns the updated entry, or None if the entry was replaced by a new
        write or removed in the meantime.
        """
        with self._lock:
            current = self._entries.get(key)
            if current is None or not current.same_write(expected):
                return None
            updated = current.with_hit()
            self._entries[key] = updated
            return updated

    def remove(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def remove_matching(self, predicate: EntryPredicate) -> int:
        """Remove every entry for which `predicate(key, entry)` is true."""
        with self._lock:
            to_delete = [k for k, e in self._entries.items() if predicate(k, e)]
            for key in to_delete:
                del self._entries[key]
            return len(to_delete)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def snapshot(self) -> List[Tuple[str, CacheEntry]]:
        """Point-in-time copy of the store contents."""
        with self._lock:
            return list(self._entries.items())

    @property
    def evictions(self) -> int:
        """Total entries evicted over the store's lifetime."""
        with self._lock:
            return self._evictions

    def _evict_locked(self) -> int:
        # Caller holds self._lock
        count = min(self._batch_size, len(self._entries))
        victims = heapq.nsmallest(
            count,
            self._entries.items(),
            key=lambda item: (item[1].created_at, item[1].hit_count),
        )
        for key, _ in victims:
            del self._entries[key]
        self._evictions += len(victims)
        logger.debug(
            f"Evicted {len(victims)} entries from '{self.namespace}': "
            f"{[key for key, _ in victims]}"
        )
        return len(victims)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries
