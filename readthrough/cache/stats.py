"""
Cache statistics and introspection.
"""
import threading
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, Optional

from .core import NamespaceConfig
from .store import EntryStore


class NamespaceCounters:
    """Thread-safe access counters for one namespace."""

    FIELDS = (
        "hits_fresh",
        "hits_stale",
        "misses",
        "refreshes",
        "refresh_failures",
        "load_failures",
    )

    def __init__(self):
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {name: 0 for name in self.FIELDS}
        self.last_refresh_error: Optional[str] = None

    def incr(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counts[name] += amount

    def refresh_failed(self, description: Optional[str]) -> None:
        with self._lock:
            self._counts["refresh_failures"] += 1
            self.last_refresh_error = description

    def snapshot(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counts)


@dataclass
class NamespaceStats:
    """Point-in-time statistics for one namespace."""
    namespace: str
    entries: int
    max_entries: int
    utilization: float
    hits_fresh: int
    hits_stale: int
    misses: int
    hit_rate: float
    expired_count: int
    stale_count: int
    total_hits: int
    refreshes: int
    refresh_failures: int
    load_failures: int
    evictions: int
    in_flight: int
    last_refresh_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def collect_namespace_stats(
    config: NamespaceConfig,
    store: EntryStore,
    counters: NamespaceCounters,
    now: datetime,
    in_flight: int = 0,
) -> NamespaceStats:
    """Build a NamespaceStats snapshot without touching any entry."""
    entries = store.snapshot()
    counts = counters.snapshot()

    total_hits = counts["hits_fresh"] + counts["hits_stale"]
    total_requests = total_hits + counts["misses"]
    hit_rate = (total_hits / total_requests * 100) if total_requests > 0 else 0

    return NamespaceStats(
        namespace=config.name,
        entries=len(entries),
        max_entries=config.max_entries,
        utilization=round(len(entries) / config.max_entries * 100, 1),
        hits_fresh=counts["hits_fresh"],
        hits_stale=counts["hits_stale"],
        misses=counts["misses"],
        hit_rate=round(hit_rate, 1),
        expired_count=sum(1 for _, e in entries if e.is_expired(now)),
        stale_count=sum(1 for _, e in entries if e.is_stale(now)),
        total_hits=sum(e.hit_count for _, e in entries),
        refreshes=counts["refreshes"],
        refresh_failures=counts["refresh_failures"],
        load_failures=counts["load_failures"],
        evictions=store.evictions,
        in_flight=in_flight,
        last_refresh_error=counters.last_refresh_error,
    )
