"""
Core cache data structures.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Optional


Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Timezone-aware current UTC time (default clock)."""
    return datetime.now(timezone.utc)


class CacheSource(Enum):
    """Source of a value returned by the cache."""
    FRESH = "fresh"       # Within TTL
    STALE = "stale"       # Past TTL but within stale window, revalidating
    UPSTREAM = "upstream" # Computed by the loader on this call


@dataclass(frozen=True)
class NamespaceConfig:
    """
    Caching policy for one namespace.

    Fixed for the lifetime of the namespace. `stale_grace_seconds` may be
    zero, in which case expired values are never served.
    """
    name: str
    ttl_seconds: float
    stale_grace_seconds: float = 0
    max_entries: int = 1000

    def __post_init__(self):
        if not self.name:
            raise ValueError("Namespace name must not be empty")
        if self.ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be > 0 (got {self.ttl_seconds} for '{self.name}')")
        if self.stale_grace_seconds < 0:
            raise ValueError(
                f"stale_grace_seconds must be >= 0 (got {self.stale_grace_seconds} for '{self.name}')"
            )
        if self.max_entries < 1:
            raise ValueError(f"max_entries must be >= 1 (got {self.max_entries} for '{self.name}')")

    @property
    def ttl(self) -> timedelta:
        return timedelta(seconds=self.ttl_seconds)

    @property
    def stale_grace(self) -> timedelta:
        return timedelta(seconds=self.stale_grace_seconds)


@dataclass(frozen=True)
class CacheEntry:
    """
    Represents a cached item with metadata for TTL and staleness tracking.

    Entries are immutable: hit accounting and refreshes replace the entry in
    its store, so a reader always sees value, timestamps and counter from the
    same write.
    """
    value: Any
    created_at: datetime
    expires_at: datetime
    stale_until: datetime
    hit_count: int = 0

    def __post_init__(self):
        if not (self.created_at <= self.expires_at <= self.stale_until):
            raise ValueError(
                "CacheEntry requires created_at <= expires_at <= stale_until "
                f"(got {self.created_at}, {self.expires_at}, {self.stale_until})"
            )

    @classmethod
    def create(cls, value: Any, now: datetime, config: NamespaceConfig) -> "CacheEntry":
        """Build a fresh entry for `value` computed at `now` under `config`."""
        expires_at = now + config.ttl
        return cls(
            value=value,
            created_at=now,
            expires_at=expires_at,
            stale_until=expires_at + config.stale_grace,
        )

    def age_seconds(self, now: datetime) -> float:
        """Seconds since the value was computed."""
        return (now - self.created_at).total_seconds()

    def is_fresh(self, now: datetime) -> bool:
        """Check if data is within its TTL."""
        return now < self.expires_at

    def is_stale(self, now: datetime) -> bool:
        """Check if data is past TTL but can still be served while revalidating."""
        return self.expires_at <= now < self.stale_until

    def is_expired(self, now: datetime) -> bool:
        """Check if data is no longer servable at all."""
        return now >= self.stale_until

    def source(self, now: datetime) -> CacheSource:
        """Determine the cache source status."""
        if self.is_fresh(now):
            return CacheSource.FRESH
        elif self.is_stale(now):
            return CacheSource.STALE
        else:
            return CacheSource.UPSTREAM

    def with_hit(self) -> "CacheEntry":
        return replace(self, hit_count=self.hit_count + 1)

    def same_write(self, other: "CacheEntry") -> bool:
        """True if both entries hold the value of one store write."""
        return self.value is other.value and self.created_at == other.created_at


@dataclass
class CacheMeta:
    """
    Metadata about a cache access, included in API responses.
    """
    last_updated: str  # ISO timestamp of when the value was computed
    cache_source: str  # "fresh", "stale", or "upstream"
    namespace: Optional[str] = None
    ttl_seconds: Optional[float] = None
    age_seconds: Optional[float] = None

    @classmethod
    def for_entry(
        cls,
        entry: CacheEntry,
        source: CacheSource,
        config: NamespaceConfig,
        now: datetime,
    ) -> "CacheMeta":
        return cls(
            last_updated=entry.created_at.isoformat(),
            cache_source=source.value,
            namespace=config.name,
            ttl_seconds=config.ttl_seconds,
            age_seconds=entry.age_seconds(now),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON response."""
        result = {
            "lastUpdated": self.last_updated,
            "cacheSource": self.cache_source,
            "cached": self.cache_source != CacheSource.UPSTREAM.value,
        }
        # Include debug info if available
        if self.namespace:
            result["_debug"] = {
                "namespace": self.namespace,
                "ttl": self.ttl_seconds,
                "age": round(self.age_seconds, 1) if self.age_seconds is not None else None,
            }
        return result


@dataclass
class CriticalKey:
    """A (namespace, key, loader) triple kept warm by the maintenance scheduler."""
    namespace: str
    key: str
    loader: Callable[[], Any] = field(repr=False)
