"""
Main cache orchestration: read-through with stale-while-revalidate and
deduplicated loading.
"""
import threading
import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait as wait_futures
from typing import Dict, Optional, Callable, Any, Set, Tuple

from config.settings import Settings, settings

from .core import CacheEntry, CacheMeta, CacheSource, Clock, NamespaceConfig, utcnow
from .coalescer import RefreshTicket, RequestCoalescer
from .errors import describe
from .policies import register_defaults
from .registry import NamespaceRegistry
from .stats import NamespaceCounters, NamespaceStats, collect_namespace_stats
from .store import EntryStore

logger = logging.getLogger("cache.manager")

Loader = Callable[[], Any]
KeyPredicate = Callable[[str], bool]


class CacheManager:
    """
    Main cache orchestration with:
    - Per-namespace TTL, stale window and size cap
    - Request coalescing: at most one loader in flight per (namespace, key)
    - Stale-while-revalidate for background refresh
    - Local, namespace/pattern based invalidation
    - Per-namespace statistics
    """

    def __init__(
        self,
        registry: Optional[NamespaceRegistry] = None,
        max_revalidation_workers: int = 4,
        coalesce_timeout: float = 30.0,
        clock: Clock = utcnow,
        enabled: bool = True,
    ):
        """
        Initialize the cache manager.

        Args:
            registry: Namespace registry (a new empty one if omitted)
            max_revalidation_workers: Thread pool size for background refresh
            coalesce_timeout: Timeout for waiting on an in-flight load
            clock: Returns the current time; injectable for tests
            enabled: When False, every get calls the loader and stores nothing
        """
        self._registry = registry if registry is not None else NamespaceRegistry()
        self._coalescer = RequestCoalescer(timeout=coalesce_timeout)
        self._clock = clock
        self._enabled = enabled

        # Background revalidation
        self._revalidation_pool = ThreadPoolExecutor(
            max_workers=max_revalidation_workers,
            thread_name_prefix="cache-revalidate",
        )
        self._pending: Set[Future] = set()
        self._pending_lock = threading.Lock()

        # Stats tracking
        self._counters: Dict[str, NamespaceCounters] = {}
        self._counters_lock = threading.Lock()

    @property
    def registry(self) -> NamespaceRegistry:
        return self._registry

    @property
    def coalescer(self) -> RequestCoalescer:
        return self._coalescer

    @property
    def enabled(self) -> bool:
        return self._enabled

    def register_namespace(self, config: NamespaceConfig) -> NamespaceConfig:
        return self._registry.register(config)

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def get(
        self,
        namespace: str,
        key: str,
        loader: Loader,
        force_refresh: bool = False,
    ) -> Any:
        """
        Get a value from cache or compute it with `loader`.

        Raises:
            UnknownNamespace: If the namespace is not registered
            Exception: Whatever `loader` raised, on a synchronous miss
            TimeoutError: If a miss waits on another caller's load for
                longer than `coalesce_timeout`
        """
        value, _ = self.get_with_meta(namespace, key, loader, force_refresh=force_refresh)
        return value

    def get_with_meta(
        self,
        namespace: str,
        key: str,
        loader: Loader,
        force_refresh: bool = False,
    ) -> Tuple[Any, CacheMeta]:
        """
        Get data from cache or compute it, with access metadata.

        Args:
            namespace: Registered namespace name
            key: Cache key within the namespace
            loader: Zero-argument function computing the value
            force_refresh: Ignore the stored entry and load synchronously

        Returns:
            (value, cache_meta) tuple

        Raises the same exceptions as `get`.
        """
        config, store = self._registry.lookup(namespace)
        counters = self._counters_for(namespace)

        if not self._enabled:
            value = self._load(config, store, key, loader, counters, store_result=False)
            return value, self._upstream_meta(config)

        if force_refresh:
            logger.info(f"FORCE REFRESH: {namespace}:{key}")
        else:
            now = self._clock()
            entry = store.read(key)
            source = entry.source(now) if entry is not None else CacheSource.UPSTREAM

            if entry is None:
                logger.info(f"CACHE MISS: {namespace}:{key}")

            # Cache hit - fresh
            elif source == CacheSource.FRESH:
                store.record_hit(key, entry)
                counters.incr("hits_fresh")
                logger.debug(
                    f"CACHE HIT (fresh): {namespace}:{key} "
                    f"[age={entry.age_seconds(now):.1f}s, hits={entry.hit_count + 1}]"
                )
                return entry.value, CacheMeta.for_entry(entry, CacheSource.FRESH, config, now)

            # Stale but still servable - refresh in background
            elif source == CacheSource.STALE:
                store.record_hit(key, entry)
                counters.incr("hits_stale")
                logger.info(
                    f"CACHE HIT (stale, revalidating): {namespace}:{key} "
                    f"[age={entry.age_seconds(now):.1f}s]"
                )
                self._trigger_background_refresh(config, store, key, loader, counters)
                return entry.value, CacheMeta.for_entry(entry, CacheSource.STALE, config, now)

            else:
                logger.info(f"CACHE EXPIRED: {namespace}:{key} [age={entry.age_seconds(now):.1f}s]")

        counters.incr("misses")
        value = self._load(config, store, key, loader, counters)
        return value, self._upstream_meta(config)

    def peek(self, namespace: str, key: str) -> Optional[Any]:
        """Return the value if it is fresh or stale-servable. Never loads."""
        _, store = self._registry.lookup(namespace)
        entry = store.read(key)
        if entry is None or entry.is_expired(self._clock()):
            return None
        return entry.value

    def entry(self, namespace: str, key: str) -> Optional[CacheEntry]:
        """The stored entry for `key` (immutable), or None."""
        _, store = self._registry.lookup(namespace)
        return store.read(key)

    def entry_meta(self, namespace: str, key: str) -> Optional[CacheMeta]:
        """Access metadata for the stored entry, or None. Never loads or counts."""
        config, store = self._registry.lookup(namespace)
        entry = store.read(key)
        if entry is None:
            return None
        now = self._clock()
        return CacheMeta.for_entry(entry, entry.source(now), config, now)

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    def set(self, namespace: str, key: str, value: Any) -> None:
        """Store `value` directly, e.g. when pre-warming."""
        config, store = self._registry.lookup(namespace)
        self._store(config, store, key, value)
        logger.debug(f"CACHE SET: {namespace}:{key}")

    def invalidate(self, namespace: str, key: str) -> bool:
        """
        Invalidate a specific cache entry.

        Returns:
            True if entry was found and removed
        """
        _, store = self._registry.lookup(namespace)
        removed = store.remove(key)
        if removed:
            logger.info(f"Invalidated cache: {namespace}:{key}")
        return removed

    def invalidate_namespace(self, namespace: str) -> int:
        """
        Clear every entry of a namespace.

        Returns:
            Number of entries cleared
        """
        _, store = self._registry.lookup(namespace)
        count = store.clear()
        logger.info(f"Cleared {count} cache entries from '{namespace}'")
        return count

    def invalidate_matching(self, namespace: str, predicate: KeyPredicate) -> int:
        """
        Invalidate all entries of a namespace whose key matches `predicate`.

        Returns:
            Number of entries invalidated
        """
        _, store = self._registry.lookup(namespace)
        count = store.remove_matching(lambda key, _entry: predicate(key))
        if count:
            logger.info(f"Invalidated {count} entries in '{namespace}'")
        return count

    def invalidate_prefix(self, namespace: str, prefix: str) -> int:
        """Invalidate every key of `namespace` starting with `prefix`."""
        return self.invalidate_matching(namespace, lambda key: key.startswith(prefix))

    def clear(self) -> int:
        """
        Clear all cache entries in every namespace.

        Returns:
            Number of entries cleared
        """
        count = sum(store.clear() for _, store in self._registry.items())
        logger.info(f"Cleared {count} cache entries")
        return count

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def sweep_expired(self, namespace: Optional[str] = None) -> Dict[str, int]:
        """
        Remove entries that are no longer servable even as stale.

        Returns:
            Removed count per namespace
        """
        if namespace is not None:
            targets = [self._registry.lookup(namespace)]
        else:
            targets = self._registry.items()

        now = self._clock()
        removed = {}
        for config, store in targets:
            removed[config.name] = store.remove_matching(
                lambda _key, entry: entry.is_expired(now)
            )
        return removed

    def drain(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for pending background refreshes.

        Returns:
            True if all of them completed within the timeout
        """
        with self._pending_lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait_futures(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        """Stop the background refresh pool."""
        self._revalidation_pool.shutdown(wait=wait)
        logger.info("Cache manager shut down")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def namespace_stats(self, namespace: str) -> NamespaceStats:
        config, store = self._registry.lookup(namespace)
        return collect_namespace_stats(
            config,
            store,
            self._counters_for(namespace),
            self._clock(),
            in_flight=self._coalescer.in_flight_count(namespace),
        )

    def stats(self, namespace: Optional[str] = None) -> Dict[str, Any]:
        """
        Get cache statistics for one namespace, or for all of them.

        Has no side effects on entries or counters.
        """
        if namespace is not None:
            return self.namespace_stats(namespace).to_dict()

        namespaces = {
            name: self.namespace_stats(name).to_dict()
            for name in self._registry.names()
        }
        with self._pending_lock:
            pending = len(self._pending)
        return {
            "enabled": self._enabled,
            "namespaces": namespaces,
            "total_entries": sum(ns["entries"] for ns in namespaces.values()),
            "in_flight": self._coalescer.in_flight_count(),
            "pending_refreshes": pending,
            "coalescer": self._coalescer.get_stats(),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _counters_for(self, namespace: str) -> NamespaceCounters:
        with self._counters_lock:
            counters = self._counters.get(namespace)
            if counters is None:
                counters = self._counters[namespace] = NamespaceCounters()
            return counters

    def _load(
        self,
        config: NamespaceConfig,
        store: EntryStore,
        key: str,
        loader: Loader,
        counters: NamespaceCounters,
        store_result: bool = True,
    ) -> Any:
        """Run `loader` synchronously, or join the load already in flight."""
        ticket, is_owner = self._coalescer.join_or_start(config.name, key)
        if not is_owner:
            return self._coalescer.wait(ticket)

        value = None
        error = None
        try:
            value = loader()
            if store_result:
                self._store(config, store, key, value)
            return value
        except BaseException as e:
            error = e
            counters.incr("load_failures")
            logger.info(f"Load failed for {config.name}:{key} - {describe(e)}")
            raise
        finally:
            self._coalescer.finish(ticket, result=value, error=error)

    def _store(
        self,
        config: NamespaceConfig,
        store: EntryStore,
        key: str,
        value: Any,
    ) -> None:
        """Store data in cache."""
        entry = CacheEntry.create(value, self._clock(), config)
        evicted = store.write(key, entry)
        if evicted:
            logger.info(f"Evicted {evicted} entries from '{config.name}' to store {key}")

    def _trigger_background_refresh(
        self,
        config: NamespaceConfig,
        store: EntryStore,
        key: str,
        loader: Loader,
        counters: NamespaceCounters,
    ) -> None:
        """Trigger background refresh without blocking."""
        ticket = self._coalescer.try_start(config.name, key)
        if ticket is None:
            return

        try:
            future = self._revalidation_pool.submit(
                self._refresh, config, store, key, loader, counters, ticket
            )
        except RuntimeError as e:
            # Pool already shut down
            logger.warning(f"Background refresh skipped: {config.name}:{key} - {e}")
            self._coalescer.finish(ticket, error=e)
            return

        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._discard_pending)

    def _refresh(
        self,
        config: NamespaceConfig,
        store: EntryStore,
        key: str,
        loader: Loader,
        counters: NamespaceCounters,
        ticket: RefreshTicket,
    ) -> None:
        value = None
        error = None
        try:
            logger.debug(f"Background refresh started: {config.name}:{key}")
            value = loader()
            self._store(config, store, key, value)
            counters.incr("refreshes")
            logger.debug(f"Background refresh complete: {config.name}:{key}")
        except Exception as e:
            error = e
            counters.refresh_failed(describe(e))
            logger.warning(f"Background refresh failed: {config.name}:{key} - {e}")
        finally:
            self._coalescer.finish(ticket, result=value, error=error)

    def _discard_pending(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def _upstream_meta(self, config: NamespaceConfig) -> CacheMeta:
        return CacheMeta(
            last_updated=self._clock().isoformat(),
            cache_source=CacheSource.UPSTREAM.value,
            namespace=config.name,
            ttl_seconds=config.ttl_seconds,
            age_seconds=0,
        )


def build_cache_manager(config: Settings = settings) -> CacheManager:
    """Create a cache manager from application settings."""
    registry = NamespaceRegistry(eviction_fraction=config.eviction_fraction)
    if config.register_default_namespaces:
        register_defaults(registry)
    return CacheManager(
        registry=registry,
        max_revalidation_workers=config.revalidation_workers,
        coalesce_timeout=config.coalesce_timeout_seconds,
        enabled=config.cache_enabled,
    )


# Global cache manager instance
_cache_manager: Optional[CacheManager] = None
_cache_manager_lock = threading.Lock()


def get_cache_manager() -> CacheManager:
    """Get or create the global cache manager."""
    global _cache_manager
    if _cache_manager is None:
        with _cache_manager_lock:
            if _cache_manager is None:
                _cache_manager = build_cache_manager()
    return _cache_manager


def reset_cache_manager() -> None:
    """Discard the global cache manager (tests)."""
    global _cache_manager
    with _cache_manager_lock:
        if _cache_manager is not None:
            _cache_manager.shutdown(wait=False)
        _cache_manager = None
