"""
Namespace registry: the source of truth for namespace policy and storage.
"""
import logging
import threading
from typing import Dict, List, Tuple

from .core import NamespaceConfig
from .errors import DuplicateNamespace, UnknownNamespace
from .store import DEFAULT_EVICTION_FRACTION, EntryStore

logger = logging.getLogger("cache.registry")


class NamespaceRegistry:
    """
    Maps namespace names to their config and owns one EntryStore per namespace.

    Namespaces are normally registered once at startup. `unregister` and
    `reset` exist for test setup/teardown.
    """

    def __init__(self, eviction_fraction: float = DEFAULT_EVICTION_FRACTION):
        self._eviction_fraction = eviction_fraction
        self._configs: Dict[str, NamespaceConfig] = {}
        self._stores: Dict[str, EntryStore] = {}
        self._lock = threading.Lock()

    def register(self, config: NamespaceConfig) -> NamespaceConfig:
        """
        Register a namespace and create its store.

        Raises:
            DuplicateNamespace: If the name is already registered
        """
        with self._lock:
            if config.name in self._configs:
                raise DuplicateNamespace(config.name)
            self._configs[config.name] = config
            self._stores[config.name] = EntryStore(
                config.name,
                config.max_entries,
                eviction_fraction=self._eviction_fraction,
            )
        logger.info(
            f"Registered namespace '{config.name}' "
            f"(ttl={config.ttl_seconds}s, stale_grace={config.stale_grace_seconds}s, "
            f"max_entries={config.max_entries})"
        )
        return config

    def resolve(self, name: str) -> NamespaceConfig:
        """
        Raises:
            UnknownNamespace: If the name was never registered
        """
        try:
            return self._configs[name]
        except KeyError:
            raise UnknownNamespace(name) from None

    def store(self, name: str) -> EntryStore:
        try:
            return self._stores[name]
        except KeyError:
            raise UnknownNamespace(name) from None

    def lookup(self, name: str) -> Tuple[NamespaceConfig, EntryStore]:
        """Config and store for `name` in one call."""
        with self._lock:
            if name not in self._configs:
                raise UnknownNamespace(name)
            return self._configs[name], self._stores[name]

    def unregister(self, name: str) -> None:
        with self._lock:
            if name not in self._configs:
                raise UnknownNamespace(name)
            del self._configs[name]
            del self._stores[name]
        logger.info(f"Unregistered namespace '{name}'")

    def reset(self) -> None:
        """Drop every namespace and its entries."""
        with self._lock:
            self._configs.clear()
            self._stores.clear()

    def names(self) -> List[str]:
        with self._lock:
            return list(self._configs)

    def items(self) -> List[Tuple[NamespaceConfig, EntryStore]]:
        with self._lock:
            return [(self._configs[name], self._stores[name]) for name in self._configs]

    def __contains__(self, name: str) -> bool:
        return name in self._configs

    def __len__(self) -> int:
        return len(self._configs)
