"""
Read-through caching with per-namespace TTL, request coalescing, and
stale-while-revalidate.
"""
from .core import CacheEntry, CacheMeta, CacheSource, CriticalKey, NamespaceConfig
from .errors import CacheError, DuplicateNamespace, LoaderFailure, UnknownNamespace
from .store import EntryStore
from .registry import NamespaceRegistry
from .policies import (
    NAMESPACE_CONFIG,
    INVALIDATION_GROUPS,
    get_namespace_config,
    register_defaults,
)
from .coalescer import RefreshTicket, RequestCoalescer
from .stats import NamespaceStats
from .manager import CacheManager, get_cache_manager, reset_cache_manager
from .maintenance import MaintenanceReport, MaintenanceScheduler

__all__ = [
    # Core types
    "CacheEntry",
    "CacheMeta",
    "CacheSource",
    "CriticalKey",
    "NamespaceConfig",
    # Errors
    "CacheError",
    "DuplicateNamespace",
    "LoaderFailure",
    "UnknownNamespace",
    # Storage and registry
    "EntryStore",
    "NamespaceRegistry",
    # Policies
    "NAMESPACE_CONFIG",
    "INVALIDATION_GROUPS",
    "get_namespace_config",
    "register_defaults",
    # Coalescing
    "RefreshTicket",
    "RequestCoalescer",
    # Manager
    "CacheManager",
    "NamespaceStats",
    "get_cache_manager",
    "reset_cache_manager",
    # Maintenance
    "MaintenanceReport",
    "MaintenanceScheduler",
]
