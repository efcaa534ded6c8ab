"""
Pydantic schemas for the cache introspection API
"""
from pydantic import BaseModel
from typing import Dict, List, Optional


# ===== STATS SCHEMAS =====

class NamespaceStatsSchema(BaseModel):
    """Statistics for one namespace"""
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


class CoalescerStatsSchema(BaseModel):
    active_requests: int
    active_keys: List[str]
    background_refreshes: int
    oldest_age_seconds: float


class CacheStatsSchema(BaseModel):
    """Statistics for every namespace"""
    enabled: bool
    namespaces: Dict[str, NamespaceStatsSchema]
    total_entries: int
    in_flight: int
    pending_refreshes: int
    coalescer: CoalescerStatsSchema


# ===== INVALIDATION SCHEMAS =====

class InvalidationResult(BaseModel):
    """Outcome of an invalidation request"""
    target: str
    removed: int
