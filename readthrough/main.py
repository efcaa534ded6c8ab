"""
Readthrough - cache introspection and invalidation API
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Query

from readthrough.cache import (
    MaintenanceScheduler,
    UnknownNamespace,
    get_cache_manager,
)
from readthrough.invalidation import invalidate_group
from readthrough.schemas import CacheStatsSchema, InvalidationResult, NamespaceStatsSchema
from config.settings import settings

load_dotenv()

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger("readthrough.api")

APP_NAME = "Readthrough"
APP_VERSION = "v0.1.0"

# Created on startup when maintenance is enabled
maintenance: Optional[MaintenanceScheduler] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    global maintenance
    manager = get_cache_manager()
    if settings.maintenance_enabled:
        maintenance = MaintenanceScheduler(
            manager,
            sweep_interval=settings.sweep_interval_seconds,
            warm_interval=settings.warm_interval_seconds,
        )
        maintenance.start()
    yield
    if maintenance is not None:
        maintenance.stop(wait=False)
        maintenance = None


app = FastAPI(
    title=APP_NAME,
    description="In-process read-through cache with stale-while-revalidate",
    version=APP_VERSION,
    lifespan=lifespan,
)


def _not_found(e: UnknownNamespace) -> HTTPException:
    return HTTPException(status_code=404, detail=str(e))


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {
        "status": "ok",
        "cache_enabled": get_cache_manager().enabled,
        "maintenance_running": maintenance is not None and maintenance.is_running,
    }


@app.get("/cache/stats", response_model=CacheStatsSchema)
def cache_stats():
    """Get cache statistics for every namespace."""
    return get_cache_manager().stats()


@app.get("/cache/stats/{namespace}", response_model=NamespaceStatsSchema)
def namespace_stats(namespace: str):
    """Get cache statistics for one namespace."""
    try:
        return get_cache_manager().stats(namespace)
    except UnknownNamespace as e:
        raise _not_found(e)


@app.delete("/cache", response_model=InvalidationResult)
def clear_cache():
    """Clear every namespace."""
    return InvalidationResult(target="*", removed=get_cache_manager().clear())


@app.get("/cache/{namespace}/keys/{key}")
def key_meta(namespace: str, key: str):
    """Metadata for one stored entry. Never loads."""
    try:
        meta = get_cache_manager().entry_meta(namespace, key)
    except UnknownNamespace as e:
        raise _not_found(e)
    if meta is None:
        raise HTTPException(status_code=404, detail=f"No entry for {namespace}:{key}")
    return meta.to_dict()


@app.delete("/cache/{namespace}", response_model=InvalidationResult)
def clear_namespace(namespace: str):
    """Invalidate every entry of a namespace."""
    try:
        removed = get_cache_manager().invalidate_namespace(namespace)
    except UnknownNamespace as e:
        raise _not_found(e)
    return InvalidationResult(target=namespace, removed=removed)


@app.delete("/cache/{namespace}/keys/{key}", response_model=InvalidationResult)
def invalidate_key(namespace: str, key: str):
    """Invalidate one key."""
    try:
        removed = get_cache_manager().invalidate(namespace, key)
    except UnknownNamespace as e:
        raise _not_found(e)
    return InvalidationResult(target=f"{namespace}:{key}", removed=int(removed))


@app.post("/cache/{namespace}/invalidate", response_model=InvalidationResult)
def invalidate_prefix(
    namespace: str,
    prefix: str = Query(..., min_length=1, description="Key prefix to invalidate"),
):
    """Invalidate every key of a namespace starting with `prefix`."""
    try:
        removed = get_cache_manager().invalidate_prefix(namespace, prefix)
    except UnknownNamespace as e:
        raise _not_found(e)
    return InvalidationResult(target=f"{namespace}:{prefix}*", removed=removed)


@app.post("/cache/groups/{group}/invalidate", response_model=InvalidationResult)
def invalidate_named_group(group: str):
    """Invalidate a named invalidation group (e.g. 'academic')."""
    try:
        removed = invalidate_group(group)
    except UnknownNamespace as e:
        raise _not_found(e)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"Unknown invalidation group '{group}'")
    return InvalidationResult(target=f"group:{group}", removed=removed)


@app.post("/cache/maintenance/run")
def run_maintenance():
    """Run a sweep and warm-up pass now."""
    scheduler = maintenance or MaintenanceScheduler(get_cache_manager())
    return scheduler.run_once().to_dict()
