"""
Background maintenance: expired-entry sweeps and critical-key warm-up.

Usage:
    scheduler = MaintenanceScheduler(get_cache_manager())
    scheduler.add_critical("academic", "faculties", load_faculties)
    scheduler.start()  # runs in the background
    scheduler.stop()
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .core import CriticalKey
from .errors import LoaderFailure
from .manager import CacheManager

logger = logging.getLogger("cache.maintenance")

SWEEP_JOB_ID = "cache_sweep"
WARM_JOB_ID = "cache_warm"


@dataclass
class MaintenanceReport:
    """Outcome of one maintenance pass."""
    removed: Dict[str, int] = field(default_factory=dict)
    warmed: List[str] = field(default_factory=list)
    failures: List[LoaderFailure] = field(default_factory=list)

    @property
    def total_removed(self) -> int:
        return sum(self.removed.values())

    def to_dict(self) -> dict:
        return {
            "removed": dict(self.removed),
            "total_removed": self.total_removed,
            "warmed": list(self.warmed),
            "failures": [failure.to_dict() for failure in self.failures],
        }


class MaintenanceScheduler:
    """
    Periodic cache upkeep, independent of request handling.

    - Sweep: every `sweep_interval` seconds, drop entries in every namespace
      that are past their stale window
    - Warm: every `warm_interval` seconds, call `get` for each critical key so
      hot data stays loaded even without traffic

    A failing warm-up loader is logged and reported; it never aborts the pass.
    """

    def __init__(
        self,
        manager: CacheManager,
        sweep_interval: float = 300,
        warm_interval: float = 1800,
    ):
        if sweep_interval <= 0 or warm_interval <= 0:
            raise ValueError("Maintenance intervals must be > 0")
        self._manager = manager
        self._sweep_interval = sweep_interval
        self._warm_interval = warm_interval
        self._critical: Dict[Tuple[str, str], CriticalKey] = {}
        self._critical_lock = threading.Lock()
        self._scheduler: Optional[BackgroundScheduler] = None
        self._last_report: Optional[MaintenanceReport] = None

    # ------------------------------------------------------------------
    # Critical keys
    # ------------------------------------------------------------------

    def add_critical(self, namespace: str, key: str, loader: Callable[[], Any]) -> CriticalKey:
        """
        Keep `namespace:key` warm.

        Raises:
            UnknownNamespace: If the namespace is not registered
        """
        self._manager.registry.resolve(namespace)
        critical = CriticalKey(namespace=namespace, key=key, loader=loader)
        with self._critical_lock:
            self._critical[(namespace, key)] = critical
        return critical

    def remove_critical(self, namespace: str, key: str) -> bool:
        with self._critical_lock:
            return self._critical.pop((namespace, key), None) is not None

    @property
    def critical_keys(self) -> List[CriticalKey]:
        with self._critical_lock:
            return list(self._critical.values())

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    def sweep(self) -> Dict[str, int]:
        """Remove entries that are no longer stale-servable, in every namespace."""
        removed = self._manager.sweep_expired()
        total = sum(removed.values())
        if total > 0:
            logger.info(f"Cleaned up {total} expired cache entries")
        return removed

    def warm(self) -> MaintenanceReport:
        """Load or refresh every critical key, isolating failures per key."""
        report = MaintenanceReport()
        critical = self.critical_keys
        if not critical:
            return report

        logger.info(f"Warming {len(critical)} critical cache keys")
        for item in critical:
            try:
                self._manager.get(item.namespace, item.key, item.loader)
                report.warmed.append(f"{item.namespace}:{item.key}")
            except Exception as e:
                failure = LoaderFailure(item.namespace, item.key, e)
                report.failures.append(failure)
                logger.warning(f"Failed to warm {item.namespace}:{item.key}: {e}")

        if report.failures:
            logger.warning(
                f"Warm-up finished with {len(report.failures)} failures "
                f"({len(report.warmed)} keys warmed)"
            )
        return report

    def run_once(self) -> MaintenanceReport:
        """Sweep then warm, synchronously."""
        removed = self.sweep()
        report = self.warm()
        report.removed = removed
        self._last_report = report
        return report

    @property
    def last_report(self) -> Optional[MaintenanceReport]:
        return self._last_report

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, warm_on_start: bool = True) -> None:
        """Start the background jobs."""
        if self.is_running:
            logger.warning("Maintenance scheduler already running")
            return

        if warm_on_start:
            self._run_warm_job()

        self._scheduler = BackgroundScheduler(daemon=True)
        self._scheduler.add_job(
            self._run_sweep_job,
            trigger=IntervalTrigger(seconds=self._sweep_interval),
            id=SWEEP_JOB_ID,
            name="Expired cache entry sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.add_job(
            self._run_warm_job,
            trigger=IntervalTrigger(seconds=self._warm_interval),
            id=WARM_JOB_ID,
            name="Critical cache key warm-up",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info(
            f"Maintenance scheduler started (sweep every {self._sweep_interval}s, "
            f"warm every {self._warm_interval}s)"
        )

    def stop(self, wait: bool = True) -> None:
        """Stop the background jobs."""
        if self._scheduler is None:
            return
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
        self._scheduler = None
        logger.info("Maintenance scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def next_run(self, job_id: str = SWEEP_JOB_ID):
        """Next scheduled run time of a job, or None when stopped."""
        if not self.is_running:
            return None
        job = self._scheduler.get_job(job_id)
        if job:
            return job.next_run_time
        return None

    def _run_sweep_job(self) -> None:
        try:
            self.sweep()
        except Exception:
            logger.exception("Cache sweep failed")

    def _run_warm_job(self) -> None:
        try:
            self._last_report = self.warm()
        except Exception:
            logger.exception("Cache warm-up failed")
