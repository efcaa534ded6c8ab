"""
Shared fixtures: a manually advanced clock and a manager with a small
"students" namespace.
"""
import time
from datetime import datetime, timedelta, timezone

import pytest

from readthrough.cache import CacheManager, NamespaceConfig


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


def wait_until(condition, timeout: float = 5.0) -> bool:
    """Poll `condition` until it is true or the timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def students_config():
    return NamespaceConfig(name="students", ttl_seconds=60, stale_grace_seconds=30, max_entries=2)


@pytest.fixture
def manager(clock, students_config):
    manager = CacheManager(clock=clock, max_revalidation_workers=4, coalesce_timeout=5.0)
    manager.register_namespace(students_config)
    yield manager
    manager.shutdown(wait=True)


@pytest.fixture
def wait_for():
    return wait_until
