"""
Tests for declared invalidation and cache key derivation.
"""
import pytest

from readthrough.cache import CacheManager, NamespaceConfig
from readthrough.invalidation import Invalidate, invalidate_group, invalidates
from readthrough.keys import build_key, build_list_key


@pytest.fixture
def app_cache(clock):
    manager = CacheManager(clock=clock)
    for name in ("students", "student-list", "dashboard", "dashboard-stats", "academic"):
        manager.register_namespace(NamespaceConfig(name, ttl_seconds=600, max_entries=50))
    yield manager
    manager.shutdown()


# =============================================================================
# Declared invalidation
# =============================================================================

def test_write_operation_invalidates_declared_targets(app_cache):
    app_cache.set("students", "detail_7", {"id": 7})
    app_cache.set("students", "detail_8", {"id": 8})
    app_cache.set("student-list", build_list_key("students", page=1), [7, 8])
    app_cache.set("dashboard-stats", "basic_stats", {"total": 2})

    @invalidates(
        Invalidate("students", key=lambda student_id, *_, **__: f"detail_{student_id}"),
        Invalidate("student-list"),
        Invalidate("dashboard-stats", key="basic_stats"),
        manager=app_cache,
    )
    def update_student(student_id, changes):
        return {"id": student_id, **changes}

    result = update_student(7, {"status": "graduated"})

    assert result == {"id": 7, "status": "graduated"}
    assert app_cache.entry("students", "detail_7") is None
    assert app_cache.entry("students", "detail_8") is not None
    assert len(app_cache.registry.store("student-list")) == 0
    assert app_cache.entry("dashboard-stats", "basic_stats") is None
    assert len(update_student.invalidates) == 3


def test_failed_write_invalidates_nothing(app_cache):
    app_cache.set("student-list", "students:page=1", [1])

    @invalidates(Invalidate("student-list"), manager=app_cache)
    def create_student(payload):
        raise ValueError("duplicate registration id")

    with pytest.raises(ValueError):
        create_student({"name": "x"})

    assert app_cache.entry("student-list", "students:page=1") is not None


def test_prefix_target(app_cache):
    app_cache.set("academic", "departments", ["CS"])
    app_cache.set("academic", "departments:faculty=2", ["EE"])
    app_cache.set("academic", "faculties", ["Engineering"])

    @invalidates(Invalidate("academic", prefix="departments"), manager=app_cache)
    def rename_department(department_id, name):
        return name

    rename_department(1, name="Computing")

    assert app_cache.registry.store("academic").keys() == ["faculties"]


def test_invalidate_group(app_cache):
    app_cache.set("students", "detail_1", 1)
    app_cache.set("student-list", "students:page=1", [1])
    app_cache.set("dashboard", "overview", {})
    app_cache.set("academic", "faculties", [])

    removed = invalidate_group("students", app_cache)

    assert removed == 3
    assert app_cache.entry("academic", "faculties") is not None


def test_group_in_decorator(app_cache):
    app_cache.set("academic", "faculties", ["Science"])

    @invalidates(Invalidate.group("faculties"), manager=app_cache)
    def delete_faculty(faculty_id):
        return True

    delete_faculty(3)
    assert app_cache.entry("academic", "faculties") is None


def test_unknown_group():
    with pytest.raises(KeyError):
        Invalidate.group("nope")


def test_key_and_prefix_are_exclusive():
    with pytest.raises(ValueError):
        Invalidate("students", key="a", prefix="b")


# =============================================================================
# Key derivation
# =============================================================================

def test_build_key_is_order_independent_and_skips_none():
    a = build_key("students", {"status": "active", "page": 1, "search": None})
    b = build_key("students", {"page": 1, "status": "active"})
    assert a == b == "students:page=1&status=active"


def test_build_key_without_params():
    assert build_key("faculties") == "faculties"
    assert build_key("faculties", {"search": None}) == "faculties"


def test_build_key_formats_collections():
    assert build_key("students", {"ids": [3, 1], "active": True}) == "students:active=1&ids=3,1"


def test_build_list_key():
    key = build_list_key("students", page=2, page_size=50, filters={"department": 4})
    assert key == "students:department=4&page=2&page_size=50"
