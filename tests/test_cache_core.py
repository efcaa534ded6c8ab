"""
Tests for cache entries, namespace configs, the entry store and the registry.
"""
from datetime import timedelta

import pytest

from readthrough.cache import (
    CacheEntry,
    CacheMeta,
    CacheSource,
    DuplicateNamespace,
    EntryStore,
    NamespaceConfig,
    NamespaceRegistry,
    UnknownNamespace,
    register_defaults,
)
from readthrough.cache.policies import NAMESPACE_CONFIG, get_namespace_config


# =============================================================================
# Entries and configs
# =============================================================================

class TestCacheEntry:
    """CacheEntry construction and classification."""

    def test_create_computes_windows(self, clock, students_config):
        entry = CacheEntry.create("A", clock(), students_config)
        assert entry.created_at == clock()
        assert entry.expires_at == clock() + timedelta(seconds=60)
        assert entry.stale_until == clock() + timedelta(seconds=90)
        assert entry.hit_count == 0

    def test_rejects_inverted_timestamps(self, clock):
        now = clock()
        with pytest.raises(ValueError):
            CacheEntry("A", created_at=now, expires_at=now - timedelta(seconds=1), stale_until=now)
        with pytest.raises(ValueError):
            CacheEntry(
                "A",
                created_at=now,
                expires_at=now + timedelta(seconds=10),
                stale_until=now + timedelta(seconds=5),
            )

    def test_classification_over_time(self, clock, students_config):
        entry = CacheEntry.create("A", clock(), students_config)

        assert entry.source(clock()) == CacheSource.FRESH
        assert entry.source(clock.advance(59)) == CacheSource.FRESH
        # Boundary: expires_at itself is stale
        assert entry.source(clock.advance(1)) == CacheSource.STALE
        assert entry.source(clock.advance(29)) == CacheSource.STALE
        # Boundary: stale_until itself is expired
        assert entry.source(clock.advance(1)) == CacheSource.UPSTREAM
        assert entry.is_expired(clock())

    def test_zero_grace_never_stale(self, clock):
        config = NamespaceConfig("user-auth", ttl_seconds=10, stale_grace_seconds=0)
        entry = CacheEntry.create("A", clock(), config)
        clock.advance(10)
        assert not entry.is_stale(clock())
        assert entry.is_expired(clock())

    def test_entries_are_immutable(self, clock, students_config):
        entry = CacheEntry.create("A", clock(), students_config)
        with pytest.raises(AttributeError):
            entry.value = "B"
        bumped = entry.with_hit()
        assert bumped.hit_count == 1
        assert entry.hit_count == 0

    def test_meta_to_dict(self, clock, students_config):
        entry = CacheEntry.create("A", clock(), students_config)
        clock.advance(12)
        meta = CacheMeta.for_entry(entry, CacheSource.FRESH, students_config, clock())
        data = meta.to_dict()
        assert data["cacheSource"] == "fresh"
        assert data["cached"] is True
        assert data["_debug"]["namespace"] == "students"
        assert data["_debug"]["age"] == 12.0

    def test_meta_reports_zero_age(self, clock, students_config):
        entry = CacheEntry.create("A", clock(), students_config)
        meta = CacheMeta.for_entry(entry, CacheSource.FRESH, students_config, clock())
        assert meta.to_dict()["_debug"]["age"] == 0.0


class TestNamespaceConfig:

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"ttl_seconds": 0},
            {"ttl_seconds": -5},
            {"ttl_seconds": 10, "stale_grace_seconds": -1},
            {"ttl_seconds": 10, "max_entries": 0},
        ],
    )
    def test_invalid_values_rejected(self, kwargs):
        with pytest.raises(ValueError):
            NamespaceConfig(name="bad", **kwargs)

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            NamespaceConfig(name="", ttl_seconds=10)

    def test_presets_are_valid(self):
        for name in NAMESPACE_CONFIG:
            config = get_namespace_config(name)
            assert config.ttl_seconds > 0
            assert config.stale_grace_seconds >= 0


# =============================================================================
# Entry store
# =============================================================================

class TestEntryStore:

    def _entry(self, clock, config, value, age=0):
        return CacheEntry.create(value, clock() - timedelta(seconds=age), config)

    def test_read_write_remove(self, clock, students_config):
        store = EntryStore("students", max_entries=10)
        entry = self._entry(clock, students_config, "A")
        assert store.read("p1") is None

        store.write("p1", entry)
        assert store.read("p1") is entry
        assert "p1" in store
        assert len(store) == 1

        assert store.remove("p1") is True
        assert store.remove("p1") is False
        assert store.read("p1") is None

    def test_evicts_oldest_when_full(self, clock, students_config):
        store = EntryStore("students", max_entries=2)
        store.write("old", self._entry(clock, students_config, "A", age=20))
        store.write("new", self._entry(clock, students_config, "B", age=10))

        evicted = store.write("third", self._entry(clock, students_config, "C"))

        assert evicted == 1
        assert store.keys() == ["new", "third"]
        assert store.evictions == 1

    def test_eviction_tie_broken_by_hit_count(self, clock, students_config):
        store = EntryStore("students", max_entries=2)
        popular = self._entry(clock, students_config, "A", age=5)
        store.write("popular", popular)
        store.write("unpopular", self._entry(clock, students_config, "B", age=5))
        store.record_hit("popular", popular)

        store.write("third", self._entry(clock, students_config, "C"))

        assert "popular" in store
        assert "unpopular" not in store

    def test_replacing_existing_key_does_not_evict(self, clock, students_config):
        store = EntryStore("students", max_entries=2)
        store.write("p1", self._entry(clock, students_config, "A", age=10))
        store.write("p2", self._entry(clock, students_config, "B", age=5))

        assert store.write("p1", self._entry(clock, students_config, "A2")) == 0
        assert sorted(store.keys()) == ["p1", "p2"]

    def test_batch_eviction(self, clock, students_config):
        store = EntryStore("students", max_entries=20, eviction_fraction=0.1)
        for i in range(20):
            store.write(f"k{i}", self._entry(clock, students_config, i, age=100 - i))

        evicted = store.write("new", self._entry(clock, students_config, "new"))

        assert evicted == 2
        assert "k0" not in store and "k1" not in store
        assert "k2" in store
        assert len(store) == 19

    def test_never_exceeds_max_entries(self, clock, students_config):
        store = EntryStore("students", max_entries=3)
        for i in range(50):
            store.write(f"k{i}", self._entry(clock, students_config, i, age=50 - i))
            assert len(store) <= 3

    def test_record_hit_ignores_replaced_entry(self, clock, students_config):
        store = EntryStore("students", max_entries=5)
        original = self._entry(clock, students_config, "A")
        store.write("p1", original)
        store.write("p1", self._entry(clock, students_config, "B"))

        assert store.record_hit("p1", original) is None
        assert store.read("p1").hit_count == 0

    def test_record_hit_counts_against_bumped_copy(self, clock, students_config):
        store = EntryStore("students", max_entries=5)
        seen = self._entry(clock, students_config, "A")
        store.write("p1", seen)

        # Two readers saw the same write; the first already replaced it
        assert store.record_hit("p1", seen).hit_count == 1
        assert store.record_hit("p1", seen).hit_count == 2
        assert store.read("p1").hit_count == 2

    def test_remove_matching_and_clear(self, clock, students_config):
        store = EntryStore("students", max_entries=10)
        for key in ("students_1", "students_2", "detail_1"):
            store.write(key, self._entry(clock, students_config, key))

        removed = store.remove_matching(lambda key, _entry: key.startswith("students_"))

        assert removed == 2
        assert store.keys() == ["detail_1"]
        assert store.clear() == 1
        assert len(store) == 0


# =============================================================================
# Namespace registry
# =============================================================================

class TestNamespaceRegistry:

    def test_register_and_resolve(self, students_config):
        registry = NamespaceRegistry()
        registry.register(students_config)

        assert registry.resolve("students") is students_config
        assert registry.store("students").max_entries == 2
        assert "students" in registry
        assert registry.names() == ["students"]

    def test_duplicate_rejected(self, students_config):
        registry = NamespaceRegistry()
        registry.register(students_config)
        with pytest.raises(DuplicateNamespace):
            registry.register(NamespaceConfig("students", ttl_seconds=5))

    def test_unknown_namespace(self):
        registry = NamespaceRegistry()
        with pytest.raises(UnknownNamespace):
            registry.resolve("nope")
        with pytest.raises(UnknownNamespace):
            registry.store("nope")

    def test_unregister_allows_reregistration(self, students_config):
        registry = NamespaceRegistry()
        registry.register(students_config)
        registry.unregister("students")
        registry.register(NamespaceConfig("students", ttl_seconds=5))
        assert registry.resolve("students").ttl_seconds == 5

    def test_register_defaults_skips_existing(self):
        registry = NamespaceRegistry()
        custom = registry.register(NamespaceConfig("students", ttl_seconds=5))

        registered = register_defaults(registry)

        assert registry.resolve("students") is custom
        assert "students" not in [c.name for c in registered]
        assert set(registry.names()) == set(NAMESPACE_CONFIG)

    def test_reset_drops_everything(self, students_config):
        registry = NamespaceRegistry()
        registry.register(students_config)
        registry.reset()
        assert len(registry) == 0
        with pytest.raises(UnknownNamespace):
            registry.resolve("students")
