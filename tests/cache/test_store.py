"""Tests for learnspark.cache.store — TTL, LRU eviction, invalidation, and stats."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from learnspark.cache.errors import CacheConfigError, CacheError
from learnspark.cache.store import CacheCounters, CacheStore, estimate_size
from learnspark.config import Settings


class TestConstruction:
    def test_defaults(self):
        cache = CacheStore()
        assert cache.max_entries == 100
        assert cache.default_ttl_ms == 300_000
        assert len(cache) == 0

    @pytest.mark.parametrize("max_entries", [0, -1])
    def test_rejects_non_positive_capacity(self, max_entries):
        with pytest.raises(CacheConfigError, match="max_entries"):
            CacheStore(max_entries=max_entries)

    def test_rejects_non_positive_ttl(self):
        with pytest.raises(CacheConfigError, match="default_ttl_ms"):
            CacheStore(default_ttl_ms=0)

    def test_config_error_is_value_error(self):
        assert issubclass(CacheConfigError, CacheError)
        assert issubclass(CacheError, ValueError)

    def test_from_settings(self):
        s = Settings(_env_file=None, cache_max_entries=7, cache_default_ttl_ms=1234)
        cache = CacheStore.from_settings(s)
        assert cache.max_entries == 7
        assert cache.default_ttl_ms == 1234


class TestGetSet:
    def test_get_on_empty_returns_none(self, store):
        assert store.get("missing") is None
        assert store.counters.misses == 1

    def test_set_then_get(self, store):
        store.set("k1", {"score": 92})
        assert store.get("k1") == {"score": 92}
        assert store.counters.sets == 1
        assert store.counters.hits == 1

    def test_live_at_exact_ttl(self, store, clock):
        store.set("k", "v", ttl_ms=500)
        clock.advance(500)
        assert store.get("k") == "v"

    def test_expired_after_ttl(self, store, clock):
        store.set("k", "v", ttl_ms=500)
        clock.advance(501)
        assert store.get("k") is None
        assert "k" not in store
        assert len(store) == 0
        assert store.counters.misses == 1
        assert store.counters.expirations == 1

    def test_default_ttl_applies(self, store, clock):
        store.set("k", "v")
        clock.advance(1001)
        assert store.get("k") is None

    def test_overwrite_replaces_value_without_duplicating(self, store):
        store.set("k", "v1")
        store.set("k", "v2")
        assert store.get("k") == "v2"
        assert len(store) == 1

    def test_overwrite_resets_timestamp_and_hits(self, store, clock):
        store.set("k", "v1", ttl_ms=1000)
        store.get("k")
        clock.advance(900)
        store.set("k", "v2", ttl_ms=1000)
        clock.advance(900)
        assert store.get("k") == "v2"
        assert store.get_stats().top_items[0].hits == 1

    def test_falsy_values_are_hits(self, store):
        store.set("zero", 0)
        store.set("empty", [])
        assert store.get("zero") == 0
        assert store.get("empty") == []
        assert store.counters.hits == 2

    def test_peek_has_no_side_effects(self, store, clock):
        store.set("k", "v")
        assert store.peek("k") == "v"
        assert store.counters.hits == 0
        clock.advance(2000)
        assert store.peek("k") is None
        assert store.counters.misses == 0

    def test_contains_ignores_expired(self, store, clock):
        store.set("k", "v", ttl_ms=10)
        assert "k" in store
        clock.advance(11)
        assert "k" not in store

    def test_now_uses_clock(self, store, clock):
        assert store.now() == clock.now


class TestEviction:
    def test_inserting_past_capacity_evicts_first_inserted(self, store):
        store.set("a", 1)
        store.set("b", 2)
        store.set("c", 3)
        store.set("d", 4)
        assert len(store) == 3
        assert store.get("a") is None
        assert store.get("b") == 2
        assert store.get("c") == 3
        assert store.get("d") == 4
        assert store.counters.evictions == 1

    def test_eviction_order_with_advancing_clock(self, clock):
        cache = CacheStore(max_entries=5, clock=clock)
        for i in range(6):
            cache.set(f"k{i}", i)
            clock.advance(1)
        assert cache.get("k0") is None
        assert all(cache.get(f"k{i}") == i for i in range(1, 6))

    def test_read_refreshes_recency(self, store, clock):
        store.set("a", 1)
        clock.advance(10)
        store.set("b", 2)
        clock.advance(10)
        store.set("c", 3)
        clock.advance(10)
        store.get("a")
        clock.advance(10)
        store.set("d", 4)
        assert store.get("b") is None
        assert store.get("a") == 1
        assert store.get("c") == 3
        assert store.get("d") == 4

    def test_overwrite_on_full_store_still_evicts(self, store, clock):
        store.set("a", 1)
        clock.advance(1)
        store.set("b", 2)
        clock.advance(1)
        store.set("c", 3)
        clock.advance(1)
        store.set("c", 30)
        assert len(store) == 2
        assert store.get("a") is None
        assert store.get("c") == 30
        assert store.counters.evictions == 1

    def test_single_entry_store(self, clock):
        cache = CacheStore(max_entries=1, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.get("a") is None
        assert cache.get("b") == 2


class TestInvalidate:
    def test_prefix_pattern(self, clock):
        cache = CacheStore(clock=clock)
        cache.set("students:1", "a")
        cache.set("students:2", "b")
        cache.set("assessments:1", "c")
        assert cache.invalidate("students:") == 2
        assert cache.get("students:1") is None
        assert cache.get("students:2") is None
        assert cache.get("assessments:1") == "c"

    def test_substring_pattern(self, store):
        store.set("teacher:9:students", "x")
        store.set("teacher:9:goals", "y")
        assert store.invalidate("students") == 1
        assert store.get("teacher:9:goals") == "y"

    def test_no_match_is_not_an_error(self, store):
        store.set("a", 1)
        assert store.invalidate("zzz") == 0
        assert len(store) == 1


class TestDependencies:
    def test_invalidate_dependency_removes_key_and_record(self, clock):
        cache = CacheStore(clock=clock)
        cache.set_with_dependencies("report:5", {"avg": 88}, ["student:5"])
        assert cache.get("deps:report:5") == ["student:5"]

        assert cache.invalidate_dependencies("student:5") == 2
        assert cache.get("report:5") is None
        assert "deps:report:5" not in cache

    def test_only_dependent_keys_removed(self, clock):
        cache = CacheStore(clock=clock)
        cache.set_with_dependencies("report:5", 1, ["student:5", "class:2"])
        cache.set_with_dependencies("report:6", 2, ["student:6", "class:2"])
        cache.set("plain", 3)

        cache.invalidate_dependencies("student:5")
        assert cache.get("report:5") is None
        assert cache.get("report:6") == 2
        assert cache.get("plain") == 3

        cache.invalidate_dependencies("class:2")
        assert cache.get("report:6") is None
        assert len(cache) == 1

    def test_unknown_dependency(self, clock):
        cache = CacheStore(clock=clock)
        cache.set_with_dependencies("r", 1, ["x"])
        assert cache.invalidate_dependencies("y") == 0
        assert cache.get("r") == 1

    def test_dependency_record_shares_ttl(self, clock):
        cache = CacheStore(clock=clock)
        cache.set_with_dependencies("r", 1, ["x"], ttl_ms=100)
        clock.advance(101)
        assert cache.sweep_expired() == 2

    def test_non_list_deps_entry_ignored(self, clock):
        cache = CacheStore(clock=clock)
        cache.set("deps:odd", 42)
        assert cache.invalidate_dependencies("x") == 0
        assert cache.get("deps:odd") == 42

    def test_primary_already_gone(self, clock):
        cache = CacheStore(clock=clock)
        cache.set_with_dependencies("r", 1, ["x"])
        cache.invalidate("r")
        cache.set_with_dependencies("s", 2, ["x"])
        cache.set("deps:r", ["x"])
        assert cache.invalidate_dependencies("x") == 3


class TestSweep:
    def test_removes_only_expired(self, clock):
        cache = CacheStore(clock=clock)
        cache.set("short", 1, ttl_ms=10)
        cache.set("long", 2, ttl_ms=10_000)
        clock.advance(11)
        assert cache.sweep_expired() == 1
        assert len(cache) == 1
        assert cache.get("long") == 2

    def test_nothing_expired(self, store):
        store.set("a", 1)
        assert store.sweep_expired() == 0


class TestStats:
    def test_empty_rates_are_zero(self, store):
        stats = store.get_stats()
        assert stats.total_items == 0
        assert stats.hit_rate == 0.0
        assert stats.miss_rate == 0.0
        assert stats.top_items == []

    def test_rates(self, clock):
        cache = CacheStore(clock=clock)
        cache.set("k", "v")
        for _ in range(3):
            cache.get("k")
        cache.get("missing")
        stats = cache.get_stats()
        assert stats.hit_rate == pytest.approx(75.0)
        assert stats.miss_rate == pytest.approx(25.0)
        assert stats.hit_rate + stats.miss_rate == pytest.approx(100.0)
        assert stats.hits == 3
        assert stats.misses == 1
        assert stats.requests == 4

    def test_top_items_sorted_by_hits(self, clock):
        cache = CacheStore(clock=clock)
        cache.set("cold", 1)
        cache.set("warm", 2)
        cache.set("hot", 3)
        cache.get("warm")
        for _ in range(3):
            cache.get("hot")
        keys = [item.key for item in cache.get_stats().top_items]
        assert keys == ["hot", "warm", "cold"]

    def test_top_n_limits_items(self, clock):
        cache = CacheStore(clock=clock)
        for i in range(15):
            cache.set(f"k{i}", i)
        assert len(cache.get_stats().top_items) == 10
        assert len(cache.get_stats(top_n=3).top_items) == 3

    def test_memory_estimate(self, store):
        store.set("a", "abc")
        store.set("b", [1, 2])
        stats = store.get_stats()
        sizes = {item.key: item.size_bytes for item in stats.top_items}
        assert sizes == {"a": 5, "b": 5}
        assert stats.total_memory_bytes_estimate == 10

    def test_unserializable_value_counts_as_zero(self, store):
        cyclic: list = []
        cyclic.append(cyclic)
        store.set("cyclic", cyclic)
        store.set("obj", object())
        stats = store.get_stats()
        assert stats.total_memory_bytes_estimate == 0
        assert stats.total_items == 2

    def test_eviction_counter(self, store):
        for key in "abcde":
            store.set(key, 1)
        assert store.get_stats().evictions == 2
        assert store.get_stats().sets == 5


class TestClear:
    def test_clear_resets_items_and_rates(self, store):
        store.set("a", 1)
        store.get("a")
        store.get("b")
        store.clear()
        stats = store.get_stats()
        assert stats.total_items == 0
        assert stats.hit_rate == 0.0
        assert stats.miss_rate == 0.0
        assert stats.sets == 0
        assert store.get("a") is None


class TestHelpers:
    def test_estimate_size_of_dict(self):
        assert estimate_size({"a": 1}) == len('{"a":1}')

    def test_estimate_size_unknown_type(self):
        assert estimate_size(object()) == 0

    def test_counters_initial_rates(self):
        c = CacheCounters()
        assert c.hit_rate == 0.0
        assert c.miss_rate == 0.0

    def test_repr(self, store):
        store.set("a", 1)
        assert repr(store) == "CacheStore(max_entries=3, default_ttl_ms=1000, size=1)"


class TestDelete:
    def test_removes_exact_key_only(self, clock):
        cache = CacheStore(clock=clock)
        cache.set("students:1", "a")
        cache.set("students:10", "b")
        assert cache.delete("students:1") is True
        assert cache.get("students:1") is None
        assert cache.get("students:10") == "b"

    def test_missing_key(self, store):
        assert store.delete("missing") is False

    def test_record_miss(self, store):
        store.record_miss("k")
        assert store.counters.misses == 1
        assert store.counters.hits == 0


class TestThreadSafety:
    def test_interleaved_operations_keep_bounds_and_counts(self):
        cache = CacheStore(max_entries=8)
        workers, rounds = 8, 500

        def worker(n: int) -> int:
            gets = 0
            for i in range(rounds):
                key = f"w{n}:{i % 12}"
                cache.set(key, i)
                cache.get(key)
                cache.get(f"w{(n + 1) % workers}:{i % 12}")
                gets += 2
                if i % 50 == 0:
                    cache.invalidate(f"w{n}:")
                assert len(cache) <= cache.max_entries
            return gets

        with ThreadPoolExecutor(max_workers=workers) as pool:
            total_gets = sum(pool.map(worker, range(workers)))

        stats = cache.get_stats()
        assert len(cache) <= cache.max_entries
        assert stats.hits + stats.misses == total_gets
        assert stats.sets == workers * rounds
