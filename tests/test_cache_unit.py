"""
Unit tests for the bounded LRU result cache.
"""
import time

from colorextract.services.cache import ResultCache


class TestResultCache:
    """Test LRU behavior, TTL and statistics"""

    def test_set_and_get(self):
        cache = ResultCache(max_size=4)
        assert cache.set("a", 1)
        assert cache.get("a") == 1
        assert cache.get("missing") is None
        assert len(cache) == 1

    def test_least_recently_used_is_evicted(self):
        cache = ResultCache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)

        assert "a" in cache
        assert "b" not in cache
        assert "c" in cache
        assert cache.get_stats()["evictions"] == 1

    def test_overwrite_does_not_evict(self):
        cache = ResultCache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)
        assert len(cache) == 2
        assert cache.get("a") == 10
        assert cache.get("b") == 2

    def test_ttl_expiry(self):
        cache = ResultCache(max_size=4, ttl_seconds=0)
        cache.set("forever", 1)
        cache.set("short", 2, ttl=0.05)
        time.sleep(0.1)
        assert cache.get("short") is None
        assert cache.get("forever") == 1

    def test_zero_capacity_stores_nothing(self):
        cache = ResultCache(max_size=0)
        assert not cache.set("a", 1)
        assert len(cache) == 0

    def test_stats(self):
        cache = ResultCache(max_size=4)
        cache.set("a", 1)
        cache.get("a")
        cache.get("a")
        cache.get("b")

        stats = cache.get_stats()
        assert stats["hits"] == 2
        assert stats["misses"] == 1
        assert stats["size"] == 1
        assert stats["hit_rate"] == 2 / 3

    def test_delete_and_clear(self):
        cache = ResultCache(max_size=4)
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.delete("a")
        assert not cache.delete("a")
        cache.clear()
        assert len(cache) == 0
