"""Tests for the last-known-good cache."""

from obsdash.cache import Cache, CacheEntry, is_stale


class TestCache:
    def test_empty(self):
        cache = Cache()
        assert cache.get("metrics") is None
        assert len(cache) == 0
        assert "metrics" not in cache

    def test_put_and_get(self):
        cache = Cache()
        entry = cache.put("metrics", {"series": []}, 10.0)
        assert entry == CacheEntry({"series": []}, 10.0)
        assert cache.get("metrics") is entry
        assert cache.keys() == ["metrics"]

    def test_put_overwrites(self):
        cache = Cache()
        cache.put("logs", ["a"], 1.0)
        cache.put("logs", ["b"], 2.0)
        assert cache.get("logs").value == ["b"]
        assert cache.get("logs").fetched_at == 2.0
        assert len(cache) == 1


class TestIsStale:
    def test_missing_entry_is_stale(self):
        assert is_stale(None, 100.0, 30.0) is True

    def test_young_entry(self):
        assert is_stale(CacheEntry("x", 90.0), 100.0, 30.0) is False

    def test_boundary_is_fresh(self):
        assert is_stale(CacheEntry("x", 70.0), 100.0, 30.0) is False

    def test_old_entry(self):
        assert is_stale(CacheEntry("x", 69.0), 100.0, 30.0) is True
