"""
Unit tests for the byte-bounded LRU memory cache.
"""

import threading

import pytest

from gzipstatic.core.memory_cache import CacheEntry, MemoryCache, make_etag


def _sum_sizes(cache: MemoryCache) -> int:
    return sum(cache.get(key).size for key in cache.keys())


class TestCacheEntry:
    """Tests for CacheEntry construction and accounting."""

    def test_size_counts_raw_and_compressed(self):
        """Entry size is raw bytes plus compressed bytes."""
        entry = CacheEntry.create(b"a" * 100, "text/plain", 0, compressed_content=b"z" * 30)
        assert entry.size == 130

    def test_size_without_compressed(self):
        entry = CacheEntry.create(b"a" * 100, "text/plain", 0)
        assert entry.size == 100
        assert not entry.is_compressed

    def test_etag_from_size_and_mtime_millis(self):
        """ETag is "<size>-<mtimeMillis>"."""
        entry = CacheEntry.create(b"hello", "text/plain", 1_700_000_000_123_456_789)
        assert entry.etag == '"5-1700000000123"'
        assert make_etag(5, 1_700_000_000_123_456_789) == entry.etag

    def test_etag_changes_with_content_size(self):
        a = CacheEntry.create(b"hello", "text/plain", 10**18)
        b = CacheEntry.create(b"hello!", "text/plain", 10**18)
        assert a.etag != b.etag

    def test_last_modified_is_http_date(self):
        entry = CacheEntry.create(b"x", "text/plain", 784_111_777 * 10**9)
        assert entry.last_modified == "Sun, 06 Nov 1994 08:49:37 GMT"

    def test_is_stale(self):
        entry = CacheEntry.create(b"x", "text/plain", 1000)
        assert not entry.is_stale(1000)
        assert entry.is_stale(2000)


class TestMemoryCacheBasics:
    """Tests for get / put / invalidate / clear."""

    def test_put_then_get(self):
        cache = MemoryCache(max_size=1000)
        cache.put("/a", b"aaa", "text/plain", mtime_ns=1)

        entry = cache.get("/a")
        assert entry is not None
        assert entry.raw_content == b"aaa"
        assert entry.mime_type == "text/plain"

    def test_get_missing_returns_none(self):
        cache = MemoryCache(max_size=1000)
        assert cache.get("/missing") is None

    def test_overwrite_replaces_size(self):
        """Overwriting a path subtracts the old entry's size first."""
        cache = MemoryCache(max_size=1000)
        cache.put("/a", b"a" * 300, "text/plain")
        cache.put("/a", b"a" * 100, "text/plain")

        assert len(cache) == 1
        assert cache.current_size == 100

    def test_invalidate(self):
        cache = MemoryCache(max_size=1000)
        cache.put("/a", b"a" * 100, "text/plain")
        cache.put("/b", b"b" * 50, "text/plain")

        assert cache.invalidate("/a") is True
        assert cache.get("/a") is None
        assert cache.current_size == 50

    def test_invalidate_missing_is_noop(self):
        cache = MemoryCache(max_size=1000)
        cache.put("/a", b"a" * 100, "text/plain")

        assert cache.invalidate("/nope") is False
        assert cache.current_size == 100

    def test_clear(self):
        cache = MemoryCache(max_size=1000)
        cache.put("/a", b"a" * 100, "text/plain")
        cache.put("/b", b"b" * 100, "text/plain")

        cache.clear()
        assert len(cache) == 0
        assert cache.current_size == 0

    def test_is_stale_missing_entry(self):
        cache = MemoryCache(max_size=1000)
        assert cache.is_stale("/a", 1) is True

    def test_is_stale_compares_mtime(self):
        cache = MemoryCache(max_size=1000)
        cache.put("/a", b"a", "text/plain", mtime_ns=5)
        assert cache.is_stale("/a", 5) is False
        assert cache.is_stale("/a", 6) is True

    def test_get_with_mtime_treats_stale_as_miss(self):
        cache = MemoryCache(max_size=1000)
        cache.put("/a", b"a", "text/plain", mtime_ns=5)
        cache.put("/b", b"b", "text/plain", mtime_ns=5)

        assert cache.get("/a", mtime_ns=6) is None
        assert cache.get("/a", mtime_ns=5) is not None
        assert cache.stats()["hits"] == 1
        assert cache.stats()["misses"] == 1

    def test_stale_get_does_not_promote(self):
        cache = MemoryCache(max_size=1000)
        cache.put("/a", b"a", "text/plain", mtime_ns=5)
        cache.put("/b", b"b", "text/plain", mtime_ns=5)

        cache.get("/a", mtime_ns=9)

        assert cache.keys() == ["/a", "/b"]

    def test_stats(self):
        cache = MemoryCache(max_size=1000)
        cache.put("/a", b"a" * 100, "text/plain", compressed_content=b"z" * 10)
        cache.get("/a")
        cache.get("/b")

        stats = cache.stats()
        assert stats["byte_size"] == 110
        assert stats["entry_count"] == 1
        assert stats["max_size"] == 1000
        assert stats["hits"] == 1
        assert stats["misses"] == 1

    def test_invalid_max_size(self):
        with pytest.raises(ValueError):
            MemoryCache(max_size=0)


class TestEviction:
    """Tests for LRU order and the size invariants."""

    def test_lru_order_get_protects_entry(self):
        """Insert A, B; touch A; insert C → B is evicted, not A."""
        cache = MemoryCache(max_size=200)
        cache.put("/A", b"a" * 100, "text/plain")
        cache.put("/B", b"b" * 100, "text/plain")

        cache.get("/A")
        cache.put("/C", b"c" * 100, "text/plain")

        assert "/A" in cache
        assert "/B" not in cache
        assert "/C" in cache

    def test_oldest_evicted_without_touch(self):
        cache = MemoryCache(max_size=200)
        cache.put("/A", b"a" * 100, "text/plain")
        cache.put("/B", b"b" * 100, "text/plain")
        cache.put("/C", b"c" * 100, "text/plain")

        assert cache.keys() == ["/B", "/C"]

    def test_put_counts_as_touch(self):
        cache = MemoryCache(max_size=200)
        cache.put("/A", b"a" * 100, "text/plain")
        cache.put("/B", b"b" * 100, "text/plain")
        cache.put("/A", b"A" * 100, "text/plain")
        cache.put("/C", b"c" * 100, "text/plain")

        assert cache.keys() == ["/A", "/C"]

    def test_evicts_several_for_large_entry(self):
        cache = MemoryCache(max_size=300)
        for name in ("/a", "/b", "/c"):
            cache.put(name, b"x" * 100, "text/plain")

        cache.put("/big", b"y" * 250, "text/plain")

        assert cache.keys() == ["/big"]
        assert cache.current_size == 250
        assert cache.stats()["evictions"] == 3

    def test_oversized_entry_rejected(self):
        """An entry bigger than max_size leaves the cache unchanged."""
        cache = MemoryCache(max_size=200)
        cache.put("/a", b"a" * 50, "text/plain")
        before = cache.stats()

        result = cache.put("/huge", b"h" * 201, "text/plain")

        assert result is None
        after = cache.stats()
        assert after["byte_size"] == before["byte_size"]
        assert after["entry_count"] == before["entry_count"]
        assert "/huge" not in cache

    def test_compressed_bytes_count_toward_limit(self):
        cache = MemoryCache(max_size=150)
        result = cache.put("/a", b"a" * 100, "text/plain", compressed_content=b"z" * 60)
        assert result is None

    def test_size_invariant_after_mixed_operations(self):
        cache = MemoryCache(max_size=1000)
        for i in range(50):
            size = (i * 37) % 300 + 1
            cache.put(f"/f{i % 12}", b"x" * size, "text/plain",
                      compressed_content=b"z" * (size // 3) if i % 2 else None)
            if i % 7 == 0:
                cache.invalidate(f"/f{(i + 3) % 12}")
            if i == 30:
                cache.clear()

            assert cache.current_size == _sum_sizes(cache)
            assert cache.current_size <= cache.max_size


class TestConcurrency:
    def test_concurrent_puts_keep_invariants(self):
        cache = MemoryCache(max_size=5000)

        def worker(offset: int):
            for i in range(200):
                cache.put(f"/f{(i + offset) % 40}", b"x" * ((i * 13) % 400 + 1), "text/plain")
                cache.get(f"/f{(i * 7) % 40}")
                if i % 25 == 0:
                    cache.invalidate(f"/f{i % 40}")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        stats = cache.stats()
        assert stats["byte_size"] <= 5000
        assert stats["byte_size"] == _sum_sizes(cache)
