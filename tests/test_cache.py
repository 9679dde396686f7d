"""
Tests for providers/cache.py - TTL semantics, normalization, failure handling.
"""
import threading
from unittest.mock import patch

from providers.cache import MarketDataCache
from tests.conftest import FixedClock, make_snapshot


class TestGetPut:

    def test_get_after_put_returns_equal_snapshot(self, cache):
        snap = make_snapshot("NVDA")
        cache.put("NVDA", snap)
        assert cache.get("NVDA") == snap

    def test_symbol_is_normalized(self, cache):
        snap = make_snapshot("NVDA")
        cache.put(" nvda ", snap)
        assert cache.get("Nvda") == snap
        assert cache.entry("NVDA").symbol == "NVDA"

    def test_miss_for_unknown_symbol(self, cache):
        assert cache.get("AAPL") is None

    def test_last_write_wins(self, cache):
        cache.put("NVDA", make_snapshot("NVDA", 100.0))
        cache.put("NVDA", make_snapshot("NVDA", 101.0))
        assert cache.get("NVDA").current_price == 101.0
        assert cache.stats()["entries"] == 1


class TestExpiry:

    def test_served_just_before_ttl(self, cache, clock):
        cache.put("NVDA", make_snapshot())
        clock.advance(minutes=14, seconds=59)
        assert cache.get("NVDA") is not None

    def test_miss_at_exact_expiry(self, cache, clock):
        cache.put("NVDA", make_snapshot())
        clock.advance(minutes=15)
        assert cache.get("NVDA") is None

    def test_miss_after_ttl(self, cache, clock):
        cache.put("NVDA", make_snapshot())
        clock.advance(minutes=15, seconds=1)
        assert cache.get("NVDA") is None
        # Expired entry is dropped
        assert cache.entry("NVDA") is None

    def test_expires_at_is_put_time_plus_ttl(self, cache, clock):
        cache.put("NVDA", make_snapshot())
        entry = cache.entry("NVDA")
        assert entry.expires_at - entry.stored_at == cache.ttl
        assert entry.stored_at == clock.now

    def test_custom_ttl(self):
        clock = FixedClock()
        cache = MarketDataCache(ttl_minutes=1, clock=clock)
        cache.put("AAPL", make_snapshot("AAPL"))
        clock.advance(seconds=61)
        assert cache.get("AAPL") is None


class TestFailureHandling:

    def test_broken_clock_on_read_is_a_miss(self, cache):
        cache.put("NVDA", make_snapshot())
        with patch.object(cache, "_clock", side_effect=RuntimeError("clock broke")):
            assert cache.get("NVDA") is None

    def test_broken_clock_on_write_is_dropped(self, cache):
        with patch.object(cache, "_clock", side_effect=RuntimeError("clock broke")):
            cache.put("NVDA", make_snapshot())
        assert cache.get("NVDA") is None


class TestEvictionAndStats:

    def test_capacity_evicts_oldest(self, clock):
        cache = MarketDataCache(ttl_minutes=15, max_entries=3, clock=clock)
        for sym in ("AAA", "BBB", "CCC"):
            cache.put(sym, make_snapshot(sym))
            clock.advance(seconds=1)
        cache.put("DDD", make_snapshot("DDD"))
        assert cache.get("AAA") is None
        assert cache.get("DDD") is not None

    def test_stats_and_invalidate(self, cache):
        cache.put("NVDA", make_snapshot())
        cache.get("NVDA")
        cache.get("AAPL")
        stats = cache.stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 50.0
        assert "50% hit rate" in cache.format_stats_report()

        cache.invalidate("nvda")
        assert cache.get("NVDA") is None
        cache.put("AAPL", make_snapshot("AAPL"))
        cache.invalidate()
        assert cache.stats()["entries"] == 0


class TestConcurrency:

    def test_concurrent_writers_and_readers(self, cache):
        """Readers only ever see a complete snapshot from one of the writers."""
        prices = {100.0 + i for i in range(20)}
        errors = []

        def writer(price):
            cache.put("NVDA", make_snapshot("NVDA", price))

        def reader():
            for _ in range(50):
                snap = cache.get("NVDA")
                if snap is not None and snap.current_price not in prices:
                    errors.append(snap)

        threads = [threading.Thread(target=writer, args=(p,)) for p in prices]
        threads += [threading.Thread(target=reader) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert cache.get("NVDA").current_price in prices
