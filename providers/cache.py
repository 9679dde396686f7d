"""
Thread-safe market snapshot cache with TTL.

One entry per symbol (uppercase key). Entries expire after a configurable TTL
(default 15 minutes) and are never served once expired. Writes replace the
whole entry (last write wins), so concurrent readers only ever see a complete
snapshot.

A cache failure is never fatal: reads degrade to a miss, writes are dropped.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Callable, Dict, Optional

from loguru import logger

from providers.base import MarketSnapshot
from utils.platform import now_utc


@dataclass(frozen=True)
class CacheEntry:
    """Single cached snapshot."""
    symbol: str
    snapshot: MarketSnapshot
    stored_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class MarketDataCache:
    """TTL-keyed store of market snapshots, consulted before any external fetch.

    Usage:
        cache = MarketDataCache(ttl_minutes=15)

        snapshot = cache.get("nvda")
        if snapshot is None:
            snapshot = build_snapshot(...)
            cache.put("NVDA", snapshot)

    `clock` is injectable so expiry can be tested without sleeping.
    """

    def __init__(self, ttl_minutes: float = 15, max_entries: int = 5000,
                 clock: Callable[[], datetime] = now_utc):
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = Lock()
        self._ttl = timedelta(minutes=ttl_minutes)
        self._max_entries = max_entries
        self._clock = clock

        # Stats
        self._hits = 0
        self._misses = 0

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    @staticmethod
    def _key(symbol: str) -> str:
        return symbol.strip().upper()

    def get(self, symbol: str) -> Optional[MarketSnapshot]:
        """Cached snapshot, or None if missing/expired (or the cache is broken)."""
        try:
            key = self._key(symbol)
            now = self._clock()
            with self._lock:
                entry = self._entries.get(key)
                if entry is None:
                    self._misses += 1
                    return None
                if entry.is_expired(now):
                    del self._entries[key]
                    self._misses += 1
                    return None
                self._hits += 1
                return entry.snapshot
        except Exception as e:
            logger.warning(f"Cache read failed for {symbol}, treating as miss: {e}")
            return None

    def put(self, symbol: str, snapshot: MarketSnapshot) -> None:
        """Store a snapshot with expires_at = now + TTL, replacing any prior entry."""
        try:
            key = self._key(symbol)
            now = self._clock()
            entry = CacheEntry(
                symbol=key,
                snapshot=snapshot,
                stored_at=now,
                expires_at=now + self._ttl,
            )
            with self._lock:
                if key not in self._entries and len(self._entries) >= self._max_entries:
                    self._evict_expired(now)
                    if len(self._entries) >= self._max_entries:
                        self._evict_oldest()
                self._entries[key] = entry
        except Exception as e:
            logger.warning(f"Cache write failed for {symbol}, continuing uncached: {e}")

    def entry(self, symbol: str) -> Optional[CacheEntry]:
        """Raw entry for inspection (expired entries included)."""
        with self._lock:
            return self._entries.get(self._key(symbol))

    def invalidate(self, symbol: Optional[str] = None):
        """Clear one symbol, or everything when symbol is None."""
        with self._lock:
            if symbol is None:
                count = len(self._entries)
                self._entries.clear()
                logger.debug(f"Market cache cleared: {count} entries removed")
            else:
                self._entries.pop(self._key(symbol), None)

    def _evict_expired(self, now: datetime):
        """Remove all expired entries. Caller must hold lock."""
        for k in [k for k, v in self._entries.items() if v.is_expired(now)]:
            del self._entries[k]

    def _evict_oldest(self):
        """Remove oldest 10% of entries. Caller must hold lock."""
        if not self._entries:
            return
        sorted_keys = sorted(self._entries, key=lambda k: self._entries[k].stored_at)
        for k in sorted_keys[:max(1, len(sorted_keys) // 10)]:
            del self._entries[k]

    def stats(self) -> Dict[str, Any]:
        """Cache statistics for reporting."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "entries": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": (self._hits / total * 100) if total > 0 else 0.0,
            }

    def format_stats_report(self) -> str:
        s = self.stats()
        return (
            f"  Cache:     {s['hit_rate']:.0f}% hit rate "
            f"({s['entries']} entries, saved ~{s['hits']} fetches)"
        )
