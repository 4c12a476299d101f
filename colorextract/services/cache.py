"""
colorextract Result Cache
Bounded in-memory LRU cache for extraction results, keyed by fingerprint.
"""
import itertools
import time
from typing import Any, Dict, Optional

from loguru import logger

from colorextract.config import config


class ResultCache:
    """
    In-memory LRU cache with optional TTL.

    Recency is tracked with a monotonic counter rather than wall-clock time so
    two accesses in the same clock tick still order correctly. Only touched
    from the event-loop thread.
    """

    def __init__(self, max_size: Optional[int] = None, ttl_seconds: Optional[float] = None):
        self.max_size = max_size if max_size is not None else config.CACHE_MAX_ENTRIES
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else config.CACHE_TTL_SECONDS
        self._cache: Dict[str, Dict[str, Any]] = {}
        self._access_order: Dict[str, int] = {}
        self._tick = itertools.count()
        self.stats = {'hits': 0, 'misses': 0, 'sets': 0, 'evictions': 0}

    def _expired(self, entry: Dict[str, Any]) -> bool:
        return entry['expires'] is not None and entry['expires'] <= time.time()

    def get(self, key: str) -> Optional[Any]:
        """Get value and mark it most recently used."""
        entry = self._cache.get(key)
        if entry is not None:
            if not self._expired(entry):
                self._access_order[key] = next(self._tick)
                self.stats['hits'] += 1
                return entry['value']
            # Expired
            self.delete(key)

        self.stats['misses'] += 1
        return None

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        """Store a value, evicting the least recently used entry when full."""
        if self.max_size <= 0:
            return False

        if len(self._cache) >= self.max_size and key not in self._cache:
            self._evict_lru()

        ttl = self.ttl_seconds if ttl is None else ttl
        self._cache[key] = {
            'value': value,
            'expires': time.time() + ttl if ttl and ttl > 0 else None,
        }
        self._access_order[key] = next(self._tick)
        self.stats['sets'] += 1
        return True

    def delete(self, key: str) -> bool:
        if key in self._cache:
            del self._cache[key]
            self._access_order.pop(key, None)
            return True
        return False

    def exists(self, key: str) -> bool:
        """Check for a non-expired key without touching recency or stats."""
        entry = self._cache.get(key)
        return entry is not None and not self._expired(entry)

    def clear(self) -> bool:
        count = len(self._cache)
        self._cache.clear()
        self._access_order.clear()
        if count:
            logger.info(f"Cleared {count} cached results")
        return True

    def _evict_lru(self):
        """Evict least recently used entry."""
        if not self._access_order:
            return

        lru_key = min(self._access_order, key=self._access_order.__getitem__)
        self.delete(lru_key)
        self.stats['evictions'] += 1
        logger.debug(f"Evicted cache entry {lru_key}")

    def get_stats(self) -> Dict[str, Any]:
        total_requests = self.stats['hits'] + self.stats['misses']
        return {
            **self.stats,
            'size': len(self._cache),
            'max_size': self.max_size,
            'hit_rate': self.stats['hits'] / total_requests if total_requests > 0 else 0.0,
        }

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, key: str) -> bool:
        return self.exists(key)
