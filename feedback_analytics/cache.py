"""LRU cache for computed analytics results."""
import time
from collections import OrderedDict
from typing import Any, Dict, NamedTuple, Optional, Type, TypeVar
from pydantic import BaseModel
from config import config

ResultT = TypeVar("ResultT", bound=BaseModel)


class CacheKey(NamedTuple):
    """Identity of a cached analysis.

    scope is the segment type, "-" for tenant-wide churn risk, or
    "customer:<email>" for a single customer's churn risk.
    """

    tenant_id: str
    scope: str
    time_range: str
    source: str
    limit: Optional[int] = None


class ResultCache:
    """LRU cache with TTL for analytics results.

    Entries are advisory: they expire only by TTL and are never invalidated
    early, since feedback windows only grow by appending new items.
    """

    def __init__(self, max_size: int = None, ttl_seconds: int = None):
        """Initialize the cache.

        Args:
            max_size: Maximum number of entries (default from config)
            ttl_seconds: Time-to-live in seconds (default from config)
        """
        self.max_size = max_size or config.CACHE_MAX_SIZE
        self.ttl_seconds = ttl_seconds or config.CACHE_TTL_SECONDS
        self._cache: OrderedDict[CacheKey, Dict[str, Any]] = OrderedDict()
        self._stats = {"hits": 0, "misses": 0}

    def get(self, key: CacheKey, result_type: Type[ResultT]) -> Optional[ResultT]:
        """Retrieve cached result if available and not expired.

        Args:
            key: Cache key of the analysis
            result_type: Model class to rebuild the result as

        Returns:
            A fresh copy of the cached result, or None
        """
        if key not in self._cache:
            self._stats["misses"] += 1
            return None

        entry = self._cache[key]

        if time.time() - entry["timestamp"] > self.ttl_seconds:
            del self._cache[key]
            self._stats["misses"] += 1
            return None

        self._cache.move_to_end(key)
        self._stats["hits"] += 1

        # Rebuild so callers can never mutate the cached copy
        return result_type.model_validate(entry["result"])

    def set(self, key: CacheKey, result: BaseModel) -> None:
        """Store an analysis result in cache."""
        if len(self._cache) >= self.max_size and key not in self._cache:
            self._cache.popitem(last=False)

        self._cache[key] = {
            "result": result.model_dump(),
            "timestamp": time.time()
        }
        self._cache.move_to_end(key)

    def clear(self) -> None:
        """Clear all cache entries."""
        self._cache.clear()
        self._stats = {"hits": 0, "misses": 0}

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dictionary with hits, misses, size, and hit rate
        """
        total_requests = self._stats["hits"] + self._stats["misses"]
        hit_rate = (
            self._stats["hits"] / total_requests if total_requests > 0 else 0
        )

        return {
            "hits": self._stats["hits"],
            "misses": self._stats["misses"],
            "size": len(self._cache),
            "max_size": self.max_size,
            "hit_rate": round(hit_rate, 3)
        }
