"""
In-Memory Caching

MemoryCache is a thread-safe TTL + LRU store injected wherever a read-through
cache is needed (embeddings, graded results). ResultCache layers the
evaluation key scheme on top of it: one entry per (model, sample content,
strategy config).

Usage:
    cache = ResultCache(MemoryCache(ttl_seconds=3600, max_items=1000))
    cached = cache.get(model, sample, strategy_config)
    if cached is None:
        result = await strategy.evaluate(sample, completion)
        cache.set(model, sample, strategy_config, result)
    print(cache.stats())
"""

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Generic, Hashable, Optional, TypeVar

from .models import EvalResult, Sample

if TYPE_CHECKING:
    from .grading.config import StrategyConfig

logger = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass
class CacheStats:
    """Hit/miss counters for a cache."""

    hits: int = 0
    misses: int = 0
    evictions: int = 0
    size: int = 0

    @property
    def total_requests(self) -> int:
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        return self.hits / self.total_requests if self.total_requests else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hit_rate,
            "evictions": self.evictions,
            "size": self.size,
        }


class MemoryCache(Generic[V]):
    """
    Thread-safe in-memory cache with TTL expiry and LRU eviction.

    Writes are last-writer-wins; cached values must be pure functions of
    their key.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = 3600.0,
        max_items: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            ttl_seconds: Entry lifetime; None disables expiry.
            max_items: Capacity before the least recently used entry is evicted.
            clock: Time source, injectable for tests.
        """
        if max_items < 1:
            raise ValueError("max_items must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_items = max_items
        self._clock = clock
        self._entries: "OrderedDict[Hashable, tuple]" = OrderedDict()
        self._lock = threading.Lock()
        self._stats = CacheStats()

    def get(self, key: Hashable) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
                return None
            value, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._entries[key]
                self._stats.misses += 1
                return None
            self._entries.move_to_end(key)
            self._stats.hits += 1
            return value

    def set(self, key: Hashable, value: V) -> None:
        expires_at = self._clock() + self.ttl_seconds if self.ttl_seconds is not None else None
        with self._lock:
            self._entries[key] = (value, expires_at)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_items:
                self._entries.popitem(last=False)
                self._stats.evictions += 1

    def delete(self, key: Hashable) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def delete_where(self, predicate: Callable[[Hashable], bool]) -> int:
        """Delete every entry whose key matches predicate. Returns the count."""
        with self._lock:
            doomed = [k for k in self._entries if predicate(k)]
            for k in doomed:
                del self._entries[k]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._stats = CacheStats()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._stats.hits,
                misses=self._stats.misses,
                evictions=self._stats.evictions,
                size=len(self._entries),
            )


class NullCache(MemoryCache):
    """A cache that never stores anything."""

    def __init__(self) -> None:
        super().__init__(ttl_seconds=None, max_items=1)

    def set(self, key: Hashable, value: Any) -> None:
        return None


def _short_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


class ResultCache:
    """Memoizes graded results keyed by (model, sample, strategy config)."""

    def __init__(self, cache: Optional[MemoryCache] = None):
        self._cache: MemoryCache = cache if cache is not None else MemoryCache()

    @staticmethod
    def make_key(model: str, sample: Sample, strategy_config: "StrategyConfig") -> str:
        """``eval:{model hash}:{sample id}:{config hash}``, 16 hex chars each.

        The sample part is the sample id, so metadata edits keep their cache entries.
        """
        config_json = json.dumps(strategy_config.to_dict(), sort_keys=True, default=str)
        return f"eval:{_short_hash(model)}:{sample.sample_id[:16]}:{_short_hash(config_json)}"

    def get(
        self, model: str, sample: Sample, strategy_config: "StrategyConfig"
    ) -> Optional[EvalResult]:
        result = self._cache.get(self.make_key(model, sample, strategy_config))
        if result is not None:
            logger.debug(f"Result cache hit for sample {result.sample_id[:8]}")
        return result

    def set(
        self,
        model: str,
        sample: Sample,
        strategy_config: "StrategyConfig",
        result: EvalResult,
    ) -> None:
        self._cache.set(self.make_key(model, sample, strategy_config), result)

    def invalidate_model(self, model: str) -> int:
        """Drop every cached result for a model. Returns the number removed."""
        prefix = f"eval:{_short_hash(model)}:"
        removed = self._cache.delete_where(lambda k: isinstance(k, str) and k.startswith(prefix))
        logger.info(f"Invalidated {removed} cached results for {model}")
        return removed

    def clear(self) -> None:
        self._cache.clear()

    def stats(self) -> Dict[str, Any]:
        return self._cache.stats().to_dict()
