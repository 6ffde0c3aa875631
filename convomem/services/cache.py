"""
Bounded in-process caches in front of the record store.

All caches are advisory: a miss, an expiry or an eviction only costs a store
round trip. Each engine owns its own CacheLayer; nothing here is global.
"""

import threading
import time
from collections import OrderedDict, deque
from typing import Any, Callable, Deque, Dict, Hashable, Optional, Set, Tuple

from ..utils.config import CacheConfig
from ..utils.logging_config import get_logger

logger = get_logger(__name__)

_MISSING = object()


class TTLCache:
    """Insertion-ordered cache with a per-entry TTL and oldest-insertion eviction."""

    def __init__(self, ttl_seconds: float, capacity: int, clock: Callable[[], float] = time.monotonic):
        if capacity <= 0:
            raise ValueError('capacity must be positive')
        self.ttl_seconds = ttl_seconds
        self.capacity = capacity
        self._clock = clock
        self._entries: 'OrderedDict[Hashable, Tuple[float, Any]]' = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key, _MISSING)
            if entry is _MISSING:
                return default
            stored_at, value = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[key]
                return default
            return value

    def put(self, key: Hashable, value: Any) -> None:
        with self._lock:
            # Re-insert so a refreshed key counts as the newest insertion
            self._entries.pop(key, None)
            self._entries[key] = (self._clock(), value)
            while len(self._entries) > self.capacity:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f'Evicted cache entry: {evicted!r}')

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_where(self, predicate: Callable[[Hashable], bool]) -> int:
        """Drop every key matching predicate; returns how many were dropped."""
        with self._lock:
            doomed = [key for key in self._entries if predicate(key)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RecentDuplicateFilter:
    """Per-identity window of the most recent content fingerprints."""

    def __init__(self, window: int = 128, capacity: int = 2000):
        self.window = window
        self.capacity = capacity
        self._buckets: 'OrderedDict[str, Tuple[Set[str], Deque[str]]]' = OrderedDict()
        self._lock = threading.Lock()

    def contains(self, identity: str, signature: str) -> bool:
        with self._lock:
            bucket = self._buckets.get(identity)
            return bucket is not None and signature in bucket[0]

    def remember(self, identity: str, signature: str) -> None:
        with self._lock:
            bucket = self._buckets.get(identity)
            if bucket is None:
                bucket = (set(), deque())
                self._buckets[identity] = bucket
                while len(self._buckets) > self.capacity:
                    self._buckets.popitem(last=False)
            seen, queue = bucket
            if signature in seen:
                return
            seen.add(signature)
            queue.append(signature)
            while len(queue) > self.window:
                seen.discard(queue.popleft())

    def discard(self, identity: str, signature: str) -> None:
        with self._lock:
            bucket = self._buckets.get(identity)
            if bucket is None or signature not in bucket[0]:
                return
            bucket[0].discard(signature)
            bucket[1].remove(signature)

    def forget_identity(self, identity: str) -> None:
        with self._lock:
            self._buckets.pop(identity, None)


class CacheLayer:
    """The four caches used by the memory engine."""

    def __init__(self, cache_config: Optional[CacheConfig] = None, clock: Callable[[], float] = time.monotonic):
        cache_config = cache_config or CacheConfig()
        self.config = cache_config

        # identity -> UserProfile
        self.profiles = TTLCache(cache_config.ttl_seconds, cache_config.capacity, clock)
        # identity -> list of record ids, oldest first
        self.semantic_indexes = TTLCache(cache_config.ttl_seconds, cache_config.capacity, clock)
        # (identity, normalized query, top_k) -> list of Records
        self.recalls = TTLCache(cache_config.recall_ttl_seconds, cache_config.recall_capacity, clock)
        self.duplicates = RecentDuplicateFilter(cache_config.duplicate_window, cache_config.capacity)

    def invalidate_recalls(self, identity: str) -> int:
        return self.recalls.invalidate_where(lambda key: key[0] == identity)

    def invalidate_user(self, identity: str) -> None:
        """Drop everything cached for one identity."""
        self.profiles.invalidate(identity)
        self.semantic_indexes.invalidate(identity)
        self.invalidate_recalls(identity)
        self.duplicates.forget_identity(identity)

    def stats(self) -> Dict[str, int]:
        return {
            'profiles': len(self.profiles),
            'semantic_indexes': len(self.semantic_indexes),
            'recalls': len(self.recalls),
        }
