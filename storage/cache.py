"""
In-process TTL cache of decoded collections, keyed by document path.

Repositories own one cache reference each and evict their key inside every
write. Entries are copied on the way in and on the way out so a caller can
never mutate a cached collection in place.
"""

import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import structlog
from pydantic import BaseModel

logger = structlog.get_logger(__name__)

DEFAULT_TTL_SECONDS = 300

GenerationToken = Tuple[int, int]


def _copy_collection(items: Sequence[BaseModel]) -> List[BaseModel]:
    return [item.model_copy(deep=True) for item in items]


class CollectionCache(ABC):
    """Interface shared by the real cache and the disabled one."""

    @abstractmethod
    def get(self, key: str) -> Optional[List[BaseModel]]:
        ...

    @abstractmethod
    def put(self, key: str, items: Sequence[BaseModel], generation: Optional[GenerationToken] = None) -> bool:
        ...

    @abstractmethod
    def evict(self, key: str) -> bool:
        ...

    @abstractmethod
    def evict_all(self) -> None:
        ...

    @abstractmethod
    def clean_expired(self) -> int:
        ...

    @abstractmethod
    def generation(self, key: str) -> GenerationToken:
        ...

    @abstractmethod
    def stats(self) -> Dict[str, Any]:
        ...


class RecordCache(CollectionCache):
    """Thread-safe TTL cache of record collections."""

    def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        """
        Initialize the cache.

        Args:
            ttl_seconds: Lifetime of an entry
            clock: Monotonic time source, injectable for tests
        """
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[List[BaseModel], float]] = {}
        self._generations: Dict[str, int] = {}
        self._epoch = 0
        self._lock = threading.RLock()
        self._stats = {
            'hits': 0,
            'misses': 0,
            'puts': 0,
            'stale_puts': 0,
            'evictions': 0,
        }

    def get(self, key: str) -> Optional[List[BaseModel]]:
        """Return a copy of the cached collection, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry:
                items, expires_at = entry
                if self._clock() < expires_at:
                    self._stats['hits'] += 1
                    return _copy_collection(items)
                # Expired, drop it
                del self._entries[key]

            self._stats['misses'] += 1
            return None

    def put(self, key: str, items: Sequence[BaseModel], generation: Optional[GenerationToken] = None) -> bool:
        """
        Store a freshly decoded collection.

        Args:
            key: Document path
            items: Decoded records
            generation: Token from ``generation()`` taken before the read; the
                put is dropped if the key was evicted since then

        Returns:
            True if the collection was stored
        """
        with self._lock:
            if generation is not None and generation != self.generation(key):
                self._stats['stale_puts'] += 1
                logger.debug("Dropped stale cache fill", key=key)
                return False

            self._entries[key] = (_copy_collection(items), self._clock() + self.ttl_seconds)
            self._stats['puts'] += 1
            return True

    def evict(self, key: str) -> bool:
        """Drop one key and invalidate reads that started before now."""
        with self._lock:
            self._generations[key] = self._generations.get(key, 0) + 1
            existed = self._entries.pop(key, None) is not None
            if existed:
                self._stats['evictions'] += 1
            return existed

    def evict_all(self) -> None:
        """Drop every entry."""
        with self._lock:
            self._epoch += 1
            self._stats['evictions'] += len(self._entries)
            self._entries.clear()

    def clean_expired(self) -> int:
        """Remove expired entries and return how many were dropped."""
        with self._lock:
            now = self._clock()
            expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def generation(self, key: str) -> GenerationToken:
        with self._lock:
            return (self._epoch, self._generations.get(key, 0))

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            stats = self._stats.copy()
            stats['size'] = len(self._entries)
            stats['ttl_seconds'] = self.ttl_seconds

        lookups = stats['hits'] + stats['misses']
        stats['hit_ratio'] = stats['hits'] / lookups if lookups else 0.0
        return stats


class NullCache(CollectionCache):
    """Cache that stores nothing, so every read goes to the document."""

    def get(self, key: str) -> Optional[List[BaseModel]]:
        return None

    def put(self, key: str, items: Sequence[BaseModel], generation: Optional[GenerationToken] = None) -> bool:
        return False

    def evict(self, key: str) -> bool:
        return False

    def evict_all(self) -> None:
        pass

    def clean_expired(self) -> int:
        return 0

    def generation(self, key: str) -> GenerationToken:
        return (0, 0)

    def stats(self) -> Dict[str, Any]:
        return {'enabled': False, 'size': 0, 'hits': 0, 'misses': 0, 'hit_ratio': 0.0}
