"""
Named-cache storage behind the cache manager.
Mirrors the browser Cache Storage shape: a directory of named caches, each a key -> response map.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ..core.schema import CacheEntry, utcnow


class ICacheStorage(ABC):
    """Abstract interface for named cache storage."""

    @abstractmethod
    async def init(self) -> None:
        """Open the storage engine."""
        pass

    @abstractmethod
    async def teardown(self) -> None:
        """Release the storage engine."""
        pass

    @abstractmethod
    async def cache_names(self) -> List[str]:
        """Names of every cache currently present."""
        pass

    @abstractmethod
    async def open(self, cache_name: str) -> None:
        """Create a cache if it does not exist yet."""
        pass

    @abstractmethod
    async def match(self, cache_name: str, key: str) -> Optional[CacheEntry]:
        """Look a key up in one cache."""
        pass

    @abstractmethod
    async def match_any(self, key: str, cache_names: List[str]) -> Optional[CacheEntry]:
        """Look a key up across caches, first hit in the given order wins."""
        pass

    @abstractmethod
    async def put(self, cache_name: str, entry: CacheEntry) -> None:
        """Insert or replace an entry."""
        pass

    @abstractmethod
    async def delete_caches(self, cache_names: List[str]) -> List[str]:
        """Delete several caches in one sweep; returns the names that existed."""
        pass

    @abstractmethod
    async def count(self, cache_name: str) -> int:
        """Number of entries in a cache."""
        pass


class InMemoryCacheStorage(ICacheStorage):
    """Process-local cache storage for tests and ephemeral gateways."""

    def __init__(self):
        self._caches: Dict[str, Dict[str, CacheEntry]] = {}

    async def init(self) -> None:
        pass

    async def teardown(self) -> None:
        pass

    async def cache_names(self) -> List[str]:
        return list(self._caches.keys())

    async def open(self, cache_name: str) -> None:
        self._caches.setdefault(cache_name, {})

    async def match(self, cache_name: str, key: str) -> Optional[CacheEntry]:
        return self._caches.get(cache_name, {}).get(key)

    async def match_any(self, key: str, cache_names: List[str]) -> Optional[CacheEntry]:
        for name in cache_names:
            entry = await self.match(name, key)
            if entry is not None:
                return entry
        return None

    async def put(self, cache_name: str, entry: CacheEntry) -> None:
        if entry.cached_at is None:
            entry.cached_at = utcnow()
        self._caches.setdefault(cache_name, {})[entry.key] = entry

    async def delete_caches(self, cache_names: List[str]) -> List[str]:
        deleted = []
        for name in cache_names:
            if self._caches.pop(name, None) is not None:
                deleted.append(name)
        return deleted

    async def count(self, cache_name: str) -> int:
        return len(self._caches.get(cache_name, {}))
