"""
SQLite cache storage - survives restarts and is shared by every context of the app.
"""

import asyncio
import json
from datetime import datetime
from typing import List, Optional

from .storage import ICacheStorage
from ..core.config import CACHE_DB_PATH
from ..core.db import get_db, init_cache_schema
from ..core.schema import CacheClass, CacheEntry, utcnow


class SQLiteCacheStorage(ICacheStorage):
    """Durable implementation of ICacheStorage on one SQLite file."""

    def __init__(self, db_path: str = None):
        self.db_path = db_path or CACHE_DB_PATH

    async def init(self) -> None:
        await asyncio.to_thread(init_cache_schema, self.db_path)

    async def teardown(self) -> None:
        pass

    async def cache_names(self) -> List[str]:
        return await asyncio.to_thread(self._cache_names)

    def _cache_names(self) -> List[str]:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM caches ORDER BY created_at, name")
            return [row[0] for row in cursor.fetchall()]

    async def open(self, cache_name: str) -> None:
        await asyncio.to_thread(self._open, cache_name)

    def _open(self, cache_name: str):
        with get_db(self.db_path) as conn:
            conn.execute(
                "INSERT OR IGNORE INTO caches (name, created_at) VALUES (?, ?)",
                (cache_name, utcnow().isoformat())
            )
            conn.commit()

    async def match(self, cache_name: str, key: str) -> Optional[CacheEntry]:
        return await asyncio.to_thread(self._match, cache_name, key)

    def _match(self, cache_name: str, key: str) -> Optional[CacheEntry]:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT key, status, headers, body, cached_at, cache_class FROM cache_entries "
                "WHERE cache_name = ? AND key = ?",
                (cache_name, key)
            )
            row = cursor.fetchone()

        if row is None:
            return None

        key_val, status, headers, body, cached_at, cache_class = row
        return CacheEntry(
            key=key_val,
            status=status,
            headers=json.loads(headers),
            body=bytes(body),
            cached_at=datetime.fromisoformat(cached_at),
            cache_class=CacheClass(cache_class),
        )

    async def match_any(self, key: str, cache_names: List[str]) -> Optional[CacheEntry]:
        for name in cache_names:
            entry = await self.match(name, key)
            if entry is not None:
                return entry
        return None

    async def put(self, cache_name: str, entry: CacheEntry) -> None:
        await asyncio.to_thread(self._put, cache_name, entry)

    def _put(self, cache_name: str, entry: CacheEntry):
        cached_at = entry.cached_at or utcnow()
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                "INSERT OR IGNORE INTO caches (name, created_at) VALUES (?, ?)",
                (cache_name, cached_at.isoformat())
            )
            cursor.execute(
                "INSERT OR REPLACE INTO cache_entries "
                "(cache_name, key, status, headers, body, cached_at, cache_class) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    cache_name,
                    entry.key,
                    entry.status,
                    json.dumps(entry.headers),
                    entry.body,
                    cached_at.isoformat(),
                    entry.cache_class.value,
                )
            )
            conn.commit()

    async def delete_caches(self, cache_names: List[str]) -> List[str]:
        return await asyncio.to_thread(self._delete_caches, cache_names)

    def _delete_caches(self, cache_names: List[str]) -> List[str]:
        if not cache_names:
            return []

        placeholders = ",".join("?" for _ in cache_names)
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(f"SELECT name FROM caches WHERE name IN ({placeholders})", cache_names)
            existing = [row[0] for row in cursor.fetchall()]
            # Single transaction: either every stale cache goes or none does
            cursor.execute(f"DELETE FROM cache_entries WHERE cache_name IN ({placeholders})", cache_names)
            cursor.execute(f"DELETE FROM caches WHERE name IN ({placeholders})", cache_names)
            conn.commit()
        return existing

    async def count(self, cache_name: str) -> int:
        return await asyncio.to_thread(self._count, cache_name)

    def _count(self, cache_name: str) -> int:
        with get_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) FROM cache_entries WHERE cache_name = ?", (cache_name,))
            return cursor.fetchone()[0]
