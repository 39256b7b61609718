"""
Cache manager - one read/write strategy per resource class.

API         -> network-first, dynamic-cache fallback, synthetic offline JSON
Navigation  -> static-cache-first, network, root shell, synthetic offline page
Resource    -> cache-first, populate on miss, typed placeholder

Every strategy returns a Response; none of them raises for a network failure.
"""

import asyncio
from typing import List, Optional, Set

from .fallbacks import offline_api_response, offline_page, resource_placeholder
from .storage import ICacheStorage
from .types import Request, Response, request_key
from ..core.config import (
    APP_CACHE_NAME,
    APP_ORIGIN,
    DYNAMIC_CACHE_NAME,
    PRECACHE_URLS,
    SHELL_URL,
    STATIC_CACHE_NAME,
    current_cache_names,
)
from ..core.db import StorageUnavailable
from ..core.schema import CacheClass, CacheEntry, utcnow
from ..util.logging import logger
from ..worker.network import INetwork, NetworkError

STALE_HEADER = "x-cache-status"

# Responses that must not be replayed from cache
_UNCACHEABLE_CONTROL = ("no-store",)


class CacheManager:
    """Owns every CacheEntry; the outbox never sees these records."""

    def __init__(
        self,
        storage: ICacheStorage,
        network: INetwork,
        static_cache: str = None,
        dynamic_cache: str = None,
        app_cache: str = None,
        current_names: Optional[List[str]] = None,
        shell_url: str = None,
        origin: str = None,
    ):
        self.storage = storage
        self.network = network
        self.static_cache = static_cache or STATIC_CACHE_NAME
        self.dynamic_cache = dynamic_cache or DYNAMIC_CACHE_NAME
        self.app_cache = app_cache or APP_CACHE_NAME
        self.current_names = current_names or current_cache_names()
        self.shell_url = shell_url or SHELL_URL
        self.origin = APP_ORIGIN if origin is None else origin
        self._pending_writes: Set[asyncio.Task] = set()

    # Lifecycle

    async def init(self):
        await self.storage.init()

    async def teardown(self):
        await self.flush()
        await self.storage.teardown()

    async def flush(self):
        """Wait for background cache writes still in flight."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    async def install(self, precache_urls: Optional[List[str]] = None) -> List[str]:
        """Populate the static cache with the app shell. Returns the URLs cached."""
        urls = PRECACHE_URLS if precache_urls is None else precache_urls
        await self.storage.open(self.static_cache)

        cached = []
        for url in urls:
            request = Request(method="GET", url=url)
            try:
                response = await self.network.fetch(request)
            except NetworkError as e:
                logger.log_cache_operation("precache", self.static_cache, url, status="failed")
                logger.debug(f"Precache of {url} failed: {e}")
                continue

            if not response.ok:
                logger.log_cache_operation("precache", self.static_cache, url, status="failed")
                continue

            await self.storage.put(self.static_cache, self._entry(request, response, CacheClass.STATIC))
            cached.append(url)

        logger.log_operation("cache.install", "success", {"cache": self.static_cache, "cached": len(cached), "requested": len(urls)})
        return cached

    async def activate(self) -> List[str]:
        """Delete every cache outside the current version set, in one sweep."""
        names = await self.storage.cache_names()
        stale = [name for name in names if name not in self.current_names]
        if not stale:
            return []

        deleted = await self.storage.delete_caches(stale)
        for name in deleted:
            logger.log_cache_operation("delete", name, status="stale")
        return deleted

    # Strategies

    async def network_first(self, request: Request) -> Response:
        """API class: network, write-through on success, cache then synthetic JSON on failure."""
        failure = None
        try:
            response = await self.network.fetch(request)
        except NetworkError as e:
            response = None
            failure = str(e)

        if response is not None and response.ok:
            self._cache_in_background(self.dynamic_cache, request, response, CacheClass.DYNAMIC)
            return response

        cached = await self._safe_match([self.dynamic_cache], request)
        if cached is not None:
            logger.log_cache_operation("fallback", self.dynamic_cache, request.url, status="stale")
            stale = self._to_response(cached)
            stale.headers[STALE_HEADER] = "stale"
            return stale

        if response is not None:
            failure = f"upstream answered {response.status}"

        logger.log_cache_operation("fallback", self.dynamic_cache, request.url, status="synthetic")
        logger.debug(f"API fetch failed without cached copy: {failure}")
        return offline_api_response(request)

    async def cache_first_shell(self, request: Request) -> Response:
        """Navigation class: static cache for the exact route, network, root shell, offline page."""
        cached = await self._safe_match([self.static_cache, self.app_cache], request)
        if cached is not None:
            return self._to_response(cached)

        try:
            response = await self.network.fetch(request)
            if response.ok:
                return response
            logger.debug(f"Navigation fetch for {request.url} answered {response.status}")
        except NetworkError as e:
            logger.debug(f"Navigation fetch failed for {request.url}: {e}")

        shell_request = Request(method="GET", url=self.shell_url, mode="navigate")
        shell = await self._safe_match([self.static_cache, self.app_cache], shell_request)
        if shell is not None:
            logger.log_cache_operation("fallback", self.static_cache, self.shell_url, status="shell")
            return self._to_response(shell)

        logger.log_cache_operation("fallback", self.static_cache, request.url, status="synthetic")
        return offline_page()

    async def cache_first_populate(self, request: Request) -> Response:
        """Resource class: any current cache, then network with write-through, then a placeholder."""
        cached = await self._safe_match([self.static_cache, self.app_cache, self.dynamic_cache], request)
        if cached is not None:
            return self._to_response(cached)

        try:
            response = await self.network.fetch(request)
        except NetworkError as e:
            logger.debug(f"Resource fetch failed for {request.url}: {e}")
            return resource_placeholder(request)

        if not response.ok:
            logger.debug(f"Resource fetch for {request.url} answered {response.status}")
            return resource_placeholder(request)

        self._cache_in_background(self.dynamic_cache, request, response, CacheClass.DYNAMIC)
        return response

    async def pass_through(self, request: Request) -> Optional[Response]:
        """Uncached network call; None when the network did not answer."""
        try:
            return await self.network.fetch(request)
        except NetworkError as e:
            logger.debug(f"Pass-through fetch failed for {request.url}: {e}")
            return None

    # Helpers

    async def cache_counts(self) -> dict:
        counts = {}
        for name in await self.storage.cache_names():
            counts[name] = await self.storage.count(name)
        return counts

    def _entry(self, request: Request, response: Response, cache_class: CacheClass) -> CacheEntry:
        return CacheEntry(
            key=request_key(request, self.origin),
            status=response.status,
            headers=dict(response.headers),
            body=response.body,
            cached_at=utcnow(),
            cache_class=cache_class,
        )

    @staticmethod
    def _to_response(entry: CacheEntry) -> Response:
        return Response(status=entry.status, headers=dict(entry.headers), body=entry.body)

    async def _safe_match(self, cache_names: List[str], request: Request) -> Optional[CacheEntry]:
        try:
            return await self.storage.match_any(request_key(request, self.origin), cache_names)
        except StorageUnavailable as e:
            logger.warning(f"Cache lookup unavailable for {request.url}: {e}")
            return None

    def _cache_in_background(self, cache_name: str, request: Request, response: Response, cache_class: CacheClass):
        """Best-effort write-through; the caller gets its response without waiting.

        The task belongs to the manager, so it finishes even if the requesting
        page goes away.
        """
        cache_control = response.headers.get("cache-control", "")
        if any(directive in cache_control for directive in _UNCACHEABLE_CONTROL):
            return

        entry = self._entry(request, response, cache_class)
        task = asyncio.create_task(self._write(cache_name, entry))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _write(self, cache_name: str, entry: CacheEntry):
        try:
            await self.storage.put(cache_name, entry)
            logger.log_cache_operation("put", cache_name, entry.key)
        except StorageUnavailable as e:
            logger.log_cache_operation("put", cache_name, entry.key, status="failed")
            logger.debug(f"Cache write failed: {e}")
