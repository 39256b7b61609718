"""
Named caches and the synthetic fallbacks served when nothing else can answer.
"""

# CacheManager lives in .manager; it depends on the worker network layer, so it is not re-exported here
from .types import Request, Response, ResourceClass, request_key
from .storage import ICacheStorage, InMemoryCacheStorage
from .sqlite_storage import SQLiteCacheStorage
from .fallbacks import FALLBACK_HEADER, offline_api_response, offline_page, resource_placeholder

__all__ = [
    'Request',
    'Response',
    'ResourceClass',
    'request_key',
    'ICacheStorage',
    'InMemoryCacheStorage',
    'SQLiteCacheStorage',
    'FALLBACK_HEADER',
    'offline_api_response',
    'offline_page',
    'resource_placeholder'
]
