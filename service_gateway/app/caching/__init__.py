"""
Gateway caching package.

Caches complete upstream responses for APIs that opt in with a TTL. Only
successful GET responses are stored.
"""

from .response_cache import (
    CacheBackend,
    CachedResponse,
    InMemoryCacheBackend,
    RedisCacheBackend,
    ResponseCache,
)

__all__ = [
    "CacheBackend",
    "CachedResponse",
    "InMemoryCacheBackend",
    "RedisCacheBackend",
    "ResponseCache",
]
