"""Data storage layer."""

from tracker.storage import cache
from tracker.storage.cache_store import (
    CacheBackend,
    CacheEntry,
    CacheStore,
    MemoryBackend,
    RedisBackend,
    now_ms,
)

__all__ = [
    "cache",
    "CacheBackend",
    "CacheEntry",
    "CacheStore",
    "MemoryBackend",
    "RedisBackend",
    "now_ms",
]
