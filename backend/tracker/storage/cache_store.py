"""TTL cache store over a key-value medium.

Entries are persisted as one JSON document per key:

- {prefix}{key} -> {"data": <payload>, "expiry": <epoch ms>, "fetched": <epoch ms>}

A read that finds an expired document deletes it and reports the key as
absent. Writes replace the whole document in one call, so a reader sees
either the old entry or the new one.
"""

from __future__ import annotations

import fnmatch
import logging
import time
from typing import Any, Callable, Generic, Protocol, TypeVar

import orjson
from pydantic import BaseModel, ConfigDict, model_validator

from tracker.storage import cache

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class CacheEntry(BaseModel, Generic[T]):
    """A cached value with its fetch and expiry times (epoch ms)."""

    model_config = ConfigDict(frozen=True)

    value: T
    fetched_at: int
    expires_at: int

    @model_validator(mode="after")
    def _check_expiry(self) -> "CacheEntry[T]":
        if self.expires_at <= self.fetched_at:
            raise ValueError("expires_at must be after fetched_at")
        return self

    def is_expired(self, now: int) -> bool:
        return now > self.expires_at


# =============================================================================
# Backends
# =============================================================================

class CacheBackend(Protocol):
    """Raw byte storage used by CacheStore."""

    async def get(self, key: str) -> bytes | None: ...

    async def set(self, key: str, value: bytes, ttl_ms: int) -> bool: ...

    async def delete(self, key: str) -> bool: ...

    async def delete_pattern(self, pattern: str) -> int: ...


class RedisBackend:
    """Backend on the shared Redis connection (see tracker.storage.cache)."""

    async def get(self, key: str) -> bytes | None:
        return await cache.get(key)

    async def set(self, key: str, value: bytes, ttl_ms: int) -> bool:
        return await cache.set(key, value, ttl_ms)

    async def delete(self, key: str) -> bool:
        return await cache.delete(key)

    async def delete_pattern(self, pattern: str) -> int:
        return await cache.delete_pattern(pattern)


class MemoryBackend:
    """In-process backend. Expiry is left to CacheStore's lazy eviction."""

    def __init__(self):
        self._data: dict[str, bytes] = {}

    async def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    async def set(self, key: str, value: bytes, ttl_ms: int) -> bool:
        self._data[key] = value
        return True

    async def delete(self, key: str) -> bool:
        self._data.pop(key, None)
        return True

    async def delete_pattern(self, pattern: str) -> int:
        keys = [k for k in self._data if fnmatch.fnmatchcase(k, pattern)]
        for k in keys:
            del self._data[k]
        return len(keys)

    def __len__(self) -> int:
        return len(self._data)


# =============================================================================
# Store
# =============================================================================

class CacheStore:
    """Key -> CacheEntry store with TTL expiry.

    Args:
        backend: Byte storage medium
        prefix: Namespace prepended to every key
        clock: Returns the current time in epoch ms
    """

    def __init__(
        self,
        backend: CacheBackend | None = None,
        prefix: str = "tracker:",
        clock: Clock = now_ms,
    ):
        self.backend = backend if backend is not None else MemoryBackend()
        self.prefix = prefix
        self.clock = clock

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> CacheEntry[Any] | None:
        """Get the entry for ``key``.

        Returns:
            The entry, or None if missing, expired or unreadable. Expired
            and unreadable documents are deleted.
        """
        full_key = self._key(key)
        raw = await self.backend.get(full_key)
        if raw is None:
            return None

        try:
            doc = orjson.loads(raw)
            expiry = int(doc["expiry"])
            data = doc["data"]
        except (orjson.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Dropping unreadable cache entry {full_key}: {e}")
            await self.backend.delete(full_key)
            return None

        now = self.clock()
        if now > expiry:
            logger.debug(f"Cache entry {full_key} expired at {expiry}, evicting")
            await self.backend.delete(full_key)
            return None

        fetched = doc.get("fetched")
        if not isinstance(fetched, int) or fetched >= expiry:
            fetched = expiry - 1
        return CacheEntry(value=data, fetched_at=fetched, expires_at=expiry)

    async def set(self, key: str, value: Any, ttl: float) -> CacheEntry[Any]:
        """Store ``value`` under ``key`` for ``ttl`` seconds.

        Raises:
            ValueError: If ttl is not positive
            TypeError: If value is not JSON serializable
        """
        ttl_ms = int(ttl * 1000)
        if ttl_ms <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")

        fetched = self.clock()
        entry = CacheEntry(value=value, fetched_at=fetched, expires_at=fetched + ttl_ms)
        try:
            raw = orjson.dumps(
                {"data": value, "expiry": entry.expires_at, "fetched": entry.fetched_at}
            )
        except orjson.JSONEncodeError as e:
            raise TypeError(f"Cache value for {key} is not JSON serializable: {e}") from e

        if not await self.backend.set(self._key(key), raw, ttl_ms):
            logger.warning(f"Cache write for {key} was not persisted")
        return entry

    async def remove(self, key: str) -> None:
        """Delete the entry for ``key`` if present."""
        await self.backend.delete(self._key(key))

    async def clear(self) -> int:
        """Delete every entry in this store's namespace."""
        return await self.backend.delete_pattern(f"{self.prefix}*")
