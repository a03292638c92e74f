"""Cache-or-fetch query layer with single-flight and background revalidation.

query(key, ...) flow:
1. Unexpired entry in the CacheStore -> return it, no network call
2. Fetch already in flight for the key -> await that same fetch
3. Otherwise run fetch_fn, store the result with the given TTL, return it

Failures propagate to every waiter of the failed fetch. Nothing is written
and an expired value is never served in place of the error.

Subscriber callbacks run in their own tasks, scheduled once the fetch has
completed, so a slow callback never holds up query() waiters and a
callback may itself call query() or mutate() on the same key.

subscribe(key, ...) starts one background task per key that re-runs step 3
every refresh interval. Each fresh value is pushed to the key's
subscribers. The task is cancelled when the last subscriber leaves. Fetches
run in their own tasks, so cancelling a timer or a waiting caller never
aborts a fetch that was already dispatched; its result is still stored.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Coroutine

from tracker.storage import CacheStore

logger = logging.getLogger(__name__)

FetchFn = Callable[[], Awaitable[Any]]
UpdateCallback = Callable[[Any], Awaitable[None]]
ErrorCallback = Callable[[Exception], Awaitable[None]]

_UNSET: Any = object()


@dataclass
class _Subscriber:
    callback: UpdateCallback
    on_error: ErrorCallback | None
    refresh_interval: float


@dataclass
class _Policy:
    ttl: float
    refresh_interval: float
    fetch_fn: FetchFn


@dataclass
class _KeyState:
    """Subscribers and revalidation timer for one key."""

    key: str
    subscribers: list[_Subscriber] = field(default_factory=list)
    timer: asyncio.Task | None = None

    @property
    def refresh_interval(self) -> float:
        return min(s.refresh_interval for s in self.subscribers)


@dataclass
class QueryCacheStats:
    hits: int = 0
    misses: int = 0
    fetches: int = 0
    failures: int = 0
    in_flight: list[str] = field(default_factory=list)
    subscribed: list[str] = field(default_factory=list)


class Subscription:
    """Handle returned by subscribe(); call unsubscribe() to stop updates."""

    def __init__(self, owner: "RevalidatingQueryCache", key: str, subscriber: _Subscriber):
        self._owner = owner
        self._subscriber = subscriber
        self.key = key
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._owner._unsubscribe(self.key, self._subscriber)


class RevalidatingQueryCache:
    """Query cache over a CacheStore.

    Args:
        store: TTL store the fetched values are written to
    """

    def __init__(self, store: CacheStore):
        self.store = store
        self._in_flight: dict[str, asyncio.Task] = {}
        self._keys: dict[str, _KeyState] = {}
        self._policies: dict[str, _Policy] = {}
        self._pushes: set[asyncio.Task] = set()
        self._stats = QueryCacheStats()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def query(
        self,
        key: str,
        ttl: float,
        refresh_interval: float,
        fetch_fn: FetchFn,
    ) -> Any:
        """Return the cached value for ``key`` or fetch it.

        Args:
            key: Cache key
            ttl: Seconds a fetched value stays valid
            refresh_interval: Seconds between background revalidations
                once the key has subscribers
            fetch_fn: Coroutine function producing a fresh value

        Raises:
            Whatever fetch_fn raised (typically a FetchFailed subclass)
        """
        self._policies[key] = _Policy(ttl, refresh_interval, fetch_fn)

        entry = await self.store.get(key)
        if entry is not None:
            self._stats.hits += 1
            logger.debug(f"Cache hit: {key}")
            return entry.value

        self._stats.misses += 1
        logger.debug(f"Cache miss: {key}")
        return await self._fetch(key, ttl, fetch_fn)

    async def _fetch(self, key: str, ttl: float, fetch_fn: FetchFn) -> Any:
        """Join the in-flight fetch for ``key`` or start one."""
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.create_task(
                self._run_fetch(key, ttl, fetch_fn), name=f"fetch:{key}"
            )
            self._in_flight[key] = task
            task.add_done_callback(lambda t, key=key: self._fetch_done(key, t))
        else:
            logger.debug(f"Joining in-flight fetch: {key}")

        # Waiters may be cancelled; the fetch itself must run to completion
        return await asyncio.shield(task)

    def _fetch_done(self, key: str, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if task.cancelled():
            return
        # Retrieving the exception also marks it handled; waiters re-raise it
        error = task.exception()
        if key not in self._keys:
            return
        if error is None:
            self._push(key, self._notify(key, task.result()))
        elif isinstance(error, Exception):
            self._push(key, self._notify_error(key, error))

    def _push(self, key: str, notification: Coroutine[Any, Any, None]) -> None:
        """Run subscriber callbacks in their own task."""
        task = asyncio.create_task(notification, name=f"notify:{key}")
        self._pushes.add(task)
        task.add_done_callback(self._pushes.discard)

    async def _run_fetch(self, key: str, ttl: float, fetch_fn: FetchFn) -> Any:
        self._stats.fetches += 1
        try:
            value = await fetch_fn()
        except Exception as e:
            self._stats.failures += 1
            logger.warning(f"Fetch failed for {key}: {e}")
            raise

        await self.store.set(key, value, ttl)
        return value

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def mutate(self, key: str, value: Any = _UNSET, ttl: float | None = None) -> Any:
        """Replace or refresh the cached value for ``key``.

        With a value, store it and push it to subscribers. Without one,
        revalidate through the single-flight path using the fetch function
        last registered for the key by query() or subscribe().

        Raises:
            KeyError: If revalidation is requested for an unknown key
            ValueError: If no TTL is known for the key
        """
        policy = self._policies.get(key)

        if value is _UNSET:
            if policy is None:
                raise KeyError(f"No fetch function registered for {key}")
            return await self._fetch(key, ttl or policy.ttl, policy.fetch_fn)

        if ttl is None:
            if policy is None:
                raise ValueError(f"No TTL known for {key}; pass ttl")
            ttl = policy.ttl
        await self.store.set(key, value, ttl)
        if key in self._keys:
            self._push(key, self._notify(key, value))
        return value

    async def invalidate(self, key: str) -> None:
        """Drop the cached value so the next query fetches."""
        await self.store.remove(key)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(
        self,
        key: str,
        ttl: float,
        refresh_interval: float,
        fetch_fn: FetchFn,
        callback: UpdateCallback,
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Receive a fresh value for ``key`` every ``refresh_interval`` seconds.

        Must be called with a running event loop. When subscribers of one
        key ask for different intervals, the shortest one drives the timer.

        Raises:
            ValueError: If refresh_interval is not positive
        """
        if refresh_interval <= 0:
            raise ValueError(f"refresh_interval must be positive, got {refresh_interval}")

        self._policies[key] = _Policy(ttl, refresh_interval, fetch_fn)
        state = self._keys.get(key)
        if state is None:
            state = _KeyState(key=key)
            self._keys[key] = state

        previous = state.refresh_interval if state.subscribers else None
        subscriber = _Subscriber(callback, on_error, refresh_interval)
        state.subscribers.append(subscriber)

        if state.timer is None or state.timer.done():
            self._start_timer(state)
        elif previous is not None and refresh_interval < previous:
            state.timer.cancel()
            self._start_timer(state)

        logger.debug(
            f"Subscribed to {key} ({len(state.subscribers)} subscribers, "
            f"every {state.refresh_interval}s)"
        )
        return Subscription(self, key, subscriber)

    def _start_timer(self, state: _KeyState) -> None:
        state.timer = asyncio.create_task(
            self._revalidate_loop(state), name=f"revalidate:{state.key}"
        )

    def _unsubscribe(self, key: str, subscriber: _Subscriber) -> None:
        state = self._keys.get(key)
        if state is None or subscriber not in state.subscribers:
            return

        state.subscribers.remove(subscriber)
        if not state.subscribers:
            if state.timer is not None:
                state.timer.cancel()
            del self._keys[key]
            logger.debug(f"Last subscriber left {key}, revalidation stopped")

    async def _revalidate_loop(self, state: _KeyState) -> None:
        while state.subscribers:
            await asyncio.sleep(state.refresh_interval)
            policy = self._policies[state.key]
            try:
                await self._fetch(state.key, policy.ttl, policy.fetch_fn)
            except Exception as e:
                # Already pushed to on_error callbacks by _fetch_done
                logger.debug(f"Revalidation of {state.key} failed: {e}")

    async def _notify(self, key: str, value: Any) -> None:
        state = self._keys.get(key)
        if state is None:
            return
        for subscriber in list(state.subscribers):
            try:
                await subscriber.callback(value)
            except Exception as e:
                logger.error(f"Subscriber callback error for {key}: {e}")

    async def _notify_error(self, key: str, error: Exception) -> None:
        state = self._keys.get(key)
        if state is None:
            return
        for subscriber in list(state.subscribers):
            if subscriber.on_error is None:
                continue
            try:
                await subscriber.on_error(error)
            except Exception as e:
                logger.error(f"Subscriber error callback failed for {key}: {e}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def stats(self) -> QueryCacheStats:
        """Snapshot of counters, in-flight keys and subscribed keys."""
        return QueryCacheStats(
            hits=self._stats.hits,
            misses=self._stats.misses,
            fetches=self._stats.fetches,
            failures=self._stats.failures,
            in_flight=sorted(self._in_flight),
            subscribed=sorted(self._keys),
        )

    async def close(self) -> None:
        """Stop all timers, wait for in-flight fetches, drop pending pushes."""
        timers = [s.timer for s in self._keys.values() if s.timer is not None]
        for timer in timers:
            timer.cancel()
        self._keys.clear()
        if timers:
            await asyncio.gather(*timers, return_exceptions=True)

        in_flight = list(self._in_flight.values())
        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)

        pushes = list(self._pushes)
        for push in pushes:
            push.cancel()
        if pushes:
            await asyncio.gather(*pushes, return_exceptions=True)
