"""Tests for the revalidating query cache."""

import asyncio

import pytest

from tracker.errors import NetworkFailure, UpstreamFailure
from tracker.services import RevalidatingQueryCache
from tracker.storage import CacheStore, MemoryBackend

NOW = 1_700_000_000_000


class FakeClock:
    def __init__(self, now: int = NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += int(seconds * 1000)


class CountingFetch:
    """Fetch function that counts calls and can be gated or made to fail."""

    def __init__(self, value="payload"):
        self.value = value
        self.calls = 0
        self.gate: asyncio.Event | None = None
        self.started = asyncio.Event()
        self.error: Exception | None = None

    async def __call__(self):
        self.calls += 1
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.value


async def _wait_until(predicate, timeout: float = 1.0) -> None:
    async def poll():
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)


def _make_cache(clock: FakeClock) -> RevalidatingQueryCache:
    return RevalidatingQueryCache(CacheStore(MemoryBackend(), prefix="t:", clock=clock))


class TestQuery:
    """Cache-or-fetch and single-flight behavior."""

    @pytest.mark.asyncio
    async def test_second_query_within_ttl_hits_cache(self):
        qc = _make_cache(FakeClock())
        fetch = CountingFetch()

        assert await qc.query("k", 60, 30, fetch) == "payload"
        assert await qc.query("k", 60, 30, fetch) == "payload"

        assert fetch.calls == 1
        stats = qc.stats()
        assert (stats.hits, stats.misses, stats.fetches) == (1, 1, 1)

    @pytest.mark.asyncio
    async def test_concurrent_queries_share_one_fetch(self):
        qc = _make_cache(FakeClock())
        fetch = CountingFetch()
        fetch.gate = asyncio.Event()

        waiters = [asyncio.create_task(qc.query("k", 60, 30, fetch)) for _ in range(20)]
        await fetch.started.wait()
        assert qc.stats().in_flight == ["k"]

        fetch.gate.set()
        results = await asyncio.gather(*waiters)

        assert results == ["payload"] * 20
        assert fetch.calls == 1
        assert qc.stats().in_flight == []

    @pytest.mark.asyncio
    async def test_different_keys_fetch_independently(self):
        qc = _make_cache(FakeClock())
        a, b = CountingFetch("a"), CountingFetch("b")

        results = await asyncio.gather(qc.query("a", 60, 30, a), qc.query("b", 60, 30, b))

        assert results == ["a", "b"]
        assert (a.calls, b.calls) == (1, 1)

    @pytest.mark.asyncio
    async def test_expired_entry_triggers_one_new_fetch(self):
        clock = FakeClock()
        qc = _make_cache(clock)
        fetch = CountingFetch()

        await qc.query("k", 60, 30, fetch)
        clock.advance(61)

        assert await qc.store.get("k") is None
        await qc.query("k", 60, 30, fetch)
        await qc.query("k", 60, 30, fetch)
        assert fetch.calls == 2

    @pytest.mark.asyncio
    async def test_failure_reaches_every_waiter_and_writes_nothing(self):
        qc = _make_cache(FakeClock())
        fetch = CountingFetch()
        fetch.gate = asyncio.Event()
        fetch.error = UpstreamFailure("GET /global returned 503", status_code=503)

        waiters = [asyncio.create_task(qc.query("k", 60, 30, fetch)) for _ in range(5)]
        await fetch.started.wait()
        fetch.gate.set()
        results = await asyncio.gather(*waiters, return_exceptions=True)

        assert all(isinstance(r, UpstreamFailure) for r in results)
        assert fetch.calls == 1
        assert await qc.store.get("k") is None
        assert qc.stats().failures == 1

    @pytest.mark.asyncio
    async def test_expired_value_not_served_on_failure(self):
        clock = FakeClock()
        qc = _make_cache(clock)
        fetch = CountingFetch("old")

        await qc.query("k", 60, 30, fetch)
        clock.advance(120)
        fetch.error = NetworkFailure("timed out")

        with pytest.raises(NetworkFailure):
            await qc.query("k", 60, 30, fetch)

    @pytest.mark.asyncio
    async def test_unexpired_entry_survives_later_failure(self):
        qc = _make_cache(FakeClock())
        good = CountingFetch("good")
        await qc.query("k", 60, 30, good)

        bad = CountingFetch()
        bad.error = NetworkFailure("down")
        # Hit; registers the failing fetch for the key
        assert await qc.query("k", 60, 30, bad) == "good"
        with pytest.raises(NetworkFailure):
            await qc.mutate("k")

        assert bad.calls == 1
        assert (await qc.store.get("k")).value == "good"

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_abort_fetch(self):
        qc = _make_cache(FakeClock())
        fetch = CountingFetch()
        fetch.gate = asyncio.Event()

        waiter = asyncio.create_task(qc.query("k", 60, 30, fetch))
        await fetch.started.wait()
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter

        fetch.gate.set()
        await _wait_until(lambda: not qc.stats().in_flight)

        entry = await qc.store.get("k")
        assert entry is not None
        assert entry.value == "payload"
        assert await qc.query("k", 60, 30, fetch) == "payload"
        assert fetch.calls == 1


class TestMutate:
    """Explicit writes and forced revalidation."""

    @pytest.mark.asyncio
    async def test_mutate_with_value(self):
        qc = _make_cache(FakeClock())
        assert await qc.mutate("k", {"a": 1}, ttl=10) == {"a": 1}
        assert (await qc.store.get("k")).value == {"a": 1}

    @pytest.mark.asyncio
    async def test_mutate_without_value_refetches(self):
        qc = _make_cache(FakeClock())
        fetch = CountingFetch()
        await qc.query("k", 60, 30, fetch)

        fetch.value = "fresh"
        assert await qc.mutate("k") == "fresh"
        assert fetch.calls == 2
        assert await qc.query("k", 60, 30, fetch) == "fresh"

    @pytest.mark.asyncio
    async def test_mutate_unknown_key(self):
        qc = _make_cache(FakeClock())
        with pytest.raises(KeyError):
            await qc.mutate("nope")
        with pytest.raises(ValueError):
            await qc.mutate("nope", 1)

    @pytest.mark.asyncio
    async def test_invalidate(self):
        qc = _make_cache(FakeClock())
        fetch = CountingFetch()
        await qc.query("k", 60, 30, fetch)
        await qc.invalidate("k")
        await qc.query("k", 60, 30, fetch)
        assert fetch.calls == 2


class TestSubscribe:
    """Background revalidation and push updates."""

    @pytest.mark.asyncio
    async def test_subscriber_receives_revalidated_values(self):
        qc = _make_cache(FakeClock())
        fetch = CountingFetch()
        received = []

        async def on_update(value):
            received.append(value)

        sub = qc.subscribe("k", 60, 0.01, fetch, on_update)
        try:
            await _wait_until(lambda: len(received) >= 2)
        finally:
            sub.unsubscribe()

        assert received[:2] == ["payload", "payload"]
        assert (await qc.store.get("k")).value == "payload"

    @pytest.mark.asyncio
    async def test_revalidation_rewrites_identical_value(self):
        clock = FakeClock()
        qc = _make_cache(clock)
        fetch = CountingFetch()
        await qc.query("k", 60, 0.01, fetch)
        first = await qc.store.get("k")

        clock.advance(5)
        updated = asyncio.Event()

        async def on_update(value):
            updated.set()

        sub = qc.subscribe("k", 60, 0.01, fetch, on_update)
        try:
            await asyncio.wait_for(updated.wait(), 1.0)
        finally:
            sub.unsubscribe()

        second = await qc.store.get("k")
        assert second.value == first.value
        assert second.fetched_at == first.fetched_at + 5000

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_timer(self):
        qc = _make_cache(FakeClock())
        fetch = CountingFetch()
        updated = asyncio.Event()

        async def on_update(value):
            updated.set()

        sub = qc.subscribe("k", 60, 0.01, fetch, on_update)
        await asyncio.wait_for(updated.wait(), 1.0)
        sub.unsubscribe()
        await _wait_until(lambda: not qc.stats().in_flight)
        calls = fetch.calls

        await asyncio.sleep(0.05)

        assert fetch.calls == calls
        assert qc.stats().subscribed == []
        assert not sub.active

    @pytest.mark.asyncio
    async def test_timer_runs_while_any_subscriber_remains(self):
        qc = _make_cache(FakeClock())
        fetch = CountingFetch()

        async def noop(value):
            pass

        first = qc.subscribe("k", 60, 0.01, fetch, noop)
        second = qc.subscribe("k", 60, 0.01, fetch, noop)
        first.unsubscribe()
        assert qc.stats().subscribed == ["k"]

        calls = fetch.calls
        await _wait_until(lambda: fetch.calls > calls)
        second.unsubscribe()
        assert qc.stats().subscribed == []

    @pytest.mark.asyncio
    async def test_errors_go_to_on_error_and_timer_continues(self):
        qc = _make_cache(FakeClock())
        fetch = CountingFetch()
        fetch.error = NetworkFailure("down")
        errors = []

        async def on_update(value):
            pass

        async def on_error(error):
            errors.append(error)

        sub = qc.subscribe("k", 60, 0.01, fetch, on_update, on_error)
        try:
            await _wait_until(lambda: len(errors) >= 2)
        finally:
            sub.unsubscribe()

        assert all(isinstance(e, NetworkFailure) for e in errors)
        assert await qc.store.get("k") is None

    @pytest.mark.asyncio
    async def test_callback_error_does_not_stop_others(self):
        qc = _make_cache(FakeClock())
        fetch = CountingFetch()
        received = asyncio.Event()

        async def broken(value):
            raise RuntimeError("boom")

        async def healthy(value):
            received.set()

        subs = [
            qc.subscribe("k", 60, 0.01, fetch, broken),
            qc.subscribe("k", 60, 0.01, fetch, healthy),
        ]
        try:
            await asyncio.wait_for(received.wait(), 1.0)
        finally:
            for sub in subs:
                sub.unsubscribe()

    @pytest.mark.asyncio
    async def test_query_result_pushed_to_subscribers(self):
        qc = _make_cache(FakeClock())
        fetch = CountingFetch()
        received = []

        async def on_update(value):
            received.append(value)

        sub = qc.subscribe("k", 60, 30, fetch, on_update)
        try:
            await qc.mutate("k", "pushed", ttl=60)
            await _wait_until(lambda: received)
        finally:
            sub.unsubscribe()

        assert received == ["pushed"]

    @pytest.mark.asyncio
    async def test_slow_callback_does_not_hold_query(self):
        qc = _make_cache(FakeClock())
        fetch = CountingFetch()
        release = asyncio.Event()
        entered = asyncio.Event()

        async def slow(value):
            entered.set()
            await release.wait()

        sub = qc.subscribe("k", 60, 30, fetch, slow)
        try:
            assert await asyncio.wait_for(qc.query("k", 60, 30, fetch), 1.0) == "payload"
            await asyncio.wait_for(entered.wait(), 1.0)
            assert qc.stats().in_flight == []
        finally:
            release.set()
            sub.unsubscribe()
            await qc.close()

    @pytest.mark.asyncio
    async def test_callback_may_revalidate_same_key(self):
        qc = _make_cache(FakeClock())
        fetch = CountingFetch()
        refetched = []

        async def on_update(value):
            if not refetched:
                refetched.append(await qc.mutate("k"))

        sub = qc.subscribe("k", 60, 30, fetch, on_update)
        try:
            assert await asyncio.wait_for(qc.query("k", 60, 30, fetch), 1.0) == "payload"
            await _wait_until(lambda: refetched)
        finally:
            sub.unsubscribe()
            await qc.close()

        assert refetched == ["payload"]
        assert fetch.calls == 2

    @pytest.mark.asyncio
    async def test_last_unsubscribe_mid_fetch_still_commits(self):
        qc = _make_cache(FakeClock())
        fetch = CountingFetch("fresh")
        fetch.gate = asyncio.Event()

        async def noop(value):
            pass

        sub = qc.subscribe("k", 60, 0.01, fetch, noop)
        await asyncio.wait_for(fetch.started.wait(), 1.0)
        sub.unsubscribe()

        assert qc.stats().subscribed == []
        assert qc.stats().in_flight == ["k"]

        fetch.gate.set()
        await _wait_until(lambda: not qc.stats().in_flight)

        assert (await qc.store.get("k")).value == "fresh"
        assert fetch.calls == 1

    @pytest.mark.asyncio
    async def test_shorter_interval_restarts_timer(self):
        qc = _make_cache(FakeClock())
        fetch = CountingFetch()

        async def noop(value):
            pass

        slow = qc.subscribe("k", 60, 30, fetch, noop)
        fast = qc.subscribe("k", 60, 0.01, fetch, noop)
        try:
            await _wait_until(lambda: fetch.calls >= 2)
        finally:
            fast.unsubscribe()
            slow.unsubscribe()

    @pytest.mark.asyncio
    async def test_invalid_interval(self):
        qc = _make_cache(FakeClock())
        fetch = CountingFetch()

        async def noop(value):
            pass

        with pytest.raises(ValueError):
            qc.subscribe("k", 60, 0, fetch, noop)

    @pytest.mark.asyncio
    async def test_close_cancels_timers(self):
        qc = _make_cache(FakeClock())
        fetch = CountingFetch()

        async def noop(value):
            pass

        qc.subscribe("a", 60, 30, fetch, noop)
        qc.subscribe("b", 60, 30, fetch, noop)
        await qc.close()

        assert qc.stats().subscribed == []
