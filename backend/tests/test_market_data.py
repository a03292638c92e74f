"""Tests for the cached market data service."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from core.models import Series
from tracker.config import Settings
from tracker.errors import NetworkFailure
from tracker.services import MarketDataService, RevalidatingQueryCache
from tracker.services.market_data import (
    coin_details_key,
    coins_list_key,
    market_chart_key,
)
from tracker.storage import CacheStore, MemoryBackend

PAIRS = [[1000, 100.0], [2000, 101.0], [3000, 99.5]]


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        use_redis=False,
        default_ttl=1800,
        global_refresh=300,
        coins_refresh=60,
        details_refresh=60,
        chart_short_refresh=60,
        chart_long_refresh=1800,
        categories_refresh=1800,
    )


@pytest.fixture
def client():
    client = AsyncMock()
    client.get_global_data.return_value = {"data": {"market_cap_change_percentage_24h_usd": 1.2}}
    client.get_coins_list.return_value = [{"id": "bitcoin"}, {"id": "ethereum"}]
    client.get_coin_details.return_value = {"id": "bitcoin"}
    client.get_price_history.return_value = Series.from_pairs(PAIRS)
    client.get_coin_categories.return_value = [{"category_id": "defi"}]
    return client


@pytest.fixture
def service(client, settings):
    return MarketDataService(client, RevalidatingQueryCache(CacheStore(MemoryBackend())), settings)


class TestKeys:
    def test_key_formats(self):
        assert coins_list_key(1, 100, "usd", "market_cap_desc") == "coins-list-usd-1-100-market_cap_desc"
        assert coin_details_key("bitcoin") == "coin-details-bitcoin"
        assert market_chart_key("bitcoin", 7, "usd") == "market-chart-bitcoin-usd-7"

    def test_chart_key_distinguishes_currency(self):
        assert market_chart_key("bitcoin", 7, "usd") != market_chart_key("bitcoin", 7, "twd")

    def test_chart_refresh_interval(self, service):
        assert service.chart_refresh_interval(1) == 60
        assert service.chart_refresh_interval(7) == 1800
        assert service.chart_refresh_interval(365) == 1800


class TestQueries:
    """Each accessor fetches once and then serves from the cache."""

    @pytest.mark.asyncio
    async def test_global_data_cached(self, service, client):
        first = await service.global_data()
        second = await service.global_data()

        assert first == second
        client.get_global_data.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_coins_list_per_page_keys(self, service, client):
        await service.coins_list(page=1)
        await service.coins_list(page=2)
        await service.coins_list(page=1)

        assert client.get_coins_list.await_count == 2
        client.get_coins_list.assert_any_await(2, 100, "usd", "market_cap_desc")

    @pytest.mark.asyncio
    async def test_coin_details_cached(self, service, client):
        assert (await service.coin_details("bitcoin"))["id"] == "bitcoin"
        await service.coin_details("bitcoin")
        client.get_coin_details.assert_awaited_once_with("bitcoin")

    @pytest.mark.asyncio
    async def test_price_history_returns_series(self, service, client):
        series = await service.price_history("bitcoin", days=7)
        again = await service.price_history("bitcoin", days=7)

        assert isinstance(series, Series)
        assert series.to_pairs() == PAIRS
        assert again == series
        client.get_price_history.assert_awaited_once_with("bitcoin", 7, "usd")

    @pytest.mark.asyncio
    async def test_price_history_stored_as_pairs(self, service):
        await service.price_history("bitcoin", days=1)
        entry = await service.query_cache.store.get(market_chart_key("bitcoin", 1, "usd"))
        assert entry.value == PAIRS

    @pytest.mark.asyncio
    async def test_concurrent_price_history_single_request(self, service, client):
        results = await asyncio.gather(
            *(service.price_history("bitcoin", days=30) for _ in range(10))
        )
        assert all(r == results[0] for r in results)
        client.get_price_history.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_categories(self, service, client):
        await service.coin_categories()
        await service.coin_categories()
        client.get_coin_categories.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure_propagates(self, service, client):
        client.get_coin_details.side_effect = NetworkFailure("down")
        with pytest.raises(NetworkFailure):
            await service.coin_details("bitcoin")


class TestSubscriptions:
    @pytest.mark.asyncio
    async def test_subscribe_price_history_delivers_series(self, client):
        settings = Settings(_env_file=None, chart_short_refresh=0.01)
        service = MarketDataService(client, RevalidatingQueryCache(CacheStore(MemoryBackend())), settings)
        received = asyncio.Queue()

        async def on_update(series):
            await received.put(series)

        sub = service.subscribe_price_history("bitcoin", on_update, days=1)
        try:
            series = await asyncio.wait_for(received.get(), 1.0)
        finally:
            sub.unsubscribe()

        assert isinstance(series, Series)
        assert series.to_pairs() == PAIRS

    @pytest.mark.asyncio
    async def test_subscribe_and_unsubscribe_global_data(self, service):
        async def noop(value):
            pass

        sub = service.subscribe_global_data(noop)
        try:
            assert service.query_cache.stats().subscribed == ["global-data"]
        finally:
            sub.unsubscribe()
        assert service.query_cache.stats().subscribed == []
