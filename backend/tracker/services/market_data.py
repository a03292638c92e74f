"""Market data service: typed, cached access to the CoinGecko endpoints.

Cache keys (deterministic, one per request shape):
- global-data
- coins-list-{currency}-{page}-{per_page}-{order}
- coin-details-{coin_id}
- market-chart-{coin_id}-{currency}-{days}
- coin-categories

Price history is cached as [[timestamp, price], ...] pairs and decoded to
a Series on every read.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from core.models import Series
from tracker.clients import CoinGeckoRestClient
from tracker.config import Settings, get_settings
from tracker.services.query_cache import (
    ErrorCallback,
    RevalidatingQueryCache,
    Subscription,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Cache keys
# =============================================================================

GLOBAL_KEY = "global-data"
CATEGORIES_KEY = "coin-categories"


def coins_list_key(page: int, per_page: int, currency: str, order: str) -> str:
    return f"coins-list-{currency}-{page}-{per_page}-{order}"


def coin_details_key(coin_id: str) -> str:
    return f"coin-details-{coin_id}"


def market_chart_key(coin_id: str, days: int, currency: str) -> str:
    return f"market-chart-{coin_id}-{currency}-{days}"


class MarketDataService:
    """Cached market data accessors.

    Each accessor goes through the query cache, so repeated calls within
    the TTL hit the cache and concurrent calls share one request. The
    ``subscribe_*`` variants push a fresh value on every revalidation.
    """

    def __init__(
        self,
        client: CoinGeckoRestClient,
        query_cache: RevalidatingQueryCache,
        settings: Settings | None = None,
    ):
        self.client = client
        self.query_cache = query_cache
        self.settings = settings or get_settings()

    def chart_refresh_interval(self, days: int) -> float:
        """Short lookbacks move faster, so they revalidate more often."""
        if days <= 1:
            return self.settings.chart_short_refresh
        return self.settings.chart_long_refresh

    # ------------------------------------------------------------------
    # Fetch functions (cache values must be JSON serializable)
    # ------------------------------------------------------------------

    def _fetch_price_pairs(self, coin_id: str, days: int, currency: str):
        async def fetch() -> list[list[float]]:
            series = await self.client.get_price_history(coin_id, days, currency)
            return series.to_pairs()

        return fetch

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def global_data(self) -> dict[str, Any]:
        return await self.query_cache.query(
            GLOBAL_KEY,
            self.settings.default_ttl,
            self.settings.global_refresh,
            self.client.get_global_data,
        )

    async def coins_list(
        self,
        page: int = 1,
        per_page: int = 100,
        currency: str = "usd",
        order: str = "market_cap_desc",
    ) -> list[dict[str, Any]]:
        return await self.query_cache.query(
            coins_list_key(page, per_page, currency, order),
            self.settings.default_ttl,
            self.settings.coins_refresh,
            lambda: self.client.get_coins_list(page, per_page, currency, order),
        )

    async def coin_details(self, coin_id: str) -> dict[str, Any]:
        return await self.query_cache.query(
            coin_details_key(coin_id),
            self.settings.default_ttl,
            self.settings.details_refresh,
            lambda: self.client.get_coin_details(coin_id),
        )

    async def price_history(
        self,
        coin_id: str,
        days: int = 1,
        currency: str = "usd",
    ) -> Series:
        pairs = await self.query_cache.query(
            market_chart_key(coin_id, days, currency),
            self.settings.default_ttl,
            self.chart_refresh_interval(days),
            self._fetch_price_pairs(coin_id, days, currency),
        )
        return Series.from_pairs(pairs)

    async def coin_categories(self) -> list[dict[str, Any]]:
        return await self.query_cache.query(
            CATEGORIES_KEY,
            self.settings.default_ttl,
            self.settings.categories_refresh,
            self.client.get_coin_categories,
        )

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe_global_data(
        self,
        callback: Callable[[dict[str, Any]], Awaitable[None]],
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        return self.query_cache.subscribe(
            GLOBAL_KEY,
            self.settings.default_ttl,
            self.settings.global_refresh,
            self.client.get_global_data,
            callback,
            on_error,
        )

    def subscribe_coins_list(
        self,
        callback: Callable[[list[dict[str, Any]]], Awaitable[None]],
        page: int = 1,
        per_page: int = 100,
        currency: str = "usd",
        order: str = "market_cap_desc",
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        return self.query_cache.subscribe(
            coins_list_key(page, per_page, currency, order),
            self.settings.default_ttl,
            self.settings.coins_refresh,
            lambda: self.client.get_coins_list(page, per_page, currency, order),
            callback,
            on_error,
        )

    def subscribe_coin_details(
        self,
        coin_id: str,
        callback: Callable[[dict[str, Any]], Awaitable[None]],
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        return self.query_cache.subscribe(
            coin_details_key(coin_id),
            self.settings.default_ttl,
            self.settings.details_refresh,
            lambda: self.client.get_coin_details(coin_id),
            callback,
            on_error,
        )

    def subscribe_price_history(
        self,
        coin_id: str,
        callback: Callable[[Series], Awaitable[None]],
        days: int = 1,
        currency: str = "usd",
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        async def on_pairs(pairs: list[list[float]]) -> None:
            await callback(Series.from_pairs(pairs))

        return self.query_cache.subscribe(
            market_chart_key(coin_id, days, currency),
            self.settings.default_ttl,
            self.chart_refresh_interval(days),
            self._fetch_price_pairs(coin_id, days, currency),
            on_pairs,
            on_error,
        )
