"""CoinGecko REST API client for market data."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from core.models import Series
from tracker.config import Settings
from tracker.errors import DecodeFailure, NetworkFailure, UpstreamFailure

logger = logging.getLogger(__name__)


class RateLimiter:
    """Simple rate limiter for API calls."""

    def __init__(self, calls_per_minute: int = 30):
        self.calls_per_minute = calls_per_minute
        self.interval = 60.0 / calls_per_minute if calls_per_minute > 0 else 0.0
        self.last_call = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait if necessary to respect rate limit."""
        if self.interval <= 0:
            return
        async with self._lock:
            loop = asyncio.get_running_loop()
            wait_time = self.last_call + self.interval - loop.time()
            if wait_time > 0:
                await asyncio.sleep(wait_time)
            self.last_call = loop.time()


class CoinGeckoRestClient:
    """CoinGecko public API client.

    Shapes requests and decodes responses. No caching and no retries:
    every failure is raised as a FetchFailed subclass for the caller to
    handle.
    """

    BASE_URL = "https://api.coingecko.com/api/v3"

    def __init__(
        self,
        base_url: str = BASE_URL,
        api_key: str = "",
        timeout: float = 10.0,
        calls_per_minute: int = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self.api_key = api_key
        self.timeout = timeout
        self.rate_limiter = RateLimiter(calls_per_minute)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "CoinGeckoRestClient":
        return cls(
            base_url=settings.api_base_url,
            api_key=settings.api_key,
            timeout=settings.request_timeout,
            calls_per_minute=settings.calls_per_minute,
        )

    async def __aenter__(self) -> "CoinGeckoRestClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"Accept": "application/json"}
            if self.api_key:
                headers["x-cg-demo-api-key"] = self.api_key
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        """Make a GET request with rate limiting and map failures."""
        await self.rate_limiter.acquire()
        client = await self._get_client()

        try:
            response = await client.get(endpoint, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning(f"GET {endpoint} failed with status {status}")
            raise UpstreamFailure(
                f"GET {endpoint} returned {status}", status_code=status, cause=e
            ) from e
        except httpx.TimeoutException as e:
            logger.warning(f"GET {endpoint} timed out after {self.timeout}s")
            raise NetworkFailure(f"GET {endpoint} timed out", cause=e) from e
        except httpx.TransportError as e:
            logger.warning(f"GET {endpoint} connection error: {e}")
            raise NetworkFailure(f"GET {endpoint} connection error: {e}", cause=e) from e

        try:
            return response.json()
        except ValueError as e:
            logger.warning(f"GET {endpoint} returned malformed JSON: {e}")
            raise DecodeFailure(f"GET {endpoint} returned malformed JSON", cause=e) from e

    async def get_global_data(self) -> dict[str, Any]:
        """Get global market data (total market cap, dominance percentages)."""
        data = await self._request("/global")
        if not isinstance(data, dict) or "data" not in data:
            raise DecodeFailure("/global payload has no 'data' block")
        return data

    async def get_coins_list(
        self,
        page: int = 1,
        per_page: int = 100,
        currency: str = "usd",
        order: str = "market_cap_desc",
    ) -> list[dict[str, Any]]:
        """
        Fetch one page of coins with market data, sorted server-side.

        Args:
            page: 1-based page number
            per_page: Coins per page (max 250)
            currency: Quote currency (e.g., "usd", "twd")
            order: Sort order (e.g., "market_cap_desc", "volume_desc")

        Returns:
            List of coin market rows
        """
        params = {
            "vs_currency": currency,
            "order": order,
            "per_page": per_page,
            "page": page,
            "sparkline": "false",
            "price_change_percentage": "24h",
        }
        data = await self._request("/coins/markets", params)
        if not isinstance(data, list):
            raise DecodeFailure("/coins/markets payload is not a list")
        return data

    async def get_coin_details(self, coin_id: str) -> dict[str, Any]:
        """
        Fetch one coin's description, links and market data block.

        Args:
            coin_id: CoinGecko coin id (e.g., "bitcoin")
        """
        params = {
            "localization": "false",
            "tickers": "false",
            "market_data": "true",
            "community_data": "false",
            "developer_data": "false",
            "sparkline": "false",
        }
        data = await self._request(f"/coins/{coin_id}", params)
        if not isinstance(data, dict):
            raise DecodeFailure(f"/coins/{coin_id} payload is not an object")
        return data

    async def get_coin_market_chart(
        self,
        coin_id: str,
        days: int = 1,
        currency: str = "usd",
    ) -> dict[str, Any]:
        """
        Fetch historical market chart data.

        Args:
            coin_id: CoinGecko coin id
            days: Lookback window in days
            currency: Quote currency

        Returns:
            Payload with ``prices``, ``market_caps`` and ``total_volumes``
            arrays of ``[timestamp, value]`` pairs
        """
        params = {"vs_currency": currency, "days": days}
        data = await self._request(f"/coins/{coin_id}/market_chart", params)
        if not isinstance(data, dict) or not isinstance(data.get("prices"), list):
            raise DecodeFailure(f"/coins/{coin_id}/market_chart payload has no 'prices' list")
        return data

    async def get_price_history(
        self,
        coin_id: str,
        days: int = 1,
        currency: str = "usd",
    ) -> Series:
        """Fetch the market chart and decode its ``prices`` into a Series."""
        data = await self.get_coin_market_chart(coin_id, days, currency)
        try:
            return Series.from_pairs(data["prices"])
        except (TypeError, ValueError) as e:
            logger.warning(f"Malformed price history for {coin_id}: {e}")
            raise DecodeFailure(f"Malformed price history for {coin_id}", cause=e) from e

    async def get_coin_categories(self) -> list[dict[str, Any]]:
        """Fetch the list of coin categories."""
        data = await self._request("/coins/categories/list")
        if not isinstance(data, list):
            raise DecodeFailure("/coins/categories/list payload is not a list")
        return data
