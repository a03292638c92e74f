"""Market data clients."""

from tracker.clients.coingecko_rest import CoinGeckoRestClient, RateLimiter

__all__ = [
    "CoinGeckoRestClient",
    "RateLimiter",
]
