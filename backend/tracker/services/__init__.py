"""Business logic services."""

from tracker.services.query_cache import (
    QueryCacheStats,
    RevalidatingQueryCache,
    Subscription,
)
from tracker.services.market_data import MarketDataService

__all__ = [
    "QueryCacheStats",
    "RevalidatingQueryCache",
    "Subscription",
    "MarketDataService",
]
