"""Market sentiment reading from the global market snapshot."""

from __future__ import annotations

from typing import Any, NamedTuple


class Sentiment(NamedTuple):
    label: str
    score: int


UNKNOWN = Sentiment("unknown", 50)

# (exclusive lower bound on 24h market cap change %, reading), checked in order
_THRESHOLDS = [
    (5.0, Sentiment("extreme greed", 85)),
    (2.5, Sentiment("greed", 70)),
    (0.0, Sentiment("neutral-bullish", 60)),
    (-2.5, Sentiment("neutral-bearish", 40)),
    (-5.0, Sentiment("fear", 25)),
]


def market_sentiment(change_24h: float | None) -> Sentiment:
    """Map the 24h total market cap change (percent) to a sentiment reading."""
    if change_24h is None:
        return UNKNOWN
    for bound, reading in _THRESHOLDS:
        if change_24h > bound:
            return reading
    return Sentiment("extreme fear", 10)


def sentiment_from_global(payload: dict[str, Any] | None) -> Sentiment:
    """Read the sentiment from a ``/global`` response payload."""
    if not payload:
        return UNKNOWN
    change = (payload.get("data") or {}).get("market_cap_change_percentage_24h_usd")
    if change is None:
        return UNKNOWN
    return market_sentiment(float(change))
