"""Signal detection over precomputed indicator series.

Stateless single pass scans. Each transition between index ``i - 1`` and
``i`` emits at most one signal at index ``i``.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from core.indicators import Band
from core.models import Series, Signal, SignalKind

logger = logging.getLogger(__name__)


def _signal(
    kind: SignalKind, series: Series, index: int, strategy_id: str
) -> Signal:
    point = series[index]
    return Signal(
        kind=kind,
        index=index,
        timestamp=point.timestamp,
        price=point.price,
        strategy_id=strategy_id,
    )


def detect_crossovers(
    series: Series,
    short_ma: Sequence[Optional[float]],
    long_ma: Sequence[Optional[float]],
    strategy_id: str,
) -> list[Signal]:
    """Detect moving average crossovers.

    - BUY: short was at or below long, now strictly above
    - SELL: short was at or above long, now strictly below

    A run of exactly equal values fires once, at the index where the two
    averages finally separate.

    Args:
        series: Price series the averages were computed from
        short_ma: Fast moving average
        long_ma: Slow moving average
        strategy_id: Identifier stamped on each signal

    Returns:
        Signals in index order
    """
    n = min(len(series), len(short_ma), len(long_ma))
    signals: list[Signal] = []

    for i in range(1, n):
        prev_short, prev_long = short_ma[i - 1], long_ma[i - 1]
        cur_short, cur_long = short_ma[i], long_ma[i]
        if None in (prev_short, prev_long, cur_short, cur_long):
            continue

        if prev_short <= prev_long and cur_short > cur_long:
            signals.append(_signal(SignalKind.BUY, series, i, strategy_id))
        elif prev_short >= prev_long and cur_short < cur_long:
            signals.append(_signal(SignalKind.SELL, series, i, strategy_id))

    logger.debug("%s: %d crossover signals over %d points", strategy_id, len(signals), n)
    return signals


def detect_channel_breakouts(
    series: Series,
    ma: Sequence[Optional[float]],
    channel: Band,
    strategy_id: str,
) -> list[Signal]:
    """Detect price breaking out of a volatility band.

    - SELL: price was at or under the upper edge, now strictly above it
    - BUY: price was at or over the lower edge, now strictly below it

    Args:
        series: Price series
        ma: Band center line
        channel: Band edges aligned with ``ma``
        strategy_id: Identifier stamped on each signal

    Returns:
        Signals in index order
    """
    prices = series.prices
    n = min(len(prices), len(ma), len(channel.upper), len(channel.lower))
    signals: list[Signal] = []

    for i in range(1, n):
        if ma[i] is None or ma[i - 1] is None:
            continue

        prev_upper, cur_upper = channel.upper[i - 1], channel.upper[i]
        prev_lower, cur_lower = channel.lower[i - 1], channel.lower[i]
        prev_price, cur_price = prices[i - 1], prices[i]

        if (
            prev_upper is not None
            and cur_upper is not None
            and prev_price <= prev_upper
            and cur_price > cur_upper
        ):
            signals.append(_signal(SignalKind.SELL, series, i, strategy_id))
        elif (
            prev_lower is not None
            and cur_lower is not None
            and prev_price >= prev_lower
            and cur_price < cur_lower
        ):
            signals.append(_signal(SignalKind.BUY, series, i, strategy_id))

    logger.debug("%s: %d breakout signals over %d points", strategy_id, len(signals), n)
    return signals

