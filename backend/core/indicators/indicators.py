"""Technical indicators for chart overlays.

All functions are pure and synchronous. Positions without enough trailing
history are ``None`` rather than NaN, so results can be handed straight to a
renderer or serialized as JSON ``null``.
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

IndicatorSeries = list[Optional[float]]


@dataclass(frozen=True)
class Band:
    """Upper and lower edges of a volatility band."""

    upper: IndicatorSeries
    lower: IndicatorSeries


def moving_average(values: Sequence[float], period: int) -> IndicatorSeries:
    """
    Calculate Simple Moving Average.

    Args:
        values: Sequence of price values
        period: Number of trailing samples per window

    Returns:
        List of the same length as ``values``. The first ``period - 1``
        entries are None; ``period <= 0`` or ``period > len(values)``
        yields all None.
    """
    n = len(values)
    if period <= 0 or period > n:
        return [None] * n

    arr = np.asarray(values, dtype=np.float64)
    means = sliding_window_view(arr, period).mean(axis=1)

    result: IndicatorSeries = [None] * (period - 1)
    result.extend(float(v) for v in means)
    return result


def std_dev(
    values: Sequence[float],
    ma: Sequence[Optional[float]],
    period: int,
) -> float:
    """
    Calculate residual standard deviation over the last ``period`` samples.

    Each sample is measured against the moving average at its own index, not
    against a single window mean. Indices where ``ma`` is None are skipped
    in both the sum of squares and the count.

    Args:
        values: Sequence of price values
        ma: Moving average aligned with ``values``
        period: Number of trailing samples to include

    Returns:
        Population standard deviation, or NaN if no valid sample remains
    """
    n = min(len(values), len(ma))
    if period <= 0 or n == 0:
        return math.nan

    start = max(0, n - period)
    residuals = [
        values[i] - ma[i]
        for i in range(start, n)
        if ma[i] is not None
    ]
    if not residuals:
        return math.nan

    arr = np.asarray(residuals, dtype=np.float64)
    return float(np.sqrt(np.mean(arr * arr)))


def band(
    ma: Sequence[Optional[float]],
    deviation: float,
    k: float = 2.0,
) -> Band:
    """
    Calculate band edges ``ma[i] +/- k * deviation``.

    Args:
        ma: Moving average series
        deviation: Standard deviation from :func:`std_dev`
        k: Band width multiplier

    Returns:
        Band whose edges are None wherever ``ma`` is None or ``deviation``
        is NaN
    """
    if deviation is None or math.isnan(deviation):
        empty: IndicatorSeries = [None] * len(ma)
        return Band(upper=empty, lower=list(empty))

    offset = k * deviation
    upper: IndicatorSeries = []
    lower: IndicatorSeries = []
    for value in ma:
        if value is None:
            upper.append(None)
            lower.append(None)
        else:
            upper.append(value + offset)
            lower.append(value - offset)
    return Band(upper=upper, lower=lower)


# =============================================================================
# IndicatorCalculator class
# =============================================================================

class IndicatorCalculator:
    """Memoizing calculator over one price series.

    Several strategies drawing the same moving average share one
    computation.
    """

    def __init__(self, prices: Sequence[float]):
        self.prices = list(prices)
        self._ma_cache: dict[int, IndicatorSeries] = {}
        self._band_cache: dict[tuple[int, float], Band] = {}

    def ma(self, period: int) -> IndicatorSeries:
        """Moving average for ``period`` (cached)."""
        if period not in self._ma_cache:
            self._ma_cache[period] = moving_average(self.prices, period)
        return self._ma_cache[period]

    def band(self, period: int, k: float = 2.0) -> Band:
        """Volatility band around ``ma(period)`` (cached)."""
        key = (period, k)
        if key not in self._band_cache:
            ma = self.ma(period)
            deviation = std_dev(self.prices, ma, period)
            self._band_cache[key] = band(ma, deviation, k)
        return self._band_cache[key]

    def overlays(self) -> dict[str, IndicatorSeries]:
        """All moving averages computed so far, keyed ``ma{period}``."""
        return {f"ma{period}": values for period, values in sorted(self._ma_cache.items())}
