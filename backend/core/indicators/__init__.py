"""Technical indicators (pure math, no I/O)."""

from core.indicators.indicators import (
    Band,
    IndicatorCalculator,
    IndicatorSeries,
    band,
    moving_average,
    std_dev,
)

__all__ = [
    "Band",
    "IndicatorCalculator",
    "IndicatorSeries",
    "band",
    "moving_average",
    "std_dev",
]
