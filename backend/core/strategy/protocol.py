"""Strategy protocol defining the interface all overlay strategies implement.

This module provides:
- StrategyOutput: Overlays, bands and signals produced by one strategy
- Strategy: Runtime-checkable Protocol that strategies must satisfy
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from core.indicators import Band, IndicatorCalculator, IndicatorSeries
from core.models import Series, Signal, StrategyConfig


@dataclass
class StrategyOutput:
    """Result of running one strategy over a series.

    Attributes:
        overlays: Moving averages to draw, keyed ``ma{period}``.
        bands: Volatility bands to draw, keyed ``band{period}``.
        signals: Buy/sell events in index order.
    """

    overlays: dict[str, IndicatorSeries] = field(default_factory=dict)
    bands: dict[str, Band] = field(default_factory=dict)
    signals: list[Signal] = field(default_factory=list)


@runtime_checkable
class Strategy(Protocol):
    """Protocol that all overlay strategies must implement.

    Strategies hold no state between runs: the same inputs always produce
    the same output.
    """

    config: StrategyConfig

    @property
    def name(self) -> str:
        """Unique strategy identifier (e.g., 'goldencross')."""
        ...

    @property
    def required_indicators(self) -> list[str]:
        """Indicator names this strategy draws.

        Example: ['ma5', 'ma20']
        """
        ...

    def run(self, series: Series, calc: IndicatorCalculator) -> StrategyOutput:
        """Compute overlays and signals for ``series``.

        Args:
            series: The price series.
            calc: Shared calculator over ``series.prices``.

        Returns:
            StrategyOutput for this strategy.
        """
        ...
