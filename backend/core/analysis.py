"""Overlay and signal computation for a set of active strategies.

Pure functions over ``(series, strategies)``. Callers recompute whenever
either input changes; nothing here keeps state between calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from core.indicators import Band, IndicatorCalculator, IndicatorSeries
from core.models import Series, Signal, StrategyConfig, StrategyKind
from core.strategy import create_strategy


@dataclass
class ChartAnalysis:
    """Everything a renderer needs to draw one chart."""

    overlays: dict[str, IndicatorSeries] = field(default_factory=dict)
    bands: dict[str, Band] = field(default_factory=dict)
    signals: list[Signal] = field(default_factory=list)


def unique_configs(configs: Iterable[StrategyConfig]) -> list[StrategyConfig]:
    """Drop repeated strategy kinds, keeping the first config of each."""
    seen: set[StrategyKind] = set()
    result = []
    for config in configs:
        if config.kind in seen:
            continue
        seen.add(config.kind)
        result.append(config)
    return result


def analyze_series(
    series: Series,
    strategies: Iterable[StrategyConfig],
) -> ChartAnalysis:
    """Run every active strategy over ``series``.

    Moving averages shared by several strategies are computed once.
    Signals are ordered by strategy (in the order given) and then by index.

    Args:
        series: Price series
        strategies: Active strategy configs

    Returns:
        ChartAnalysis with merged overlays, bands and signals
    """
    calc = IndicatorCalculator(series.prices)
    analysis = ChartAnalysis()

    for config in unique_configs(strategies):
        strategy = create_strategy(config)
        output = strategy.run(series, calc)
        analysis.overlays.update(output.overlays)
        analysis.bands.update(output.bands)
        analysis.signals.extend(output.signals)

    return analysis


def detect_signals(
    series: Series,
    strategies: Iterable[StrategyConfig],
) -> list[Signal]:
    """Union the signals of every active strategy."""
    return analyze_series(series, strategies).signals
