"""Multi moving average overlay.

Draws MA(5), MA(10), MA(20) and MA(60). Visual only: crossover signals
come from the golden cross strategy, never from this one.
"""

from core.indicators import IndicatorCalculator
from core.models import Series, StrategyConfig, StrategyKind
from core.strategy.protocol import StrategyOutput
from core.strategy.registry import register_strategy


@register_strategy(StrategyKind.MULTI_EMA)
class MultiEmaStrategy:
    """Stack of moving average overlays with no signals of its own."""

    def __init__(self, config: StrategyConfig | None = None):
        self.config = config or StrategyConfig(kind=StrategyKind.MULTI_EMA)

    @property
    def name(self) -> str:
        return StrategyKind.MULTI_EMA.value

    @property
    def periods(self) -> list[int]:
        periods = {
            self.config.short_period,
            self.config.long_period,
            *self.config.overlay_periods,
        }
        return sorted(periods)

    @property
    def required_indicators(self) -> list[str]:
        return [f"ma{p}" for p in self.periods]

    def run(self, series: Series, calc: IndicatorCalculator) -> StrategyOutput:
        return StrategyOutput(
            overlays={f"ma{p}": calc.ma(p) for p in self.periods},
        )
