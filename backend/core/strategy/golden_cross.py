"""Golden cross strategy.

- Short MA(5) crosses above long MA(20) -> BUY
- Short MA(5) crosses below long MA(20) -> SELL
"""

from core.indicators import IndicatorCalculator
from core.models import Series, StrategyConfig, StrategyKind
from core.signals import detect_crossovers
from core.strategy.protocol import StrategyOutput
from core.strategy.registry import register_strategy


@register_strategy(StrategyKind.GOLDEN_CROSS)
class GoldenCrossStrategy:
    """Moving average crossover strategy."""

    def __init__(self, config: StrategyConfig | None = None):
        self.config = config or StrategyConfig(kind=StrategyKind.GOLDEN_CROSS)

    @property
    def name(self) -> str:
        return StrategyKind.GOLDEN_CROSS.value

    @property
    def required_indicators(self) -> list[str]:
        return [f"ma{self.config.short_period}", f"ma{self.config.long_period}"]

    def run(self, series: Series, calc: IndicatorCalculator) -> StrategyOutput:
        short_ma = calc.ma(self.config.short_period)
        long_ma = calc.ma(self.config.long_period)
        return StrategyOutput(
            overlays={
                f"ma{self.config.short_period}": short_ma,
                f"ma{self.config.long_period}": long_ma,
            },
            signals=detect_crossovers(series, short_ma, long_ma, self.name),
        )
