"""Moving average channel strategy.

Band = MA(20) +/- 2 * stddev(20)

- Price breaks above the upper edge -> SELL
- Price breaks below the lower edge -> BUY
"""

from core.indicators import IndicatorCalculator
from core.models import Series, StrategyConfig, StrategyKind
from core.signals import detect_channel_breakouts
from core.strategy.protocol import StrategyOutput
from core.strategy.registry import register_strategy


@register_strategy(StrategyKind.MA_CHANNEL)
class MaChannelStrategy:
    """Volatility band breakout strategy."""

    def __init__(self, config: StrategyConfig | None = None):
        self.config = config or StrategyConfig(kind=StrategyKind.MA_CHANNEL)

    @property
    def name(self) -> str:
        return StrategyKind.MA_CHANNEL.value

    @property
    def required_indicators(self) -> list[str]:
        period = self.config.channel_period
        return [f"ma{period}", f"band{period}"]

    def run(self, series: Series, calc: IndicatorCalculator) -> StrategyOutput:
        period = self.config.channel_period
        ma = calc.ma(period)
        channel = calc.band(period, self.config.channel_k)
        return StrategyOutput(
            overlays={f"ma{period}": ma},
            bands={f"band{period}": channel},
            signals=detect_channel_breakouts(series, ma, channel, self.name),
        )
