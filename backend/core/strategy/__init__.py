"""Strategy plugin system.

Public API:
- Strategy: Protocol that all strategies must implement
- StrategyOutput: Standard return type from a strategy run
- register_strategy: Decorator to register a strategy class
- create_strategy: Factory function to instantiate strategies by name
- list_strategies: Discover all registered strategies
- get_strategy_class: Get strategy class by name without instantiating

Importing this package auto-registers all built-in strategies.
"""

from core.strategy.protocol import Strategy, StrategyOutput
from core.strategy.registry import (
    register_strategy,
    create_strategy,
    list_strategies,
    get_strategy_class,
)

# Import built-in strategies to trigger auto-registration
from core.strategy.golden_cross import GoldenCrossStrategy
from core.strategy.multi_ema import MultiEmaStrategy
from core.strategy.ma_channel import MaChannelStrategy

__all__ = [
    "Strategy",
    "StrategyOutput",
    "register_strategy",
    "create_strategy",
    "list_strategies",
    "get_strategy_class",
    "GoldenCrossStrategy",
    "MultiEmaStrategy",
    "MaChannelStrategy",
]
