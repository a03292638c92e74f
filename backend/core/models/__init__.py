"""Core data models."""

from core.models.config import StrategyConfig, StrategyKind
from core.models.series import PricePoint, Series, TimeRange
from core.models.signal import Signal, SignalKind

__all__ = [
    "PricePoint",
    "Series",
    "TimeRange",
    "Signal",
    "SignalKind",
    "StrategyConfig",
    "StrategyKind",
]
