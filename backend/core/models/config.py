"""Strategy configuration models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict


class StrategyKind(str, Enum):
    """Built-in overlay strategies."""

    GOLDEN_CROSS = "goldencross"
    MULTI_EMA = "multiema"
    MA_CHANNEL = "machannel"


class StrategyConfig(BaseModel):
    """Strategy configuration parameters.

    One config per active strategy. Several may be active at once; their
    signals are unioned in the order the configs are given.
    """

    model_config = ConfigDict(frozen=True)

    kind: StrategyKind

    # Crossover periods (goldencross, multiema)
    short_period: int = 5
    long_period: int = 20

    # Extra overlays drawn by multiema
    overlay_periods: tuple[int, ...] = (10, 60)

    # Band breakout (machannel)
    channel_period: int = 20
    channel_k: float = 2.0

    @property
    def strategy_id(self) -> str:
        return self.kind.value
