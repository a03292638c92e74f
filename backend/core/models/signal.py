"""Signal data models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class SignalKind(str, Enum):
    """Signal direction."""

    BUY = "buy"
    SELL = "sell"


class Signal(BaseModel):
    """A discrete buy/sell event at one index of a price series."""

    model_config = ConfigDict(frozen=True)

    kind: SignalKind
    index: int
    timestamp: int  # epoch milliseconds
    price: float
    strategy_id: str

    @property
    def is_buy(self) -> bool:
        return self.kind == SignalKind.BUY

    @property
    def is_sell(self) -> bool:
        return self.kind == SignalKind.SELL
