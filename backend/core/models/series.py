"""Price series data models."""

from __future__ import annotations

from enum import Enum
from typing import Iterator, Sequence

from pydantic import BaseModel, ConfigDict, model_validator


class TimeRange(str, Enum):
    """Chart lookback window selectable by the renderer."""

    DAY = "24h"
    WEEK = "7d"
    MONTH = "30d"
    QUARTER = "90d"
    YEAR = "1y"

    @property
    def days(self) -> int:
        """Lookback length in days for the price history endpoint."""
        return _TIME_RANGE_DAYS[self]


_TIME_RANGE_DAYS = {
    TimeRange.DAY: 1,
    TimeRange.WEEK: 7,
    TimeRange.MONTH: 30,
    TimeRange.QUARTER: 90,
    TimeRange.YEAR: 365,
}


class PricePoint(BaseModel):
    """A single price sample."""

    model_config = ConfigDict(frozen=True)

    timestamp: int  # epoch milliseconds
    price: float


class Series(BaseModel):
    """Time-ordered price samples for one instrument.

    Timestamps never decrease. Equal timestamps are kept as consecutive
    samples.
    """

    model_config = ConfigDict(frozen=True)

    points: tuple[PricePoint, ...] = ()

    @model_validator(mode="after")
    def _check_order(self) -> "Series":
        for prev, cur in zip(self.points, self.points[1:]):
            if cur.timestamp < prev.timestamp:
                raise ValueError(
                    f"timestamps must be non-decreasing: {cur.timestamp} < {prev.timestamp}"
                )
        return self

    @classmethod
    def from_pairs(cls, pairs: Sequence[Sequence[float]]) -> "Series":
        """Build a series from ``[timestamp, price]`` pairs.

        Raises:
            ValueError: If a pair is malformed or timestamps go backwards.
        """
        points = []
        for pair in pairs:
            if len(pair) != 2:
                raise ValueError(f"expected [timestamp, price] pair, got {pair!r}")
            points.append(PricePoint(timestamp=int(pair[0]), price=float(pair[1])))
        return cls(points=tuple(points))

    def to_pairs(self) -> list[list[float]]:
        """Get the series as JSON-friendly ``[timestamp, price]`` pairs."""
        return [[p.timestamp, p.price] for p in self.points]

    @property
    def prices(self) -> list[float]:
        """Get list of prices."""
        return [p.price for p in self.points]

    @property
    def timestamps(self) -> list[int]:
        """Get list of timestamps."""
        return [p.timestamp for p in self.points]

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[PricePoint]:  # type: ignore[override]
        return iter(self.points)

    def __getitem__(self, index: int) -> PricePoint:
        return self.points[index]
