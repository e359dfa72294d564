# models/structures.py
"""
Higher-timeframe market structures derived from a CandleSeries.
All records are read-only and rebuilt per run.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from models.signal import Direction


class ZoneType(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"

    @classmethod
    def for_direction(cls, direction: Direction) -> "ZoneType":
        return cls.BULLISH if direction is Direction.LONG else cls.BEARISH


class Bias(str, Enum):
    BULLISH = "bullish"
    BEARISH = "bearish"
    NEUTRAL = "neutral"

    def allows(self, direction: Direction) -> bool:
        if self is Bias.BULLISH:
            return direction is Direction.LONG
        if self is Bias.BEARISH:
            return direction is Direction.SHORT
        return False


@dataclass(frozen=True)
class OrderBlock:
    series_index: int
    type: ZoneType
    high: float
    low: float
    timestamp: datetime
    strength: float = 0.0      # next move / average move

    def contains(self, price: float, tolerance: float = 0.0) -> bool:
        return (self.low - tolerance) <= price <= (self.high + tolerance)


@dataclass(frozen=True)
class FairValueGap:
    type: ZoneType
    top: float
    bottom: float
    timestamp: datetime
    series_index: int = -1
    size_pips: float = 0.0
    formed_at: Optional[datetime] = None   # open of the first bar after the third candle closed

    @property
    def mid(self) -> float:
        return (self.top + self.bottom) / 2

    def contains(self, price: float, tolerance: float = 0.0) -> bool:
        return (self.bottom - tolerance) <= price <= (self.top + tolerance)


@dataclass(frozen=True)
class SwingPoint:
    series_index: int
    kind: str                  # "high" or "low"
    price: float
    timestamp: datetime


@dataclass(frozen=True)
class LiquidityZone:
    side: str                  # "buy_side" (equal lows) or "sell_side" (equal highs)
    price: float
    touches: int
