from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional


class Direction(str, Enum):
    LONG = "long"
    SHORT = "short"

    @property
    def sign(self) -> int:
        return 1 if self is Direction.LONG else -1


class SetupKind(str, Enum):
    MOMENTUM = "momentum"
    BREAKOUT = "breakout"
    REJECTION = "rejection"
    ORDER_BLOCK = "order_block"
    FAIR_VALUE_GAP = "fvg"


@dataclass(frozen=True)
class Signal:
    series_index: int
    direction: Direction
    kind: SetupKind
    price: float               # entry reference (signal candle close)
    timestamp: datetime
    body_percent: float        # 0..1
    confluence_score: Optional[float] = None

    def with_score(self, score: float) -> "Signal":
        return replace(self, confluence_score=float(score))
