# models/candle.py
"""
models.candle
-------------
Candle records and the immutable, position-indexed CandleSeries that every
detector and the simulator read from.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import cached_property
from typing import Iterable, Iterator, Sequence, overload

import numpy as np
import pandas as pd


MIN_YEAR = 2000


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


@dataclass(frozen=True)
class Candle:
    timestamp: datetime
    date: str
    time: str
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @classmethod
    def at(cls, timestamp: datetime, open: float, high: float, low: float, close: float,
           volume: float = 0.0) -> "Candle":
        """Build a candle deriving the date/time strings from the timestamp."""
        ts = _as_utc(timestamp)
        return cls(
            timestamp=ts,
            date=ts.strftime("%Y.%m.%d"),
            time=ts.strftime("%H:%M"),
            open=float(open),
            high=float(high),
            low=float(low),
            close=float(close),
            volume=float(volume),
        )

    def is_valid(self) -> bool:
        vals = (self.open, self.high, self.low, self.close)
        if any(not np.isfinite(v) or v <= 0 for v in vals):
            return False
        if self.high < self.low:
            return False
        return isinstance(self.timestamp, datetime) and self.timestamp.year > MIN_YEAR

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open


class CandleSeries(Sequence[Candle]):
    """Ordered, read-only candles. Adjacent positions are consecutive bars."""

    def __init__(self, candles: Iterable[Candle] = ()):
        items = tuple(candles)
        for prev, cur in zip(items, items[1:]):
            if cur.timestamp < prev.timestamp:
                raise ValueError(
                    f"candles out of order: {cur.timestamp.isoformat()} after {prev.timestamp.isoformat()}"
                )
        self._candles = items

    # ---- sequence protocol ----
    def __len__(self) -> int:
        return len(self._candles)

    @overload
    def __getitem__(self, idx: int) -> Candle: ...

    @overload
    def __getitem__(self, idx: slice) -> "CandleSeries": ...

    def __getitem__(self, idx):
        if isinstance(idx, slice):
            return CandleSeries._trusted(self._candles[idx])
        return self._candles[idx]

    def __iter__(self) -> Iterator[Candle]:
        return iter(self._candles)

    def __repr__(self) -> str:
        if not self._candles:
            return "CandleSeries([])"
        return f"CandleSeries(n={len(self)}, {self._candles[0].timestamp} -> {self._candles[-1].timestamp})"

    @classmethod
    def _trusted(cls, items: tuple[Candle, ...]) -> "CandleSeries":
        # slices of an ordered series stay ordered
        obj = cls.__new__(cls)
        obj._candles = items
        return obj

    # ---- column views ----
    def _column(self, name: str) -> np.ndarray:
        arr = np.fromiter((getattr(c, name) for c in self._candles), dtype="float64", count=len(self._candles))
        arr.setflags(write=False)
        return arr

    @cached_property
    def opens(self) -> np.ndarray:
        return self._column("open")

    @cached_property
    def highs(self) -> np.ndarray:
        return self._column("high")

    @cached_property
    def lows(self) -> np.ndarray:
        return self._column("low")

    @cached_property
    def closes(self) -> np.ndarray:
        return self._column("close")

    # ---- pandas interop ----
    def to_frame(self) -> pd.DataFrame:
        """OHLCV DataFrame indexed by UTC timestamp."""
        idx = pd.DatetimeIndex([c.timestamp for c in self._candles], name="Date")
        return pd.DataFrame({
            "Open": self.opens,
            "High": self.highs,
            "Low": self.lows,
            "Close": self.closes,
            "Volume": [c.volume for c in self._candles],
        }, index=idx)

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "CandleSeries":
        """Build a series from an OHLCV DataFrame with a DatetimeIndex.

        Rows violating the candle invariants are dropped.
        """
        if df.empty:
            return cls()
        for col in ("Open", "High", "Low", "Close"):
            if col not in df.columns:
                raise ValueError(f"Missing column: {col}")
        vol = df["Volume"] if "Volume" in df.columns else pd.Series(0.0, index=df.index)
        candles = []
        for ts, o, h, l, c, v in zip(df.index, df["Open"], df["High"], df["Low"], df["Close"], vol.fillna(0.0)):
            if pd.isna(ts):
                continue
            candle = Candle.at(pd.Timestamp(ts).to_pydatetime(), o, h, l, c, v)
            if candle.is_valid():
                candles.append(candle)
        candles.sort(key=lambda c: c.timestamp)
        return cls(candles)
