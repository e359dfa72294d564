# strategies/price_action.py
"""
Price-action detector: strong-body momentum, range breakouts and wick
rejections, evaluated per candle against the preceding `lookback_period` bars.
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from models.candle import CandleSeries
from models.signal import Direction, SetupKind, Signal

MOMENTUM_BARS = 3
# price must probe to within 0.1% of the recent extreme for a rejection
REJECTION_LOW_BAND = 1.001
REJECTION_HIGH_BAND = 0.999
# first true wins; breakout leads because a close above the prior high in an uptrend
# always has positive momentum too, so momentum-first could never label a breakout
SETUP_PRECEDENCE = (SetupKind.BREAKOUT, SetupKind.MOMENTUM, SetupKind.REJECTION)


def _frame(series: CandleSeries, lookback: int) -> pd.DataFrame:
    o, h, l, c = series.opens, series.highs, series.lows, series.closes
    rng = h - l
    body = np.abs(c - o)
    with np.errstate(divide="ignore", invalid="ignore"):
        body_pct = np.where(rng > 0, body / rng, 0.0)
        lower_wick = np.where(rng > 0, (np.minimum(o, c) - l) / rng, 0.0)
        upper_wick = np.where(rng > 0, (h - np.maximum(o, c)) / rng, 0.0)
    close_s = pd.Series(c)
    return pd.DataFrame({
        "open": o,
        "high": h,
        "low": l,
        "close": c,
        "range": rng,
        "body_pct": body_pct,
        "lower_wick": lower_wick,
        "upper_wick": upper_wick,
        # excludes the current bar
        "recent_high": pd.Series(h).rolling(lookback, min_periods=lookback).max().shift(1),
        "recent_low": pd.Series(l).rolling(lookback, min_periods=lookback).min().shift(1),
        "momentum": close_s.diff(MOMENTUM_BARS).fillna(0.0),
    })


def _setups(row, direction: Direction, strong_body_min: float, wick_min_percent: float) -> dict:
    strong = row.body_pct >= strong_body_min
    if direction is Direction.LONG:
        return {
            SetupKind.MOMENTUM: row.close > row.open and strong and row.momentum > 0,
            SetupKind.BREAKOUT: strong and row.high > row.recent_high,
            SetupKind.REJECTION: (row.lower_wick > wick_min_percent
                                  and row.low <= row.recent_low * REJECTION_LOW_BAND),
        }
    return {
        SetupKind.MOMENTUM: row.close < row.open and strong and row.momentum < 0,
        SetupKind.BREAKOUT: strong and row.low < row.recent_low,
        SetupKind.REJECTION: (row.upper_wick > wick_min_percent
                              and row.high >= row.recent_high * REJECTION_HIGH_BAND),
    }


def detect_price_action_signals(
    series: CandleSeries,
    strong_body_min: float,
    lookback_period: int,
    wick_min_percent: float,
) -> list[Signal]:
    """Scan every candle from `lookback_period` on.

    Each candle emits at most one Long and one Short signal. Zero-range candles
    emit nothing.
    """
    n = len(series)
    if lookback_period < 1 or n <= lookback_period:
        return []

    df = _frame(series, lookback_period)
    signals: list[Signal] = []
    for i, row in enumerate(df.iloc[lookback_period:].itertuples(index=False), start=lookback_period):
        if row.range <= 0:
            continue
        for direction in (Direction.LONG, Direction.SHORT):
            hits = _setups(row, direction, strong_body_min, wick_min_percent)
            kind = next((k for k in SETUP_PRECEDENCE if hits[k]), None)
            if kind is None:
                continue
            signals.append(Signal(
                series_index=i,
                direction=direction,
                kind=kind,
                price=float(row.close),
                timestamp=series[i].timestamp,
                body_percent=float(row.body_pct),
            ))
    return signals
