"""Synthetic candle builders shared by the tests."""
from datetime import datetime, timedelta, timezone

import numpy as np

from models.candle import Candle, CandleSeries

START = datetime(2024, 1, 2, 7, 0, tzinfo=timezone.utc)
M5 = timedelta(minutes=5)


def series_from_rows(rows, start=START, step=M5) -> CandleSeries:
    """rows: iterable of (open, high, low, close)."""
    return CandleSeries(
        Candle.at(start + i * step, o, h, l, c, 100.0) for i, (o, h, l, c) in enumerate(rows)
    )


def flat_rows(n: int, price: float = 1.1000) -> list[tuple]:
    return [(price, price + 0.0001, price - 0.0001, price) for _ in range(n)]


def flat_series(n: int = 300, price: float = 1.1000, overrides: dict | None = None, **kw) -> CandleSeries:
    """Quiet series at `price`; `overrides` maps index -> (o, h, l, c)."""
    rows = flat_rows(n, price)
    for i, row in (overrides or {}).items():
        rows[i] = row
    return series_from_rows(rows, **kw)


def uptrend_with_breakout(n: int = 300, k: int = 250) -> CandleSeries:
    """Weak-bodied uptrend (0.5 pip/bar) with one strong green candle at k.

    Base candles: 10 pip range, 2 pip body, 4 pip wicks.
    Candle k: 20 pip range, 16 pip body (80%), closing above the prior 20-bar high.
    """
    rows = []
    for i in range(n):
        mid = 1.1000 + i * 0.00005
        rows.append((mid - 0.0001, mid + 0.0005, mid - 0.0005, mid + 0.0001))
    low = 1.1000 + k * 0.00005 - 0.0005
    rows[k] = (low + 0.0002, low + 0.0020, low, low + 0.0018)
    return series_from_rows(rows)


def random_walk(n: int = 2000, seed: int = 7, step_pips: float = 3.0) -> CandleSeries:
    rng = np.random.default_rng(seed)
    close = 1.1000 + np.cumsum(rng.normal(0, step_pips * 0.0001, n))
    open_ = np.concatenate([[1.1000], close[:-1]])
    wick_hi = np.abs(rng.normal(0, 1.5 * 0.0001, n))
    wick_lo = np.abs(rng.normal(0, 1.5 * 0.0001, n))
    high = np.maximum(open_, close) + wick_hi
    low = np.minimum(open_, close) - wick_lo
    return series_from_rows(zip(open_, high, low, close))
