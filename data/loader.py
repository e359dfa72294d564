# data/loader.py
"""
Candle ingestion from MetaTrader-style exports.

Intraday: DATE  TIME  OPEN  HIGH  LOW  CLOSE  TICKVOL  VOL  SPREAD
Daily   : DATE  OPEN  HIGH  LOW  CLOSE  TICKVOL  VOL  SPREAD
Tab-delimited with one header row. Rows that cannot be parsed or violate the
candle invariants are dropped here so they never reach the backtester.
"""

from __future__ import annotations
from pathlib import Path

import numpy as np
import pandas as pd

from models.candle import MIN_YEAR, CandleSeries

INTRADAY_COLUMNS = ["date", "time", "open", "high", "low", "close", "volume"]
DAILY_COLUMNS = ["date", "open", "high", "low", "close", "volume"]


def _read_raw(path: Path, sep: str, daily: bool) -> pd.DataFrame:
    cols = DAILY_COLUMNS if daily else INTRADAY_COLUMNS
    raw = pd.read_csv(
        path,
        sep=sep,
        header=None,
        skiprows=1,
        dtype=str,
        skip_blank_lines=True,
        engine="python",
        names=range(max(len(cols), 9)),
        on_bad_lines="skip",
    )
    raw = raw.iloc[:, : len(cols)]
    raw.columns = cols
    return raw.apply(lambda s: s.map(lambda v: v.strip() if isinstance(v, str) else v))


def frame_from_raw(raw: pd.DataFrame, daily: bool = False) -> pd.DataFrame:
    """Typed, validated OHLCV frame (Open/High/Low/Close/Volume, UTC DatetimeIndex)."""
    df = raw.copy()
    required = ["date", "open", "high", "low", "close"] + ([] if daily else ["time"])
    df = df.dropna(subset=required)

    stamp = df["date"].str.replace(".", "-", regex=False)
    if not daily:
        stamp = stamp + " " + df["time"]
    ts = pd.to_datetime(stamp, format="%Y-%m-%d" if daily else "%Y-%m-%d %H:%M", errors="coerce", utc=True)
    missing = ts.isna()
    if missing.any():
        # seconds, ISO "T" separators and other layouts
        ts[missing] = pd.to_datetime(stamp[missing], format="mixed", errors="coerce", utc=True)

    out = pd.DataFrame({
        "Open": pd.to_numeric(df["open"], errors="coerce"),
        "High": pd.to_numeric(df["high"], errors="coerce"),
        "Low": pd.to_numeric(df["low"], errors="coerce"),
        "Close": pd.to_numeric(df["close"], errors="coerce"),
        "Volume": pd.to_numeric(df["volume"], errors="coerce").fillna(0.0),
    })
    out.index = pd.DatetimeIndex(ts, name="Date")

    ohlc = out[["Open", "High", "Low", "Close"]]
    ok = (
        out.index.notna()
        & np.isfinite(ohlc).all(axis=1).to_numpy()
        & (ohlc > 0).all(axis=1).to_numpy()
        & (out["High"] >= out["Low"]).to_numpy()
    )
    out = out[ok]
    out = out[out.index.year > MIN_YEAR]
    return out.sort_index(kind="stable")


def load_candles(path: str | Path, daily: bool = False, sep: str = "\t") -> CandleSeries:
    """Load one timeframe file into a validated, timestamp-ordered CandleSeries."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Candle file not found: {p.resolve()}")
    frame = frame_from_raw(_read_raw(p, sep, daily), daily=daily)
    return CandleSeries.from_frame(frame)


def resample_series(series: CandleSeries, rule: str) -> CandleSeries:
    """Aggregate to a higher timeframe, e.g. rule="1h", "4h", "1D"."""
    if len(series) == 0:
        return series
    df = series.to_frame()
    agg = df.resample(rule, label="left", closed="left").agg({
        "Open": "first",
        "High": "max",
        "Low": "min",
        "Close": "last",
        "Volume": "sum",
    }).dropna(subset=["Open", "High", "Low", "Close"])
    return CandleSeries.from_frame(agg)


HIGHER_TIMEFRAMES = {"daily": "1D", "h4": "4h", "h1": "1h"}


def load_timeframes(data_cfg: dict) -> dict[str, CandleSeries | None]:
    """Entry series plus optional daily/h4/h1 series from the `data` config section.

    Missing higher timeframes are resampled from the entry series when
    `resample_missing` is set.
    """
    entry_path = data_cfg.get("entry")
    if not entry_path:
        raise ValueError("data.entry is required")
    out: dict[str, CandleSeries | None] = {"entry": load_candles(entry_path)}
    resample = bool(data_cfg.get("resample_missing", True))
    for tf, rule in HIGHER_TIMEFRAMES.items():
        path = data_cfg.get(tf)
        if path:
            out[tf] = load_candles(path, daily=(tf == "daily"))
        elif resample:
            out[tf] = resample_series(out["entry"], rule)
        else:
            out[tf] = None
    return out
