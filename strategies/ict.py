# strategies/ict.py
"""
ICT structure detection: order blocks, fair value gaps, swing points,
market-structure bias, liquidity pools, and the order-block / FVG touch entry.
"""

from __future__ import annotations
from collections import Counter
from datetime import datetime
from typing import Iterable, Optional, Sequence

import numpy as np
import pandas as pd

from models.candle import CandleSeries
from models.signal import Direction, SetupKind, Signal
from models.structures import (
    Bias,
    FairValueGap,
    LiquidityZone,
    OrderBlock,
    SwingPoint,
    ZoneType,
)
from risk.pips import DEFAULT_PIPS, PipConfig, round_price

OB_MOVE_MULTIPLIER = 1.5
OB_KEEP = 50
OB_KEEP_MTF = 100
FVG_KEEP = 50
FVG_MAX_GAP = 0.01          # larger gaps are treated as data errors
STRUCTURE_SWINGS = 6


def detect_order_blocks(series: CandleSeries, lookback: int, keep: int = OB_KEEP) -> list[OrderBlock]:
    """Candles followed by a close-to-close move larger than 1.5x the average
    absolute close-to-close move of the prior `lookback` candles.
    Typed by the direction of that next move; only the latest `keep` are returned.
    """
    n = len(series)
    if lookback < 1 or n < lookback + 2:
        return []

    close = pd.Series(series.closes)
    avg_move = close.diff().abs().rolling(lookback, min_periods=1).mean().shift(1)
    next_move = close.shift(-1) - close

    blocks: list[OrderBlock] = []
    for i in range(lookback, n - 1):
        avg = avg_move.iat[i]
        move = next_move.iat[i]
        if not np.isfinite(avg) or move == 0:
            continue
        if abs(move) <= OB_MOVE_MULTIPLIER * avg:
            continue
        c = series[i]
        blocks.append(OrderBlock(
            series_index=i,
            type=ZoneType.BULLISH if move > 0 else ZoneType.BEARISH,
            high=c.high,
            low=c.low,
            timestamp=c.timestamp,
            strength=float(abs(move) / avg) if avg > 0 else float("inf"),
        ))
    return blocks[-keep:] if keep > 0 else blocks


def _formed_at(series: CandleSeries, i: int) -> datetime:
    if i + 2 < len(series):
        return series[i + 2].timestamp
    third = series[i + 1].timestamp
    return third + (third - series[i].timestamp)


def detect_fair_value_gaps(
    series: CandleSeries,
    min_pips: float,
    keep: int = FVG_KEEP,
    pips: PipConfig = DEFAULT_PIPS,
) -> list[FairValueGap]:
    """Three-candle imbalances around each interior candle i.

    bullish: low[i+1] - high[i-1] > min gap   (band high[i-1] .. low[i+1])
    bearish: low[i-1] - high[i+1] > min gap   (band high[i+1] .. low[i-1])

    A gap exists only once candle i+1 has closed; `formed_at` is the open of
    candle i+2, or one bar length after candle i+1 for the last gap.
    """
    n = len(series)
    if n < 3:
        return []
    min_gap = pips.to_price(min_pips)
    h, l = series.highs, series.lows

    gaps: list[FairValueGap] = []
    for i in range(1, n - 1):
        ts = series[i].timestamp
        formed = _formed_at(series, i)
        bull = l[i + 1] - h[i - 1]
        if min_gap < bull < FVG_MAX_GAP:
            gaps.append(FairValueGap(
                type=ZoneType.BULLISH,
                top=float(l[i + 1]),
                bottom=float(h[i - 1]),
                timestamp=ts,
                series_index=i,
                size_pips=pips.to_pips(bull),
                formed_at=formed,
            ))
        bear = l[i - 1] - h[i + 1]
        if min_gap < bear < FVG_MAX_GAP:
            gaps.append(FairValueGap(
                type=ZoneType.BEARISH,
                top=float(l[i - 1]),
                bottom=float(h[i + 1]),
                timestamp=ts,
                series_index=i,
                size_pips=pips.to_pips(bear),
                formed_at=formed,
            ))
    return gaps[-keep:] if keep > 0 else gaps


def find_swing_points(series: CandleSeries, lookback: int = 5) -> list[SwingPoint]:
    """Highs/lows that are the extreme of their +-lookback window."""
    n = len(series)
    h, l = series.highs, series.lows
    swings: list[SwingPoint] = []
    for i in range(lookback, n - lookback):
        lo, hi = i - lookback, i + lookback + 1
        if h[i] == h[lo:hi].max():
            swings.append(SwingPoint(i, "high", float(h[i]), series[i].timestamp))
        if l[i] == l[lo:hi].min():
            swings.append(SwingPoint(i, "low", float(l[i]), series[i].timestamp))
    return swings


def market_structure(swings: Sequence[SwingPoint]) -> Bias:
    """Higher highs + higher lows -> bullish, lower highs + lower lows -> bearish."""
    if len(swings) < 4:
        return Bias.NEUTRAL
    recent = swings[-STRUCTURE_SWINGS:]
    highs = [s.price for s in recent if s.kind == "high"]
    lows = [s.price for s in recent if s.kind == "low"]
    if len(highs) < 2 or len(lows) < 2:
        return Bias.NEUTRAL
    if highs[-1] > highs[-2] and lows[-1] > lows[-2]:
        return Bias.BULLISH
    if highs[-1] < highs[-2] and lows[-1] < lows[-2]:
        return Bias.BEARISH
    return Bias.NEUTRAL


def find_liquidity_zones(
    series: CandleSeries,
    lookback: int = 100,
    tolerance_pips: float = 5.0,
    min_touches: int = 3,
    pips: PipConfig = DEFAULT_PIPS,
) -> list[LiquidityZone]:
    """Equal highs (sell-side) and equal lows (buy-side) over the last `lookback` bars."""
    if len(series) < lookback:
        return []
    tol = pips.to_price(tolerance_pips)
    recent = series[-lookback:]

    def _pools(values: Iterable[float], side: str) -> list[LiquidityZone]:
        buckets = Counter(int(round(v / tol)) for v in values)
        return [
            LiquidityZone(side=side, price=round_price(k * tol), touches=count)
            for k, count in buckets.items()
            if count >= min_touches
        ]

    return _pools(recent.highs, "sell_side") + _pools(recent.lows, "buy_side")


def detect_ict_signals(
    series: CandleSeries,
    order_blocks: Sequence[OrderBlock],
    fair_value_gaps: Sequence[FairValueGap],
    lookback: int,
    bias: Optional[Bias] = None,
) -> list[Signal]:
    """Entries where a candle trades back into a same-direction order block or FVG.

    Long: low inside a bullish block/gap. Short: high inside a bearish block/gap.
    Order blocks only count once confirmed (the bar after the block has closed);
    gaps only from their `formed_at` bar on (never on the bar that forms them),
    and gaps without a formation time never trade. An order-block match
    takes precedence over a gap. With a bias, only the aligned direction fires.
    """
    n = len(series)
    signals: list[Signal] = []
    directions = [d for d in (Direction.LONG, Direction.SHORT) if bias is None or bias.allows(d)]
    if not directions:
        return signals

    for i in range(max(lookback, 1), n):
        c = series[i]
        if c.range <= 0:
            continue
        body_pct = c.body / c.range
        for direction in directions:
            zone = ZoneType.for_direction(direction)
            probe = c.low if direction is Direction.LONG else c.high
            kind = None
            if any(ob.type is zone and ob.series_index + 1 < i and ob.contains(probe)
                   for ob in order_blocks):
                kind = SetupKind.ORDER_BLOCK
            elif any(g.type is zone and g.formed_at is not None and g.formed_at <= c.timestamp
                     and g.contains(probe)
                     for g in fair_value_gaps):
                kind = SetupKind.FAIR_VALUE_GAP
            if kind is None:
                continue
            signals.append(Signal(
                series_index=i,
                direction=direction,
                kind=kind,
                price=c.close,
                timestamp=c.timestamp,
                body_percent=body_pct,
            ))
    return signals
