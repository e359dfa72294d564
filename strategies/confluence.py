# strategies/confluence.py
"""
Confluence scoring of entry signals against higher-timeframe structure.

Weights:
  +2.0  daily bias agrees with the signal direction
  +1.5  per same-direction order block around the price
  +1.0  per same-direction fair value gap around the price
  +0.5  per same-side liquidity pool near the price (buy-side for longs)
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, Optional

from models.candle import CandleSeries
from models.signal import Direction, Signal
from models.structures import Bias, FairValueGap, LiquidityZone, OrderBlock, ZoneType
from risk.pips import DEFAULT_PIPS, PipConfig
from strategies.ict import (
    OB_KEEP_MTF,
    detect_fair_value_gaps,
    detect_order_blocks,
    find_liquidity_zones,
    find_swing_points,
    market_structure,
)

TOLERANCE_PIPS = 20.0
BIAS_WEIGHT = 2.0
ORDER_BLOCK_WEIGHT = 1.5
FVG_WEIGHT = 1.0
LIQUIDITY_WEIGHT = 0.5

DAILY_SWING_LOOKBACK = 3
H4_SWING_LOOKBACK = 5
H4_OB_LOOKBACK = 20


@dataclass(frozen=True)
class HigherTimeframeContext:
    order_blocks: tuple[OrderBlock, ...] = ()
    fair_value_gaps: tuple[FairValueGap, ...] = ()
    liquidity_zones: tuple[LiquidityZone, ...] = ()
    daily_bias: Optional[Bias] = None
    h4_bias: Optional[Bias] = None

    @classmethod
    def empty(cls) -> "HigherTimeframeContext":
        return cls()

    @property
    def is_empty(self) -> bool:
        return not (self.order_blocks or self.fair_value_gaps or self.liquidity_zones
                    or self.daily_bias or self.h4_bias)

    @property
    def entry_bias(self) -> Optional[Bias]:
        """Direction gate for ICT entries: daily and h4 must agree.

        None when no bias was computed (single-timeframe runs).
        """
        if self.daily_bias is None and self.h4_bias is None:
            return None
        if self.h4_bias is None:
            return self.daily_bias
        if self.daily_bias is None:
            return self.h4_bias
        return self.daily_bias if self.daily_bias is self.h4_bias else Bias.NEUTRAL


def build_context(
    daily: Optional[CandleSeries] = None,
    h4: Optional[CandleSeries] = None,
    h1: Optional[CandleSeries] = None,
    fvg_min_pips: float = 10.0,
    pips: PipConfig = DEFAULT_PIPS,
) -> HigherTimeframeContext:
    """Daily bias from daily swings, h4 bias + order blocks, h1 gaps + liquidity pools."""
    daily_bias = market_structure(find_swing_points(daily, DAILY_SWING_LOOKBACK)) if daily else None
    h4_bias = None
    order_blocks: tuple[OrderBlock, ...] = ()
    if h4:
        h4_bias = market_structure(find_swing_points(h4, H4_SWING_LOOKBACK))
        order_blocks = tuple(detect_order_blocks(h4, H4_OB_LOOKBACK, keep=OB_KEEP_MTF))
    gaps: tuple[FairValueGap, ...] = ()
    zones: tuple[LiquidityZone, ...] = ()
    if h1:
        gaps = tuple(detect_fair_value_gaps(h1, fvg_min_pips, pips=pips))
        zones = tuple(find_liquidity_zones(h1, pips=pips))
    return HigherTimeframeContext(
        order_blocks=order_blocks,
        fair_value_gaps=gaps,
        liquidity_zones=zones,
        daily_bias=daily_bias,
        h4_bias=h4_bias,
    )


def score_signal(
    signal: Signal,
    context: HigherTimeframeContext,
    tolerance_pips: float = TOLERANCE_PIPS,
    pips: PipConfig = DEFAULT_PIPS,
) -> float:
    price = signal.price
    tol = pips.to_price(tolerance_pips)
    zone = ZoneType.for_direction(signal.direction)
    score = 0.0

    if context.daily_bias is not None and context.daily_bias.allows(signal.direction):
        score += BIAS_WEIGHT
    score += ORDER_BLOCK_WEIGHT * sum(
        1 for ob in context.order_blocks if ob.type is zone and ob.contains(price, tol)
    )
    score += FVG_WEIGHT * sum(
        1 for g in context.fair_value_gaps if g.type is zone and g.contains(price, tol)
    )
    side = "buy_side" if signal.direction is Direction.LONG else "sell_side"
    score += LIQUIDITY_WEIGHT * sum(
        1 for z in context.liquidity_zones if z.side == side and abs(price - z.price) < tol
    )
    return score


def apply_confluence(
    signals: Iterable[Signal],
    context: HigherTimeframeContext,
    min_confluence: float,
    pips: PipConfig = DEFAULT_PIPS,
) -> list[Signal]:
    """Attach scores and keep signals scoring at least `min_confluence`."""
    kept = []
    for sig in signals:
        score = score_signal(sig, context, pips=pips)
        if score >= min_confluence:
            kept.append(sig.with_score(score))
    return kept
