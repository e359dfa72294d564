# backtest/engine.py
"""
Backtest runner: detection -> confluence -> per-signal trade simulation over the
train or test segment of a candle series, aggregated into Metrics.

run_backtest is pure: no globals are read or written, and the same
(series, params, mode, segment, context, settings) always yields the same
trades and metrics.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from math import floor
from typing import Callable, Hashable, Optional, Sequence

import pandas as pd

from backtest.metrics import Metrics, compute_metrics
from backtest.simulator import DEFAULT_LOOKAHEAD, simulate_trade
from models.candle import CandleSeries
from models.params import ParameterSet, Segment, StrategyMode
from models.signal import Direction, Signal
from models.trade import Trade
from risk.manager import size_position
from risk.pips import DEFAULT_PIPS, PipConfig
from strategies.confluence import HigherTimeframeContext, apply_confluence
from strategies.ict import detect_fair_value_gaps, detect_ict_signals, detect_order_blocks
from strategies.price_action import detect_price_action_signals

MIN_CANDLES = 200
# London 07-10 UTC, New York 12-15 UTC
KILL_ZONES: tuple[tuple[int, int], ...] = ((7, 10), (12, 15))
SIZING_MODES = ("fixed", "risk_pct")


@dataclass(frozen=True)
class BacktestSettings:
    """Non-tunable run settings (not part of the optimizer grid)."""
    initial_balance: float = 10_000.0
    pips: PipConfig = field(default_factory=PipConfig)
    lookahead_bars: int = DEFAULT_LOOKAHEAD
    min_candles: int = MIN_CANDLES
    kill_zones: tuple[tuple[int, int], ...] = KILL_ZONES
    single_position: bool = True
    sizing: str = "fixed"              # "fixed": 1 unit; "risk_pct": % of balance at risk
    risk_per_trade_pct: float = 2.0

    def __post_init__(self):
        if self.sizing not in SIZING_MODES:
            raise ValueError(f"sizing must be one of {SIZING_MODES}, got {self.sizing!r}")
        if self.initial_balance <= 0:
            raise ValueError("initial_balance must be positive")
        if self.lookahead_bars < 1:
            raise ValueError("lookahead_bars must be >= 1")


@dataclass(frozen=True)
class BacktestResult:
    params: ParameterSet
    mode: StrategyMode
    segment: Segment
    trades: tuple[Trade, ...]
    metrics: Metrics
    equity_curve: tuple[tuple[datetime, float], ...]
    signal_count: int

    def trades_frame(self) -> pd.DataFrame:
        return pd.DataFrame([t.as_row() for t in self.trades])

    def summary_row(self) -> dict:
        row = {"mode": self.mode.value, "segment": self.segment.value}
        row.update(self.params.as_dict())
        row.update(self.metrics.as_dict())
        return row


class SignalCache:
    """Memo of detector output for one (series, context) pair.

    Detection depends only on the detector parameters, not on stops, targets or
    filters, so an optimizer worker can reuse it across grid combinations.
    """

    def __init__(self):
        self._store: dict[Hashable, list[Signal]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable, compute: Callable[[], list[Signal]]) -> list[Signal]:
        if key in self._store:
            self.hits += 1
            return self._store[key]
        self.misses += 1
        value = compute()
        self._store[key] = value
        return value

    def __len__(self) -> int:
        return len(self._store)


# ---------- helpers ----------

def split_index(n: int, optimize_from_percent: float) -> int:
    return int(floor(n * optimize_from_percent / 100.0))


def select_segment(series: CandleSeries, params: ParameterSet, segment: Segment) -> CandleSeries:
    if segment is Segment.FULL:
        return series
    cut = split_index(len(series), params.optimize_from_percent)
    return series[:cut] if segment is Segment.TRAIN else series[cut:]


def is_kill_zone(ts: datetime, windows: Sequence[tuple[int, int]] = KILL_ZONES) -> bool:
    hour = ts.astimezone(timezone.utc).hour if ts.tzinfo is not None else ts.hour
    return any(start <= hour < end for start, end in windows)


def _order(signals: list[Signal]) -> list[Signal]:
    return sorted(signals, key=lambda s: (s.series_index, s.direction is not Direction.LONG))


def generate_signals(
    series: CandleSeries,
    params: ParameterSet,
    mode: StrategyMode,
    context: Optional[HigherTimeframeContext] = None,
    pips: PipConfig = DEFAULT_PIPS,
    cache: Optional[SignalCache] = None,
    cache_scope: Hashable = None,
) -> list[Signal]:
    """Run the detectors for `mode`, returning signals in bar order (long first).

    PRICE_ACTION: price-action setups, no confluence filter.
    COMBINED    : price-action setups kept when confluence >= min_confluence.
    ICT         : order-block / FVG touches on this series, gated by the
                  context bias and kept when confluence >= min_confluence.
                  Without higher-timeframe structures the series' own blocks
                  and gaps are used for scoring.
    """
    context = context or HigherTimeframeContext.empty()

    def _memo(key: tuple, compute: Callable[[], list[Signal]]) -> list[Signal]:
        if cache is None:
            return compute()
        return cache.get((cache_scope,) + key, compute)

    pa_key = ("pa", params.strong_body_min, params.lookback_period, params.wick_min_percent)

    def _pa() -> list[Signal]:
        return detect_price_action_signals(
            series, params.strong_body_min, params.lookback_period, params.wick_min_percent
        )

    if mode is StrategyMode.PRICE_ACTION:
        return _memo(pa_key, _pa)

    if mode is StrategyMode.COMBINED:
        return _memo(
            ("combined",) + pa_key[1:] + (params.min_confluence,),
            lambda: _order(apply_confluence(_memo(pa_key, _pa), context, params.min_confluence, pips)),
        )

    def _ict() -> list[Signal]:
        blocks = detect_order_blocks(series, params.lookback_period)
        gaps = list(context.fair_value_gaps) or detect_fair_value_gaps(series, params.fvg_min_pips, pips=pips)
        raw = detect_ict_signals(series, blocks, gaps, params.lookback_period, bias=context.entry_bias)
        scoring = context
        if not (context.order_blocks or context.fair_value_gaps):
            scoring = HigherTimeframeContext(
                order_blocks=tuple(blocks),
                fair_value_gaps=tuple(gaps),
                liquidity_zones=context.liquidity_zones,
                daily_bias=context.daily_bias,
                h4_bias=context.h4_bias,
            )
        return _order(apply_confluence(raw, scoring, params.min_confluence, pips))

    return _memo(("ict", params.lookback_period, params.fvg_min_pips, params.min_confluence), _ict)


# ---------- runner ----------

def run_backtest(
    series: CandleSeries,
    params: ParameterSet,
    mode: StrategyMode = StrategyMode.PRICE_ACTION,
    segment: Segment = Segment.TRAIN,
    context: Optional[HigherTimeframeContext] = None,
    settings: Optional[BacktestSettings] = None,
    cache: Optional[SignalCache] = None,
) -> Optional[BacktestResult]:
    """Evaluate one ParameterSet on one segment.

    Returns None when the series is shorter than settings.min_candles or no
    trade completes; a genuine empty trade list never produces a result.
    """
    settings = settings or BacktestSettings()
    if len(series) < settings.min_candles:
        return None

    seg = select_segment(series, params, segment)
    if len(seg) <= params.lookback_period:
        return None
    signals = generate_signals(
        seg, params, mode, context, settings.pips, cache,
        cache_scope=(segment, params.optimize_from_percent),
    )

    balance = settings.initial_balance
    trades: list[Trade] = []
    equity: list[tuple[datetime, float]] = []
    current_day: Optional[str] = None
    taken_today = 0
    busy_until = -1

    for sig in signals:
        if settings.single_position and sig.series_index <= busy_until:
            continue
        candle = seg[sig.series_index]
        if candle.date != current_day:
            current_day = candle.date
            taken_today = 0
        if taken_today >= params.max_trades_per_day:
            continue
        if params.use_kill_zones and not is_kill_zone(candle.timestamp, settings.kill_zones):
            continue

        units = 1.0
        if settings.sizing == "risk_pct":
            units = size_position(balance, settings.risk_per_trade_pct, params.stop_loss_pips, settings.pips)
            if units is None:
                continue

        ex = simulate_trade(seg, sig, params, settings.pips, settings.lookahead_bars, units)
        if ex is None:
            continue

        balance += ex.pnl
        exit_ts = seg[ex.exit_index].timestamp
        trades.append(Trade(
            entry_timestamp=sig.timestamp,
            exit_timestamp=exit_ts,
            entry_index=ex.entry_index,
            exit_index=ex.exit_index,
            direction=sig.direction,
            setup_kind=sig.kind,
            entry_price=ex.entry_price,
            stop=ex.stop,
            target=ex.target,
            exit_price=ex.exit_price,
            outcome=ex.outcome,
            exit_reason=ex.exit_reason,
            pips=ex.pips,
            pnl=ex.pnl,
            running_balance=balance,
            confluence_score=sig.confluence_score,
        ))
        equity.append((exit_ts, balance))
        taken_today += 1
        busy_until = ex.exit_index

    if not trades:
        return None

    return BacktestResult(
        params=params,
        mode=mode,
        segment=segment,
        trades=tuple(trades),
        metrics=compute_metrics(trades, settings.initial_balance),
        equity_curve=tuple(equity),
        signal_count=len(signals),
    )
