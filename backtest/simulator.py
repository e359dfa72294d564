# backtest/simulator.py
"""
Single-trade simulator.

Pending -> Win | Loss, or Expired when neither level is hit within the
lookahead horizon (returned as None, never counted as a trade).

Per bar after the entry bar, in this order:
  1) trailing stop ratchets toward the close (if enabled)
  2) stop breach   -> Loss at the stop
  3) target touch  -> Win at the target
Stop is checked before target on the same bar, so a bar spanning both is a loss.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional

from models.candle import CandleSeries
from models.params import ParameterSet
from models.signal import Direction, Signal
from models.trade import ExitReason, Outcome
from risk.manager import compute_levels, trail_stop
from risk.pips import DEFAULT_PIPS, PipConfig

DEFAULT_LOOKAHEAD = 100


@dataclass(frozen=True)
class SimulatedExit:
    entry_index: int
    exit_index: int
    entry_price: float
    stop: float                # initial stop
    target: float
    exit_price: float
    outcome: Outcome
    exit_reason: ExitReason
    pips: float
    pnl: float
    stop_path: tuple[float, ...]   # stop in force on each bar walked


def simulate_trade(
    series: CandleSeries,
    signal: Signal,
    params: ParameterSet,
    pips: PipConfig = DEFAULT_PIPS,
    lookahead: int = DEFAULT_LOOKAHEAD,
    units: float = 1.0,
) -> Optional[SimulatedExit]:
    direction = signal.direction
    entry = signal.price
    stop, target = compute_levels(direction, entry, params.stop_loss_pips, params.risk_reward_ratio, pips)
    if stop is None:
        return None

    initial_stop = stop
    trailing = params.use_trailing_stop and params.trailing_stop_pips > 0
    path: list[float] = []
    end = min(signal.series_index + 1 + lookahead, len(series))

    for j in range(signal.series_index + 1, end):
        bar = series[j]
        if trailing:
            stop = trail_stop(direction, stop, bar.close, params.trailing_stop_pips, pips)
        path.append(stop)

        if direction is Direction.LONG:
            stopped = bar.low <= stop
            hit = bar.high >= target
        else:
            stopped = bar.high >= stop
            hit = bar.low <= target

        if stopped:
            exit_price, reason = stop, ExitReason.STOP_LOSS
        elif hit:
            exit_price, reason = target, ExitReason.TAKE_PROFIT
        else:
            continue

        n_pips = pips.to_pips((exit_price - entry) * direction.sign)
        pnl = pips.pnl(n_pips, units)
        # a trailed stop can lock in profit; outcome follows realised pnl
        outcome = Outcome.WIN if pnl > 0 else Outcome.LOSS
        return SimulatedExit(
            entry_index=signal.series_index,
            exit_index=j,
            entry_price=entry,
            stop=initial_stop,
            target=target,
            exit_price=exit_price,
            outcome=outcome,
            exit_reason=reason,
            pips=n_pips,
            pnl=pnl,
            stop_path=tuple(path),
        )
    return None
