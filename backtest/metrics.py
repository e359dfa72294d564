# backtest/metrics.py
from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Sequence

import pandas as pd

from models.trade import Outcome, Trade


@dataclass(frozen=True)
class Metrics:
    total_trades: int
    wins: int
    losses: int
    win_rate: float                 # percent
    profit_factor: float            # 0.0 sentinel when there are no losses
    profit_factor_unbounded: bool   # wins but no losses: treat profit_factor as +inf
    gross_profit: float
    gross_loss: float               # magnitude
    net_profit: float
    return_pct: float
    max_drawdown: float             # percent, peak-to-trough of the balance
    initial_balance: float
    final_balance: float
    avg_win: float
    avg_loss: float                 # magnitude
    expectancy: float

    def as_dict(self) -> dict:
        return asdict(self)


def _drawdown_pct(balances: pd.Series) -> float:
    if balances.empty:
        return 0.0
    peak = balances.cummax()
    dd = (peak - balances) / peak * 100.0
    return float(dd.max())


def compute_metrics(trades: Sequence[Trade], initial_balance: float) -> Metrics:
    """Aggregate a trade list.

    Drawdown is sampled after every realised trade, starting from the initial
    balance. profit_factor is 0.0 when gross_loss is 0; callers must check
    profit_factor_unbounded before dividing by or ranking on it. A trailed
    stop hit exactly at entry has pnl 0 and counts as a loss, so `losses` can
    be non-zero while gross_loss is still 0; both the sentinel and the
    unbounded flag follow gross_loss, not the loss count.
    """
    pnl = pd.Series([t.pnl for t in trades], dtype="float64")
    outcome = pd.Series([t.outcome for t in trades], dtype="object")
    wins_pnl = pnl[outcome == Outcome.WIN]
    losses_pnl = pnl[outcome == Outcome.LOSS]

    total = len(trades)
    wins, losses = len(wins_pnl), len(losses_pnl)
    gross_profit = float(wins_pnl.sum())
    gross_loss = float(abs(losses_pnl.sum()))

    final_balance = float(initial_balance + pnl.sum())
    balances = pd.concat([pd.Series([float(initial_balance)]), initial_balance + pnl.cumsum()], ignore_index=True)

    win_rate = (wins / total * 100.0) if total else 0.0
    avg_win = gross_profit / wins if wins else 0.0
    avg_loss = gross_loss / losses if losses else 0.0
    expectancy = ((wins / total) * avg_win - (losses / total) * avg_loss) if total else 0.0
    net_profit = final_balance - initial_balance

    return Metrics(
        total_trades=total,
        wins=wins,
        losses=losses,
        win_rate=win_rate,
        profit_factor=(gross_profit / gross_loss) if gross_loss > 0 else 0.0,
        profit_factor_unbounded=(gross_loss == 0 and wins > 0),
        gross_profit=gross_profit,
        gross_loss=gross_loss,
        net_profit=net_profit,
        return_pct=(net_profit / initial_balance * 100.0) if initial_balance else 0.0,
        max_drawdown=_drawdown_pct(balances),
        initial_balance=float(initial_balance),
        final_balance=final_balance,
        avg_win=avg_win,
        avg_loss=avg_loss,
        expectancy=expectancy,
    )
