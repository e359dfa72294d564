import sys
from pathlib import Path
root = Path(__file__).resolve().parents[1]
if str(root) not in sys.path:
    sys.path.insert(0, str(root))

from datetime import datetime, timedelta, timezone

import pytest

from backtest.metrics import compute_metrics
from models.signal import Direction, SetupKind
from models.trade import ExitReason, Outcome, Trade

T0 = datetime(2024, 1, 2, 8, 0, tzinfo=timezone.utc)


def _trades(pnls, initial=1000.0):
    out, balance = [], initial
    for i, pnl in enumerate(pnls):
        balance += pnl
        out.append(Trade(
            entry_timestamp=T0 + timedelta(hours=i),
            exit_timestamp=T0 + timedelta(hours=i, minutes=30),
            entry_index=i * 10,
            exit_index=i * 10 + 5,
            direction=Direction.LONG,
            setup_kind=SetupKind.MOMENTUM,
            entry_price=1.1,
            stop=1.098,
            target=1.104,
            exit_price=1.104 if pnl > 0 else 1.098,
            outcome=Outcome.WIN if pnl > 0 else Outcome.LOSS,
            exit_reason=ExitReason.TAKE_PROFIT if pnl > 0 else ExitReason.STOP_LOSS,
            pips=pnl * 10,
            pnl=pnl,
            running_balance=balance,
        ))
    return out


def test_mixed_trades():
    m = compute_metrics(_trades([10, -5, 20, -10]), 1000.0)
    assert m.total_trades == 4
    assert m.wins == 2 and m.losses == 2
    assert m.win_rate == pytest.approx(50.0)
    assert m.gross_profit == pytest.approx(30.0)
    assert m.gross_loss == pytest.approx(15.0)
    assert m.profit_factor == pytest.approx(2.0)
    assert not m.profit_factor_unbounded
    assert m.net_profit == pytest.approx(15.0)
    assert m.return_pct == pytest.approx(1.5)
    assert m.final_balance == pytest.approx(1015.0)
    assert m.avg_win == pytest.approx(15.0)
    assert m.avg_loss == pytest.approx(7.5)
    assert m.expectancy == pytest.approx(3.75)
    # peak 1025 -> 1015
    assert m.max_drawdown == pytest.approx(10 / 1025 * 100)


def test_all_wins_profit_factor_sentinel():
    m = compute_metrics(_trades([5, 5, 5]), 1000.0)
    assert m.profit_factor == 0.0
    assert m.profit_factor_unbounded
    assert m.max_drawdown == 0.0
    assert m.avg_loss == 0.0


def test_all_losses():
    m = compute_metrics(_trades([-5, -5]), 1000.0)
    assert m.profit_factor == 0.0
    assert not m.profit_factor_unbounded
    assert m.win_rate == 0.0
    assert m.max_drawdown == pytest.approx(10 / 1000 * 100)
    assert m.expectancy == pytest.approx(-5.0)


def test_drawdown_from_initial_balance():
    # first trade loses: peak is the initial balance
    m = compute_metrics(_trades([-100, 50]), 1000.0)
    assert m.max_drawdown == pytest.approx(10.0)


def test_as_dict_has_every_field():
    m = compute_metrics(_trades([10, -5]), 1000.0)
    d = m.as_dict()
    assert d["total_trades"] == 2
    assert set(d) >= {"win_rate", "profit_factor", "return_pct", "max_drawdown", "expectancy"}


def test_breakeven_loss_keeps_sentinel():
    # a stop trailed to entry closes at pnl 0: a loss with nothing lost
    m = compute_metrics(_trades([10, 0]), 1000.0)
    assert m.wins == 1 and m.losses == 1
    assert m.gross_loss == 0.0
    assert m.profit_factor == 0.0
    assert m.profit_factor_unbounded
    assert m.avg_loss == 0.0
