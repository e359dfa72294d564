"""
risk.manager
------------
Stop/target placement and sizing helpers for pip-quoted instruments.
- compute_levels: stop at a fixed pip distance, target at R:R times that distance
- trail_stop    : ratchet a stop toward the close, never loosening it
- size_position : units for a percent-of-balance risk budget
"""

from typing import Optional, Tuple

from models.signal import Direction
from risk.pips import DEFAULT_PIPS, PipConfig, round_price


def compute_levels(
    direction: Direction,
    entry: float,
    stop_loss_pips: float,
    risk_reward_ratio: float,
    pips: PipConfig = DEFAULT_PIPS,
) -> Tuple[float, float] | Tuple[None, None]:
    """
    Compute stop & target from entry.
      long : stop = entry - SL pips, target = entry + RR*(entry-stop)
      short: stop = entry + SL pips, target = entry - RR*(stop-entry)
    Returns (None, None) when inputs are invalid or the target would be <= 0.
    """
    if entry is None or entry <= 0:
        return None, None
    if stop_loss_pips is None or risk_reward_ratio is None:
        return None, None
    if stop_loss_pips <= 0 or risk_reward_ratio <= 0:
        return None, None

    dist = pips.to_price(stop_loss_pips)
    reward = pips.to_price(stop_loss_pips * risk_reward_ratio)
    if direction is Direction.LONG:
        stop = round_price(entry - dist)
        tgt = round_price(entry + reward)
        if stop <= 0:
            return None, None
    elif direction is Direction.SHORT:
        stop = round_price(entry + dist)
        tgt = round_price(entry - reward)
        if tgt <= 0:
            return None, None
    else:
        return None, None
    return stop, tgt


def trail_stop(
    direction: Direction,
    stop: float,
    close: float,
    trailing_pips: float,
    pips: PipConfig = DEFAULT_PIPS,
) -> float:
    """Return the stop after trailing `trailing_pips` behind `close`.

    The candidate only replaces `stop` when it reduces risk: higher for a long,
    lower for a short.
    """
    if trailing_pips <= 0:
        return stop
    dist = pips.to_price(trailing_pips)
    if direction is Direction.LONG:
        candidate = round_price(close - dist)
        return candidate if candidate > stop else stop
    candidate = round_price(close + dist)
    return candidate if candidate < stop else stop


def size_position(
    balance: float,
    risk_pct: float,
    stop_loss_pips: float,
    pips: PipConfig = DEFAULT_PIPS,
) -> Optional[float]:
    """
    Units = (risk_pct% of balance) / (stop pips * pip value).
    A stop-out then loses exactly the risk budget and a target hit wins RR times it.
    Returns None if not feasible.
    """
    if balance is None or balance <= 0 or risk_pct <= 0 or stop_loss_pips <= 0:
        return None
    risk_amount = balance * (risk_pct / 100.0)
    per_unit = stop_loss_pips * pips.pip_value
    return risk_amount / per_unit
