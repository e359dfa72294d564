# models/params.py
"""
models.params
-------------
ParameterSet: the sole tunable input of a backtest run.
  - strong_body_min      : minimum body/range ratio for momentum & breakout setups
  - lookback_period      : bars used for recent high/low and entry order blocks
  - wick_min_percent     : minimum rejection wick as a fraction of range
  - min_confluence       : score a signal needs when confluence filtering applies
  - stop_loss_pips       : stop distance from entry
  - risk_reward_ratio    : target distance as a multiple of the stop distance
  - use_trailing_stop / trailing_stop_pips
  - use_kill_zones       : only trade inside the London / New York windows
  - max_trades_per_day
  - optimize_from_percent: train/test split point (% of bars in the train segment)
  - fvg_min_pips         : minimum fair value gap size
"""

from __future__ import annotations
from dataclasses import dataclass, astuple, fields, replace
from enum import Enum


class StrategyMode(str, Enum):
    PRICE_ACTION = "price_action"
    ICT = "ict"
    COMBINED = "combined"


class Segment(str, Enum):
    TRAIN = "train"
    TEST = "test"
    FULL = "full"


@dataclass(frozen=True)
class ParameterSet:
    strong_body_min: float = 0.6
    lookback_period: int = 20
    wick_min_percent: float = 0.5
    min_confluence: float = 2.0
    stop_loss_pips: float = 20.0
    risk_reward_ratio: float = 2.0
    use_trailing_stop: bool = False
    trailing_stop_pips: float = 15.0
    use_kill_zones: bool = True
    max_trades_per_day: int = 3
    optimize_from_percent: float = 70.0
    fvg_min_pips: float = 10.0

    def __post_init__(self):
        if self.lookback_period < 1:
            raise ValueError(f"lookback_period must be >= 1, got {self.lookback_period}")
        if not (0.0 < self.optimize_from_percent < 100.0):
            raise ValueError(f"optimize_from_percent must be in (0, 100), got {self.optimize_from_percent}")
        if self.stop_loss_pips <= 0 or self.risk_reward_ratio <= 0:
            raise ValueError("stop_loss_pips and risk_reward_ratio must be positive")
        if self.max_trades_per_day < 1:
            raise ValueError(f"max_trades_per_day must be >= 1, got {self.max_trades_per_day}")

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def replace(self, **changes) -> "ParameterSet":
        return replace(self, **changes)

    def as_tuple(self) -> tuple:
        return astuple(self)

    def as_dict(self) -> dict:
        return {name: getattr(self, name) for name in self.field_names()}
