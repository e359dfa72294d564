from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Optional

from models.signal import Direction, SetupKind


class Outcome(str, Enum):
    WIN = "win"
    LOSS = "loss"


class ExitReason(str, Enum):
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"


@dataclass(frozen=True)
class Trade:
    entry_timestamp: datetime
    exit_timestamp: datetime
    entry_index: int
    exit_index: int
    direction: Direction
    setup_kind: SetupKind
    entry_price: float
    stop: float                # initial stop
    target: float
    exit_price: float
    outcome: Outcome
    exit_reason: ExitReason
    pips: float
    pnl: float
    running_balance: float
    confluence_score: Optional[float] = None

    def as_row(self) -> dict:
        row = asdict(self)
        for k in ("direction", "setup_kind", "outcome", "exit_reason"):
            row[k] = row[k].value
        return row
