from pathlib import Path
from typing import Any, Dict

import yaml

from backtest.engine import BacktestSettings
from models.params import ParameterSet, StrategyMode
from risk.pips import PipConfig


def load_config(path: str = "config.yaml") -> dict:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config file not found: {p.resolve()}")
    with p.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _section(cfg: dict, name: str) -> dict:
    return (cfg or {}).get(name, {}) or {}


def params_from_config(cfg: dict) -> ParameterSet:
    """ParameterSet from the `strategy` section; unknown keys are an error."""
    raw = _section(cfg, "strategy")
    allowed = set(ParameterSet.field_names())
    extra = sorted(set(raw) - allowed - {"mode"})
    if extra:
        raise ValueError(f"Unknown strategy setting(s): {', '.join(extra)}")
    return ParameterSet(**{k: v for k, v in raw.items() if k in allowed})


def mode_from_config(cfg: dict) -> StrategyMode:
    raw = str(_section(cfg, "strategy").get("mode", StrategyMode.PRICE_ACTION.value)).strip().lower()
    try:
        return StrategyMode(raw)
    except ValueError:
        valid = ", ".join(m.value for m in StrategyMode)
        raise ValueError(f"Unknown strategy mode {raw!r} (expected one of: {valid})") from None


def settings_from_config(cfg: dict) -> BacktestSettings:
    bt = _section(cfg, "backtest")
    defaults = BacktestSettings()
    pips = PipConfig(
        pip_size=float(bt.get("pip_size", defaults.pips.pip_size)),
        pip_value=float(bt.get("pip_value", defaults.pips.pip_value)),
    )
    zones = bt.get("kill_zones")
    kill_zones = tuple((int(a), int(b)) for a, b in zones) if zones else defaults.kill_zones
    return BacktestSettings(
        initial_balance=float(bt.get("initial_balance", defaults.initial_balance)),
        pips=pips,
        lookahead_bars=int(bt.get("lookahead_bars", defaults.lookahead_bars)),
        min_candles=int(bt.get("min_candles", defaults.min_candles)),
        kill_zones=kill_zones,
        single_position=bool(bt.get("single_position", defaults.single_position)),
        sizing=str(bt.get("sizing", defaults.sizing)),
        risk_per_trade_pct=float(bt.get("risk_per_trade_pct", defaults.risk_per_trade_pct)),
    )


def grid_from_config(cfg: dict) -> Dict[str, list] | None:
    """Optimizer grid from `optimizer.grid`; None means the built-in default grid."""
    grid: Any = _section(cfg, "optimizer").get("grid")
    if not grid:
        return None
    return {k: list(v) if isinstance(v, (list, tuple)) else [v] for k, v in grid.items()}
