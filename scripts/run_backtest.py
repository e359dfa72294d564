# scripts/run_backtest.py
from __future__ import annotations

import sys
from pathlib import Path

# --- repo root on sys.path (keep) ---
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import argparse

from backtest.engine import run_backtest
from data.loader import load_timeframes
from models.params import Segment, StrategyMode
from strategies.confluence import HigherTimeframeContext, build_context
from utils.config import load_config, mode_from_config, params_from_config, settings_from_config
from utils.logger import log_dataframe, print_metrics, today_filename


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run a single backtest with the configured parameters.")
    parser.add_argument("--config", default="config.yaml", help="Path to config file (default: config.yaml)")
    parser.add_argument("--data", help="Entry timeframe file (overrides data.entry)")
    parser.add_argument("--segment", choices=[s.value for s in Segment], default=Segment.FULL.value,
                        help="train / test / full (default: full)")
    parser.add_argument("--mode", choices=[m.value for m in StrategyMode], help="Override strategy.mode")
    args = parser.parse_args()

    cfg = load_config(args.config)
    data_cfg = dict(cfg.get("data", {}) or {})
    if args.data:
        data_cfg["entry"] = args.data

    params = params_from_config(cfg)
    mode = StrategyMode(args.mode) if args.mode else mode_from_config(cfg)
    settings = settings_from_config(cfg)

    frames = load_timeframes(data_cfg)
    series = frames["entry"]
    print(f"[Backtest] {len(series):,} entry candles, mode={mode.value}, segment={args.segment}")
    if len(series) < settings.min_candles:
        raise SystemExit(f"Need at least {settings.min_candles} candles, got {len(series)}.")

    context = HigherTimeframeContext.empty()
    if mode is not StrategyMode.PRICE_ACTION:
        context = build_context(frames["daily"], frames["h4"], frames["h1"], params.fvg_min_pips, settings.pips)
        print(f"[Context] daily={context.daily_bias} h4={context.h4_bias} "
              f"OB={len(context.order_blocks)} FVG={len(context.fair_value_gaps)} "
              f"liquidity={len(context.liquidity_zones)}")

    result = run_backtest(series, params, mode, Segment(args.segment), context, settings)
    print_metrics("Backtest Summary", result)

    log_cfg = cfg.get("logging", {}) or {}
    if result is not None and log_cfg.get("write_csv", True):
        out = today_filename("backtest_trades", unique=True, log_dir=Path(log_cfg.get("log_dir", "logs")))
        log_dataframe(result.trades_frame(), out)
        print("\nFiles written:")
        print(f"  - {out.name}")
