# scripts/run_optimizer.py
from __future__ import annotations

import sys
from pathlib import Path

# --- repo root on sys.path (keep) ---
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import argparse

from backtest.optimizer import build_grid, optimize
from data.loader import load_timeframes
from models.params import StrategyMode
from strategies.confluence import HigherTimeframeContext, build_context
from utils.config import (
    grid_from_config,
    load_config,
    mode_from_config,
    params_from_config,
    settings_from_config,
)
from utils.logger import log_dataframe, results_frame, today_filename


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Grid-search strategy parameters on the train segment.")
    parser.add_argument("--config", default="config.yaml", help="Path to config file (default: config.yaml)")
    parser.add_argument("--data", help="Entry timeframe file (overrides data.entry)")
    parser.add_argument("--workers", type=int, help="Worker processes (overrides optimizer.workers)")
    parser.add_argument("--mode", choices=[m.value for m in StrategyMode], help="Override strategy.mode")
    args = parser.parse_args()

    cfg = load_config(args.config)
    opt_cfg = cfg.get("optimizer", {}) or {}
    data_cfg = dict(cfg.get("data", {}) or {})
    if args.data:
        data_cfg["entry"] = args.data

    base = params_from_config(cfg)
    mode = StrategyMode(args.mode) if args.mode else mode_from_config(cfg)
    settings = settings_from_config(cfg)
    grid = grid_from_config(cfg)
    workers = args.workers if args.workers is not None else int(opt_cfg.get("workers", 1))

    frames = load_timeframes(data_cfg)
    series = frames["entry"]
    context = HigherTimeframeContext.empty()
    if mode is not StrategyMode.PRICE_ACTION:
        context = build_context(frames["daily"], frames["h4"], frames["h1"], base.fvg_min_pips, settings.pips)

    print(f"[Optimize] {len(build_grid(grid, base)):,} combinations, {workers} worker(s), mode={mode.value}")
    res = optimize(
        series, grid, mode, context, settings, base,
        workers=workers,
        top_n=int(opt_cfg.get("top_n", 20)),
        min_trades=int(opt_cfg.get("min_trades", 10)),
        min_profit_factor=float(opt_cfg.get("min_profit_factor", 1.0)),
    )
    print(f"[Optimize] evaluated {res.evaluated:,} / {res.total:,}; retained {res.retained:,}"
          + (" (stopped early)" if res.stopped else ""))

    if not res.ranked:
        print("No combination reached the trade-count and profit-factor thresholds.")
        raise SystemExit(0)

    df = results_frame(res.ranked)
    cols = ["rank", "return_pct", "profit_factor", "win_rate", "total_trades", "max_drawdown",
            "strong_body_min", "lookback_period", "stop_loss_pips", "risk_reward_ratio"]
    print("\nTop results:")
    print(df[cols].head(10).to_string(index=False))

    log_cfg = cfg.get("logging", {}) or {}
    if log_cfg.get("write_csv", True):
        out = today_filename("optimizer_top", unique=True, log_dir=Path(log_cfg.get("log_dir", "logs")))
        log_dataframe(df, out)
        print(f"\nFiles written:\n  - {out.name}")
