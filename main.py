# main.py
# Walk-forward run: optimize on the train segment, validate the winner on the test segment.
from pathlib import Path
import sys

from backtest.optimizer import build_grid, walk_forward
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
from utils.logger import log_dataframe, print_metrics, results_frame, today_filename


def main(cfg_path: str = "config.yaml") -> None:
    cfg = load_config(cfg_path)
    opt_cfg = cfg.get("optimizer", {}) or {}
    log_cfg = cfg.get("logging", {}) or {}

    base = params_from_config(cfg)
    mode = mode_from_config(cfg)
    settings = settings_from_config(cfg)
    grid = grid_from_config(cfg)

    # ---- [1/4] load candles ----------------------------------------------
    print("[1/4] Loading candles…")
    frames = load_timeframes(cfg.get("data", {}) or {})
    series = frames["entry"]
    print(f"Entry series: {len(series):,} candles")
    if len(series) < settings.min_candles:
        print(f"Need at least {settings.min_candles} candles, exiting.")
        raise SystemExit(1)

    # ---- [2/4] higher-timeframe context ----------------------------------
    context = HigherTimeframeContext.empty()
    if mode is not StrategyMode.PRICE_ACTION:
        print("\n[2/4] Building higher-timeframe context…")
        context = build_context(frames["daily"], frames["h4"], frames["h1"], base.fvg_min_pips, settings.pips)
        bias = lambda b: b.value if b is not None else "n/a"
        print(f"Daily bias: {bias(context.daily_bias)}  H4 bias: {bias(context.h4_bias)}")
        print(f"H4 order blocks: {len(context.order_blocks)}  H1 FVGs: {len(context.fair_value_gaps)}  "
              f"H1 liquidity: {len(context.liquidity_zones)}")
    else:
        print("\n[2/4] Price-action mode, no higher-timeframe context.")

    # ---- [3/4] optimize on train -----------------------------------------
    n_combos = len(build_grid(grid, base))
    print(f"\n[3/4] Optimizing {n_combos:,} combinations on the first {base.optimize_from_percent:g}% of bars…")
    wf = walk_forward(
        series, grid, mode, context, settings, base,
        workers=int(opt_cfg.get("workers", 1)),
        top_n=int(opt_cfg.get("top_n", 20)),
        min_trades=int(opt_cfg.get("min_trades", 10)),
        min_profit_factor=float(opt_cfg.get("min_profit_factor", 1.0)),
    )
    opt = wf.optimization
    print(f"Evaluated {opt.evaluated:,} / {opt.total:,}; {opt.retained:,} passed filters.")

    if wf.train is None:
        print("No combination reached the trade-count and profit-factor thresholds.")
        raise SystemExit(0)

    top = results_frame(opt.ranked)
    cols = ["rank", "return_pct", "profit_factor", "win_rate", "total_trades", "max_drawdown"]
    print("\nTop candidates:")
    print(top[cols].head(10).to_string(index=False))
    print_metrics("Train (in-sample)", wf.train)

    # ---- [4/4] validate on test ------------------------------------------
    print("\n[4/4] Forward test on held-out bars…")
    print_metrics("Test (out-of-sample)", wf.test)
    print(f"\nForward test {'PASSED' if wf.validated else 'FAILED'} "
          f"(>= {opt_cfg.get('min_trades', 10)} trades and profit factor > {opt_cfg.get('min_profit_factor', 1.0)})")
    print("Best parameters:")
    for k, v in wf.best_params.as_dict().items():
        print(f"  {k:<24}: {v}")

    if log_cfg.get("write_csv", True):
        log_dir = Path(log_cfg.get("log_dir", "logs"))
        files = [today_filename("optimizer_top", unique=True, log_dir=log_dir)]
        log_dataframe(top, files[-1])
        files.append(today_filename("train_trades", unique=True, log_dir=log_dir))
        log_dataframe(wf.train.trades_frame(), files[-1])
        if wf.test is not None:
            files.append(today_filename("test_trades", unique=True, log_dir=log_dir))
            log_dataframe(wf.test.trades_frame(), files[-1])
        print("\nFiles written:")
        for f in files:
            print(f"  - {f.name}")


# process-pool workers re-import this module
if __name__ == "__main__":
    main(sys.argv[1] if len(sys.argv) > 1 else "config.yaml")
