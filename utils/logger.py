from pathlib import Path
from datetime import date, datetime
from typing import Iterable

import pandas as pd

LOG_DIR = Path("logs")


def log_dataframe(df: pd.DataFrame, out_path: Path, overwrite: bool = True):
    """
    Write DataFrame to CSV.
    Overwrites by default so each run's output stands alone.
    Set overwrite=False to append to an existing file.
    """
    out_path.parent.mkdir(parents=True, exist_ok=True)
    if overwrite:
        df.to_csv(out_path, mode="w", header=True, index=False)
    else:
        header = not out_path.exists()
        df.to_csv(out_path, mode="a", header=header, index=False)


def today_filename(prefix: str, unique: bool = False, log_dir: Path = LOG_DIR) -> Path:
    """
    Returns path like logs/prefix_YYYY-MM-DD.csv.
    If unique=True, include timestamp to second for multiple runs per day.
    """
    if unique:
        stamp = datetime.now().strftime("%Y-%m-%d_%H%M%S")
        return Path(log_dir) / f"{prefix}_{stamp}.csv"
    return Path(log_dir) / f"{prefix}_{date.today()}.csv"


def results_frame(results: Iterable) -> pd.DataFrame:
    """One row per BacktestResult: mode, segment, parameters, metrics."""
    rows = []
    for rank, res in enumerate(results, start=1):
        row = {"rank": rank}
        row.update(res.summary_row())
        rows.append(row)
    return pd.DataFrame(rows)


def print_metrics(title: str, result) -> None:
    """Console summary in the backtest-summary layout."""
    print(f"\n--- {title} ---")
    if result is None:
        print("No completed trades (or fewer candles than required).")
        return
    m = result.metrics
    pct_keys = {"win_rate", "return_pct", "max_drawdown"}
    for k, v in m.as_dict().items():
        if k == "profit_factor" and m.profit_factor_unbounded:
            print(f"{k:<24}: unbounded (no losing trades)")
        elif k in pct_keys:
            print(f"{k:<24}: {v:.2f}%")
        elif isinstance(v, float):
            print(f"{k:<24}: {v:.4f}")
        else:
            print(f"{k:<24}: {v}")
