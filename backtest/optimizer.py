# backtest/optimizer.py
"""
Brute-force grid search over ParameterSet fields on the train segment, plus the
walk-forward check of the winner on the held-out test segment.

Every combination is evaluated independently against the same read-only
series, so the grid can run in a process pool. Results are only collected in
the parent process.
"""

from __future__ import annotations
from concurrent.futures import FIRST_COMPLETED, Future, ProcessPoolExecutor, wait
from dataclasses import dataclass
import itertools
import threading
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

from tqdm import tqdm

from backtest.engine import BacktestResult, BacktestSettings, SignalCache, run_backtest
from models.candle import CandleSeries
from models.params import ParameterSet, Segment, StrategyMode
from strategies.confluence import HigherTimeframeContext

MIN_TRADES = 10
MIN_PROFIT_FACTOR = 1.0
TOP_N = 20

# 4 x 3 x 3 x 4 x 4 x 3 x 3 x 2 x 3 = 31,104 combinations (fewer after de-duplication)
DEFAULT_GRID: Dict[str, list] = {
    "strong_body_min": [0.5, 0.6, 0.7, 0.8],
    "lookback_period": [10, 20, 30],
    "wick_min_percent": [0.4, 0.5, 0.6],
    "min_confluence": [0.0, 1.0, 2.0, 3.0],
    "stop_loss_pips": [10, 15, 20, 25],
    "risk_reward_ratio": [1.5, 2.0, 3.0],
    "trailing_stop_pips": [10, 15, 20],
    "use_trailing_stop": [False, True],
    "max_trades_per_day": [1, 2, 3],
}


@dataclass(frozen=True)
class OptimizationResult:
    ranked: tuple[BacktestResult, ...]
    total: int              # combinations in the grid
    evaluated: int          # combinations actually run
    retained: int           # combinations passing the filters
    stopped: bool = False   # scheduling was stopped before the grid finished

    @property
    def best(self) -> Optional[BacktestResult]:
        return self.ranked[0] if self.ranked else None


@dataclass(frozen=True)
class WalkForwardResult:
    optimization: OptimizationResult
    train: Optional[BacktestResult]
    test: Optional[BacktestResult]
    validated: bool

    @property
    def best_params(self) -> Optional[ParameterSet]:
        return self.train.params if self.train else None


# ---------- grid ----------

def build_grid(grid: Optional[Dict[str, Sequence]] = None, base: Optional[ParameterSet] = None) -> List[ParameterSet]:
    """Cartesian product of `grid` applied over `base`; duplicates dropped, order kept."""
    grid = DEFAULT_GRID if grid is None else grid
    base = base or ParameterSet()
    known = set(ParameterSet.field_names())
    unknown = sorted(set(grid) - known)
    if unknown:
        raise ValueError(f"Unknown grid parameter(s): {', '.join(unknown)}")
    for k, values in grid.items():
        if not list(values):
            raise ValueError(f"Grid parameter {k!r} has no values")

    keys = list(grid.keys())
    combos: dict[ParameterSet, None] = {}
    for values in itertools.product(*(grid[k] for k in keys)):
        changes = dict(zip(keys, values))
        if not changes.get("use_trailing_stop", base.use_trailing_stop) and "trailing_stop_pips" in changes:
            # distance is irrelevant while trailing is off
            changes["trailing_stop_pips"] = base.trailing_stop_pips
        combos[base.replace(**changes)] = None
    return list(combos)


# ---------- filtering / ranking ----------

def passes_filters(
    result: Optional[BacktestResult],
    min_trades: int = MIN_TRADES,
    min_profit_factor: float = MIN_PROFIT_FACTOR,
) -> bool:
    if result is None:
        return False
    m = result.metrics
    return m.total_trades >= min_trades and m.profit_factor > min_profit_factor


def _rank_key(result: BacktestResult):
    m = result.metrics
    return (-m.return_pct, -m.profit_factor, result.params.as_tuple())


def rank_results(results: Iterable[BacktestResult], top_n: int = TOP_N) -> List[BacktestResult]:
    """Descending return %; ties by profit factor then parameters, so the
    ranking never depends on evaluation order."""
    ordered = sorted(results, key=_rank_key)
    return ordered[:top_n] if top_n and top_n > 0 else ordered


# ---------- worker side ----------

_WORKER: dict = {}


def _init_worker(series, mode, context, settings, min_trades, min_profit_factor) -> None:
    _WORKER.clear()
    _WORKER.update(
        series=series,
        mode=mode,
        context=context,
        settings=settings,
        min_trades=min_trades,
        min_profit_factor=min_profit_factor,
        cache=SignalCache(),
    )


def _evaluate_chunk(chunk: List[ParameterSet]) -> List[Optional[BacktestResult]]:
    w = _WORKER
    out = []
    for params in chunk:
        res = run_backtest(
            w["series"], params, w["mode"], Segment.TRAIN, w["context"], w["settings"], w["cache"]
        )
        out.append(res if passes_filters(res, w["min_trades"], w["min_profit_factor"]) else None)
    return out


def _chunks(items: List[ParameterSet], size: int) -> Iterator[List[ParameterSet]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


# ---------- driver ----------

def optimize(
    series: CandleSeries,
    grid: Optional[Dict[str, Sequence]] = None,
    mode: StrategyMode = StrategyMode.PRICE_ACTION,
    context: Optional[HigherTimeframeContext] = None,
    settings: Optional[BacktestSettings] = None,
    base: Optional[ParameterSet] = None,
    workers: int = 1,
    top_n: int = TOP_N,
    min_trades: int = MIN_TRADES,
    min_profit_factor: float = MIN_PROFIT_FACTOR,
    progress: bool = True,
    stop_event: Optional[threading.Event] = None,
    chunk_size: int = 64,
) -> OptimizationResult:
    """Evaluate every grid combination on the train segment and keep the top_n.

    A combination without trades is simply excluded. Setting `stop_event`
    (or Ctrl-C in the sequential path) stops scheduling; everything finished
    up to that point is ranked and returned.
    """
    settings = settings or BacktestSettings()
    context = context or HigherTimeframeContext.empty()
    combos = build_grid(grid, base)
    retained: List[BacktestResult] = []
    evaluated = 0
    stopped = False

    def _stopping() -> bool:
        return stop_event is not None and stop_event.is_set()

    bar = tqdm(total=len(combos), desc="Optimize", leave=False, disable=not progress)
    try:
        if workers <= 1:
            cache = SignalCache()
            try:
                for params in combos:
                    if _stopping():
                        stopped = True
                        break
                    res = run_backtest(series, params, mode, Segment.TRAIN, context, settings, cache)
                    evaluated += 1
                    bar.update(1)
                    if passes_filters(res, min_trades, min_profit_factor):
                        retained.append(res)
            except KeyboardInterrupt:
                tqdm.write(f"[Optimize] Interrupted after {evaluated} / {len(combos)} combinations.")
                stopped = True
        else:
            evaluated, stopped = _optimize_parallel(
                series, combos, mode, context, settings, workers, min_trades, min_profit_factor,
                chunk_size, retained, bar, _stopping,
            )
    finally:
        bar.close()

    ranked = rank_results(retained, top_n)
    return OptimizationResult(
        ranked=tuple(ranked),
        total=len(combos),
        evaluated=evaluated,
        retained=len(retained),
        stopped=stopped,
    )


def _optimize_parallel(series, combos, mode, context, settings, workers, min_trades, min_profit_factor,
                       chunk_size, retained, bar, stopping) -> tuple[int, bool]:
    evaluated = 0
    stopped = False
    chunks = _chunks(combos, max(1, chunk_size))
    pending: dict[Future, int] = {}
    window = workers * 2

    with ProcessPoolExecutor(
        max_workers=workers,
        initializer=_init_worker,
        initargs=(series, mode, context, settings, min_trades, min_profit_factor),
    ) as pool:
        exhausted = False
        while True:
            while not exhausted and not stopped and len(pending) < window:
                if stopping():
                    stopped = True
                    break
                chunk = next(chunks, None)
                if chunk is None:
                    exhausted = True
                    break
                pending[pool.submit(_evaluate_chunk, chunk)] = len(chunk)
            if not pending:
                break
            done, _ = wait(pending, return_when=FIRST_COMPLETED)
            for fut in done:
                size = pending.pop(fut)
                for res in fut.result():
                    if res is not None:
                        retained.append(res)
                evaluated += size
                bar.update(size)
            if stopping():
                stopped = True
    return evaluated, stopped


def walk_forward(
    series: CandleSeries,
    grid: Optional[Dict[str, Sequence]] = None,
    mode: StrategyMode = StrategyMode.PRICE_ACTION,
    context: Optional[HigherTimeframeContext] = None,
    settings: Optional[BacktestSettings] = None,
    base: Optional[ParameterSet] = None,
    workers: int = 1,
    top_n: int = TOP_N,
    min_trades: int = MIN_TRADES,
    min_profit_factor: float = MIN_PROFIT_FACTOR,
    progress: bool = True,
    stop_event: Optional[threading.Event] = None,
) -> WalkForwardResult:
    """Optimize on the train segment, then re-run the winner on the test segment.

    `validated` is True when the test run exists and clears the same
    trade-count and profit-factor thresholds used to filter the grid.
    """
    opt = optimize(
        series, grid, mode, context, settings, base, workers, top_n,
        min_trades, min_profit_factor, progress, stop_event,
    )
    best = opt.best
    if best is None:
        return WalkForwardResult(optimization=opt, train=None, test=None, validated=False)
    test = run_backtest(series, best.params, mode, Segment.TEST, context, settings)
    return WalkForwardResult(
        optimization=opt,
        train=best,
        test=test,
        validated=passes_filters(test, min_trades, min_profit_factor),
    )
