"""Backtest runner: validates input, wires the components, returns results.

One call to ``run_backtest`` is one run: indicators -> strategy ->
simulator -> report, exactly once, no retries. On failure the partial ledger
is dropped and the error (tagged with bar index and timestamp where known)
propagates to the caller.
"""

from __future__ import annotations

import logging
import math
import numbers
import os
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from .config import BacktestConfig
from .cost_model import CostModel
from .data_manager import BarDataManager
from .data_provider import bars_from_frame
from .errors import EmptyRun, InvalidParameter, NumericError
from .report import Report, build_report
from .simulator import ExecutionSimulator
from .strategies import build_strategy
from .types import EquityPoint, Fill, PriceBar

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BacktestResult:
    """Everything a host needs to print or persist a finished run."""

    report: Report
    ledger: tuple[Fill, ...]
    equity_curve: tuple[EquityPoint, ...]
    config: BacktestConfig


def validate_bars(bars: Sequence[PriceBar]) -> tuple[PriceBar, ...]:
    """Check bars are finite, OHLC-consistent and strictly increasing in time."""
    bars = tuple(bars)
    if not bars:
        raise EmptyRun("no price bars")

    prev_ts = None
    for i, b in enumerate(bars):
        if not isinstance(b, PriceBar):
            raise InvalidParameter(f"expected PriceBar, got {type(b).__name__}", bar_index=i)
        for name in ("open", "high", "low", "close", "volume"):
            value = getattr(b, name)
            if not isinstance(value, numbers.Real) or not math.isfinite(value):
                raise NumericError(f"{name} is not a finite number ({value!r})", bar_index=i, timestamp=b.timestamp)
        if b.high < b.low or b.high < max(b.open, b.close) or b.low > min(b.open, b.close):
            raise InvalidParameter("inconsistent OHLC (need low <= open,close <= high)", bar_index=i, timestamp=b.timestamp)
        if b.close <= 0:
            raise InvalidParameter("close price must be positive", bar_index=i, timestamp=b.timestamp)
        if b.volume < 0:
            raise InvalidParameter("volume must be non-negative", bar_index=i, timestamp=b.timestamp)
        if prev_ts is not None:
            try:
                increasing = b.timestamp > prev_ts
            except TypeError:
                raise InvalidParameter("timestamps are not comparable", bar_index=i, timestamp=b.timestamp) from None
            if not increasing:
                raise InvalidParameter("timestamps must be strictly increasing", bar_index=i, timestamp=b.timestamp)
        prev_ts = b.timestamp
    return bars


def run_backtest(bars: Sequence[PriceBar], cfg: BacktestConfig = BacktestConfig()) -> BacktestResult:
    """Run one deterministic backtest over in-memory bars."""
    bars = validate_bars(bars)
    logger.info(
        "backtest start symbol=%s bars=%d strategy=%s seed=%s",
        cfg.symbol,
        len(bars),
        cfg.strategy.name,
        cfg.seed,
    )

    dm = BarDataManager(bars, cfg.window_sizes)
    rng = np.random.default_rng(cfg.seed) if cfg.seed is not None else None
    strategy = build_strategy(cfg.strategy, rng, cfg.window_sizes)

    sim = ExecutionSimulator(dm=dm, strategy=strategy, cost_model=CostModel(cfg.costs), cfg=cfg)
    sim.run()
    if sim.position.quantity != 0:
        raise NumericError("run ended with an open position", bar_index=len(bars) - 1, timestamp=bars[-1].timestamp)

    ledger = tuple(sim.ledger)
    curve = tuple(sim.equity_curve)
    report = build_report(ledger, curve, initial_equity=cfg.initial_capital)

    logger.info(
        "backtest done symbol=%s trades=%d pnl=%.6f max_dd=%.6f",
        cfg.symbol,
        report.trade_count,
        report.pnl,
        report.max_drawdown,
    )
    return BacktestResult(report=report, ledger=ledger, equity_curve=curve, config=cfg)


def run_backtest_frame(df: pd.DataFrame, cfg: BacktestConfig = BacktestConfig()) -> BacktestResult:
    """Convenience runner for an OHLCV DataFrame indexed by timestamp."""
    return run_backtest(bars_from_frame(df), cfg)


def _run_one(args: tuple[tuple[PriceBar, ...], BacktestConfig]) -> BacktestResult:
    bars, cfg = args
    return run_backtest(bars, cfg)


def run_batch(
    bars: Sequence[PriceBar],
    configs: Sequence[BacktestConfig],
    max_workers: Optional[int] = None,
) -> list[BacktestResult]:
    """Run independent backtests over the same bars.

    Runs share no state, so they may execute in worker processes. Results
    come back in the order of ``configs``; the first failing run raises.
    """
    configs = list(configs)
    if not configs:
        return []
    bars = validate_bars(bars)

    cpu = os.cpu_count() or 1
    workers = min(cpu, len(configs)) if max_workers is None else max(1, min(max_workers, len(configs)))
    items = [(bars, cfg) for cfg in configs]

    if workers == 1:
        return [_run_one(item) for item in items]

    logger.info("batch start runs=%d workers=%d", len(items), workers)
    with ProcessPoolExecutor(max_workers=workers) as pool:
        return list(pool.map(_run_one, items))
