"""Indicator computation utilities.

Every indicator takes an ordered sequence and a window and returns a list of
the same length. Entries before the window fills are ``None`` ("not yet
available"); they are never defaulted to zero.
"""

from __future__ import annotations

import math
from typing import Callable, Optional, Sequence

import numpy as np
import pandas as pd

from .errors import InvalidParameter, NumericError
from .types import PriceBar

IndicatorValues = list[Optional[float]]


def _check_window(window: int, n: int) -> int:
    if isinstance(window, bool) or not isinstance(window, (int, np.integer)):
        raise InvalidParameter(f"window must be an integer, got {window!r}")
    if window <= 0:
        raise InvalidParameter(f"window must be positive, got {window}")
    if window > n:
        raise InvalidParameter(f"window {window} exceeds input length {n}")
    return int(window)


def _as_series(values: Sequence[float]) -> pd.Series:
    x = np.asarray(values, dtype=np.float64)
    if x.ndim != 1:
        raise InvalidParameter("indicator input must be one-dimensional")
    if not np.all(np.isfinite(x)):
        bad = int(np.flatnonzero(~np.isfinite(x))[0])
        raise NumericError(f"non-finite indicator input at index {bad}", bar_index=bad)
    return pd.Series(x)


def _to_values(series: pd.Series, window: int) -> IndicatorValues:
    out: IndicatorValues = [None] * (window - 1)
    for v in series.iloc[window - 1 :].tolist():
        if not math.isfinite(v):
            raise NumericError("indicator produced a non-finite value")
        out.append(float(v))
    return out


def sma(values: Sequence[float], window: int) -> IndicatorValues:
    """Simple moving average over a trailing window."""
    window = _check_window(window, len(values))
    s = _as_series(values)
    return _to_values(s.rolling(window=window, min_periods=window).mean(), window)


def ema(values: Sequence[float], window: int) -> IndicatorValues:
    """Exponential moving average, alpha = 2 / (window + 1).

    The first available value is the SMA of the first ``window`` inputs; the
    recursion runs from there (pandas ewm with adjust=False).
    """
    window = _check_window(window, len(values))
    s = _as_series(values)
    seed = s.iloc[:window].mean()
    tail = pd.concat([pd.Series([seed], dtype=np.float64), s.iloc[window:]], ignore_index=True)
    smoothed = tail.ewm(span=window, adjust=False).mean()
    return _to_values(pd.concat([pd.Series([np.nan] * (window - 1), dtype=np.float64), smoothed], ignore_index=True), window)


def true_range(bars: Sequence[PriceBar]) -> list[float]:
    """True range per bar; the first bar has no previous close and uses high - low."""
    high = pd.Series([b.high for b in bars], dtype=np.float64)
    low = pd.Series([b.low for b in bars], dtype=np.float64)
    prev_close = pd.Series([b.close for b in bars], dtype=np.float64).shift(1)
    tr = pd.concat(
        [
            (high - low).abs(),
            (high - prev_close).abs(),
            (low - prev_close).abs(),
        ],
        axis=1,
    ).max(axis=1)
    return tr.tolist()


def atr(bars: Sequence[PriceBar], window: int) -> IndicatorValues:
    """Average True Range (simple moving average of TR)."""
    window = _check_window(window, len(bars))
    return sma(true_range(bars), window)


def _on_close(func: Callable[[Sequence[float], int], IndicatorValues]) -> Callable[[Sequence[PriceBar], int], IndicatorValues]:
    def run(bars: Sequence[PriceBar], window: int) -> IndicatorValues:
        return func([b.close for b in bars], window)

    return run


# indicator-name prefix -> function over bars
INDICATORS: dict[str, Callable[[Sequence[PriceBar], int], IndicatorValues]] = {
    "sma": _on_close(sma),
    "ema": _on_close(ema),
    "atr": atr,
}


def indicator_kind(name: str) -> str:
    """Indicator function selected by a configured name: 'sma_fast' -> 'sma'."""
    kind = str(name).split("_", 1)[0].lower()
    if kind not in INDICATORS:
        raise InvalidParameter(f"unknown indicator {name!r}; name must start with one of {sorted(INDICATORS)}")
    return kind


def compute(name: str, bars: Sequence[PriceBar], window: int) -> IndicatorValues:
    """Compute the indicator named ``name`` (by prefix) over ``bars``."""
    return INDICATORS[indicator_kind(name)](bars, window)
