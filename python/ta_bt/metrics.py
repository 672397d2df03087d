"""Performance metrics."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from .errors import EmptyRun, check_finite


def max_drawdown(equity: Sequence[float]) -> float:
    """Largest peak-to-trough decline in money, from one scan in order."""
    if len(equity) == 0:
        raise EmptyRun("equity curve is empty")
    peak = float(equity[0])
    worst = 0.0
    for value in equity:
        value = float(value)
        if value > peak:
            peak = value
        drawdown = peak - value
        if drawdown > worst:
            worst = drawdown
    return check_finite(worst, "max drawdown")


def max_drawdown_pct(equity: Sequence[float]) -> float:
    """Maximum drawdown as a positive fraction of the running peak.

    Points whose running peak is not positive have no meaningful fraction
    and count as zero.
    """
    x = np.asarray(equity, dtype=np.float64)
    if len(x) == 0:
        raise EmptyRun("equity curve is empty")
    peak = np.maximum.accumulate(x)
    ratio = np.divide(x, peak, out=np.ones_like(x), where=peak > 0)
    dd = 1.0 - ratio
    return check_finite(max(0.0, float(np.nanmax(dd))), "max drawdown pct")
