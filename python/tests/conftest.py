from __future__ import annotations

import math

import pytest

from ta_bt.types import PriceBar


def _make_bars(closes, start_ts: int = 1, spread: float = 0.5):
    bars = []
    prev = None
    for i, c in enumerate(closes):
        o = c if prev is None else prev
        bars.append(
            PriceBar(
                timestamp=start_ts + i,
                open=float(o),
                high=float(max(o, c) + spread),
                low=float(min(o, c) - spread),
                close=float(c),
                volume=100.0,
            )
        )
        prev = c
    return bars


@pytest.fixture
def make_bars():
    """Factory: closes -> list[PriceBar] with integer timestamps."""
    return _make_bars


@pytest.fixture
def example_bars():
    return _make_bars([10, 11, 12, 11, 10])


@pytest.fixture
def wave_bars():
    closes = [100.0 + 10.0 * math.sin(i / 5.0) + 0.1 * i for i in range(80)]
    return _make_bars(closes)
