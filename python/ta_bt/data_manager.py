"""Data manager: computes indicators once and serves bar-bounded context.

Indicators are causal, so the full series is computed up front. Strategies
only ever see an ``IndicatorContext`` for bar ``i``, which refuses to read
past ``i`` (no lookahead).
"""

from __future__ import annotations

from typing import Mapping, Optional, Sequence

from .errors import InvalidParameter
from .indicators import IndicatorValues, compute
from .types import PriceBar


class IndicatorContext:
    """Read-only view of indicator values up to and including bar ``index``."""

    __slots__ = ("_series", "_bars", "index")

    def __init__(self, series: Mapping[str, IndicatorValues], bars: Sequence[PriceBar], index: int):
        self._series = series
        self._bars = bars
        self.index = index

    def __contains__(self, name: str) -> bool:
        return name in self._series

    def names(self) -> list[str]:
        return sorted(self._series)

    def _values(self, name: str) -> IndicatorValues:
        try:
            return self._series[name]
        except KeyError:
            raise InvalidParameter(f"indicator {name!r} is not configured; known: {self.names()}") from None

    def value(self, name: str, lag: int = 0) -> Optional[float]:
        """Value ``lag`` bars back from the current bar, or None if not available."""
        if lag < 0:
            raise InvalidParameter("lag must be non-negative (no lookahead)")
        i = self.index - lag
        if i < 0:
            return None
        return self._values(name)[i]

    def current(self, name: str) -> Optional[float]:
        return self.value(name, 0)

    def previous(self, name: str) -> Optional[float]:
        return self.value(name, 1)

    def history(self, name: str) -> tuple[Optional[float], ...]:
        """All values up to the current bar, oldest first."""
        return tuple(self._values(name)[: self.index + 1])

    def close(self, lag: int = 0) -> Optional[float]:
        if lag < 0:
            raise InvalidParameter("lag must be non-negative (no lookahead)")
        i = self.index - lag
        if i < 0:
            return None
        return self._bars[i].close


class BarDataManager:
    """Holds the bars and indicator series of a single run."""

    def __init__(self, bars: Sequence[PriceBar], window_sizes: Mapping[str, int]):
        self.bars = tuple(bars)
        self.window_sizes = dict(window_sizes)
        self.series: dict[str, IndicatorValues] = {}

        self._compute_indicators()

    def _compute_indicators(self) -> None:
        # sorted for a stable evaluation order
        for name in sorted(self.window_sizes):
            self.series[name] = compute(name, self.bars, self.window_sizes[name])

    def __len__(self) -> int:
        return len(self.bars)

    def bar(self, i: int) -> PriceBar:
        return self.bars[i]

    def context(self, i: int) -> IndicatorContext:
        if not 0 <= i < len(self.bars):
            raise IndexError(f"bar index {i} out of range")
        return IndicatorContext(self.series, self.bars, i)
