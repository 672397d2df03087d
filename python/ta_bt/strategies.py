"""Signal-generating strategies.

A strategy is any object with ``produce_signal(indicators, bar) -> Signal``.
The set of strategies is closed: configuration picks one by name from
``STRATEGIES``. Strategies that need randomness receive an owned
``numpy.random.Generator``; nothing reads global random state.
"""

from __future__ import annotations

from typing import Any, Callable, Mapping, Optional

import numpy as np

from .config import StrategyConfig
from .data_manager import IndicatorContext
from .errors import ConfigurationError
from .types import PriceBar, Signal


class Strategy:
    """Minimal deterministic strategy interface."""

    name = "base"

    def required_indicators(self) -> tuple[str, ...]:
        return ()

    def produce_signal(self, indicators: IndicatorContext, bar: PriceBar) -> Signal:
        raise NotImplementedError


class MovingAverageCrossover(Strategy):
    """Long while the fast average is above the slow one, short while below.

    ``confirm_bars`` requires the ordering to hold on that many consecutive
    bars (ending with the current one) before the signal flips.
    """

    name = "sma_crossover"

    def __init__(self, fast: str = "sma_fast", slow: str = "sma_slow", confirm_bars: int = 1):
        if int(confirm_bars) < 1:
            raise ConfigurationError("confirm_bars must be >= 1")
        self.fast = fast
        self.slow = slow
        self.confirm_bars = int(confirm_bars)

    def required_indicators(self) -> tuple[str, ...]:
        return (self.fast, self.slow)

    def _ordering(self, indicators: IndicatorContext, lag: int) -> Optional[int]:
        f = indicators.value(self.fast, lag)
        s = indicators.value(self.slow, lag)
        if f is None or s is None:
            return None
        if f > s:
            return 1
        if f < s:
            return -1
        return 0

    def produce_signal(self, indicators: IndicatorContext, bar: PriceBar) -> Signal:
        orderings = {self._ordering(indicators, lag) for lag in range(self.confirm_bars)}
        if len(orderings) != 1:
            return Signal.HOLD
        (ordering,) = orderings
        if ordering == 1:
            return Signal.LONG
        if ordering == -1:
            return Signal.SHORT
        return Signal.HOLD


class EmaCrossover(MovingAverageCrossover):
    name = "ema_crossover"

    def __init__(self, fast: str = "ema_fast", slow: str = "ema_slow", confirm_bars: int = 1):
        super().__init__(fast=fast, slow=slow, confirm_bars=confirm_bars)


class BuyAndHold(Strategy):
    """Go long on the first bar and hold until the run ends."""

    name = "buy_and_hold"

    def produce_signal(self, indicators: IndicatorContext, bar: PriceBar) -> Signal:
        return Signal.LONG if indicators.index == 0 else Signal.HOLD


def _parse_signal(value: Any) -> Signal:
    if isinstance(value, Signal):
        return value
    try:
        return Signal(str(value).strip().upper())
    except ValueError:
        raise ConfigurationError(f"unknown signal {value!r}") from None


class ScheduledSignals(Strategy):
    """Emit pre-set signals at given bar indices and HOLD elsewhere."""

    name = "scheduled"

    def __init__(self, signals: Mapping[Any, Any] | None = None):
        if signals is not None and not isinstance(signals, Mapping):
            raise ConfigurationError(f"signals must map bar index to signal, got {type(signals).__name__}")
        schedule: dict[int, Signal] = {}
        for k, v in (signals or {}).items():
            try:
                idx = int(k)
            except (TypeError, ValueError):
                raise ConfigurationError(f"schedule key must be a bar index, got {k!r}") from None
            schedule[idx] = _parse_signal(v)
        self.signals = schedule

    def produce_signal(self, indicators: IndicatorContext, bar: PriceBar) -> Signal:
        return self.signals.get(indicators.index, Signal.HOLD)


class RandomSignals(Strategy):
    """Benchmark strategy: on each bar, with probability ``p_change``, pick a
    new direction uniformly from LONG/SHORT/FLAT."""

    name = "random"

    _CHOICES = (Signal.LONG, Signal.SHORT, Signal.FLAT)

    def __init__(self, rng: Optional[np.random.Generator], p_change: float = 0.1):
        if rng is None:
            raise ConfigurationError("the random strategy needs an explicit seed")
        if not 0.0 <= float(p_change) <= 1.0:
            raise ConfigurationError("p_change must be within [0, 1]")
        self.rng = rng
        self.p_change = float(p_change)

    def produce_signal(self, indicators: IndicatorContext, bar: PriceBar) -> Signal:
        # draw both numbers every bar so the stream does not depend on outcomes
        u = self.rng.random()
        pick = int(self.rng.integers(len(self._CHOICES)))
        if u < self.p_change:
            return self._CHOICES[pick]
        return Signal.HOLD


StrategyFactory = Callable[[Mapping[str, Any], Optional[np.random.Generator]], Strategy]

STRATEGIES: dict[str, StrategyFactory] = {
    "sma_crossover": lambda params, rng: MovingAverageCrossover(**params),
    "ema_crossover": lambda params, rng: EmaCrossover(**params),
    "buy_and_hold": lambda params, rng: BuyAndHold(**params),
    "scheduled": lambda params, rng: ScheduledSignals(**params),
    "random": lambda params, rng: RandomSignals(rng, **params),
}


def build_strategy(cfg: StrategyConfig, rng: Optional[np.random.Generator], window_sizes: Mapping[str, int]) -> Strategy:
    """Instantiate the configured strategy and check its indicators exist."""
    name = str(cfg.name).strip().lower()
    if name not in STRATEGIES:
        raise ConfigurationError(f"unknown strategy {cfg.name!r}; expected one of {sorted(STRATEGIES)}")
    try:
        strategy = STRATEGIES[name](dict(cfg.params), rng)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"bad parameters for strategy {name!r}: {exc}") from exc

    missing = [n for n in strategy.required_indicators() if n not in window_sizes]
    if missing:
        raise ConfigurationError(f"strategy {name!r} needs window sizes for {missing}")
    return strategy
