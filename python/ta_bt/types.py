"""Shared types for the backtest engine.

The guiding principle is to keep the runtime objects small and explicit.
Bars, orders, fills and equity points are frozen once produced; only the
simulator mutates a ``Position``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class Signal(str, Enum):
    """Desired position state for the current bar."""

    LONG = "LONG"
    SHORT = "SHORT"
    FLAT = "FLAT"
    HOLD = "HOLD"

    @property
    def direction(self) -> int | None:
        """+1 / -1 / 0 for LONG / SHORT / FLAT, None for HOLD."""
        return _DIRECTIONS[self]


_DIRECTIONS = {Signal.LONG: 1, Signal.SHORT: -1, Signal.FLAT: 0, Signal.HOLD: None}


class Side(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

    @property
    def sign(self) -> int:
        return 1 if self is Side.BUY else -1


@dataclass(frozen=True)
class PriceBar:
    """OHLCV bar.

    ``timestamp`` is an epoch integer or a ``datetime``; it only needs to be
    totally ordered. All prices must be finite floats.
    """

    timestamp: Any
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0


@dataclass(frozen=True)
class Order:
    """Position change requested by the simulator. Consumed by a single fill."""

    side: Side
    quantity: float
    requested_price: float
    timestamp: Any
    bar_index: int


@dataclass(frozen=True)
class Fill:
    """A single executed trade."""

    timestamp: Any
    bar_index: int
    side: Side
    quantity: float
    requested_price: float
    price: float  # requested price adjusted by slippage
    slippage: float  # money cost of slippage for this fill
    commission: float
    realized_pnl: float  # closing-portion PnL net of this fill's commission
    position_after: float  # signed quantity after the fill
    reason: str = "signal"  # 'signal' / 'final_close'

    @property
    def notional(self) -> float:
        return self.quantity * self.price


@dataclass
class Position:
    """Open position of the single instrument in a run."""

    quantity: float = 0.0  # signed: +long, -short
    average_entry_price: float = 0.0
    realized_pnl: float = 0.0

    @property
    def direction(self) -> int:
        if self.quantity > 0:
            return 1
        if self.quantity < 0:
            return -1
        return 0

    def unrealized_pnl(self, price: float) -> float:
        return self.quantity * (price - self.average_entry_price)


@dataclass(frozen=True)
class EquityPoint:
    timestamp: Any
    equity: float
