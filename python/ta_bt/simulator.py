"""Single-instrument execution simulator.

Bar loop, in strict timestamp order:
- indicator context up to bar t (no lookahead)
- strategy signal -> target direction
- on a direction change, one order that flattens or flips exactly
- cost model -> fill at Close(t) adjusted by slippage
- position / cash update, fill appended to the ledger
- mark-to-market at Close(t), equity point appended

On the last bar any open position is closed at Close(t), so every run ends
flat with all PnL realized. Signals that would open or flip a position on
the last bar are ignored; only the closing order is placed.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from enum import Enum
from typing import Any, List, Optional

from .config import BacktestConfig
from .cost_model import CostModel
from .data_manager import BarDataManager
from .errors import BacktestError, InvalidOrder, check_finite, safe_div
from .strategies import Strategy
from .types import EquityPoint, Fill, Order, Position, PriceBar, Side, Signal

logger = logging.getLogger(__name__)


class SimState(str, Enum):
    AWAITING_BAR = "AWAITING_BAR"
    PROCESSING = "PROCESSING"
    FLAT = "FLAT"
    LONG = "LONG"
    SHORT = "SHORT"


def resolve_signal(raw: Any) -> Signal:
    """Normalize a strategy's output to one Signal.

    A strategy may return several signals for a bar; HOLD entries are
    ignored, and more than one distinct direction is rejected rather than
    ordered.
    """
    if isinstance(raw, Signal):
        return raw
    if isinstance(raw, str):
        try:
            return Signal(raw.strip().upper())
        except ValueError:
            raise InvalidOrder(f"unknown signal {raw!r}") from None
    if isinstance(raw, Iterable):
        wanted = {resolve_signal(x) for x in raw} - {Signal.HOLD}
        if not wanted:
            return Signal.HOLD
        if len(wanted) > 1:
            names = ", ".join(sorted(s.value for s in wanted))
            raise InvalidOrder(f"conflicting signals in one bar: {names}")
        return wanted.pop()
    raise InvalidOrder(f"strategy returned {raw!r}, expected a Signal")


class ExecutionSimulator:
    """Turns signals into fills and keeps the ledger and equity curve.

    The instance is single-use: one ``run()`` per simulator.
    """

    def __init__(
        self,
        dm: BarDataManager,
        strategy: Strategy,
        cost_model: CostModel,
        cfg: BacktestConfig,
    ):
        self.dm = dm
        self.strategy = strategy
        self.cost_model = cost_model
        self.cfg = cfg

        self.initial_capital = float(cfg.initial_capital)
        self.cash = self.initial_capital
        self.position = Position()

        self.ledger: List[Fill] = []
        self.equity_curve: List[EquityPoint] = []

        self.state = SimState.AWAITING_BAR
        self.finished = False

    # ---------- public API ----------

    def run(self) -> None:
        """Process every bar of the data manager."""
        if self.finished:
            raise RuntimeError("simulator already ran; build a new one per run")
        n = len(self.dm)
        for t in range(n):
            self.step(t, is_last=(t == n - 1))
        self.finished = True

    def step(self, t: int, is_last: bool = False) -> None:
        bar = self.dm.bar(t)
        self.state = SimState.PROCESSING
        try:
            ctx = self.dm.context(t)
            signal = resolve_signal(self.strategy.produce_signal(ctx, bar))
            target = self._target_direction(signal)
            if target is not None and target != self.position.direction and not (is_last and target != 0):
                self._rebalance(t, bar, target, reason="signal")

            if is_last and self.position.quantity != 0:
                self._rebalance(t, bar, 0, reason="final_close")

            self._append_equity(bar)
        except BacktestError as exc:
            raise exc.with_context(t, bar.timestamp)
        self.state = self._position_state()

    def equity_value(self, price: float) -> float:
        """Current equity given a valuation price."""
        return check_finite(self.cash + self.position.quantity * float(price), "equity")

    # ---------- internal helpers ----------

    def _position_state(self) -> SimState:
        d = self.position.direction
        if d > 0:
            return SimState.LONG
        if d < 0:
            return SimState.SHORT
        return SimState.FLAT

    def _target_direction(self, signal: Signal) -> Optional[int]:
        direction = signal.direction
        if direction == -1 and not self.cfg.enable_short:
            return 0
        return direction

    def _target_size(self, price: float) -> float:
        if self.cfg.sizing == "fixed":
            return float(self.cfg.order_quantity)
        alloc = self.equity_value(price) * float(self.cfg.allocation_fraction)
        if alloc <= 0:
            return 0.0
        return float(math.floor(safe_div(alloc, price)))

    def _append_equity(self, bar: PriceBar) -> None:
        self.equity_curve.append(EquityPoint(timestamp=bar.timestamp, equity=self.equity_value(bar.close)))

    # ---------- execution/accounting ----------

    def _rebalance(self, t: int, bar: PriceBar, target: int, reason: str) -> None:
        """Trade from the current quantity to ``target`` direction in one order."""
        price = float(bar.close)
        desired = 0.0
        if target != 0:
            size = self._target_size(price)
            if size <= 0:
                logger.debug("bar %d: computed size is zero, staying flat", t)
            desired = target * size

        delta = desired - self.position.quantity
        if delta == 0:
            return

        order = Order(
            side=Side.BUY if delta > 0 else Side.SELL,
            quantity=abs(delta),
            requested_price=price,
            timestamp=bar.timestamp,
            bar_index=t,
        )
        fill = self._execute(order, bar, reason)
        self.ledger.append(fill)
        logger.debug(
            "bar %d fill %s %s @ %.6f (requested %.6f) commission=%.6f pnl=%.6f pos=%s",
            t,
            fill.side.value,
            fill.quantity,
            fill.price,
            fill.requested_price,
            fill.commission,
            fill.realized_pnl,
            fill.position_after,
        )

    def _execute(self, order: Order, bar: PriceBar, reason: str) -> Fill:
        cost = self.cost_model.fill(order, bar)
        price = cost.price
        qty = float(order.quantity)
        signed = order.side.sign * qty

        pos = self.position
        old_qty = pos.quantity
        gross = 0.0
        if old_qty == 0 or (old_qty > 0) == (signed > 0):
            # opening or adding: weighted average entry
            total = abs(old_qty) + qty
            pos.average_entry_price = check_finite(
                safe_div(abs(old_qty) * pos.average_entry_price + qty * price, total),
                "average entry price",
            )
        else:
            closing = min(qty, abs(old_qty))
            direction = 1.0 if old_qty > 0 else -1.0
            gross = check_finite(closing * (price - pos.average_entry_price) * direction, "realized pnl")
            remaining = old_qty + signed
            if remaining == 0:
                pos.average_entry_price = 0.0
            elif (remaining > 0) != (old_qty > 0):
                # flipped through zero: the remainder opens at the fill price
                pos.average_entry_price = price

        realized = check_finite(gross - cost.commission, "realized pnl")
        pos.quantity = old_qty + signed
        pos.realized_pnl = check_finite(pos.realized_pnl + realized, "realized pnl")
        self.cash = check_finite(self.cash - signed * price - cost.commission, "cash")

        return Fill(
            timestamp=order.timestamp,
            bar_index=order.bar_index,
            side=order.side,
            quantity=qty,
            requested_price=float(order.requested_price),
            price=price,
            slippage=cost.slippage,
            commission=cost.commission,
            realized_pnl=realized,
            position_after=pos.quantity,
            reason=reason,
        )
