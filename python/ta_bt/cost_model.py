"""Transaction cost model: slippage and commission.

Both functions are pure: the result depends only on the order, the bar and
the configuration passed in.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from .config import CommissionConfig, CostConfig, SlippageConfig
from .errors import InvalidOrder, NumericError
from .types import Order, PriceBar


def _validate_order(order: Order) -> None:
    qty = float(order.quantity)
    if not math.isfinite(qty) or qty <= 0:
        raise InvalidOrder(f"order quantity must be positive and finite, got {order.quantity!r}")
    px = float(order.requested_price)
    if not math.isfinite(px) or px <= 0:
        raise InvalidOrder(f"order price must be positive and finite, got {order.requested_price!r}")


def slippage(order: Order, bar: PriceBar, cfg: SlippageConfig) -> float:
    """Adverse per-unit price adjustment for ``order`` on ``bar``.

    ``bar`` is the market context of the fill; the configured models only use
    the order's requested price, which the simulator takes from the bar.
    """
    _validate_order(order)
    if cfg.model == "fixed_fraction":
        return float(order.requested_price) * cfg.value
    return cfg.value


def commission(order: Order, cfg: CommissionConfig, fill_price: float | None = None) -> float:
    """Commission charged for ``order``.

    Percentage commission is charged on the notional at ``fill_price`` when
    given, otherwise at the requested price.
    """
    _validate_order(order)
    if cfg.model == "fixed":
        return cfg.value
    if cfg.model == "per_unit":
        return cfg.value * float(order.quantity)
    price = float(order.requested_price) if fill_price is None else float(fill_price)
    return cfg.value * float(order.quantity) * price


@dataclass(frozen=True)
class FillCost:
    price: float  # realized fill price
    slippage: float  # money cost of slippage
    commission: float


class CostModel:
    """Costs:
    - slippage: price moves against the trader (buys pay more, sells get less)
    - commission: charged on every fill
    """

    def __init__(self, cfg: CostConfig):
        self.cfg = cfg

    def slippage(self, order: Order, bar: PriceBar) -> float:
        return slippage(order, bar, self.cfg.slippage)

    def commission(self, order: Order, fill_price: float | None = None) -> float:
        return commission(order, self.cfg.commission, fill_price)

    def fill(self, order: Order, bar: PriceBar) -> FillCost:
        """Realized price and costs for ``order`` filled on ``bar``."""
        per_unit = self.slippage(order, bar)
        price = float(order.requested_price) + order.side.sign * per_unit
        if not math.isfinite(price):
            raise NumericError(f"fill price is not finite ({price!r})")
        if price <= 0:
            raise InvalidOrder(f"slippage of {per_unit} drives the fill price non-positive")
        fee = self.commission(order, fill_price=price)
        slip_cost = per_unit * float(order.quantity)
        for name, value in (("commission", fee), ("slippage", slip_cost)):
            if not math.isfinite(value):
                raise NumericError(f"{name} is not finite ({value!r})")
        return FillCost(price=price, slippage=slip_cost, commission=fee)
