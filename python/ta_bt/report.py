"""Report builder: trade ledger + equity curve -> summary Report.

``build_report`` is pure. The DataFrame helpers exist for the host that
prints or persists results; nothing here writes files.
"""

from __future__ import annotations

import hashlib
import json
import math
from dataclasses import asdict, dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Sequence

import pandas as pd

from .errors import EmptyRun, NumericError, check_finite, safe_div
from .metrics import max_drawdown, max_drawdown_pct
from .types import EquityPoint, Fill

# relative/absolute tolerance for the equity-vs-ledger PnL reconciliation
PNL_RECONCILE_TOL = 1e-9


@dataclass(frozen=True)
class Report:
    initial_equity: float
    final_equity: float
    pnl: float
    realized_pnl: float
    return_pct: float
    max_drawdown: float
    max_drawdown_pct: float
    trade_count: int
    total_slippage: float
    total_commission: float
    equity_curve: tuple[EquityPoint, ...]

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["equity_curve"] = [[_jsonable(p.timestamp), p.equity] for p in self.equity_curve]
        return d

    def to_json(self) -> str:
        """Canonical JSON encoding; identical runs give identical strings."""
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), default=_jsonable)

    def fingerprint(self) -> str:
        """SHA-256 of the canonical JSON encoding."""
        return hashlib.sha256(self.to_json().encode("utf-8")).hexdigest()


def _jsonable(x: Any) -> Any:
    if isinstance(x, (datetime, date)):
        return x.isoformat()
    if isinstance(x, Enum):
        return x.value
    if isinstance(x, (int, float, str)) or x is None:
        return x
    return str(x)


def build_report(ledger: Sequence[Fill], equity_curve: Sequence[EquityPoint], initial_equity: float) -> Report:
    """Aggregate a finished run.

    PnL is measured twice, from the equity curve and from the ledger's
    realized PnL; a mismatch beyond float rounding raises NumericError.
    """
    if len(equity_curve) == 0:
        raise EmptyRun("equity curve is empty")

    initial = check_finite(initial_equity, "initial equity")
    values = [p.equity for p in equity_curve]
    final = check_finite(values[-1], "final equity")
    pnl = check_finite(final - initial, "pnl")
    realized = check_finite(math.fsum(f.realized_pnl for f in ledger), "realized pnl")

    tol = PNL_RECONCILE_TOL * max(1.0, abs(initial))
    if not math.isclose(pnl, realized, rel_tol=PNL_RECONCILE_TOL, abs_tol=tol):
        raise NumericError(f"equity pnl {pnl!r} does not match realized pnl {realized!r}")

    total_slippage = check_finite(math.fsum(f.slippage for f in ledger), "total slippage")
    total_commission = check_finite(math.fsum(f.commission for f in ledger), "total commission")

    return Report(
        initial_equity=initial,
        final_equity=final,
        pnl=pnl,
        realized_pnl=realized,
        return_pct=safe_div(pnl, initial),
        max_drawdown=max_drawdown(values),
        max_drawdown_pct=max_drawdown_pct(values),
        trade_count=len(ledger),
        total_slippage=total_slippage,
        total_commission=total_commission,
        equity_curve=tuple(equity_curve),
    )


def ledger_frame(ledger: Sequence[Fill]) -> pd.DataFrame:
    """Trade ledger as a DataFrame, one row per fill."""
    columns = list(Fill.__dataclass_fields__)
    rows = []
    for f in ledger:
        row = asdict(f)
        row["side"] = f.side.value
        rows.append(row)
    return pd.DataFrame(rows, columns=columns)


def equity_frame(equity_curve: Sequence[EquityPoint]) -> pd.DataFrame:
    """Equity curve as a DataFrame indexed by timestamp."""
    df = pd.DataFrame([(p.timestamp, p.equity) for p in equity_curve], columns=["Date", "Equity"])
    return df.set_index("Date")
