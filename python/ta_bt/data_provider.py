"""Conversion between pandas OHLCV frames and ``PriceBar`` sequences.

The engine itself only consumes in-memory bars; loading files or feeds is
the host's job. These helpers standardize a frame the host already has.
"""

from __future__ import annotations

from typing import Sequence

import pandas as pd

from .errors import InvalidParameter
from .types import PriceBar

REQUIRED_COLUMNS = ["Open", "High", "Low", "Close", "Volume"]


def _standardize_ohlcv_columns(df: pd.DataFrame) -> pd.DataFrame:
    # Some sources return MultiIndex columns: (field, ticker).
    # We standardize to a simple 1-level column index.
    if isinstance(df.columns, pd.MultiIndex):
        tickers = list(dict.fromkeys(df.columns.get_level_values(-1)))
        if len(tickers) != 1:
            raise InvalidParameter(f"expected a single instrument, got columns for {tickers}")
        df = df.copy()
        df.columns = df.columns.get_level_values(0)

    rename_map = {}
    for col in df.columns:
        c = str(col).strip().lower()
        if c in {"open", "high", "low", "close", "volume"}:
            rename_map[col] = c.capitalize()
        elif c in {"adj close", "adjclose"}:
            # Keep adjusted close separate to avoid duplicate "Close" columns.
            rename_map[col] = "AdjClose"
    df = df.rename(columns=rename_map)

    # If the source only has AdjClose, use it as Close.
    if "Close" not in df.columns and "AdjClose" in df.columns:
        df = df.rename(columns={"AdjClose": "Close"})

    # Volume is optional; bars without it carry zero volume.
    if "Volume" not in df.columns:
        df = df.assign(Volume=0.0)

    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise InvalidParameter(f"Missing required OHLCV columns: {missing}")

    if df.index.has_duplicates:
        raise InvalidParameter("OHLCV index has duplicate timestamps")
    return df[REQUIRED_COLUMNS].astype(float).sort_index()


def bars_from_frame(df: pd.DataFrame) -> list[PriceBar]:
    """Build PriceBars from a frame indexed by timestamp.

    A DatetimeIndex yields ``datetime`` timestamps; any other index is used
    as-is (e.g. integer epochs).
    """
    df = _standardize_ohlcv_columns(df)
    if isinstance(df.index, pd.DatetimeIndex):
        stamps = list(df.index.to_pydatetime())
    else:
        stamps = df.index.tolist()
    return [
        PriceBar(timestamp=ts, open=o, high=h, low=lo, close=c, volume=v)
        for ts, (o, h, lo, c, v) in zip(stamps, df.itertuples(index=False, name=None))
    ]


def bars_to_frame(bars: Sequence[PriceBar]) -> pd.DataFrame:
    """Inverse of ``bars_from_frame``."""
    df = pd.DataFrame(
        [(b.timestamp, b.open, b.high, b.low, b.close, b.volume) for b in bars],
        columns=["Date"] + REQUIRED_COLUMNS,
    )
    return df.set_index("Date")
