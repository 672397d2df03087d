"""Typed errors for the backtest engine.

Every failure a run can hit maps to one of these classes. Errors raised deep
inside the simulator are tagged with the bar index and timestamp before they
leave the orchestrator, so a caller can reproduce the failing bar.
"""

from __future__ import annotations

import math
from typing import Any, Optional


class BacktestError(Exception):
    """Base class for backtest errors."""

    kind = "BacktestError"

    def __init__(self, message: str, *, bar_index: Optional[int] = None, timestamp: Any = None):
        super().__init__(message)
        self.message = message
        self.bar_index = bar_index
        self.timestamp = timestamp

    def with_context(self, bar_index: Optional[int], timestamp: Any) -> "BacktestError":
        """Fill in bar context if it is not set yet. Returns self."""
        if self.bar_index is None:
            self.bar_index = bar_index
        if self.timestamp is None:
            self.timestamp = timestamp
        return self

    def __reduce__(self):
        # keep bar context when errors cross process boundaries (run_batch)
        return (_rebuild, (type(self), self.message, self.bar_index, self.timestamp))

    def __str__(self) -> str:
        if self.bar_index is None:
            return f"{self.kind}: {self.message}"
        return f"{self.kind} at bar {self.bar_index} (timestamp={self.timestamp!r}): {self.message}"


class InvalidParameter(BacktestError):
    """Raised for a bad indicator window or malformed price bars."""

    kind = "InvalidParameter"


class InvalidOrder(BacktestError):
    """Raised for a non-positive quantity, a non-finite price or conflicting signals."""

    kind = "InvalidOrder"


class NumericError(BacktestError):
    """Raised when an intermediate value becomes NaN or infinite."""

    kind = "NumericError"


class EmptyRun(BacktestError):
    """Raised when there are no bars or the equity curve is empty."""

    kind = "EmptyRun"


class ConfigurationError(BacktestError):
    """Raised for an unrecognized model selector or an invalid config value."""

    kind = "ConfigurationError"


def _rebuild(cls, message, bar_index, timestamp):
    return cls(message, bar_index=bar_index, timestamp=timestamp)


def check_finite(value: float, what: str) -> float:
    """Return ``value`` as float, raising NumericError if it is NaN/inf."""
    x = float(value)
    if not math.isfinite(x):
        raise NumericError(f"{what} is not finite ({x!r})")
    return x


def safe_div(num: float, den: float) -> float:
    """Division that refuses a zero denominator or a non-finite result."""
    if den == 0.0:
        raise NumericError("division by zero")
    return check_finite(num / den, "quotient")
