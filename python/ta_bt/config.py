"""Configuration objects.

Style rules:
- keep signatures stable (no alias chaos)
- prefer explicit field names
- every model selector is validated when the object is built
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .errors import ConfigurationError

SLIPPAGE_MODELS = ("fixed_fraction", "fixed_amount")
COMMISSION_MODELS = ("fixed", "per_unit", "percentage")
SIZING_MODES = ("fixed", "equity_fraction")


def _check_value(name: str, value: float) -> float:
    try:
        x = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from exc
    if not math.isfinite(x) or x < 0:
        raise ConfigurationError(f"{name} must be finite and non-negative, got {value!r}")
    return x


def _normalize_selector(value: str) -> str:
    # accept 'fixed-fraction', 'Fixed_Fraction', 'per-unit', ...
    return str(value).strip().lower().replace("-", "_")


@dataclass(frozen=True)
class SlippageConfig:
    """Slippage policy.

    - fixed_fraction: price moves against the trader by ``value * price``
    - fixed_amount: price moves against the trader by ``value`` per unit
    """

    model: str = "fixed_fraction"
    value: float = 0.0

    def __post_init__(self) -> None:
        model = _normalize_selector(self.model)
        if model not in SLIPPAGE_MODELS:
            raise ConfigurationError(f"unknown slippage model {self.model!r}; expected one of {SLIPPAGE_MODELS}")
        object.__setattr__(self, "model", model)
        object.__setattr__(self, "value", _check_value("slippage value", self.value))


@dataclass(frozen=True)
class CommissionConfig:
    """Commission policy.

    - fixed: ``value`` per fill
    - per_unit: ``value`` per unit traded
    - percentage: ``value`` as a fraction of the fill notional (0.001 = 0.1%)
    """

    model: str = "percentage"
    value: float = 0.0

    def __post_init__(self) -> None:
        model = _normalize_selector(self.model)
        if model not in COMMISSION_MODELS:
            raise ConfigurationError(f"unknown commission model {self.model!r}; expected one of {COMMISSION_MODELS}")
        object.__setattr__(self, "model", model)
        object.__setattr__(self, "value", _check_value("commission value", self.value))


@dataclass(frozen=True)
class CostConfig:
    slippage: SlippageConfig = field(default_factory=SlippageConfig)
    commission: CommissionConfig = field(default_factory=CommissionConfig)


@dataclass(frozen=True)
class StrategyConfig:
    """Strategy selection. ``params`` are passed to the strategy constructor."""

    name: str = "sma_crossover"
    params: Mapping[str, Any] = field(default_factory=dict)


def _default_windows() -> dict[str, int]:
    return {"sma_fast": 5, "sma_slow": 20}


@dataclass(frozen=True)
class BacktestConfig:
    """Backtest run configuration.

    Notes:
    - ``window_sizes`` maps indicator names to windows; the name prefix
      (``sma``, ``ema``, ``atr``) selects the indicator function.
    - ``sizing="fixed"`` trades ``order_quantity`` units per entry;
      ``sizing="equity_fraction"`` allocates ``allocation_fraction`` of the
      current equity and buys whole units only.
    - ``seed`` feeds the generator handed to randomized strategies.
    """

    window_sizes: Mapping[str, int] = field(default_factory=_default_windows)
    costs: CostConfig = field(default_factory=CostConfig)
    strategy: StrategyConfig = field(default_factory=StrategyConfig)
    seed: Optional[int] = None

    symbol: str = "UNSPECIFIED"
    initial_capital: float = 100_000.0

    sizing: str = "fixed"
    order_quantity: float = 1.0
    allocation_fraction: float = 1.0

    # allow shorts at all
    enable_short: bool = True

    def __post_init__(self) -> None:
        sizing = _normalize_selector(self.sizing)
        if sizing not in SIZING_MODES:
            raise ConfigurationError(f"unknown sizing mode {self.sizing!r}; expected one of {SIZING_MODES}")
        object.__setattr__(self, "sizing", sizing)

        capital = _check_value("initial_capital", self.initial_capital)
        if capital <= 0:
            raise ConfigurationError("initial_capital must be positive")
        if _check_value("order_quantity", self.order_quantity) <= 0:
            raise ConfigurationError("order_quantity must be positive")
        frac = _check_value("allocation_fraction", self.allocation_fraction)
        if not 0 < frac <= 1:
            raise ConfigurationError("allocation_fraction must be in (0, 1]")
        if self.seed is not None and (isinstance(self.seed, bool) or not isinstance(self.seed, int) or self.seed < 0):
            raise ConfigurationError(f"seed must be a non-negative integer, got {self.seed!r}")
        if not isinstance(self.enable_short, bool):
            raise ConfigurationError(f"enable_short must be a bool, got {self.enable_short!r}")

        for name, window in self.window_sizes.items():
            if isinstance(window, bool) or not isinstance(window, int):
                raise ConfigurationError(f"window for {name!r} must be an integer, got {window!r}")
        # freeze a private copy so later mutation of the caller's dict cannot leak in
        object.__setattr__(self, "window_sizes", dict(self.window_sizes))

    @classmethod
    def from_dict(cls, d: Mapping[str, Any] | None) -> "BacktestConfig":
        """Create a BacktestConfig from a plain mapping (e.g. parsed JSON/YAML).

        Recognized keys: window_sizes, slippage_model, commission_model,
        strategy, seed, symbol, initial_capital, sizing, order_quantity,
        allocation_fraction, enable_short. Unknown keys raise
        ConfigurationError.
        """
        d = dict(d or {})
        kwargs: dict[str, Any] = {}

        slippage = d.pop("slippage_model", None)
        commission = d.pop("commission_model", None)
        if slippage is not None or commission is not None:
            kwargs["costs"] = CostConfig(
                slippage=SlippageConfig(**_model_kwargs("slippage_model", slippage)) if slippage else SlippageConfig(),
                commission=CommissionConfig(**_model_kwargs("commission_model", commission)) if commission else CommissionConfig(),
            )

        strategy = d.pop("strategy", None)
        if isinstance(strategy, str):
            kwargs["strategy"] = StrategyConfig(name=strategy)
        elif isinstance(strategy, Mapping):
            kwargs["strategy"] = StrategyConfig(name=str(strategy.get("name", "sma_crossover")), params=dict(strategy.get("params") or {}))
        elif strategy is not None:
            raise ConfigurationError(f"strategy must be a name or a mapping, got {strategy!r}")

        simple = (
            "window_sizes",
            "seed",
            "symbol",
            "initial_capital",
            "sizing",
            "order_quantity",
            "allocation_fraction",
            "enable_short",
        )
        for key in simple:
            if key in d:
                kwargs[key] = d.pop(key)

        if d:
            raise ConfigurationError(f"unrecognized configuration keys: {sorted(d)}")
        return cls(**kwargs)


def _model_kwargs(key: str, value: Any) -> dict[str, Any]:
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"{key} must be a mapping with 'model' and 'value'")
    unknown = set(value) - {"model", "value"}
    if unknown:
        raise ConfigurationError(f"{key} has unrecognized keys: {sorted(unknown)}")
    return dict(value)
