import math
from dataclasses import replace
from datetime import datetime, timedelta

import pandas as pd
import pytest

from ta_bt.backtest import run_backtest, run_backtest_frame, run_batch, validate_bars
from ta_bt.config import BacktestConfig, CommissionConfig, CostConfig, SlippageConfig, StrategyConfig
from ta_bt.errors import ConfigurationError, EmptyRun, InvalidParameter, NumericError
from ta_bt.types import PriceBar


def _scheduled(signals, **kwargs):
    return BacktestConfig(window_sizes={}, strategy=StrategyConfig("scheduled", {"signals": signals}), **kwargs)


def test_example_scenario(example_bars):
    # long at the 2nd bar, flat at the 4th, zero slippage, $1 per trade
    cfg = _scheduled(
        {1: "LONG", 3: "FLAT"},
        costs=CostConfig(SlippageConfig("fixed_amount", 0.0), CommissionConfig("fixed", 1.0)),
    )
    result = run_backtest(example_bars, cfg)
    report = result.report

    assert report.trade_count == 2
    assert len(result.ledger) == 2
    assert report.total_commission == 2.0
    assert report.total_slippage == 0.0
    assert report.pnl == -2.0
    assert report.realized_pnl == -2.0
    assert result.ledger[-1].position_after == 0
    assert [p.equity for p in result.equity_curve] == [100_000, 99_999, 100_000, 99_998, 99_998]
    assert report.max_drawdown == 2.0


def test_empty_series():
    with pytest.raises(EmptyRun):
        run_backtest([], BacktestConfig())


def test_window_zero(example_bars):
    cfg = BacktestConfig(window_sizes={"sma_fast": 0, "sma_slow": 3})
    with pytest.raises(InvalidParameter):
        run_backtest(example_bars, cfg)


def test_window_longer_than_series(example_bars):
    with pytest.raises(InvalidParameter):
        run_backtest(example_bars, BacktestConfig())  # default slow window is 20


def test_deterministic_reports(wave_bars):
    cfg = BacktestConfig(
        window_sizes={},
        strategy=StrategyConfig("random", {"p_change": 0.2}),
        seed=7,
        costs=CostConfig(SlippageConfig("fixed_fraction", 0.001), CommissionConfig("percentage", 0.0005)),
    )
    a = run_backtest(wave_bars, cfg)
    b = run_backtest(wave_bars, cfg)
    assert a.report == b.report
    assert a.ledger == b.ledger
    assert a.report.to_json() == b.report.to_json()
    assert a.report.fingerprint() == b.report.fingerprint()
    assert a.report.trade_count > 0


def test_random_strategy_needs_seed(wave_bars):
    cfg = BacktestConfig(window_sizes={}, strategy=StrategyConfig("random"))
    with pytest.raises(ConfigurationError):
        run_backtest(wave_bars, cfg)


def test_unknown_strategy(wave_bars):
    with pytest.raises(ConfigurationError):
        run_backtest(wave_bars, BacktestConfig(strategy=StrategyConfig("martingale")))


@pytest.mark.parametrize(
    "strategy",
    [
        StrategyConfig("sma_crossover", {"confirm_bars": "two"}),
        StrategyConfig("random", {"p_change": "x"}),
        StrategyConfig("scheduled", {"signals": ["LONG"]}),
    ],
)
def test_bad_strategy_params(wave_bars, strategy):
    cfg = BacktestConfig(window_sizes={"sma_fast": 3, "sma_slow": 10}, strategy=strategy, seed=1)
    with pytest.raises(ConfigurationError):
        run_backtest(wave_bars, cfg)


def test_strategy_needs_configured_windows(wave_bars):
    cfg = BacktestConfig(window_sizes={"sma_fast": 3}, strategy=StrategyConfig("sma_crossover"))
    with pytest.raises(ConfigurationError):
        run_backtest(wave_bars, cfg)


@pytest.mark.parametrize(
    "strategy, windows",
    [
        (StrategyConfig("sma_crossover"), {"sma_fast": 3, "sma_slow": 10}),
        (StrategyConfig("ema_crossover", {"confirm_bars": 2}), {"ema_fast": 4, "ema_slow": 12, "atr": 5}),
        (StrategyConfig("buy_and_hold"), {}),
    ],
)
def test_runs_end_flat_with_consistent_pnl(wave_bars, strategy, windows):
    cfg = BacktestConfig(
        window_sizes=windows,
        strategy=strategy,
        costs=CostConfig(SlippageConfig("fixed_amount", 0.01), CommissionConfig("per_unit", 0.02)),
        order_quantity=3.0,
    )
    result = run_backtest(wave_bars, cfg)
    report = result.report

    assert report.trade_count >= 2
    assert result.ledger[-1].position_after == 0
    assert len(result.equity_curve) == len(wave_bars)
    assert report.max_drawdown >= 0
    assert report.pnl == pytest.approx(report.realized_pnl)
    for f in result.ledger:
        assert f.commission >= 0 and math.isfinite(f.commission)
        assert f.slippage >= 0 and math.isfinite(f.slippage)


def test_buy_and_hold_matches_price_move(make_bars):
    bars = make_bars([10, 12, 15])
    cfg = BacktestConfig(window_sizes={}, strategy=StrategyConfig("buy_and_hold"))
    result = run_backtest(bars, cfg)
    assert result.report.pnl == pytest.approx(5.0)
    assert result.report.max_drawdown == 0.0


def test_costs_larger_than_capital_still_report(make_bars):
    cfg = _scheduled(
        {0: "LONG"},
        initial_capital=100.0,
        costs=CostConfig(SlippageConfig("fixed_amount", 0.0), CommissionConfig("fixed", 1000.0)),
    )
    result = run_backtest(make_bars([10, 10, 10]), cfg)
    report = result.report
    assert report.pnl == pytest.approx(-2000.0)
    assert report.realized_pnl == pytest.approx(-2000.0)
    assert report.max_drawdown == pytest.approx(1000.0)
    assert report.max_drawdown_pct == 0.0


class TestBarValidation:
    def test_non_increasing_timestamps(self, make_bars):
        bars = make_bars([10, 11, 12])
        bars[2] = replace(bars[2], timestamp=bars[1].timestamp)
        with pytest.raises(InvalidParameter) as exc:
            validate_bars(bars)
        assert exc.value.bar_index == 2

    def test_non_finite_price(self, make_bars):
        bars = make_bars([10, 11, 12])
        bars[1] = replace(bars[1], close=float("nan"))
        with pytest.raises(NumericError) as exc:
            run_backtest(bars, _scheduled({}))
        assert exc.value.bar_index == 1
        assert "bar 1" in str(exc.value)

    def test_inconsistent_ohlc(self):
        bars = [PriceBar(timestamp=1, open=10.0, high=9.0, low=11.0, close=10.0)]
        with pytest.raises(InvalidParameter):
            validate_bars(bars)

    def test_negative_volume(self):
        bars = [PriceBar(timestamp=1, open=10.0, high=10.0, low=10.0, close=10.0, volume=-1.0)]
        with pytest.raises(InvalidParameter):
            validate_bars(bars)


def test_run_from_frame():
    start = datetime(2024, 1, 1)
    closes = [10.0, 11.0, 12.0, 11.0, 10.0]
    df = pd.DataFrame(
        {
            "open": closes,
            "high": [c + 1 for c in closes],
            "low": [c - 1 for c in closes],
            "close": closes,
            "volume": [1.0] * 5,
        },
        index=pd.DatetimeIndex([start + timedelta(days=i) for i in range(5)]),
    )
    result = run_backtest_frame(df, _scheduled({1: "LONG", 3: "FLAT"}))
    assert result.report.trade_count == 2
    assert result.equity_curve[0].timestamp == start


def test_from_dict_config(example_bars):
    cfg = BacktestConfig.from_dict(
        {
            "window_sizes": {},
            "strategy": {"name": "scheduled", "params": {"signals": {"1": "long", "3": "flat"}}},
            "commission_model": {"model": "fixed", "value": 1},
        }
    )
    assert run_backtest(example_bars, cfg).report.pnl == -2.0


class TestBatch:
    def _configs(self):
        return [
            BacktestConfig(window_sizes={}, strategy=StrategyConfig("random", {"p_change": 0.3}), seed=seed)
            for seed in (1, 2, 3)
        ]

    def test_sequential_order_preserved(self, wave_bars):
        configs = self._configs()
        results = run_batch(wave_bars, configs, max_workers=1)
        assert [r.config for r in results] == configs
        for cfg, r in zip(configs, results):
            assert r.report == run_backtest(wave_bars, cfg).report

    def test_parallel_matches_sequential(self, wave_bars):
        configs = self._configs()
        sequential = run_batch(wave_bars, configs, max_workers=1)
        parallel = run_batch(wave_bars, configs, max_workers=2)
        assert [r.report.fingerprint() for r in parallel] == [r.report.fingerprint() for r in sequential]

    def test_empty_batch(self, wave_bars):
        assert run_batch(wave_bars, []) == []
