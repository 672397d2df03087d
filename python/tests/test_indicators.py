"""Tests for technical indicators."""

import math

import pytest

from ta_bt.errors import InvalidParameter, NumericError
from ta_bt.indicators import atr, compute, ema, indicator_kind, sma, true_range
from ta_bt.types import PriceBar


class TestSMA:
    def test_sma_basic(self):
        out = sma([1.0, 2.0, 3.0, 4.0, 5.0], 3)
        assert out[:2] == [None, None]
        assert out[2:] == pytest.approx([2.0, 3.0, 4.0])

    def test_window_one_is_identity(self):
        values = [3.0, 1.0, 4.0, 1.0, 5.0]
        assert sma(values, 1) == pytest.approx(values)

    @pytest.mark.parametrize("window", [1, 2, 5, 9])
    def test_length_and_padding(self, window):
        values = [float(i * i % 7) for i in range(9)]
        out = sma(values, window)
        assert len(out) == len(values)
        assert out[: window - 1] == [None] * (window - 1)
        assert all(v is not None and math.isfinite(v) for v in out[window - 1 :])

    def test_window_zero_rejected(self):
        with pytest.raises(InvalidParameter):
            sma([1.0, 2.0], 0)

    def test_window_larger_than_input_rejected(self):
        with pytest.raises(InvalidParameter):
            sma([1.0, 2.0], 3)

    def test_non_integer_window_rejected(self):
        with pytest.raises(InvalidParameter):
            sma([1.0, 2.0], 1.5)

    def test_non_finite_input(self):
        with pytest.raises(NumericError) as exc:
            sma([1.0, float("nan"), 3.0], 2)
        assert exc.value.bar_index == 1


class TestEMA:
    def test_ema_basic(self):
        # seed is SMA(1,2,3)=2, alpha=0.5
        out = ema([1.0, 2.0, 3.0, 4.0, 5.0], 3)
        assert out[:2] == [None, None]
        assert out[2:] == pytest.approx([2.0, 3.0, 4.0])

    def test_ema_window_equals_length(self):
        out = ema([2.0, 4.0, 6.0], 3)
        assert out[:2] == [None, None]
        assert out[2] == pytest.approx(4.0)

    def test_ema_is_deterministic(self):
        values = [100.0 + math.sin(i) for i in range(50)]
        assert ema(values, 7) == ema(values, 7)

    def test_window_zero_rejected(self):
        with pytest.raises(InvalidParameter):
            ema([1.0, 2.0, 3.0], 0)


class TestATR:
    def _bars(self, n):
        return [PriceBar(timestamp=i, open=101.0, high=102.0, low=100.0, close=101.0) for i in range(n)]

    def test_true_range_first_bar_uses_high_low(self):
        bars = [
            PriceBar(timestamp=0, open=10.0, high=11.0, low=9.0, close=10.0),
            PriceBar(timestamp=1, open=13.0, high=14.0, low=12.5, close=13.5),
        ]
        assert true_range(bars) == pytest.approx([2.0, 4.0])

    def test_atr_constant_range(self):
        out = atr(self._bars(6), 3)
        assert out[:2] == [None, None]
        assert out[2:] == pytest.approx([2.0] * 4)

    def test_atr_window_too_large(self):
        with pytest.raises(InvalidParameter):
            atr(self._bars(2), 3)


class TestDispatch:
    def test_kind_from_name(self):
        assert indicator_kind("sma_fast") == "sma"
        assert indicator_kind("EMA_slow") == "ema"
        assert indicator_kind("atr") == "atr"

    def test_unknown_kind(self):
        with pytest.raises(InvalidParameter):
            indicator_kind("rsi_14")

    def test_compute_on_closes(self, make_bars):
        bars = make_bars([1, 2, 3, 4, 5])
        assert compute("sma_fast", bars, 2) == sma([1.0, 2.0, 3.0, 4.0, 5.0], 2)
        assert compute("ema_slow", bars, 3) == ema([1.0, 2.0, 3.0, 4.0, 5.0], 3)
