"""
Tests for signal_trader/data/indicators.py

Covers:
- ema_step seeding and smoothing
- sma / rsi windows and undefined states
- IndicatorEngine history cap, invalid prices, side-effect-free reads
"""

import math

import pytest

from signal_trader.data.indicators import IndicatorEngine, ema_step, rsi, sma


class TestEmaStep:
    """Tests for ema_step()."""

    def test_first_observation_seeds(self):
        assert ema_step(100.0, None, 9) == 100.0

    def test_smoothing_factor(self):
        """k = 2 / (period + 1) = 0.2 for period 9."""
        assert ema_step(110.0, 100.0, 9) == pytest.approx(102.0)

    def test_rejects_non_positive_period(self):
        with pytest.raises(ValueError):
            ema_step(1.0, None, 0)


class TestSma:
    """Tests for sma()."""

    def test_undefined_until_window_full(self):
        assert sma([1.0, 2.0], 3) is None

    def test_uses_last_window(self):
        assert sma([1.0, 2.0, 3.0, 4.0], 2) == pytest.approx(3.5)


class TestRsi:
    """Tests for rsi()."""

    def test_undefined_before_period_plus_one(self):
        assert rsi([float(p) for p in range(100, 114)], 14) is None

    def test_defined_at_period_plus_one(self):
        assert rsi([float(p) for p in range(100, 115)], 14) is not None

    def test_no_losses_is_100(self):
        """Flat and rising series have zero average loss."""
        assert rsi([100.0] * 15, 14) == 100.0
        assert rsi([float(p) for p in range(100, 115)], 14) == 100.0

    def test_all_losses_is_0(self):
        assert rsi([float(p) for p in range(115, 100, -1)], 14) == pytest.approx(0.0)

    def test_balanced_moves_is_50(self):
        assert rsi([1.0, 2.0, 1.0], 2) == pytest.approx(50.0)

    def test_only_last_period_deltas_count(self):
        """An old crash outside the window does not drag RSI down."""
        closes = [100.0, 10.0] + [float(p) for p in range(10, 13)]
        assert rsi(closes, 2) == 100.0


class TestIndicatorEngine:
    """Tests for IndicatorEngine."""

    def test_unknown_symbol_all_undefined(self):
        snap = IndicatorEngine().get_indicators("BTC/USDC")
        assert snap.prices_count == 0
        assert snap.last_price is None
        assert snap.ema_fast is None and snap.rsi is None and snap.sma_long is None
        assert not snap.is_ready

    def test_history_is_capped(self):
        engine = IndicatorEngine(history_size=100)
        for i in range(150):
            engine.push_price("BTC/USDC", 100.0 + i)
        snap = engine.get_indicators("BTC/USDC")
        assert snap.prices_count == 100
        assert snap.last_price == 249.0

    def test_rsi_undefined_until_period_plus_one_prices(self):
        engine = IndicatorEngine()
        for i in range(14):
            engine.push_price("BTC/USDC", 100.0 + i)
        assert engine.get_indicators("BTC/USDC").rsi is None
        engine.push_price("BTC/USDC", 114.0)
        assert engine.get_indicators("BTC/USDC").rsi == 100.0

    def test_emas_defined_after_first_price(self):
        engine = IndicatorEngine()
        engine.push_price("ETH/USDC", 2500.0)
        snap = engine.get_indicators("ETH/USDC")
        assert snap.ema_fast == 2500.0
        assert snap.ema_slow == 2500.0

    def test_sma_windows(self):
        engine = IndicatorEngine(history_size=10, rsi_period=2, sma_short_period=2, sma_long_period=5)
        for p in (100.0, 101.0, 102.0, 103.0, 104.0):
            engine.push_price("X", p)
        snap = engine.get_indicators("X")
        assert snap.sma_short == pytest.approx(103.5)
        assert snap.sma_long == pytest.approx(102.0)

    def test_get_indicators_is_side_effect_free(self):
        engine = IndicatorEngine()
        for i in range(30):
            engine.push_price("BTC/USDC", 100.0 + (i % 7))
        first = engine.get_indicators("BTC/USDC")
        second = engine.get_indicators("BTC/USDC")
        assert first == second

    @pytest.mark.parametrize("bad", [0.0, -5.0, math.nan, math.inf])
    def test_invalid_price_ignored(self, bad):
        engine = IndicatorEngine()
        engine.push_price("BTC/USDC", 100.0)
        assert engine.push_price("BTC/USDC", bad) is False
        snap = engine.get_indicators("BTC/USDC")
        assert snap.prices_count == 1
        assert snap.ema_fast == 100.0

    def test_symbols_are_independent(self):
        engine = IndicatorEngine()
        engine.push_price("BTC/USDC", 100.0)
        engine.push_price("ETH/USDC", 2000.0)
        assert engine.get_indicators("BTC/USDC").last_price == 100.0
        assert engine.get_indicators("ETH/USDC").last_price == 2000.0
        assert sorted(engine.symbols()) == ["BTC/USDC", "ETH/USDC"]

    def test_history_smaller_than_windows_rejected(self):
        with pytest.raises(ValueError):
            IndicatorEngine(history_size=10, rsi_period=14)
