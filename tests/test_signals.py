"""
Tests for signal_trader/strategy/

Covers:
- Debouncer suppression of repeated directions
- SmaCrossoverStrategy crossover timing
- RsiEmaStrategy entry/exit conditions and debouncing
"""

import random
from datetime import datetime, timezone

from signal_trader.data.indicators import IndicatorEngine
from signal_trader.strategy.rsi_ema import RsiEmaStrategy
from signal_trader.strategy.signal import LONG, SHORT, Debouncer, Signal
from signal_trader.strategy.sma_crossover import SmaCrossoverStrategy


def _run(strategy, engine, symbol, prices):
    """Push prices one at a time, checking for a signal after each push."""
    out = []
    for i, price in enumerate(prices):
        engine.push_price(symbol, price)
        sig = strategy.check_signal(symbol)
        if sig is not None:
            out.append((i, sig))
    return out


class TestDebouncer:
    """Tests for Debouncer."""

    def test_first_direction_passes(self):
        assert Debouncer().accept("X", LONG) == LONG

    def test_repeat_is_suppressed(self):
        d = Debouncer()
        d.accept("X", LONG)
        assert d.accept("X", LONG) is None
        assert d.accept("X", SHORT) == SHORT
        assert d.last("X") == SHORT

    def test_none_does_not_reset_memory(self):
        d = Debouncer()
        d.accept("X", LONG)
        assert d.accept("X", None) is None
        assert d.accept("X", LONG) is None

    def test_per_symbol(self):
        d = Debouncer()
        d.accept("X", LONG)
        assert d.accept("Y", LONG) == LONG


class TestSignal:
    """Tests for Signal.side."""

    def test_side_mapping(self):
        ts = datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert Signal(ts, "X", LONG, "", 1.0).side == "BUY"
        assert Signal(ts, "X", SHORT, "", 1.0).side == "SELL"


class TestSmaCrossoverStrategy:
    """Tests for SmaCrossoverStrategy."""

    def test_rising_series_single_long_at_window_fill(self):
        """Prices 100..125 with windows (5, 20): one LONG at the 20th point, never repeated."""
        engine = IndicatorEngine(sma_short_period=5, sma_long_period=20)
        strategy = SmaCrossoverStrategy(engine)
        signals = _run(strategy, engine, "BTC/USDC", [float(p) for p in range(100, 126)])
        assert len(signals) == 1
        idx, sig = signals[0]
        assert idx == 19
        assert sig.direction == LONG
        assert sig.ref_price == 119.0

    def test_no_signal_before_long_window(self):
        engine = IndicatorEngine(history_size=10, rsi_period=2, sma_short_period=2, sma_long_period=5)
        strategy = SmaCrossoverStrategy(engine)
        assert _run(strategy, engine, "X", [100.0, 101.0, 102.0, 103.0]) == []

    def test_reversal_emits_short(self):
        engine = IndicatorEngine(history_size=10, rsi_period=2, sma_short_period=2, sma_long_period=5)
        strategy = SmaCrossoverStrategy(engine)
        signals = _run(strategy, engine, "X", [100.0, 101.0, 102.0, 103.0, 104.0, 90.0, 80.0])
        assert [(i, s.direction) for i, s in signals] == [(4, LONG), (5, SHORT)]

    def test_equal_averages_are_short(self):
        engine = IndicatorEngine(history_size=10, rsi_period=2, sma_short_period=2, sma_long_period=5)
        strategy = SmaCrossoverStrategy(engine)
        signals = _run(strategy, engine, "X", [100.0] * 5)
        assert [s.direction for _, s in signals] == [SHORT]


class TestRsiEmaStrategy:
    """Tests for RsiEmaStrategy."""

    def _small_engine(self):
        return IndicatorEngine(
            history_size=10,
            ema_fast_period=2,
            ema_slow_period=4,
            rsi_period=2,
            sma_short_period=2,
            sma_long_period=4,
        )

    def test_no_signal_without_rsi(self):
        engine = IndicatorEngine()
        strategy = RsiEmaStrategy(engine)
        assert _run(strategy, engine, "X", [100.0 + i for i in range(14)]) == []

    def test_strong_uptrend_is_overbought(self):
        """EMA fast above slow but RSI pinned at 100 never qualifies as LONG."""
        engine = IndicatorEngine()
        strategy = RsiEmaStrategy(engine)
        assert _run(strategy, engine, "X", [100.0 + i for i in range(40)]) == []
        snap = engine.get_indicators("X")
        assert snap.ema_fast > snap.ema_slow

    def test_long_then_short(self):
        """Dip and recovery with rising RSI is LONG; fast EMA below slow with RSI 100 is SHORT."""
        engine = self._small_engine()
        strategy = RsiEmaStrategy(engine, rsi_buy_max=70.0, rsi_sell_min=80.0)
        prices = [10.0, 9.0, 8.0, 10.0, 11.0, 5.0, 5.1, 5.2]
        signals = _run(strategy, engine, "X", prices)
        assert [(i, s.direction) for i, s in signals] == [(3, LONG), (7, SHORT)]
        assert signals[0][1].ref_price == 10.0

    def test_buy_threshold_blocks_long(self):
        """Same recovery with the default RSI ceiling (60) is not a LONG."""
        engine = self._small_engine()
        strategy = RsiEmaStrategy(engine, rsi_sell_min=80.0)
        signals = _run(strategy, engine, "X", [10.0, 9.0, 8.0, 10.0])
        assert signals == []

    def test_random_walk_never_repeats_direction(self):
        engine = IndicatorEngine()
        strategy = RsiEmaStrategy(engine)
        rng = random.Random(7)
        price = 100.0
        prices = []
        for _ in range(2000):
            price = max(1.0, price * (1.0 + rng.uniform(-0.01, 0.01)))
            prices.append(price)
        directions = [s.direction for _, s in _run(strategy, engine, "X", prices)]
        assert directions, "expected at least one signal on a 2000-step walk"
        for prev, cur in zip(directions, directions[1:]):
            assert prev != cur

    def test_signal_carries_timestamp(self):
        engine = self._small_engine()
        strategy = RsiEmaStrategy(engine, rsi_buy_max=70.0, rsi_sell_min=80.0)
        for p in (10.0, 9.0, 8.0, 10.0):
            engine.push_price("X", p)
            ts = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
            sig = strategy.check_signal("X", ts)
        assert sig is not None
        assert sig.ts == ts
        assert sig.symbol == "X"
