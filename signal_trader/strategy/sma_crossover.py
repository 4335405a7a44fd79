"""Moving-average crossover signal generator."""

from __future__ import annotations

from datetime import datetime, timezone

from signal_trader.data.indicators import IndicatorEngine
from signal_trader.strategy.signal import LONG, SHORT, Debouncer, Signal


class SmaCrossoverStrategy:
    """Emits whichever side the short SMA sits on, once per crossover."""

    def __init__(self, engine: IndicatorEngine) -> None:
        self.engine = engine
        self._debouncer = Debouncer()

    def check_signal(self, symbol: str, ts: datetime | None = None) -> Signal | None:
        snap = self.engine.get_indicators(symbol)
        # Long window not yet full.
        if snap.sma_short is None or snap.sma_long is None or snap.last_price is None:
            return None

        direction = LONG if snap.sma_short > snap.sma_long else SHORT
        if self._debouncer.accept(symbol, direction) is None:
            return None
        return Signal(
            ts=ts or datetime.now(timezone.utc),
            symbol=symbol,
            direction=direction,
            reason=f"sma_short={snap.sma_short:.4f} sma_long={snap.sma_long:.4f}",
            ref_price=snap.last_price,
        )
