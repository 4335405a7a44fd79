"""RSI + EMA trend-following signal generator."""

from __future__ import annotations

from datetime import datetime, timezone

from signal_trader.config.constants import DEFAULT_RSI_BUY_MAX, DEFAULT_RSI_SELL_MIN
from signal_trader.data.indicators import IndicatorEngine
from signal_trader.strategy.signal import LONG, SHORT, Debouncer, Signal


class RsiEmaStrategy:
    """Emits LONG on fast EMA above slow EMA with rising, not-yet-overbought RSI.

    SHORT is emitted when the fast EMA is below the slow EMA and RSI is above
    the overbought floor. A direction is returned only when it differs from the
    last direction returned for that symbol.
    """

    def __init__(
        self,
        engine: IndicatorEngine,
        rsi_buy_max: float = DEFAULT_RSI_BUY_MAX,
        rsi_sell_min: float = DEFAULT_RSI_SELL_MIN,
    ) -> None:
        self.engine = engine
        self.rsi_buy_max = rsi_buy_max
        self.rsi_sell_min = rsi_sell_min
        self._prev_rsi: dict[str, float] = {}
        self._debouncer = Debouncer()

    def check_signal(self, symbol: str, ts: datetime | None = None) -> Signal | None:
        """Evaluate the latest snapshot for `symbol`; call once per pushed price."""
        snap = self.engine.get_indicators(symbol)
        if not snap.is_ready or snap.last_price is None:
            return None

        current_rsi = snap.rsi
        prev_rsi = self._prev_rsi.get(symbol)
        rsi_rising = prev_rsi is not None and current_rsi > prev_rsi

        direction = None
        if snap.ema_fast > snap.ema_slow and current_rsi < self.rsi_buy_max and rsi_rising:
            direction = LONG
        elif snap.ema_fast < snap.ema_slow and current_rsi > self.rsi_sell_min:
            direction = SHORT

        self._prev_rsi[symbol] = current_rsi

        if self._debouncer.accept(symbol, direction) is None:
            return None
        return Signal(
            ts=ts or datetime.now(timezone.utc),
            symbol=symbol,
            direction=direction,
            reason=f"ema_fast={snap.ema_fast:.4f} ema_slow={snap.ema_slow:.4f} rsi={current_rsi:.2f}",
            ref_price=snap.last_price,
        )
