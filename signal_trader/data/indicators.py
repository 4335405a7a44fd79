"""Indicator helpers and the per-symbol incremental indicator engine."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
import logging
import math
from statistics import mean
from typing import Deque, Sequence

from signal_trader.config.constants import (
    DEFAULT_EMA_FAST,
    DEFAULT_EMA_SLOW,
    DEFAULT_HISTORY_SIZE,
    DEFAULT_RSI_PERIOD,
    DEFAULT_SMA_LONG,
    DEFAULT_SMA_SHORT,
)

logger = logging.getLogger(__name__)


def ema_step(price: float, prev_ema: float | None, period: int) -> float:
    """Advance an EMA by one observation; the first observation seeds it."""
    if period <= 0:
        raise ValueError("period must be > 0")
    if prev_ema is None:
        return price
    k = 2.0 / (period + 1.0)
    return (price * k) + (prev_ema * (1.0 - k))


def sma(values: Sequence[float], period: int) -> float | None:
    """Simple mean of the last `period` values, None until the window is full."""
    if period <= 0:
        raise ValueError("period must be > 0")
    if len(values) < period:
        return None
    return mean(values[-period:])


def rsi(closes: Sequence[float], period: int) -> float | None:
    """Compute RSI using simple average gains/losses over the last `period` deltas."""
    if period <= 0:
        raise ValueError("period must be > 0")
    if len(closes) < period + 1:
        return None

    gains = 0.0
    losses = 0.0
    for i in range(len(closes) - period, len(closes)):
        delta = closes[i] - closes[i - 1]
        if delta > 0:
            gains += delta
        else:
            losses -= delta

    avg_gain = gains / period
    avg_loss = losses / period
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - (100.0 / (1.0 + rs))


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Read-only view of one symbol's indicators; None means undefined."""

    symbol: str
    last_price: float | None
    ema_fast: float | None
    ema_slow: float | None
    sma_short: float | None
    sma_long: float | None
    rsi: float | None
    prices_count: int

    @property
    def is_ready(self) -> bool:
        return self.ema_fast is not None and self.ema_slow is not None and self.rsi is not None


@dataclass
class _SymbolState:
    prices: Deque[float]
    ema_fast: float | None = None
    ema_slow: float | None = None


class IndicatorEngine:
    """Keeps a capped price history per symbol and updates EMAs on every push."""

    def __init__(
        self,
        history_size: int = DEFAULT_HISTORY_SIZE,
        ema_fast_period: int = DEFAULT_EMA_FAST,
        ema_slow_period: int = DEFAULT_EMA_SLOW,
        rsi_period: int = DEFAULT_RSI_PERIOD,
        sma_short_period: int = DEFAULT_SMA_SHORT,
        sma_long_period: int = DEFAULT_SMA_LONG,
    ) -> None:
        if history_size < max(rsi_period + 1, sma_long_period, sma_short_period):
            raise ValueError("history_size too small for configured indicator windows")
        self.history_size = history_size
        self.ema_fast_period = ema_fast_period
        self.ema_slow_period = ema_slow_period
        self.rsi_period = rsi_period
        self.sma_short_period = sma_short_period
        self.sma_long_period = sma_long_period
        self._states: dict[str, _SymbolState] = {}

    def push_price(self, symbol: str, price: float) -> bool:
        """Append a price and update running EMAs; returns False if the price was unusable."""
        if not math.isfinite(price) or price <= 0:
            logger.warning("drop price reason=invalid symbol=%s price=%r", symbol, price)
            return False

        state = self._states.get(symbol)
        if state is None:
            state = _SymbolState(prices=deque(maxlen=self.history_size))
            self._states[symbol] = state

        state.prices.append(price)
        state.ema_fast = ema_step(price, state.ema_fast, self.ema_fast_period)
        state.ema_slow = ema_step(price, state.ema_slow, self.ema_slow_period)
        return True

    def get_indicators(self, symbol: str) -> IndicatorSnapshot:
        """Return the current indicator snapshot without touching engine state."""
        state = self._states.get(symbol)
        if state is None:
            return IndicatorSnapshot(
                symbol=symbol,
                last_price=None,
                ema_fast=None,
                ema_slow=None,
                sma_short=None,
                sma_long=None,
                rsi=None,
                prices_count=0,
            )

        prices = list(state.prices)
        return IndicatorSnapshot(
            symbol=symbol,
            last_price=prices[-1],
            ema_fast=state.ema_fast,
            ema_slow=state.ema_slow,
            sma_short=sma(prices, self.sma_short_period),
            sma_long=sma(prices, self.sma_long_period),
            rsi=rsi(prices, self.rsi_period),
            prices_count=len(prices),
        )

    def symbols(self) -> list[str]:
        return list(self._states)
