"""Signal models shared between strategy and engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

LONG = "LONG"
SHORT = "SHORT"


@dataclass(frozen=True)
class Signal:
    """Directional trading signal emitted by a signal generator."""

    ts: datetime
    symbol: str
    direction: str
    reason: str
    ref_price: float

    @property
    def side(self) -> str:
        """Order side implied by the direction."""
        return "BUY" if self.direction == LONG else "SELL"


class Debouncer:
    """Remembers the last returned direction per symbol and suppresses repeats."""

    def __init__(self) -> None:
        self._last: dict[str, str] = {}

    def accept(self, symbol: str, direction: str | None) -> str | None:
        """Return `direction` only when it differs from the last one returned."""
        if direction is None or direction == self._last.get(symbol):
            return None
        self._last[symbol] = direction
        return direction

    def last(self, symbol: str) -> str | None:
        return self._last.get(symbol)
