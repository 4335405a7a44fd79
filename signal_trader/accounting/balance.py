"""Balance state for the simulated paper account."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class AccountBalance:
    """Tracks free quote currency plus base-asset holdings per symbol."""

    quote_free: float
    holdings: dict[str, float] = field(default_factory=dict)

    def held(self, symbol: str) -> float:
        return self.holdings.get(symbol, 0.0)

    def equity(self, mark_prices: dict[str, float]) -> float:
        """Total equity marked to the given prices; unmarked holdings count as zero."""
        return self.quote_free + sum(qty * mark_prices.get(sym, 0.0) for sym, qty in self.holdings.items())
