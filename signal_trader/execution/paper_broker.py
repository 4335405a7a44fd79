"""Paper execution venue with deterministic simulated market fills."""

from __future__ import annotations

import logging
import random
from uuid import uuid4

from signal_trader.accounting.balance import AccountBalance
from signal_trader.config.constants import DEFAULT_MIN_QTY, DEFAULT_QTY_STEP
from signal_trader.execution.order import (
    AccountSnapshot,
    ExternalPosition,
    Fill,
    OrderRequest,
    OrderResult,
    VenueRules,
)
from signal_trader.risk.position_sizer import floor_to_step

logger = logging.getLogger(__name__)


class PaperGateway:
    """Simulates market order fills against an in-memory balance."""

    def __init__(
        self,
        initial_quote_balance: float,
        fee_rate: float = 0.0,
        slippage_bps: float = 0.0,
        partial_fill_probability: float = 0.0,
        min_partial_fill_ratio: float = 0.5,
        max_partial_fill_ratio: float = 1.0,
        min_qty: float = DEFAULT_MIN_QTY,
        qty_step: float = DEFAULT_QTY_STEP,
        seed: int = 42,
    ) -> None:
        self.fee_rate = fee_rate
        self.slippage_bps = slippage_bps
        self.partial_fill_probability = partial_fill_probability
        self.min_partial_fill_ratio = min_partial_fill_ratio
        self.max_partial_fill_ratio = max_partial_fill_ratio
        self.rules = VenueRules(min_qty=min_qty, qty_step=qty_step)
        self.balance = AccountBalance(quote_free=initial_quote_balance)
        self._marks: dict[str, float] = {}
        self._rng = random.Random(seed)

    def mark(self, symbol: str, price: float) -> None:
        """Record the latest traded price, used when an order carries no reference price."""
        self._marks[symbol] = price

    def simulate_fill(self, order_id: str, side: str, price: float, qty: float) -> Fill:
        """Simulate a market fill, including partials and tiny slippage."""
        is_partial = self._rng.random() < self.partial_fill_probability
        ratio = self._rng.uniform(self.min_partial_fill_ratio, self.max_partial_fill_ratio) if is_partial else 1.0
        fill_qty = floor_to_step(qty * ratio, self.rules.qty_step) if is_partial else qty
        if fill_qty <= 0:
            fill_qty = qty
            is_partial = False

        slip = self.slippage_bps / 10_000.0
        slipped_price = price * (1.0 + slip if side == "BUY" else 1.0 - slip)
        fee = (slipped_price * fill_qty) * self.fee_rate
        return Fill(order_id=order_id, price=slipped_price, qty=fill_qty, fee=fee, is_partial=is_partial)

    async def place_order(self, request: OrderRequest) -> OrderResult | None:
        price = request.reference_price or self._marks.get(request.symbol)
        if price is None or price <= 0 or request.quantity <= 0:
            logger.error("paper order rejected reason=no_price symbol=%s", request.symbol)
            return None

        if request.side == "SELL" and request.quantity > self.balance.held(request.symbol):
            logger.warning(
                "paper order rejected reason=insufficient_holdings symbol=%s qty=%.8f held=%.8f",
                request.symbol,
                request.quantity,
                self.balance.held(request.symbol),
            )
            return None

        fill = self.simulate_fill(str(uuid4()), request.side, price, request.quantity)
        notional = fill.price * fill.qty
        if request.side == "BUY":
            cost = notional + fill.fee
            if cost > self.balance.quote_free:
                logger.warning(
                    "paper order rejected reason=insufficient_funds symbol=%s cost=%.2f free=%.2f",
                    request.symbol,
                    cost,
                    self.balance.quote_free,
                )
                return None
            self.balance.quote_free -= cost
            self.balance.holdings[request.symbol] = self.balance.held(request.symbol) + fill.qty
        else:
            self.balance.quote_free += notional - fill.fee
            remaining = self.balance.held(request.symbol) - fill.qty
            if remaining > 0:
                self.balance.holdings[request.symbol] = remaining
            else:
                self.balance.holdings.pop(request.symbol, None)

        self._marks[request.symbol] = fill.price
        return OrderResult(
            order_id=fill.order_id,
            status="partially_filled" if fill.is_partial else "filled",
            filled_qty=fill.qty,
            fill_price=fill.price,
        )

    async def fetch_account(self) -> AccountSnapshot:
        return AccountSnapshot(
            buying_power=self.balance.quote_free,
            total_capital=self.balance.equity(self._marks),
        )

    async def fetch_positions(self) -> list[ExternalPosition]:
        return [
            ExternalPosition(symbol=sym, quantity=qty, avg_entry_price=0.0, current_price=self._marks.get(sym, 0.0))
            for sym, qty in self.balance.holdings.items()
        ]

    async def load_markets(self) -> None:
        return None

    def venue_rules(self, symbol: str) -> VenueRules:
        return self.rules

    async def close(self) -> None:
        return None
