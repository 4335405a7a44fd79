"""Signal-to-order orchestration: sizing, pre-trade validation, submission, bookkeeping."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
import logging

from signal_trader.accounting.position_ledger import PositionLedger, Trade
from signal_trader.config.constants import DEFAULT_BUYING_POWER_BUFFER
from signal_trader.execution.order import OrderGateway, OrderRequest, OrderState
from signal_trader.risk.position_sizer import PositionSizer, floor_to_step

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderTicket:
    """Final outcome of one candidate order."""

    symbol: str
    side: str
    state: OrderState
    quantity: float = 0.0
    reason: str = ""
    order_id: str | None = None
    trade: Trade | None = None


class OrderCoordinator:
    """Turns a directional decision into at most one validated, recorded order.

    BUY orders with no explicit quantity are sized from account capital, the
    configured risk fraction and a stop placed `stop_loss` below the reference
    price; every BUY is then clamped to buying power (minus a safety buffer),
    the max trade notional, and the venue's quantity step and minimum. SELL
    orders are only allowed against a held, same-day-eligible position and are
    clamped to the held quantity. Orders for one symbol run one at a time;
    different symbols do not wait on each other.
    """

    def __init__(
        self,
        ledger: PositionLedger,
        gateway: OrderGateway,
        sizer: PositionSizer,
        risk_per_trade: float,
        stop_loss: float,
        max_trade_notional: float | None = None,
        buying_power_buffer: float = DEFAULT_BUYING_POWER_BUFFER,
    ) -> None:
        self.ledger = ledger
        self.gateway = gateway
        self.sizer = sizer
        self.risk_per_trade = risk_per_trade
        self.stop_loss = stop_loss
        self.max_trade_notional = max_trade_notional
        self.buying_power_buffer = buying_power_buffer
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, symbol: str) -> asyncio.Lock:
        lock = self._locks.get(symbol)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[symbol] = lock
        return lock

    async def submit(
        self,
        symbol: str,
        side: str,
        quantity: float = 0.0,
        reference_price: float | None = None,
    ) -> OrderTicket:
        """Run one order through sizing, validation and submission; never raises."""
        async with self._lock_for(symbol):
            logger.info(
                "order %s symbol=%s side=%s qty=%.8f ref_price=%s",
                OrderState.SIGNAL_RECEIVED.value,
                symbol,
                side,
                quantity,
                reference_price,
            )
            try:
                return await self._submit(symbol, side, quantity, reference_price)
            except Exception:
                logger.exception("order failed reason=internal_error symbol=%s side=%s", symbol, side)
                return OrderTicket(symbol=symbol, side=side, state=OrderState.SKIPPED, reason="internal_error")

    async def _submit(self, symbol: str, side: str, quantity: float, reference_price: float | None) -> OrderTicket:
        if side == "SELL":
            ticket_or_qty = self._validate_sell(symbol, quantity)
        elif side == "BUY":
            ticket_or_qty = await self._validate_buy(symbol, quantity, reference_price)
        else:
            return self._reject(symbol, side, "unknown_side")

        if isinstance(ticket_or_qty, OrderTicket):
            return ticket_or_qty
        qty = ticket_or_qty
        logger.info("order %s symbol=%s side=%s qty=%.8f", OrderState.VALIDATED.value, symbol, side, qty)

        request = OrderRequest(symbol=symbol, side=side, quantity=qty, reference_price=reference_price)
        logger.info("order %s symbol=%s side=%s qty=%.8f", OrderState.SUBMITTED.value, symbol, side, qty)
        try:
            result = await self.gateway.place_order(request)
        except Exception as exc:
            logger.error("skip order reason=gateway_error symbol=%s side=%s error=%s", symbol, side, exc)
            return OrderTicket(symbol=symbol, side=side, state=OrderState.SKIPPED, quantity=qty, reason="gateway_error")

        if result is None:
            logger.warning("skip order reason=gateway_rejected symbol=%s side=%s qty=%.8f", symbol, side, qty)
            return OrderTicket(symbol=symbol, side=side, state=OrderState.SKIPPED, quantity=qty, reason="gateway_rejected")

        filled_qty = result.filled_qty if result.filled_qty is not None else qty
        if filled_qty <= 0:
            logger.warning("skip order reason=not_filled symbol=%s order_id=%s", symbol, result.order_id)
            return OrderTicket(
                symbol=symbol,
                side=side,
                state=OrderState.SKIPPED,
                quantity=qty,
                reason="not_filled",
                order_id=result.order_id,
            )

        fill_price = result.fill_price or reference_price
        if fill_price is None:
            position = self.ledger.get_position(symbol)
            fill_price = position.current_price if position else None
        if not fill_price or fill_price <= 0:
            logger.error("fill unrecorded reason=no_fill_price symbol=%s order_id=%s", symbol, result.order_id)
            return OrderTicket(
                symbol=symbol,
                side=side,
                state=OrderState.SKIPPED,
                quantity=filled_qty,
                reason="no_fill_price",
                order_id=result.order_id,
            )

        trade = self.ledger.record_trade(symbol, side, filled_qty, fill_price)
        logger.info(
            "order %s symbol=%s side=%s qty=%.8f price=%.4f order_id=%s status=%s",
            OrderState.FILLED.value,
            symbol,
            side,
            trade.quantity,
            fill_price,
            result.order_id,
            result.status,
        )
        return OrderTicket(
            symbol=symbol,
            side=side,
            state=OrderState.FILLED,
            quantity=trade.quantity,
            reason="filled",
            order_id=result.order_id,
            trade=trade,
        )

    def _validate_sell(self, symbol: str, quantity: float) -> OrderTicket | float:
        held = self.ledger.held_quantity(symbol)
        if held <= 0:
            return self._reject(symbol, "SELL", "no_position")
        if not self.ledger.can_sell_today(symbol):
            position = self.ledger.get_position(symbol)
            return self._reject(symbol, "SELL", "same_day_sale", opened=position.opened_date.isoformat())

        if quantity <= 0 or quantity > held:
            if quantity > held:
                logger.warning("sell adjusted symbol=%s requested=%.8f available=%.8f", symbol, quantity, held)
            quantity = held
        logger.info("order %s symbol=%s side=SELL qty=%.8f", OrderState.SIZED.value, symbol, quantity)
        return quantity

    async def _validate_buy(self, symbol: str, quantity: float, reference_price: float | None) -> OrderTicket | float:
        if reference_price is None or reference_price <= 0:
            return self._reject(symbol, "BUY", "no_reference_price")

        try:
            account = await self.gateway.fetch_account()
        except Exception as exc:
            logger.error("skip order reason=account_unavailable symbol=%s error=%s", symbol, exc)
            return OrderTicket(symbol=symbol, side="BUY", state=OrderState.SKIPPED, reason="account_unavailable")

        if quantity <= 0:
            stop_price = reference_price * (1.0 - self.stop_loss)
            quantity = self.sizer.size(account.total_capital, self.risk_per_trade, reference_price, stop_price)
            if quantity <= 0:
                return self._reject(symbol, "BUY", "zero_risk", capital=account.total_capital)
            logger.info(
                "risk sizing symbol=%s capital=%.2f max_loss=%.2f stop=%.4f qty=%.8f",
                symbol,
                account.total_capital,
                account.total_capital * self.risk_per_trade,
                stop_price,
                quantity,
            )
        logger.info("order %s symbol=%s side=BUY qty=%.8f", OrderState.SIZED.value, symbol, quantity)

        if self.max_trade_notional and quantity * reference_price > self.max_trade_notional:
            quantity = self.max_trade_notional / reference_price

        affordable = max(0.0, account.buying_power * self.buying_power_buffer) / reference_price
        limited_by_funds = affordable < quantity
        if limited_by_funds:
            logger.warning(
                "buy adjusted symbol=%s requested=%.8f affordable=%.8f buying_power=%.2f",
                symbol,
                quantity,
                affordable,
                account.buying_power,
            )
            quantity = affordable

        rules = self.gateway.venue_rules(symbol)
        quantity = floor_to_step(quantity, rules.qty_step)
        if quantity <= 0 or quantity < rules.min_qty:
            reason = "insufficient_buying_power" if limited_by_funds else "below_min_qty"
            return self._reject(
                symbol,
                "BUY",
                reason,
                qty=quantity,
                min_qty=rules.min_qty,
                buying_power=account.buying_power,
            )
        return quantity

    def _reject(self, symbol: str, side: str, reason: str, **detail: object) -> OrderTicket:
        extra = " ".join(f"{k}={v}" for k, v in detail.items())
        logger.warning("reject order reason=%s symbol=%s side=%s %s", reason, symbol, side, extra)
        return OrderTicket(symbol=symbol, side=side, state=OrderState.REJECTED, reason=reason)
