"""Position and trade bookkeeping: the system of record for holdings and P&L."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, timezone
import math
import threading
import time
from typing import Callable, Iterable

from signal_trader.config.constants import DEFAULT_MAX_PNL_TO_COST_RATIO, OPENED_DATE_POLICIES
from signal_trader.execution.order import ExternalPosition
from signal_trader.logging.loggers import get_trade_logger


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


@dataclass(frozen=True)
class Position:
    """Net long holding in one symbol."""

    symbol: str
    quantity: float
    avg_price: float
    current_price: float
    unrealized_pnl: float
    realized_pnl: float
    opened_date: date


@dataclass(frozen=True)
class Trade:
    """Immutable record of one accepted fill."""

    id: str
    timestamp: int
    symbol: str
    side: str
    quantity: float
    price: float
    pnl: float | None = None


@dataclass(frozen=True)
class LedgerStats:
    """Aggregate performance over the trade log."""

    total_trades: int
    closed_trades: int
    wins: int
    losses: int
    win_rate: float
    total_pnl: float
    active_positions: int


def _usable(value: float) -> bool:
    return math.isfinite(value) and value > 0


def _unrealized(current_price: float, avg_price: float, quantity: float) -> float:
    if avg_price <= 0:
        return 0.0
    return (current_price - avg_price) * quantity


class PositionLedger:
    """Owns every Position and Trade; all mutation goes through its methods.

    Positions are stored as frozen snapshots and replaced wholesale under a
    lock, so callers only ever see a fully applied fill or price update.
    """

    def __init__(
        self,
        same_day_sale_restricted: bool = False,
        synced_opened_date: str = "assume_today",
        max_pnl_to_cost_ratio: float = DEFAULT_MAX_PNL_TO_COST_RATIO,
        today: Callable[[], date] = utc_today,
    ) -> None:
        if synced_opened_date not in OPENED_DATE_POLICIES:
            raise ValueError(f"unknown synced_opened_date policy: {synced_opened_date}")
        self.same_day_sale_restricted = same_day_sale_restricted
        self.synced_opened_date = synced_opened_date
        self.max_pnl_to_cost_ratio = max_pnl_to_cost_ratio
        self._today = today
        self._positions: dict[str, Position] = {}
        self._trades: list[Trade] = []
        self._trade_id_counter = 0
        self._lock = threading.Lock()
        self.logger = get_trade_logger()

    def record_trade(self, symbol: str, side: str, quantity: float, price: float) -> Trade:
        """Apply a fill to the symbol's position and append a trade record."""
        if side not in ("BUY", "SELL"):
            raise ValueError(f"unknown side: {side}")
        if not (_usable(quantity) and _usable(price)):
            raise ValueError(f"quantity and price must be finite and > 0 (qty={quantity!r} price={price!r})")

        with self._lock:
            today = self._today()
            position = self._positions.get(symbol) or Position(
                symbol=symbol,
                quantity=0.0,
                avg_price=0.0,
                current_price=price,
                unrealized_pnl=0.0,
                realized_pnl=0.0,
                opened_date=today,
            )

            pnl = None
            if side == "BUY":
                opened_date = today if position.quantity == 0 else position.opened_date
                total_cost = (position.avg_price * position.quantity) + (price * quantity)
                new_qty = position.quantity + quantity
                new_avg = total_cost / new_qty if new_qty > 0 else 0.0
                realized = position.realized_pnl
                self.logger.info(
                    "position increased symbol=%s qty=%.8f price=%.4f avg_price=%.4f opened=%s",
                    symbol,
                    quantity,
                    price,
                    new_avg,
                    opened_date.isoformat(),
                )
            else:
                if position.quantity <= 0:
                    raise ValueError(f"cannot SELL {symbol}: no position held")
                if quantity > position.quantity:
                    self.logger.warning(
                        "sell clamped symbol=%s requested=%.8f held=%.8f",
                        symbol,
                        quantity,
                        position.quantity,
                    )
                    quantity = position.quantity

                opened_date = position.opened_date
                new_avg = position.avg_price
                new_qty = position.quantity - quantity
                realized = position.realized_pnl
                pnl = self._plausible_pnl(symbol, (price - position.avg_price) * quantity, position.avg_price, quantity)
                if pnl is not None:
                    realized += pnl
                    self.logger.info(
                        "position reduced symbol=%s qty=%.8f price=%.4f pnl=%.2f",
                        symbol,
                        quantity,
                        price,
                        pnl,
                    )
                if new_qty <= 0:
                    new_qty = 0.0
                    new_avg = 0.0

            self._positions[symbol] = Position(
                symbol=symbol,
                quantity=new_qty,
                avg_price=new_avg,
                current_price=price,
                unrealized_pnl=_unrealized(price, new_avg, new_qty),
                realized_pnl=realized,
                opened_date=opened_date,
            )

            self._trade_id_counter += 1
            trade = Trade(
                id=f"T{self._trade_id_counter}",
                timestamp=int(time.time() * 1000),
                symbol=symbol,
                side=side,
                quantity=quantity,
                price=price,
                pnl=pnl,
            )
            self._trades.append(trade)
            return trade

    def _plausible_pnl(self, symbol: str, pnl: float, avg_price: float, quantity: float) -> float | None:
        """Drop realized P&L that cannot come from a sane cost basis."""
        cost_basis = avg_price * quantity
        if avg_price <= 0 or abs(pnl) > cost_basis * self.max_pnl_to_cost_ratio:
            self.logger.error(
                "pnl dropped reason=implausible symbol=%s pnl=%.2f avg_price=%.8f qty=%.8f",
                symbol,
                pnl,
                avg_price,
                quantity,
            )
            return None
        return pnl

    def can_sell_today(self, symbol: str) -> bool:
        """False when flat, or when same-day sales are restricted and the position opened today."""
        position = self._positions.get(symbol)
        if position is None or position.quantity <= 0:
            return False
        if not self.same_day_sale_restricted:
            return True
        return position.opened_date != self._today()

    def update_price(self, symbol: str, price: float) -> None:
        """Mark an open position to `price`; flat or unknown symbols are ignored."""
        if not _usable(price):
            self.logger.warning("mark dropped reason=invalid_price symbol=%s price=%r", symbol, price)
            return
        with self._lock:
            position = self._positions.get(symbol)
            if position is None or position.quantity <= 0:
                return
            self._positions[symbol] = replace(
                position,
                current_price=price,
                unrealized_pnl=_unrealized(price, position.avg_price, position.quantity),
            )

    def get_position(self, symbol: str) -> Position | None:
        return self._positions.get(symbol)

    def held_quantity(self, symbol: str) -> float:
        position = self._positions.get(symbol)
        return position.quantity if position else 0.0

    def get_all_positions(self) -> list[Position]:
        """Non-flat positions only."""
        return [p for p in self._positions.values() if p.quantity > 0]

    def get_trades(self) -> list[Trade]:
        return list(self._trades)

    def get_total_pnl(self) -> float:
        return sum(p.realized_pnl + p.unrealized_pnl for p in self._positions.values())

    def get_stats(self) -> LedgerStats:
        closed = [t for t in self._trades if t.pnl is not None]
        wins = sum(1 for t in closed if t.pnl > 0)
        losses = sum(1 for t in closed if t.pnl < 0)
        return LedgerStats(
            total_trades=len(self._trades),
            closed_trades=len(closed),
            wins=wins,
            losses=losses,
            win_rate=(wins / len(closed)) * 100.0 if closed else 0.0,
            total_pnl=self.get_total_pnl(),
            active_positions=len(self.get_all_positions()),
        )

    def sync_positions(self, external_positions: Iterable[ExternalPosition]) -> list[Position]:
        """Seed positions from broker-reported holdings after a restart."""
        synced: list[Position] = []
        with self._lock:
            today = self._today()
            for ext in external_positions:
                if not _usable(ext.quantity):
                    self.logger.warning("sync skipped reason=invalid_qty symbol=%s qty=%s", ext.symbol, ext.quantity)
                    continue

                opened_date = self._synced_opened_date(ext, today)
                avg_price = ext.avg_entry_price if _usable(ext.avg_entry_price) else 0.0
                current_price = ext.current_price if _usable(ext.current_price) else avg_price
                position = Position(
                    symbol=ext.symbol,
                    quantity=ext.quantity,
                    avg_price=avg_price,
                    current_price=current_price,
                    unrealized_pnl=_unrealized(current_price, avg_price, ext.quantity),
                    realized_pnl=0.0,
                    opened_date=opened_date,
                )
                self._positions[ext.symbol] = position
                synced.append(position)
                self.logger.warning(
                    "position synced symbol=%s qty=%.8f avg_price=%.4f opened=%s sellable_today=%s",
                    position.symbol,
                    position.quantity,
                    position.avg_price,
                    opened_date.isoformat(),
                    not self.same_day_sale_restricted or opened_date != today,
                )
        return synced

    def _synced_opened_date(self, ext: ExternalPosition, today: date) -> date:
        if self.synced_opened_date == "assume_yesterday":
            return today - timedelta(days=1)
        if self.synced_opened_date == "reported" and ext.opened_date is not None:
            return ext.opened_date
        return today
