"""Normalized order and account models exchanged with order gateways."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Protocol


class OrderState(str, Enum):
    """Lifecycle of one candidate order inside the coordinator."""

    SIGNAL_RECEIVED = "SIGNAL_RECEIVED"
    SIZED = "SIZED"
    VALIDATED = "VALIDATED"
    SUBMITTED = "SUBMITTED"
    FILLED = "FILLED"
    REJECTED = "REJECTED"
    SKIPPED = "SKIPPED"


@dataclass(frozen=True)
class OrderRequest:
    """Validated market order handed to a gateway."""

    symbol: str
    side: str
    quantity: float
    reference_price: float | None = None


@dataclass(frozen=True)
class OrderResult:
    """Gateway acknowledgement; fill fields are None when the venue did not report them."""

    order_id: str
    status: str
    filled_qty: float | None = None
    fill_price: float | None = None


@dataclass(frozen=True)
class Fill:
    """Simulated market fill (possibly partial)."""

    order_id: str
    price: float
    qty: float
    fee: float
    is_partial: bool


@dataclass(frozen=True)
class AccountSnapshot:
    """Capital available to size and fund BUY orders."""

    buying_power: float
    total_capital: float


@dataclass(frozen=True)
class VenueRules:
    """Per-symbol order constraints of a venue."""

    min_qty: float
    qty_step: float


@dataclass(frozen=True)
class ExternalPosition:
    """Holding reported by a broker, used to seed the ledger after a restart."""

    symbol: str
    quantity: float
    avg_entry_price: float
    current_price: float
    opened_date: date | None = None


class OrderGateway(Protocol):
    """Interface every execution venue presents to the order coordinator."""

    async def place_order(self, request: OrderRequest) -> OrderResult | None: ...

    async def fetch_account(self) -> AccountSnapshot: ...

    async def fetch_positions(self) -> list[ExternalPosition]: ...

    async def load_markets(self) -> None: ...

    def venue_rules(self, symbol: str) -> VenueRules: ...

    async def close(self) -> None: ...
