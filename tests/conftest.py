"""
Shared test fixtures for signal_trader tests.

Provides reusable fixtures for:
- A controllable "today" clock for same-day-sale checks
- Fresh position ledgers (restricted and unrestricted venues)
- Mock order gateways with configurable account and venue rules
"""

from datetime import date, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from signal_trader.accounting.position_ledger import PositionLedger
from signal_trader.execution.order import AccountSnapshot, OrderResult, VenueRules
from signal_trader.execution.order_coordinator import OrderCoordinator
from signal_trader.risk.position_sizer import PositionSizer


class Clock:
    """Callable returning a settable date."""

    def __init__(self, today: date) -> None:
        self.today = today

    def __call__(self) -> date:
        return self.today

    def advance(self, days: int = 1) -> None:
        self.today += timedelta(days=days)


# ---------------------------------------------------------------------------
# Ledger fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock():
    return Clock(date(2026, 10, 18))


@pytest.fixture
def ledger(clock):
    """Ledger for a venue without same-day-sale restrictions (crypto spot)."""
    return PositionLedger(same_day_sale_restricted=False, today=clock)


@pytest.fixture
def restricted_ledger(clock):
    """Ledger for a venue that forbids selling a position on the day it opened."""
    return PositionLedger(same_day_sale_restricted=True, today=clock)


# ---------------------------------------------------------------------------
# Gateway fixtures
# ---------------------------------------------------------------------------


def _make_gateway(
    buying_power: float = 50.0,
    total_capital: float = 50.0,
    min_qty: float = 0.00001,
    qty_step: float = 0.00001,
    result: OrderResult | None = None,
):
    """MagicMock gateway whose async methods are AsyncMocks."""
    gateway = MagicMock()
    gateway.fetch_account = AsyncMock(
        return_value=AccountSnapshot(buying_power=buying_power, total_capital=total_capital)
    )
    gateway.fetch_positions = AsyncMock(return_value=[])
    gateway.load_markets = AsyncMock(return_value=None)
    gateway.close = AsyncMock(return_value=None)
    gateway.venue_rules.return_value = VenueRules(min_qty=min_qty, qty_step=qty_step)
    gateway.place_order = AsyncMock(return_value=result or OrderResult(order_id="ord-1", status="filled"))
    return gateway


@pytest.fixture
def gateway():
    return _make_gateway()


@pytest.fixture
def coordinator(ledger, gateway):
    return OrderCoordinator(
        ledger=ledger,
        gateway=gateway,
        sizer=PositionSizer(),
        risk_per_trade=0.02,
        stop_loss=0.05,
    )


@pytest.fixture
def make_gateway():
    """Factory for mock gateways with custom account and venue rules."""
    return _make_gateway
