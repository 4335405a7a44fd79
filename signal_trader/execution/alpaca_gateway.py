"""Alpaca equities execution over the trading REST API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from signal_trader.execution.order import (
    AccountSnapshot,
    ExternalPosition,
    OrderRequest,
    OrderResult,
    VenueRules,
)

logger = logging.getLogger(__name__)

LIVE_URL = "https://api.alpaca.markets/v2"
PAPER_URL = "https://paper-api.alpaca.markets/v2"
EQUITY_RULES = VenueRules(min_qty=1.0, qty_step=1.0)
PENDING_STATUSES = {"accepted", "new", "pending_new"}


class AlpacaGateway:
    """Whole-share market orders; sales of positions opened today are restricted."""

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        paper: bool = True,
        extended_hours: bool = False,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.extended_hours = extended_hours
        self.base_url = base_url or (PAPER_URL if paper else LIVE_URL)
        headers = {"APCA-API-KEY-ID": api_key, "APCA-API-SECRET-KEY": api_secret}
        self._client = client or httpx.AsyncClient(base_url=self.base_url, headers=headers, timeout=10.0)
        mode = "PAPER" if paper else "LIVE (REAL MONEY)"
        logger.info("alpaca gateway initialized mode=%s url=%s extended_hours=%s", mode, self.base_url, extended_hours)

    async def _request(self, method: str, path: str, body: dict[str, Any] | None = None) -> Any:
        response = await self._client.request(method, path, json=body)
        response.raise_for_status()
        return response.json()

    async def load_markets(self) -> None:
        return None

    def venue_rules(self, symbol: str) -> VenueRules:
        return EQUITY_RULES

    async def fetch_account(self) -> AccountSnapshot:
        account = await self._request("GET", "/account")
        return AccountSnapshot(
            buying_power=float(account["buying_power"]),
            total_capital=float(account.get("equity") or account.get("portfolio_value") or 0.0),
        )

    async def fetch_positions(self) -> list[ExternalPosition]:
        positions = await self._request("GET", "/positions")
        return [
            ExternalPosition(
                symbol=p["symbol"],
                quantity=float(p["qty"]),
                avg_entry_price=float(p["avg_entry_price"]),
                current_price=float(p["current_price"]),
            )
            for p in positions
        ]

    async def place_order(self, request: OrderRequest) -> OrderResult | None:
        body = {
            "symbol": request.symbol,
            "qty": str(int(request.quantity)),
            "side": request.side.lower(),
            "type": "market",
            "time_in_force": "day",
            "extended_hours": self.extended_hours,
        }
        try:
            order = await self._request("POST", "/orders", body)
        except httpx.HTTPStatusError as exc:
            detail = _error_detail(exc.response)
            message = str(detail.get("message", ""))
            if exc.response.status_code == 403 and "pattern day" in message.lower():
                logger.warning("alpaca order rejected reason=same_day_sale symbol=%s msg=%s", request.symbol, message)
            else:
                logger.error(
                    "alpaca order rejected symbol=%s side=%s status=%s msg=%s",
                    request.symbol,
                    request.side,
                    exc.response.status_code,
                    message,
                )
            return None
        except httpx.HTTPError as exc:
            logger.error("alpaca order failed symbol=%s side=%s error=%s", request.symbol, request.side, exc)
            return None

        status = str(order.get("status", ""))
        filled_qty = float(order.get("filled_qty") or 0.0)
        avg_price = order.get("filled_avg_price")
        if filled_qty == 0 and status in PENDING_STATUSES:
            # Accepted but not yet reported filled: account at the requested size.
            return OrderResult(order_id=order["id"], status=status)
        return OrderResult(
            order_id=order["id"],
            status=status,
            filled_qty=filled_qty,
            fill_price=float(avg_price) if avg_price else None,
        )

    async def close(self) -> None:
        await self._client.aclose()


def _error_detail(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {"message": response.text}
    return body if isinstance(body, dict) else {"message": str(body)}
