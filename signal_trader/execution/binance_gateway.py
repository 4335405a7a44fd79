"""Binance spot execution over the signed REST API."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from typing import Any, Iterable
from urllib.parse import urlencode

import httpx

from signal_trader.config.constants import DEFAULT_QUOTE_ASSET
from signal_trader.execution.order import (
    AccountSnapshot,
    ExternalPosition,
    OrderRequest,
    OrderResult,
    VenueRules,
)
from signal_trader.risk.position_sizer import floor_to_step, step_decimals

logger = logging.getLogger(__name__)

LIVE_URL = "https://api.binance.com"
TESTNET_URL = "https://testnet.binance.vision"
FALLBACK_RULES = VenueRules(min_qty=0.0, qty_step=0.00000001)


def sign(api_secret: str, query: str) -> str:
    """HMAC-SHA256 signature of the url-encoded query string."""
    return hmac.new(api_secret.encode("utf-8"), query.encode("utf-8"), hashlib.sha256).hexdigest()


def venue_symbol(symbol: str) -> str:
    return symbol.replace("/", "").upper()


class BinanceGateway:
    """Market orders, balances and lot-size rules for Binance spot (no same-day-sale rule)."""

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        symbols: Iterable[str] = (),
        quote_asset: str = DEFAULT_QUOTE_ASSET,
        testnet: bool = True,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
        recv_window: int = 5000,
    ) -> None:
        self.api_key = api_key
        self.api_secret = api_secret
        self.symbols = list(symbols)
        self.quote_asset = quote_asset
        self.recv_window = recv_window
        self.base_url = base_url or (TESTNET_URL if testnet else LIVE_URL)
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=10.0)
        self._rules: dict[str, VenueRules] = {}
        mode = "TESTNET" if testnet else "LIVE (REAL MONEY)"
        logger.info("binance gateway initialized mode=%s url=%s", mode, self.base_url)

    async def _request(self, method: str, path: str, params: dict[str, Any] | None = None, signed: bool = False) -> Any:
        params = dict(params or {})
        headers = {"X-MBX-APIKEY": self.api_key}
        if signed:
            params["timestamp"] = int(time.time() * 1000)
            params["recvWindow"] = self.recv_window
            query = urlencode(params)
            params["signature"] = sign(self.api_secret, query)
        response = await self._client.request(method, path, params=params, headers=headers)
        response.raise_for_status()
        return response.json()

    async def load_markets(self) -> None:
        """Cache LOT_SIZE constraints for the configured symbols."""
        if not self.symbols:
            return
        names = json.dumps([venue_symbol(s) for s in self.symbols], separators=(",", ":"))
        info = await self._request("GET", "/api/v3/exchangeInfo", {"symbols": names})
        by_venue = {venue_symbol(s): s for s in self.symbols}
        for entry in info.get("symbols", []):
            symbol = by_venue.get(entry["symbol"])
            if symbol is None:
                continue
            lot = next((f for f in entry.get("filters", []) if f.get("filterType") == "LOT_SIZE"), None)
            if lot is None:
                continue
            self._rules[symbol] = VenueRules(
                min_qty=float(lot["minQty"]),
                qty_step=float(lot["stepSize"]),
            )
            logger.info("market loaded symbol=%s min_qty=%s step=%s", symbol, lot["minQty"], lot["stepSize"])

    def venue_rules(self, symbol: str) -> VenueRules:
        rules = self._rules.get(symbol)
        if rules is None:
            logger.warning("market rules missing symbol=%s using fallback", symbol)
            return FALLBACK_RULES
        return rules

    async def fetch_account(self) -> AccountSnapshot:
        account = await self._request("GET", "/api/v3/account", signed=True)
        quote = next((b for b in account.get("balances", []) if b["asset"] == self.quote_asset), None)
        free = float(quote["free"]) if quote else 0.0
        locked = float(quote["locked"]) if quote else 0.0
        return AccountSnapshot(buying_power=free, total_capital=free + locked)

    async def fetch_positions(self) -> list[ExternalPosition]:
        """Spot holdings of configured base assets; entry price is unknown on spot."""
        account = await self._request("GET", "/api/v3/account", signed=True)
        wanted = {s.split("/")[0]: s for s in self.symbols}
        positions = []
        for bal in account.get("balances", []):
            qty = float(bal["free"]) + float(bal["locked"])
            symbol = wanted.get(bal["asset"])
            if qty <= 0 or symbol is None:
                continue
            try:
                ticker = await self._request("GET", "/api/v3/ticker/price", {"symbol": venue_symbol(symbol)})
            except httpx.HTTPError as exc:
                logger.warning("position skipped reason=no_ticker symbol=%s error=%s", symbol, exc)
                continue
            positions.append(
                ExternalPosition(
                    symbol=symbol,
                    quantity=qty,
                    avg_entry_price=0.0,
                    current_price=float(ticker["price"]),
                )
            )
        return positions

    async def place_order(self, request: OrderRequest) -> OrderResult | None:
        rules = self.venue_rules(request.symbol)
        # Never round up: a full-balance SELL must not exceed the free balance.
        qty = floor_to_step(request.quantity, rules.qty_step)
        if qty <= 0:
            logger.error("binance order rejected reason=qty_below_step symbol=%s qty=%.10f", request.symbol, request.quantity)
            return None
        params = {
            "symbol": venue_symbol(request.symbol),
            "side": request.side,
            "type": "MARKET",
            "quantity": f"{qty:.{step_decimals(rules.qty_step)}f}",
            "newOrderRespType": "FULL",
        }
        try:
            order = await self._request("POST", "/api/v3/order", params, signed=True)
        except httpx.HTTPStatusError as exc:
            detail = _error_detail(exc.response)
            logger.error(
                "binance order rejected symbol=%s side=%s qty=%s code=%s msg=%s",
                request.symbol,
                request.side,
                params["quantity"],
                detail.get("code"),
                detail.get("msg"),
            )
            return None
        except httpx.HTTPError as exc:
            logger.error("binance order failed symbol=%s side=%s error=%s", request.symbol, request.side, exc)
            return None

        executed = float(order.get("executedQty", 0.0))
        quote_spent = float(order.get("cummulativeQuoteQty", 0.0))
        return OrderResult(
            order_id=str(order["orderId"]),
            status=str(order.get("status", "")).lower(),
            filled_qty=executed,
            fill_price=quote_spent / executed if executed > 0 else None,
        )

    async def close(self) -> None:
        await self._client.aclose()


def _error_detail(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {"code": response.status_code, "msg": response.text}
    return body if isinstance(body, dict) else {"code": response.status_code, "msg": body}
