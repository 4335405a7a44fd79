"""Trade-tick feeds: a synthetic generator for paper runs and live websocket streams."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from abc import ABC, abstractmethod
import asyncio
import json
import logging
import math
import random
from typing import Any, Callable, Iterable, Sequence

import websockets
from websockets.exceptions import WebSocketException

from signal_trader.config.constants import MAX_RECONNECT_ATTEMPTS, RECONNECT_DELAY_SECONDS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Tick:
    """One observed trade print."""

    symbol: str
    price: float
    size: float
    event_time: datetime


TickCallback = Callable[[Tick], None]


class SyntheticTickFeed:
    """Deterministic random-walk ticks, one per symbol per step."""

    def __init__(self, symbols: Sequence[str], seed: int = 42, start_price: float = 100.0) -> None:
        self.symbols = list(symbols)
        self._rng = random.Random(seed)
        self._prices = {s: start_price for s in self.symbols}
        self._ts = datetime.now(timezone.utc).replace(microsecond=0)
        self._step = 0

    def next_ticks(self) -> list[Tick]:
        """Generate the next tick for every symbol with bounded noise around a mild sinusoid."""
        ticks = []
        for i, symbol in enumerate(self.symbols):
            wave = math.sin((self._step + i * 17) / 40.0) * 0.002
            noise = self._rng.uniform(-0.003, 0.003)
            price = max(0.01, self._prices[symbol] * (1.0 + wave + noise))
            self._prices[symbol] = price
            ticks.append(Tick(symbol=symbol, price=price, size=self._rng.uniform(0.01, 2.0), event_time=self._ts))
        self._step += 1
        self._ts += timedelta(seconds=1)
        return ticks


class LiveTickFeed(ABC):
    """Websocket trade stream that pushes normalized ticks and reconnects with backoff."""

    def __init__(
        self,
        symbols: Iterable[str],
        on_tick: TickCallback,
        max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
        reconnect_delay: float = RECONNECT_DELAY_SECONDS,
    ) -> None:
        self.symbols = list(symbols)
        self.on_tick = on_tick
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self._stopping = False
        self._ws: Any = None

    @abstractmethod
    def url(self) -> str:
        """Websocket endpoint to connect to."""

    async def on_connect(self, ws: Any) -> None:
        """Hook for authentication or subscription messages."""
        return None

    @abstractmethod
    def parse(self, payload: Any) -> list[Tick]:
        """Normalize one decoded stream message into zero or more ticks."""

    async def run(self) -> None:
        """Stream until stopped or the reconnect budget is exhausted."""
        attempts = 0
        while not self._stopping:
            try:
                async with websockets.connect(self.url()) as ws:
                    self._ws = ws
                    await self.on_connect(ws)
                    logger.info("feed connected symbols=%s", ",".join(self.symbols))
                    attempts = 0
                    async for message in ws:
                        self.handle_message(message)
            except (OSError, WebSocketException) as exc:
                if self._stopping:
                    break
                attempts += 1
                if attempts > self.max_reconnect_attempts:
                    logger.error("feed giving up reason=max_reconnects attempts=%d", attempts - 1)
                    break
                delay = self.reconnect_delay * attempts
                logger.warning(
                    "feed disconnected error=%s reconnect_in=%.1fs attempt=%d/%d",
                    exc,
                    delay,
                    attempts,
                    self.max_reconnect_attempts,
                )
                await asyncio.sleep(delay)
            finally:
                self._ws = None

    def handle_message(self, message: str | bytes) -> None:
        try:
            ticks = self.parse(json.loads(message))
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("feed message dropped error=%s", exc)
            return
        for tick in ticks:
            try:
                self.on_tick(tick)
            except Exception:
                logger.exception("tick callback failed symbol=%s", tick.symbol)

    async def stop(self) -> None:
        self._stopping = True
        if self._ws is not None:
            await self._ws.close()


class BinanceTradeFeed(LiveTickFeed):
    """Binance combined `<pair>@trade` stream; symbols are configured as `BTC/USDC`."""

    def __init__(self, symbols: Iterable[str], on_tick: TickCallback, base_url: str = "wss://stream.binance.com:9443", **kwargs: Any) -> None:
        super().__init__(symbols, on_tick, **kwargs)
        self.base_url = base_url.rstrip("/")
        self._by_venue_symbol = {s.replace("/", "").upper(): s for s in self.symbols}

    def url(self) -> str:
        streams = "/".join(f"{s.replace('/', '').lower()}@trade" for s in self.symbols)
        return f"{self.base_url}/stream?streams={streams}"

    def parse(self, payload: Any) -> list[Tick]:
        data = payload.get("data", payload)
        if data.get("e") != "trade":
            return []
        symbol = self._by_venue_symbol.get(data["s"].upper())
        if symbol is None:
            return []
        return [
            Tick(
                symbol=symbol,
                price=float(data["p"]),
                size=float(data["q"]),
                event_time=datetime.fromtimestamp(int(data["T"]) / 1000, tz=timezone.utc),
            )
        ]


class AlpacaTradeFeed(LiveTickFeed):
    """Alpaca market-data v2 trade stream for equities."""

    def __init__(
        self,
        symbols: Iterable[str],
        on_tick: TickCallback,
        api_key: str,
        api_secret: str,
        base_url: str = "wss://stream.data.alpaca.markets/v2/iex",
        **kwargs: Any,
    ) -> None:
        super().__init__(symbols, on_tick, **kwargs)
        self.api_key = api_key
        self.api_secret = api_secret
        self.base_url = base_url

    def url(self) -> str:
        return self.base_url

    async def on_connect(self, ws: Any) -> None:
        await ws.send(json.dumps({"action": "auth", "key": self.api_key, "secret": self.api_secret}))
        await ws.send(json.dumps({"action": "subscribe", "trades": self.symbols}))

    def parse(self, payload: Any) -> list[Tick]:
        ticks = []
        for msg in payload if isinstance(payload, list) else [payload]:
            kind = msg.get("T")
            if kind == "error":
                logger.error("alpaca stream error code=%s msg=%s", msg.get("code"), msg.get("msg"))
                continue
            if kind != "t":
                continue
            ticks.append(
                Tick(
                    symbol=msg["S"],
                    price=float(msg["p"]),
                    size=float(msg["s"]),
                    event_time=_parse_rfc3339(msg["t"]),
                )
            )
        return ticks


def _parse_rfc3339(value: str) -> datetime:
    # Alpaca sends nanosecond precision which fromisoformat rejects.
    value = value.replace("Z", "+00:00")
    if "." in value:
        head, rest = value.split(".", 1)
        frac, sign, offset = rest.partition("+")
        value = f"{head}.{frac[:6].ljust(6, '0')}{sign}{offset}"
    return datetime.fromisoformat(value)
