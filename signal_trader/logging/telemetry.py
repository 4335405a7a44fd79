"""Fire-and-forget telemetry sinks for fills, price marks and periodic stats."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol, Sequence

import httpx

from signal_trader.accounting.position_ledger import LedgerStats, Position, Trade
from signal_trader.logging.loggers import get_trade_logger

logger = logging.getLogger(__name__)

DISCORD_EMOJI = {
    "BTC": "<a:BTC:1436094434872659988>",
    "ETH": "<a:ETH:1436094373149282425>",
}


class TelemetrySink(Protocol):
    def on_trade(self, trade: Trade, positions: Sequence[Position]) -> None: ...

    def on_prices(self, positions: Sequence[Position]) -> None: ...

    def on_stats(self, stats: LedgerStats) -> None: ...

    async def close(self) -> None: ...


class LogTelemetry:
    """Writes telemetry events to the trade logger."""

    def __init__(self) -> None:
        self.logger = get_trade_logger()

    def on_trade(self, trade: Trade, positions: Sequence[Position]) -> None:
        pnl = f" pnl={trade.pnl:.2f}" if trade.pnl is not None else ""
        self.logger.info(
            "trade id=%s side=%s symbol=%s qty=%.8f price=%.4f%s open_positions=%d",
            trade.id,
            trade.side,
            trade.symbol,
            trade.quantity,
            trade.price,
            pnl,
            len(positions),
        )

    def on_prices(self, positions: Sequence[Position]) -> None:
        for p in positions:
            self.logger.debug(
                "mark symbol=%s price=%.4f unrealized=%.2f", p.symbol, p.current_price, p.unrealized_pnl
            )

    def on_stats(self, stats: LedgerStats) -> None:
        self.logger.info(
            "stats trades=%d win_rate=%.1f%% wins=%d losses=%d total_pnl=%.2f active_positions=%d",
            stats.total_trades,
            stats.win_rate,
            stats.wins,
            stats.losses,
            stats.total_pnl,
            stats.active_positions,
        )

    async def close(self) -> None:
        for handler in self.logger.handlers:
            handler.flush()


class DiscordNotifier:
    """Posts fills to a Discord webhook in the background; failures are only logged."""

    def __init__(self, webhook_url: str, client: httpx.AsyncClient | None = None, timeout: float = 10.0) -> None:
        self.webhook_url = webhook_url
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._pending: set[asyncio.Task] = set()

    def on_trade(self, trade: Trade, positions: Sequence[Position]) -> None:
        base_asset = trade.symbol.split("/")[0]
        message = f"{DISCORD_EMOJI.get(base_asset, '')} {trade.side} {trade.quantity:g} {trade.symbol} @ {trade.price:.2f}"
        if trade.pnl is not None:
            message += f" (P&L {trade.pnl:+.2f})"
        self._schedule(message.strip())

    def on_prices(self, positions: Sequence[Position]) -> None:
        return None

    def on_stats(self, stats: LedgerStats) -> None:
        return None

    def _schedule(self, message: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("discord message dropped reason=no_event_loop")
            return
        task = loop.create_task(self.send(message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def send(self, message: str) -> bool:
        try:
            response = await self._client.post(self.webhook_url, json={"content": message})
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("discord send failed error=%s", exc)
            return False
        return True

    async def close(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        await self._client.aclose()
