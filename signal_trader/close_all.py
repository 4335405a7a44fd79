"""Utility entry point that market-sells every open position on the configured live venue."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
import sys
from pathlib import Path

import httpx

from signal_trader.engine import ConfigError, EngineConfig, build_gateway
from signal_trader.execution.order import ExternalPosition, OrderGateway, OrderRequest
from signal_trader.logging.loggers import configure_logging, get_trade_logger

logger = logging.getLogger("signal_trader.close_all")

VERIFY_DELAY_SECONDS = 2.0


@dataclass
class CloseReport:
    closed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    remaining: list[ExternalPosition] = field(default_factory=list)


async def close_all(gateway: OrderGateway, verify_delay: float = VERIFY_DELAY_SECONDS) -> CloseReport:
    """Sell each reported position, wait, then re-read positions to see what is still open."""
    trade_log = get_trade_logger()
    report = CloseReport()

    await gateway.load_markets()
    positions = await gateway.fetch_positions()
    if not positions:
        logger.info("no open positions to close")
        return report

    logger.info("found %d open position(s)", len(positions))
    for pos in positions:
        logger.info(
            "open position symbol=%s qty=%s price=%.2f value=%.2f",
            pos.symbol,
            pos.quantity,
            pos.current_price,
            pos.quantity * pos.current_price,
        )

    for pos in positions:
        request = OrderRequest(pos.symbol, "SELL", pos.quantity, pos.current_price or None)
        try:
            result = await gateway.place_order(request)
        except Exception as exc:
            logger.error("close failed symbol=%s error=%r", pos.symbol, exc)
            report.failed.append(pos.symbol)
            continue
        if result is None:
            logger.error("close rejected symbol=%s qty=%s", pos.symbol, pos.quantity)
            report.failed.append(pos.symbol)
            continue
        trade_log.info("CLOSE %s qty=%s order_id=%s status=%s", pos.symbol, pos.quantity, result.order_id, result.status)
        report.closed.append(pos.symbol)

    logger.info("close results success=%d failed=%d", len(report.closed), len(report.failed))

    await asyncio.sleep(verify_delay)
    report.remaining = await gateway.fetch_positions()
    if report.remaining:
        for pos in report.remaining:
            logger.warning("position still open symbol=%s qty=%s", pos.symbol, pos.quantity)
    else:
        logger.info("verified all positions closed")
    return report


async def run(cfg: EngineConfig, verify_delay: float = VERIFY_DELAY_SECONDS) -> CloseReport:
    if cfg.mode != "live":
        raise ConfigError("closing positions needs engine.mode: live")
    gateway = build_gateway(cfg)
    logger.info("close all positions venue=%s", cfg.venue)
    try:
        return await close_all(gateway, verify_delay)
    finally:
        await gateway.close()


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    args = sys.argv[1:] if argv is None else argv
    cfg_path = Path(args[0]) if args else Path(__file__).parent / "config" / "settings.yaml"
    try:
        cfg = EngineConfig.from_yaml(cfg_path)
        report = asyncio.run(run(cfg, VERIFY_DELAY_SECONDS))
    except ConfigError as exc:
        logger.error("configuration error: %s", exc)
        return 2
    except httpx.HTTPError as exc:
        logger.error("venue request failed error=%r", exc)
        return 1
    return 1 if report.remaining else 0


if __name__ == "__main__":
    sys.exit(main())
