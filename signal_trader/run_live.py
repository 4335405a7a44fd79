"""Entry point for running the engine on a live trade stream."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from pathlib import Path

from signal_trader.data.market_feed import AlpacaTradeFeed, BinanceTradeFeed, LiveTickFeed
from signal_trader.engine import ConfigError, EngineConfig, TradingEngine, build_context
from signal_trader.logging.loggers import configure_logging

logger = logging.getLogger("signal_trader.run_live")


def build_feed(cfg: EngineConfig, engine: TradingEngine) -> LiveTickFeed:
    stream_url = cfg.section("exchange").get("stream_url")
    overrides = {"base_url": stream_url} if stream_url else {}
    if cfg.venue == "binance":
        return BinanceTradeFeed(cfg.symbols, engine.on_tick, **overrides)
    if cfg.venue == "alpaca":
        key = os.environ.get("ALPACA_API_KEY", "")
        secret = os.environ.get("ALPACA_API_SECRET", "")
        if not key or not secret:
            raise ConfigError("ALPACA_API_KEY and ALPACA_API_SECRET are required for the alpaca feed")
        return AlpacaTradeFeed(cfg.symbols, engine.on_tick, api_key=key, api_secret=secret, **overrides)
    raise ConfigError(f"unknown venue: {cfg.venue}")


async def run(cfg: EngineConfig) -> dict[str, float]:
    engine = TradingEngine(build_context(cfg))
    feed = build_feed(cfg, engine)

    logger.info(
        "trading bot starting symbols=%s venue=%s mode=%s strategy=%s",
        ",".join(cfg.symbols),
        cfg.venue,
        cfg.mode.upper(),
        cfg.section("strategy").get("name", "rsi_ema"),
    )
    await engine.start()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass

    feed_task = asyncio.create_task(feed.run())
    stop_task = asyncio.create_task(stop.wait())
    try:
        await asyncio.wait({feed_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        if feed_task.done() and not feed_task.cancelled() and feed_task.exception() is not None:
            logger.error("feed stopped with error=%r", feed_task.exception())
        logger.info("graceful shutdown initiated")
    finally:
        await feed.stop()
        feed_task.cancel()
        stop_task.cancel()
        await asyncio.gather(feed_task, stop_task, return_exceptions=True)
    return await engine.shutdown()


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    args = sys.argv[1:] if argv is None else argv
    cfg_path = Path(args[0]) if args else Path(__file__).parent / "config" / "settings.yaml"
    try:
        cfg = EngineConfig.from_yaml(cfg_path)
        asyncio.run(run(cfg))
    except ConfigError as exc:
        logger.error("configuration error: %s", exc)
        return 2
    logger.info("live trading stopped cleanly")
    return 0


if __name__ == "__main__":
    sys.exit(main())
