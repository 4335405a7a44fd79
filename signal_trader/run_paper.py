"""Entry point for a bounded paper run on synthetic ticks."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path

from signal_trader.data.market_feed import SyntheticTickFeed
from signal_trader.engine import ConfigError, EngineConfig, TradingEngine, build_context, feed_synthetic_ticks
from signal_trader.logging.loggers import configure_logging

logger = logging.getLogger("signal_trader.run_paper")


async def run(cfg: EngineConfig) -> dict[str, float]:
    if cfg.mode != "paper":
        logger.warning("run_paper forces paper execution (configured mode=%s)", cfg.mode)
        cfg.raw.setdefault("engine", {})["mode"] = "paper"

    engine = TradingEngine(build_context(cfg))
    eng_cfg = cfg.section("engine")
    feed = SyntheticTickFeed(cfg.symbols, seed=int(eng_cfg.get("seed", 42)))
    max_ticks = int(eng_cfg.get("max_ticks", 5000))
    sleep_seconds = float(eng_cfg.get("loop_sleep_seconds", 0.0))

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass

    await engine.start()
    logger.info("paper trading started symbols=%s max_ticks=%d", ",".join(cfg.symbols), max_ticks)
    for _ in range(max_ticks):
        if stop.is_set():
            logger.info("graceful shutdown initiated")
            break
        feed_synthetic_ticks(engine, feed.next_ticks())
        # Yield so order tasks scheduled by this step can run.
        await asyncio.sleep(sleep_seconds)
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
    logger.info("paper trading stopped cleanly")
    return 0


if __name__ == "__main__":
    sys.exit(main())
