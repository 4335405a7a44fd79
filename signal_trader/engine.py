"""Main orchestration engine: wires indicators, signals, ledger and order coordination."""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass, field
from datetime import date
import logging
import os
from pathlib import Path
from typing import Any, Callable, Sequence

import yaml

from signal_trader.accounting.position_ledger import PositionLedger, utc_today
from signal_trader.config import constants as c
from signal_trader.data.indicators import IndicatorEngine
from signal_trader.data.market_feed import Tick
from signal_trader.execution.alpaca_gateway import AlpacaGateway
from signal_trader.execution.binance_gateway import BinanceGateway
from signal_trader.execution.order import OrderGateway
from signal_trader.execution.order_coordinator import OrderCoordinator, OrderTicket
from signal_trader.execution.paper_broker import PaperGateway
from signal_trader.logging.loggers import get_signal_logger
from signal_trader.logging.metrics import summarize_metrics
from signal_trader.logging.telemetry import DiscordNotifier, LogTelemetry, TelemetrySink
from signal_trader.risk.position_sizer import PositionSizer
from signal_trader.strategy.rsi_ema import RsiEmaStrategy
from signal_trader.strategy.signal import Signal
from signal_trader.strategy.sma_crossover import SmaCrossoverStrategy

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "config" / "settings.yaml"


class ConfigError(ValueError):
    """Startup configuration is unusable."""


@dataclass
class EngineConfig:
    raw: dict[str, Any]

    @classmethod
    def from_yaml(cls, path: str | Path = DEFAULT_SETTINGS_PATH) -> "EngineConfig":
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"settings file {path} must contain a mapping")
        return cls(raw=data)

    def section(self, name: str) -> dict[str, Any]:
        return self.raw.get(name) or {}

    @property
    def symbols(self) -> list[str]:
        return list(self.section("engine").get("symbols") or c.DEFAULT_SYMBOLS)

    @property
    def mode(self) -> str:
        return self.section("engine").get("mode", "paper")

    @property
    def venue(self) -> str:
        return self.section("engine").get("venue", "binance")


@dataclass
class TradingContext:
    """Every stateful component of one running process, built once at startup."""

    symbols: list[str]
    indicators: IndicatorEngine
    strategy: RsiEmaStrategy | SmaCrossoverStrategy
    ledger: PositionLedger
    gateway: OrderGateway
    coordinator: OrderCoordinator
    telemetry: list[TelemetrySink] = field(default_factory=list)
    stats_interval: float = c.DEFAULT_STATS_INTERVAL_SECONDS


def _require_env(name: str) -> str:
    value = os.environ.get(name, "")
    if not value:
        raise ConfigError(f"environment variable {name} is required for live trading")
    return value


def build_gateway(config: EngineConfig) -> OrderGateway:
    """Paper venue in paper mode, otherwise the configured live venue."""
    if config.mode == "paper":
        ex = config.section("execution")
        return PaperGateway(
            initial_quote_balance=float(ex.get("initial_quote_balance", 1000.0)),
            fee_rate=float(ex.get("fee_rate", 0.001)),
            slippage_bps=float(ex.get("slippage_bps", 0.0)),
            partial_fill_probability=float(ex.get("partial_fill_probability", 0.0)),
            min_partial_fill_ratio=float(ex.get("min_partial_fill_ratio", 0.5)),
            max_partial_fill_ratio=float(ex.get("max_partial_fill_ratio", 1.0)),
            min_qty=float(ex.get("min_qty", c.DEFAULT_MIN_QTY)),
            qty_step=float(ex.get("qty_step", c.DEFAULT_QTY_STEP)),
            seed=int(config.section("engine").get("seed", c.DEFAULT_SEED)),
        )
    if config.mode != "live":
        raise ConfigError(f"unknown engine mode: {config.mode}")

    exchange = config.section("exchange")
    if config.venue == "binance":
        return BinanceGateway(
            api_key=_require_env("BINANCE_API_KEY"),
            api_secret=_require_env("BINANCE_API_SECRET"),
            symbols=config.symbols,
            quote_asset=exchange.get("quote_asset", c.DEFAULT_QUOTE_ASSET),
            testnet=bool(exchange.get("testnet", True)),
            base_url=exchange.get("base_url"),
        )
    if config.venue == "alpaca":
        return AlpacaGateway(
            api_key=_require_env("ALPACA_API_KEY"),
            api_secret=_require_env("ALPACA_API_SECRET"),
            paper=bool(exchange.get("paper", True)),
            extended_hours=bool(exchange.get("extended_hours", False)),
            base_url=exchange.get("base_url"),
        )
    raise ConfigError(f"unknown venue: {config.venue}")


def build_context(
    config: EngineConfig,
    gateway: OrderGateway | None = None,
    today: Callable[[], date] = utc_today,
) -> TradingContext:
    """Construct the context object from configuration; raises ConfigError on bad settings."""
    strat = config.section("strategy")
    risk = config.section("risk")
    ledger_cfg = config.section("ledger")

    try:
        indicators = IndicatorEngine(
            history_size=int(strat.get("history_size", c.DEFAULT_HISTORY_SIZE)),
            ema_fast_period=int(strat.get("ema_fast", c.DEFAULT_EMA_FAST)),
            ema_slow_period=int(strat.get("ema_slow", c.DEFAULT_EMA_SLOW)),
            rsi_period=int(strat.get("rsi_period", c.DEFAULT_RSI_PERIOD)),
            sma_short_period=int(strat.get("sma_short", c.DEFAULT_SMA_SHORT)),
            sma_long_period=int(strat.get("sma_long", c.DEFAULT_SMA_LONG)),
        )
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc

    name = strat.get("name", "rsi_ema")
    if name == "rsi_ema":
        strategy = RsiEmaStrategy(
            indicators,
            rsi_buy_max=float(strat.get("rsi_buy_max", c.DEFAULT_RSI_BUY_MAX)),
            rsi_sell_min=float(strat.get("rsi_sell_min", c.DEFAULT_RSI_SELL_MIN)),
        )
    elif name == "sma_crossover":
        strategy = SmaCrossoverStrategy(indicators)
    else:
        raise ConfigError(f"unknown strategy: {name}")

    same_day = ledger_cfg.get("same_day_sale_restricted")
    if same_day is None:
        same_day = config.venue == "alpaca"

    policy = ledger_cfg.get("synced_opened_date", "assume_today")
    if policy not in c.OPENED_DATE_POLICIES:
        raise ConfigError(f"unknown synced_opened_date policy: {policy}")
    ledger = PositionLedger(
        same_day_sale_restricted=bool(same_day),
        synced_opened_date=policy,
        max_pnl_to_cost_ratio=float(ledger_cfg.get("max_pnl_to_cost_ratio", c.DEFAULT_MAX_PNL_TO_COST_RATIO)),
        today=today,
    )

    gateway = gateway or build_gateway(config)
    max_notional = risk.get("max_trade_notional", c.DEFAULT_MAX_TRADE_NOTIONAL)
    coordinator = OrderCoordinator(
        ledger=ledger,
        gateway=gateway,
        sizer=PositionSizer(),
        risk_per_trade=float(risk.get("risk_per_trade", c.DEFAULT_RISK_PER_TRADE)),
        stop_loss=float(risk.get("stop_loss", c.DEFAULT_STOP_LOSS)),
        max_trade_notional=float(max_notional) if max_notional else None,
        buying_power_buffer=float(risk.get("buying_power_buffer", c.DEFAULT_BUYING_POWER_BUFFER)),
    )

    telemetry: list[TelemetrySink] = [LogTelemetry()]
    webhook = os.environ.get("DISCORD_WEBHOOK_URL", "")
    if config.section("notifications").get("discord", False):
        if webhook:
            telemetry.append(DiscordNotifier(webhook))
        else:
            logger.warning("discord notifications enabled but DISCORD_WEBHOOK_URL is not set")

    return TradingContext(
        symbols=config.symbols,
        indicators=indicators,
        strategy=strategy,
        ledger=ledger,
        gateway=gateway,
        coordinator=coordinator,
        telemetry=telemetry,
        stats_interval=float(config.section("engine").get("stats_interval_seconds", c.DEFAULT_STATS_INTERVAL_SECONDS)),
    )


class TradingEngine:
    """Runs the tick pipeline; each signal becomes an order task that never blocks other symbols."""

    def __init__(self, context: TradingContext) -> None:
        self.ctx = context
        self.signal_logger = get_signal_logger()
        self.accepting = False
        self._symbols = set(context.symbols)
        self._order_tasks: set[asyncio.Task] = set()
        self._stats_task: asyncio.Task | None = None

    @property
    def in_flight(self) -> int:
        return len(self._order_tasks)

    async def start(self) -> None:
        """Load venue rules, seed positions from the venue, start periodic stats, accept ticks."""
        try:
            await self.ctx.gateway.load_markets()
        except Exception:
            logger.exception("load markets failed")
        try:
            external = await self.ctx.gateway.fetch_positions()
        except Exception:
            logger.exception("position sync failed")
        else:
            if external:
                self.ctx.ledger.sync_positions(external)
            else:
                logger.info("no existing positions found at venue")
        if self.ctx.stats_interval > 0:
            self._stats_task = asyncio.create_task(self._stats_loop())
        self.accepting = True

    def on_tick(self, tick: Tick) -> None:
        """Push callback for the market data feed; failures stay inside this tick."""
        if not self.accepting or tick.symbol not in self._symbols:
            return
        try:
            self._process_tick(tick)
        except Exception:
            logger.exception("tick processing failed symbol=%s price=%s", tick.symbol, tick.price)

    def _process_tick(self, tick: Tick) -> None:
        # Unusable prices stop here, before they reach the ledger or the paper venue.
        if not self.ctx.indicators.push_price(tick.symbol, tick.price):
            return

        ledger = self.ctx.ledger
        ledger.update_price(tick.symbol, tick.price)
        if isinstance(self.ctx.gateway, PaperGateway):
            self.ctx.gateway.mark(tick.symbol, tick.price)
        self._emit("on_prices", ledger.get_all_positions())

        signal = self.ctx.strategy.check_signal(tick.symbol, tick.event_time)
        if signal is None:
            return

        snap = self.ctx.indicators.get_indicators(tick.symbol)
        self.signal_logger.info(
            "signal direction=%s symbol=%s price=%.4f ema_fast=%s ema_slow=%s rsi=%s",
            signal.direction,
            signal.symbol,
            signal.ref_price,
            _fmt(snap.ema_fast),
            _fmt(snap.ema_slow),
            _fmt(snap.rsi),
        )
        self._schedule_order(signal)

    def _schedule_order(self, signal: Signal) -> None:
        task = asyncio.get_running_loop().create_task(self._execute(signal))
        self._order_tasks.add(task)
        task.add_done_callback(self._order_done)

    def _order_done(self, task: asyncio.Task) -> None:
        self._order_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("order task failed error=%r", exc)

    async def _execute(self, signal: Signal) -> OrderTicket:
        # Quantity 0 lets the coordinator size BUYs by risk and SELL the full holding.
        ticket = await self.ctx.coordinator.submit(signal.symbol, signal.side, 0.0, signal.ref_price)
        if ticket.trade is not None:
            self._emit("on_trade", ticket.trade, self.ctx.ledger.get_all_positions())
        else:
            self.signal_logger.info(
                "skip signal reason=%s symbol=%s state=%s", ticket.reason, ticket.symbol, ticket.state.value
            )
        return ticket

    def _emit(self, event: str, *args: Any) -> None:
        for sink in self.ctx.telemetry:
            try:
                getattr(sink, event)(*args)
            except Exception:
                logger.exception("telemetry sink failed event=%s sink=%s", event, type(sink).__name__)

    def emit_stats(self) -> None:
        self._emit("on_stats", self.ctx.ledger.get_stats())

    async def _stats_loop(self) -> None:
        while True:
            await asyncio.sleep(self.ctx.stats_interval)
            self.emit_stats()

    async def drain(self) -> None:
        """Wait for every in-flight order task to resolve."""
        while self._order_tasks:
            await asyncio.gather(*list(self._order_tasks), return_exceptions=True)

    async def shutdown(self) -> dict[str, float]:
        """Stop taking ticks, let submitted orders resolve, then report and close resources."""
        self.accepting = False
        if self._order_tasks:
            logger.info("shutdown waiting for in-flight orders count=%d", len(self._order_tasks))
        await self.drain()

        if self._stats_task is not None:
            self._stats_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._stats_task
            self._stats_task = None

        self.emit_stats()
        metrics = summarize_metrics(self.ctx.ledger.get_stats(), self.ctx.ledger.get_all_positions())
        logger.info("=== RUN SUMMARY ===")
        for k, v in metrics.items():
            logger.info("%s: %.6f", k, v)

        for sink in self.ctx.telemetry:
            try:
                await sink.close()
            except Exception:
                logger.exception("telemetry close failed sink=%s", type(sink).__name__)
        await self.ctx.gateway.close()
        logger.info("engine shutdown complete")
        return metrics


def _fmt(value: float | None) -> str:
    return "undefined" if value is None else f"{value:.4f}"


def feed_synthetic_ticks(engine: TradingEngine, ticks: Sequence[Tick]) -> None:
    """Push a batch of ticks through the engine in arrival order."""
    for tick in ticks:
        engine.on_tick(tick)
