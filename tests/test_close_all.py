"""
Tests for signal_trader/close_all.py

Covers:
- One SELL per reported position and verification of what stays open
- Rejected and raising orders counted as failures
- Exit codes of main() for config errors and paper mode
"""

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from signal_trader import close_all as close_all_module
from signal_trader.close_all import close_all, main, run
from signal_trader.engine import ConfigError, EngineConfig
from signal_trader.execution.alpaca_gateway import AlpacaGateway
from signal_trader.execution.order import ExternalPosition, OrderResult

BTC = ExternalPosition("BTC/USDC", 0.01, 0.0, 65000.0)
ETH = ExternalPosition("ETH/USDC", 0.5, 0.0, 3000.0)


class TestCloseAll:
    """Tests for close_all() against a mock gateway."""

    @pytest.mark.asyncio
    async def test_sells_every_position(self, make_gateway):
        gateway = make_gateway()
        gateway.fetch_positions = AsyncMock(side_effect=[[BTC, ETH], []])

        report = await close_all(gateway, verify_delay=0)

        gateway.load_markets.assert_awaited_once()
        requests = [call.args[0] for call in gateway.place_order.await_args_list]
        assert [(r.symbol, r.side, r.quantity) for r in requests] == [
            ("BTC/USDC", "SELL", 0.01),
            ("ETH/USDC", "SELL", 0.5),
        ]
        assert requests[0].reference_price == 65000.0
        assert report.closed == ["BTC/USDC", "ETH/USDC"]
        assert report.failed == []
        assert report.remaining == []

    @pytest.mark.asyncio
    async def test_rejected_order_left_open(self, make_gateway):
        gateway = make_gateway()
        gateway.fetch_positions = AsyncMock(side_effect=[[BTC, ETH], [ETH]])
        gateway.place_order = AsyncMock(side_effect=[OrderResult(order_id="1", status="filled"), None])

        report = await close_all(gateway, verify_delay=0)

        assert report.closed == ["BTC/USDC"]
        assert report.failed == ["ETH/USDC"]
        assert report.remaining == [ETH]

    @pytest.mark.asyncio
    async def test_raising_order_does_not_stop_the_rest(self, make_gateway):
        gateway = make_gateway()
        gateway.fetch_positions = AsyncMock(side_effect=[[BTC, ETH], [BTC]])
        gateway.place_order = AsyncMock(
            side_effect=[RuntimeError("venue down"), OrderResult(order_id="2", status="filled")]
        )

        report = await close_all(gateway, verify_delay=0)

        assert gateway.place_order.await_count == 2
        assert report.failed == ["BTC/USDC"]
        assert report.closed == ["ETH/USDC"]

    @pytest.mark.asyncio
    async def test_nothing_open(self, make_gateway):
        gateway = make_gateway()

        report = await close_all(gateway, verify_delay=0)

        gateway.place_order.assert_not_awaited()
        assert gateway.fetch_positions.await_count == 1
        assert report.closed == [] and report.remaining == []

    @pytest.mark.asyncio
    async def test_alpaca_positions_sold_as_whole_shares(self):
        orders = []
        position_reads = []

        def handler(request):
            if request.method == "GET" and request.url.path.endswith("/positions"):
                position_reads.append(request)
                if len(position_reads) > 1:
                    return httpx.Response(200, json=[])
                return httpx.Response(
                    200,
                    json=[{"symbol": "AAPL", "qty": "3", "avg_entry_price": "150.0", "current_price": "155.0"}],
                )
            orders.append(json.loads(request.content))
            return httpx.Response(200, json={"id": "o1", "status": "filled", "filled_qty": "3", "filled_avg_price": "155.1"})

        client = httpx.AsyncClient(
            base_url="https://paper-api.alpaca.markets/v2", transport=httpx.MockTransport(handler)
        )
        gateway = AlpacaGateway("key", "secret", client=client)

        report = await close_all(gateway, verify_delay=0)

        assert orders == [
            {
                "symbol": "AAPL",
                "qty": "3",
                "side": "sell",
                "type": "market",
                "time_in_force": "day",
                "extended_hours": False,
            }
        ]
        assert report.closed == ["AAPL"]
        assert report.remaining == []


class TestEntryPoint:
    """Tests for run() and main()."""

    @pytest.mark.asyncio
    async def test_paper_mode_refused(self):
        with pytest.raises(ConfigError):
            await run(EngineConfig({"engine": {"mode": "paper"}}))

    @pytest.mark.asyncio
    async def test_gateway_closed_after_run(self, make_gateway, monkeypatch):
        gateway = make_gateway()
        monkeypatch.setattr(close_all_module, "build_gateway", lambda cfg: gateway)

        await run(EngineConfig({"engine": {"mode": "live", "venue": "binance"}}), verify_delay=0)

        gateway.close.assert_awaited_once()

    def test_main_config_error_exit_code(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("engine:\n  mode: paper\n", encoding="utf-8")
        assert main([str(path)]) == 2

    def test_main_reports_remaining_positions(self, tmp_path, make_gateway, monkeypatch):
        gateway = make_gateway()
        gateway.place_order = AsyncMock(return_value=None)
        gateway.fetch_positions = AsyncMock(side_effect=[[BTC], [BTC]])
        monkeypatch.setattr(close_all_module, "build_gateway", lambda cfg: gateway)
        monkeypatch.setattr(close_all_module, "VERIFY_DELAY_SECONDS", 0)
        path = tmp_path / "settings.yaml"
        path.write_text("engine:\n  mode: live\n  venue: binance\n", encoding="utf-8")

        assert main([str(path)]) == 1
