# === MODULE PURPOSE ===
# Unit tests for SquareOff: closing a whole position in one action.

import asyncio
import logging
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from papertrade.trading.models import Side, TradeStatus

from tests.conftest import CLOSED_TIME, USER


async def build_position(service) -> None:
    await service.execute_trade(USER, "RELIANCE", Side.BUY, 10, "2400.50")
    await service.execute_trade(USER, "RELIANCE", Side.BUY, 5, "2500.00")


class TestSquareOff:
    """Full exit at the current market price."""

    @pytest.mark.asyncio
    async def test_sells_whole_position(self, funded, store):
        await build_position(funded)

        result = await funded.square_off(USER, "RELIANCE")

        assert result.success
        assert result.realized_pnl == Decimal("346.25")
        assert result.message == "Position squared off successfully. P&L: ₹346.25"
        assert result.new_balance == Decimal("100286.25")
        assert await store.get_position(USER, "RELIANCE") is None

    @pytest.mark.asyncio
    async def test_closes_all_open_trades(self, funded, store, feed):
        await build_position(funded)

        await funded.square_off(USER, "RELIANCE")

        trades = await store.list_trades(USER)
        assert len(trades) == 3
        assert trades[0].side == Side.SELL
        for trade in trades:
            assert trade.status == TradeStatus.CLOSED
            assert trade.realized_pnl == Decimal("346.25")
            assert trade.closed_at == feed.now()
        assert await store.list_open_trades(USER, "RELIANCE") == []

    @pytest.mark.asyncio
    async def test_other_symbols_untouched(self, funded, store):
        await build_position(funded)
        await funded.execute_trade(USER, "TCS", Side.BUY, 2, "3245.80")

        await funded.square_off(USER, "reliance")

        open_tcs = await store.list_open_trades(USER, "TCS")
        assert len(open_tcs) == 1
        assert (await store.get_position(USER, "TCS")).quantity == 2

    @pytest.mark.asyncio
    async def test_follows_brokerage_setting(self, funded):
        await build_position(funded)
        await funded.update_user_settings(USER, brokerage_simulation=False)

        result = await funded.square_off(USER, "RELIANCE")

        assert result.brokerage == Decimal("0.00")
        assert result.new_balance == Decimal("100306.25")

    @pytest.mark.asyncio
    async def test_exit_when_fee_exceeds_cash(self, service, feed, store):
        await service.open_account(USER, Decimal("20"))
        await service.execute_trade(USER, "PENNY", Side.BUY, 1, "20", brokerage_enabled=False)
        feed.set_price("PENNY", "5")

        result = await service.square_off(USER, "PENNY")

        assert result.success
        assert result.brokerage == Decimal("5.00")
        assert result.new_balance == Decimal("0.00")
        assert await store.get_position(USER, "PENNY") is None
        assert await store.list_open_trades(USER, "PENNY") == []

    @pytest.mark.asyncio
    async def test_loss_message(self, funded, feed):
        await funded.execute_trade(USER, "TCS", Side.BUY, 2, "3300")
        feed.set_price("TCS", "3250.25")

        result = await funded.square_off(USER, "TCS")

        assert result.realized_pnl == Decimal("-99.50")
        assert result.message.endswith("P&L: ₹-99.50")


class TestSquareOffFailures:
    """Rejected square-offs leave the ledger unchanged."""

    @pytest.mark.asyncio
    async def test_no_position(self, funded):
        result = await funded.square_off(USER, "RELIANCE")

        assert not result.success
        assert result.error == "position_not_found"

    @pytest.mark.asyncio
    async def test_market_closed(self, funded, feed, store):
        await build_position(funded)
        feed.set_clock(lambda: CLOSED_TIME)

        result = await funded.square_off(USER, "RELIANCE")

        assert result.error == "market_closed"
        assert (await store.get_position(USER, "RELIANCE")).quantity == 15
        assert len(await store.list_open_trades(USER, "RELIANCE")) == 2

    @pytest.mark.asyncio
    async def test_no_market_price(self, funded, store):
        await funded.execute_trade(USER, "WIPRO", Side.BUY, 10, "450.25")

        result = await funded.square_off(USER, "WIPRO")

        assert result.error == "unknown_symbol"
        assert (await store.get_position(USER, "WIPRO")).quantity == 10

    @pytest.mark.asyncio
    async def test_concurrent_square_offs(self, funded, store):
        await build_position(funded)

        results = await asyncio.gather(
            funded.square_off(USER, "RELIANCE"),
            funded.square_off(USER, "RELIANCE"),
        )

        assert sorted(r.success for r in results) == [False, True]
        assert {r.error for r in results} == {None, "position_not_found"}
        assert await store.get_balance(USER) == Decimal("100286.25")

    @pytest.mark.asyncio
    async def test_close_failure_keeps_sale(self, funded, store, caplog):
        await build_position(funded)

        with patch.object(
            store, "update_trade_status", AsyncMock(side_effect=OSError("down"))
        ):
            with caplog.at_level(logging.CRITICAL, logger="papertrade.trading.square_off"):
                result = await funded.square_off(USER, "RELIANCE")

        assert result.success
        assert await store.get_position(USER, "RELIANCE") is None
        assert any(
            "Manual reconciliation required" in r.getMessage() for r in caplog.records
        )
