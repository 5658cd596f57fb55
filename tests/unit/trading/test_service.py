# === MODULE PURPOSE ===
# Unit tests for the TradingService facade: accounts, settings, history.

from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from papertrade.common.config import TradingConfig
from papertrade.trading.errors import AccountNotFoundError, StoreUnavailableError
from papertrade.trading.models import Side
from papertrade.trading.service import DEFAULT_HISTORY_LIMIT, TradingService

from tests.conftest import USER


class TestAccounts:
    @pytest.mark.asyncio
    async def test_open_account_uses_configured_balance(self, feed, store):
        service = TradingService(feed, store, TradingConfig(initial_balance=Decimal("50000")))

        balance = await service.open_account(USER)

        assert balance == Decimal("50000.00")

    @pytest.mark.asyncio
    async def test_open_account_is_idempotent(self, funded):
        await funded.execute_trade(USER, "INFY", Side.BUY, 1, "1456.30")

        balance = await funded.open_account(USER)

        assert balance == Decimal("98523.70")

    @pytest.mark.asyncio
    async def test_unknown_account(self, service):
        with pytest.raises(AccountNotFoundError):
            await service.get_balance("nobody")


class TestSettings:
    """Brokerage simulation preference."""

    @pytest.mark.asyncio
    async def test_defaults_to_brokerage_on(self, service):
        settings = await service.get_user_settings(USER)
        assert settings.brokerage_simulation is True

    @pytest.mark.asyncio
    async def test_update_persists(self, service):
        await service.update_user_settings(USER, brokerage_simulation=False)

        settings = await service.get_user_settings(USER)
        assert settings.brokerage_simulation is False

    @pytest.mark.asyncio
    async def test_update_without_fields_keeps_values(self, service):
        await service.update_user_settings(USER, brokerage_simulation=False)

        settings = await service.update_user_settings(USER)

        assert settings.brokerage_simulation is False

    @pytest.mark.asyncio
    async def test_execute_uses_setting_when_not_given(self, funded):
        await funded.update_user_settings(USER, brokerage_simulation=False)

        result = await funded.execute_trade(USER, "RELIANCE", Side.BUY, 10, "2400.50")

        assert result.brokerage == Decimal("0.00")
        assert result.new_balance == Decimal("75995.00")

    @pytest.mark.asyncio
    async def test_explicit_flag_overrides_setting(self, funded):
        await funded.update_user_settings(USER, brokerage_simulation=False)

        result = await funded.execute_trade(
            USER, "RELIANCE", Side.BUY, 10, "2400.50", brokerage_enabled=True
        )

        assert result.brokerage == Decimal("20.00")

    @pytest.mark.asyncio
    async def test_settings_failure_returns_failed_result(self, funded, store):
        with patch.object(store, "get_settings", AsyncMock(side_effect=OSError("down"))):
            result = await funded.execute_trade(USER, "RELIANCE", Side.BUY, 1, "100")

        assert not result.success
        assert result.error == "store_unavailable"
        assert await funded.get_balance(USER) == Decimal("100000.00")


class TestHistory:
    """Trade history, newest first."""

    @pytest.mark.asyncio
    async def test_newest_first(self, funded):
        await funded.execute_trade(USER, "RELIANCE", Side.BUY, 1, "2400")
        await funded.execute_trade(USER, "TCS", Side.BUY, 1, "3200")

        trades = await funded.get_trade_history(USER)

        assert [t.symbol for t in trades] == ["TCS", "RELIANCE"]

    @pytest.mark.asyncio
    async def test_default_limit(self, funded):
        for _ in range(DEFAULT_HISTORY_LIMIT + 5):
            await funded.execute_trade(USER, "INFY", Side.BUY, 1, "10", brokerage_enabled=False)

        trades = await funded.get_trade_history(USER)

        assert len(trades) == DEFAULT_HISTORY_LIMIT

    @pytest.mark.asyncio
    async def test_store_failure_raises(self, funded, store):
        with patch.object(store, "list_trades", AsyncMock(side_effect=OSError("down"))):
            with pytest.raises(StoreUnavailableError):
                await funded.get_trade_history(USER)
