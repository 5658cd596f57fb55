# === MODULE PURPOSE ===
# Trading service facade: the operations the app/UI layer calls.
# Wires the execution engine, valuation and square-off around one injected
# market feed and ledger store.

# === KEY CONCEPTS ===
# - No module-level singletons: feed, store and config are constructor args
# - execute_trade without an explicit brokerage flag uses the user's setting
# - Read operations raise StoreUnavailableError on I/O failure; order
#   operations return failed TradeResults

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from papertrade.common.config import TradingConfig
from papertrade.trading.engine import TradeExecutionEngine
from papertrade.trading.errors import TradingError
from papertrade.trading.models import (
    PortfolioSummary,
    Position,
    Side,
    Trade,
    TradeResult,
    UserSettings,
)
from papertrade.trading.square_off import SquareOff
from papertrade.trading.valuation import PortfolioValuation

if TYPE_CHECKING:
    from papertrade.market.feed import MarketFeed
    from papertrade.trading.ledger import LedgerStore

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 50


class TradingService:
    """
    Entry point for all paper-trading operations.

    Usage:
        feed = InMemoryMarketFeed({"RELIANCE": "2456.75"})
        store = InMemoryLedgerStore()
        service = TradingService(feed, store, TradingConfig())

        await service.open_account("user-1")
        result = await service.execute_trade("user-1", "RELIANCE", "BUY", 10, 2400.50)
        summary = await service.get_portfolio_summary("user-1")
        result = await service.square_off("user-1", "RELIANCE")
    """

    def __init__(
        self,
        feed: MarketFeed,
        store: LedgerStore,
        config: TradingConfig | None = None,
    ):
        self._feed = feed
        self._store = store
        self._config = config or TradingConfig()
        self._engine = TradeExecutionEngine(feed, store, self._config)
        self._valuation = PortfolioValuation(feed, store, self._engine)
        self._square_off = SquareOff(feed, store, self._engine)

    @property
    def feed(self) -> MarketFeed:
        return self._feed

    @property
    def store(self) -> LedgerStore:
        return self._store

    @property
    def engine(self) -> TradeExecutionEngine:
        return self._engine

    # ==================== Accounts ====================

    async def open_account(self, user_id: str, balance: Decimal | None = None) -> Decimal:
        """Provision an account (idempotent) and return its balance."""
        opening = balance if balance is not None else self._config.initial_balance
        await self._engine.call(self._store.open_account(user_id, opening), "Open account")
        return await self.get_balance(user_id)

    async def get_balance(self, user_id: str) -> Decimal:
        return await self._engine.call(self._store.get_balance(user_id), "Load balance")

    # ==================== Orders ====================

    async def execute_trade(
        self,
        user_id: str,
        symbol: str,
        side: Side | str,
        quantity: int,
        price: Decimal | float | str,
        brokerage_enabled: bool | None = None,
    ) -> TradeResult:
        """
        Place a simulated market order.

        Args:
            brokerage_enabled: Charge the flat fee. None uses the user's
                brokerage_simulation setting.
        """
        if brokerage_enabled is None:
            try:
                settings = await self.get_user_settings(user_id)
            except TradingError as e:
                return TradeResult.failed(e)
            brokerage_enabled = settings.brokerage_simulation

        return await self._engine.execute_trade(
            user_id, symbol, side, quantity, price, brokerage_enabled
        )

    async def square_off(self, user_id: str, symbol: str) -> TradeResult:
        """Close the whole position in `symbol` at the current price."""
        return await self._square_off.square_off(user_id, symbol)

    # ==================== Reads ====================

    async def get_positions(self, user_id: str) -> list[Position]:
        return await self._valuation.get_positions(user_id)

    async def get_portfolio_summary(self, user_id: str) -> PortfolioSummary:
        return await self._valuation.summarize(user_id)

    async def get_trade_history(
        self, user_id: str, limit: int = DEFAULT_HISTORY_LIMIT
    ) -> list[Trade]:
        """Most recent trades first."""
        return await self._engine.call(self._store.list_trades(user_id, limit), "List trades")

    # ==================== Settings ====================

    async def get_user_settings(self, user_id: str) -> UserSettings:
        return await self._engine.call(self._store.get_settings(user_id), "Load settings")

    async def update_user_settings(
        self, user_id: str, brokerage_simulation: bool | None = None
    ) -> UserSettings:
        """Update the given fields and return the stored settings."""
        settings = await self.get_user_settings(user_id)
        if brokerage_simulation is not None:
            settings.brokerage_simulation = brokerage_simulation
        await self._engine.call(self._store.save_settings(settings), "Save settings")
        logger.info(f"Updated settings for {user_id}: {settings.to_dict()}")
        return settings
