# === MODULE PURPOSE ===
# Portfolio valuation: marks open positions against live feed prices and
# aggregates them into a summary.

# === KEY CONCEPTS ===
# - Pure read: refreshed prices are returned, never written back
# - Unrealized P&L per position: (current - avg) * qty
# - Day P&L: today's trades marked to the current price, net of the
#   brokerage paid on them
# - Store/feed failures propagate as StoreUnavailableError

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from papertrade.trading.accounting import mark_to_market
from papertrade.trading.errors import UnknownSymbolError
from papertrade.trading.models import (
    ZERO,
    PortfolioSummary,
    Position,
    Side,
    Trade,
    money,
)

if TYPE_CHECKING:
    from papertrade.market.feed import MarketFeed
    from papertrade.trading.engine import TradeExecutionEngine
    from papertrade.trading.ledger import LedgerStore

logger = logging.getLogger(__name__)


class PortfolioValuation:
    """
    Read-only aggregation over a user's positions and trades.

    Usage:
        valuation = PortfolioValuation(feed, store, engine)
        positions = await valuation.get_positions("user-1")
        summary = await valuation.summarize("user-1")
    """

    def __init__(
        self,
        feed: MarketFeed,
        store: LedgerStore,
        engine: TradeExecutionEngine,
    ):
        self._feed = feed
        self._store = store
        # Shares the engine's timeout handling for store/feed calls
        self._engine = engine

    async def _price_or(self, symbol: str, fallback: Decimal) -> Decimal:
        try:
            return await self._engine.call(self._feed.get_price(symbol), "Fetch price")
        except UnknownSymbolError:
            logger.debug(f"No feed price for {symbol}, keeping last seen {fallback}")
            return fallback

    async def get_positions(self, user_id: str) -> list[Position]:
        """Open positions marked to the latest feed price."""
        positions = await self._engine.call(
            self._store.list_positions(user_id), "List positions"
        )
        refreshed = []
        for position in positions:
            price = await self._price_or(position.symbol, position.current_price)
            refreshed.append(mark_to_market(position, price))
        return refreshed

    async def summarize(self, user_id: str, now: datetime | None = None) -> PortfolioSummary:
        """
        Aggregate performance snapshot.

        Args:
            user_id: Account owner.
            now: Reference time for the trading day (default: feed clock).

        Returns:
            PortfolioSummary with totals, day P&L and brokerage paid.
        """
        positions = await self.get_positions(user_id)

        total_invested = sum((p.invested_amount for p in positions), ZERO)
        total_value = sum((p.current_value for p in positions), ZERO)
        total_pnl = sum((p.pnl for p in positions), ZERO)
        total_pnl_percentage = (
            float(total_pnl / total_invested * 100) if total_invested > ZERO else 0.0
        )

        trades = await self._engine.call(self._store.list_trades(user_id), "List trades")
        total_brokerage = sum((t.brokerage for t in trades), ZERO)

        day_start = self._feed.start_of_day(now)
        todays = [t for t in trades if t.created_at >= day_start]
        day_pnl = await self._day_pnl(todays, positions)

        return PortfolioSummary(
            total_value=money(total_value),
            total_invested=money(total_invested),
            total_pnl=money(total_pnl),
            total_pnl_percentage=total_pnl_percentage,
            day_pnl=day_pnl,
            total_brokerage=money(total_brokerage),
        )

    async def _day_pnl(self, trades: list[Trade], positions: list[Position]) -> Decimal:
        """Mark today's trades to current prices, net of their brokerage."""
        marks = {p.symbol: p.current_price for p in positions}
        total = ZERO
        for trade in trades:
            if trade.symbol not in marks:
                marks[trade.symbol] = await self._price_or(trade.symbol, trade.price)
            current = marks[trade.symbol]
            if trade.side == Side.BUY:
                total += (current - trade.price) * trade.quantity
            else:
                total += (trade.price - current) * trade.quantity
            total -= trade.brokerage
        return money(total)
