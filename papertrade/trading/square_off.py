# === MODULE PURPOSE ===
# Square-off: fully close one open position in a single user action.

# === KEY CONCEPTS ===
# - Sells the whole position at the current feed price through the
#   execution engine (same validation, locking and rollback)
# - Brokerage follows the user's brokerage_simulation setting
# - On success every OPEN trade for (user, symbol) is marked CLOSED with
#   the realized P&L of the position at square-off time

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from papertrade.trading.accounting import realized_pnl
from papertrade.trading.engine import normalize_symbol
from papertrade.trading.errors import PositionNotFoundError, TradingError
from papertrade.trading.models import Side, TradeResult, TradeStatus

if TYPE_CHECKING:
    from papertrade.market.feed import MarketFeed
    from papertrade.trading.engine import TradeExecutionEngine
    from papertrade.trading.ledger import LedgerStore

logger = logging.getLogger(__name__)


class SquareOff:
    """
    Closes a position with an offsetting SELL.

    Usage:
        square_off = SquareOff(feed, store, engine)
        result = await square_off.square_off("user-1", "RELIANCE")
    """

    def __init__(
        self,
        feed: MarketFeed,
        store: LedgerStore,
        engine: TradeExecutionEngine,
    ):
        self._feed = feed
        self._store = store
        self._engine = engine

    async def square_off(self, user_id: str, symbol: str) -> TradeResult:
        """
        Sell the entire position for a symbol at the current market price.

        Returns:
            The execution result, with realized_pnl set and the P&L in the
            message on success. Failures come back as failed results.
        """
        symbol = normalize_symbol(symbol)

        # Held across read, sell and close so no order can slip in between
        async with self._engine.symbol_lock(user_id, symbol):
            return await self._square_off_locked(user_id, symbol)

    async def _square_off_locked(self, user_id: str, symbol: str) -> TradeResult:
        call = self._engine.call

        try:
            position = await call(self._store.get_position(user_id, symbol), "Load position")
            if position is None:
                raise PositionNotFoundError(f"No open position in {symbol}")

            price = await call(self._feed.get_price(symbol), "Fetch price")
            settings = await call(self._store.get_settings(user_id), "Load settings")
        except TradingError as e:
            logger.warning(f"Square-off {user_id}/{symbol} rejected: {e.message}")
            return TradeResult.failed(e)

        pnl = realized_pnl(position, position.quantity, price)

        result = await self._engine.execute_trade_locked(
            user_id,
            symbol,
            Side.SELL,
            position.quantity,
            price,
            brokerage_enabled=settings.brokerage_simulation,
        )
        if not result.success:
            return result

        closed_at = self._feed.now()
        try:
            open_trades = await call(
                self._store.list_open_trades(user_id, symbol), "List open trades"
            )
            for trade in open_trades:
                await call(
                    self._store.update_trade_status(
                        trade.trade_id, TradeStatus.CLOSED, closed_at, pnl
                    ),
                    "Close trade",
                )
        except TradingError as e:
            # The sell itself is committed; only the trade bookkeeping lags
            logger.critical(
                f"Square-off {user_id}/{symbol} sold but trades not closed: {e.message}. "
                f"Manual reconciliation required"
            )
        else:
            logger.info(
                f"Squared off {user_id}/{symbol}: {position.quantity} @ {price}, "
                f"closed {len(open_trades)} trades, P&L {pnl}"
            )

        result.realized_pnl = pnl
        result.message = f"Position squared off successfully. P&L: ₹{pnl:.2f}"
        return result
