# === MODULE PURPOSE ===
# Trade execution engine: validates and executes one buy/sell order
# against the ledger store, keeping balance, position and trade records
# mutually consistent.

# === KEY CONCEPTS ===
# - Validation order: quantity, price, side, market open, balance/holdings.
#   The first failure short-circuits before any mutation
# - Brokerage: flat fee per order (not a percentage), optional per request.
#   On SELL it is capped at proceeds plus cash
# - Execution order: balance -> position -> trade record. A failed step
#   undoes the earlier ones (compensating writes); trades are append-only,
#   so the trade is written last and never needs removing
# - Locks: one per (user, symbol) for the whole order, one per user around
#   the balance read-check-write
# - Every store/feed call is bounded by a timeout; a timeout is reported as
#   a retryable StoreUnavailableError

from __future__ import annotations

import asyncio
import logging
import math
import weakref
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, Awaitable, Hashable

from papertrade.common.config import TradingConfig
from papertrade.trading.accounting import apply_fill, realized_pnl
from papertrade.trading.errors import (
    InsufficientBalanceError,
    InsufficientHoldingsError,
    InvalidPriceError,
    InvalidQuantityError,
    InvalidSideError,
    InvalidStateError,
    MarketClosedError,
    StoreUnavailableError,
    TradingError,
    UnknownSymbolError,
)
from papertrade.trading.models import (
    ZERO,
    Position,
    Side,
    Trade,
    TradeResult,
    TradeStatus,
    money,
    to_decimal,
)

if TYPE_CHECKING:
    from papertrade.market.feed import MarketFeed
    from papertrade.trading.ledger import LedgerStore

logger = logging.getLogger(__name__)


class KeyedLocks:
    """
    Lazily created asyncio.Lock per key.

    Locks are held weakly: an entry disappears once no caller references
    its lock, so idle (user, symbol) pairs do not accumulate.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[Hashable, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def get(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)


def normalize_symbol(symbol: str) -> str:
    return symbol.strip().upper()


class TradeExecutionEngine:
    """
    Executes single orders atomically against the ledger store.

    Usage:
        engine = TradeExecutionEngine(feed, store, TradingConfig())
        result = await engine.execute_trade("user-1", "RELIANCE", Side.BUY, 10, "2400.50")
        if result.success:
            print(result.new_balance)
        else:
            print(result.error, result.message)
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
        self._symbol_locks = KeyedLocks()
        self._user_locks = KeyedLocks()

    @property
    def config(self) -> TradingConfig:
        return self._config

    def symbol_lock(self, user_id: str, symbol: str) -> asyncio.Lock:
        """Lock serializing orders for one (user, symbol) pair."""
        return self._symbol_locks.get((user_id, normalize_symbol(symbol)))

    async def call(self, awaitable: Awaitable[Any], operation: str) -> Any:
        """
        Await a store/feed call with the configured timeout.

        Raises:
            StoreUnavailableError: On timeout or connection-level failure.
            TradingError: Passed through unchanged.
        """
        try:
            return await asyncio.wait_for(awaitable, timeout=self._config.io_timeout)
        except TradingError:
            raise
        except asyncio.TimeoutError as e:
            logger.error(f"{operation} timed out after {self._config.io_timeout}s")
            raise StoreUnavailableError(f"{operation} timed out, please retry") from e
        except (ConnectionError, OSError) as e:
            logger.error(f"{operation} failed: {e}")
            raise StoreUnavailableError() from e

    # ==================== Validation ====================

    @staticmethod
    def _validate_quantity(quantity: Any) -> int:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidQuantityError(
                f"Quantity must be a positive whole number, got {quantity!r}"
            )
        return quantity

    @staticmethod
    def _validate_price(price: Any) -> Decimal:
        if isinstance(price, bool):
            raise InvalidPriceError()
        if isinstance(price, float) and not math.isfinite(price):
            raise InvalidPriceError()
        try:
            value = to_decimal(price)
        except (InvalidOperation, ValueError, TypeError) as e:
            raise InvalidPriceError(f"Price must be a positive number, got {price!r}") from e
        if not value.is_finite() or value <= ZERO:
            raise InvalidPriceError(f"Price must be a positive number, got {price!r}")
        return value

    @staticmethod
    def _parse_side(side: Side | str) -> Side:
        try:
            return Side.parse(side)
        except ValueError as e:
            raise InvalidSideError(f"Order side must be BUY or SELL, got {side!r}") from e

    # ==================== Execution ====================

    async def execute_trade(
        self,
        user_id: str,
        symbol: str,
        side: Side | str,
        quantity: int,
        exec_price: Decimal | float | str,
        brokerage_enabled: bool = True,
    ) -> TradeResult:
        """
        Validate and execute one order.

        Args:
            user_id: Account owner.
            symbol: Instrument symbol (case-insensitive).
            side: BUY or SELL.
            quantity: Positive whole number of shares.
            exec_price: Price per share.
            brokerage_enabled: Charge the flat brokerage fee.

        Returns:
            TradeResult. Validation and I/O failures come back as failed
            results with a distinct error code.

        Raises:
            InvalidStateError: Internal invariant violated.
        """
        symbol = normalize_symbol(symbol)
        async with self.symbol_lock(user_id, symbol):
            return await self.execute_trade_locked(
                user_id, symbol, side, quantity, exec_price, brokerage_enabled
            )

    async def execute_trade_locked(
        self,
        user_id: str,
        symbol: str,
        side: Side | str,
        quantity: int,
        exec_price: Decimal | float | str,
        brokerage_enabled: bool = True,
    ) -> TradeResult:
        """
        Same as execute_trade, for callers already holding symbol_lock().

        Used by compound operations (square-off) that must read and trade
        under one lock.
        """
        symbol = normalize_symbol(symbol)

        try:
            quantity = self._validate_quantity(quantity)
            price = self._validate_price(exec_price)
            order_side = self._parse_side(side)
            if not self._feed.is_open():
                raise MarketClosedError()
        except TradingError as e:
            logger.warning(f"Rejected order {user_id} {side} {symbol} x{quantity!r}: {e.message}")
            return TradeResult.failed(e)

        try:
            return await self._execute(
                user_id, symbol, order_side, quantity, price, brokerage_enabled
            )
        except InvalidStateError:
            raise
        except TradingError as e:
            if e.retryable:
                logger.error(f"Order {user_id} {order_side.value} {symbol} failed: {e.message}")
            else:
                logger.warning(
                    f"Rejected order {user_id} {order_side.value} {symbol} "
                    f"x{quantity}: {e.message}"
                )
            return TradeResult.failed(e)

    async def _execute(
        self,
        user_id: str,
        symbol: str,
        side: Side,
        quantity: int,
        price: Decimal,
        brokerage_enabled: bool,
    ) -> TradeResult:
        """Execute with the (user, symbol) lock held."""
        brokerage = money(self._config.brokerage_fee) if brokerage_enabled else money(ZERO)
        gross = money(price * quantity)
        now = self._feed.now()

        existing = await self.call(self._store.get_position(user_id, symbol), "Load position")
        if side == Side.SELL and (existing is None or existing.quantity < quantity):
            held = existing.quantity if existing else 0
            raise InsufficientHoldingsError(
                f"Insufficient quantity to sell: {quantity} {symbol} requested, {held} held"
            )

        current_price = await self._current_price(symbol, fallback=price)

        # Computed before any write so an invariant failure leaves no trace
        new_position = apply_fill(
            existing,
            side,
            quantity,
            price,
            current_price,
            user_id=user_id,
            symbol=symbol,
            now=now,
        )

        async with self._user_locks.get(user_id):
            balance = await self.call(self._store.get_balance(user_id), "Load balance")
            if side == Side.BUY:
                total_debit = gross + brokerage
                if total_debit > balance:
                    raise InsufficientBalanceError(
                        f"Insufficient balance for this trade: need {total_debit}, "
                        f"available {balance}"
                    )
                delta = -total_debit
            else:
                # SELL fee is capped at proceeds plus cash; balance stays >= 0
                if brokerage > gross + balance:
                    logger.info(
                        f"Capping brokerage for {user_id} {symbol} at {gross + balance}"
                    )
                    brokerage = gross + balance
                delta = gross - brokerage

            new_balance = balance + delta
            try:
                await self.call(self._store.set_balance(user_id, new_balance), "Update balance")
            except StoreUnavailableError:
                # Outcome of a timed-out write is unknown; put the old value back
                await self._restore_balance(user_id, balance)
                raise

        try:
            await self._write_position(user_id, symbol, new_position)
        except StoreUnavailableError:
            await self._rollback_balance(user_id, delta)
            await self._restore_position(user_id, symbol, existing)
            raise

        trade = Trade(
            user_id=user_id,
            symbol=symbol,
            side=side,
            quantity=quantity,
            price=price,
            brokerage=brokerage,
            created_at=now,
            status=TradeStatus.OPEN,
        )
        try:
            trade_id = await self.call(self._store.insert_trade(trade), "Record trade")
        except StoreUnavailableError:
            await self._restore_position(user_id, symbol, existing)
            await self._rollback_balance(user_id, delta)
            raise

        realized = realized_pnl(existing, quantity, price) if side == Side.SELL else None
        logger.info(
            f"Executed {side.value} {symbol} x{quantity} @ {price} for {user_id}: "
            f"brokerage={brokerage}, balance {balance} -> {new_balance}"
        )

        return TradeResult(
            success=True,
            message=f"{side.value} order executed successfully",
            trade_id=trade_id,
            new_balance=new_balance,
            brokerage=brokerage,
            realized_pnl=realized,
        )

    async def _current_price(self, symbol: str, fallback: Decimal) -> Decimal:
        """Latest feed price, or the execution price if the feed has none."""
        try:
            return await self.call(self._feed.get_price(symbol), "Fetch price")
        except UnknownSymbolError:
            logger.debug(f"No feed price for {symbol}, marking at execution price")
            return fallback

    async def _write_position(
        self, user_id: str, symbol: str, position: Position | None
    ) -> None:
        if position is None:
            await self.call(self._store.delete_position(user_id, symbol), "Delete position")
        else:
            await self.call(self._store.upsert_position(position), "Save position")

    # ==================== Rollback ====================

    async def _restore_balance(self, user_id: str, balance: Decimal) -> None:
        """Write back a known-good balance. Caller holds the user lock."""
        try:
            await self.call(self._store.set_balance(user_id, balance), "Restore balance")
        except TradingError as e:
            logger.critical(
                f"Balance rollback failed for {user_id}: expected {balance}. "
                f"Manual reconciliation required ({e.message})"
            )

    async def _rollback_balance(self, user_id: str, delta: Decimal) -> None:
        """Reverse an applied balance change."""
        async with self._user_locks.get(user_id):
            try:
                current = await self.call(self._store.get_balance(user_id), "Load balance")
                await self.call(
                    self._store.set_balance(user_id, current - delta), "Restore balance"
                )
                logger.warning(f"Rolled back balance change of {delta} for {user_id}")
            except TradingError as e:
                logger.critical(
                    f"Balance rollback failed for {user_id}: change of {delta} still applied. "
                    f"Manual reconciliation required ({e.message})"
                )

    async def _restore_position(
        self, user_id: str, symbol: str, previous: Position | None
    ) -> None:
        """Put the pre-trade position back."""
        try:
            await self._write_position(user_id, symbol, previous)
            logger.warning(f"Restored position {user_id}/{symbol}")
        except TradingError as e:
            logger.critical(
                f"Position rollback failed for {user_id}/{symbol}: expected {previous}. "
                f"Manual reconciliation required ({e.message})"
            )
