# === MODULE PURPOSE ===
# Ledger store interface: durable storage for cash balances, positions,
# trade records and user settings.

# === KEY CONCEPTS ===
# - LedgerStore: Narrow async interface the trading core reads/writes through
# - InMemoryLedgerStore: Dict-backed store for tests and the demo server
# - PostgresLedgerStore (repository.py): asyncpg-backed production store
# - Stores hand out copies; mutating a returned object never changes the store

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal

from papertrade.trading.errors import AccountNotFoundError, InvalidStateError
from papertrade.trading.models import (
    Position,
    Trade,
    TradeStatus,
    UserSettings,
    money,
    to_decimal,
)

logger = logging.getLogger(__name__)

EPOCH = datetime.fromtimestamp(0, timezone.utc)


class LedgerStore(ABC):
    """
    Abstract ledger store.

    All methods are coroutines. Implementations raise StoreUnavailableError
    (or let the engine's timeout produce one) on I/O failure, and
    AccountNotFoundError for balance access on an unknown user.
    """

    # ==================== Accounts ====================

    @abstractmethod
    async def open_account(self, user_id: str, balance: Decimal) -> None:
        """Provision an account with a starting balance (no-op if it exists)."""
        ...

    @abstractmethod
    async def get_balance(self, user_id: str) -> Decimal:
        ...

    @abstractmethod
    async def set_balance(self, user_id: str, new_balance: Decimal) -> None:
        ...

    # ==================== Positions ====================

    @abstractmethod
    async def get_position(self, user_id: str, symbol: str) -> Position | None:
        ...

    @abstractmethod
    async def upsert_position(self, position: Position) -> None:
        """Insert or replace the single position for (user_id, symbol)."""
        ...

    @abstractmethod
    async def delete_position(self, user_id: str, symbol: str) -> None:
        ...

    @abstractmethod
    async def list_positions(self, user_id: str) -> list[Position]:
        """All open positions for a user, newest first."""
        ...

    # ==================== Trades ====================

    @abstractmethod
    async def insert_trade(self, trade: Trade) -> str:
        """Append a trade record and return its ID."""
        ...

    @abstractmethod
    async def update_trade_status(
        self,
        trade_id: str,
        status: TradeStatus,
        closed_at: datetime | None,
        realized_pnl: Decimal | None,
    ) -> None:
        ...

    @abstractmethod
    async def list_trades(self, user_id: str, limit: int | None = None) -> list[Trade]:
        """Trades for a user, newest first. limit=None returns all."""
        ...

    @abstractmethod
    async def list_open_trades(self, user_id: str, symbol: str) -> list[Trade]:
        ...

    # ==================== Settings ====================

    @abstractmethod
    async def get_settings(self, user_id: str) -> UserSettings:
        """Stored settings, or defaults when the user has none."""
        ...

    @abstractmethod
    async def save_settings(self, settings: UserSettings) -> None:
        ...


class InMemoryLedgerStore(LedgerStore):
    """
    Ledger store kept entirely in process memory.

    Usage:
        store = InMemoryLedgerStore()
        await store.open_account("user-1", Decimal("100000"))
        balance = await store.get_balance("user-1")
    """

    def __init__(self) -> None:
        self._balances: dict[str, Decimal] = {}
        self._positions: dict[tuple[str, str], Position] = {}
        self._trades: dict[str, Trade] = {}
        self._settings: dict[str, UserSettings] = {}

    async def open_account(self, user_id: str, balance: Decimal) -> None:
        if user_id in self._balances:
            return
        self._balances[user_id] = money(to_decimal(balance))
        logger.info(f"Opened account {user_id} with balance {balance}")

    async def get_balance(self, user_id: str) -> Decimal:
        if user_id not in self._balances:
            raise AccountNotFoundError(f"No account for user {user_id}")
        return self._balances[user_id]

    async def set_balance(self, user_id: str, new_balance: Decimal) -> None:
        if user_id not in self._balances:
            raise AccountNotFoundError(f"No account for user {user_id}")
        self._balances[user_id] = money(new_balance)

    async def get_position(self, user_id: str, symbol: str) -> Position | None:
        position = self._positions.get((user_id, symbol))
        return replace(position) if position else None

    async def upsert_position(self, position: Position) -> None:
        if position.quantity <= 0:
            raise InvalidStateError(
                f"Refusing to store {position.symbol} with quantity {position.quantity}"
            )
        self._positions[(position.user_id, position.symbol)] = replace(position)

    async def delete_position(self, user_id: str, symbol: str) -> None:
        self._positions.pop((user_id, symbol), None)

    async def list_positions(self, user_id: str) -> list[Position]:
        positions = [replace(p) for (uid, _), p in self._positions.items() if uid == user_id]
        positions.sort(key=lambda p: p.created_at or EPOCH, reverse=True)
        return positions

    async def insert_trade(self, trade: Trade) -> str:
        trade_id = str(uuid.uuid4())
        self._trades[trade_id] = replace(trade, trade_id=trade_id)
        return trade_id

    async def update_trade_status(
        self,
        trade_id: str,
        status: TradeStatus,
        closed_at: datetime | None,
        realized_pnl: Decimal | None,
    ) -> None:
        trade = self._trades.get(trade_id)
        if trade is None:
            raise InvalidStateError(f"Trade {trade_id} not found")
        trade.status = status
        trade.closed_at = closed_at
        trade.realized_pnl = realized_pnl

    async def list_trades(self, user_id: str, limit: int | None = None) -> list[Trade]:
        # Insertion order is creation order; reverse for newest first
        trades = [replace(t) for t in reversed(self._trades.values()) if t.user_id == user_id]
        return trades[:limit] if limit is not None else trades

    async def list_open_trades(self, user_id: str, symbol: str) -> list[Trade]:
        return [
            replace(t)
            for t in self._trades.values()
            if t.user_id == user_id and t.symbol == symbol and t.status == TradeStatus.OPEN
        ]

    async def get_settings(self, user_id: str) -> UserSettings:
        settings = self._settings.get(user_id)
        return replace(settings) if settings else UserSettings(user_id=user_id)

    async def save_settings(self, settings: UserSettings) -> None:
        self._settings[settings.user_id] = replace(settings)
