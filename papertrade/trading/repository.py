# === MODULE PURPOSE ===
# PostgreSQL ledger store for paper-trading data.
# Uses a separate schema for isolation from other application tables.

# === DEPENDENCIES ===
# - asyncpg: Async PostgreSQL client
# - ledger: LedgerStore interface implemented here

# === KEY CONCEPTS ===
# - Schema isolation: All tables in the configured schema (default "ledger")
# - Tables: accounts, positions, trades, user_settings
# - One position row per (user_id, symbol), enforced by a UNIQUE constraint
# - Auto-migration: Creates schema and tables if not exist
# - asyncpg/OS errors surface as StoreUnavailableError

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

import asyncpg

from papertrade.common.config import load_config, resolve_env
from papertrade.trading.errors import (
    AccountNotFoundError,
    InvalidStateError,
    StoreUnavailableError,
)
from papertrade.trading.ledger import LedgerStore
from papertrade.trading.models import (
    ZERO,
    Position,
    Side,
    Trade,
    TradeStatus,
    UserSettings,
    money,
)

logger = logging.getLogger(__name__)


@dataclass
class LedgerRepositoryConfig:
    """Configuration for the PostgreSQL ledger store."""

    host: str = "localhost"
    port: int = 5432
    database: str = "papertrade"
    user: str = "papertrade"
    password: str = ""
    pool_min_size: int = 2
    pool_max_size: int = 5
    schema: str = "ledger"
    auto_create_schema: bool = True


# SQL for schema and table creation
SCHEMA_SQL = """
CREATE SCHEMA IF NOT EXISTS {schema};
"""

TABLES_SQL = """
-- One virtual cash balance per user
CREATE TABLE IF NOT EXISTS {schema}.accounts (
    user_id VARCHAR(64) PRIMARY KEY,
    balance DECIMAL(16, 2) NOT NULL CHECK (balance >= 0),
    created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
);

-- Net open holding per (user, symbol)
CREATE TABLE IF NOT EXISTS {schema}.positions (
    id SERIAL PRIMARY KEY,
    user_id VARCHAR(64) NOT NULL REFERENCES {schema}.accounts(user_id),
    symbol VARCHAR(32) NOT NULL,
    quantity INTEGER NOT NULL CHECK (quantity > 0),
    avg_price DECIMAL(14, 4) NOT NULL,
    current_price DECIMAL(14, 4) NOT NULL,
    pnl DECIMAL(16, 2) NOT NULL DEFAULT 0,
    pnl_percentage DOUBLE PRECISION NOT NULL DEFAULT 0,
    created_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP,
    UNIQUE (user_id, symbol)
);

-- Append-only executed orders
CREATE TABLE IF NOT EXISTS {schema}.trades (
    id VARCHAR(50) PRIMARY KEY,
    user_id VARCHAR(64) NOT NULL REFERENCES {schema}.accounts(user_id),
    symbol VARCHAR(32) NOT NULL,
    side VARCHAR(4) NOT NULL,  -- BUY/SELL
    quantity INTEGER NOT NULL,
    price DECIMAL(14, 4) NOT NULL,
    brokerage DECIMAL(12, 2) NOT NULL DEFAULT 0,
    gross_amount DECIMAL(16, 2) NOT NULL,
    net_amount DECIMAL(16, 2) NOT NULL,
    status VARCHAR(10) NOT NULL DEFAULT 'OPEN',  -- OPEN/CLOSED
    realized_pnl DECIMAL(16, 2),
    created_at TIMESTAMPTZ NOT NULL,
    closed_at TIMESTAMPTZ
);

-- Per-user preferences
CREATE TABLE IF NOT EXISTS {schema}.user_settings (
    user_id VARCHAR(64) PRIMARY KEY,
    brokerage_simulation BOOLEAN NOT NULL DEFAULT TRUE,
    updated_at TIMESTAMPTZ DEFAULT CURRENT_TIMESTAMP
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_positions_user ON {schema}.positions(user_id);
CREATE INDEX IF NOT EXISTS idx_trades_user_created ON {schema}.trades(user_id, created_at);
CREATE INDEX IF NOT EXISTS idx_trades_open ON {schema}.trades(user_id, symbol, status);
"""


def position_from_row(row: Any) -> Position:
    """Build a Position from a positions row."""
    return Position(
        user_id=row["user_id"],
        symbol=row["symbol"],
        quantity=row["quantity"],
        avg_price=Decimal(row["avg_price"]),
        current_price=Decimal(row["current_price"]),
        pnl=Decimal(row["pnl"]) if row["pnl"] is not None else ZERO,
        pnl_percentage=float(row["pnl_percentage"] or 0.0),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def trade_from_row(row: Any) -> Trade:
    """Build a Trade from a trades row."""
    return Trade(
        trade_id=row["id"],
        user_id=row["user_id"],
        symbol=row["symbol"],
        side=Side(row["side"]),
        quantity=row["quantity"],
        price=Decimal(row["price"]),
        brokerage=Decimal(row["brokerage"]),
        status=TradeStatus(row["status"]),
        realized_pnl=Decimal(row["realized_pnl"]) if row["realized_pnl"] is not None else None,
        created_at=row["created_at"],
        closed_at=row["closed_at"],
    )


class PostgresLedgerStore(LedgerStore):
    """
    PostgreSQL-backed ledger store.

    Handles persistence of:
    - Account balances
    - Open positions (one row per user and symbol)
    - Trade records and their OPEN/CLOSED status
    - User settings

    Usage:
        store = PostgresLedgerStore(config)
        await store.connect()

        await store.open_account("user-1", Decimal("100000"))
        balance = await store.get_balance("user-1")

        await store.close()
    """

    def __init__(self, config: LedgerRepositoryConfig):
        self._config = config
        self._pool: asyncpg.Pool | None = None
        self._is_connected = False
        self._schema = config.schema

    async def connect(self) -> None:
        """Establish connection pool and initialize schema."""
        if self._is_connected:
            return

        try:
            logger.info(
                f"Connecting to PostgreSQL: {self._config.host}:{self._config.port}"
                f"/{self._config.database} (schema: {self._schema})"
            )

            self._pool = await asyncpg.create_pool(
                host=self._config.host,
                port=self._config.port,
                database=self._config.database,
                user=self._config.user,
                password=self._config.password,
                min_size=self._config.pool_min_size,
                max_size=self._config.pool_max_size,
            )

            # Initialize schema and tables
            if self._config.auto_create_schema:
                await self._init_schema()

            self._is_connected = True
            logger.info("PostgresLedgerStore connected to PostgreSQL")

        except (OSError, asyncpg.PostgresError) as e:
            logger.error(f"Failed to connect to PostgreSQL: {e}")
            raise StoreUnavailableError(f"Cannot connect to ledger database: {e}") from e

    async def close(self) -> None:
        """Close connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            self._is_connected = False
            logger.info("PostgresLedgerStore disconnected")

    async def _init_schema(self) -> None:
        """Create schema and tables if not exist."""
        # Called during connect() before _is_connected is set, so use _pool directly
        assert self._pool is not None
        async with self._pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL.format(schema=self._schema))
            await conn.execute(TABLES_SQL.format(schema=self._schema))
            logger.info(f"Initialized ledger schema: {self._schema}")

    async def _execute(self, query: str, *args: Any) -> str:
        try:
            async with self._db_pool.acquire() as conn:
                return await conn.execute(query, *args)
        except (OSError, asyncpg.PostgresError) as e:
            logger.error(f"Ledger write failed: {e}")
            raise StoreUnavailableError() from e

    async def _fetch(self, query: str, *args: Any) -> list[Any]:
        try:
            async with self._db_pool.acquire() as conn:
                return await conn.fetch(query, *args)
        except (OSError, asyncpg.PostgresError) as e:
            logger.error(f"Ledger read failed: {e}")
            raise StoreUnavailableError() from e

    async def _fetchrow(self, query: str, *args: Any) -> Any:
        rows = await self._fetch(query, *args)
        return rows[0] if rows else None

    # ==================== Accounts ====================

    async def open_account(self, user_id: str, balance: Decimal) -> None:
        await self._execute(
            f"""
            INSERT INTO {self._schema}.accounts (user_id, balance)
            VALUES ($1, $2)
            ON CONFLICT (user_id) DO NOTHING
            """,
            user_id,
            money(balance),
        )

    async def get_balance(self, user_id: str) -> Decimal:
        row = await self._fetchrow(
            f"SELECT balance FROM {self._schema}.accounts WHERE user_id = $1",
            user_id,
        )
        if row is None:
            raise AccountNotFoundError(f"No account for user {user_id}")
        return Decimal(row["balance"])

    async def set_balance(self, user_id: str, new_balance: Decimal) -> None:
        status = await self._execute(
            f"""
            UPDATE {self._schema}.accounts SET
                balance = $2,
                updated_at = CURRENT_TIMESTAMP
            WHERE user_id = $1
            """,
            user_id,
            money(new_balance),
        )
        if status == "UPDATE 0":
            raise AccountNotFoundError(f"No account for user {user_id}")

    # ==================== Positions ====================

    async def get_position(self, user_id: str, symbol: str) -> Position | None:
        row = await self._fetchrow(
            f"""
            SELECT user_id, symbol, quantity, avg_price, current_price,
                   pnl, pnl_percentage, created_at, updated_at
            FROM {self._schema}.positions
            WHERE user_id = $1 AND symbol = $2
            """,
            user_id,
            symbol,
        )
        return position_from_row(row) if row else None

    async def upsert_position(self, position: Position) -> None:
        if position.quantity <= 0:
            raise InvalidStateError(
                f"Refusing to store {position.symbol} with quantity {position.quantity}"
            )
        await self._execute(
            f"""
            INSERT INTO {self._schema}.positions
                (user_id, symbol, quantity, avg_price, current_price,
                 pnl, pnl_percentage, created_at, updated_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, COALESCE($8, CURRENT_TIMESTAMP),
                    COALESCE($9, CURRENT_TIMESTAMP))
            ON CONFLICT (user_id, symbol) DO UPDATE SET
                quantity = EXCLUDED.quantity,
                avg_price = EXCLUDED.avg_price,
                current_price = EXCLUDED.current_price,
                pnl = EXCLUDED.pnl,
                pnl_percentage = EXCLUDED.pnl_percentage,
                updated_at = EXCLUDED.updated_at
            """,
            position.user_id,
            position.symbol,
            position.quantity,
            position.avg_price,
            position.current_price,
            position.pnl,
            position.pnl_percentage,
            position.created_at,
            position.updated_at,
        )

    async def delete_position(self, user_id: str, symbol: str) -> None:
        await self._execute(
            f"DELETE FROM {self._schema}.positions WHERE user_id = $1 AND symbol = $2",
            user_id,
            symbol,
        )

    async def list_positions(self, user_id: str) -> list[Position]:
        rows = await self._fetch(
            f"""
            SELECT user_id, symbol, quantity, avg_price, current_price,
                   pnl, pnl_percentage, created_at, updated_at
            FROM {self._schema}.positions
            WHERE user_id = $1
            ORDER BY created_at DESC
            """,
            user_id,
        )
        return [position_from_row(row) for row in rows]

    # ==================== Trades ====================

    async def insert_trade(self, trade: Trade) -> str:
        trade_id = str(uuid.uuid4())
        await self._execute(
            f"""
            INSERT INTO {self._schema}.trades
                (id, user_id, symbol, side, quantity, price, brokerage,
                 gross_amount, net_amount, status, created_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
            """,
            trade_id,
            trade.user_id,
            trade.symbol,
            trade.side.value,
            trade.quantity,
            trade.price,
            trade.brokerage,
            trade.gross_amount,
            trade.net_amount,
            trade.status.value,
            trade.created_at,
        )
        logger.info(f"Recorded trade {trade_id}: {trade.side.value} {trade.symbol} x{trade.quantity}")
        return trade_id

    async def update_trade_status(
        self,
        trade_id: str,
        status: TradeStatus,
        closed_at: datetime | None,
        realized_pnl: Decimal | None,
    ) -> None:
        await self._execute(
            f"""
            UPDATE {self._schema}.trades SET
                status = $2,
                closed_at = $3,
                realized_pnl = $4
            WHERE id = $1
            """,
            trade_id,
            status.value,
            closed_at,
            realized_pnl,
        )

    async def list_trades(self, user_id: str, limit: int | None = None) -> list[Trade]:
        rows = await self._fetch(
            f"""
            SELECT * FROM {self._schema}.trades
            WHERE user_id = $1
            ORDER BY created_at DESC
            LIMIT $2
            """,
            user_id,
            limit,
        )
        return [trade_from_row(row) for row in rows]

    async def list_open_trades(self, user_id: str, symbol: str) -> list[Trade]:
        rows = await self._fetch(
            f"""
            SELECT * FROM {self._schema}.trades
            WHERE user_id = $1 AND symbol = $2 AND status = 'OPEN'
            ORDER BY created_at
            """,
            user_id,
            symbol,
        )
        return [trade_from_row(row) for row in rows]

    # ==================== Settings ====================

    async def get_settings(self, user_id: str) -> UserSettings:
        row = await self._fetchrow(
            f"SELECT brokerage_simulation FROM {self._schema}.user_settings WHERE user_id = $1",
            user_id,
        )
        if row is None:
            return UserSettings(user_id=user_id)
        return UserSettings(user_id=user_id, brokerage_simulation=row["brokerage_simulation"])

    async def save_settings(self, settings: UserSettings) -> None:
        await self._execute(
            f"""
            INSERT INTO {self._schema}.user_settings (user_id, brokerage_simulation, updated_at)
            VALUES ($1, $2, CURRENT_TIMESTAMP)
            ON CONFLICT (user_id) DO UPDATE SET
                brokerage_simulation = EXCLUDED.brokerage_simulation,
                updated_at = CURRENT_TIMESTAMP
            """,
            settings.user_id,
            settings.brokerage_simulation,
        )

    # ==================== Utilities ====================

    def _ensure_connected(self) -> None:
        """Ensure repository is connected."""
        if not self._is_connected or not self._pool:
            raise RuntimeError("PostgresLedgerStore is not connected. Call connect() first.")

    @property
    def _db_pool(self) -> asyncpg.Pool:
        """Get the database pool, raising if not connected."""
        self._ensure_connected()
        assert self._pool is not None  # For type checker
        return self._pool

    @property
    def is_connected(self) -> bool:
        """Check if connected."""
        return self._is_connected


def repository_config_from_dict(db_config: dict[str, Any]) -> LedgerRepositoryConfig:
    """Build LedgerRepositoryConfig from a "database.ledger" config section."""
    return LedgerRepositoryConfig(
        host=resolve_env(db_config.get("host", "localhost")),
        port=int(resolve_env(db_config.get("port", 5432))),
        database=resolve_env(db_config.get("database", "papertrade")),
        user=resolve_env(db_config.get("user", "papertrade")),
        password=resolve_env(db_config.get("password", "")),
        pool_min_size=db_config.get("pool_min_size", 2),
        pool_max_size=db_config.get("pool_max_size", 5),
        schema=db_config.get("schema", "ledger"),
        auto_create_schema=db_config.get("auto_create_schema", True),
    )


def create_ledger_store_from_config(config_path: str | None = None) -> PostgresLedgerStore:
    """
    Create PostgresLedgerStore from configuration file.

    Returns:
        Configured (not yet connected) PostgresLedgerStore instance.
    """
    config = load_config(config_path)
    db_config = config.get_dict("database.ledger", {})

    if not db_config:
        raise ValueError("Ledger database configuration not found")

    return PostgresLedgerStore(repository_config_from_dict(db_config))
