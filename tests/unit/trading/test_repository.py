# === MODULE PURPOSE ===
# Unit tests for the PostgreSQL ledger store (no live database needed).

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from papertrade.trading.errors import (
    AccountNotFoundError,
    InvalidStateError,
    StoreUnavailableError,
)
from papertrade.trading.models import Position, Side, Trade, TradeStatus, UserSettings
from papertrade.trading.repository import (
    TABLES_SQL,
    LedgerRepositoryConfig,
    PostgresLedgerStore,
    create_ledger_store_from_config,
    position_from_row,
    repository_config_from_dict,
    trade_from_row,
)

NOW = datetime(2026, 1, 5, 4, 30, tzinfo=timezone.utc)


class FakeAcquire:
    """Async context manager handing out one connection."""

    def __init__(self, conn):
        self._conn = conn

    async def __aenter__(self):
        return self._conn

    async def __aexit__(self, *exc):
        return False


def connected_store(conn) -> PostgresLedgerStore:
    store = PostgresLedgerStore(LedgerRepositoryConfig(schema="test_ledger"))
    pool = MagicMock()
    pool.acquire.return_value = FakeAcquire(conn)
    store._pool = pool
    store._is_connected = True
    return store


def make_conn(**methods) -> MagicMock:
    conn = MagicMock()
    conn.fetch = methods.get("fetch", AsyncMock(return_value=[]))
    conn.execute = methods.get("execute", AsyncMock(return_value="INSERT 0 1"))
    return conn


class TestConfig:
    def test_env_resolution(self, monkeypatch):
        monkeypatch.setenv("LEDGER_DB_HOST", "db.internal")
        monkeypatch.delenv("LEDGER_DB_PORT", raising=False)

        config = repository_config_from_dict(
            {
                "host": "${LEDGER_DB_HOST:localhost}",
                "port": "${LEDGER_DB_PORT:5433}",
                "schema": "paper",
            }
        )

        assert config.host == "db.internal"
        assert config.port == 5433
        assert config.schema == "paper"
        assert config.auto_create_schema is True

    def test_from_config_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "database:\n  ledger:\n    host: pg\n    port: 6543\n    database: ledger_db\n",
            encoding="utf-8",
        )

        store = create_ledger_store_from_config(str(path))

        assert isinstance(store, PostgresLedgerStore)
        assert not store.is_connected

    def test_missing_section(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("trading:\n  initial_balance: 1000\n", encoding="utf-8")

        with pytest.raises(ValueError):
            create_ledger_store_from_config(str(path))

    def test_tables_use_schema(self):
        sql = TABLES_SQL.format(schema="paper")
        assert "paper.positions" in sql
        assert "UNIQUE (user_id, symbol)" in sql


class TestRowMapping:
    def test_position_row(self):
        row = {
            "user_id": "user-1",
            "symbol": "RELIANCE",
            "quantity": 15,
            "avg_price": Decimal("2433.6667"),
            "current_price": Decimal("2456.75"),
            "pnl": Decimal("346.25"),
            "pnl_percentage": 0.95,
            "created_at": NOW,
            "updated_at": NOW,
        }

        position = position_from_row(row)

        assert position.quantity == 15
        assert position.avg_price == Decimal("2433.6667")
        assert position.pnl == Decimal("346.25")

    def test_trade_row(self):
        row = {
            "id": "t-1",
            "user_id": "user-1",
            "symbol": "TCS",
            "side": "SELL",
            "quantity": 2,
            "price": Decimal("3245.80"),
            "brokerage": Decimal("20.00"),
            "status": "CLOSED",
            "realized_pnl": None,
            "created_at": NOW,
            "closed_at": NOW,
        }

        trade = trade_from_row(row)

        assert trade.trade_id == "t-1"
        assert trade.side == Side.SELL
        assert trade.status == TradeStatus.CLOSED
        assert trade.realized_pnl is None
        assert trade.net_amount == Decimal("6471.60")


class TestQueries:
    """Store methods against a mocked asyncpg connection."""

    @pytest.mark.asyncio
    async def test_get_balance(self):
        conn = make_conn(fetch=AsyncMock(return_value=[{"balance": Decimal("75975.00")}]))
        store = connected_store(conn)

        assert await store.get_balance("user-1") == Decimal("75975.00")
        query = conn.fetch.call_args.args[0]
        assert "test_ledger.accounts" in query

    @pytest.mark.asyncio
    async def test_missing_account(self):
        store = connected_store(make_conn())

        with pytest.raises(AccountNotFoundError):
            await store.get_balance("nobody")

    @pytest.mark.asyncio
    async def test_set_balance_missing_account(self):
        store = connected_store(make_conn(execute=AsyncMock(return_value="UPDATE 0")))

        with pytest.raises(AccountNotFoundError):
            await store.set_balance("nobody", Decimal("1"))

    @pytest.mark.asyncio
    async def test_connection_error_wrapped(self):
        store = connected_store(
            make_conn(fetch=AsyncMock(side_effect=ConnectionRefusedError("refused")))
        )

        with pytest.raises(StoreUnavailableError) as exc_info:
            await store.list_positions("user-1")
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_upsert_refuses_empty_position(self):
        conn = make_conn()
        store = connected_store(conn)
        position = Position(
            user_id="user-1",
            symbol="TCS",
            quantity=0,
            avg_price=Decimal("1"),
            current_price=Decimal("1"),
        )

        with pytest.raises(InvalidStateError):
            await store.upsert_position(position)
        conn.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_default_settings(self):
        store = connected_store(make_conn())

        settings = await store.get_settings("user-1")

        assert settings == UserSettings(user_id="user-1", brokerage_simulation=True)

    @pytest.mark.asyncio
    async def test_insert_trade_returns_id(self):
        conn = make_conn()
        store = connected_store(conn)
        trade = Trade(
            user_id="user-1",
            symbol="TCS",
            side=Side.BUY,
            quantity=2,
            price=Decimal("3245.80"),
            brokerage=Decimal("20.00"),
            created_at=NOW,
        )

        trade_id = await store.insert_trade(trade)

        assert trade_id
        args = conn.execute.call_args.args
        assert args[1] == trade_id
        assert "BUY" in args

    @pytest.mark.asyncio
    async def test_not_connected(self):
        store = PostgresLedgerStore(LedgerRepositoryConfig())

        with pytest.raises(RuntimeError):
            await store.get_balance("user-1")
