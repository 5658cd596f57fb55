# === MODULE PURPOSE ===
# Pytest configuration and shared fixtures for tests.

from datetime import datetime
from decimal import Decimal

import pytest
import pytest_asyncio

from papertrade.common.config import TradingConfig
from papertrade.market import InMemoryMarketFeed
from papertrade.trading.ledger import InMemoryLedgerStore
from papertrade.trading.service import TradingService

# A Monday morning inside market hours (exchange local time)
OPEN_TIME = datetime(2026, 1, 5, 10, 0)
CLOSED_TIME = datetime(2026, 1, 5, 16, 0)

USER = "user-1"


@pytest.fixture
def anyio_backend():
    """Use asyncio as the async backend for pytest-asyncio."""
    return "asyncio"


@pytest.fixture
def feed() -> InMemoryMarketFeed:
    """Feed with demo prices and the clock pinned inside market hours."""
    return InMemoryMarketFeed(
        {"RELIANCE": "2456.75", "TCS": "3245.80", "INFY": "1456.30"},
        clock=lambda: OPEN_TIME,
    )


@pytest.fixture
def store() -> InMemoryLedgerStore:
    return InMemoryLedgerStore()


@pytest.fixture
def service(feed, store) -> TradingService:
    return TradingService(feed, store, TradingConfig())


@pytest_asyncio.fixture
async def funded(service) -> TradingService:
    """Service with USER's account opened at 100000."""
    await service.open_account(USER, Decimal("100000"))
    return service
