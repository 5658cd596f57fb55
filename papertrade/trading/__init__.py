# === MODULE PURPOSE ===
# Trading core: order execution, position accounting, and P&L tracking
# for simulated (paper) trading.

# === KEY CONCEPTS ===
# - TradeExecutionEngine: Validates and executes single orders atomically
# - apply_fill: Weighted-average-cost position update
# - PortfolioValuation: Live marks and portfolio summary
# - SquareOff: Close a whole position in one action
# - TradingService: Facade wiring all of the above
# - LedgerStore: Storage interface (in-memory or PostgreSQL)

# === PERSISTENCE ===
# InMemoryLedgerStore for tests and demos; PostgresLedgerStore uses a
# dedicated schema. Tables: accounts, positions, trades, user_settings

from papertrade.trading.accounting import apply_fill, mark_to_market, realized_pnl
from papertrade.trading.engine import TradeExecutionEngine
from papertrade.trading.errors import (
    AccountNotFoundError,
    InsufficientBalanceError,
    InsufficientHoldingsError,
    InvalidPriceError,
    InvalidQuantityError,
    InvalidSideError,
    InvalidStateError,
    MarketClosedError,
    PositionNotFoundError,
    StoreUnavailableError,
    TradingError,
    UnknownSymbolError,
)
from papertrade.trading.ledger import InMemoryLedgerStore, LedgerStore
from papertrade.trading.models import (
    PortfolioSummary,
    Position,
    Side,
    Trade,
    TradeResult,
    TradeStatus,
    UserSettings,
)
from papertrade.trading.service import TradingService
from papertrade.trading.square_off import SquareOff
from papertrade.trading.valuation import PortfolioValuation

__all__ = [
    # Engine and facade
    "TradeExecutionEngine",
    "TradingService",
    "PortfolioValuation",
    "SquareOff",
    "apply_fill",
    "mark_to_market",
    "realized_pnl",
    # Storage
    "LedgerStore",
    "InMemoryLedgerStore",
    # Models
    "PortfolioSummary",
    "Position",
    "Side",
    "Trade",
    "TradeResult",
    "TradeStatus",
    "UserSettings",
    # Errors
    "TradingError",
    "AccountNotFoundError",
    "InsufficientBalanceError",
    "InsufficientHoldingsError",
    "InvalidPriceError",
    "InvalidQuantityError",
    "InvalidSideError",
    "InvalidStateError",
    "MarketClosedError",
    "PositionNotFoundError",
    "StoreUnavailableError",
    "UnknownSymbolError",
]
