# === MODULE PURPOSE ===
# Error taxonomy for trade execution and position accounting.

# === KEY CONCEPTS ===
# - Every error carries a stable `code` so callers can branch on it
#   (e.g. prompt a top-up vs. reject because the market is closed)
# - `retryable` marks I/O failures the caller may retry as-is
# - Validation errors are turned into failed TradeResults by the engine;
#   InvalidStateError is an invariant violation and is raised instead


class TradingError(Exception):
    """Base class for all trading core errors."""

    code = "trading_error"
    retryable = False
    default_message = "Trade could not be processed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidQuantityError(TradingError):
    """Quantity is not a positive integer."""

    code = "invalid_quantity"
    default_message = "Quantity must be a positive whole number"


class InvalidPriceError(TradingError):
    """Execution price is not a positive number."""

    code = "invalid_price"
    default_message = "Price must be a positive number"


class InvalidSideError(TradingError):
    """Order side is neither BUY nor SELL."""

    code = "invalid_side"
    default_message = "Order side must be BUY or SELL"


class MarketClosedError(TradingError):
    """Order placed outside market hours."""

    code = "market_closed"
    default_message = "Market is closed. Orders are accepted between 09:15 and 15:30"


class InsufficientBalanceError(TradingError):
    """BUY total (gross + brokerage) exceeds available cash."""

    code = "insufficient_balance"
    default_message = "Insufficient balance for this trade"


class InsufficientHoldingsError(TradingError):
    """SELL quantity exceeds the open position."""

    code = "insufficient_holdings"
    default_message = "Insufficient quantity to sell"


class PositionNotFoundError(TradingError):
    """No open position for the requested symbol."""

    code = "position_not_found"
    default_message = "Position not found"


class AccountNotFoundError(TradingError):
    """No account exists for the user."""

    code = "account_not_found"
    default_message = "Account not found"


class UnknownSymbolError(TradingError):
    """Market feed has no price for the symbol."""

    code = "unknown_symbol"
    default_message = "No market price available for this symbol"


class StoreUnavailableError(TradingError):
    """Ledger store or market feed I/O failed or timed out."""

    code = "store_unavailable"
    retryable = True
    default_message = "Trading service is temporarily unavailable. Please try again"


class InvalidStateError(TradingError):
    """Internal invariant violated (e.g. oversell reached the accounting engine)."""

    code = "invalid_state"
    default_message = "Position state is inconsistent"
