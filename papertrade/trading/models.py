# === MODULE PURPOSE ===
# Data models for paper trading: positions, trades, results, summaries.

# === KEY CONCEPTS ===
# - Position: Net open holding of one symbol for one user (avg cost basis)
# - Trade: Append-only record of one executed order
# - TradeResult: Success or typed failure returned to callers
# - PortfolioSummary: Derived, never persisted
# - Money is Decimal; cash rounds to 2 places, average cost to 4

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from papertrade.trading.errors import TradingError

CENT = Decimal("0.01")
PRICE_QUANTUM = Decimal("0.0001")
ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """Convert int/float/str/Decimal to Decimal without float artifacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(value: Decimal) -> Decimal:
    """Round a cash amount to paise."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def unit_price(value: Decimal) -> Decimal:
    """Round a per-unit price to the stored precision."""
    return value.quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)


def _num(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class Side(Enum):
    """Order direction."""

    BUY = "BUY"
    SELL = "SELL"

    @classmethod
    def parse(cls, value: "Side | str") -> "Side":
        """
        Accept a Side or a case-insensitive "buy"/"sell" string.

        Raises:
            ValueError: If the value is not a known side.
        """
        if isinstance(value, Side):
            return value
        return cls(str(value).strip().upper())


class TradeStatus(Enum):
    """Trade lifecycle status."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"


@dataclass
class Position:
    """
    Net open holding of one symbol for one user.

    Quantity is strictly positive for any stored position. Average cost
    changes on BUY (weighted) and is left untouched by SELL.
    """

    user_id: str
    symbol: str
    quantity: int
    avg_price: Decimal
    current_price: Decimal
    pnl: Decimal = ZERO
    pnl_percentage: float = 0.0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def invested_amount(self) -> Decimal:
        """Cost basis: quantity x average cost."""
        return money(self.avg_price * self.quantity)

    @property
    def current_value(self) -> Decimal:
        """Market value: quantity x current price."""
        return money(self.current_price * self.quantity)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "user_id": self.user_id,
            "symbol": self.symbol,
            "quantity": self.quantity,
            "avg_price": _num(self.avg_price),
            "current_price": _num(self.current_price),
            "pnl": _num(self.pnl),
            "pnl_percentage": self.pnl_percentage,
            "invested_amount": _num(self.invested_amount),
            "current_value": _num(self.current_value),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class Trade:
    """Record of one executed order."""

    user_id: str
    symbol: str
    side: Side
    quantity: int
    price: Decimal
    brokerage: Decimal
    created_at: datetime
    status: TradeStatus = TradeStatus.OPEN
    realized_pnl: Decimal | None = None
    closed_at: datetime | None = None
    trade_id: str | None = None

    @property
    def gross_amount(self) -> Decimal:
        """Price x quantity."""
        return money(self.price * self.quantity)

    @property
    def net_amount(self) -> Decimal:
        """Cash leaving the account on BUY, cash arriving on SELL."""
        if self.side == Side.BUY:
            return self.gross_amount + self.brokerage
        return self.gross_amount - self.brokerage

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "trade_id": self.trade_id,
            "user_id": self.user_id,
            "symbol": self.symbol,
            "side": self.side.value,
            "quantity": self.quantity,
            "price": _num(self.price),
            "brokerage": _num(self.brokerage),
            "gross_amount": _num(self.gross_amount),
            "net_amount": _num(self.net_amount),
            "status": self.status.value,
            "realized_pnl": _num(self.realized_pnl),
            "created_at": _iso(self.created_at),
            "closed_at": _iso(self.closed_at),
        }


@dataclass
class TradeResult:
    """Outcome of an execute or square-off request."""

    success: bool
    message: str
    trade_id: str | None = None
    new_balance: Decimal | None = None
    brokerage: Decimal | None = None
    realized_pnl: Decimal | None = None
    error: str | None = None
    retryable: bool = False

    @classmethod
    def failed(cls, error: TradingError) -> "TradeResult":
        """Build a failure result from a trading error."""
        return cls(
            success=False,
            message=error.message,
            error=error.code,
            retryable=error.retryable,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "success": self.success,
            "message": self.message,
            "trade_id": self.trade_id,
            "new_balance": _num(self.new_balance),
            "brokerage": _num(self.brokerage),
            "realized_pnl": _num(self.realized_pnl),
            "error": self.error,
            "retryable": self.retryable,
        }


@dataclass
class PortfolioSummary:
    """Aggregate performance across a user's open positions."""

    total_value: Decimal
    total_invested: Decimal
    total_pnl: Decimal
    total_pnl_percentage: float
    day_pnl: Decimal
    total_brokerage: Decimal

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "total_value": _num(self.total_value),
            "total_invested": _num(self.total_invested),
            "total_pnl": _num(self.total_pnl),
            "total_pnl_percentage": self.total_pnl_percentage,
            "day_pnl": _num(self.day_pnl),
            "total_brokerage": _num(self.total_brokerage),
        }


@dataclass
class UserSettings:
    """Per-user trading preferences."""

    user_id: str
    brokerage_simulation: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API response."""
        return {
            "user_id": self.user_id,
            "brokerage_simulation": self.brokerage_simulation,
        }
