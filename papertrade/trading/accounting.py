# === MODULE PURPOSE ===
# Weighted-average-cost position accounting.
# Pure computation: given the existing position and a fill, returns the new
# position (or None when the holding is closed out).

# === KEY CONCEPTS ===
# - BUY merges into the existing holding: avg = (q0*a0 + q*p) / (q0 + q)
# - SELL reduces quantity; average cost is unchanged
# - Quantity reaching zero removes the position (None), never stored as <= 0
# - Realized P&L on a sell is (exec - avg) * qty, computed by the caller

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from decimal import Decimal

from papertrade.trading.errors import InvalidStateError
from papertrade.trading.models import (
    ZERO,
    Position,
    Side,
    money,
    to_decimal,
    unit_price,
)

logger = logging.getLogger(__name__)


def apply_fill(
    existing: Position | None,
    side: Side,
    quantity: int,
    exec_price: Decimal,
    current_price: Decimal,
    *,
    user_id: str | None = None,
    symbol: str | None = None,
    now: datetime | None = None,
) -> Position | None:
    """
    Apply one executed order to a holding.

    Args:
        existing: Current position for (user, symbol), or None.
        side: BUY or SELL.
        quantity: Filled quantity (> 0).
        exec_price: Execution price per unit.
        current_price: Latest market price, used to mark the result.
        user_id: Owner, required when opening a new position.
        symbol: Symbol, required when opening a new position.
        now: Timestamp for created_at/updated_at.

    Returns:
        The updated Position, or None if the holding is closed out.

    Raises:
        InvalidStateError: SELL with no position, or SELL exceeding the
            held quantity.
    """
    exec_price = to_decimal(exec_price)
    ts = now or datetime.now().astimezone()

    if side == Side.BUY:
        if existing is None:
            if user_id is None or symbol is None:
                raise InvalidStateError("Opening a position requires user_id and symbol")
            position = Position(
                user_id=user_id,
                symbol=symbol,
                quantity=quantity,
                avg_price=unit_price(exec_price),
                current_price=exec_price,
                created_at=ts,
            )
        else:
            new_qty = existing.quantity + quantity
            total_cost = existing.quantity * existing.avg_price + quantity * exec_price
            position = replace(
                existing,
                quantity=new_qty,
                avg_price=unit_price(total_cost / new_qty),
            )
    else:
        if existing is None:
            raise InvalidStateError(f"Cannot sell {symbol or ''}: no open position".strip())
        if quantity > existing.quantity:
            raise InvalidStateError(
                f"Cannot sell {quantity} {existing.symbol}: only {existing.quantity} held"
            )

        new_qty = existing.quantity - quantity
        if new_qty <= 0:
            logger.debug(f"Position {existing.user_id}/{existing.symbol} closed out")
            return None
        position = replace(existing, quantity=new_qty)

    position.updated_at = ts
    return mark_to_market(position, current_price)


def mark_to_market(position: Position, current_price: Decimal) -> Position:
    """
    Refresh current price and unrealized P&L figures.

    Returns a new Position; the input is left untouched.
    """
    price = to_decimal(current_price)
    avg = position.avg_price
    pnl = money((price - avg) * position.quantity)
    pnl_percentage = float((price - avg) / avg * 100) if avg > ZERO else 0.0
    return replace(
        position,
        current_price=price,
        pnl=pnl,
        pnl_percentage=pnl_percentage,
    )


def realized_pnl(position: Position, quantity: int, exec_price: Decimal) -> Decimal:
    """Gain or loss locked in by selling `quantity` at `exec_price`."""
    return money((to_decimal(exec_price) - position.avg_price) * quantity)
