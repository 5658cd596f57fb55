# === MODULE PURPOSE ===
# JSON API routes over the trading service.

# === ENDPOINTS ===
# GET  /api/status                                    - Health check
# POST /api/users/{user_id}/account                   - Open account
# GET  /api/users/{user_id}/balance                   - Cash balance
# POST /api/users/{user_id}/trades                    - Place an order
# GET  /api/users/{user_id}/trades?limit=50           - Trade history
# GET  /api/users/{user_id}/positions                 - Open positions (marked)
# POST /api/users/{user_id}/positions/{symbol}/square-off - Close a position
# GET  /api/users/{user_id}/portfolio                 - Portfolio summary
# GET  /api/users/{user_id}/settings                  - User settings
# PUT  /api/users/{user_id}/settings                  - Update user settings

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field

from papertrade.trading.errors import TradingError
from papertrade.trading.models import TradeResult

if TYPE_CHECKING:
    from papertrade.trading.service import TradingService

logger = logging.getLogger(__name__)

# Failure code -> HTTP status. Anything unlisted is a bad request.
ERROR_STATUS = {
    "market_closed": 409,
    "insufficient_balance": 409,
    "insufficient_holdings": 409,
    "position_not_found": 409,
    "account_not_found": 404,
    "unknown_symbol": 404,
    "store_unavailable": 503,
    "invalid_state": 500,
}


def status_for(error_code: str | None) -> int:
    """HTTP status code for a TradingError code."""
    return ERROR_STATUS.get(error_code or "", 400)


class TradeRequest(BaseModel):
    """Request body for placing an order."""

    symbol: str = Field(min_length=1)
    side: str
    quantity: int
    price: float
    brokerage_enabled: bool | None = None


class SettingsRequest(BaseModel):
    """Request body for updating user settings."""

    brokerage_simulation: bool | None = None


def _raise_for_result(result: TradeResult) -> None:
    if not result.success:
        raise HTTPException(status_code=status_for(result.error), detail=result.to_dict())


def _raise_for_error(error: TradingError) -> None:
    raise HTTPException(
        status_code=status_for(error.code),
        detail={"error": error.code, "message": error.message, "retryable": error.retryable},
    )


def create_router() -> APIRouter:
    """Create API router with all trading endpoints."""
    router = APIRouter(prefix="/api")

    def get_service(request: Request) -> TradingService:
        """Get trading service from app state."""
        return request.app.state.trading_service

    @router.get("/status")
    async def api_status(request: Request) -> dict:
        """Health check endpoint."""
        service = get_service(request)
        return {
            "status": "ok",
            "market_open": service.feed.is_open(),
        }

    @router.post("/users/{user_id}/account")
    async def api_open_account(request: Request, user_id: str) -> dict:
        """Provision an account with the configured opening balance (idempotent)."""
        try:
            balance = await get_service(request).open_account(user_id)
        except TradingError as e:
            _raise_for_error(e)
        return {"user_id": user_id, "balance": float(balance)}

    @router.get("/users/{user_id}/balance")
    async def api_balance(request: Request, user_id: str) -> dict:
        try:
            balance = await get_service(request).get_balance(user_id)
        except TradingError as e:
            _raise_for_error(e)
        return {"user_id": user_id, "balance": float(balance)}

    @router.post("/users/{user_id}/trades")
    async def api_execute_trade(request: Request, user_id: str, body: TradeRequest) -> dict:
        """Execute a market order at the given price."""
        result = await get_service(request).execute_trade(
            user_id,
            body.symbol,
            body.side,
            body.quantity,
            str(body.price),
            brokerage_enabled=body.brokerage_enabled,
        )
        _raise_for_result(result)
        return result.to_dict()

    @router.get("/users/{user_id}/trades")
    async def api_trade_history(
        request: Request,
        user_id: str,
        limit: int = Query(50, ge=1, le=500),
    ) -> dict:
        """Most recent trades first."""
        try:
            trades = await get_service(request).get_trade_history(user_id, limit)
        except TradingError as e:
            _raise_for_error(e)
        return {
            "trades": [t.to_dict() for t in trades],
            "count": len(trades),
        }

    @router.get("/users/{user_id}/positions")
    async def api_positions(request: Request, user_id: str) -> dict:
        try:
            positions = await get_service(request).get_positions(user_id)
        except TradingError as e:
            _raise_for_error(e)
        return {
            "positions": [p.to_dict() for p in positions],
            "count": len(positions),
        }

    @router.post("/users/{user_id}/positions/{symbol}/square-off")
    async def api_square_off(request: Request, user_id: str, symbol: str) -> dict:
        """Sell the whole position at the current market price."""
        result = await get_service(request).square_off(user_id, symbol)
        _raise_for_result(result)
        return result.to_dict()

    @router.get("/users/{user_id}/portfolio")
    async def api_portfolio(request: Request, user_id: str) -> dict:
        service = get_service(request)
        try:
            summary = await service.get_portfolio_summary(user_id)
            balance = await service.get_balance(user_id)
        except TradingError as e:
            _raise_for_error(e)
        return {
            "user_id": user_id,
            "balance": float(balance),
            "summary": summary.to_dict(),
        }

    @router.get("/users/{user_id}/settings")
    async def api_get_settings(request: Request, user_id: str) -> dict:
        try:
            settings = await get_service(request).get_user_settings(user_id)
        except TradingError as e:
            _raise_for_error(e)
        return settings.to_dict()

    @router.put("/users/{user_id}/settings")
    async def api_update_settings(
        request: Request, user_id: str, body: SettingsRequest
    ) -> dict:
        try:
            settings = await get_service(request).update_user_settings(
                user_id, brokerage_simulation=body.brokerage_simulation
            )
        except TradingError as e:
            _raise_for_error(e)
        return settings.to_dict()

    return router
