# === MODULE PURPOSE ===
# FastAPI application exposing the paper-trading service as a JSON API.

# === DEPENDENCIES ===
# - trading.service: TradingService facade (injected or built for demo use)
# - market.feed: InMemoryMarketFeed seeded with demo prices
# - uvicorn: ASGI server for run_server()

from __future__ import annotations

import logging

from fastapi import FastAPI

from papertrade import __version__
from papertrade.common.config import TradingConfig
from papertrade.market import InMemoryMarketFeed, MarketHours, SessionTimes
from papertrade.trading.ledger import InMemoryLedgerStore
from papertrade.trading.service import TradingService
from papertrade.web.routes import create_router

logger = logging.getLogger(__name__)

# Seed prices for the in-memory demo feed
DEMO_PRICES = {
    "RELIANCE": "2456.75",
    "TCS": "3245.80",
    "HDFCBANK": "1678.90",
    "INFY": "1456.30",
    "ICICIBANK": "987.65",
}


def create_demo_service(config: TradingConfig | None = None) -> TradingService:
    """Trading service over an in-memory store and a fixed-price feed."""
    config = config or TradingConfig()
    hours = MarketHours(
        SessionTimes(market_open=config.market_open, market_close=config.market_close),
        timezone=config.timezone,
    )
    feed = InMemoryMarketFeed(DEMO_PRICES, hours=hours)
    return TradingService(feed, InMemoryLedgerStore(), config)


def create_app(
    service: TradingService | None = None,
    config: TradingConfig | None = None,
) -> FastAPI:
    """
    Create FastAPI application.

    Args:
        service: Trading service. A demo in-memory service is built if not provided.
        config: Trading configuration for the demo service.

    Returns:
        Configured FastAPI app.
    """
    app = FastAPI(
        title="Paper Trading",
        description="Simulated order execution and portfolio tracking",
        version=__version__,
    )

    if service is None:
        service = create_demo_service(config)

    # Store reference for routes
    app.state.trading_service = service

    app.include_router(create_router())

    logger.info("Paper trading API created")
    return app


def run_server(
    host: str = "0.0.0.0",
    port: int = 8000,
    service: TradingService | None = None,
) -> None:
    """
    Run the web server (blocking).

    Args:
        host: Bind host.
        port: Bind port.
        service: Trading service; demo service if not provided.
    """
    import uvicorn

    app = create_app(service=service)
    uvicorn.run(app, host=host, port=port)
