#!/usr/bin/env python3
# === MODULE PURPOSE ===
# Entry point for the paper-trading API server.

# === USAGE ===
# python scripts/run_server.py
# python scripts/run_server.py --config config/trading-config.yaml --port 8080

# === KEY CONCEPTS ===
# - Ledger: PostgreSQL when database.ledger.enabled, otherwise in-memory
# - Market feed: in-memory demo prices with the configured market hours
# - Host/port from WEB_HOST/WEB_PORT unless given on the command line

import argparse
import logging
import sys
from pathlib import Path

import uvicorn

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from papertrade.common.config import Config, TradingConfig, get_web_config, load_config
from papertrade.market import InMemoryMarketFeed, MarketHours, SessionTimes
from papertrade.trading.ledger import InMemoryLedgerStore, LedgerStore
from papertrade.trading.repository import PostgresLedgerStore, create_ledger_store_from_config
from papertrade.trading.service import TradingService
from papertrade.web.app import DEMO_PRICES, create_app

logger = logging.getLogger(__name__)


def setup_logging(config: Config) -> None:
    """Configure logging based on config."""
    level = config.get_str("logging.level", "INFO")
    format_str = config.get_str(
        "logging.format",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    log_file = config.get_str("logging.file")
    if log_file:
        log_path = project_root / log_file
        log_path.parent.mkdir(parents=True, exist_ok=True)

        logging.basicConfig(
            level=getattr(logging, level.upper()),
            format=format_str,
            handlers=[
                logging.StreamHandler(),
                logging.FileHandler(log_path, encoding="utf-8"),
            ],
        )
    else:
        logging.basicConfig(
            level=getattr(logging, level.upper()),
            format=format_str,
        )


def build_store(config: Config, config_path: str | None) -> LedgerStore:
    """PostgreSQL ledger if enabled in config, otherwise in-memory."""
    if config.get_bool("database.ledger.enabled", False):
        logger.info("Using PostgreSQL ledger store")
        return create_ledger_store_from_config(config_path)
    logger.info("Using in-memory ledger store (data is lost on exit)")
    return InMemoryLedgerStore()


def main() -> None:
    parser = argparse.ArgumentParser(description="Paper trading API server")
    parser.add_argument("--config", default=None, help="Path to trading config YAML")
    parser.add_argument("--host", default=None, help="Bind host (default: WEB_HOST)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default: WEB_PORT)")
    args = parser.parse_args()

    config = load_config(args.config)
    setup_logging(config)

    trading_config = TradingConfig.from_config(config)
    hours = MarketHours(
        SessionTimes(
            market_open=trading_config.market_open,
            market_close=trading_config.market_close,
        ),
        timezone=trading_config.timezone,
    )
    feed = InMemoryMarketFeed(DEMO_PRICES, hours=hours)
    store = build_store(config, args.config)
    service = TradingService(feed, store, trading_config)

    app = create_app(service=service)

    if isinstance(store, PostgresLedgerStore):

        @app.on_event("startup")
        async def startup():
            await store.connect()

        @app.on_event("shutdown")
        async def shutdown():
            await store.close()

    web_config = get_web_config()
    host = args.host or web_config["host"]
    port = args.port or web_config["port"]

    logger.info(f"Starting paper trading API on {host}:{port}")
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
