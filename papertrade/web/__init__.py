# === MODULE PURPOSE ===
# JSON API for paper trading.
# Provides a FastAPI app over the TradingService facade.

from papertrade.web.app import create_app, run_server

__all__ = ["create_app", "run_server"]
