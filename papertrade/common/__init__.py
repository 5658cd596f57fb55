# === MODULE PURPOSE ===
# Common utilities shared across all modules.

from .config import Config, TradingConfig, load_config

__all__ = [
    "Config",
    "TradingConfig",
    "load_config",
]
