# === MODULE PURPOSE ===
# Configuration management for the paper-trading system.
# Loads YAML configuration files and provides typed access to settings.

# === KEY CONCEPTS ===
# - YAML-based: Human-readable configuration format
# - Dot-path access: config.get_float("trading.brokerage.flat_fee")
# - TradingConfig: Typed view of the settings the trading core needs
# - Environment substitution: "${VAR:default}" values resolved from os.environ

import logging
import os
from dataclasses import dataclass
from datetime import time
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent.parent
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "trading-config.yaml"


class Config:
    """
    Configuration loader and accessor.

    Loads configuration from YAML files and provides typed access
    to configuration values.

    Usage:
        config = Config.load("config/trading-config.yaml")

        # Access nested values
        fee = config.get_float("trading.brokerage.flat_fee", default=20.0)

        # Access with type checking
        timeout = config.get_float("trading.io_timeout_seconds", default=5.0)
    """

    def __init__(self, data: dict[str, Any]):
        self._data = data

    @classmethod
    def load(cls, config_path: str | Path) -> "Config":
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            Config instance with loaded data

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If YAML parsing fails
        """
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        logger.info(f"Loaded configuration from {path}")
        return cls(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create Config from a dictionary."""
        return cls(data)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value by dot-separated key.

        Args:
            key: Dot-separated path (e.g., "trading.market.open")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key.split(".")
        value: Any = self._data

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value

    def get_str(self, key: str, default: str = "") -> str:
        """Get a string configuration value."""
        value = self.get(key, default)
        return str(value) if value is not None else default

    def get_int(self, key: str, default: int = 0) -> int:
        """Get an integer configuration value."""
        value = self.get(key, default)
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def get_float(self, key: str, default: float = 0.0) -> float:
        """Get a float configuration value."""
        value = self.get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            return default

    def get_bool(self, key: str, default: bool = False) -> bool:
        """Get a boolean configuration value."""
        value = self.get(key, default)
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.lower() in ("true", "yes", "1", "on")
        return bool(value) if value is not None else default

    def get_dict(self, key: str, default: dict | None = None) -> dict:
        """Get a dictionary configuration value."""
        value = self.get(key, default)
        if isinstance(value, dict):
            return value
        return default if default is not None else {}

    @property
    def raw(self) -> dict[str, Any]:
        """Access raw configuration data."""
        return self._data

    def __repr__(self) -> str:
        return f"Config({list(self._data.keys())})"


def resolve_env(value: Any) -> Any:
    """
    Resolve "${VAR}" or "${VAR:default}" against environment variables.

    Non-string values and strings without the ${...} wrapper are returned as is.
    """
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        inner = value[2:-1]
        if ":" in inner:
            var_name, default = inner.split(":", 1)
        else:
            var_name, default = inner, ""
        return os.environ.get(var_name, default)
    return value


def _parse_time(value: Any, default: time) -> time:
    """Parse "HH:MM" into a time, falling back to default."""
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        return default
    try:
        hour, minute = value.split(":", 1)
        return time(int(hour), int(minute))
    except ValueError:
        logger.warning(f"Invalid time value in config: {value!r}, using {default}")
        return default


@dataclass
class TradingConfig:
    """Settings for the trade execution core."""

    brokerage_fee: Decimal = Decimal("20")  # flat fee per order
    initial_balance: Decimal = Decimal("100000")
    io_timeout: float = 5.0  # seconds per store/feed call
    market_open: time = time(9, 15)
    market_close: time = time(15, 30)
    timezone: str = "Asia/Kolkata"

    @classmethod
    def from_config(cls, config: Config) -> "TradingConfig":
        """Build from the "trading" section of a loaded Config."""
        defaults = cls()
        return cls(
            brokerage_fee=Decimal(
                str(config.get("trading.brokerage.flat_fee", defaults.brokerage_fee))
            ),
            initial_balance=Decimal(
                str(config.get("trading.initial_balance", defaults.initial_balance))
            ),
            io_timeout=config.get_float("trading.io_timeout_seconds", defaults.io_timeout),
            market_open=_parse_time(config.get("trading.market.open"), defaults.market_open),
            market_close=_parse_time(config.get("trading.market.close"), defaults.market_close),
            timezone=config.get_str("trading.market.timezone", defaults.timezone),
        )


def load_config(config_path: str | Path | None = None) -> Config:
    """
    Load configuration from a YAML file.

    This is a convenience function that wraps Config.load().

    Args:
        config_path: Path to the YAML configuration file.
            Defaults to config/trading-config.yaml.

    Returns:
        Config instance
    """
    return Config.load(config_path or DEFAULT_CONFIG_PATH)


def get_web_config() -> dict[str, Any]:
    """
    Get Web API configuration from environment variables.

    Environment variables:
        WEB_HOST: Host to bind to (default: 0.0.0.0)
        WEB_PORT: Port to listen on (default: 8000)

    Returns:
        Dictionary with host and port.
    """
    return {
        "host": os.getenv("WEB_HOST", "0.0.0.0"),
        "port": int(os.getenv("WEB_PORT", "8000")),
    }
