# === MODULE PURPOSE ===
# Market feed interface consumed by the trading core.
# Supplies the current price per symbol and the market-open predicate.

# === KEY CONCEPTS ===
# - Pull-only: the core asks for a price when it needs one
# - Read-only: the core never mutates the feed
# - InMemoryMarketFeed: price table for tests and the demo server; prices
#   are pushed in by whatever drives the simulation

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Callable

from papertrade.market.hours import MarketHours
from papertrade.trading.errors import UnknownSymbolError
from papertrade.trading.models import to_decimal

logger = logging.getLogger(__name__)


class MarketFeed(ABC):
    """
    Abstract source of live or simulated prices.

    Implementations must be safe to call concurrently; a price returned
    is a snapshot and may be stale by the time it is used.
    """

    @abstractmethod
    async def get_price(self, symbol: str) -> Decimal:
        """
        Current price for a symbol.

        Raises:
            UnknownSymbolError: If the feed has no price for the symbol.
        """
        ...

    @abstractmethod
    def is_open(self, now: datetime | None = None) -> bool:
        """Whether orders may be placed at `now` (default: current time)."""
        ...

    def now(self) -> datetime:
        """Feed clock (timezone-aware). Override to drive the core from simulated time."""
        return datetime.now().astimezone()

    def start_of_day(self, now: datetime | None = None) -> datetime:
        """Midnight of the trading day containing `now` (default: feed clock)."""
        ref = (now or self.now()).astimezone()
        return ref.replace(hour=0, minute=0, second=0, microsecond=0)


class InMemoryMarketFeed(MarketFeed):
    """
    Market feed backed by a dict of prices.

    Usage:
        feed = InMemoryMarketFeed({"RELIANCE": "2456.75"})
        feed.set_price("TCS", 3245.80)
        price = await feed.get_price("RELIANCE")

        # Pin the clock for deterministic tests
        feed = InMemoryMarketFeed(prices, clock=lambda: datetime(2026, 1, 5, 10, 0))
    """

    def __init__(
        self,
        prices: dict[str, Decimal | float | str] | None = None,
        hours: MarketHours | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._prices: dict[str, Decimal] = {}
        self._hours = hours or MarketHours()
        self._clock = clock
        for symbol, price in (prices or {}).items():
            self.set_price(symbol, price)

    @property
    def hours(self) -> MarketHours:
        return self._hours

    def set_price(self, symbol: str, price: Decimal | float | str) -> None:
        """Publish a new price tick for a symbol."""
        self._prices[symbol.upper()] = to_decimal(price)

    def set_clock(self, clock: Callable[[], datetime] | None) -> None:
        """Replace the clock (None restores wall-clock time)."""
        self._clock = clock

    async def get_price(self, symbol: str) -> Decimal:
        price = self._prices.get(symbol.upper())
        if price is None:
            raise UnknownSymbolError(f"No market price available for {symbol}")
        return price

    def is_open(self, now: datetime | None = None) -> bool:
        return self._hours.is_open(now or self.now())

    def now(self) -> datetime:
        if self._clock is not None:
            return self._hours.local_time(self._clock())
        return self._hours.now()

    def start_of_day(self, now: datetime | None = None) -> datetime:
        return self._hours.start_of_day(now or self.now())

    @property
    def symbols(self) -> list[str]:
        """Symbols with a known price."""
        return sorted(self._prices)
