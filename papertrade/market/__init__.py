# === MODULE PURPOSE ===
# Market data collaborator: prices and market hours.

from papertrade.market.feed import InMemoryMarketFeed, MarketFeed
from papertrade.market.hours import MarketHours, SessionTimes

__all__ = [
    "InMemoryMarketFeed",
    "MarketFeed",
    "MarketHours",
    "SessionTimes",
]
