# === MODULE PURPOSE ===
# Market-hours predicate for the simulated exchange.

# === KEY CONCEPTS ===
# - Open window: 09:15-15:30 exchange time, inclusive at both ends
# - Decided purely by wall-clock hour/minute (seconds ignored)
# - No weekend or holiday calendar

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, time
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)


@dataclass
class SessionTimes:
    """Time boundaries for the trading session."""

    market_open: time = time(9, 15)
    market_close: time = time(15, 30)


class MarketHours:
    """
    Determines whether the market is open.

    Usage:
        hours = MarketHours(timezone="Asia/Kolkata")
        if hours.is_open():
            ...

        # Deterministic check for tests
        hours.is_open(datetime(2026, 1, 5, 9, 15))

    Note:
        Naive datetimes passed to is_open() are taken as exchange local time.
        Aware datetimes are converted to the exchange timezone first.
    """

    def __init__(
        self,
        session_times: SessionTimes | None = None,
        timezone: str = "Asia/Kolkata",
    ):
        self.times = session_times or SessionTimes()
        self.tz = ZoneInfo(timezone)

    def now(self) -> datetime:
        """Current time in the exchange timezone."""
        return datetime.now(self.tz)

    def local_time(self, now: datetime | None = None) -> datetime:
        """Normalize a datetime to exchange local time."""
        if now is None:
            return self.now()
        if now.tzinfo is None:
            return now.replace(tzinfo=self.tz)
        return now.astimezone(self.tz)

    def is_open(self, now: datetime | None = None) -> bool:
        """True iff the wall-clock minute lies in [open, close]."""
        local = self.local_time(now)
        minute_of_day = local.hour * 60 + local.minute
        open_minute = self.times.market_open.hour * 60 + self.times.market_open.minute
        close_minute = self.times.market_close.hour * 60 + self.times.market_close.minute
        return open_minute <= minute_of_day <= close_minute

    def start_of_day(self, now: datetime | None = None) -> datetime:
        """Midnight of the current trading day, exchange timezone."""
        local = self.local_time(now)
        return local.replace(hour=0, minute=0, second=0, microsecond=0)
