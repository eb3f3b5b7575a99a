"""Wall clock for the business' local time."""
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo


class Clock:
    """
    Returns the current time in the restaurant's timezone.

    Discount windows are expressed in local weekday/date/HH:MM, so every
    component asks this clock instead of calling datetime.now() directly.
    """

    def __init__(self, timezone: Optional[str] = None):
        self.tz = ZoneInfo(timezone) if timezone else None

    def now(self) -> datetime:
        return datetime.now(self.tz)


class FixedClock(Clock):
    """Clock frozen at a given instant (batch jobs and tests)."""

    def __init__(self, moment: datetime):
        super().__init__(None)
        self.moment = moment

    def now(self) -> datetime:
        return self.moment


def clock_from_config(config) -> Clock:
    return Clock(config.get('BUSINESS_TIMEZONE'))
