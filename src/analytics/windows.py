from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional


class WindowValidationError(ValueError):
    """Raised for a window token other than 1h, 24h, 7d or 30d."""


class TimeWindow(str, Enum):
    HOUR = "1h"
    DAY = "24h"
    WEEK = "7d"
    MONTH = "30d"

    @property
    def duration(self) -> timedelta:
        return _DURATIONS[self]

    @property
    def intraday(self) -> bool:
        """Windows up to 24h are charted per snapshot, longer ones per calendar day."""
        return self.duration <= timedelta(hours=24)


_DURATIONS = {
    TimeWindow.HOUR: timedelta(hours=1),
    TimeWindow.DAY: timedelta(hours=24),
    TimeWindow.WEEK: timedelta(days=7),
    TimeWindow.MONTH: timedelta(days=30),
}

DEFAULT_WINDOW = TimeWindow.DAY


def parse_window(token: Optional[str]) -> TimeWindow:
    if isinstance(token, TimeWindow):
        return token
    if token is None:
        return DEFAULT_WINDOW
    try:
        return TimeWindow(str(token).strip())
    except ValueError:
        raise WindowValidationError(f"Invalid time range {token!r}. Use: 1h, 24h, 7d, or 30d") from None


def window_start(window: TimeWindow, now: datetime) -> datetime:
    return now - window.duration
