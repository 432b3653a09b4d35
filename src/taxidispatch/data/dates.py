"""Date range helpers for backend filters."""

from datetime import datetime, timedelta
from typing import Optional, Tuple

TIMEFRAMES = ("day", "week", "month")


def local_now() -> datetime:
    """Current time as an aware datetime in the local timezone."""
    return datetime.now().astimezone()


def start_of_day(now: Optional[datetime] = None) -> datetime:
    """Local midnight of the day containing ``now``."""
    now = now or local_now()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def day_bounds(now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """First and last instant of the day containing ``now``."""
    start = start_of_day(now)
    end = start.replace(hour=23, minute=59, second=59, microsecond=999000)
    return start, end


def timeframe_start(timeframe: str, now: Optional[datetime] = None) -> datetime:
    """Start of a 'day', 'week' (last 7 days) or 'month' (one month back) window."""
    now = now or local_now()
    today = start_of_day(now)

    if timeframe == "day":
        return today
    if timeframe == "week":
        return today - timedelta(days=7)
    if timeframe == "month":
        if today.month == 1:
            return today.replace(year=today.year - 1, month=12)
        previous_month = today.month - 1
        # Clamp to the last day of a shorter previous month
        day = today.day
        while True:
            try:
                return today.replace(month=previous_month, day=day)
            except ValueError:
                day -= 1
    raise ValueError(f"Unknown timeframe: {timeframe}")


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime for a backend filter."""
    return value.isoformat() if value is not None else None
