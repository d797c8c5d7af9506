from datetime import datetime
import pytz

from config import TIMEZONE

LOCAL_TZ = pytz.timezone(TIMEZONE)


def to_local(dt: datetime) -> datetime:
    """Convert a naive or UTC datetime to a local timezone-aware datetime.
    If naive, assume it's already local time.
    """
    if dt.tzinfo is None:
        # Treat naive datetime as local time
        return LOCAL_TZ.localize(dt)
    return dt.astimezone(LOCAL_TZ)


def now_local() -> datetime:
    """Get current time in the local timezone."""
    return datetime.now(pytz.UTC).astimezone(LOCAL_TZ)


def seconds_between(start: datetime, end: datetime) -> float:
    """Elapsed seconds from start to end, tolerant of mixed naive/aware values."""
    return (to_local(end) - to_local(start)).total_seconds()
