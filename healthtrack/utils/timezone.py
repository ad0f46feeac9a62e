from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as UTC-naive, the storage convention for every table."""
    return datetime.now(dt_timezone.utc).replace(tzinfo=None)


def to_utc_naive(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize any datetime to UTC-naive (tzinfo=None) for consistent storage/comparison.
    - Aware datetimes are converted to UTC and tzinfo is stripped
    - Naive datetimes are returned as-is (assumed UTC)
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(dt_timezone.utc).replace(tzinfo=None)


def isoformat_utc(dt: Optional[datetime]) -> Optional[str]:
    """Render a stored UTC-naive datetime as an ISO string with a Z suffix."""
    if dt is None:
        return None
    return to_utc_naive(dt).isoformat(timespec="milliseconds") + "Z"


def isoformat_now() -> str:
    return isoformat_utc(utcnow())


def start_for_time_range(time_range: str, end: Optional[datetime] = None) -> datetime:
    """Start of a '7d' | '30d' | '90d' | '1y' window ending at `end`."""
    end = end or utcnow()
    if time_range == "1y":
        try:
            return end.replace(year=end.year - 1)
        except ValueError:
            # Feb 29 -> Feb 28
            return end.replace(year=end.year - 1, day=28)
    days = {"7d": 7, "30d": 30, "90d": 90}.get(time_range)
    if days is None:
        raise ValueError(f"Unsupported time range: {time_range}")
    return end - timedelta(days=days)
