"""
DateTime utility functions for the application.

Timestamps are stored as naive UTC datetimes. Business-hours rules are
evaluated in the configured business timezone.
"""
from datetime import datetime, timezone
from zoneinfo import ZoneInfo


def utcnow():
    """Current time as a naive UTC datetime (the storage convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_business_timezone(name=None):
    """
    Get the business timezone object.
    
    Args:
        name: IANA timezone name. Defaults to Config.BUSINESS_TIMEZONE.
    """
    if name is None:
        from outreach.config import Config
        name = Config.BUSINESS_TIMEZONE
    return ZoneInfo(name)


def to_business_local(dt, tz):
    """
    Convert a naive UTC datetime to naive wall-clock time in ``tz``.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(tz).replace(tzinfo=None)


def from_business_local(dt, tz):
    """
    Convert naive wall-clock time in ``tz`` back to naive UTC.
    """
    return dt.replace(tzinfo=tz).astimezone(timezone.utc).replace(tzinfo=None)


def isoformat_or_none(dt):
    return dt.isoformat() if dt else None
