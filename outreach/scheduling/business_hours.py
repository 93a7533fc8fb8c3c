"""
Business-hours slot calculation.

Pure functions: every result depends only on the arguments, so they can be
checked against a fixed clock.
"""

from datetime import date, datetime, timedelta

from outreach.datetime_utils import from_business_local, to_business_local
from outreach.queue.tasks import Urgency
from outreach.scheduling.config import BusinessHoursConfig, DEFAULT_BUSINESS_HOURS


def is_business_hours(now: datetime, config: BusinessHoursConfig = DEFAULT_BUSINESS_HOURS) -> bool:
    """True when ``now`` (local wall-clock) falls on a working day inside working hours."""
    return now.weekday() in config.weekdays and config.start_hour <= now.hour < config.end_hour


def next_business_day(day: date, config: BusinessHoursConfig = DEFAULT_BUSINESS_HOURS) -> date:
    """
    The first working day strictly after ``day``.

    With a Mon-Fri week: Friday -> Monday (+3), Saturday -> Monday (+2),
    any other day -> +1.
    """
    candidate = day + timedelta(days=1)
    while candidate.weekday() not in config.weekdays:
        candidate += timedelta(days=1)
    return candidate


def next_slot(
    urgency: Urgency,
    now: datetime,
    config: BusinessHoursConfig = DEFAULT_BUSINESS_HOURS,
) -> datetime:
    """
    Next valid send time for a message of the given urgency.

    - URGENT during business hours: ``now`` + urgent lead time.
    - Otherwise: next business day at the urgency's fixed slot
      (09:00 URGENT, 10:00 STANDARD by default).

    Args:
        urgency: Urgency.URGENT or Urgency.STANDARD
        now: Current local wall-clock time (naive)
        config: Business-hours configuration

    Returns:
        datetime: Local wall-clock send time (naive)
    """
    if urgency is Urgency.URGENT and is_business_hours(now, config):
        return now + timedelta(minutes=config.urgent_lead_minutes)

    slot_hour = config.urgent_slot_hour if urgency is Urgency.URGENT else config.standard_slot_hour
    day = next_business_day(now.date(), config)
    return datetime(day.year, day.month, day.day, slot_hour, 0, 0)


def next_slot_utc(
    urgency: Urgency,
    now_utc: datetime,
    tz,
    config: BusinessHoursConfig = DEFAULT_BUSINESS_HOURS,
) -> datetime:
    """``next_slot`` evaluated in ``tz`` for a naive UTC clock; returns naive UTC."""
    local_now = to_business_local(now_utc, tz)
    return from_business_local(next_slot(urgency, local_now, config), tz)
