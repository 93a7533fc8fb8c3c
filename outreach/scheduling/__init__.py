"""
Business-hours scheduling for outreach delivery.
"""

from outreach.scheduling.config import BusinessHoursConfig, DEFAULT_BUSINESS_HOURS
from outreach.scheduling.business_hours import (
    is_business_hours,
    next_business_day,
    next_slot,
    next_slot_utc,
)

__all__ = [
    'BusinessHoursConfig',
    'DEFAULT_BUSINESS_HOURS',
    'is_business_hours',
    'next_business_day',
    'next_slot',
    'next_slot_utc',
]
