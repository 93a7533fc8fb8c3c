"""
Business-hours configuration.

Defines the working week and the fixed send slots used when a message
cannot go out immediately.
"""

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class BusinessHoursConfig:
    """
    Working days and hours in the business timezone.

    Weekdays follow ``datetime.weekday()`` (Monday = 0).
    """
    start_hour: int = 9
    end_hour: int = 17
    weekdays: Tuple[int, ...] = (0, 1, 2, 3, 4)

    # URGENT inside business hours goes out after this many minutes
    urgent_lead_minutes: int = 10

    # Fixed slots on the next business day
    urgent_slot_hour: int = 9
    standard_slot_hour: int = 10

    def __post_init__(self):
        if not self.weekdays:
            raise ValueError("At least one business weekday is required")
        if not 0 <= self.start_hour < self.end_hour <= 24:
            raise ValueError(f"Invalid business hours {self.start_hour}-{self.end_hour}")

    @classmethod
    def from_config(cls, cfg) -> "BusinessHoursConfig":
        """Build from a Config class or a Flask config mapping."""
        get = cfg.get if hasattr(cfg, "get") else lambda key, default=None: getattr(cfg, key, default)
        return cls(
            start_hour=int(get("BUSINESS_START_HOUR", 9)),
            end_hour=int(get("BUSINESS_END_HOUR", 17)),
            weekdays=tuple(get("BUSINESS_WEEKDAYS", (0, 1, 2, 3, 4))),
            urgent_lead_minutes=int(get("URGENT_LEAD_MINUTES", 10)),
            urgent_slot_hour=int(get("URGENT_SLOT_HOUR", 9)),
            standard_slot_hour=int(get("STANDARD_SLOT_HOUR", 10)),
        )


DEFAULT_BUSINESS_HOURS = BusinessHoursConfig()
