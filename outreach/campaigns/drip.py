# outreach/campaigns/drip.py
from datetime import datetime, timedelta
from typing import List, Sequence, Tuple

from outreach.datetime_utils import from_business_local, to_business_local
from outreach.models import TaskType
from outreach.queue.tasks import FollowUpPayload, NewTask


def follow_up_schedule(sent_at: datetime, day_offsets: Sequence[int], send_hour: int, tz) -> List[Tuple[int, datetime]]:
    """
    (sequence, scheduled_at) pairs for a drip started at ``sent_at``.

    Each follow-up lands ``offset`` calendar days after the send date, at
    ``send_hour`` local time. Inputs and outputs are naive UTC.
    """
    local_sent = to_business_local(sent_at, tz)
    schedule = []
    for sequence, offset in enumerate(day_offsets, start=1):
        day = local_sent.date() + timedelta(days=offset)
        local_slot = datetime(day.year, day.month, day.day, send_hour, 0, 0)
        schedule.append((sequence, from_business_local(local_slot, tz)))
    return schedule


def build_follow_up_cohort(vendor, sent_at: datetime, day_offsets: Sequence[int], send_hour: int, tz) -> List[NewTask]:
    """One FOLLOW_UP task per offset, numbered from 1."""
    return [
        NewTask(
            subject_id=vendor.id,
            type=TaskType.FOLLOW_UP,
            scheduled_at=scheduled_at,
            payload=FollowUpPayload(
                sequence=sequence,
                business_name=vendor.business_name,
                email=vendor.email,
                preferred_language=vendor.preferred_language or "en",
            ),
        )
        for sequence, scheduled_at in follow_up_schedule(sent_at, day_offsets, send_hour, tz)
    ]
