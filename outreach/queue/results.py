from dataclasses import dataclass, field
from typing import List, Optional, Union

from outreach.queue.tasks import NewTask


@dataclass
class Completed:
    """Handler finished its side effects; follow-on tasks are enqueued by the dispatcher."""
    follow_on: List[NewTask] = field(default_factory=list)
    note: Optional[str] = None


@dataclass
class Skipped:
    """Nothing to do (subject no longer eligible, recipient missing). Marked COMPLETED."""
    reason: str


@dataclass
class SmsDeferred:
    """SMS channel accepted but not transmitted until an SMS transport exists."""
    reason: str = "SMS transport not integrated"


HandlerOutcome = Union[Completed, Skipped, SmsDeferred]
