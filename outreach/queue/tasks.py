# outreach/queue/tasks.py
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from outreach.errors import UnknownTaskType
from outreach.models import TaskStatus, TaskType


class Channel(Enum):
    EMAIL = "EMAIL"
    SMS = "SMS"


class Urgency(Enum):
    URGENT = "URGENT"
    STANDARD = "STANDARD"


@dataclass
class ProfileSnapshot:
    """Vendor profile captured when a campaign starts."""
    business_name: Optional[str]
    capabilities: List[str] = field(default_factory=list)
    specialty: Optional[str] = None
    contact_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    preferred_language: str = "en"
    has_active_contract: bool = False

    @classmethod
    def from_vendor(cls, vendor) -> "ProfileSnapshot":
        return cls(
            business_name=vendor.business_name,
            capabilities=list(vendor.capabilities or []),
            specialty=vendor.specialty,
            contact_name=vendor.contact_name,
            email=vendor.email,
            phone=vendor.phone,
            website=vendor.website,
            city=vendor.city,
            state=vendor.state,
            preferred_language=vendor.preferred_language or "en",
            has_active_contract=bool(vendor.has_active_contract),
        )

    @property
    def urgency(self) -> Urgency:
        return Urgency.URGENT if self.has_active_contract else Urgency.STANDARD


@dataclass
class GeneratePayload:
    profile: ProfileSnapshot
    sequence: int = 1


@dataclass
class SendPayload:
    channel: Channel
    body: str
    subject: Optional[str] = None
    sequence: int = 1


@dataclass
class FollowUpPayload:
    sequence: int                  # 1-4, selects copy
    business_name: Optional[str] = None
    email: Optional[str] = None
    preferred_language: str = "en"


TaskPayload = Union[GeneratePayload, SendPayload, FollowUpPayload]

PAYLOAD_TYPES = {
    TaskType.GENERATE: GeneratePayload,
    TaskType.SEND: SendPayload,
    TaskType.FOLLOW_UP: FollowUpPayload,
}


def encode_payload(task_type: TaskType, payload: TaskPayload) -> Dict[str, Any]:
    """Serialize a payload for the JSON column, tagged with its task type."""
    expected = PAYLOAD_TYPES.get(task_type)
    if expected is None or not isinstance(payload, expected):
        raise ValueError(f"{type(payload).__name__} is not a payload for {task_type}")

    data = asdict(payload)
    if isinstance(payload, SendPayload):
        data["channel"] = payload.channel.value
    data["kind"] = task_type.value
    return data


def decode_payload(data: Dict[str, Any]) -> TaskPayload:
    """Rebuild the typed payload from its JSON form."""
    data = dict(data or {})
    kind = data.pop("kind", None)
    try:
        task_type = TaskType(kind)
    except ValueError:
        raise UnknownTaskType(f"Unknown payload kind: {kind!r}")

    if task_type is TaskType.GENERATE:
        return GeneratePayload(
            profile=ProfileSnapshot(**data["profile"]),
            sequence=data.get("sequence", 1),
        )
    if task_type is TaskType.SEND:
        data["channel"] = Channel(data["channel"])
        return SendPayload(**data)
    return FollowUpPayload(**data)


@dataclass
class NewTask:
    subject_id: str
    type: TaskType
    scheduled_at: datetime
    payload: TaskPayload

    def __post_init__(self):
        expected = PAYLOAD_TYPES[self.type]
        if not isinstance(self.payload, expected):
            raise ValueError(
                f"{self.type.value} task requires {expected.__name__}, got {type(self.payload).__name__}"
            )


@dataclass
class QueueTask:
    id: int                              # Assigned by DB
    subject_id: str                      # Vendor id
    type: TaskType
    status: TaskStatus
    scheduled_at: datetime
    created_at: datetime
    retry_count: int
    payload: TaskPayload
    error: Optional[str] = None
    claimed_by: Optional[str] = None
    lease_expires_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record) -> "QueueTask":
        return cls(
            id=record.id,
            subject_id=record.subject_id,
            type=record.task_type,
            status=record.status,
            scheduled_at=record.scheduled_at,
            created_at=record.created_at,
            retry_count=record.retry_count,
            payload=decode_payload(record.payload),
            error=record.error,
            claimed_by=record.claimed_by,
            lease_expires_at=record.lease_expires_at,
            completed_at=record.completed_at,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "subject_id": self.subject_id,
            "type": self.type.value,
            "status": self.status.value,
            "scheduled_at": self.scheduled_at.isoformat(),
            "created_at": self.created_at.isoformat(),
            "retry_count": self.retry_count,
            "error": self.error,
            "claimed_by": self.claimed_by,
            "lease_expires_at": self.lease_expires_at.isoformat() if self.lease_expires_at else None,
        }
