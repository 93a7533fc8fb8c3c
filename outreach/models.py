from flask_sqlalchemy import SQLAlchemy
from enum import Enum

from outreach.datetime_utils import utcnow, isoformat_or_none

db = SQLAlchemy()


class TaskType(Enum):
    GENERATE = "GENERATE"
    SEND = "SEND"
    FOLLOW_UP = "FOLLOW_UP"


class TaskStatus(Enum):
    PENDING = "PENDING"
    CLAIMED = "CLAIMED"      # Leased by a worker, handler running
    RETRY = "RETRY"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    DEFERRED = "DEFERRED"    # SMS accepted but not transmitted

    @property
    def is_terminal(self):
        return self in TERMINAL_TASK_STATUSES


RUNNABLE_TASK_STATUSES = (TaskStatus.PENDING, TaskStatus.RETRY)
OUTSTANDING_TASK_STATUSES = RUNNABLE_TASK_STATUSES + (TaskStatus.CLAIMED,)
TERMINAL_TASK_STATUSES = (
    TaskStatus.COMPLETED,
    TaskStatus.FAILED,
    TaskStatus.CANCELLED,
    TaskStatus.DEFERRED,
)


class OutreachStatus(Enum):
    PENDING = "PENDING"
    ENRICHING = "ENRICHING"
    SENT = "SENT"
    FAILED = "FAILED"
    NEEDS_CONTACT = "NEEDS_CONTACT"
    PROFILE_INCOMPLETE = "PROFILE_INCOMPLETE"
    NEEDS_MANUAL = "NEEDS_MANUAL"


class QueueTaskRecord(db.Model):
    """Persisted unit of scheduled outreach work. Never deleted."""
    __tablename__ = "outreach_queue"
    __table_args__ = (
        db.Index("idx_queue_status_scheduled", "status", "scheduled_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    subject_id = db.Column(db.String(64), nullable=False, index=True)
    task_type = db.Column(db.Enum(TaskType), nullable=False)
    status = db.Column(db.Enum(TaskStatus), nullable=False, default=TaskStatus.PENDING)

    scheduled_at = db.Column(db.DateTime, nullable=False, index=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    retry_count = db.Column(db.Integer, nullable=False, default=0)
    error = db.Column(db.Text, nullable=True)
    payload = db.Column(db.JSON, nullable=False, default=dict)

    # Claim/lease
    claimed_by = db.Column(db.String(64), nullable=True)
    lease_expires_at = db.Column(db.DateTime, nullable=True)

    def __repr__(self):
        return f"<QueueTaskRecord {self.id} - {self.task_type.value} - {self.status.value}>"


class Vendor(db.Model):
    """The slice of the vendor record consumed and mutated by outreach."""
    __tablename__ = "vendors"

    id = db.Column(db.String(64), primary_key=True)
    version = db.Column(db.Integer, nullable=False)

    # Lifecycle
    status = db.Column(db.String(32), nullable=False, default="pending_review", index=True)
    outreach_status = db.Column(db.Enum(OutreachStatus), nullable=True)
    outreach_channel = db.Column(db.String(16), nullable=True)
    outreach_sent_at = db.Column(db.DateTime, nullable=True)
    status_updated_at = db.Column(db.DateTime, nullable=True)
    missing_profile_fields = db.Column(db.JSON, nullable=True)
    dismiss_reason = db.Column(db.String(64), nullable=True)
    unsubscribed_at = db.Column(db.DateTime, nullable=True)

    # Profile
    business_name = db.Column(db.String(256), nullable=True)
    capabilities = db.Column(db.JSON, nullable=True)
    specialty = db.Column(db.String(128), nullable=True)
    contact_name = db.Column(db.String(128), nullable=True)
    city = db.Column(db.String(128), nullable=True)
    state = db.Column(db.String(64), nullable=True)
    preferred_language = db.Column(db.String(8), nullable=False, default="en")
    has_active_contract = db.Column(db.Boolean, nullable=False, default=False)

    # Contact
    email = db.Column(db.String(256), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    website = db.Column(db.String(512), nullable=True)

    # Last delivery engagement reported by the email provider
    email_engagement = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Vendor {self.id} - {self.business_name} - {self.status}>"

    def to_dict(self):
        return {
            'id': self.id,
            'status': self.status,
            'outreach_status': self.outreach_status.value if self.outreach_status else None,
            'outreach_channel': self.outreach_channel,
            'outreach_sent_at': isoformat_or_none(self.outreach_sent_at),
            'missing_profile_fields': self.missing_profile_fields,
            'business_name': self.business_name,
            'capabilities': self.capabilities or [],
            'specialty': self.specialty,
            'contact_name': self.contact_name,
            'email': self.email,
            'phone': self.phone,
            'website': self.website,
            'preferred_language': self.preferred_language,
            'has_active_contract': self.has_active_contract,
            'version': self.version,
        }


class VendorActivity(db.Model):
    """Append-only audit trail keyed by vendor."""
    __tablename__ = "vendor_activities"

    id = db.Column(db.Integer, primary_key=True)
    vendor_id = db.Column(db.String(64), nullable=False, index=True)
    activity_type = db.Column(db.String(50), nullable=False, index=True)
    description = db.Column(db.Text, nullable=False)
    details = db.Column("metadata", db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)

    def __repr__(self):
        return f"<VendorActivity {self.vendor_id} - {self.activity_type}>"

    def to_dict(self):
        return {
            'id': self.id,
            'vendor_id': self.vendor_id,
            'type': self.activity_type,
            'description': self.description,
            'metadata': self.details,
            'created_at': isoformat_or_none(self.created_at),
        }
