from typing import List, Optional

from outreach.datetime_utils import utcnow
from outreach.logging_config import get_logger
from outreach.models import VendorActivity, db

logger = get_logger(__name__)


class ActivityType:
    STATUS_CHANGE = "STATUS_CHANGE"
    OUTREACH_QUEUED = "OUTREACH_QUEUED"
    OUTREACH_SENT = "OUTREACH_SENT"
    OUTREACH_SMS_DEFERRED = "OUTREACH_SMS_DEFERRED"
    OUTREACH_FAILED = "OUTREACH_FAILED"
    OUTREACH_NEEDS_CONTACT = "OUTREACH_NEEDS_CONTACT"
    PROFILE_INCOMPLETE = "PROFILE_INCOMPLETE"
    ENRICHMENT_STARTED = "ENRICHMENT_STARTED"
    ENRICHMENT_COMPLETED = "ENRICHMENT_COMPLETED"
    DRIP_SCHEDULED = "DRIP_SCHEDULED"
    FOLLOW_UP_SENT = "FOLLOW_UP_SENT"
    NEEDS_MANUAL_OUTREACH = "NEEDS_MANUAL_OUTREACH"
    TASKS_CANCELLED = "TASKS_CANCELLED"


class AuditLogService:
    """Append-only audit trail of outreach activity, keyed by vendor."""

    def __init__(self, session=None):
        self.session = session or db.session

    def append(self, subject_id: str, activity_type: str, description: str, metadata: Optional[dict] = None):
        """Write one entry in its own transaction and return it."""
        entry = VendorActivity(
            vendor_id=subject_id,
            activity_type=activity_type,
            description=description,
            details=metadata or {},
            created_at=utcnow(),
        )
        try:
            self.session.add(entry)
            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.error(
                "Failed to append audit entry",
                vendor_id=subject_id,
                activity_type=activity_type,
                exc_info=True,
            )
            raise

        logger.debug("Audit entry appended", vendor_id=subject_id, activity_type=activity_type)
        return entry

    def for_subject(self, subject_id: str, limit: int = 100) -> List[VendorActivity]:
        return (
            self.session.query(VendorActivity)
            .filter(VendorActivity.vendor_id == subject_id)
            .order_by(VendorActivity.created_at.desc(), VendorActivity.id.desc())
            .limit(limit)
            .all()
        )
