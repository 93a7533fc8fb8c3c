# outreach/vendors/events.py
from dataclasses import dataclass
from datetime import datetime
from typing import Optional


class VendorStatus:
    """Lifecycle stages a vendor moves through."""
    PENDING_REVIEW = "pending_review"
    QUALIFIED = "qualified"
    AWAITING_ONBOARDING = "awaiting_onboarding"
    COMPLIANCE_REVIEW = "compliance_review"
    PENDING_VERIFICATION = "pending_verification"
    ONBOARDING_SCHEDULED = "onboarding_scheduled"
    READY_FOR_ASSIGNMENT = "ready_for_assignment"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DISMISSED = "dismissed"

    ALL = (
        PENDING_REVIEW,
        QUALIFIED,
        AWAITING_ONBOARDING,
        COMPLIANCE_REVIEW,
        PENDING_VERIFICATION,
        ONBOARDING_SCHEDULED,
        READY_FOR_ASSIGNMENT,
        ACTIVE,
        SUSPENDED,
        DISMISSED,
    )


@dataclass
class VendorStatusChanged:
    """Emitted after a vendor's lifecycle status has been committed."""
    vendor_id: str
    before: Optional[str]
    after: str
    occurred_at: datetime
    source: str = "system"
