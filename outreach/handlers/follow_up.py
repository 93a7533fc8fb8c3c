# outreach/handlers/follow_up.py
from datetime import datetime

from outreach.campaigns.messages import (
    SEQUENCE_LENGTH,
    engagement_variant,
    merge_vars,
    render_follow_up,
    to_html,
)
from outreach.campaigns.orchestrator import CampaignSettings
from outreach.errors import DeliveryError
from outreach.logging_config import get_logger
from outreach.models import OutreachStatus
from outreach.queue.results import Completed, Skipped
from outreach.queue.tasks import Channel, QueueTask
from outreach.services.audit_log import ActivityType, AuditLogService
from outreach.vendors.store import VendorStore

logger = get_logger(__name__)


class FollowUpHandler:
    """Sends one step of the drip while the vendor is still awaiting onboarding."""

    def __init__(self, vendor_store: VendorStore, transport, audit_log: AuditLogService, settings: CampaignSettings):
        self.vendor_store = vendor_store
        self.transport = transport
        self.audit_log = audit_log
        self.settings = settings

    def handle(self, task: QueueTask, now: datetime):
        payload = task.payload
        vendor = self.vendor_store.get(task.subject_id)
        if vendor is None:
            logger.warning("Vendor not found, follow-up skipped", task_id=task.id, vendor_id=task.subject_id)
            return Skipped("vendor not found")

        if vendor.status != self.settings.drip_status:
            logger.info("Vendor moved on, follow-up skipped", task_id=task.id, vendor_id=vendor.id,
                        status=vendor.status)
            return Skipped(f"vendor status is {vendor.status}")

        if not vendor.email:
            logger.warning("No email for vendor, follow-up skipped", task_id=task.id, vendor_id=vendor.id)
            return Skipped("no email")

        if payload.sequence > SEQUENCE_LENGTH:
            logger.info("Follow-up sequence complete", task_id=task.id, vendor_id=vendor.id,
                        sequence=payload.sequence)
            return Skipped("sequence complete")

        if vendor.email_engagement == "bounced":
            self.vendor_store.update(vendor.id, {"outreach_status": OutreachStatus.NEEDS_MANUAL})
            self.audit_log.append(
                vendor.id,
                ActivityType.NEEDS_MANUAL_OUTREACH,
                f"Follow-up #{payload.sequence} skipped: previous email bounced. Manual outreach needed.",
                {"sequence": payload.sequence, "reason": "bounce"},
            )
            return Skipped("email bounced")

        variant = engagement_variant(vendor.email_engagement)
        variables = merge_vars(
            vendor,
            self.settings.onboarding_url(vendor.id),
            self.settings.unsubscribe_url(vendor.id),
        )
        language = vendor.preferred_language or payload.preferred_language
        subject, body = render_follow_up(payload.sequence, language, variables, variant=variant)

        result = self.transport.send(
            to=vendor.email,
            subject=subject,
            html=to_html(body),
            idempotency_key=f"{task.type.value.lower()}-{task.id}",
            tags={"vendor_id": vendor.id, "sequence": payload.sequence},
        )
        if not result.delivered:
            raise DeliveryError(f"Follow-up #{payload.sequence} to vendor {vendor.id} was not delivered: {result.error}")

        self.audit_log.append(
            vendor.id,
            ActivityType.FOLLOW_UP_SENT,
            f"Follow-up #{payload.sequence} sent to {vendor.email}",
            {
                "sequence": payload.sequence,
                "channel": Channel.EMAIL.value,
                "to": vendor.email,
                "subject": subject,
                "variant": variant,
                "provider_id": result.provider_id,
            },
        )
        return Completed(note=result.provider_id)
