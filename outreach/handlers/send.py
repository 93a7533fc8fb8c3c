# outreach/handlers/send.py
from datetime import datetime

from outreach.campaigns.messages import DEFAULT_SUBJECT, UNSUBSCRIBE_FOOTER, merge_vars, to_html
from outreach.campaigns.orchestrator import CampaignSettings
from outreach.errors import DeliveryError
from outreach.logging_config import get_logger
from outreach.models import OutreachStatus
from outreach.queue.results import Completed, Skipped, SmsDeferred
from outreach.queue.tasks import Channel, QueueTask
from outreach.services.audit_log import ActivityType, AuditLogService
from outreach.vendors.service import VendorLifecycleService
from outreach.vendors.store import VendorStore

logger = get_logger(__name__)


class SendHandler:
    """
    Delivers a drafted first-touch message.

    Email is used whenever the vendor has an address, regardless of the
    drafted channel. Phone-only vendors are deferred until an SMS transport
    exists. Nothing is sent once outreach went out or the vendor has left
    the eligible status.
    """

    def __init__(self, vendor_store: VendorStore, transport, audit_log: AuditLogService,
                 lifecycle: VendorLifecycleService, settings: CampaignSettings):
        self.vendor_store = vendor_store
        self.transport = transport
        self.audit_log = audit_log
        self.lifecycle = lifecycle
        self.settings = settings

    def handle(self, task: QueueTask, now: datetime):
        vendor = self.vendor_store.get(task.subject_id)
        if vendor is None:
            logger.warning("Vendor not found, send skipped", task_id=task.id, vendor_id=task.subject_id)
            return Skipped("vendor not found")

        if vendor.outreach_status is OutreachStatus.SENT:
            logger.info("Outreach already sent, send skipped", task_id=task.id, vendor_id=vendor.id)
            return Skipped("outreach already sent")

        if vendor.status != self.settings.eligible_status:
            logger.info("Vendor no longer eligible, send skipped", task_id=task.id, vendor_id=vendor.id,
                        status=vendor.status)
            return Skipped(f"vendor status is {vendor.status}")

        payload = task.payload
        if vendor.email:
            return self._send_email(task, vendor, now)

        if vendor.phone:
            self.audit_log.append(
                vendor.id,
                ActivityType.OUTREACH_SMS_DEFERRED,
                "SMS outreach drafted but not sent: no SMS transport",
                {"channel": Channel.SMS.value, "to": vendor.phone, "body": payload.body},
            )
            logger.info("SMS deferred", task_id=task.id, vendor_id=vendor.id)
            return SmsDeferred()

        self.vendor_store.update(vendor.id, {"outreach_status": OutreachStatus.NEEDS_CONTACT})
        self.audit_log.append(vendor.id, ActivityType.OUTREACH_NEEDS_CONTACT,
                              "Outreach not sent: no email or phone on file")
        return Skipped("no contact channel")

    def _send_email(self, task: QueueTask, vendor, now: datetime) -> Completed:
        payload = task.payload
        language = vendor.preferred_language if vendor.preferred_language in UNSUBSCRIBE_FOOTER else "en"
        variables = merge_vars(
            vendor,
            self.settings.onboarding_url(vendor.id),
            self.settings.unsubscribe_url(vendor.id),
        )
        subject = payload.subject or DEFAULT_SUBJECT.format(**variables)
        body = f"{payload.body}\n\n{UNSUBSCRIBE_FOOTER[language].format(**variables)}"
        html = to_html(body)

        result = self.transport.send(
            to=vendor.email,
            subject=subject,
            html=html,
            idempotency_key=f"{task.type.value.lower()}-{task.id}",
            tags={"vendor_id": vendor.id},
        )
        if not result.delivered:
            raise DeliveryError(f"Email to vendor {vendor.id} was not delivered: {result.error}")

        self.audit_log.append(
            vendor.id,
            ActivityType.OUTREACH_SENT,
            f"Automated email sent to {vendor.email}",
            {
                "channel": Channel.EMAIL.value,
                "to": vendor.email,
                "subject": subject,
                "body": body,
                "provider_id": result.provider_id,
                "sequence": payload.sequence,
            },
        )

        fields = {
            "outreach_status": OutreachStatus.SENT,
            "outreach_channel": Channel.EMAIL.value,
            "outreach_sent_at": now,
        }
        self.lifecycle.change_status(vendor.id, self.settings.drip_status, source="outreach_sent",
                                     fields=fields, now=now)

        return Completed(note=result.provider_id)
